"""Changelog execution kernel: models, fingerprints, tag selection, orchestration."""
