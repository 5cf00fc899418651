"""Canonical JSON serialization for persisted execution records.

Record files are written byte-stable so that two writes of the same record
produce identical files regardless of platform.
"""

import json
from typing import Any


def canonical_dumps(obj: Any) -> str:
    """
    Serialize a record payload to canonical JSON.

    Rules:
    - Sorted keys
    - Stable separators (",", ":")
    - UTF-8 (no ASCII escaping)

    Args:
        obj: JSON-compatible Python object

    Returns:
        Canonical JSON string
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False
    )
