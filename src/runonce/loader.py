"""Changelog script loader.

A changelog script is Python source that binds a module-level name
``changelog`` to a Changelog or to a ChangeLogBuilder (see runonce.change_log).
The script runs in a fresh namespace; ``change_log`` and a ``logger`` are
available without importing them.
"""

import hashlib
import linecache
import logging
import os
from pathlib import Path
from typing import Optional, Union

from runonce.errors import ChangelogLoadError
from runonce.kernel.dsl import ChangeLogBuilder, change_log
from runonce.kernel.model import Changelog

logger = logging.getLogger(__name__)

CHANGELOG_VARIABLE = "changelog"


def _register_source(filename: str, source: str) -> None:
    # Lets inspect.getsource() see the exact text that was executed, so
    # action fingerprints do not depend on the file changing afterwards.
    lines = source.splitlines(keepends=True)
    if lines and not lines[-1].endswith("\n"):
        lines[-1] += "\n"
    linecache.cache[filename] = (len(source), None, lines, filename)


def load_changelog(source: str, origin: Optional[str] = None) -> Changelog:
    """
    Turn changelog script source into a Changelog.

    Args:
        source: Python source text
        origin: Where the source came from (a path, or a label); used as the
            code filename and in error messages

    Returns:
        The Changelog bound to ``changelog`` by the script

    Raises:
        ChangelogLoadError: On syntax errors, errors raised by the script, or a
            missing or invalid ``changelog`` binding
    """
    if origin is None:
        digest = hashlib.sha256(source.encode("utf-8")).hexdigest()[:12]
        origin = f"<changelog-{digest}>"
    try:
        code = compile(source, origin, "exec")
    except SyntaxError as e:
        raise ChangelogLoadError(origin, f"syntax error at line {e.lineno}: {e.msg}") from e

    _register_source(origin, source)
    namespace = {
        "__name__": "runonce.changelog",
        "__file__": origin,
        "change_log": change_log,
        "logger": logging.getLogger("runonce.changelog"),
    }
    try:
        exec(code, namespace)
    except Exception as e:
        raise ChangelogLoadError(origin, f"script raised {e!r}") from e

    loaded = namespace.get(CHANGELOG_VARIABLE)
    if isinstance(loaded, ChangeLogBuilder):
        try:
            loaded = loaded.build()
        except ValueError as e:
            raise ChangelogLoadError(origin, str(e)) from e
    if not isinstance(loaded, Changelog):
        raise ChangelogLoadError(
            origin,
            f"expected '{CHANGELOG_VARIABLE}' to be a Changelog or ChangeLogBuilder, "
            f"got {type(loaded).__name__}",
        )
    logger.debug("Loaded changelog %r (%d changesets) from %s", loaded.id, len(loaded.change_sets), origin)
    return loaded


def load_changelog_file(path: Union[str, os.PathLike]) -> Changelog:
    """Load a changelog script from disk; an empty id defaults to the absolute path."""
    file_path = Path(path).absolute()
    try:
        source = file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ChangelogLoadError(str(file_path), str(e)) from e
    changelog = load_changelog(source, origin=str(file_path))
    if not changelog.id:
        changelog = changelog.with_id(str(file_path))
    return changelog
