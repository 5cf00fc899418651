"""Per-changeset log capture.

A LogCapture buffers every log record emitted while one changeset's actions
run so the lines can be stored with its execution record. The active buffer
is tracked in a ContextVar: records emitted from another context (another
thread, another concurrent run) never land in it, and two captures never
share a buffer.
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, List, Optional

from runonce.config import PersistConfig
from runonce.errors import RunOnceError

_active_capture: ContextVar[Optional["_CaptureHandler"]] = ContextVar("runonce_active_capture", default=None)


class _CaptureHandler(logging.Handler):
    def __init__(self, change_set_id: str, level: int, fmt: str):
        super().__init__(level)
        self.change_set_id = change_set_id
        self.lines: List[str] = []
        self.setFormatter(logging.Formatter(fmt))

    def emit(self, record: logging.LogRecord) -> None:
        if _active_capture.get() is not self:
            return
        try:
            self.lines.append(self.format(record))
        except Exception:
            self.handleError(record)


class CapturedLog:
    """Lines captured for one changeset; complete once the capture has exited."""

    def __init__(self, change_set_id: str):
        self.change_set_id = change_set_id
        self.lines: List[str] = []

    def __repr__(self) -> str:
        return f"CapturedLog({self.change_set_id!r}, {len(self.lines)} lines)"


class LogCapture:
    """Scoped log sink owned by one changelog execution."""

    def __init__(self, configuration: Optional[PersistConfig] = None, logger: Optional[logging.Logger] = None):
        self.configuration = configuration or PersistConfig()
        self.logger = logger or logging.getLogger()

    @contextmanager
    def capture(self, change_set_id: str) -> Iterator[CapturedLog]:
        """Buffer records emitted in this context until the block exits.

        The yielded CapturedLog is filled on exit, whatever the exit path.
        """
        if _active_capture.get() is not None:
            raise RunOnceError(
                f"Cannot capture logs for '{change_set_id}': a capture is already active in this context"
            )
        level = self.configuration.level
        handler = _CaptureHandler(change_set_id, level, self.configuration.log_format)
        captured = CapturedLog(change_set_id)

        previous_level = self.logger.level
        # Records below the logger's effective level are dropped before any handler sees them.
        lowered = self.logger.getEffectiveLevel() > level
        if lowered:
            self.logger.setLevel(level)
        self.logger.addHandler(handler)
        token = _active_capture.set(handler)
        try:
            yield captured
        finally:
            _active_capture.reset(token)
            self.logger.removeHandler(handler)
            if lowered:
                self.logger.setLevel(previous_level)
            handler.close()
            captured.lines = list(handler.lines)
