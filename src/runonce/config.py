"""Run and persistence configuration."""

import logging
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_LOG_FORMAT = "%(levelname)s %(name)s - %(message)s"


class PersistConfig(BaseModel):
    """How captured changeset logs are stored by a persist engine."""
    level: int = logging.INFO  # Minimum level of captured lines
    on_success_store_logs: bool = True
    on_error_store_logs: bool = True
    log_format: str = DEFAULT_LOG_FORMAT  # logging.Formatter format string

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator('level', mode='before')
    @classmethod
    def validate_level(cls, v: Union[int, str]) -> int:
        """Accept level names ("INFO", "debug") as well as numeric levels."""
        if isinstance(v, str):
            level = logging.getLevelName(v.upper())
            if not isinstance(level, int):
                raise ValueError(f"Unknown log level: {v!r}")
            return level
        return v

    def store_logs_for(self, ok: bool) -> bool:
        return self.on_success_store_logs if ok else self.on_error_store_logs


def _default_persist_engine():
    from runonce.persist.null import NullPersistEngine
    return NullPersistEngine()


class RunConfiguration(BaseModel):
    """Configuration shared by every changelog executed by a Runner."""
    failfast: bool = True  # First failure stops the remaining work
    dry_run: bool = False  # Select and report, never lock or execute
    persist_engine: object = Field(default_factory=_default_persist_engine)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator('persist_engine')
    @classmethod
    def validate_persist_engine(cls, v: object) -> object:
        from runonce.persist.base import PersistEngine
        if not isinstance(v, PersistEngine):
            raise ValueError(f"persist_engine must be a PersistEngine, got {type(v).__name__}")
        return v
