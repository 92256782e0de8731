# compactflow/config.py
import shlex
from pathlib import Path
from typing import Annotated, Any, Optional, Tuple

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from compactflow.common.exceptions import ConfigurationError

ENV_PREFIX = "COMPACTFLOW_"


class ServiceConfig(BaseSettings):
    """
    Settings for one service process, read from COMPACTFLOW_* environment
    variables. Every field has a usable default; overrides are explicit and
    unknown names are rejected.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        extra="forbid",
        frozen=True,
    )

    # Listener
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=0, le=65535)

    # Logs go to <data_dir>/logs, job history to <data_dir>/jobs
    data_dir: Path = Path("data")
    retention_days: int = Field(default=30, ge=1)
    # Hour of day (UTC) at which the daily retention sweep runs
    retention_sweep_hour: int = Field(default=2, ge=0, le=23)
    # Number of most recent day files a log query reads
    log_query_window: int = Field(default=7, ge=1)

    # API
    job_list_limit: int = Field(default=50, ge=0)
    log_query_default_count: int = Field(default=100, ge=0)
    static_dir: Optional[Path] = None

    # Work
    compact_command: Annotated[Tuple[str, ...], NoDecode] = ()
    compact_timeout: Optional[float] = Field(default=None, gt=0)
    work_function: Optional[str] = None  # "package.module:function"
    auto_start_next: bool = False

    # Seconds to wait for the active job at shutdown, None waits until it ends
    shutdown_drain_timeout: Optional[float] = Field(default=None, ge=0)

    def __init__(self, **values: Any):
        try:
            super().__init__(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @field_validator("compact_command", mode="before")
    @classmethod
    def split_command(cls, value: Any) -> Any:
        if isinstance(value, str):
            return tuple(shlex.split(value))
        return value

    @field_validator("static_dir", "work_function", mode="before")
    @classmethod
    def blank_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"

    @property
    def history_dir(self) -> Path:
        return self.data_dir / "jobs"

    def with_overrides(self, **overrides: Any) -> "ServiceConfig":
        unknown = set(overrides) - set(type(self).model_fields)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        values = self.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return type(self)(**values)


def load_config(**overrides: Any) -> ServiceConfig:
    """Builds a config from COMPACTFLOW_* environment variables, then overrides."""
    return ServiceConfig().with_overrides(**overrides)
