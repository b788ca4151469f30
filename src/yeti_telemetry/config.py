"""Configuration loading and validation.

This module is responsible for:

- Loading `.env` into the process environment (without overriding existing vars).
- Converting `YETI_*` environment variables into strongly-typed Pydantic models.
- Reading the OTLP export section of the host's `yeti-config.yaml`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, TypeVar

import dotenv
import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = structlog.get_logger(__name__)

_T = TypeVar("_T", int, float)

HOST_CONFIG_FILENAME = "yeti-config.yaml"
DEFAULT_SERVICE_NAME = "yeti"


def _get_env_bool(name: str, default: bool) -> bool:
    """Read a boolean env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    normalized = raw.strip().lower()
    if normalized in {"true", "1", "yes", "y", "on"}:
        return True
    if normalized in {"false", "0", "no", "n", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean (true/false). Got: {raw!r}")


def _get_env_number(name: str, default: _T, cast: type[_T]) -> _T:
    """Read an int/float env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a {cast.__name__}. Got: {raw!r}") from exc


class WriterConfig(BaseModel):
    """Tuning for the inbound channel, the dispatch loop and the file output."""

    queue_size: int = Field(default=10000, description="Inbound channel capacity")
    drop_when_full: bool = Field(default=False, description="Drop events instead of suspending producers")
    status_interval: int = Field(default=1000, description="Events between status reports")
    max_file_mb: int = Field(default=100, description="Advisory size threshold per output file (MiB)")
    retention_days: int = Field(default=7, description="Age after which output files are deleted")

    @field_validator("queue_size", "status_interval", "max_file_mb", "retention_days")
    def validate_positive(cls, v: int) -> int:
        """Reject zero/negative tuning values."""
        if v <= 0:
            raise ValueError(f"must be > 0. Got: {v}")
        return v

    @property
    def max_file_size(self) -> int:
        return self.max_file_mb * 1024 * 1024


class LoggingConfig(BaseModel):
    json_output: bool = Field(default=False, description="Render logs as JSON lines")
    level: str = Field(default="INFO", description="Root log level")


class OtlpConfig(BaseModel):
    """OTLP metrics export settings from the `telemetry` section of the host config."""

    endpoint: str = Field(..., description="OTLP collector endpoint")
    service_name: str = Field(default=DEFAULT_SERVICE_NAME, description="service.name resource attribute")
    metrics_enabled: bool = Field(default=True, description="Export HTTP request metrics")
    environment: str = Field(default="development", description="deployment.environment resource attribute")

    @field_validator("endpoint")
    def validate_endpoint(cls, v: str) -> str:
        """Validate the endpoint is set."""
        if not v.strip():
            raise ValueError("otlpEndpoint must not be empty.")
        return v


class Config(BaseModel):
    """Top-level telemetry configuration."""

    root_dir: Path = Field(..., description="Host root directory")
    db_path: Path | None = Field(default=None, description="DuckDB file for record storage (in-memory when unset)")
    writer: WriterConfig = Field(default_factory=WriterConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    otlp: OtlpConfig | None = None

    @property
    def logs_dir(self) -> Path:
        return self.root_dir / "logs"


def _read_host_config(root_dir: Path) -> dict[str, Any] | None:
    """Read `yeti-config.yaml` from the root dir; None when absent or unreadable."""
    config_path = root_dir / HOST_CONFIG_FILENAME
    try:
        contents = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as exc:
        logger.warning("host config unreadable", path=str(config_path), error=str(exc))
        return None
    try:
        data = yaml.safe_load(contents)
    except yaml.YAMLError as exc:
        logger.warning("host config is not valid YAML", path=str(config_path), error=str(exc))
        return None
    return data if isinstance(data, dict) else None


def load_otlp_config(root_dir: str | Path) -> OtlpConfig | None:
    """Parse the OTLP section of the host config.

    Returns None (export disabled) when the file, the `telemetry` section or a
    non-empty `otlpEndpoint` is missing. Wrongly-typed optional keys fall back
    to their defaults.
    """
    data = _read_host_config(Path(root_dir))
    if data is None:
        return None
    telemetry = data.get("telemetry")
    if not isinstance(telemetry, dict):
        return None

    endpoint = telemetry.get("otlpEndpoint")
    if not isinstance(endpoint, str) or not endpoint.strip():
        return None

    service_name = telemetry.get("serviceName")
    metrics_enabled = telemetry.get("metrics")
    try:
        otlp = OtlpConfig(
            endpoint=endpoint,
            service_name=service_name if isinstance(service_name, str) else DEFAULT_SERVICE_NAME,
            metrics_enabled=metrics_enabled if isinstance(metrics_enabled, bool) else True,
            environment=os.getenv("YETI_ENV") or "development",
        )
    except ValidationError as exc:
        logger.warning("invalid OTLP config", error=str(exc))
        return None

    logger.info(
        "OTLP config loaded",
        endpoint=otlp.endpoint,
        service=otlp.service_name,
        metrics=otlp.metrics_enabled,
    )
    return otlp


def load_config(root_dir: str | Path | None = None) -> Config:
    """Load telemetry configuration from the environment and the host config.

    Notes:
    - Calls `dotenv.load_dotenv()` so local `.env` values are visible to the process.
    - Raises `ValueError` with actionable messages for malformed numeric or
      boolean environment values.
    """
    dotenv.load_dotenv()

    root = Path(root_dir) if root_dir is not None else Path(os.getenv("YETI_ROOT_DIR") or Path.cwd())
    db_path = os.getenv("YETI_TELEMETRY_DB_PATH", "").strip()

    writer = WriterConfig(
        queue_size=_get_env_number("YETI_TELEMETRY_QUEUE_SIZE", 10000, int),
        drop_when_full=_get_env_bool("YETI_TELEMETRY_DROP_WHEN_FULL", False),
        status_interval=_get_env_number("YETI_TELEMETRY_STATUS_INTERVAL", 1000, int),
        max_file_mb=_get_env_number("YETI_TELEMETRY_MAX_FILE_MB", 100, int),
        retention_days=_get_env_number("YETI_TELEMETRY_RETENTION_DAYS", 7, int),
    )
    logging_config = LoggingConfig(
        json_output=_get_env_bool("YETI_LOG_JSON", False),
        level=os.getenv("YETI_LOG_LEVEL", "").strip() or "INFO",
    )
    return Config(
        root_dir=root,
        db_path=Path(db_path) if db_path else None,
        writer=writer,
        logging=logging_config,
        otlp=load_otlp_config(root),
    )
