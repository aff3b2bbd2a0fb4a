"""
Logging Configuration.

Values are read from ``FANLOG_*`` environment variables (and ``.env``), with
nested sink settings separated by ``__``::

    FANLOG_LEVEL=warn
    FANLOG_FORMAT=json
    FANLOG_FILE__ENABLED=true
    FANLOG_KAFKA__BROKERS='["kafka-1:9092","kafka-2:9092"]'
"""

from enum import Enum
from typing import Any, Dict, List, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogFormat(str, Enum):
    PLAIN = "plain"
    JSON = "json"


class FileSinkSettings(BaseModel):
    """Rotating file sink."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=False, description="Write records to a rotating file")
    path: str = Field(default="app.log", description="Active log file path")
    max_size_mb: float = Field(default=10, gt=0, description="Rotate once the file would exceed this size")
    max_backups: int = Field(default=5, ge=0, description="Rotated files to keep (0 = unlimited)")
    max_age_days: int = Field(default=28, ge=0, description="Delete rotated files older than this (0 = never)")
    compress: bool = Field(default=True, description="gzip rotated files")


class KafkaSinkSettings(BaseModel):
    """Kafka producer sink."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=False, description="Produce records to a Kafka topic")
    brokers: List[str] = Field(default_factory=list, description="Bootstrap broker addresses")
    topic: str = Field(default="", description="Destination topic")
    acks: Union[int, str] = Field(default=0, description="Producer acks (0, 1, all)")
    flush_timeout: float = Field(default=10.0, gt=0, description="Seconds to wait for delivery per record")
    extra_config: Dict[str, Any] = Field(default_factory=dict, description="Extra librdkafka options")


class LoggingSettings(BaseSettings):
    """Logging pipeline configuration. Frozen once built."""

    model_config = SettingsConfigDict(
        env_prefix="FANLOG_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Kept as a free string: unknown thresholds must fail open, not fail validation.
    level: str = Field(default="info", description="Minimum threshold (debug, info, warn, error)")
    format: LogFormat = Field(default=LogFormat.PLAIN, description="Output format (plain, json)")
    service_name: str = Field(default="", description="Service name stamped on every record")
    environment: str = Field(default="", description="Deployment environment stamped on every record")
    console: bool = Field(default=True, description="Write records to stdout")
    stdlib_bridge: bool = Field(default=False, description="Route standard library logging through fanlog")
    file: FileSinkSettings = Field(default_factory=FileSinkSettings)
    kafka: KafkaSinkSettings = Field(default_factory=KafkaSinkSettings)

    @field_validator("format", mode="before")
    @classmethod
    def _normalize_format(cls, value: Any) -> Any:
        if isinstance(value, LogFormat):
            return value
        text = str(value or "").strip().lower()
        if text in {"json", "structured"}:
            return LogFormat.JSON
        return LogFormat.PLAIN
