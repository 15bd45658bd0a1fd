"""
Configuration Schema Validation

Pydantic models for the engine configuration file. Validation errors are
turned into ``ConfigError`` with the offending file attached so operators
see which file and field is wrong.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from boardflow.core.domain.errors import ConfigError


class LoggingConfigSchema(BaseModel):
    """Schema for logging configuration."""

    model_config = ConfigDict(extra="forbid")

    level: str = Field(
        "INFO",
        description="Log level",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )


class EngineConfig(BaseModel):
    """Schema for the automation engine configuration."""

    model_config = ConfigDict(extra="forbid")

    work_dir: str = Field(
        ".boardflow",
        min_length=1,
        description="Directory holding rule and log files",
    )
    max_recursion_depth: int = Field(
        5,
        ge=1,
        le=50,
        description="Maximum number of chained trigger levels, the original included",
    )
    cache_rules: bool = Field(
        True,
        description="Cache active rules per board and trigger type",
    )
    log_page_size: int = Field(
        50,
        ge=1,
        description="Default number of logs returned by a log query",
    )
    max_log_page_size: int = Field(
        200,
        ge=1,
        description="Upper bound for a log query page",
    )
    webhook_timeout_seconds: float = Field(
        10.0,
        gt=0,
        description="Timeout for outgoing webhook requests",
    )
    logging: LoggingConfigSchema = Field(default_factory=LoggingConfigSchema)

    @model_validator(mode="after")
    def validate_page_sizes(self) -> "EngineConfig":
        """Ensure the default page fits in the maximum page."""
        if self.log_page_size > self.max_log_page_size:
            raise ValueError("log_page_size must not exceed max_log_page_size")
        return self


def _format_validation_errors(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error["loc"]) or "<root>"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def validate_engine_config(
    data: dict[str, Any] | None, file_path: Optional[Path] = None
) -> EngineConfig:
    """Validate a raw configuration mapping.

    Args:
        data: Parsed YAML content (None is treated as empty).
        file_path: Source file, reported in errors.

    Returns:
        The validated EngineConfig.

    Raises:
        ConfigError: If the configuration is invalid.
    """
    try:
        return EngineConfig.model_validate(data or {})
    except ValidationError as exc:
        source = str(file_path) if file_path else "<inline>"
        raise ConfigError(
            f"Invalid configuration in {source}: {_format_validation_errors(exc)}",
            details={"file": source},
        ) from exc
