"""Pydantic configuration schema for mboxkit.

This module defines the configuration schema that mirrors config.yaml structure.
Every section has defaults, so an empty file (or no file at all) is a valid
configuration.

Usage:
    from mboxkit.config_schema import AppConfig

    # Validate a config dict
    config = AppConfig(**yaml_data)
"""

import codecs
from typing import Literal

from pydantic import BaseModel, Field, field_validator

# Current schema version - increment when adding new required fields
CURRENT_SCHEMA_VERSION = 1

DEFAULT_DATE_FORMATS = [
    "%a, %d %b %Y %H:%M:%S %z",
    "%d %b %Y %H:%M:%S %z",
    "%a %b %d %H:%M:%S %Y",
    "%Y-%m-%d %H:%M:%S %z",
    "%a, %d %b %Y %H:%M %z",
    "%d %b %Y %H:%M %z",
]


class ReaderConfig(BaseModel):
    """Archive reader configuration."""

    primary_encoding: str = Field(
        default="utf-8",
        description="Encoding tried first when decoding an archive",
    )
    fallback_encoding: str = Field(
        default="latin-1",
        description="Single-byte encoding tried when the primary encoding fails",
    )

    @field_validator("primary_encoding", "fallback_encoding")
    @classmethod
    def validate_encoding(cls, v: str) -> str:
        """Ensure the encoding name is a codec Python knows."""
        try:
            codecs.lookup(v)
        except LookupError as e:
            raise ValueError(f"Unknown text encoding '{v}'") from e
        return v


class ParserConfig(BaseModel):
    """Message parser configuration."""

    date_formats: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DATE_FORMATS),
        description="strptime formats tried in order against the Date: header",
    )
    base64_ratio: float = Field(
        default=0.75,
        gt=0.0,
        le=1.0,
        description="Decoded-to-encoded size ratio used for attachment size estimates",
    )
    unquote_from_lines: bool = Field(
        default=True,
        description="Remove one level of mboxrd '>From ' quoting from body lines",
    )

    @field_validator("date_formats")
    @classmethod
    def validate_date_formats(cls, v: list[str]) -> list[str]:
        """Require at least one non-empty format."""
        formats = [f for f in v if f and f.strip()]
        if not formats:
            raise ValueError("At least one date format is required")
        return formats


class PartitionConfig(BaseModel):
    """Split (partition) configuration."""

    undated_policy: Literal["drop", "bucket"] = Field(
        default="drop",
        description="Date splits: 'drop' undated messages or put them in a 'bucket'",
    )
    undated_label: str = Field(
        default="unknown",
        description="Group label for undated messages when undated_policy is 'bucket'",
    )
    other_label: str = Field(
        default="other",
        description="Group label for senders matching none of the requested domains",
    )

    @field_validator("undated_label", "other_label")
    @classmethod
    def validate_label(cls, v: str) -> str:
        """Labels become file names, so they must be non-empty and flat."""
        if not v or not v.strip():
            raise ValueError("Label cannot be empty")
        if "/" in v or "\\" in v or ".." in v:
            raise ValueError("Label cannot contain path separators or '..'")
        return v.strip()


class MergeConfig(BaseModel):
    """Merge configuration."""

    sort_order: Literal["date_asc", "date_desc", "sender", "subject", "none"] = Field(
        default="date_asc",
        description="Order of records in a mailbox merge",
    )
    remove_duplicates: bool = Field(
        default=False,
        description="Drop near-identical records in mailbox merges",
    )
    duplicate_threshold: float = Field(
        default=0.85,
        ge=0.0,
        le=1.0,
        description="Similarity (0-1) at which two records count as copies in mailbox merges",
    )
    validate_inputs: bool = Field(
        default=False,
        description="File merges: reject sources that do not start with an envelope line",
    )


class WriterConfig(BaseModel):
    """mbox serialization configuration."""

    quote_from_lines: bool = Field(
        default=True,
        description="Quote body lines matching '^>*From ' with an extra '>' (mboxrd)",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level",
    )
    json_output: bool = Field(
        default=False,
        description="Emit JSON log lines instead of the console renderer",
    )


class AppConfig(BaseModel):
    """Root configuration model."""

    schema_version: int = Field(
        default=CURRENT_SCHEMA_VERSION,
        ge=1,
        description="Config schema version",
    )
    reader: ReaderConfig = Field(default_factory=ReaderConfig)
    parser: ParserConfig = Field(default_factory=ParserConfig)
    partition: PartitionConfig = Field(default_factory=PartitionConfig)
    merge: MergeConfig = Field(default_factory=MergeConfig)
    writer: WriterConfig = Field(default_factory=WriterConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
