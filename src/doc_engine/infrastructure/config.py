"""Configuration management for the document engine."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class IndexFieldConfig(BaseModel):
    """One field of a configured index."""

    name: str = Field(min_length=1, description="Indexed document field")
    direction: Literal[1, -1] = Field(default=1, description="1 ascending, -1 descending")


class IndexDefinition(BaseModel):
    """An index created when the collection starts."""

    fields: list[IndexFieldConfig] = Field(min_length=1, description="Index key fields")
    unique: bool = Field(default=False, description="Reject duplicate keys")

    @field_validator("fields")
    @classmethod
    def validate_distinct_fields(cls, v: list[IndexFieldConfig]) -> list[IndexFieldConfig]:
        """Reject repeated field names within one index."""
        names = [f.name for f in v]
        if len(set(names)) != len(names):
            raise ValueError(f"Index fields must be distinct, got {names}")
        return v

    def as_pairs(self) -> list[tuple[str, int]]:
        return [(f.name, f.direction) for f in self.fields]


class CollectionConfig(BaseModel):
    """Collection configuration."""

    name: str = Field(default="books", min_length=1, description="Collection name")
    indexes: list[IndexDefinition] = Field(
        default_factory=list, description="Indexes to create at startup"
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(default="doc_engine", description="Service name for tracing")
    metrics_enabled: bool = Field(default=False, description="Serve Prometheus metrics")
    metrics_port: int = Field(default=8001, ge=1, le=65535, description="Prometheus metrics port")


class Config(BaseSettings):
    """Main configuration for the document engine."""

    model_config = SettingsConfigDict(
        env_prefix="DOC_ENGINE_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    collection: CollectionConfig = Field(default_factory=CollectionConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
