"""Centralized configuration for fc-search using Pydantic Settings."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CollectorConfig(BaseModel):
    """OTLP export target shared by traces and metrics."""

    model_config = {"extra": "forbid"}

    enabled: bool = False
    otlp_protocol: Literal["http", "grpc"] = "grpc"
    collector_endpoint: str = Field(
        default="http://localhost:4317",
        description="OTLP collector endpoint (HTTP uses /v1/traces)",
    )
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: int = Field(default=10, ge=1, le=60)
    grpc_insecure: bool = True


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    Every value has a production default so the service boots without a
    ``.env`` file; tests override individual fields through the environment.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Storage
    state_dir: Path = Field(default=Path("./fc-search-state"), description="Root directory for channel caches")

    # Refresh cadence
    refresh_schedule: str = Field(default="0 */5 * * *", description="Cron expression for channel refresh ticks")
    channel_stagger_seconds: float = Field(
        default=30.0,
        ge=0.0,
        description="Delay between the first ticks of consecutive channels to spread upstream load",
    )
    build_timeout_seconds: float = Field(
        default=3600.0,
        gt=0.0,
        description="Upper bound for a single record build (nix-instantiate + nix-build)",
    )
    refresh_on_start: bool = Field(default=True, description="Run one tick per channel right after startup")
    discovery_schedule: str = Field(
        default="30 3 * * *",
        description="Cron expression for re-reading the branch list; empty disables rediscovery",
    )

    # Search defaults
    default_n_items: int = Field(default=15, ge=1, le=500, description="Page size when the caller passes none")
    reserved_namespace: str = Field(
        default="flyingcircus",
        min_length=1,
        description="Option prefix that receives a ranking bonus",
    )

    # Upstream
    http_timeout: float = Field(default=30.0, gt=0.0, description="HTTP request timeout in seconds")
    github_api_url: str = Field(default="https://api.github.com", description="GitHub REST API base URL")
    hydra_base_url: str = Field(default="https://hydra.flyingcircus.io", description="Hydra instance to query")
    hydra_project: str = Field(default="flyingcircus", description="Hydra project listing the channel jobsets")
    max_branches: int = Field(default=9, ge=1, description="Newest branches kept after Hydra discovery")
    nixpkgs_blob_url: str = Field(
        default="https://github.com/nixos/nixpkgs/blob/master",
        description="Browsable base URL substituted for nixpkgs store paths in declarations",
    )

    default_owner: str = Field(default="flyingcircusio", description="Repository owner of the fallback channel")
    default_repository: str = Field(default="fc-nixos", description="Repository name of the fallback channel")
    default_branch: str = Field(default="fc-23.11-dev", description="Branch used when discovery yields nothing")
    static_branches: str = Field(
        default="",
        description="Comma-separated branch names; when set, Hydra discovery is skipped",
    )

    # Retention
    prune_missing_channels: bool = Field(
        default=False,
        description="Drop channels whose branch disappeared upstream instead of serving them stale",
    )

    # Logging
    log_level: Literal["debug", "info", "warning", "error", "critical"] = Field(
        default="info", description="Logging level"
    )
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    # Observability
    otlp_enabled: bool = Field(default=False, description="Export traces and metrics to an OTLP collector")
    otlp_protocol: Literal["http", "grpc"] = Field(default="grpc", description="OTLP transport protocol")
    otlp_endpoint: str = Field(
        default="http://localhost:4317",
        description="OTLP collector endpoint; HTTP endpoints name the traces path (/v1/traces)",
    )
    otlp_headers: str = Field(default="", description="Comma-separated key=value headers sent with OTLP requests")
    otlp_timeout_seconds: int = Field(default=10, ge=1, le=60, description="OTLP exporter timeout in seconds")
    otlp_insecure: bool = Field(default=True, description="Use a plaintext gRPC channel")
    metrics_port: int | None = Field(
        default=None,
        ge=1,
        le=65535,
        description="Serve Prometheus metrics on this port while running `serve`; unset disables it",
    )
    metrics_address: str = Field(default="0.0.0.0", description="Bind address of the Prometheus metrics endpoint")

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @model_validator(mode="after")
    def _check_urls(self) -> "Settings":
        for name in ("github_api_url", "hydra_base_url", "nixpkgs_blob_url", "otlp_endpoint"):
            value = getattr(self, name)
            if not value.startswith(("http://", "https://")):
                raise ValueError(f"{name.upper()} must be an http(s) URL, got {value!r}")
        return self

    def get_static_branches(self) -> list[str]:
        """Return the configured branch list (comma-separated), empty when discovery is used."""
        if not self.static_branches:
            return []
        return [branch.strip() for branch in self.static_branches.split(",") if branch.strip()]

    def channel_dir(self, branch: str) -> Path:
        """Return the cache directory of a channel."""
        return self.state_dir / branch

    def collector_config(self) -> CollectorConfig:
        """Return the OTLP export settings as one config object."""
        headers = {}
        for pair in self.otlp_headers.split(","):
            key, sep, value = pair.partition("=")
            if sep and key.strip():
                headers[key.strip()] = value.strip()
        return CollectorConfig(
            enabled=self.otlp_enabled,
            otlp_protocol=self.otlp_protocol,
            collector_endpoint=self.otlp_endpoint,
            headers=headers,
            timeout_seconds=self.otlp_timeout_seconds,
            grpc_insecure=self.otlp_insecure,
        )
