"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="KUBETRBL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"

    # Cluster connection
    kubeconfig: str | None = None  # None = in-cluster config, then ~/.kube/config

    # Resolution
    identity_label: str = "app"  # Label shared by a service selector, its deployment and pods
    controller_policy: Literal["fail", "first-by-name"] = "fail"

    # Diagnostic flow
    max_state_retries: int = 3  # Consecutive non-input failures per step, 0 = unbounded

    # Tunnel validation
    tunnel_local_port: int = 0  # 0 = ephemeral port picked by the OS
    tunnel_ready_timeout_seconds: float = 30.0
    probe_path: str = "/internal/metrics"
    probe_timeout_seconds: float = 10.0

    # OpenTelemetry
    otel_enabled: bool = False
    otel_service_name: str = "kubetrbl"
    otel_exporter_endpoint: str = "http://localhost:4317"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
