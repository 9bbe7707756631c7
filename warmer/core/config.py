"""Configuration for the Cloud Run warmer service.

Provides strongly-typed settings using Pydantic and a loader from environment
variables with defaults matching the production deployment.
"""

from __future__ import annotations

import os

from pydantic import BaseModel, Field, ValidationError

DEFAULT_METADATA_TOKEN_URL = (
    "http://metadata.google.internal/computeMetadata/v1/instance/service-accounts/default/token"
)


class Settings(BaseModel):
    """Pydantic settings for the warmer service."""

    # Discovery scope
    project_id: str = "mklv-infrastructure"
    region: str = "us-west1"

    # Services opt in with labels[label_key] == label_value
    label_key: str = "warm"
    label_value: str = "true"

    # Per-probe budget; each probe is cancelled independently
    timeout_ms: int = Field(default=5000, gt=0)
    health_path: str = "/health"

    run_api_url: str = "https://run.googleapis.com/v2"
    metadata_token_url: str = DEFAULT_METADATA_TOKEN_URL
    request_timeout_s: float = Field(default=10.0, gt=0)

    port: int = 8080

    @property
    def timeout_s(self) -> float:
        """Probe timeout in seconds."""
        return self.timeout_ms / 1000


def load_settings() -> Settings:
    """Load settings from environment variables and return a Settings object."""
    try:
        return Settings(
            project_id=os.getenv("GCP_PROJECT_ID") or "mklv-infrastructure",
            region=os.getenv("GCP_REGION") or "us-west1",
            label_key=os.getenv("WARM_LABEL_KEY", "warm"),
            label_value=os.getenv("WARM_LABEL_VALUE", "true"),
            timeout_ms=int(os.getenv("WARM_TIMEOUT_MS", "5000")),
            health_path=os.getenv("WARM_HEALTH_PATH", "/health"),
            run_api_url=os.getenv("CLOUD_RUN_API_URL", "https://run.googleapis.com/v2"),
            metadata_token_url=os.getenv("METADATA_TOKEN_URL", DEFAULT_METADATA_TOKEN_URL),
            request_timeout_s=float(os.getenv("DISCOVERY_TIMEOUT_S", "10.0")),
            port=int(os.getenv("PORT", "8080")),
        )
    except (ValidationError, ValueError) as e:
        raise RuntimeError(f"Invalid configuration: {e}") from e
