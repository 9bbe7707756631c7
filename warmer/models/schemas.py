"""Pydantic models used by the warmer service."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WarmStatus(str, Enum):
    """Outcome of a single health probe."""
    OK = "ok"
    ERROR = "error"


class ProjectScope(BaseModel):
    """Project/region boundary that discovery enumerates services in."""

    model_config = ConfigDict(frozen=True)

    project_id: str
    region: str

    @property
    def parent(self) -> str:
        """Cloud Run parent resource path for this scope."""
        return f"projects/{self.project_id}/locations/{self.region}"


class ServiceDescriptor(BaseModel):
    """One deployed service as reported by discovery."""

    model_config = ConfigDict(frozen=True)

    name: str  # e.g. projects/p/locations/r/services/api
    address: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)

    @property
    def short_name(self) -> str:
        """Final path segment of the resource name."""
        return self.name.rsplit("/", 1)[-1]

    def has_label(self, key: str, value: str) -> bool:
        return self.labels.get(key) == value


class WarmResult(BaseModel):
    """Outcome of probing one service's health endpoint."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    service: str
    url: str
    status: WarmStatus
    latency_ms: Optional[int] = Field(default=None, alias="latencyMs")
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == WarmStatus.OK


class WarmSummary(BaseModel):
    """Aggregate of one warming run, in filtered discovery order."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    total: int
    success: int
    failed: int
    services: List[WarmResult]

    @classmethod
    def from_results(cls, results: List[WarmResult], timestamp: Optional[datetime] = None) -> "WarmSummary":
        """Build a summary whose counts are derived from ``results``."""
        success = sum(1 for r in results if r.ok)
        return cls(
            timestamp=timestamp or datetime.now(timezone.utc),
            total=len(results),
            success=success,
            failed=len(results) - success,
            services=list(results),
        )
