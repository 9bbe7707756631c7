"""Warm fan-out: discover labelled services and hit their health endpoints.

Every service that opts in via its labels is probed concurrently, each probe
under its own timeout. Probe failures become ``WarmResult`` values; only a
discovery failure aborts a run.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional

import httpx

from warmer.core.config import Settings
from warmer.metrics.prometheus import PROBE_LATENCY, WARM_PROBES, WARM_RUNS
from warmer.models.schemas import ProjectScope, ServiceDescriptor, WarmResult, WarmStatus, WarmSummary
from warmer.services.discovery_client import DiscoveryError, ServiceLister

log = logging.getLogger("warm")


class ProbeTimeout(Exception):
    """A health probe did not complete within its time budget."""


class ProbeFailure(Exception):
    """A health probe failed in transport or answered with a non-2xx status."""


def health_url(address: str, path: str = "/health") -> str:
    base = address[:-1] if address.endswith("/") else address
    path = path if path.startswith("/") else f"/{path}"
    return f"{base}{path}"


def build_probe_client(settings: Settings, keepalive: int = 20) -> httpx.AsyncClient:
    """AsyncClient for health probes.

    The connection cap is lifted: a pooled client would queue probes past
    its limit, and the wait would eat into each probe's own timeout.
    """
    return httpx.AsyncClient(
        timeout=settings.timeout_s,
        limits=httpx.Limits(max_connections=None, max_keepalive_connections=keepalive),
    )


def _elapsed_ms(start: float) -> int:
    return round((time.perf_counter() - start) * 1000)


class Warmer:
    """
    Runs warm cycles against the services a ``ServiceLister`` reports.

    The lister and the probe client are injected and owned by the caller
    (the application lifespan), so one connection pool serves every run.
    """

    def __init__(self, lister: ServiceLister, client: httpx.AsyncClient, settings: Settings):
        self._lister = lister
        self._client = client
        self._settings = settings
        self.scope = ProjectScope(project_id=settings.project_id, region=settings.region)

    def is_warmable(self, svc: ServiceDescriptor) -> bool:
        return svc.has_label(self._settings.label_key, self._settings.label_value)

    async def _probe(self, url: str) -> None:
        """GET ``url``; raise ProbeTimeout or ProbeFailure unless it answers 2xx."""
        timeout_s = self._settings.timeout_s
        try:
            resp = await asyncio.wait_for(self._client.get(url, timeout=timeout_s), timeout=timeout_s)
        except asyncio.TimeoutError as e:
            raise ProbeTimeout(f"timed out after {self._settings.timeout_ms}ms") from e
        except httpx.TimeoutException as e:
            raise ProbeTimeout(f"timed out: {e or type(e).__name__}") from e
        except httpx.HTTPError as e:
            raise ProbeFailure(str(e) or type(e).__name__) from e

        if not resp.is_success:
            raise ProbeFailure(f"HTTP {resp.status_code}")

    async def warm_service(self, svc: ServiceDescriptor) -> WarmResult:
        """Probe one service. Never raises; failures are returned as error results."""
        name = svc.short_name
        url = health_url(svc.address, self._settings.health_path)
        start = time.perf_counter()

        try:
            await self._probe(url)
        except (ProbeTimeout, ProbeFailure) as e:
            error = str(e)
        except Exception as e:
            # an unexpected client bug must not take the rest of the batch down
            log.exception("Unexpected error warming %s", name)
            error = str(e) or type(e).__name__
        else:
            latency_ms = _elapsed_ms(start)
            WARM_PROBES.labels(status=WarmStatus.OK.value).inc()
            PROBE_LATENCY.observe(latency_ms / 1000)
            log.info("Warmed %s in %dms", name, latency_ms)
            return WarmResult(service=name, url=url, status=WarmStatus.OK, latency_ms=latency_ms)

        latency_ms = _elapsed_ms(start)
        WARM_PROBES.labels(status=WarmStatus.ERROR.value).inc()
        PROBE_LATENCY.observe(latency_ms / 1000)
        log.warning("Failed to warm %s: %s", name, error)
        return WarmResult(service=name, url=url, status=WarmStatus.ERROR, latency_ms=latency_ms, error=error)

    async def warm_services(self, scope: Optional[ProjectScope] = None) -> List[WarmResult]:
        """
        Discover services in ``scope`` and warm the labelled ones in parallel.

        Results are in discovery order, one per warmable service. Raises
        DiscoveryError if the listing fails; nothing is probed in that case.
        """
        services = await self._lister.discover_services(scope or self.scope)
        warmable = [svc for svc in services if self.is_warmable(svc)]
        log.info(
            "Found %d services with %s=%s label",
            len(warmable), self._settings.label_key, self._settings.label_value,
        )

        # gather keeps argument order, so result[i] belongs to warmable[i]
        return list(await asyncio.gather(*(self.warm_service(svc) for svc in warmable)))

    async def run_cycle(self, scope: Optional[ProjectScope] = None) -> WarmSummary:
        """Run one full warm cycle and aggregate it into a summary."""
        try:
            results = await self.warm_services(scope)
        except DiscoveryError as e:
            WARM_RUNS.labels(outcome="discovery_error").inc()
            log.error("Warming aborted, discovery failed: %s", e)
            raise

        summary = WarmSummary.from_results(results)
        WARM_RUNS.labels(outcome="completed").inc()
        log.info("Warming complete: %s", summary.model_dump_json(by_alias=True, exclude_none=True))
        return summary
