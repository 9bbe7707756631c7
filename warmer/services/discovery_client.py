"""HTTP client wrapper for the Cloud Run Admin API (v2).

Lists deployed services in a project/region using the REST API, authenticated
with an access token from the GCE metadata server. Emits basic Prometheus
metrics for request counts and latency.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Protocol

import httpx
from pydantic import ValidationError

from warmer.core.config import DEFAULT_METADATA_TOKEN_URL, Settings
from warmer.metrics.prometheus import DISCOVERY_LATENCY, DISCOVERY_REQUESTS
from warmer.models.schemas import ProjectScope, ServiceDescriptor

log = logging.getLogger("discovery")


class DiscoveryError(RuntimeError):
    """The upstream service listing could not be completed."""


class ServiceLister(Protocol):
    """Anything that can enumerate the services deployed in a scope."""

    async def discover_services(self, scope: ProjectScope) -> List[ServiceDescriptor]:
        """Return every service visible in ``scope``; raise DiscoveryError on failure."""
        ...


def _parse_services(payload: dict) -> list[ServiceDescriptor]:
    """
    Convert one ``services.list`` page into descriptors.

    Accepts ``{"services": [{"name": ..., "uri": ..., "labels": {...}}, ...]}``.
    A page without ``services`` is empty (the API omits the key when there are none).
    """
    items = payload.get("services") or []
    if not isinstance(items, list):
        raise DiscoveryError("Cloud Run API returned malformed services list")

    out: list[ServiceDescriptor] = []
    for item in items:
        try:
            out.append(
                ServiceDescriptor(
                    name=item["name"],
                    address=item.get("uri") or "",
                    labels=item.get("labels") or {},
                )
            )
        except (KeyError, TypeError, AttributeError, ValidationError) as e:
            raise DiscoveryError(f"Cloud Run API returned malformed service entry: {item!r}") from e
    return out


class CloudRunDiscoveryClient:
    """
    Tiny HTTP client wrapper for the Cloud Run services listing.

    Holds an httpx.AsyncClient for connection pooling. Every discovery call
    fetches a fresh token, then follows ``nextPageToken`` until the listing is
    exhausted. There is no retry: any failure aborts the whole discovery.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        run_api_url: str,
        metadata_token_url: str = DEFAULT_METADATA_TOKEN_URL,
        timeout_s: float = 10.0,
    ):
        """Create a client with a shared HTTPX AsyncClient and API base URL."""
        self._client = client
        self._base = run_api_url.rstrip("/")
        self._token_url = metadata_token_url
        self._timeout = timeout_s

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, settings: Settings) -> "CloudRunDiscoveryClient":
        """Construct a discovery client from loaded settings."""
        return cls(client, settings.run_api_url, settings.metadata_token_url, settings.request_timeout_s)

    def _services_url(self, scope: ProjectScope) -> str:
        # {base}/projects/{project}/locations/{region}/services
        return f"{self._base}/{scope.parent}/services"

    async def _access_token(self) -> str:
        """Fetch an OAuth access token for the runtime service account."""
        try:
            resp = await self._client.get(
                self._token_url,
                headers={"Metadata-Flavor": "Google"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            raise DiscoveryError(f"Failed to get access token: {e}") from e

        if not resp.is_success:
            raise DiscoveryError(f"Failed to get access token: {resp.status_code}")
        try:
            return str(resp.json()["access_token"])
        except (ValueError, KeyError, TypeError) as e:
            raise DiscoveryError("Failed to get access token: malformed metadata response") from e

    async def _list_page(self, url: str, headers: dict[str, str], page_token: Optional[str]) -> dict[str, Any]:
        params = {"pageToken": page_token} if page_token else None
        try:
            resp = await self._client.get(url, headers=headers, params=params, timeout=self._timeout)
        except httpx.HTTPError as e:
            DISCOVERY_REQUESTS.labels(status="error").inc()
            raise DiscoveryError(f"Cloud Run API request failed: {e}") from e

        DISCOVERY_REQUESTS.labels(status=str(resp.status_code)).inc()
        if not resp.is_success:
            raise DiscoveryError(f"Cloud Run API error {resp.status_code}: {resp.text}")
        try:
            payload = resp.json()
        except ValueError as e:
            raise DiscoveryError("Cloud Run API returned invalid JSON") from e
        if not isinstance(payload, dict):
            raise DiscoveryError("Cloud Run API returned malformed payload")
        return payload

    async def discover_services(self, scope: ProjectScope) -> List[ServiceDescriptor]:
        """List all services in ``scope``, following pagination."""
        url = self._services_url(scope)
        with DISCOVERY_LATENCY.time():
            token = await self._access_token()
            headers = {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            }

            services: list[ServiceDescriptor] = []
            seen_tokens: set[str] = set()
            page_token: Optional[str] = None
            while True:
                payload = await self._list_page(url, headers, page_token)
                services.extend(_parse_services(payload))
                page_token = payload.get("nextPageToken") or None
                if page_token is None:
                    break
                if page_token in seen_tokens:
                    raise DiscoveryError(f"Cloud Run API repeated page token {page_token!r}")
                seen_tokens.add(page_token)

        log.info("Discovered %d services in %s (%d pages)", len(services), scope.parent, len(seen_tokens) + 1)
        return services
