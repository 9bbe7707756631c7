import asyncio
from typing import Callable, Dict, List, Optional, Union

import httpx
import pytest

from warmer.core.config import Settings
from warmer.models.schemas import ProjectScope, ServiceDescriptor

SERVICE_PREFIX = "projects/mklv-infrastructure/locations/us-west1/services/"

# host -> (status code, delay in seconds) or an exception to raise
Behaviour = Dict[str, Union[tuple, Exception]]


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeLister:
    """In-memory discovery that records the scopes it was asked for."""

    def __init__(self, services: Optional[List[ServiceDescriptor]] = None, error: Optional[Exception] = None):
        self.services = services or []
        self.error = error
        self.scopes: List[ProjectScope] = []

    async def discover_services(self, scope: ProjectScope) -> List[ServiceDescriptor]:
        self.scopes.append(scope)
        if self.error is not None:
            raise self.error
        return list(self.services)


def make_service(short_name: str, warm: Optional[str] = "true", **labels: str) -> ServiceDescriptor:
    if warm is not None:
        labels["warm"] = warm
    return ServiceDescriptor(
        name=SERVICE_PREFIX + short_name,
        address=f"https://{short_name}.a.run.app",
        labels=labels,
    )


def make_probe_client(behaviour: Behaviour, calls: Optional[list] = None) -> httpx.AsyncClient:
    """AsyncClient whose responses are scripted per host."""

    async def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(str(request.url))
        b = behaviour[request.url.host]
        if isinstance(b, Exception):
            raise b
        status, delay = b
        if delay:
            await asyncio.sleep(delay)
        return httpx.Response(status, text="OK" if status < 400 else "unhealthy")

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def settings() -> Settings:
    return Settings(timeout_ms=1000)


@pytest.fixture
def service() -> Callable[..., ServiceDescriptor]:
    return make_service


@pytest.fixture
def probe_client() -> Callable[..., httpx.AsyncClient]:
    return make_probe_client


@pytest.fixture
def lister() -> Callable[..., FakeLister]:
    return FakeLister
