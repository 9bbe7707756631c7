import importlib

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

import warmer.main
from warmer.main import create_app
from warmer.services.discovery_client import DiscoveryError
from warmer.services.warm import Warmer


def _asgi_client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://warmer.local")


@pytest.mark.anyio
async def test_health_endpoint_returns_ok(settings):
    async with _asgi_client(create_app(settings)) as client:
        resp = await client.get("/health")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert resp.text == "OK"


@pytest.mark.anyio
async def test_root_serves_landing_page(settings):
    async with _asgi_client(create_app(settings)) as client:
        resp = await client.get("/")

    assert resp.status_code == 200
    assert "mklv.tech" in resp.text


@pytest.mark.anyio
async def test_warm_endpoint_returns_summary(settings, service, lister, probe_client):
    app = create_app(settings)
    services = [service("a"), service("b", warm="false"), service("c")]
    behaviour = {"a.a.run.app": (200, 0), "c.a.run.app": (503, 0)}

    async with probe_client(behaviour) as probes, _asgi_client(app) as client:
        # ASGITransport skips lifespan, so wire the warmer by hand
        app.state.warmer = Warmer(lister(services), probes, settings)
        resp = await client.post("/api/warm")

    assert resp.status_code == 200
    body = resp.json()
    assert set(body) == {"timestamp", "total", "success", "failed", "services"}
    assert (body["total"], body["success"], body["failed"]) == (2, 1, 1)

    a, c = body["services"]
    assert set(a) == {"service", "url", "status", "latencyMs"}
    assert a["service"] == "a" and a["status"] == "ok"
    assert a["url"] == "https://a.a.run.app/health"
    assert c["status"] == "error" and c["error"] == "HTTP 503"


@pytest.mark.anyio
async def test_warm_endpoint_reports_discovery_failure(settings, lister, probe_client):
    app = create_app(settings)
    async with probe_client({}) as probes, _asgi_client(app) as client:
        app.state.warmer = Warmer(lister(error=DiscoveryError("Failed to get access token: 500")), probes, settings)
        resp = await client.post("/api/warm")

    assert resp.status_code == 502
    assert "access token" in resp.json()["detail"]


@pytest.mark.anyio
async def test_warm_endpoint_without_warmer_is_unavailable(settings):
    async with _asgi_client(create_app(settings)) as client:
        resp = await client.post("/api/warm")

    assert resp.status_code == 503


def test_lifespan_wires_warmer_and_metrics(settings, service, lister):
    app = create_app(settings, lister=lister([service("b", warm="false")]))
    with TestClient(app) as client:
        assert isinstance(app.state.warmer, Warmer)

        resp = client.post("/api/warm")
        assert resp.status_code == 200
        assert resp.json()["total"] == 0

        metrics = client.get("/metrics")
        assert metrics.status_code == 200
        assert "warmer_runs_total" in metrics.text
        assert "warmer_probes_total" in metrics.text


def test_importing_app_module_does_not_read_environment(monkeypatch):
    monkeypatch.setenv("WARM_TIMEOUT_MS", "not-a-number")
    importlib.reload(warmer.main)

    assert not hasattr(warmer.main, "app")


def test_run_builds_app_from_loaded_settings(monkeypatch):
    served = {}

    def fake_uvicorn_run(app, host, port, **kwargs):
        served.update(app=app, host=host, port=port)

    monkeypatch.setenv("PORT", "9123")
    monkeypatch.setenv("GCP_PROJECT_ID", "acme")
    monkeypatch.setattr(warmer.main.uvicorn, "run", fake_uvicorn_run)
    warmer.main.run()

    assert isinstance(served["app"], FastAPI)
    assert served["port"] == 9123
    assert served["app"].state.settings.project_id == "acme"
