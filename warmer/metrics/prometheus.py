from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

metrics_router = APIRouter()

DISCOVERY_REQUESTS = Counter("warmer_discovery_requests_total", "Cloud Run list calls", ["status"])
DISCOVERY_LATENCY = Histogram("warmer_discovery_latency_seconds", "Full discovery latency seconds")
WARM_RUNS = Counter("warmer_runs_total", "Warm cycles by outcome", ["outcome"])
WARM_PROBES = Counter("warmer_probes_total", "Health probes by status", ["status"])
PROBE_LATENCY = Histogram("warmer_probe_latency_seconds", "Health probe latency seconds")


@metrics_router.get("/metrics")
async def metrics():
    """Prometheus exposition endpoint for warmer process metrics."""
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
