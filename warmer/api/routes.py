"""API routes for the warmer.

Exposes the warm endpoint that Cloud Scheduler triggers periodically.
"""
from __future__ import annotations

from logging import getLogger

from fastapi import APIRouter, Depends, HTTPException, Request

from warmer.models.schemas import WarmSummary
from warmer.services.discovery_client import DiscoveryError
from warmer.services.warm import Warmer

log = getLogger("Warmer.API")
router = APIRouter()


def get_warmer(request: Request) -> Warmer:
    """Return the app-scoped Warmer placed on ``app.state`` during lifespan."""
    warmer = getattr(request.app.state, "warmer", None)
    if warmer is None:
        raise HTTPException(status_code=503, detail="Warmer not initialized")
    return warmer


@router.post("/warm", response_model=WarmSummary, response_model_exclude_none=True)
async def warm(warmer: Warmer = Depends(get_warmer)):
    """
    Run one warm cycle:
      - list Cloud Run services in the configured project/region
      - keep the ones labelled warm=true
      - GET each one's /health in parallel and report per-service outcomes
    """
    try:
        return await warmer.run_cycle()
    except DiscoveryError as e:
        raise HTTPException(status_code=502, detail=f"Service discovery failed: {e}") from e
