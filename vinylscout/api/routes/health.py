"""Liveness endpoint.

Reports whether each upstream credential is configured. No upstream is
called: a Gemini probe would spend quota on every load balancer check.
Always returns 200 so load balancers keep routing.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from vinylscout import __version__
from vinylscout.config import Settings, get_settings

router = APIRouter(tags=["health"])


def _credential_status(value: str) -> str:
    return "configured" if value else "missing"


@router.get("/health")
async def health_check(config: Settings = Depends(get_settings)) -> dict:
    return {
        "status": "ok",
        "version": __version__,
        "environment": config.environment,
        "gemini": _credential_status(config.gemini_api_key),
        "discogs": _credential_status(config.discogs_token),
    }
