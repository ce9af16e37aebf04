"""
Main API router. Mounts all sub-routers.
"""

from fastapi import APIRouter

from .voice import voice_router

router = APIRouter()

VOICE_PREFIX = "/api/voice"


# ── Health (no auth) ─────────────────────────────────────────────────

@router.get("/health")
async def health():
    return {"status": "ok", "service": "flowforge-voice"}


# ── Voice (shared-secret auth inside the route) ──────────────────────

router.include_router(voice_router, prefix=VOICE_PREFIX)
