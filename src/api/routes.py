"""Top-level API router."""

from __future__ import annotations

from fastapi import APIRouter

from api.twilio_routes import router as twilio_router
from relay.session import ACTIVE_SESSIONS

router = APIRouter()
router.include_router(twilio_router)


@router.get("/health")
async def health() -> dict[str, object]:
    return {"status": "healthy", "active_sessions": len(ACTIVE_SESSIONS)}
