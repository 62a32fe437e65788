# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""Health check endpoint."""

from fastapi import APIRouter

from facetouch import __version__

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint.

    Returns simple OK response for process supervisors and the UI.
    """
    return {"status": "ok", "service": "facetouch", "version": __version__}
