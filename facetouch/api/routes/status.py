# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""Status endpoints - polled by the UI."""

from fastapi import APIRouter, Depends, HTTPException, Response

from facetouch.api.dependencies import get_controller
from facetouch.capture.webcam import frame_to_jpeg
from facetouch.state_machine import SessionController

router = APIRouter()


@router.get("/status")
async def get_status(controller: SessionController = Depends(get_controller)):
    """Get the session status snapshot.

    Returns:
        SessionStatus with:
        - state: Session state
        - touched: Whether the last inference cycle saw a touch
        - training: Label, progress and per-label example counts
        - alerting: Tab activity, sound gate state and counters
        - next_step: Guidance text for the user
    """
    return controller.get_status().to_dict()


@router.get("/notifications")
async def get_notifications(controller: SessionController = Depends(get_controller)):
    """Recently delivered notifications, newest first."""
    notifier = controller.alert_gate.notifier
    recent = [n.to_dict() for n in reversed(notifier.recent)]
    return {"count": notifier.sent_count, "notifications": recent}


@router.get("/frame.jpg")
async def get_frame(controller: SessionController = Depends(get_controller)):
    """Latest camera frame as JPEG (live preview)."""
    frame = controller.latest_frame
    if frame is None:
        raise HTTPException(status_code=404, detail="No frame available")

    jpeg_bytes = frame_to_jpeg(frame)
    if jpeg_bytes is None:
        raise HTTPException(status_code=500, detail="Failed to encode frame")

    return Response(content=jpeg_bytes, media_type="image/jpeg")
