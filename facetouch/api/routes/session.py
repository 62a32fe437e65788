# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""Session control endpoints.

Each endpoint maps to one SessionController entry point. Errors raised by
the controller are translated to HTTP status codes by the app's
exception handler.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from facetouch.api.dependencies import get_controller
from facetouch.models import Label
from facetouch.state_machine import SessionController

logger = logging.getLogger(__name__)

router = APIRouter()


class InitializeRequest(BaseModel):
    """Optional tunable overrides for initialize."""

    training_sample_count: Optional[int] = Field(
        None,
        ge=1,
        le=1000,
        description="Samples per training batch",
    )
    sampling_interval_ms: Optional[int] = Field(
        None,
        ge=0,
        le=5000,
        description="Milliseconds between training samples",
    )
    touch_confidence_threshold: Optional[float] = Field(
        None,
        ge=0.0,
        le=1.0,
        description="TOUCHING confidence above which a frame counts as a touch",
    )
    notification_cooldown_ms: Optional[int] = Field(
        None,
        ge=0,
        le=3600000,
        description="Minimum milliseconds between notifications",
    )


class VisibilityRequest(BaseModel):
    """UI visibility signal."""

    active: bool


def _state(controller: SessionController) -> dict:
    return {"state": controller.state.value, "next_step": controller.next_step}


@router.post("/initialize")
async def initialize(
    request: Optional[InitializeRequest] = None,
    controller: SessionController = Depends(get_controller),
):
    """Open the camera, load the model and become ready.

    Returns 503 if the camera or model cannot be loaded.
    """
    overrides = request.model_dump(exclude_none=True) if request else {}
    await controller.initialize(**overrides)
    return _state(controller)


@router.post("/train/{label}")
async def train(label: Label, controller: SessionController = Depends(get_controller)):
    """Start a training batch for a label.

    Progress is reported through GET /status.
    """
    await controller.start_training(label)
    return {**_state(controller), "training_label": label.value}


@router.post("/inference")
async def start_inference(controller: SessionController = Depends(get_controller)):
    """Start monitoring."""
    await controller.start_inference()
    return _state(controller)


@router.post("/stop")
async def stop(controller: SessionController = Depends(get_controller)):
    """Stop training or monitoring."""
    await controller.stop()
    return _state(controller)


@router.post("/shutdown")
async def shutdown(controller: SessionController = Depends(get_controller)):
    """Release the camera and close the session for good."""
    await controller.shutdown()
    return _state(controller)


@router.post("/visibility")
async def set_visibility(
    request: VisibilityRequest,
    controller: SessionController = Depends(get_controller),
):
    """Report whether the UI is in the foreground."""
    controller.set_tab_active(request.active)
    return {"tab_active": request.active}
