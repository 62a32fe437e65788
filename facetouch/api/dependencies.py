# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""Request dependencies shared by the route modules."""

from fastapi import Request

from facetouch.state_machine import SessionController


def get_controller(request: Request) -> SessionController:
    """Session controller owned by the running app."""
    return request.app.state.controller
