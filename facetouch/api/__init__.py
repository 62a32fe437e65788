# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""HTTP control surface for the face touch monitor."""

from facetouch.api.server import create_app

__all__ = ["create_app"]
