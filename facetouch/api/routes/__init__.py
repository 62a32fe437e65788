# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""API route handlers for the face touch monitor."""

from facetouch.api.routes import health, session, status

__all__ = ["health", "status", "session"]
