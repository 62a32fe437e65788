# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""Camera capture modules."""

from facetouch.capture.webcam import WebcamSource, frame_to_jpeg

__all__ = ["WebcamSource", "frame_to_jpeg"]
