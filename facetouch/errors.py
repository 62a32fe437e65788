# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""Exception types raised by the face touch monitor.

Acquisition errors (CameraUnavailable, ModelLoadFailed) abort
initialize() and leave the session UNINITIALIZED. SessionBusy,
SessionNotReady and SessionClosed are synchronous rejections of an
entry point call. NoFrame and EmbeddingFailed are per-frame errors that
the training and inference loops absorb or convert.
"""

from typing import Optional


class FaceTouchError(Exception):
    """Base class for all face touch monitor errors."""


class CameraUnavailable(FaceTouchError):
    """Camera could not be opened (missing device or permission denied)."""


class NoFrame(FaceTouchError):
    """Camera is open but returned no decodable frame."""


class ModelLoadFailed(FaceTouchError):
    """Embedding model could not be loaded."""


class EmbeddingFailed(FaceTouchError):
    """Embedding extraction failed for a single frame."""


class NotTrained(FaceTouchError):
    """Prediction requested before any training example was added."""


class SessionBusy(FaceTouchError):
    """Request conflicts with the active sub-mode."""


class SessionNotReady(FaceTouchError):
    """Request needs an initialized session."""


class SessionClosed(FaceTouchError):
    """Session has been shut down."""


class TrainingFailed(FaceTouchError):
    """Training batch aborted by a capture or embedding failure.

    Attributes:
        label: Label that was being trained
        submitted: Examples already submitted before the failure (kept)
    """

    def __init__(self, label, submitted: int, reason: Optional[str] = None):
        self.label = label
        self.submitted = submitted
        self.reason = reason
        message = f"Training {label.value} failed after {submitted} samples"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class InferenceDegraded(FaceTouchError):
    """Inference stopped after too many consecutive cycle failures."""

    def __init__(self, failures: int, reason: Optional[str] = None):
        self.failures = failures
        self.reason = reason
        message = f"Inference stopped after {failures} consecutive failures"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
