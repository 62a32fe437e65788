# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""Data models for the face touch monitor."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np


class Label(Enum):
    """Training/prediction label. Closed set."""

    NOT_TOUCHING = "not_touching"
    TOUCHING = "touching"


class SessionState(Enum):
    """Overall session readiness.

    UNINITIALIZED -> INITIALIZING -> READY -> {TRAINING | INFERRING}
    -> SHUTTING_DOWN -> TERMINATED
    """

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    TRAINING = "training"
    INFERRING = "inferring"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"

    @property
    def is_active_mode(self) -> bool:
        """True for the two mutually exclusive sub-modes."""
        return self in (SessionState.TRAINING, SessionState.INFERRING)


class AlertState(Enum):
    """Sound gate state."""

    IDLE = "idle"  # A new touch may start the alert sound
    COOLING = "cooling"  # Sound playing or inside the post-sound cooldown


def make_embedding(values) -> np.ndarray:
    """Build an immutable 1-D float32 embedding from array-like values."""
    embedding = np.array(values, dtype=np.float32).reshape(-1)
    embedding.setflags(write=False)
    return embedding


@dataclass(frozen=True)
class TrainingExample:
    """One labeled embedding, handed over to the classifier."""

    embedding: np.ndarray
    label: Label


@dataclass(frozen=True)
class PredictionResult:
    """Classifier output for one embedding."""

    label: Label
    confidences: Dict[Label, float]

    def confidence(self, label: Label) -> float:
        """Confidence for a label (0.0 if the label is unknown to the classifier)."""
        return self.confidences.get(label, 0.0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "label": self.label.value,
            "confidences": {lbl.value: conf for lbl, conf in self.confidences.items()},
        }


@dataclass
class Notification:
    """A notification that was delivered (not dropped by the cooldown)."""

    title: str
    body: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "title": self.title,
            "body": self.body,
        }


@dataclass
class SessionStatus:
    """Snapshot of everything the UI observes (GET /status)."""

    timestamp: datetime = field(default_factory=datetime.now)
    state: SessionState = SessionState.UNINITIALIZED
    state_since: Optional[datetime] = None

    # Training
    training_label: Optional[Label] = None
    train_progress: int = 0
    example_counts: Dict[str, int] = field(default_factory=dict)

    # Inference / alerting
    touched: bool = False
    last_prediction: Optional[PredictionResult] = None
    tab_active: bool = True
    alert_state: AlertState = AlertState.IDLE
    touches_detected: int = 0
    sounds_played: int = 0
    notifications_sent: int = 0

    # Housekeeping
    last_error: Optional[str] = None
    next_step: str = ""
    uptime_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "state": self.state.value,
            "state_since": self.state_since.isoformat() if self.state_since else None,
            "training": {
                "label": self.training_label.value if self.training_label else None,
                "progress": self.train_progress,
                "example_counts": self.example_counts,
            },
            "touched": self.touched,
            "last_prediction": self.last_prediction.to_dict() if self.last_prediction else None,
            "alerting": {
                "tab_active": self.tab_active,
                "alert_state": self.alert_state.value,
                "touches_detected": self.touches_detected,
                "sounds_played": self.sounds_played,
                "notifications_sent": self.notifications_sent,
            },
            "last_error": self.last_error,
            "next_step": self.next_step,
            "uptime_seconds": self.uptime_seconds,
        }
