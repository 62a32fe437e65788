# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""Embedding extraction and classification."""

from facetouch.detection.classifier import KNNClassifier
from facetouch.detection.embedding import MobileNetEmbedder

__all__ = ["KNNClassifier", "MobileNetEmbedder"]
