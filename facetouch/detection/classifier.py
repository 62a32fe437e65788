# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""Incremental k-nearest-neighbour classifier over embeddings.

Examples are added one at a time and never removed during a session.
Prediction ranks stored examples by cosine similarity and votes among the
k closest; each label's confidence is its share of the k votes.
"""

import logging
from typing import Dict, List, Optional

import numpy as np

from facetouch.errors import NotTrained
from facetouch.models import Label, PredictionResult

logger = logging.getLogger(__name__)


class KNNClassifier:
    """Cosine-similarity kNN classifier.

    Usage:
        classifier = KNNClassifier(k=3)
        classifier.add_example(embedding, Label.TOUCHING)
        result = classifier.predict(embedding)
    """

    def __init__(self, k: int = 3):
        """Initialize classifier.

        Args:
            k: Number of neighbours that vote on a prediction
        """
        if k < 1:
            raise ValueError("k must be at least 1")
        self.k = k

        self._vectors: List[np.ndarray] = []
        self._labels: List[Label] = []
        self._matrix: Optional[np.ndarray] = None  # Stacked vectors, rebuilt lazily

    @staticmethod
    def _normalize(embedding: np.ndarray) -> np.ndarray:
        vector = np.asarray(embedding, dtype=np.float32).reshape(-1)
        norm = float(np.linalg.norm(vector))
        if norm == 0:
            return vector.copy()
        return vector / norm

    @property
    def dimension(self) -> Optional[int]:
        """Embedding length, fixed by the first example."""
        if not self._vectors:
            return None
        return int(self._vectors[0].shape[0])

    def add_example(self, embedding: np.ndarray, label: Label) -> None:
        """Store one labeled embedding.

        Raises:
            ValueError: If the embedding length differs from earlier examples
        """
        vector = self._normalize(embedding)
        if self._vectors and vector.shape[0] != self.dimension:
            raise ValueError(
                f"Embedding length {vector.shape[0]} does not match {self.dimension}"
            )

        self._vectors.append(vector)
        self._labels.append(label)
        self._matrix = None

    def example_count(self, label: Optional[Label] = None) -> int:
        """Number of stored examples, optionally for one label."""
        if label is None:
            return len(self._labels)
        return sum(1 for stored in self._labels if stored == label)

    def example_counts(self) -> Dict[Label, int]:
        """Number of stored examples per label."""
        return {label: self.example_count(label) for label in Label}

    def predict(self, embedding: np.ndarray) -> PredictionResult:
        """Classify an embedding.

        Returns:
            PredictionResult with the winning label and per-label vote shares

        Raises:
            NotTrained: If no examples have been added
            ValueError: If the embedding length differs from the stored examples
        """
        if not self._vectors:
            raise NotTrained("Classifier has no training examples")

        query = self._normalize(embedding)
        if query.shape[0] != self.dimension:
            raise ValueError(
                f"Embedding length {query.shape[0]} does not match {self.dimension}"
            )

        if self._matrix is None:
            self._matrix = np.stack(self._vectors)

        similarities = self._matrix @ query
        k = min(self.k, len(self._labels))
        nearest = np.argsort(-similarities, kind="stable")[:k]

        votes = {label: 0 for label in Label}
        for idx in nearest:
            votes[self._labels[idx]] += 1

        # Ties go to the label of the closest neighbour among the tied labels
        top_votes = max(votes.values())
        winner = next(
            self._labels[idx] for idx in nearest if votes[self._labels[idx]] == top_votes
        )

        confidences = {label: count / k for label, count in votes.items()}
        return PredictionResult(label=winner, confidences=confidences)
