# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""Image embeddings from a pretrained MobileNet exported to ONNX.

The model is treated as an opaque feature extractor: one frame in, one
fixed-length vector out. Any ONNX image model with a single image input
works; the penultimate-layer export of MobileNetV2 (1280 floats) is the
intended one.
"""

import logging
import time
from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np

from facetouch.errors import EmbeddingFailed, ModelLoadFailed
from facetouch.models import make_embedding

logger = logging.getLogger(__name__)

# ImageNet normalization used by the pretrained MobileNet weights
_MEAN = np.array([0.485, 0.456, 0.406], dtype=np.float32)
_STD = np.array([0.229, 0.224, 0.225], dtype=np.float32)


class MobileNetEmbedder:
    """Frame -> embedding using onnxruntime.

    Usage:
        embedder = MobileNetEmbedder("models/mobilenet_v2.onnx")
        embedder.load()
        embedding = embedder.embed(frame)
    """

    def __init__(
        self,
        model_path: Path,
        input_size: int = 224,
        providers: Optional[List[str]] = None,
    ):
        """Initialize embedder.

        Args:
            model_path: Path to the ONNX model file
            input_size: Square input resolution expected by the model
            providers: onnxruntime execution providers, in preference order
        """
        self.model_path = Path(model_path)
        self.input_size = input_size
        self.providers = providers or ["CPUExecutionProvider"]

        self._session = None
        self._input_name: Optional[str] = None
        self._channels_first = True

    def load(self) -> None:
        """Load the ONNX model.

        Raises:
            ModelLoadFailed: If the file is missing or onnxruntime rejects it
        """
        if self._session is not None:
            return

        if not self.model_path.exists():
            raise ModelLoadFailed(f"Model file not found: {self.model_path}")

        start_time = time.time()
        try:
            # Lazy import so mock mode runs without the runtime loaded
            import onnxruntime as ort

            session = ort.InferenceSession(str(self.model_path), providers=self.providers)
        except Exception as e:
            raise ModelLoadFailed(f"Failed to load embedding model: {e}") from e

        model_input = session.get_inputs()[0]
        shape = model_input.shape
        # NCHW exports put the 3 channels at axis 1, NHWC exports at axis 3
        self._channels_first = len(shape) == 4 and shape[1] == 3
        self._input_name = model_input.name
        self._session = session

        elapsed = time.time() - start_time
        logger.info(
            f"Embedding model loaded in {elapsed:.2f}s "
            f"(provider: {session.get_providers()[0]}, input: {shape})"
        )

    @property
    def is_loaded(self) -> bool:
        """Check if model is loaded."""
        return self._session is not None

    def _preprocess(self, frame: np.ndarray) -> np.ndarray:
        resized = cv2.resize(frame, (self.input_size, self.input_size), interpolation=cv2.INTER_AREA)
        rgb = cv2.cvtColor(resized, cv2.COLOR_BGR2RGB)
        blob = (rgb.astype(np.float32) / 255.0 - _MEAN) / _STD
        if self._channels_first:
            blob = blob.transpose(2, 0, 1)
        return blob[np.newaxis, ...].astype(np.float32)

    def embed(self, frame: np.ndarray) -> np.ndarray:
        """Compute the embedding of one frame.

        Args:
            frame: BGR image (OpenCV format)

        Returns:
            Read-only 1-D float32 embedding

        Raises:
            EmbeddingFailed: If the model is not loaded or inference fails
        """
        if self._session is None:
            raise EmbeddingFailed("Embedding model not loaded")

        if frame is None or frame.ndim != 3:
            raise EmbeddingFailed("Expected a BGR image")

        try:
            blob = self._preprocess(frame)
            outputs = self._session.run(None, {self._input_name: blob})
        except Exception as e:
            raise EmbeddingFailed(f"Embedding inference failed: {e}") from e

        return make_embedding(outputs[0])
