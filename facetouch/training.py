# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""Supervised training batches.

A TrainingSession collects a fixed number of labeled samples from the
camera, one per sampling interval, and submits each to the classifier as
soon as it is embedded. Training is monotonic and best-effort: a failed
or cancelled batch keeps whatever it already submitted.
"""

import asyncio
import logging
from typing import Callable, Optional

from facetouch.errors import TrainingFailed
from facetouch.models import Label, TrainingExample

logger = logging.getLogger(__name__)


def progress_percent(done: int, total: int) -> int:
    """Integer percent, rounding halves up."""
    return int(done * 100 / total + 0.5)


class TrainingSession:
    """Collects samples for one label.

    Attributes:
        label: Label being trained
        submitted: Examples handed to the classifier so far
        progress: Last reported percent (0-100)
    """

    def __init__(
        self,
        camera,
        extractor,
        classifier,
        label: Label,
        sample_count: int = 50,
        sampling_interval: float = 0.05,
        cancel_event: Optional[asyncio.Event] = None,
        on_progress: Optional[Callable[[int], None]] = None,
    ):
        """Initialize training session.

        Args:
            camera: Camera source (async frame())
            extractor: Embedding extractor (embed(frame))
            classifier: Incremental classifier (add_example(embedding, label))
            label: Label for every sample in this batch
            sample_count: Number of samples to collect
            sampling_interval: Seconds to wait between samples
            cancel_event: Set to stop at the next sample boundary
            on_progress: Called with the percent after each submission
        """
        if sample_count < 1:
            raise ValueError("sample_count must be at least 1")

        self.camera = camera
        self.extractor = extractor
        self.classifier = classifier
        self.label = label
        self.sample_count = sample_count
        self.sampling_interval = sampling_interval
        self.cancel_event = cancel_event or asyncio.Event()
        self.on_progress = on_progress

        self.submitted = 0
        self.progress = 0

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    async def run(self) -> int:
        """Collect and submit the batch.

        Returns:
            Number of examples submitted (sample_count unless cancelled)

        Raises:
            TrainingFailed: If a capture or embedding fails
        """
        logger.info(f"Training {self.label.value}: collecting {self.sample_count} samples")

        for i in range(self.sample_count):
            if self.cancelled:
                logger.info(
                    f"Training {self.label.value} cancelled after {self.submitted} samples"
                )
                break

            try:
                frame = await self.camera.frame()
                embedding = await asyncio.to_thread(self.extractor.embed, frame)
            except Exception as e:
                logger.error(f"Training sample {i + 1} failed: {e}")
                raise TrainingFailed(self.label, self.submitted, str(e)) from e

            example = TrainingExample(embedding=embedding, label=self.label)
            self.classifier.add_example(example.embedding, example.label)
            self.submitted += 1

            self.progress = progress_percent(i + 1, self.sample_count)
            logger.debug(f"Training {self.label.value}: {self.progress}%")
            if self.on_progress is not None:
                self.on_progress(self.progress)

            if i < self.sample_count - 1:
                await self._wait_interval()

        else:
            logger.info(f"Training {self.label.value} complete ({self.submitted} samples)")

        return self.submitted

    async def _wait_interval(self) -> None:
        """Yield for one sampling interval, returning early on cancel."""
        try:
            await asyncio.wait_for(self.cancel_event.wait(), timeout=self.sampling_interval)
        except asyncio.TimeoutError:
            pass
