# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""Continuous predict-and-react loop.

Each cycle captures a frame, embeds it, classifies it and hands the touch
decision to the AlertGate. Cycles are strictly sequential: the next one is
scheduled only after the gate call has returned, so a slow cycle delays
the loop rather than queueing frames or classifier calls.
"""

import asyncio
import logging
from typing import Callable, Optional, Tuple

from facetouch.errors import InferenceDegraded
from facetouch.models import Label, PredictionResult

logger = logging.getLogger(__name__)


def is_touch(result: PredictionResult, threshold: float) -> bool:
    """Touch decision rule. The threshold is strict."""
    return result.label == Label.TOUCHING and result.confidence(Label.TOUCHING) > threshold


class InferenceLoop:
    """Runs inference cycles until cancelled or degraded.

    Attributes:
        cycles: Completed cycles (including failed ones)
        consecutive_failures: Failed cycles since the last good one
        last_result: Most recent successful prediction
    """

    def __init__(
        self,
        camera,
        extractor,
        classifier,
        alert_gate,
        threshold: float = 0.8,
        interval: float = 0.016,
        max_consecutive_failures: int = 3,
        cancel_event: Optional[asyncio.Event] = None,
        on_result: Optional[Callable[[bool, Optional[PredictionResult]], None]] = None,
    ):
        """Initialize inference loop.

        Args:
            camera: Camera source (async frame())
            extractor: Embedding extractor (embed(frame))
            classifier: Trained classifier (predict(embedding))
            alert_gate: AlertGate receiving process(is_touch)
            threshold: Touch confidence threshold (strict)
            interval: Seconds between cycles (display refresh fallback)
            max_consecutive_failures: Failed cycles in a row before giving up
            cancel_event: Set to stop at the next cycle boundary
            on_result: Called with (is_touch, result) after each cycle
        """
        self.camera = camera
        self.extractor = extractor
        self.classifier = classifier
        self.alert_gate = alert_gate
        self.threshold = threshold
        self.interval = interval
        self.max_consecutive_failures = max_consecutive_failures
        self.cancel_event = cancel_event or asyncio.Event()
        self.on_result = on_result

        self.cycles = 0
        self.consecutive_failures = 0
        self.last_result: Optional[PredictionResult] = None
        self._last_error: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    async def run(self) -> int:
        """Run cycles until the cancel event is set.

        Returns:
            Number of cycles run

        Raises:
            InferenceDegraded: After max_consecutive_failures failed cycles
        """
        logger.info("Inference loop started")

        while not self.cancelled:
            touch, result = await self._cycle()

            self.alert_gate.process(touch)
            if self.on_result is not None:
                self.on_result(touch, result)
            self.cycles += 1

            if self.consecutive_failures >= self.max_consecutive_failures:
                logger.error(
                    f"Inference degraded: {self.consecutive_failures} consecutive failures"
                )
                raise InferenceDegraded(self.consecutive_failures, self._last_error)

            await self._wait_interval()

        logger.info(f"Inference loop stopped after {self.cycles} cycles")
        return self.cycles

    async def _cycle(self) -> Tuple[bool, Optional[PredictionResult]]:
        """One capture -> embed -> predict pass. Failures count as no touch."""
        try:
            frame = await self.camera.frame()
            embedding = await asyncio.to_thread(self.extractor.embed, frame)
            result = self.classifier.predict(embedding)
        except Exception as e:
            self.consecutive_failures += 1
            self._last_error = str(e)
            logger.warning(
                f"Inference cycle failed ({self.consecutive_failures}/"
                f"{self.max_consecutive_failures}): {e}"
            )
            return False, None

        self.consecutive_failures = 0
        self.last_result = result
        return is_touch(result, self.threshold), result

    async def _wait_interval(self) -> None:
        """Yield until the next cycle, returning early on cancel."""
        try:
            await asyncio.wait_for(self.cancel_event.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            pass
