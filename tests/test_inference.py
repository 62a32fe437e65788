"""Tests for InferenceLoop."""

import asyncio
import threading
import time

import numpy as np
import pytest

from facetouch.errors import InferenceDegraded, NoFrame
from facetouch.inference import InferenceLoop, is_touch
from facetouch.models import Label, PredictionResult, make_embedding


def _result(touching: float) -> PredictionResult:
    return PredictionResult(
        label=Label.TOUCHING if touching > 0.5 else Label.NOT_TOUCHING,
        confidences={Label.TOUCHING: touching, Label.NOT_TOUCHING: 1.0 - touching},
    )


class ScriptedCamera:
    """Camera returning scripted frames or raising scripted errors."""

    def __init__(self, script=None):
        self.script = list(script or [])
        self.frame_value = np.zeros((4, 4, 3), dtype=np.uint8)

    async def frame(self):
        await asyncio.sleep(0)
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, Exception):
                raise item
        return self.frame_value


class SlowExtractor:
    """Extractor that tracks how many embed calls overlap."""

    def __init__(self, delay: float = 0.002):
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def embed(self, frame):
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        time.sleep(self.delay)
        with self._lock:
            self.in_flight -= 1
        return make_embedding([1.0, 0.0])


class FixedClassifier:
    def __init__(self, result: PredictionResult):
        self.result = result
        self.calls = 0

    def predict(self, embedding):
        self.calls += 1
        return self.result


class RecordingGate:
    def __init__(self):
        self.decisions = []

    def process(self, is_touch):
        self.decisions.append(is_touch)


class TestIsTouch:
    """Test suite for the touch decision rule."""

    def test_threshold_is_strict(self):
        """Test 0.8 exactly is not a touch."""
        assert not is_touch(_result(0.8), 0.8)
        assert is_touch(_result(0.81), 0.8)

    def test_not_touching_label_never_touches(self):
        """Test a NOT_TOUCHING winner is never a touch."""
        result = PredictionResult(
            label=Label.NOT_TOUCHING,
            confidences={Label.TOUCHING: 0.9, Label.NOT_TOUCHING: 0.9},
        )
        assert not is_touch(result, 0.8)


class TestInferenceLoop:
    """Test suite for InferenceLoop."""

    def _loop(self, camera, classifier, gate, extractor=None, cycles=5, **kwargs):
        cancel = asyncio.Event()

        def on_result(touch, result):
            if len(gate.decisions) >= cycles:
                cancel.set()

        return InferenceLoop(
            camera=camera,
            extractor=extractor or SlowExtractor(delay=0),
            classifier=classifier,
            alert_gate=gate,
            interval=0.001,
            cancel_event=cancel,
            on_result=on_result,
            **kwargs,
        )

    @pytest.mark.asyncio
    async def test_threshold_boundary_reaches_gate_as_no_touch(self):
        """Test a prediction at exactly the threshold is passed on as no touch."""
        gate = RecordingGate()
        loop = self._loop(ScriptedCamera(), FixedClassifier(_result(0.8)), gate, cycles=3)

        await asyncio.wait_for(loop.run(), timeout=5)

        assert gate.decisions == [False, False, False]

    @pytest.mark.asyncio
    async def test_confident_touch_reaches_gate(self):
        """Test a confident TOUCHING prediction is passed on as a touch."""
        gate = RecordingGate()
        loop = self._loop(ScriptedCamera(), FixedClassifier(_result(1.0)), gate, cycles=3)

        cycles = await asyncio.wait_for(loop.run(), timeout=5)

        assert cycles == 3
        assert gate.decisions == [True, True, True]
        assert loop.last_result.label == Label.TOUCHING

    @pytest.mark.asyncio
    async def test_one_cycle_in_flight(self):
        """Test cycles never overlap even when embedding is slow."""
        gate = RecordingGate()
        extractor = SlowExtractor(delay=0.005)
        classifier = FixedClassifier(_result(0.0))
        loop = self._loop(ScriptedCamera(), classifier, gate, extractor=extractor, cycles=10)

        await asyncio.wait_for(loop.run(), timeout=5)

        assert extractor.max_in_flight == 1
        assert classifier.calls == 10
        assert len(gate.decisions) == 10

    @pytest.mark.asyncio
    async def test_single_failure_absorbed(self):
        """Test one failed cycle counts as no touch and the loop continues."""
        gate = RecordingGate()
        camera = ScriptedCamera([NoFrame("dropped")])
        loop = self._loop(camera, FixedClassifier(_result(1.0)), gate, cycles=4)

        await asyncio.wait_for(loop.run(), timeout=5)

        assert gate.decisions == [False, True, True, True]
        assert loop.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_consecutive_failures_degrade(self):
        """Test the loop gives up after max_consecutive_failures."""
        gate = RecordingGate()
        camera = ScriptedCamera([NoFrame("dropped")] * 5)
        loop = self._loop(
            camera, FixedClassifier(_result(1.0)), gate, cycles=10, max_consecutive_failures=3
        )

        with pytest.raises(InferenceDegraded) as exc_info:
            await asyncio.wait_for(loop.run(), timeout=5)

        assert exc_info.value.failures == 3
        assert gate.decisions == [False, False, False]

    @pytest.mark.asyncio
    async def test_cancel_before_start(self):
        """Test a pre-set cancel event runs no cycles."""
        gate = RecordingGate()
        cancel = asyncio.Event()
        cancel.set()
        loop = InferenceLoop(
            ScriptedCamera(), SlowExtractor(), FixedClassifier(_result(1.0)), gate,
            cancel_event=cancel,
        )

        assert await loop.run() == 0
        assert gate.decisions == []
