"""Shared fixtures: mock hardware wired into a fast session."""

import asyncio
from datetime import datetime, timedelta

import pytest

from facetouch.alerting import AlertGate, Notifier
from facetouch.config import SessionSettings
from facetouch.detection.classifier import KNNClassifier
from facetouch.mocks import MockSoundPlayer, MockWebcam, PixelEmbedder
from facetouch.state_machine import SessionController


class FakeClock:
    """Manually advanced clock for cooldown tests."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


async def wait_until(predicate, timeout: float = 3.0) -> None:
    """Poll until predicate() is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("Condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def camera():
    return MockWebcam(width=64, height=48, seed=1)


@pytest.fixture
def extractor():
    return PixelEmbedder()


@pytest.fixture
def classifier():
    return KNNClassifier(k=3)


@pytest.fixture
def sound():
    return MockSoundPlayer()


@pytest.fixture
def notifier(clock):
    return Notifier(cooldown_seconds=3.0, clock=clock)


@pytest.fixture
def gate(sound, notifier, clock):
    return AlertGate(sound, notifier, clock=clock)


@pytest.fixture
def settings():
    return SessionSettings(
        training_sample_count=5,
        sampling_interval_ms=0,
        inference_interval_ms=1,
    )


@pytest.fixture
def controller(camera, extractor, classifier, gate, settings):
    return SessionController(
        camera=camera,
        extractor=extractor,
        classifier=classifier,
        alert_gate=gate,
        settings=settings,
    )
