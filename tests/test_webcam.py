"""Tests for WebcamSource with a fake OpenCV capture."""

import asyncio
import time

import cv2
import numpy as np
import pytest

from facetouch.capture.webcam import WebcamSource
from facetouch.errors import SessionClosed
from facetouch.models import SessionState
from facetouch.state_machine import SessionController
from tests.conftest import wait_until


class SlowCapture:
    """Stand-in for cv2.VideoCapture with blocking open and read."""

    def __init__(self, open_delay: float = 0.0, read_delay: float = 0.0):
        time.sleep(open_delay)
        self.read_delay = read_delay
        self.reading = False
        self.released = False
        self.release_during_read = False

    def isOpened(self):
        return True

    def set(self, prop, value):
        return True

    def read(self):
        self.reading = True
        time.sleep(self.read_delay)
        self.reading = False
        return True, np.zeros((48, 64, 3), dtype=np.uint8)

    def release(self):
        self.release_during_read = self.reading
        self.released = True


@pytest.fixture
def captures():
    return []


@pytest.fixture
def fake_capture(monkeypatch, captures):
    """Patch cv2.VideoCapture; returns a setter for the delays."""
    delays = {"open_delay": 0.0, "read_delay": 0.0}

    def make_capture(index):
        capture = SlowCapture(**delays)
        captures.append(capture)
        return capture

    monkeypatch.setattr(cv2, "VideoCapture", make_capture)
    return delays


class TestWebcamSource:
    """Test suite for WebcamSource."""

    @pytest.mark.asyncio
    async def test_acquire_reads_first_frame(self, fake_capture, captures):
        """Test acquire opens the device and keeps the first frame."""
        camera = WebcamSource()

        await camera.acquire()

        assert camera.is_open
        assert camera.latest_frame.shape == (48, 64, 3)

        camera.release()
        camera.release()

        assert not camera.is_open
        assert camera.latest_frame is None
        assert len(captures) == 1
        assert captures[0].released

    @pytest.mark.asyncio
    async def test_release_waits_for_in_flight_read(
        self, fake_capture, captures, extractor, classifier, gate, settings
    ):
        """Test shutdown during initialize closes the device only after the read returns."""
        fake_capture["read_delay"] = 0.3
        controller = SessionController(WebcamSource(), extractor, classifier, gate, settings)

        init = asyncio.ensure_future(controller.initialize())
        await wait_until(lambda: captures and captures[0].reading)

        await controller.shutdown()

        with pytest.raises(SessionClosed):
            await init
        assert controller.state == SessionState.TERMINATED
        assert captures[0].released
        assert not captures[0].release_during_read

    @pytest.mark.asyncio
    async def test_cancelled_open_releases_device(self, fake_capture, captures):
        """Test a device opened after acquire() was cancelled is still released."""
        fake_capture["open_delay"] = 0.2
        camera = WebcamSource()

        task = asyncio.ensure_future(camera.acquire())
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert not camera.is_open

        await wait_until(lambda: captures and captures[0].released)
