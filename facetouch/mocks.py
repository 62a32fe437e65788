# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""Mock hardware implementations for testing without a webcam or model.

This module provides simulated versions of the webcam, the embedding
model and the alert sound that behave enough like the real ones to run
the whole session (training, inference, alerting) end to end.

Enable mock mode by:
- Setting MOCK_HARDWARE=true environment variable, OR
- Setting mock_mode: true in config.yaml, OR
- Passing --mock on the command line
"""

import asyncio
import logging
from typing import Callable, Optional

import cv2
import numpy as np

from facetouch.errors import CameraUnavailable, EmbeddingFailed, ModelLoadFailed, NoFrame
from facetouch.models import make_embedding

logger = logging.getLogger(__name__)


class MockWebcam:
    """Simulated webcam producing synthetic head-and-shoulders frames.

    The mock can be controlled to:
    - Show a hand over the face (simulate_touch)
    - Drop the next N frames (simulate_drop)
    - Refuse to open (simulate_unavailable)

    Attributes:
        width: Frame width in pixels
        height: Frame height in pixels
        acquire_count: Successful acquire() calls
        release_calls: release() calls, open or not
        frames_served: Frames returned by frame()
    """

    def __init__(
        self,
        width: int = 320,
        height: int = 240,
        acquire_delay: float = 0.0,
        noise: int = 4,
        seed: Optional[int] = None,
    ):
        """Initialize mock webcam.

        Args:
            width: Frame width
            height: Frame height
            acquire_delay: Simulated seconds to open the device
            noise: Max per-pixel sensor noise (0 for identical frames)
            seed: Random seed for the noise
        """
        self.width = width
        self.height = height
        self.acquire_delay = acquire_delay
        self.noise = noise
        self._rng = np.random.default_rng(seed)

        self._open = False
        self._latest_frame: Optional[np.ndarray] = None

        # Simulation controls
        self._simulate_touch = False
        self._simulate_unavailable = False
        self._drop_frames = 0

        # Counters
        self.acquire_count = 0
        self.release_calls = 0
        self.frames_served = 0

        logger.info(f"MockWebcam initialized ({width}x{height})")

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def latest_frame(self) -> Optional[np.ndarray]:
        """Most recent frame served."""
        return self._latest_frame

    async def acquire(self) -> None:
        """Simulate opening the device and waiting for the first frame.

        Raises:
            CameraUnavailable: When simulate_unavailable is on
        """
        logger.info("MockWebcam: Opening (simulated)...")
        if self.acquire_delay > 0:
            await asyncio.sleep(self.acquire_delay)

        if self._simulate_unavailable:
            raise CameraUnavailable("Simulated camera unavailable")

        self._open = True
        self.acquire_count += 1
        self._latest_frame = self._generate_frame()
        logger.info("MockWebcam: Open (simulated)")

    async def frame(self) -> np.ndarray:
        """Return the next synthetic frame.

        Raises:
            NoFrame: When closed or while dropping frames
        """
        if not self._open:
            raise NoFrame("Camera not open")

        await asyncio.sleep(0)

        if self._drop_frames > 0:
            self._drop_frames -= 1
            raise NoFrame("Simulated frame drop")

        frame = self._generate_frame()
        self._latest_frame = frame
        self.frames_served += 1
        return frame

    def release(self) -> None:
        """Close the simulated device."""
        self.release_calls += 1
        if self._open:
            logger.info("MockWebcam: Released")
        self._open = False

    def _generate_frame(self) -> np.ndarray:
        """Draw a face on a plain background, with a hand when touching."""
        w, h = self.width, self.height
        frame = np.full((h, w, 3), 70, dtype=np.uint8)

        center = (w // 2, h // 2)
        axes = (w // 7, h // 4)
        cv2.rectangle(frame, (w // 4, h * 3 // 4), (w * 3 // 4, h), (120, 60, 40), -1)
        cv2.ellipse(frame, center, axes, 0, 0, 360, (150, 180, 220), -1)

        if self._simulate_touch:
            # Hand raised across the lower face
            cv2.rectangle(
                frame,
                (w // 2 - w // 6, h // 2),
                (w // 2 + w // 5, h),
                (60, 110, 200),
                -1,
            )

        if self.noise > 0:
            jitter = self._rng.integers(-self.noise, self.noise + 1, size=frame.shape)
            frame = np.clip(frame.astype(np.int16) + jitter, 0, 255).astype(np.uint8)

        return frame

    def simulate_touch(self, touching: bool = True) -> None:
        """Show or hide the hand over the face."""
        self._simulate_touch = touching
        logger.info(f"MockWebcam: Touch simulation {'ON' if touching else 'OFF'}")

    def simulate_drop(self, count: int = 1) -> None:
        """Fail the next `count` frame reads."""
        self._drop_frames = count
        logger.info(f"MockWebcam: Dropping next {count} frames")

    def simulate_unavailable(self, unavailable: bool = True) -> None:
        """Make the next acquire() fail."""
        self._simulate_unavailable = unavailable
        logger.info(f"MockWebcam: Unavailable simulation {'ON' if unavailable else 'OFF'}")


class PixelEmbedder:
    """Deterministic stand-in for the MobileNet embedder.

    Downsamples the frame to a small grayscale grid and mean-centers it,
    which separates the synthetic touch/no-touch frames well.
    """

    def __init__(self, grid: int = 8, fail_load: bool = False):
        self.grid = grid
        self.fail_load = fail_load
        self._loaded = False
        self.embed_calls = 0

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def load(self) -> None:
        if self.fail_load:
            raise ModelLoadFailed("Simulated model load failure")
        self._loaded = True
        logger.info(f"PixelEmbedder loaded ({self.grid}x{self.grid})")

    def embed(self, frame: np.ndarray) -> np.ndarray:
        if frame is None or frame.ndim != 3:
            raise EmbeddingFailed("Expected a BGR frame")

        self.embed_calls += 1
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        small = cv2.resize(gray, (self.grid, self.grid), interpolation=cv2.INTER_AREA)
        values = small.astype(np.float32).ravel() / 255.0
        return make_embedding(values - values.mean())


class MockSoundPlayer:
    """Simulated alert sound.

    With a duration, completion is reported that many seconds after
    play(). Without one, completion happens only on finish() or stop(),
    which lets tests decide exactly when the sound ends.

    Attributes:
        plays: Successful play() calls
    """

    def __init__(self, duration: Optional[float] = None, available: bool = True):
        """Initialize mock sound.

        Args:
            duration: Simulated playback length in seconds (None for manual)
            available: Result of initialize()
        """
        self.duration = duration
        self.available = available
        self.plays = 0
        self.closed = False
        self._on_complete: Optional[Callable[[], None]] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def is_playing(self) -> bool:
        return self._on_complete is not None

    async def initialize(self) -> bool:
        return self.available

    def play(self, on_complete: Callable[[], None]) -> bool:
        if not self.available or self.is_playing:
            return False

        self.plays += 1
        self._on_complete = on_complete
        logger.info("MockSoundPlayer: Beep (simulated)")

        if self.duration is not None:
            self._timer = asyncio.get_running_loop().call_later(self.duration, self.finish)
        return True

    def finish(self) -> None:
        """Report completion of the current playback."""
        self._timer = None
        callback = self._on_complete
        self._on_complete = None
        if callback is not None:
            callback()

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self.finish()

    def close(self) -> None:
        self.stop()
        self.closed = True
