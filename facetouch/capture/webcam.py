# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""Local webcam capture.

Unlike on-demand snapshot cameras, the webcam stays open for the whole
session: one VideoCapture handle is acquired at initialize() and lent to
whichever of training or inference is active. Blocking OpenCV calls are
run in a worker thread so the event loop keeps serving the UI, but
callers await them one at a time.
"""

import asyncio
import logging
import threading
import time
from typing import Optional

import cv2
import numpy as np

from facetouch.errors import CameraUnavailable, NoFrame

logger = logging.getLogger(__name__)


class WebcamSource:
    """Owns the live webcam stream for a session.

    Usage:
        camera = WebcamSource(device_index=0)
        await camera.acquire()
        frame = await camera.frame()
        camera.release()
    """

    def __init__(
        self,
        device_index: int = 0,
        width: int = 640,
        height: int = 480,
        first_frame_poll_seconds: float = 0.05,
    ):
        """Initialize webcam source.

        Args:
            device_index: OpenCV camera index
            width: Requested capture width
            height: Requested capture height
            first_frame_poll_seconds: Delay between reads while waiting for
                the first decodable frame
        """
        self.device_index = device_index
        self.width = width
        self.height = height
        self.first_frame_poll_seconds = first_frame_poll_seconds

        self._cap: Optional[cv2.VideoCapture] = None
        self._latest_frame: Optional[np.ndarray] = None
        # Held by the worker thread for the whole cap.read()
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        """Whether a capture handle is held."""
        return self._cap is not None

    @property
    def latest_frame(self) -> Optional[np.ndarray]:
        """Most recent frame read (live preview sink)."""
        return self._latest_frame

    def _open(self) -> cv2.VideoCapture:
        """Open the device with small buffers for fresh frames."""
        cap = cv2.VideoCapture(self.device_index)
        if not cap.isOpened():
            cap.release()
            raise CameraUnavailable(
                f"Unable to open camera at index {self.device_index} "
                "(missing device or permission denied)"
            )

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        # Reduce buffer size to get fresher frames
        cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        return cap

    async def acquire(self) -> None:
        """Open the camera and wait for the first decodable frame.

        There is no timeout: a camera that opens but never delivers a
        frame suspends the caller indefinitely.

        Raises:
            CameraUnavailable: If the device cannot be opened
        """
        if self._cap is not None:
            return

        open_task = asyncio.ensure_future(asyncio.to_thread(self._open))
        try:
            self._cap = await asyncio.shield(open_task)
        except cv2.error as e:
            raise CameraUnavailable(f"OpenCV error opening camera: {e}") from e
        except asyncio.CancelledError:
            # The worker thread still finishes opening the device
            open_task.add_done_callback(self._discard_opened)
            raise

        logger.info(f"Camera {self.device_index} opened, waiting for first frame")
        start_time = time.time()

        while True:
            try:
                await self.frame()
                break
            except NoFrame:
                await asyncio.sleep(self.first_frame_poll_seconds)

        elapsed = (time.time() - start_time) * 1000
        height, width = self._latest_frame.shape[:2]
        logger.info(f"First frame {width}x{height} after {elapsed:.0f}ms")

    def _discard_opened(self, task: asyncio.Future) -> None:
        """Release a capture whose acquire() was cancelled mid-open."""
        if task.cancelled() or task.exception() is not None:
            return
        task.result().release()
        logger.info(f"Camera {self.device_index} released (open abandoned)")

    def _read(self) -> np.ndarray:
        with self._lock:
            if self._cap is None:
                raise NoFrame("Camera not acquired")

            try:
                ret, frame = self._cap.read()
            except cv2.error as e:
                raise NoFrame(f"OpenCV error reading frame: {e}") from e

        if not ret or frame is None:
            raise NoFrame("Failed to read frame from camera")
        return frame

    async def frame(self) -> np.ndarray:
        """Read the current frame.

        Returns:
            BGR image (OpenCV format)

        Raises:
            NoFrame: If the camera is not acquired or the read fails
        """
        frame = await asyncio.to_thread(self._read)
        self._latest_frame = frame
        return frame

    def release(self) -> None:
        """Release the capture handle. Safe to call when not acquired.

        Blocks until a read running in a worker thread has returned, so the
        handle is never closed under an in-flight cap.read().
        """
        with self._lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None
                logger.info(f"Camera {self.device_index} released")
        self._latest_frame = None


def frame_to_jpeg(
    frame: np.ndarray,
    quality: int = 85,
) -> Optional[bytes]:
    """Convert a frame to JPEG bytes.

    Args:
        frame: BGR image (OpenCV format)
        quality: JPEG quality (0-100)

    Returns:
        JPEG bytes or None on error
    """
    try:
        encode_params = [cv2.IMWRITE_JPEG_QUALITY, quality]
        success, encoded = cv2.imencode(".jpg", frame, encode_params)

        if success:
            return encoded.tobytes()
        return None

    except Exception as e:
        logger.error(f"Error encoding frame to JPEG: {e}")
        return None
