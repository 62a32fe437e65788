# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""Session state machine for the face touch monitor.

This module owns the session lifecycle:
- Acquires the camera and loads the embedding model
- Runs training batches and the inference loop, one at a time
- Forwards touch decisions to the alert gate
- Releases every resource on shutdown

State Flow:
    UNINITIALIZED -> INITIALIZING -> READY (initialize)
    INITIALIZING -> UNINITIALIZED (camera or model failure, may retry)
    READY -> TRAINING -> READY (start_training, batch completes)
    READY -> INFERRING -> READY (start_inference, stop)
    INFERRING -> TRAINING (start_training waits for the loop to exit)
    * -> SHUTTING_DOWN -> TERMINATED (shutdown)

Usage:
    from facetouch.state_machine import create_controller

    controller = create_controller(config)
    await controller.initialize()
    await controller.start_training(Label.NOT_TOUCHING)
    await controller.wait()
    await controller.shutdown()
"""

import asyncio
import logging
import os
import sys
from datetime import datetime, timedelta
from typing import Any, Coroutine, Optional

# Add project root to path when run as script
if __name__ == "__main__":
    sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np

from facetouch.config import Config, SessionSettings
from facetouch.errors import (
    FaceTouchError,
    InferenceDegraded,
    NotTrained,
    SessionBusy,
    SessionClosed,
    SessionNotReady,
    TrainingFailed,
)
from facetouch.inference import InferenceLoop
from facetouch.models import Label, PredictionResult, SessionState, SessionStatus
from facetouch.training import TrainingSession

logger = logging.getLogger(__name__)


class SessionController:
    """Top-level state machine for one monitoring session.

    All collaborators are injected so tests and mock mode can substitute
    any of them. Training and inference run as asyncio tasks; entry points
    return once the transition has been made, and wait() awaits the
    running sub-mode.

    Attributes:
        state: Current SessionState
        training_label: Label being trained (TRAINING only)
        train_progress: Last training progress percent
        touched: Latest touched signal from the alert gate
    """

    def __init__(
        self,
        camera,
        extractor,
        classifier,
        alert_gate,
        settings: Optional[SessionSettings] = None,
    ):
        """Initialize session controller.

        Args:
            camera: Camera source (acquire/frame/release)
            extractor: Embedding extractor (load/embed)
            classifier: Incremental classifier (add_example/predict)
            alert_gate: AlertGate wrapping the sound and notification sinks
            settings: Default tunables (overridable at initialize())
        """
        self.camera = camera
        self.extractor = extractor
        self.classifier = classifier
        self.alert_gate = alert_gate
        self._settings = settings or SessionSettings()

        # State tracking
        self._state = SessionState.UNINITIALIZED
        self._state_changed_at = datetime.now()
        self._transition_lock = asyncio.Lock()

        # Training tracking
        self._training_label: Optional[Label] = None
        self._train_progress = 0

        # Sub-mode control
        self._mode_task: Optional[asyncio.Task] = None
        self._cancel_event: Optional[asyncio.Event] = None
        self._init_task: Optional[asyncio.Task] = None
        self._shutdown_task: Optional[asyncio.Task] = None

        # Resources
        self._camera_acquired = False

        # Outputs
        self._last_prediction: Optional[PredictionResult] = None
        self._last_error: Optional[str] = None

        # Session start time
        self._start_time = datetime.now()

        logger.info("SessionController initialized")

    # ==================== Properties ====================

    @property
    def state(self) -> SessionState:
        """Current session state."""
        return self._state

    @property
    def training_label(self) -> Optional[Label]:
        """Label being trained, None outside TRAINING."""
        return self._training_label

    @property
    def train_progress(self) -> int:
        """Last training progress percent (0-100)."""
        return self._train_progress

    @property
    def touched(self) -> bool:
        """Whether the last inference cycle detected a touch."""
        return self.alert_gate.touched

    @property
    def settings(self) -> SessionSettings:
        """Tunables in effect."""
        return self._settings

    @property
    def last_error(self) -> Optional[str]:
        """Message of the last error that ended a sub-mode."""
        return self._last_error

    @property
    def latest_frame(self) -> Optional[np.ndarray]:
        """Latest camera frame (live preview)."""
        return getattr(self.camera, "latest_frame", None)

    @property
    def uptime(self) -> timedelta:
        """How long the session object has existed."""
        return datetime.now() - self._start_time

    @property
    def next_step(self) -> str:
        """Guidance text for the user."""
        state = self._state
        if state == SessionState.UNINITIALIZED:
            return "Initialize the session to start the camera."
        if state == SessionState.INITIALIZING:
            return "Starting camera and loading the model..."
        if state == SessionState.TRAINING:
            return f"Training {self._training_label.value}: {self._train_progress}%"
        if state == SessionState.INFERRING:
            return "Monitoring. Touching your face will trigger an alert."
        if state == SessionState.READY:
            if self.classifier.example_count(Label.NOT_TOUCHING) == 0:
                return f"Keep your hands away from your face and train {Label.NOT_TOUCHING.value}."
            if self.classifier.example_count(Label.TOUCHING) == 0:
                return f"Touch your face and train {Label.TOUCHING.value}."
            return "Start monitoring."
        return "Session closed."

    def get_status(self) -> SessionStatus:
        """Get comprehensive session status snapshot."""
        gate = self.alert_gate
        return SessionStatus(
            timestamp=datetime.now(),
            state=self._state,
            state_since=self._state_changed_at,
            training_label=self._training_label,
            train_progress=self._train_progress,
            example_counts={
                label.value: count
                for label, count in self.classifier.example_counts().items()
            },
            touched=gate.touched,
            last_prediction=self._last_prediction,
            tab_active=gate.tab_active,
            alert_state=gate.alert_state,
            touches_detected=gate.touches_detected,
            sounds_played=gate.sounds_played,
            notifications_sent=gate.notifier.sent_count,
            last_error=self._last_error,
            next_step=self.next_step,
            uptime_seconds=self.uptime.total_seconds(),
        )

    # ==================== Lifecycle ====================

    async def initialize(self, **overrides: Any) -> None:
        """Acquire the camera, load the model and become READY.

        Concurrent calls share one attempt; the first caller's overrides
        apply. A no-op once READY or later.

        Args:
            **overrides: SessionSettings fields to override

        Raises:
            CameraUnavailable: Camera could not be opened
            ModelLoadFailed: Embedding model could not be loaded
            SessionClosed: Session was shut down
            ValueError: Invalid override
        """
        self._check_open()

        if self._state not in (SessionState.UNINITIALIZED, SessionState.INITIALIZING):
            logger.debug(f"initialize() ignored in state {self._state.value}")
            return

        if self._init_task is None:
            settings = self._settings.with_overrides(**overrides)
            self._init_task = asyncio.get_running_loop().create_task(
                self._initialize(settings)
            )

        task = self._init_task
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                raise SessionClosed("Session shut down during initialization")
            raise
        finally:
            if task.done() and self._init_task is task:
                self._init_task = None

    async def _initialize(self, settings: SessionSettings) -> None:
        self._set_state(SessionState.INITIALIZING)

        try:
            logger.info("  - Camera")
            self._camera_acquired = True
            await self.camera.acquire()

            logger.info("  - Embedding model")
            await asyncio.to_thread(self.extractor.load)

            logger.info("  - Alert sound")
            if not await self.alert_gate.sound.initialize():
                logger.warning("Alert sound unavailable - alerts will be silent")

        except BaseException as e:
            logger.error(f"Initialization failed: {e!r}")
            self._release_camera()
            if self._state == SessionState.INITIALIZING:
                self._set_state(SessionState.UNINITIALIZED)
            raise

        self._apply_settings(settings)
        self._set_state(SessionState.READY)

    def _apply_settings(self, settings: SessionSettings) -> None:
        self._settings = settings
        self.alert_gate.notifier.cooldown_seconds = settings.notification_cooldown_ms / 1000.0
        logger.info(f"Session settings: {settings}")

    async def shutdown(self) -> None:
        """Stop everything and release all resources.

        Safe to call in any state; repeated calls are no-ops.
        """
        if self._state == SessionState.TERMINATED:
            return

        if self._shutdown_task is None:
            self._shutdown_task = asyncio.get_running_loop().create_task(self._shutdown())

        await asyncio.shield(self._shutdown_task)

    async def _shutdown(self) -> None:
        logger.info("Session shutting down")
        self._set_state(SessionState.SHUTTING_DOWN)

        # Initialization in flight: abandon it
        init_task = self._init_task
        if init_task is not None and not init_task.done():
            init_task.cancel()
            await asyncio.wait({init_task})

        async with self._transition_lock:
            await self._cancel_mode()

            self._release_camera()
            self.alert_gate.close()

        await self.alert_gate.notifier.close()

        self._set_state(SessionState.TERMINATED)
        logger.info("Session terminated")

    # ==================== Sub-modes ====================

    async def start_training(self, label: Label) -> None:
        """Start a training batch for a label.

        If inference is running it is stopped first, and training begins
        only after the loop's in-flight cycle has finished.

        Raises:
            SessionBusy: Already training
            SessionNotReady: Not initialized
            SessionClosed: Session was shut down
        """
        async with self._transition_lock:
            self._check_open()

            if self._state == SessionState.TRAINING:
                raise SessionBusy(f"Already training {self._training_label.value}")

            if self._state == SessionState.INFERRING:
                logger.info("Stopping inference before training")
                await self._cancel_mode()
                self._check_open()

            if self._state != SessionState.READY:
                raise SessionNotReady(f"Cannot train in state {self._state.value}")

            cancel_event = asyncio.Event()
            session = TrainingSession(
                camera=self.camera,
                extractor=self.extractor,
                classifier=self.classifier,
                label=label,
                sample_count=self._settings.training_sample_count,
                sampling_interval=self._settings.sampling_interval_ms / 1000.0,
                cancel_event=cancel_event,
                on_progress=self._on_train_progress,
            )

            self._training_label = label
            self._train_progress = 0
            self._set_state(SessionState.TRAINING)
            self._start_mode(session.run(), cancel_event)

    async def start_inference(self) -> None:
        """Start the inference loop.

        Raises:
            SessionBusy: Training in progress (wait for it to finish)
            NotTrained: No training examples yet
            SessionNotReady: Not initialized
            SessionClosed: Session was shut down
        """
        async with self._transition_lock:
            self._check_open()

            if self._state == SessionState.TRAINING:
                raise SessionBusy("Training in progress")

            if self._state == SessionState.INFERRING:
                logger.debug("Inference already running")
                return

            if self._state != SessionState.READY:
                raise SessionNotReady(f"Cannot start inference in state {self._state.value}")

            if self.classifier.example_count() == 0:
                raise NotTrained("Train at least one label before starting inference")

            cancel_event = asyncio.Event()
            loop = InferenceLoop(
                camera=self.camera,
                extractor=self.extractor,
                classifier=self.classifier,
                alert_gate=self.alert_gate,
                threshold=self._settings.touch_confidence_threshold,
                interval=self._settings.inference_interval_ms / 1000.0,
                max_consecutive_failures=self._settings.max_consecutive_failures,
                cancel_event=cancel_event,
                on_result=self._on_inference_result,
            )

            self._set_state(SessionState.INFERRING)
            self._start_mode(loop.run(), cancel_event)

    async def stop(self) -> None:
        """Stop the active sub-mode at its next boundary and return to READY.

        Raises:
            SessionClosed: Session was shut down
        """
        async with self._transition_lock:
            self._check_open()

            if not self._state.is_active_mode:
                logger.debug(f"stop() ignored in state {self._state.value}")
                return

            logger.info(f"Stopping {self._state.value}")
            await self._cancel_mode()

    async def wait(self) -> None:
        """Wait for the current (or most recent) sub-mode to end.

        Raises:
            TrainingFailed: The training batch aborted
            InferenceDegraded: The inference loop gave up
        """
        task = self._mode_task
        if task is None:
            return

        error = await asyncio.shield(task)
        if error is not None:
            raise error

    def set_tab_active(self, active: bool) -> None:
        """Forward the UI visibility signal to the alert gate."""
        self.alert_gate.set_tab_active(active)

    # ==================== Internals ====================

    def _start_mode(self, coro: Coroutine, cancel_event: asyncio.Event) -> None:
        self._cancel_event = cancel_event
        self._last_error = None
        self._mode_task = asyncio.get_running_loop().create_task(self._run_mode(coro))

    async def _run_mode(self, coro: Coroutine) -> Optional[FaceTouchError]:
        """Run a sub-mode and return the error that ended it, if any."""
        error: Optional[FaceTouchError] = None
        try:
            await coro
        except (TrainingFailed, InferenceDegraded) as e:
            error = e
            self._last_error = str(e)
            logger.error(f"{type(e).__name__}: {e}")
        finally:
            self._finish_mode()
        return error

    def _finish_mode(self) -> None:
        if self._state == SessionState.INFERRING:
            self.alert_gate.reset_touched()
        self._training_label = None
        self._cancel_event = None
        if self._state.is_active_mode:
            self._set_state(SessionState.READY)

    async def _cancel_mode(self) -> None:
        """Signal the running sub-mode and wait for it to exit."""
        task = self._mode_task
        if task is None or task.done():
            return

        if self._cancel_event is not None:
            self._cancel_event.set()
        await asyncio.wait({task})

    def _on_train_progress(self, progress: int) -> None:
        self._train_progress = progress

    def _on_inference_result(self, touch: bool, result: Optional[PredictionResult]) -> None:
        if result is not None:
            self._last_prediction = result

    def _release_camera(self) -> None:
        if self._camera_acquired:
            self._camera_acquired = False
            self.camera.release()

    def _check_open(self) -> None:
        if self._state in (SessionState.SHUTTING_DOWN, SessionState.TERMINATED):
            raise SessionClosed("Session has been shut down")

    def _set_state(self, new_state: SessionState) -> None:
        old_state = self._state
        if new_state == old_state:
            return
        self._state = new_state
        self._state_changed_at = datetime.now()
        logger.info(f"State transition: {old_state.value} -> {new_state.value}")


def create_controller(config: Config) -> SessionController:
    """Build a controller from config, with mock hardware in mock mode.

    Args:
        config: Loaded configuration

    Returns:
        SessionController ready for initialize()
    """
    from facetouch.alerting import AlertGate, AudioAlert, Notifier
    from facetouch.detection.classifier import KNNClassifier

    if config.mock_mode:
        from facetouch.mocks import MockSoundPlayer, MockWebcam, PixelEmbedder

        logger.info("Mock mode: using simulated webcam, pixel embedder and sound")
        camera = MockWebcam(width=config.camera.width, height=config.camera.height)
        extractor = PixelEmbedder()
        sound = MockSoundPlayer(duration=1.0)
    else:
        from facetouch.capture.webcam import WebcamSource
        from facetouch.detection.embedding import MobileNetEmbedder

        camera = WebcamSource(
            device_index=config.camera.device_index,
            width=config.camera.width,
            height=config.camera.height,
            first_frame_poll_seconds=config.camera.first_frame_poll_ms / 1000.0,
        )
        extractor = MobileNetEmbedder(
            model_path=config.resolve_path(config.model.path),
            input_size=config.model.input_size,
            providers=config.model.providers,
        )
        sound = AudioAlert(
            sound_file=str(config.resolve_path(config.alerting.sound.sound_file)),
            volume=config.alerting.sound.volume,
            enabled=config.alerting.sound.enabled,
        )

    notification = config.alerting.notification
    notifier = Notifier(
        cooldown_seconds=notification.cooldown_ms / 1000.0,
        webhook_url=notification.webhook_url,
        history_size=notification.history_size,
        enabled=notification.enabled,
    )
    gate = AlertGate(
        sound=sound,
        notifier=notifier,
        title=notification.title,
        body=notification.body,
        inactive_sound_policy=config.alerting.inactive_sound_policy,
        sound_cooldown_seconds=config.alerting.sound_cooldown_ms / 1000.0,
    )

    return SessionController(
        camera=camera,
        extractor=extractor,
        classifier=KNNClassifier(k=config.classifier.k),
        alert_gate=gate,
        settings=SessionSettings.from_config(config),
    )


# Command-line interface for testing
if __name__ == "__main__":
    import argparse

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    parser = argparse.ArgumentParser(description="Test session state machine (mock mode)")
    parser.add_argument("--duration", type=int, default=10,
                        help="Seconds of monitoring after training")
    args = parser.parse_args()

    async def main():
        config = Config(mock_mode=True)
        controller = create_controller(config)
        camera = controller.camera

        print("=" * 50)
        print("State Machine Test (Mock Mode)")
        print("=" * 50)

        await controller.initialize()

        camera.simulate_touch(False)
        await controller.start_training(Label.NOT_TOUCHING)
        await controller.wait()

        camera.simulate_touch(True)
        await controller.start_training(Label.TOUCHING)
        await controller.wait()

        camera.simulate_touch(False)
        await controller.start_inference()

        for second in range(args.duration):
            # Touch for the middle third of the run
            camera.simulate_touch(args.duration // 3 <= second < 2 * args.duration // 3)
            await asyncio.sleep(1)
            status = controller.get_status()
            print(
                f"State: {status.state.value:10} | "
                f"Touched: {str(status.touched):5} | "
                f"Sounds: {status.sounds_played} | "
                f"Notifications: {status.notifications_sent}"
            )

        await controller.shutdown()
        print("Test complete")

    asyncio.run(main())
