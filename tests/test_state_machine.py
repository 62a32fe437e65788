"""Tests for SessionController."""

import asyncio

import pytest

from facetouch.config import Config
from facetouch.errors import (
    CameraUnavailable,
    InferenceDegraded,
    ModelLoadFailed,
    NotTrained,
    SessionBusy,
    SessionClosed,
    SessionNotReady,
    TrainingFailed,
)
from facetouch.mocks import MockWebcam, PixelEmbedder
from facetouch.models import Label, SessionState
from facetouch.state_machine import SessionController, create_controller
from tests.conftest import wait_until


async def train_both(controller, camera):
    """Train NOT_TOUCHING then TOUCHING to completion."""
    camera.simulate_touch(False)
    await controller.start_training(Label.NOT_TOUCHING)
    await controller.wait()
    camera.simulate_touch(True)
    await controller.start_training(Label.TOUCHING)
    await controller.wait()
    camera.simulate_touch(False)


class TestInitialize:
    """Test suite for session initialization."""

    @pytest.mark.asyncio
    async def test_initialize_reaches_ready(self, controller, camera, extractor):
        """Test initialize acquires the camera and loads the model."""
        assert controller.state == SessionState.UNINITIALIZED

        await controller.initialize()

        assert controller.state == SessionState.READY
        assert camera.is_open
        assert extractor.is_loaded
        assert controller.latest_frame is not None

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, controller, camera):
        """Test a second initialize is a no-op."""
        await controller.initialize()
        await controller.initialize()

        assert camera.acquire_count == 1
        assert controller.state == SessionState.READY

    @pytest.mark.asyncio
    async def test_concurrent_initialize_shares_attempt(self, controller, camera):
        """Test concurrent initialize calls open the camera once."""
        camera.acquire_delay = 0.02

        await asyncio.gather(controller.initialize(), controller.initialize())

        assert camera.acquire_count == 1
        assert controller.state == SessionState.READY

    @pytest.mark.asyncio
    async def test_camera_unavailable_allows_retry(self, controller, camera):
        """Test a camera failure leaves UNINITIALIZED and a retry succeeds."""
        camera.simulate_unavailable(True)

        with pytest.raises(CameraUnavailable):
            await controller.initialize()
        assert controller.state == SessionState.UNINITIALIZED

        camera.simulate_unavailable(False)
        await controller.initialize()
        assert controller.state == SessionState.READY

    @pytest.mark.asyncio
    async def test_model_failure_releases_camera(self, camera, classifier, gate, settings):
        """Test a model load failure releases the camera it acquired."""
        controller = SessionController(
            camera, PixelEmbedder(fail_load=True), classifier, gate, settings=settings
        )

        with pytest.raises(ModelLoadFailed):
            await controller.initialize()

        assert controller.state == SessionState.UNINITIALIZED
        assert not camera.is_open
        assert camera.release_calls == 1

    @pytest.mark.asyncio
    async def test_overrides_apply(self, controller, notifier):
        """Test initialize overrides replace the default tunables."""
        await controller.initialize(training_sample_count=7, notification_cooldown_ms=500)

        assert controller.settings.training_sample_count == 7
        assert notifier.cooldown_seconds == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_invalid_override_rejected(self, controller):
        """Test bad overrides are rejected before anything is acquired."""
        with pytest.raises(ValueError):
            await controller.initialize(touch_confidence_threshold=1.5)
        with pytest.raises(ValueError):
            await controller.initialize(bogus=1)

        assert controller.state == SessionState.UNINITIALIZED


class TestSubModes:
    """Test suite for training and inference transitions."""

    @pytest.mark.asyncio
    async def test_entry_points_require_ready(self, controller):
        """Test training and inference are rejected before initialize."""
        with pytest.raises(SessionNotReady):
            await controller.start_training(Label.TOUCHING)
        with pytest.raises(SessionNotReady):
            await controller.start_inference()
        assert controller.state == SessionState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_training_completes_and_returns_to_ready(self, controller, classifier):
        """Test a training batch submits every sample then returns to READY."""
        await controller.initialize()

        await controller.start_training(Label.NOT_TOUCHING)
        assert controller.state == SessionState.TRAINING
        assert controller.training_label == Label.NOT_TOUCHING

        await controller.wait()

        assert controller.state == SessionState.READY
        assert controller.training_label is None
        assert controller.train_progress == 100
        assert classifier.example_count(Label.NOT_TOUCHING) == 5

    @pytest.mark.asyncio
    async def test_sub_modes_are_exclusive(self, controller, classifier):
        """Test nothing else starts while training runs."""
        await controller.initialize(sampling_interval_ms=50, training_sample_count=50)

        await controller.start_training(Label.TOUCHING)
        with pytest.raises(SessionBusy):
            await controller.start_training(Label.NOT_TOUCHING)
        with pytest.raises(SessionBusy):
            await controller.start_inference()

        await wait_until(lambda: classifier.example_count(Label.TOUCHING) > 0)
        await controller.stop()

        assert controller.state == SessionState.READY
        assert 0 < classifier.example_count(Label.TOUCHING) < 50
        assert classifier.example_count(Label.NOT_TOUCHING) == 0

    @pytest.mark.asyncio
    async def test_start_inference_without_examples(self, controller):
        """Test inference needs at least one training example."""
        await controller.initialize()

        with pytest.raises(NotTrained):
            await controller.start_inference()

        assert controller.state == SessionState.READY

    @pytest.mark.asyncio
    async def test_inference_detects_touch_and_alerts(self, controller, camera, sound):
        """Test a trained session raises the touched signal and plays once."""
        await controller.initialize()
        await train_both(controller, camera)

        await controller.start_inference()
        assert controller.state == SessionState.INFERRING
        await controller.start_inference()  # no-op

        await asyncio.sleep(0.02)
        assert not controller.touched
        assert sound.plays == 0

        camera.simulate_touch(True)
        await wait_until(lambda: controller.touched)
        await asyncio.sleep(0.02)
        assert sound.plays == 1

        camera.simulate_touch(False)
        await wait_until(lambda: not controller.touched)

        await controller.stop()
        assert controller.state == SessionState.READY
        assert controller.get_status().last_prediction is not None

    @pytest.mark.asyncio
    async def test_training_while_inferring(self, controller, camera, classifier):
        """Test start_training stops inference first, trains, then returns to READY."""
        await controller.initialize()
        await train_both(controller, camera)
        await controller.start_inference()
        await asyncio.sleep(0.02)

        await controller.start_training(Label.TOUCHING)
        assert controller.state == SessionState.TRAINING

        await controller.wait()

        assert controller.state == SessionState.READY
        assert classifier.example_count(Label.TOUCHING) == 10
        assert not controller.touched

    @pytest.mark.asyncio
    async def test_training_failure_reported(self, controller, camera, classifier):
        """Test a failed batch is reported by wait() and the session stays usable."""
        await controller.initialize()
        camera.simulate_drop(1)

        await controller.start_training(Label.TOUCHING)
        with pytest.raises(TrainingFailed):
            await controller.wait()

        assert controller.state == SessionState.READY
        assert "failed" in controller.get_status().last_error
        assert classifier.example_count() == 0

    @pytest.mark.asyncio
    async def test_inference_degraded_reported(self, controller, camera):
        """Test repeated frame failures end inference and return to READY."""
        await controller.initialize()
        await train_both(controller, camera)
        camera.simulate_drop(10)

        await controller.start_inference()
        with pytest.raises(InferenceDegraded):
            await controller.wait()

        assert controller.state == SessionState.READY
        assert controller.last_error is not None

    @pytest.mark.asyncio
    async def test_stop_when_idle_is_noop(self, controller):
        """Test stop outside a sub-mode does nothing."""
        await controller.initialize()
        await controller.stop()
        assert controller.state == SessionState.READY


class TestShutdown:
    """Test suite for shutdown."""

    @pytest.mark.asyncio
    async def test_shutdown_during_training_releases_camera_once(self, controller, camera, sound):
        """Test shutdown mid-training releases the camera exactly once."""
        await controller.initialize(sampling_interval_ms=50, training_sample_count=50)
        await controller.start_training(Label.NOT_TOUCHING)
        await asyncio.sleep(0.01)

        await controller.shutdown()
        await controller.shutdown()

        assert controller.state == SessionState.TERMINATED
        assert camera.release_calls == 1
        assert not camera.is_open
        assert sound.closed

    @pytest.mark.asyncio
    async def test_shutdown_during_inference_releases_camera_once(self, controller, camera, sound):
        """Test shutdown mid-inference stops the sound and releases the camera once."""
        await controller.initialize()
        await train_both(controller, camera)
        camera.simulate_touch(True)
        await controller.start_inference()
        await wait_until(lambda: sound.is_playing)

        await controller.shutdown()

        assert controller.state == SessionState.TERMINATED
        assert camera.release_calls == 1
        assert not sound.is_playing

    @pytest.mark.asyncio
    async def test_shutdown_during_initialize(self, controller, camera):
        """Test shutdown abandons an in-flight initialize."""
        camera.acquire_delay = 0.5
        init = asyncio.ensure_future(controller.initialize())
        await asyncio.sleep(0.01)

        await controller.shutdown()

        with pytest.raises(SessionClosed):
            await init
        assert controller.state == SessionState.TERMINATED
        assert camera.release_calls == 1
        assert camera.acquire_count == 0

    @pytest.mark.asyncio
    async def test_entry_points_closed_after_shutdown(self, controller):
        """Test every entry point except shutdown raises SessionClosed."""
        await controller.initialize()
        await controller.shutdown()

        with pytest.raises(SessionClosed):
            await controller.initialize()
        with pytest.raises(SessionClosed):
            await controller.start_training(Label.TOUCHING)
        with pytest.raises(SessionClosed):
            await controller.start_inference()
        with pytest.raises(SessionClosed):
            await controller.stop()

    @pytest.mark.asyncio
    async def test_shutdown_before_initialize(self, controller, camera):
        """Test shutdown from UNINITIALIZED releases nothing."""
        await controller.shutdown()

        assert controller.state == SessionState.TERMINATED
        assert camera.release_calls == 0


class TestStatus:
    """Test suite for the status snapshot."""

    @pytest.mark.asyncio
    async def test_status_guides_training(self, controller, camera):
        """Test next_step walks the user through both labels."""
        assert "Initialize" in controller.get_status().next_step

        await controller.initialize()
        assert Label.NOT_TOUCHING.value in controller.next_step

        camera.simulate_touch(False)
        await controller.start_training(Label.NOT_TOUCHING)
        await controller.wait()
        assert Label.TOUCHING.value in controller.next_step

        status = controller.get_status().to_dict()
        assert status["state"] == "ready"
        assert status["state_since"] is not None
        assert status["training"]["example_counts"] == {"not_touching": 5, "touching": 0}
        assert status["alerting"]["tab_active"] is True

    @pytest.mark.asyncio
    @pytest.mark.asyncio
    async def test_state_since_tracks_transitions(self, controller):
        """Test the status reports when the current state was entered."""
        before = controller.get_status().state_since
        await asyncio.sleep(0.01)

        await controller.initialize()
        after = controller.get_status().state_since

        assert after > before
        assert controller.get_status().to_dict()["state_since"] == after.isoformat()

    @pytest.mark.asyncio
    async def test_tab_visibility_forwarded(self, controller, gate):
        """Test set_tab_active reaches the alert gate."""
        controller.set_tab_active(False)
        assert not gate.tab_active
        assert controller.get_status().tab_active is False


class TestCreateController:
    """Test suite for create_controller."""

    @pytest.mark.asyncio
    async def test_mock_mode_runs_end_to_end(self):
        """Test a mock-mode controller trains and shuts down."""
        config = Config(mock_mode=True)
        config.training.sample_count = 3
        config.training.sampling_interval_ms = 0

        controller = create_controller(config)
        assert isinstance(controller.camera, MockWebcam)

        await controller.initialize()
        await controller.start_training(Label.NOT_TOUCHING)
        await controller.wait()

        assert controller.classifier.example_count() == 3

        await controller.shutdown()
        assert controller.state == SessionState.TERMINATED
