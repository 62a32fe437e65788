"""Alerting for the face touch monitor.

This module turns per-cycle touch decisions into user-visible side effects:
- Local alert sound via pygame
- Rate-limited notifications (in-app history, optional webhook)
- The AlertGate that keeps both from spamming the user

Usage:
    from facetouch.alerting import AlertGate, AudioAlert, Notifier

    sound = AudioAlert("sounds/alert.wav")
    await sound.initialize()
    gate = AlertGate(sound, Notifier(cooldown_seconds=3.0))
    gate.process(is_touch=True)
    gate.close()
"""

import asyncio
import logging
import os
import sys
from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Deque, List, Optional, Set

# Add project root to path when run as script
if __name__ == "__main__":
    sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import aiohttp

from facetouch.models import AlertState, Notification

logger = logging.getLogger(__name__)

# Try to import pygame for audio
try:
    import pygame
    PYGAME_AVAILABLE = True
except ImportError:
    PYGAME_AVAILABLE = False
    logger.warning("pygame not available - audio alerts disabled")


class AudioAlert:
    """Local alert sound via pygame.

    Each successful play() reports completion exactly once through its
    callback, from an asyncio task that watches the mixer channel.
    """

    WATCH_INTERVAL = 0.05  # Seconds between channel busy checks

    def __init__(self, sound_file: str = "sounds/alert.wav", volume: int = 90, enabled: bool = True):
        """Initialize audio alerting.

        Args:
            sound_file: Path to the alert sound file
            volume: Default volume (0-100)
            enabled: When False the sound never loads and play() always fails
        """
        self.sound_file = sound_file
        self.enabled = enabled
        self._volume = volume / 100.0
        self._initialized = False
        self._sound = None
        self._channel = None
        self._watch_task: Optional[asyncio.Task] = None
        self._on_complete: Optional[Callable[[], None]] = None

    async def initialize(self) -> bool:
        """Initialize pygame mixer and load the sound.

        Returns:
            True if the sound is ready to play
        """
        if not self.enabled:
            logger.info("Alert sound disabled in config")
            return False

        if not PYGAME_AVAILABLE:
            logger.warning("Cannot initialize audio - pygame not available")
            return False

        if self._initialized:
            return self._sound is not None

        try:
            pygame.mixer.init()
            self._initialized = True
        except Exception as e:
            logger.error(f"Failed to initialize pygame mixer: {e}")
            return False

        if not os.path.exists(self.sound_file):
            logger.error(f"Sound file not found: {self.sound_file}")
            return False

        try:
            self._sound = pygame.mixer.Sound(self.sound_file)
            self._sound.set_volume(self._volume)
        except Exception as e:
            logger.error(f"Error loading sound: {e}")
            return False

        logger.info("Audio alerting initialized")
        return True

    @property
    def is_playing(self) -> bool:
        """Whether a play() has not yet reported completion."""
        return self._on_complete is not None

    def play(self, on_complete: Callable[[], None]) -> bool:
        """Start the alert sound.

        Args:
            on_complete: Called once when playback ends (or is stopped)

        Returns:
            True if playback started; on False the callback is never called
        """
        if self._sound is None or self.is_playing:
            return False

        try:
            channel = self._sound.play()
        except Exception as e:
            logger.error(f"Error playing sound: {e}")
            return False

        if channel is None:
            logger.warning("No free mixer channel for alert sound")
            return False

        self._channel = channel
        self._on_complete = on_complete
        self._watch_task = asyncio.get_running_loop().create_task(self._watch(channel))
        return True

    async def _watch(self, channel) -> None:
        while channel.get_busy():
            await asyncio.sleep(self.WATCH_INTERVAL)
        self._watch_task = None
        self._finish()

    def _finish(self) -> None:
        callback = self._on_complete
        self._on_complete = None
        self._channel = None
        if callback is not None:
            callback()

    def stop(self) -> None:
        """Stop any in-flight playback and report its completion."""
        if self._watch_task is not None:
            self._watch_task.cancel()
            self._watch_task = None

        if self._channel is not None:
            self._channel.stop()

        if self.is_playing:
            logger.info("Stopped alert sound")
        self._finish()

    def close(self) -> None:
        """Stop audio and cleanup pygame."""
        self.stop()
        if self._initialized:
            pygame.mixer.quit()
            self._initialized = False
            self._sound = None


class Notifier:
    """Rate-limited notification sink.

    Calls inside the cooldown window are dropped silently. Delivered
    notifications are kept in a short history for the UI and, when a
    webhook URL is configured, POSTed to it in the background.
    """

    def __init__(
        self,
        cooldown_seconds: float = 3.0,
        webhook_url: str = "",
        history_size: int = 20,
        enabled: bool = True,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize notifier.

        Args:
            cooldown_seconds: Minimum time between delivered notifications
            webhook_url: Optional URL receiving a JSON POST per notification
            history_size: Number of recent notifications kept
            enabled: When False every call is dropped
            clock: Time source (injectable for tests)
        """
        self.cooldown_seconds = cooldown_seconds
        self.webhook_url = webhook_url
        self.enabled = enabled
        self._clock = clock

        self._last_sent: Optional[datetime] = None
        self._history: Deque[Notification] = deque(maxlen=history_size)
        self._session: Optional[aiohttp.ClientSession] = None
        self._tasks: Set[asyncio.Task] = set()
        self.sent_count = 0

    @property
    def recent(self) -> List[Notification]:
        """Recently delivered notifications, oldest first."""
        return list(self._history)

    def notify(self, title: str, body: str) -> bool:
        """Deliver a notification unless inside the cooldown window.

        Returns:
            True if delivered, False if dropped
        """
        if not self.enabled:
            return False

        now = self._clock()
        if self._last_sent is not None:
            elapsed = (now - self._last_sent).total_seconds()
            if elapsed < self.cooldown_seconds:
                logger.debug(f"Notification dropped ({elapsed:.2f}s into cooldown)")
                return False

        self._last_sent = now
        notification = Notification(title=title, body=body, timestamp=now)
        self._history.append(notification)
        self.sent_count += 1
        logger.info(f"Notification: {title} - {body}")

        if self.webhook_url:
            self._spawn(self._post(notification))

        return True

    def _spawn(self, coro) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop - webhook notification skipped")
            return

        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _post(self, notification: Notification) -> bool:
        """POST one notification to the webhook.

        Returns:
            True if the webhook accepted it
        """
        try:
            session = await self._get_session()
            async with session.post(
                self.webhook_url,
                json=notification.to_dict(),
                timeout=aiohttp.ClientTimeout(total=10),
            ) as resp:
                if 200 <= resp.status < 300:
                    logger.debug("Webhook notification delivered")
                    return True
                text = await resp.text()
                logger.warning(f"Webhook error {resp.status}: {text}")
                return False
        except Exception as e:
            logger.error(f"Webhook request failed: {e}")
            return False

    async def close(self) -> None:
        """Wait for pending webhook posts and close HTTP session."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class AlertGate:
    """Debounces the per-cycle touch signal into sound and notifications.

    Level-triggered: every qualifying cycle attempts a notification (the
    notifier's cooldown drops most of them) and, if the sound gate is
    open, starts the alert sound. The sound gate closes when playback
    starts and reopens on the sound's completion callback, so a sound is
    never restarted while still playing.

    While the UI is in the background (tab inactive) no sound starts.
    inactive_sound_policy decides what the suppressed attempt does:
        skip  - nothing; the next qualifying cycle after the tab becomes
                active plays the sound
        block - the gate closes and reopens when the tab becomes active,
                so no sound plays on the reactivation itself

    The touched signal is never gated.
    """

    def __init__(
        self,
        sound,
        notifier: Notifier,
        title: str = "Hands off your face!",
        body: str = "You touched your face.",
        inactive_sound_policy: str = "skip",
        sound_cooldown_seconds: float = 0.0,
        on_touched: Optional[Callable[[bool], None]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize alert gate.

        Args:
            sound: Sound sink with play(on_complete) -> bool, stop() and close()
            notifier: Rate-limited notification sink
            title: Notification title
            body: Notification body
            inactive_sound_policy: "skip" or "block"
            sound_cooldown_seconds: Extra quiet period after each sound
            on_touched: Called with the touched signal on every cycle
            clock: Time source (injectable for tests)
        """
        self.sound = sound
        self.notifier = notifier
        self.title = title
        self.body = body
        self.inactive_sound_policy = inactive_sound_policy
        self.sound_cooldown_seconds = sound_cooldown_seconds
        self.on_touched = on_touched
        self._clock = clock

        self._touched = False
        self._can_play_sound = True
        self._tab_active = True
        self._held_while_inactive = False
        self._last_sound_end: Optional[datetime] = None

        # Counters
        self.touches_detected = 0
        self.sounds_played = 0

    # ==================== Properties ====================

    @property
    def touched(self) -> bool:
        """Latest touched signal."""
        return self._touched

    @property
    def can_play_sound(self) -> bool:
        """False while the previous alert sound has not completed."""
        return self._can_play_sound

    @property
    def tab_active(self) -> bool:
        """Whether the UI is in the foreground."""
        return self._tab_active

    @property
    def last_sound_end(self) -> Optional[datetime]:
        """When the last alert sound reported completion."""
        return self._last_sound_end

    @property
    def cooling_until(self) -> Optional[datetime]:
        """End of the post-sound cooldown, if one is running."""
        if self._last_sound_end is None or self.sound_cooldown_seconds <= 0:
            return None
        until = self._last_sound_end + timedelta(seconds=self.sound_cooldown_seconds)
        if self._clock() >= until:
            return None
        return until

    @property
    def alert_state(self) -> AlertState:
        if not self._can_play_sound or self.cooling_until is not None:
            return AlertState.COOLING
        return AlertState.IDLE

    # ==================== Signals ====================

    def set_tab_active(self, active: bool) -> None:
        """Update the UI visibility signal."""
        was_active = self._tab_active
        self._tab_active = active

        if active != was_active:
            logger.debug(f"Tab active: {active}")

        if active and not was_active and self._held_while_inactive:
            # The suppressed attempt "completes" on reactivation
            self._held_while_inactive = False
            self._can_play_sound = True

    def process(self, is_touch: bool) -> None:
        """Handle one inference cycle's touch decision."""
        if not is_touch:
            self._set_touched(False)
            return

        self.touches_detected += 1
        self.notifier.notify(self.title, self.body)

        if self.alert_state == AlertState.IDLE:
            if self._tab_active:
                self._start_sound()
            elif self.inactive_sound_policy == "block":
                self._can_play_sound = False
                self._held_while_inactive = True

        self._set_touched(True)

    def _start_sound(self) -> None:
        self._can_play_sound = False
        if self.sound.play(self._on_sound_complete):
            self.sounds_played += 1
            logger.info("Alert sound started")
        else:
            # No playback means no completion callback
            self._can_play_sound = True

    def _on_sound_complete(self) -> None:
        self._last_sound_end = self._clock()
        self._can_play_sound = True
        logger.debug("Alert sound completed")

    def _set_touched(self, touched: bool) -> None:
        if touched != self._touched:
            logger.info(f"Touched: {touched}")
        self._touched = touched
        if self.on_touched is not None:
            self.on_touched(touched)

    def reset_touched(self) -> None:
        """Clear the touched signal when inference stops."""
        self._touched = False

    def close(self) -> None:
        """Stop any in-flight alert sound and release the sound device."""
        self.sound.close()


# Command-line interface for testing
if __name__ == "__main__":
    import argparse

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    parser = argparse.ArgumentParser(description="Test alerting module")
    parser.add_argument("--sound", default="sounds/alert.wav",
                        help="Alert sound file")
    parser.add_argument("--touches", type=int, default=60,
                        help="Number of simulated touch cycles")
    args = parser.parse_args()

    async def main():
        print("=" * 50)
        print("Alert Gate Test")
        print("=" * 50)

        audio = AudioAlert(args.sound)
        if not await audio.initialize():
            print(f"Note: could not load {args.sound}, running without sound")

        gate = AlertGate(audio, Notifier(cooldown_seconds=3.0))

        # ~60 Hz touch cycles
        for _ in range(args.touches):
            gate.process(True)
            await asyncio.sleep(1 / 60)

        print(f"Touch cycles:  {gate.touches_detected}")
        print(f"Sounds played: {gate.sounds_played}")
        print(f"Notifications: {gate.notifier.sent_count}")

        gate.close()
        await gate.notifier.close()

    asyncio.run(main())
