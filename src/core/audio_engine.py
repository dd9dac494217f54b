"""
Audio Engine Module - Black-box media engine contract

An engine decodes and renders one track at a time. The rest of the
application only sees a narrow surface: load/play/pause/seek, volume,
playback rate and output gain, and four events (timeupdate,
loadedmetadata, ended, seeked).

Events are emitted from the thread that calls into the engine. The
playback session drives tick() from the asyncio loop so all callbacks land
on the loop thread.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional
from enum import Enum
import io
import logging
import threading
import time

logger = logging.getLogger(__name__)


class PlayerState(Enum):
    """Player Status"""
    IDLE = "idle"           # Nothing loaded
    PLAYING = "playing"     # Playing
    PAUSED = "paused"       # Paused
    STOPPED = "stopped"     # Loaded, not playing (also after natural end)
    ERROR = "error"         # Error


class MediaEvent(Enum):
    """Events emitted by a media engine"""
    TIME_UPDATE = "timeupdate"            # (position_seconds, duration_seconds)
    LOADED_METADATA = "loadedmetadata"    # (duration_seconds,)
    ENDED = "ended"                       # ()
    SEEKED = "seeked"                     # (position_seconds,)


class GainRamp:
    """
    Linearly interpolated gain value

    ramp_to() schedules a transition from the current value to a target over
    a fixed duration; value_at() evaluates it against the clock. Scheduling a
    new ramp while one is running starts from the instantaneous value.
    """

    def __init__(self, value: float = 1.0, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._start_value = value
        self._target = value
        self._t0 = 0.0
        self._t1 = 0.0

    @property
    def target(self) -> float:
        return self._target

    def value_at(self, now: Optional[float] = None) -> float:
        if now is None:
            now = self._clock()
        if now >= self._t1 or self._t1 <= self._t0:
            return self._target
        if now <= self._t0:
            return self._start_value
        fraction = (now - self._t0) / (self._t1 - self._t0)
        return self._start_value + (self._target - self._start_value) * fraction

    def set(self, value: float) -> None:
        """Jump to a value immediately"""
        self._start_value = value
        self._target = value
        self._t0 = self._t1 = self._clock()

    def ramp_to(self, target: float, duration: float) -> None:
        now = self._clock()
        if duration <= 0:
            self.set(target)
            return
        self._start_value = self.value_at(now)
        self._target = target
        self._t0 = now
        self._t1 = now + duration

    def is_ramping(self, now: Optional[float] = None) -> bool:
        if now is None:
            now = self._clock()
        return self._t0 <= now < self._t1


class AudioEngineBase(ABC):
    """
    Abstract Base Class for Media Engines

    Subclasses implement decoding/rendering; this class owns the shared
    state (volume, rate, gain ramp), event dispatch and end-of-track
    detection.
    """

    MIN_PLAYBACK_RATE = 0.25
    MAX_PLAYBACK_RATE = 4.0

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._state: PlayerState = PlayerState.IDLE
        self._volume: float = 1.0
        self._muted: bool = False
        self._playback_rate: float = 1.0
        self._gain = GainRamp(1.0, clock)
        self._listeners: Dict[MediaEvent, List[Callable]] = {}
        self._end_reported = False

    @staticmethod
    def probe() -> bool:
        """
        Check if engine dependencies are available (without touching playback state)

        Returns:
            bool: True if dependencies are available
        """
        return False

    # ===== Events =====

    def on(self, event: MediaEvent, callback: Callable) -> None:
        """Register an event listener"""
        self._listeners.setdefault(event, []).append(callback)

    def off(self, event: MediaEvent, callback: Callable) -> None:
        """Remove an event listener"""
        callbacks = self._listeners.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def _emit(self, event: MediaEvent, *args) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(*args)
            except Exception as e:
                logger.error("Media event listener failed (%s): %s", event.value, e)

    # ===== State =====

    @property
    def state(self) -> PlayerState:
        """Get the current playback state"""
        return self._state

    @property
    def is_loaded(self) -> bool:
        return self._state not in (PlayerState.IDLE, PlayerState.ERROR)

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def playback_rate(self) -> float:
        return self._playback_rate

    @property
    def gain(self) -> float:
        """Instantaneous output gain (normalization stage)"""
        return self._gain.value_at()

    @property
    def gain_target(self) -> float:
        """Gain the current ramp is heading to"""
        return self._gain.target

    @property
    def current_time(self) -> float:
        return self.get_position()

    @current_time.setter
    def current_time(self, seconds: float) -> None:
        self.seek(seconds)

    @property
    def duration(self) -> float:
        return self.get_duration()

    def effective_gain(self, now: Optional[float] = None) -> float:
        """Linear multiplier applied to output samples"""
        if self._muted:
            return 0.0
        return self._volume * self._gain.value_at(now)

    # ===== Controls =====

    def set_volume(self, volume: float) -> None:
        """Set the volume (0.0 - 1.0)"""
        self._volume = max(0.0, min(1.0, volume))
        self._apply_output_gain()

    def set_muted(self, muted: bool) -> None:
        self._muted = bool(muted)
        self._apply_output_gain()

    def set_playback_rate(self, rate: float) -> None:
        self._playback_rate = max(self.MIN_PLAYBACK_RATE, min(self.MAX_PLAYBACK_RATE, rate))

    def set_gain(self, value: float) -> None:
        """Set the output gain immediately"""
        self._gain.set(value)
        self._apply_output_gain()

    def ramp_gain(self, target: float, duration: float) -> None:
        """Ramp the output gain to target over duration seconds (non-blocking)"""
        self._gain.ramp_to(target, duration)
        self._apply_output_gain()

    def seek(self, seconds: float) -> None:
        """Seek to a position and emit seeked"""
        if not self.is_loaded:
            return
        duration = self.get_duration()
        target = max(0.0, float(seconds))
        if duration > 0:
            target = min(target, duration)
        self._seek_to(target)
        self._end_reported = False
        self._emit(MediaEvent.SEEKED, target)

    def tick(self) -> None:
        """
        Periodic update, called from the event loop.

        Emits timeupdate while playing and ended once when the end of the
        track is reached.
        """
        self._apply_output_gain()
        if self._state != PlayerState.PLAYING:
            return

        position = self.get_position()
        duration = self.get_duration()
        self._emit(MediaEvent.TIME_UPDATE, position, duration)

        if not self._end_reported and self._has_reached_end():
            self._end_reported = True
            self._finish()
            self._state = PlayerState.STOPPED
            self._emit(MediaEvent.ENDED)

    def _has_reached_end(self) -> bool:
        duration = self.get_duration()
        return duration > 0 and self.get_position() >= duration

    def _finish(self) -> None:
        """Hook run when natural end is detected"""

    def _apply_output_gain(self) -> None:
        """Hook for backends that need the gain pushed to them"""

    def _loaded(self, duration: float) -> None:
        """Common bookkeeping after a successful load"""
        self._state = PlayerState.STOPPED
        self._end_reported = False
        self._emit(MediaEvent.LOADED_METADATA, duration)

    # ===== Level sampling (analysis) =====

    def supports_level_sampling(self) -> bool:
        return False

    def sample_level(self, window_seconds: float) -> float:
        """
        RMS amplitude of the most recently rendered window

        Args:
            window_seconds: Window length ending at the current position

        Returns:
            float: Linear RMS amplitude of the raw (pre-gain) signal
        """
        raise NotImplementedError(f"{self.get_engine_name()} cannot sample signal levels")

    # ===== Backend hooks =====

    @abstractmethod
    def load(self, data: bytes) -> None:
        """
        Load encoded audio bytes, releasing anything loaded before.

        Raises:
            Exception: If the data cannot be decoded
        """

    @abstractmethod
    def play(self) -> bool:
        """Start or resume playback"""

    @abstractmethod
    def pause(self) -> None:
        """Pause playback"""

    @abstractmethod
    def stop(self) -> None:
        """Stop playback and rewind"""

    @abstractmethod
    def _seek_to(self, seconds: float) -> None:
        """Backend seek (already clamped)"""

    @abstractmethod
    def get_position(self) -> float:
        """Current position in seconds"""

    @abstractmethod
    def get_duration(self) -> float:
        """Duration in seconds (0 when unknown)"""

    @abstractmethod
    def unload(self) -> None:
        """Drop the loaded track and its decode buffer; the engine stays usable"""

    @abstractmethod
    def release(self) -> None:
        """Release decoded buffers and devices; the engine is not reused"""

    def get_engine_name(self) -> str:
        return "base"


class PygameAudioEngine(AudioEngineBase):
    """
    Media engine based on pygame.mixer.music

    Streams from an in-memory buffer. Cannot sample signal levels, so it is
    only used for audible playback, never as an analysis probe.
    """

    _initialized = False
    _mixer_refcount = 0
    _lock = threading.Lock()

    @staticmethod
    def probe() -> bool:
        """Check if pygame dependency is available (without initializing mixer)"""
        try:
            import pygame
            return hasattr(pygame, 'mixer')
        except ImportError:
            return False

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        super().__init__(clock)
        self._buffer: Optional[io.BytesIO] = None
        self._duration: float = 0.0
        self._offset: float = 0.0
        self._cleaned_up = False
        self._acquire_mixer()

    def _acquire_mixer(self) -> None:
        """Initialize global pygame mixer and use reference counting to avoid accidental shutdown."""
        with PygameAudioEngine._lock:
            if not PygameAudioEngine._initialized:
                import pygame
                pygame.mixer.init(frequency=44100, size=-16, channels=2, buffer=2048)
                PygameAudioEngine._initialized = True
            PygameAudioEngine._mixer_refcount += 1

    def load(self, data: bytes) -> None:
        import pygame

        self.unload()
        buffer = io.BytesIO(data)
        try:
            pygame.mixer.music.load(buffer)
        except Exception:
            self._state = PlayerState.ERROR
            raise
        self._buffer = buffer
        self._duration = self._probe_duration(data)
        self._offset = 0.0
        self._loaded(self._duration)

    @staticmethod
    def _probe_duration(data: bytes) -> float:
        try:
            from mutagen import File
            audio = File(io.BytesIO(data))
            if audio and audio.info:
                return float(audio.info.length)
        except Exception as e:
            logger.debug("Duration probe failed: %s", e)
        return 0.0

    def play(self) -> bool:
        import pygame

        if self._buffer is None:
            return False
        if self._state == PlayerState.PAUSED:
            pygame.mixer.music.unpause()
        else:
            pygame.mixer.music.play(start=self._offset)
        self._state = PlayerState.PLAYING
        self._apply_output_gain()
        return True

    def pause(self) -> None:
        import pygame

        if self._state == PlayerState.PLAYING:
            pygame.mixer.music.pause()
            self._state = PlayerState.PAUSED

    def stop(self) -> None:
        import pygame

        if self._buffer is not None:
            pygame.mixer.music.stop()
            self._state = PlayerState.STOPPED
        self._offset = 0.0

    def _seek_to(self, seconds: float) -> None:
        import pygame

        self._offset = seconds
        if self._state == PlayerState.PLAYING:
            pygame.mixer.music.play(start=seconds)
        elif self._state == PlayerState.PAUSED:
            # Resume from the new offset on the next play()
            pygame.mixer.music.stop()
            self._state = PlayerState.STOPPED

    def get_position(self) -> float:
        import pygame

        if self._state in (PlayerState.PLAYING, PlayerState.PAUSED):
            elapsed = max(0, pygame.mixer.music.get_pos()) / 1000.0
            return self._offset + elapsed
        return self._offset

    def get_duration(self) -> float:
        return self._duration

    def _has_reached_end(self) -> bool:
        import pygame

        return not pygame.mixer.music.get_busy()

    def _apply_output_gain(self) -> None:
        if self._buffer is None:
            return
        import pygame

        # mixer volume is capped at 1.0, so boosts above unity saturate here
        pygame.mixer.music.set_volume(max(0.0, min(1.0, self.effective_gain())))

    def unload(self) -> None:
        import pygame

        if self._buffer is not None:
            pygame.mixer.music.stop()
            pygame.mixer.music.unload()
            self._buffer.close()
            self._buffer = None
        self._state = PlayerState.IDLE

    def release(self) -> None:
        self.unload()
        with PygameAudioEngine._lock:
            if self._cleaned_up:
                return
            self._cleaned_up = True
            if PygameAudioEngine._mixer_refcount > 0:
                PygameAudioEngine._mixer_refcount -= 1
            should_quit = PygameAudioEngine._initialized and PygameAudioEngine._mixer_refcount == 0

        if should_quit:
            import pygame
            try:
                pygame.mixer.quit()
            except Exception as e:
                logger.warning("Pygame cleanup failed: %s", e)
            finally:
                with PygameAudioEngine._lock:
                    PygameAudioEngine._initialized = False

    def get_engine_name(self) -> str:
        return "pygame"
