"""
miniaudio Media Engine Implementation

Decodes the whole track into float32 frames in memory and renders them
through a miniaudio playback device. The same engine runs without an
output device as a silent probe: the playhead then advances with the
clock and sample_level() reads the decoded signal under it, which is what
loudness analysis needs.
"""

import array
import logging
import math
import threading
import time
from typing import Any, Callable, Generator, Optional

from core.audio_engine import AudioEngineBase, PlayerState

logger = logging.getLogger(__name__)

# Try importing miniaudio (for probe method)
try:
    import miniaudio
    MINIAUDIO_AVAILABLE = True
except ImportError:
    MINIAUDIO_AVAILABLE = False
    logger.warning("miniaudio library not installed, MiniaudioEngine unavailable")


class UnsupportedFormatError(Exception):
    """
    Unsupported audio format exception

    Raised when miniaudio cannot decode the given bytes.
    """

    def __init__(self, reason: str = ""):
        self.reason = reason
        super().__init__("Unsupported audio data" + (f" ({reason})" if reason else ""))


class MiniaudioEngine(AudioEngineBase):
    """
    Media engine based on miniaudio

    Args:
        output: Open a playback device. False creates a silent engine whose
            playhead follows the clock (used as an analysis probe).
        sample_rate: Rate everything is decoded to
        channels: Channel count everything is decoded to
    """

    DEFAULT_CHUNK_FRAMES = 1024

    @staticmethod
    def probe() -> bool:
        """Detect if miniaudio dependency is available"""
        return MINIAUDIO_AVAILABLE

    def __init__(
        self,
        output: bool = True,
        sample_rate: int = 44100,
        channels: int = 2,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not MINIAUDIO_AVAILABLE:
            raise ImportError("miniaudio library not installed")

        super().__init__(clock)
        self._output = output
        self._sample_rate = sample_rate
        self._channels = channels
        self._device: Optional[Any] = None

        self._samples: Optional[array.array] = None
        self._total_frames: int = 0
        # Playhead in frames (float so non-unity playback rates accumulate exactly)
        self._position: float = 0.0

        # Silent mode clock anchor
        self._anchor_time: float = 0.0
        self._anchor_position: float = 0.0

        self._lock = threading.Lock()

    # ===== Loading =====

    def load(self, data: bytes) -> None:
        """Decode bytes into memory, replacing the previous track"""
        self.unload()
        try:
            decoded = miniaudio.decode(
                data,
                output_format=miniaudio.SampleFormat.FLOAT32,
                nchannels=self._channels,
                sample_rate=self._sample_rate,
            )
        except miniaudio.DecodeError as e:
            self._state = PlayerState.ERROR
            raise UnsupportedFormatError(str(e)) from e

        with self._lock:
            self._samples = array.array('f', decoded.samples)
            self._total_frames = len(self._samples) // self._channels
            self._position = 0.0
        self._loaded(self.get_duration())

    def unload(self) -> None:
        """Stop rendering and drop the decoded buffer"""
        self._stop_device()
        with self._lock:
            self._samples = None
            self._total_frames = 0
            self._position = 0.0
        self._state = PlayerState.IDLE

    # ===== Transport =====

    def play(self) -> bool:
        if self._samples is None:
            return False
        if self._state == PlayerState.PLAYING:
            return True

        if self._output:
            try:
                if self._device is None:
                    self._device = miniaudio.PlaybackDevice(
                        output_format=miniaudio.SampleFormat.FLOAT32,
                        nchannels=self._channels,
                        sample_rate=self._sample_rate,
                    )
                stream = self._create_stream()
                self._device.start(stream)
            except Exception as e:
                self._state = PlayerState.ERROR
                logger.error("Playback failed: %s", e)
                return False
        else:
            self._anchor_time = self._clock()
            self._anchor_position = self._position

        self._state = PlayerState.PLAYING
        return True

    def pause(self) -> None:
        if self._state != PlayerState.PLAYING:
            return
        if self._output:
            self._stop_device()
        else:
            self._position = self._clock_position()
        self._state = PlayerState.PAUSED

    def stop(self) -> None:
        if self._samples is None:
            return
        self._stop_device()
        with self._lock:
            self._position = 0.0
        self._state = PlayerState.STOPPED

    def _seek_to(self, seconds: float) -> None:
        frame = min(float(self._total_frames), seconds * self._sample_rate)
        with self._lock:
            self._position = frame
        if not self._output and self._state == PlayerState.PLAYING:
            self._anchor_time = self._clock()
            self._anchor_position = frame

    def _finish(self) -> None:
        self._stop_device()
        with self._lock:
            self._position = float(self._total_frames)

    def _stop_device(self) -> None:
        if self._device is not None:
            try:
                self._device.stop()
            except Exception as e:
                logger.debug("Device stop failed: %s", e)

    # ===== Position =====

    def _clock_position(self) -> float:
        elapsed = max(0.0, self._clock() - self._anchor_time)
        position = self._anchor_position + elapsed * self._sample_rate * self._playback_rate
        return min(position, float(self._total_frames))

    def _current_frame(self) -> float:
        if not self._output and self._state == PlayerState.PLAYING:
            return self._clock_position()
        return self._position

    def get_position(self) -> float:
        if self._sample_rate <= 0:
            return 0.0
        return self._current_frame() / self._sample_rate

    def get_duration(self) -> float:
        if self._sample_rate <= 0:
            return 0.0
        return self._total_frames / self._sample_rate

    def _has_reached_end(self) -> bool:
        return self._total_frames > 0 and self._current_frame() >= self._total_frames

    def set_playback_rate(self, rate: float) -> None:
        # Re-anchor so the silent playhead does not jump
        if not self._output and self._state == PlayerState.PLAYING:
            self._anchor_position = self._clock_position()
            self._anchor_time = self._clock()
        super().set_playback_rate(rate)

    # ===== Level sampling =====

    def supports_level_sampling(self) -> bool:
        return True

    def sample_level(self, window_seconds: float) -> float:
        """RMS of the raw decoded signal in the window ending at the playhead"""
        samples = self._samples
        if samples is None:
            return 0.0
        end = int(self._current_frame())
        start = max(0, end - int(window_seconds * self._sample_rate))
        window = samples[start * self._channels:end * self._channels]
        if not window:
            return 0.0
        return math.sqrt(sum(s * s for s in window) / len(window))

    # ===== Rendering =====

    def _create_stream(self) -> Generator[array.array, int, None]:
        """Audio stream generator fed to the playback device"""
        channels = self._channels

        def stream_generator():
            framecount = yield
            while True:
                requested = framecount or self.DEFAULT_CHUNK_FRAMES
                chunk = self._render_chunk(requested)
                if chunk is None:
                    # Past the end: feed silence until tick() stops the device
                    chunk = array.array('f', bytes(4 * requested * channels))
                framecount = yield chunk

        generator = stream_generator()
        next(generator)
        return generator

    def _render_chunk(self, frames: int) -> Optional[array.array]:
        channels = self._channels
        with self._lock:
            samples = self._samples
            if samples is None or self._position >= self._total_frames:
                return None
            rate = self._playback_rate
            start = self._position

            if rate == 1.0:
                first = int(start)
                last = min(first + frames, self._total_frames)
                chunk = array.array('f', samples[first * channels:last * channels])
                self._position = float(last)
            else:
                chunk = array.array('f')
                position = start
                for _ in range(frames):
                    index = int(position)
                    if index >= self._total_frames:
                        break
                    chunk.extend(samples[index * channels:(index + 1) * channels])
                    position += rate
                self._position = min(position, float(self._total_frames))

        chunk_frames = len(chunk) // channels
        if chunk_frames == 0:
            return None

        # Interpolate gain across the chunk so ramps stay smooth
        now = self._clock()
        g0 = self.effective_gain(now)
        g1 = self.effective_gain(now + chunk_frames / self._sample_rate)
        if g0 != 1.0 or g1 != 1.0:
            step = (g1 - g0) / chunk_frames
            for frame in range(chunk_frames):
                g = g0 + step * frame
                base = frame * channels
                for c in range(channels):
                    chunk[base + c] *= g
        return chunk

    def release(self) -> None:
        """Clean up resources"""
        self.unload()
        if self._device is not None:
            try:
                self._device.close()
            except Exception as e:
                logger.warning("miniaudio cleanup failed: %s", e)
            self._device = None

    def get_engine_name(self) -> str:
        return "miniaudio"
