"""
Playback Session Module

Owns the single active media engine and translates its raw events into
semantic callbacks for the queue.
"""

from typing import Callable, List, Optional
import asyncio
import logging

from core.audio_engine import AudioEngineBase, MediaEvent, PlayerState
from core.event_bus import EventBus, EventType
from models.playback import PlaybackState
from services.library_service import TrackUnavailable

logger = logging.getLogger(__name__)


class PlaybackSession:
    """
    Playback Session

    Wraps load/play/pause/seek on one engine. Every load() bumps a
    generation counter; engine events are bound to the generation they
    were registered for and anything from a superseded load is dropped.

    Example:
        session = PlaybackSession(engine, library, event_bus)
        session.set_on_track_ended(queue.on_track_ended)
        session.start()

        await session.load("song.mp3")
        session.play()
    """

    def __init__(
        self,
        engine: AudioEngineBase,
        library,
        event_bus: Optional[EventBus] = None,
        default_volume: float = 0.7,
        playback_rate: float = 1.0,
        poll_interval: float = 0.25,
    ):
        self._engine = engine
        self._library = library
        self._event_bus = event_bus
        self._poll_interval = poll_interval

        self._current_track_id: Optional[str] = None
        self._generation = 0
        self._handlers: List[tuple] = []
        self._seek_waiters: List[asyncio.Future] = []
        self._poll_task: Optional[asyncio.Task] = None

        self._on_track_ended: Optional[Callable[[], None]] = None
        self._on_position_changed: Optional[Callable[[float, float], None]] = None
        self._on_duration_known: Optional[Callable[[float], None]] = None

        self._engine.set_volume(default_volume)
        self._engine.set_playback_rate(playback_rate)

    # ===== Callbacks =====

    def set_on_track_ended(self, callback: Optional[Callable[[], None]]) -> None:
        self._on_track_ended = callback

    def set_on_position_changed(self, callback: Optional[Callable[[float, float], None]]) -> None:
        self._on_position_changed = callback

    def set_on_duration_known(self, callback: Optional[Callable[[float], None]]) -> None:
        self._on_duration_known = callback

    def _publish(self, event_type: EventType, data=None) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event_type, data)

    # ===== Properties =====

    @property
    def engine(self) -> AudioEngineBase:
        return self._engine

    @property
    def current_track_id(self) -> Optional[str]:
        return self._current_track_id

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_loaded(self) -> bool:
        return self._current_track_id is not None and self._engine.is_loaded

    @property
    def is_playing(self) -> bool:
        return self._engine.state == PlayerState.PLAYING

    @property
    def is_paused(self) -> bool:
        return self._engine.state == PlayerState.PAUSED

    @property
    def position(self) -> float:
        return self._engine.current_time if self.is_loaded else 0.0

    @property
    def duration(self) -> float:
        return self._engine.duration if self.is_loaded else 0.0

    @property
    def state(self) -> PlaybackState:
        """Snapshot of the current playback state"""
        return PlaybackState(
            track_id=self._current_track_id,
            position_seconds=self.position,
            duration_seconds=self.duration,
            is_playing=self.is_playing,
            volume=self._engine.volume,
            muted=self._engine.muted,
            playback_rate=self._engine.playback_rate,
            gain=self._engine.gain,
        )

    # ===== Loading =====

    async def load(self, track_id: str) -> bytes:
        """
        Fetch a track from the library and hand it to the engine

        The previous track's buffer is released before the new one is
        allocated. If another load() starts while this one is fetching,
        this one gives up without touching the engine.

        Args:
            track_id: Library track id

        Returns:
            bytes: The encoded audio bytes

        Raises:
            TrackUnavailable: If the bytes cannot be fetched or decoded
        """
        self._generation += 1
        generation = self._generation

        self._detach_handlers()
        self._engine.unload()
        self._current_track_id = None
        self._cancel_seek_waiters()

        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(None, self._library.fetch_track_bytes, track_id)
        except TrackUnavailable:
            if generation != self._generation:
                logger.debug("Load of %s superseded", track_id)
                return b""
            raise

        if generation != self._generation:
            logger.debug("Load of %s superseded", track_id)
            return data

        self._attach_handlers(generation)
        try:
            self._engine.load(data)
        except Exception as e:
            self._detach_handlers()
            logger.error("Failed to decode %s: %s", track_id, e)
            raise TrackUnavailable(track_id, str(e)) from e

        self._current_track_id = track_id
        self._publish(EventType.TRACK_LOADED, {
            "track_id": track_id,
            "duration": self._engine.duration,
        })
        return data

    def _attach_handlers(self, generation: int) -> None:
        handlers = [
            (MediaEvent.TIME_UPDATE, lambda pos, dur: self._handle_time_update(generation, pos, dur)),
            (MediaEvent.LOADED_METADATA, lambda dur: self._handle_loaded_metadata(generation, dur)),
            (MediaEvent.ENDED, lambda: self._handle_ended(generation)),
            (MediaEvent.SEEKED, lambda pos: self._handle_seeked(generation, pos)),
        ]
        for event, handler in handlers:
            self._engine.on(event, handler)
        self._handlers = handlers

    def _detach_handlers(self) -> None:
        for event, handler in self._handlers:
            self._engine.off(event, handler)
        self._handlers = []

    # ===== Engine events =====

    def _handle_time_update(self, generation: int, position: float, duration: float) -> None:
        if generation != self._generation:
            return
        if self._on_position_changed:
            self._on_position_changed(position, duration)
        self._publish(EventType.POSITION_CHANGED, {"position": position, "duration": duration})

    def _handle_loaded_metadata(self, generation: int, duration: float) -> None:
        if generation != self._generation:
            return
        if self._on_duration_known:
            self._on_duration_known(duration)
        self._publish(EventType.DURATION_KNOWN, duration)

    def _handle_ended(self, generation: int) -> None:
        if generation != self._generation:
            logger.debug("Dropping ended event from superseded load")
            return
        if self._on_track_ended:
            self._on_track_ended()

    def _handle_seeked(self, generation: int, position: float) -> None:
        if generation != self._generation:
            return
        waiters, self._seek_waiters = self._seek_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(position)

    def _cancel_seek_waiters(self) -> None:
        waiters, self._seek_waiters = self._seek_waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.cancel()

    # ===== Transport =====

    def play(self) -> bool:
        """Start or resume playback; False without a loaded track"""
        if not self.is_loaded:
            return False
        was_paused = self.is_paused
        if not self._engine.play():
            self._publish(EventType.ERROR_OCCURRED, {
                "source": "PlaybackSession",
                "error": f"Playback failed: {self._current_track_id}",
            })
            return False
        if was_paused:
            self._publish(EventType.TRACK_RESUMED, self._current_track_id)
        return True

    def pause(self) -> None:
        if self.is_playing:
            self._engine.pause()
            self._publish(EventType.TRACK_PAUSED, self._current_track_id)

    def stop(self) -> None:
        """Stop playback and release the loaded buffer"""
        self._generation += 1
        self._detach_handlers()
        self._cancel_seek_waiters()
        self._engine.unload()
        self._current_track_id = None

    def restart(self) -> bool:
        """Replay the loaded track from zero"""
        if not self.is_loaded:
            return False
        self.seek(0.0)
        return self.play()

    def seek(self, seconds: float) -> float:
        """
        Seek within the loaded track

        Args:
            seconds: Target position, clamped to [0, duration]

        Returns:
            float: The clamped position
        """
        if not self.is_loaded:
            return 0.0
        target = max(0.0, float(seconds))
        duration = self._engine.duration
        if duration > 0:
            target = min(target, duration)
        self._engine.seek(target)
        return target

    async def seek_and_wait(self, seconds: float, timeout: Optional[float] = 5.0) -> float:
        """Seek and suspend until the engine reports the seek as complete"""
        if not self.is_loaded:
            return 0.0
        waiter = asyncio.get_running_loop().create_future()
        self._seek_waiters.append(waiter)
        self.seek(seconds)
        return await asyncio.wait_for(waiter, timeout)

    # ===== Output =====

    @property
    def volume(self) -> float:
        return self._engine.volume

    @property
    def muted(self) -> bool:
        return self._engine.muted

    @property
    def playback_rate(self) -> float:
        return self._engine.playback_rate

    def set_volume(self, volume: float) -> None:
        """Set the volume (0.0 - 1.0)"""
        self._engine.set_volume(volume)
        self._publish(EventType.VOLUME_CHANGED, {"volume": self._engine.volume, "muted": self._engine.muted})

    def set_muted(self, muted: bool) -> None:
        self._engine.set_muted(muted)
        self._publish(EventType.VOLUME_CHANGED, {"volume": self._engine.volume, "muted": self._engine.muted})

    def toggle_mute(self) -> bool:
        """Toggle mute; the volume underneath is kept. Returns the new muted state."""
        self.set_muted(not self._engine.muted)
        return self._engine.muted

    def set_playback_rate(self, rate: float) -> float:
        self._engine.set_playback_rate(rate)
        self._publish(EventType.PLAYBACK_RATE_CHANGED, self._engine.playback_rate)
        return self._engine.playback_rate

    def set_gain(self, value: float) -> None:
        self._engine.set_gain(value)

    def ramp_gain(self, target: float, duration: float) -> None:
        self._engine.ramp_gain(target, duration)

    # ===== Lifecycle =====

    def tick(self) -> None:
        """Drive the engine once (position updates and end detection)"""
        try:
            self._engine.tick()
        except Exception as e:
            logger.error("Engine tick failed: %s", e)

    def start(self) -> None:
        """Start ticking the engine on the running loop"""
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(self._poll())

    async def _poll(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self._poll_interval)

    async def shutdown(self) -> None:
        """Stop ticking and release the engine"""
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        self.release()

    def release(self) -> None:
        self._detach_handlers()
        self._cancel_seek_waiters()
        self._current_track_id = None
        self._engine.release()
