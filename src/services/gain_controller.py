"""
Gain Controller Module

Smooths perceived volume between consecutive tracks: the gain for a new
track is derived from the loudness difference to the previous one and
ramped in on the output path.
"""

from typing import Optional, Set
import asyncio
import logging

from core.event_bus import EventBus, EventType
from models.playback import GainState
from services.loudness_analyzer import LoudnessAnalyzer
from services.playback_session import PlaybackSession

logger = logging.getLogger(__name__)


class GainController:
    """
    Gain Controller

    The only writer of GainState. The queue calls apply_normalization()
    right before a track becomes audible and reset_baseline() on
    clear/stop transitions.

    Example:
        gain = GainController(session, analyzer, config, event_bus)
        gain.set_enabled(True)
        await gain.apply_normalization("song.mp3")
    """

    CONFIG_PREFIX = "playback.normalization"

    def __init__(
        self,
        session: PlaybackSession,
        analyzer: LoudnessAnalyzer,
        config=None,
        event_bus: Optional[EventBus] = None,
        enabled: Optional[bool] = None,
        ramp_seconds: float = 0.5,
        min_gain: float = 0.1,
        max_gain: float = 3.0,
    ):
        self._session = session
        self._analyzer = analyzer
        self._config = config
        self._event_bus = event_bus

        if config is not None:
            ramp_seconds = float(config.get(f"{self.CONFIG_PREFIX}.ramp_seconds", ramp_seconds))
            min_gain = float(config.get(f"{self.CONFIG_PREFIX}.min_gain", min_gain))
            max_gain = float(config.get(f"{self.CONFIG_PREFIX}.max_gain", max_gain))
            if enabled is None:
                enabled = bool(config.get(f"{self.CONFIG_PREFIX}.enabled", False))

        self._enabled = bool(enabled)
        self._ramp_seconds = ramp_seconds
        self._min_gain = min_gain
        self._max_gain = max_gain
        self._state = GainState()
        self._pending: Set[asyncio.Future] = set()

    @property
    def state(self) -> GainState:
        return self._state

    @property
    def analyzer(self) -> LoudnessAnalyzer:
        return self._analyzer

    @property
    def ramp_seconds(self) -> float:
        return self._ramp_seconds

    def is_enabled(self) -> bool:
        return self._enabled

    def compute_gain(self, previous_db: float, current_db: float) -> float:
        """Linear gain that brings current_db to previous_db, clamped"""
        gain = 10 ** ((previous_db - current_db) / 20.0)
        return max(self._min_gain, min(self._max_gain, gain))

    async def apply_normalization(self, track_id: str) -> float:
        """
        Set the gain for a track about to become audible

        The first track after enabling or clearing becomes the baseline and
        plays at unity gain. A track that cannot be analyzed plays at unity
        gain and leaves the baseline untouched.

        Returns:
            float: The target gain
        """
        if not self._enabled:
            return self._state.current_gain

        estimate = await self._analyzer.estimate(track_id)
        if estimate is None:
            self._session.ramp_gain(1.0, self._ramp_seconds)
            self._state.current_gain = 1.0
            logger.debug("No loudness estimate for %s, gain reset to unity", track_id)
            self._publish(EventType.GAIN_CHANGED, {
                "track_id": track_id,
                "gain": 1.0,
                "loudness_db": None,
            })
            return 1.0

        current = estimate.average_loudness_db
        previous = self._state.previous_track_loudness

        if previous is None:
            gain = 1.0
        else:
            gain = self.compute_gain(previous, current)

        self._session.ramp_gain(gain, self._ramp_seconds)
        self._state.current_gain = gain
        self._state.previous_track_loudness = current

        logger.debug("Normalization gain for %s: %.3f (loudness %.2f dB)", track_id, gain, current)
        self._publish(EventType.GAIN_CHANGED, {
            "track_id": track_id,
            "gain": gain,
            "loudness_db": current,
        })
        return gain

    def set_enabled(self, enabled: bool) -> None:
        """Enable or disable normalization and persist the choice"""
        enabled = bool(enabled)
        if enabled == self._enabled:
            return
        self._enabled = enabled
        self._state.reset_baseline()

        if not enabled:
            self._session.ramp_gain(1.0, self._ramp_seconds)
            self._state.current_gain = 1.0

        if self._config is not None:
            self._config.set(f"{self.CONFIG_PREFIX}.enabled", enabled)
            self._config.save()

        logger.info("Volume normalization %s", "enabled" if enabled else "disabled")
        self._publish(EventType.NORMALIZATION_CHANGED, enabled)

    def toggle(self) -> bool:
        self.set_enabled(not self._enabled)
        return self._enabled

    def reset_baseline(self) -> None:
        """Treat the next track as the baseline"""
        self._state.reset_baseline()

    def pre_analyze_next(self, track_id: Optional[str]) -> Optional[asyncio.Future]:
        """
        Start analyzing an upcoming track in the background

        Returns:
            The background task, or None when nothing needs analyzing
        """
        if not self._enabled or not track_id or self._analyzer.is_cached(track_id):
            return None

        task = asyncio.ensure_future(self._analyzer.estimate(track_id))
        self._pending.add(task)
        task.add_done_callback(self._on_pre_analysis_done)
        logger.debug("Pre-analyzing %s", track_id)
        return task

    def _on_pre_analysis_done(self, task: asyncio.Future) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Pre-analysis failed: %s", error)

    async def shutdown(self) -> None:
        """Abandon background analyses"""
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _publish(self, event_type: EventType, data=None) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event_type, data)
