"""
Loudness Analyzer Module

Estimates a track's average loudness by sampling its decoded signal at
evenly spaced points through a throwaway, muted engine. Results are
memoized per track id and persisted best-effort in the state store.
"""

from typing import Callable, Dict, List, Optional
import asyncio
import logging
import math

from core.audio_engine import AudioEngineBase
from core.event_bus import EventBus, EventType
from core.state_store import PersistenceFailure, StateStore
from models.playback import LoudnessEstimate
from services.library_service import TrackUnavailable
from services.playback_session import PlaybackSession

logger = logging.getLogger(__name__)


class AnalysisFailure(Exception):
    """Loudness analysis of a track failed at some stage"""

    def __init__(self, track_id: str, reason: str = ""):
        self.track_id = track_id
        self.reason = reason
        super().__init__(f"Analysis failed for {track_id}" + (f": {reason}" if reason else ""))


class LoudnessAnalyzer:
    """
    Loudness Analyzer

    estimate() never raises: a failed analysis yields None so callers can
    tell it apart from a measurement. analyze() maps that to
    FALLBACK_LOUDNESS_DB for callers that need a number. Concurrent
    requests for the same track share one in-flight analysis.

    Example:
        analyzer = LoudnessAnalyzer(library, AudioEngineFactory.create_probe, store)
        db = await analyzer.analyze("song.mp3")
    """

    CACHE_KEY = "loudness_cache"
    FALLBACK_LOUDNESS_DB = 0.0
    SILENCE_FLOOR_DB = -100.0
    EDGE_WEIGHT = 0.8       # First and last 20% of the timeline
    BODY_WEIGHT = 1.2       # Middle 60%

    def __init__(
        self,
        library,
        probe_factory: Callable[[], AudioEngineBase],
        state_store: Optional[StateStore] = None,
        sample_seconds: float = 0.15,
        event_bus: Optional[EventBus] = None,
    ):
        self._library = library
        self._probe_factory = probe_factory
        self._state_store = state_store
        self._sample_seconds = sample_seconds
        self._event_bus = event_bus

        self._cache: Dict[str, float] = {}
        self._in_flight: Dict[str, asyncio.Future] = {}
        self._load_cache()

    # ===== Cache =====

    def _load_cache(self) -> None:
        if self._state_store is None:
            return
        try:
            stored = self._state_store.get(self.CACHE_KEY, {})
        except PersistenceFailure as e:
            logger.warning("Failed to load loudness cache: %s", e)
            return
        if not isinstance(stored, dict):
            return
        for track_id, value in stored.items():
            if isinstance(value, (int, float)) and math.isfinite(value):
                self._cache[track_id] = float(value)
        logger.debug("Loaded %d cached loudness values", len(self._cache))

    def _persist_cache(self) -> None:
        if self._state_store is None:
            return
        try:
            self._state_store.set(self.CACHE_KEY, dict(self._cache))
        except PersistenceFailure as e:
            logger.warning("Failed to persist loudness cache: %s", e)

    def is_cached(self, track_id: str) -> bool:
        return track_id in self._cache

    def get_cached(self, track_id: str) -> Optional[float]:
        return self._cache.get(track_id)

    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        """Forget every estimate, in memory and in the state store"""
        self._cache.clear()
        if self._state_store is not None:
            try:
                self._state_store.delete(self.CACHE_KEY)
            except PersistenceFailure as e:
                logger.warning("Failed to clear persisted loudness cache: %s", e)
        logger.info("Loudness cache cleared")

    # ===== Analysis =====

    async def analyze(self, track_id: str) -> float:
        """
        Average loudness of a track in dB

        Args:
            track_id: Library track id

        Returns:
            float: Cached or freshly measured loudness, or the fallback value
        """
        estimate = await self.estimate(track_id)
        if estimate is None:
            return self.FALLBACK_LOUDNESS_DB
        return estimate.average_loudness_db

    async def estimate(self, track_id: str) -> Optional[LoudnessEstimate]:
        """
        Cached or freshly measured loudness estimate

        Returns:
            LoudnessEstimate, or None when the track could not be measured
        """
        cached = self._cache.get(track_id)
        if cached is not None:
            return LoudnessEstimate(track_id, cached)

        task = self._in_flight.get(track_id)
        if task is None:
            task = asyncio.ensure_future(self._analyze_and_cache(track_id))
            self._in_flight[track_id] = task
            task.add_done_callback(lambda _: self._in_flight.pop(track_id, None))

        # Shielded so one caller giving up does not cancel the shared analysis
        loudness = await asyncio.shield(task)
        if loudness is None:
            return None
        return LoudnessEstimate(track_id, loudness)

    async def _analyze_and_cache(self, track_id: str) -> Optional[float]:
        try:
            loudness = await self._measure(track_id)
        except AnalysisFailure as e:
            logger.warning("%s, no adjustment", e)
            return None
        except Exception as e:
            logger.error("Loudness analysis failed for %s: %s", track_id, e)
            return None

        if loudness is None:
            return None

        self._cache[track_id] = loudness
        self._persist_cache()
        logger.debug("Loudness of %s: %.2f dB", track_id, loudness)
        if self._event_bus is not None:
            self._event_bus.publish(EventType.LOUDNESS_ANALYZED, {
                "track_id": track_id,
                "loudness_db": loudness,
            })
        return loudness

    async def _measure(self, track_id: str) -> Optional[float]:
        """Run the sampling loop; None when there is nothing to measure"""
        try:
            engine = self._probe_factory()
        except Exception as e:
            raise AnalysisFailure(track_id, f"no probe engine: {e}") from e

        probe = PlaybackSession(engine, self._library)
        try:
            probe.set_muted(True)
            try:
                await probe.load(track_id)
            except TrackUnavailable as e:
                raise AnalysisFailure(track_id, str(e)) from e

            duration = probe.duration
            if not duration or duration <= 0:
                logger.debug("Unknown duration for %s, skipping analysis", track_id)
                return None

            count = self.sample_count(duration)
            samples: List[float] = []
            for i in range(count):
                await probe.seek_and_wait(duration / count * i)
                probe.play()
                await asyncio.sleep(self._sample_seconds)
                level = engine.sample_level(self._sample_seconds)
                probe.pause()

                db = self.rms_to_db(level)
                if math.isfinite(db) and db >= self.SILENCE_FLOOR_DB:
                    samples.append(db)

            if not samples:
                logger.debug("No audible samples in %s, not caching", track_id)
                return None
            return self.weighted_average(samples)
        finally:
            probe.release()

    # ===== Math =====

    @staticmethod
    def sample_count(duration_seconds: float) -> int:
        """Number of sample points for a track length"""
        if duration_seconds < 120:
            return 20
        if duration_seconds < 300:
            return 30
        return 40

    @staticmethod
    def rms_to_db(rms: float) -> float:
        if rms is None or rms <= 0 or not math.isfinite(rms):
            return float("-inf")
        return 20.0 * math.log10(rms)

    @classmethod
    def weighted_average(cls, samples: List[float]) -> float:
        """
        Position-weighted mean of dB samples

        Samples in the first and last 20% weigh 0.8, the middle 1.2. An
        empty list yields 0.0.
        """
        if not samples:
            return 0.0
        total = 0.0
        weights = 0.0
        for i, value in enumerate(samples):
            position = i / len(samples)
            weight = cls.EDGE_WEIGHT if position < 0.2 or position > 0.8 else cls.BODY_WEIGHT
            total += value * weight
            weights += weight
        return total / weights
