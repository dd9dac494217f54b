"""
Playback Session Tests
"""

import asyncio
import threading

import pytest

from conftest import FakeEngine, FakeLibrary
from core.audio_engine import MediaEvent
from core.event_bus import EventType
from services.library_service import TrackUnavailable
from services.playback_session import PlaybackSession


class TestPlaybackSessionLoad:
    """Loading and transport"""

    @pytest.mark.asyncio
    async def test_load_hands_bytes_to_engine(self, engine, library):
        session = PlaybackSession(engine, library)

        data = await session.load("a.mp3")

        assert data == b"a.mp3|60.0"
        assert engine.loaded == ["a.mp3"]
        assert session.current_track_id == "a.mp3"
        assert session.duration == 60.0

    @pytest.mark.asyncio
    async def test_missing_track_raises_and_session_stays_usable(self, engine, library):
        session = PlaybackSession(engine, library)
        library.missing.add("a.mp3")

        with pytest.raises(TrackUnavailable):
            await session.load("a.mp3")
        assert session.is_loaded is False
        assert session.play() is False

        await session.load("b.mp3")
        assert session.play() is True

    @pytest.mark.asyncio
    async def test_undecodable_bytes_raise_track_unavailable(self, engine, library):
        session = PlaybackSession(engine, library)
        library.corrupt.add("a.mp3")

        with pytest.raises(TrackUnavailable):
            await session.load("a.mp3")
        assert session.current_track_id is None

    @pytest.mark.asyncio
    async def test_new_load_releases_previous_buffer(self, engine, library):
        session = PlaybackSession(engine, library)
        unloads = []
        original_unload = engine.unload

        def tracking_unload():
            unloads.append(engine.track_id)
            original_unload()

        engine.unload = tracking_unload

        await session.load("a.mp3")
        await session.load("b.mp3")

        assert "a.mp3" in unloads
        assert engine.track_id == "b.mp3"

    def test_play_and_pause_without_track_are_noops(self, engine, library):
        session = PlaybackSession(engine, library)

        assert session.play() is False
        session.pause()
        assert session.is_playing is False

    @pytest.mark.asyncio
    async def test_seek_clamps_to_track_bounds(self, engine, library):
        session = PlaybackSession(engine, library)
        await session.load("a.mp3")

        assert session.seek(-5) == 0.0
        assert session.seek(500) == 60.0
        assert engine.current_time == 60.0
        assert session.seek(12.5) == 12.5

    @pytest.mark.asyncio
    async def test_seek_and_wait_resolves_on_seeked(self, engine, library):
        session = PlaybackSession(engine, library)
        await session.load("b.mp3")

        position = await session.seek_and_wait(30.0)

        assert position == 30.0

    @pytest.mark.asyncio
    async def test_restart_replays_from_zero(self, engine, library):
        session = PlaybackSession(engine, library)
        await session.load("a.mp3")
        session.play()
        session.seek(42)

        assert session.restart() is True
        assert session.position == 0.0
        assert session.is_playing is True

    @pytest.mark.asyncio
    async def test_stop_unloads(self, engine, library):
        session = PlaybackSession(engine, library)
        await session.load("a.mp3")
        session.play()

        session.stop()

        assert session.is_loaded is False
        assert engine.track_id is None


class TestPlaybackSessionEvents:
    """Engine event translation"""

    @pytest.mark.asyncio
    async def test_engine_events_become_callbacks(self, engine, library):
        session = PlaybackSession(engine, library)
        ended, positions, durations = [], [], []
        session.set_on_track_ended(lambda: ended.append(True))
        session.set_on_position_changed(lambda pos, dur: positions.append((pos, dur)))
        session.set_on_duration_known(durations.append)

        await session.load("a.mp3")
        session.play()
        session.seek(10)
        session.tick()
        engine.finish()

        assert durations == [60.0]
        assert (10.0, 60.0) in positions
        assert ended == [True]

    @pytest.mark.asyncio
    async def test_events_from_superseded_load_are_ignored(self, engine, library):
        session = PlaybackSession(engine, library)
        ended = []
        session.set_on_track_ended(lambda: ended.append(session.current_track_id))

        await session.load("a.mp3")
        stale_handlers = list(engine._listeners[MediaEvent.ENDED])
        await session.load("b.mp3")

        for handler in stale_handlers:
            handler()
        assert ended == []

        session.play()
        engine.finish()
        assert ended == ["b.mp3"]

    @pytest.mark.asyncio
    async def test_slow_fetch_does_not_override_newer_load(self, engine):
        gate = threading.Event()

        class SlowLibrary(FakeLibrary):
            def fetch_track_bytes(self, track_id):
                if track_id == "slow.mp3":
                    gate.wait(timeout=5)
                return super().fetch_track_bytes(track_id)

        library = SlowLibrary(durations={"slow.mp3": 100.0, "fast.mp3": 50.0})
        session = PlaybackSession(engine, library)

        slow = asyncio.ensure_future(session.load("slow.mp3"))
        await asyncio.sleep(0.01)
        await session.load("fast.mp3")
        gate.set()
        await slow

        assert session.current_track_id == "fast.mp3"
        assert engine.loaded == ["fast.mp3"]

    @pytest.mark.asyncio
    async def test_failed_fetch_of_superseded_load_is_quiet(self, engine):
        gate = threading.Event()

        class SlowLibrary(FakeLibrary):
            def fetch_track_bytes(self, track_id):
                if track_id == "gone.mp3":
                    gate.wait(timeout=5)
                return super().fetch_track_bytes(track_id)

        library = SlowLibrary(durations={"fast.mp3": 50.0})
        session = PlaybackSession(engine, library)

        stale = asyncio.ensure_future(session.load("gone.mp3"))
        await asyncio.sleep(0.01)
        await session.load("fast.mp3")
        gate.set()

        assert await stale == b""
        assert session.current_track_id == "fast.mp3"

    @pytest.mark.asyncio
    async def test_failed_fetch_of_current_load_still_raises(self, engine, library):
        session = PlaybackSession(engine, library)

        with pytest.raises(TrackUnavailable):
            await session.load("gone.mp3")

    @pytest.mark.asyncio
    async def test_publishes_volume_and_rate_changes(self, engine, library, event_bus):
        session = PlaybackSession(engine, library, event_bus)
        volumes, rates = [], []
        event_bus.subscribe(EventType.VOLUME_CHANGED, volumes.append)
        event_bus.subscribe(EventType.PLAYBACK_RATE_CHANGED, rates.append)

        session.set_volume(0.4)
        session.toggle_mute()
        session.set_playback_rate(10)
        await asyncio.sleep(0)

        assert volumes[0] == {"volume": 0.4, "muted": False}
        assert volumes[1] == {"volume": 0.4, "muted": True}
        assert rates == [4.0]


class TestPlaybackSessionOutput:
    """Volume, mute and playback rate"""

    def test_default_volume(self, engine, library):
        session = PlaybackSession(engine, library)
        assert session.volume == pytest.approx(0.7)

    def test_mute_keeps_volume(self, engine, library):
        session = PlaybackSession(engine, library)
        session.set_volume(0.5)

        assert session.toggle_mute() is True
        assert engine.effective_gain() == 0.0
        assert session.toggle_mute() is False
        assert session.volume == 0.5
        assert engine.effective_gain() == pytest.approx(0.5)

    def test_playback_rate_is_clamped(self, engine, library):
        session = PlaybackSession(engine, library)

        assert session.set_playback_rate(0.1) == 0.25
        assert session.set_playback_rate(2.0) == 2.0
        assert session.set_playback_rate(8.0) == 4.0

    @pytest.mark.asyncio
    async def test_start_ticks_engine_until_shutdown(self, library):
        engine = FakeEngine()
        session = PlaybackSession(engine, library, poll_interval=0.001)
        ended = []
        session.set_on_track_ended(lambda: ended.append(True))
        await session.load("a.mp3")
        session.play()

        session.start()
        engine._position = 60.0
        await asyncio.sleep(0.05)
        await session.shutdown()

        assert ended == [True]
        assert engine.released is True
