"""
Integration Tests

Wires the whole application through AppContainerFactory.create_for_testing
and drives it through the facade.
"""

import asyncio

import pytest
import pytest_asyncio
import yaml

from conftest import FakeEngine
from core.event_bus import EventType
from models.playback import LoopMode
from services.library_service import PlaylistNotFound


@pytest.fixture
def config_path(tmp_path):
    from services.config_service import ConfigService

    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump({"playback": {"normalization": {"sample_seconds": 0.0}}}),
        encoding="utf-8",
    )
    ConfigService.reset_instance()
    yield path
    ConfigService.reset_instance()


@pytest_asyncio.fixture
async def container(engine, library, config_path):
    from app.container_factory import AppContainerFactory

    container = AppContainerFactory.create_for_testing(
        engine=engine,
        probe_factory=FakeEngine,
        library=library,
        config_path=str(config_path),
    )
    yield container
    await container.shutdown()


async def wait_for(predicate, attempts=100):
    for _ in range(attempts):
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


class TestQueueFlow:
    """Queueing and navigating through the facade"""

    @pytest.mark.asyncio
    async def test_enqueue_playlist_starts_playback(self, container, engine):
        facade = container.facade
        started = []
        facade.subscribe(EventType.TRACK_STARTED, started.append)

        group_id = await facade.enqueue_playlist("Road Trip")
        await asyncio.sleep(0)

        assert engine.track_id == "a.mp3"
        assert facade.get_cursor() == 0
        assert [entry.track_id for entry in started] == ["a.mp3"]
        assert group_id.playlist_name == "Road Trip"

        view = facade.get_queue_view()
        assert view.total_tracks == 3
        assert view.total_duration_str == "10:10"
        assert [group.label for group in view.groups] == ["Road Trip"]

    @pytest.mark.asyncio
    async def test_navigation_and_play_now(self, container, engine):
        facade = container.facade
        await facade.enqueue_playlist("Road Trip")
        await facade.enqueue("d.mp3")

        assert await facade.play_next() is True
        assert engine.track_id == "b.mp3"
        assert await facade.jump_to(3) is True
        assert engine.track_id == "d.mp3"
        assert await facade.play_previous() is True
        assert engine.track_id == "c.mp3"

        await facade.play_now("e.mp3")
        assert [entry.track_id for entry in facade.get_queue()] == ["e.mp3"]
        assert engine.track_id == "e.mp3"

    @pytest.mark.asyncio
    async def test_unknown_playlist(self, container):
        with pytest.raises(PlaylistNotFound):
            await container.facade.enqueue_playlist("Nope")

        assert container.facade.get_queue() == []

    @pytest.mark.asyncio
    async def test_toggle_play_pauses_and_resumes(self, container):
        facade = container.facade
        await facade.enqueue("a.mp3")

        assert await facade.toggle_play() is False
        assert facade.get_playback_state().is_playing is False
        assert await facade.toggle_play() is True
        assert facade.get_playback_state().track_id == "a.mp3"

    @pytest.mark.asyncio
    async def test_queue_runs_to_the_end(self, container, engine):
        facade = container.facade
        stopped = []
        facade.subscribe(EventType.PLAYBACK_STOPPED, stopped.append)
        await facade.enqueue_playlist("Chill")

        engine.finish()
        assert await wait_for(lambda: engine.track_id == "e.mp3")
        engine.finish()
        assert await wait_for(lambda: stopped)

        assert stopped[-1]["reason"] == "end_of_queue"
        assert facade.get_cursor() == 1

    @pytest.mark.asyncio
    async def test_loop_mode_cycles(self, container):
        facade = container.facade

        assert facade.cycle_loop_mode() == LoopMode.REPEAT_ALL
        facade.set_loop_mode(LoopMode.OFF)
        assert facade.get_loop_mode() == LoopMode.OFF


class TestNormalizationFlow:
    """Loudness analysis and gain through the whole stack"""

    @pytest.mark.asyncio
    async def test_toggle_is_persisted(self, container, config_path):
        assert container.facade.toggle_normalization() is True

        saved = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        assert saved["playback"]["normalization"]["enabled"] is True

    @pytest.mark.asyncio
    async def test_tracks_are_analyzed_and_cached(self, container, engine):
        facade = container.facade
        facade.set_normalization_enabled(True)
        analyzed = []
        facade.subscribe(EventType.LOUDNESS_ANALYZED, analyzed.append)

        await facade.enqueue_playlist("Chill")
        await facade.play_next()
        assert await wait_for(lambda: facade.loudness_cache_size() >= 2)

        assert {item["track_id"] for item in analyzed} >= {"d.mp3", "e.mp3"}
        assert analyzed[0]["loudness_db"] == pytest.approx(-20.0)
        # Equal loudness: no adjustment
        assert engine.gain_target == pytest.approx(1.0)
        assert container.state_store.get("loudness_cache")["d.mp3"] == pytest.approx(-20.0)

    @pytest.mark.asyncio
    async def test_clear_loudness_cache(self, container):
        facade = container.facade
        facade.set_normalization_enabled(True)
        await facade.enqueue("a.mp3")
        assert await wait_for(lambda: facade.loudness_cache_size() == 1)

        assert facade.clear_loudness_cache() == 1
        assert facade.loudness_cache_size() == 0
        assert container.state_store.get("loudness_cache") is None


class TestContainer:
    """Container lifecycle"""

    @pytest.mark.asyncio
    async def test_shutdown_releases_engine(self, engine, library, config_path):
        from app.container_factory import AppContainerFactory

        container = AppContainerFactory.create_for_testing(
            engine=engine, probe_factory=FakeEngine, library=library, config_path=str(config_path))
        container.start()
        await container.facade.enqueue("a.mp3")

        await container.shutdown()

        assert engine.released is True

    def test_config_defaults_reach_session(self, engine, library, config_path):
        from app.container_factory import AppContainerFactory

        container = AppContainerFactory.create_for_testing(
            engine=engine, probe_factory=FakeEngine, library=library, config_path=str(config_path))

        assert container.facade.get_playback_state().volume == 0.7
        assert container.facade.get_config("playback.normalization.sample_seconds") == 0.0
