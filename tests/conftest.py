"""
Test Configuration File

Unified setup for Python path, avoiding sys.path.insert in each test file.
Provides an in-memory media engine and library so queue/playback tests run
without an audio device or files on disk.
"""

import sys
from collections import Counter
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

# Add the src directory to the Python path
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from core.audio_engine import AudioEngineBase, PlayerState  # noqa: E402
from models.track import TrackMetadata  # noqa: E402
from services.library_service import PlaylistNotFound, TrackUnavailable  # noqa: E402


class FakeEngine(AudioEngineBase):
    """
    In-memory engine

    Track bytes are "<track_id>|<duration>". The playhead only moves through
    seek() or finish(); level_at maps a position to a linear RMS level.
    """

    def __init__(self, level_at: Optional[Callable[[float], float]] = None):
        super().__init__()
        self.level_at = level_at or (lambda position: 0.1)
        self.loaded: List[str] = []
        self.ramps: List[tuple] = []
        self.released = False
        self.track_id: Optional[str] = None
        self._duration = 0.0
        self._position = 0.0

    def load(self, data: bytes) -> None:
        text = data.decode()
        if text.startswith("corrupt"):
            self._state = PlayerState.ERROR
            raise ValueError("cannot decode")
        track_id, _, duration = text.rpartition("|")
        self.track_id = track_id
        self.loaded.append(track_id)
        self._duration = float(duration)
        self._position = 0.0
        self._loaded(self._duration)

    def play(self) -> bool:
        if self.track_id is None:
            return False
        self._state = PlayerState.PLAYING
        return True

    def pause(self) -> None:
        if self._state == PlayerState.PLAYING:
            self._state = PlayerState.PAUSED

    def stop(self) -> None:
        self._position = 0.0
        self._state = PlayerState.STOPPED

    def _seek_to(self, seconds: float) -> None:
        self._position = seconds

    def get_position(self) -> float:
        return self._position

    def get_duration(self) -> float:
        return self._duration

    def unload(self) -> None:
        self.track_id = None
        self._duration = 0.0
        self._position = 0.0
        self._state = PlayerState.IDLE

    def release(self) -> None:
        self.unload()
        self.released = True

    def ramp_gain(self, target: float, duration: float) -> None:
        self.ramps.append((target, duration))
        super().ramp_gain(target, duration)

    def supports_level_sampling(self) -> bool:
        return True

    def sample_level(self, window_seconds: float) -> float:
        return self.level_at(self._position)

    def finish(self) -> None:
        """Run the playhead to the end and let tick() report it"""
        self._position = self._duration
        self.tick()

    def get_engine_name(self) -> str:
        return "fake"


class FakeLibrary:
    """Library collaborator backed by dictionaries"""

    def __init__(self, durations: Optional[Dict[str, float]] = None,
                 playlists: Optional[Dict[str, List[str]]] = None):
        self.durations: Dict[str, float] = dict(durations or {})
        self.playlists: Dict[str, List[str]] = dict(playlists or {})
        self.missing = set()
        self.corrupt = set()
        self.fetches = Counter()

    def fetch_track_bytes(self, track_id: str) -> bytes:
        self.fetches[track_id] += 1
        if track_id in self.missing or track_id not in self.durations:
            raise TrackUnavailable(track_id, "missing")
        if track_id in self.corrupt:
            return b"corrupt"
        return f"{track_id}|{self.durations[track_id]}".encode()

    def list_playlist_tracks(self, name: str) -> List[str]:
        if name not in self.playlists:
            raise PlaylistNotFound(name)
        return list(self.playlists[name])

    def list_playlists(self) -> List[str]:
        return sorted(self.playlists)

    def list_all_tracks(self) -> List[str]:
        return sorted(self.durations)

    def get_metadata(self, track_id: str) -> TrackMetadata:
        fallback = TrackMetadata.from_filename(track_id)
        return TrackMetadata(title=fallback.title, duration_seconds=self.durations.get(track_id))


@pytest.fixture
def library():
    return FakeLibrary(
        durations={
            "a.mp3": 60.0,
            "b.mp3": 150.0,
            "c.mp3": 400.0,
            "d.mp3": 90.0,
            "e.mp3": 30.0,
        },
        playlists={
            "Road Trip": ["a.mp3", "b.mp3", "c.mp3"],
            "Chill": ["d.mp3", "e.mp3"],
        },
    )


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def event_bus():
    from core.event_bus import EventBus

    bus = EventBus()
    yield bus
    bus.shutdown()
