"""
Playback state models
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class LoopMode(Enum):
    """Loop policy applied when a track finishes naturally"""
    OFF = "off"                  # Advance to the next entry
    REPEAT_ALL = "repeat_all"    # Replay the current track indefinitely
    REPEAT_ONE = "repeat_one"    # Replay the current track once, then advance

    def next(self) -> 'LoopMode':
        """Mode selected by the next toggle: off -> repeat_all -> repeat_one -> off"""
        return _LOOP_CYCLE[self]

    @classmethod
    def from_name(cls, name: str) -> 'LoopMode':
        """Parse a mode name ("off", "all", "one" or the enum value)"""
        aliases = {
            "none": cls.OFF,
            "off": cls.OFF,
            "all": cls.REPEAT_ALL,
            "one": cls.REPEAT_ONE,
        }
        key = (name or "").strip().lower()
        if key in aliases:
            return aliases[key]
        return cls(key)


_LOOP_CYCLE = {
    LoopMode.OFF: LoopMode.REPEAT_ALL,
    LoopMode.REPEAT_ALL: LoopMode.REPEAT_ONE,
    LoopMode.REPEAT_ONE: LoopMode.OFF,
}


@dataclass(frozen=True)
class LoudnessEstimate:
    """Cached loudness of one track"""
    track_id: str
    average_loudness_db: float


@dataclass
class GainState:
    """
    Normalization gain state

    previous_track_loudness is None when the next track should be treated
    as the baseline (no adjustment).
    """
    current_gain: float = 1.0
    previous_track_loudness: Optional[float] = None

    def reset_baseline(self) -> None:
        self.previous_track_loudness = None


@dataclass
class PlaybackState:
    """Snapshot of the playback session"""
    track_id: Optional[str] = None
    position_seconds: float = 0.0
    duration_seconds: float = 0.0
    is_playing: bool = False
    volume: float = 0.7
    muted: bool = False
    playback_rate: float = 1.0
    gain: float = 1.0
