"""
Track metadata model
"""

from dataclasses import dataclass
from typing import Optional
import os
import re


UNKNOWN_ARTIST = "Unknown Artist"


def format_duration(seconds: Optional[float]) -> str:
    """Format seconds as m:ss ("0:00" when unknown)"""
    if seconds is None or seconds != seconds:
        return "0:00"
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"


def format_total_duration(seconds: Optional[float]) -> str:
    """Format seconds as h:mm:ss, or m:ss below one hour"""
    if seconds is None or seconds != seconds:
        return "0:00"
    total = int(seconds)
    hours = total // 3600
    minutes = (total % 3600) // 60
    secs = total % 60
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


@dataclass(frozen=True)
class TrackMetadata:
    """
    Display metadata of a track

    Durations are in seconds; None means not known yet.
    """

    title: str = ""
    artist: str = UNKNOWN_ARTIST
    duration_seconds: Optional[float] = None
    thumbnail: Optional[str] = None

    @property
    def duration_str(self) -> str:
        """Formatted duration string (m:ss)"""
        return format_duration(self.duration_seconds)

    @property
    def display_name(self) -> str:
        """Display name"""
        if self.artist and self.artist != UNKNOWN_ARTIST:
            return f"{self.artist} - {self.title}"
        return self.title

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            'title': self.title,
            'artist': self.artist,
            'duration': self.duration_seconds,
            'thumbnail': self.thumbnail,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'TrackMetadata':
        """Create TrackMetadata from a dictionary"""
        duration = data.get('duration')
        try:
            duration = float(duration) if duration is not None else None
        except (TypeError, ValueError):
            duration = None
        return cls(
            title=data.get('title', ''),
            artist=data.get('artist') or UNKNOWN_ARTIST,
            duration_seconds=duration,
            thumbnail=data.get('thumbnail'),
        )

    @classmethod
    def from_filename(cls, track_id: str) -> 'TrackMetadata':
        """Fallback metadata derived from the file name"""
        stem, _ext = os.path.splitext(os.path.basename(track_id))
        return cls(title=re.sub(r"[-_]", " ", stem), artist=UNKNOWN_ARTIST)
