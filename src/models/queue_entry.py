"""
Queue entry data models
"""

from dataclasses import dataclass, field
from typing import Optional

from models.track import TrackMetadata


@dataclass(frozen=True, order=True)
class GroupId:
    """
    One instance of a playlist insertion into the queue.

    Adding the same playlist twice yields two GroupIds with the same
    name and different instance numbers.
    """

    playlist_name: str
    instance: int

    def __str__(self) -> str:
        return f"{self.playlist_name}#{self.instance}"


@dataclass(frozen=True)
class QueueEntry:
    """A track scheduled for playback"""

    track_id: str
    metadata: TrackMetadata = field(default_factory=TrackMetadata)
    group_id: Optional[GroupId] = None

    @property
    def is_grouped(self) -> bool:
        return self.group_id is not None

    @property
    def title(self) -> str:
        return self.metadata.title or self.track_id
