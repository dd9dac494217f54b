"""
Data Models Module
"""

from .track import TrackMetadata, format_duration, format_total_duration
from .queue_entry import QueueEntry, GroupId
from .playback import LoopMode, LoudnessEstimate, GainState, PlaybackState

__all__ = [
    'TrackMetadata',
    'format_duration',
    'format_total_duration',
    'QueueEntry',
    'GroupId',
    'LoopMode',
    'LoudnessEstimate',
    'GainState',
    'PlaybackState',
]
