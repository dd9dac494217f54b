"""
Service Layer Module
"""

from .config_service import ConfigService
from .library_service import LibraryService, TrackUnavailable, PlaylistNotFound
from .playback_session import PlaybackSession
from .loudness_analyzer import LoudnessAnalyzer, AnalysisFailure
from .gain_controller import GainController
from .queue_manager import QueueManager
from .queue_view import QueueView, QueueRow, QueueGroup, project_queue, build_queue_view
from .music_app_facade import MusicAppFacade

__all__ = [
    'ConfigService',
    'LibraryService',
    'TrackUnavailable',
    'PlaylistNotFound',
    'PlaybackSession',
    'LoudnessAnalyzer',
    'AnalysisFailure',
    'GainController',
    'QueueManager',
    'QueueView',
    'QueueRow',
    'QueueGroup',
    'project_queue',
    'build_queue_view',
    'MusicAppFacade',
]
