"""
Music Player Core Module
"""

from .event_bus import EventBus, EventType
from .audio_engine import AudioEngineBase, PygameAudioEngine, PlayerState, MediaEvent, GainRamp
from .miniaudio_engine import MiniaudioEngine, UnsupportedFormatError
from .metadata import MetadataParser
from .engine_factory import AudioEngineFactory
from .state_store import StateStore, PersistenceFailure

__all__ = [
    'EventBus',
    'EventType',
    'AudioEngineBase',
    'PygameAudioEngine',
    'PlayerState',
    'MediaEvent',
    'GainRamp',
    'MiniaudioEngine',
    'UnsupportedFormatError',
    'MetadataParser',
    'AudioEngineFactory',
    'StateStore',
    'PersistenceFailure',
]
