# -*- coding: utf-8 -*-
"""
Music Application Facade Module

Provides a unified command interface for presentation layers (CLI or any
UI toolkit) on top of the queue, playback and normalization services.

Design Principles:
- Presentation code should only depend on this Facade, not on the services.
- The Facade only exposes use-case level methods.
- Internal service references are hidden from the outside.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, List, Optional

from models.playback import LoopMode, PlaybackState
from models.queue_entry import GroupId, QueueEntry
from services.queue_view import QueueView, build_queue_view

if TYPE_CHECKING:
    from core.event_bus import EventBus, EventType
    from models.track import TrackMetadata
    from services.config_service import ConfigService
    from services.gain_controller import GainController
    from services.library_service import LibraryService
    from services.loudness_analyzer import LoudnessAnalyzer
    from services.playback_session import PlaybackSession
    from services.queue_manager import QueueManager

logger = logging.getLogger(__name__)


class MusicAppFacade:
    """Music Application Facade

    Command/intent API. Operations that may start playback are coroutines
    and raise TrackUnavailable when the track cannot be loaded.

    Usage Example:
        facade = container.facade
        facade.subscribe(EventType.TRACK_STARTED, on_track)

        await facade.enqueue_playlist("Road Trip", play_now=True, shuffle=True)
        await facade.play_next()
    """

    def __init__(
        self,
        queue: "QueueManager",
        session: "PlaybackSession",
        library: "LibraryService",
        gain: "GainController",
        analyzer: "LoudnessAnalyzer",
        config: "ConfigService",
        event_bus: "EventBus",
    ):
        """Initialize the facade.

        Args:
            queue: Queue manager
            session: Playback session
            library: Library service
            gain: Gain controller
            analyzer: Loudness analyzer
            config: Configuration service
            event_bus: Event bus
        """
        self._queue = queue
        self._session = session
        self._library = library
        self._gain = gain
        self._analyzer = analyzer
        self._config = config
        self._event_bus = event_bus

    # =========================================================================
    # Queue
    # =========================================================================

    async def enqueue(self, track_id: str, metadata: Optional["TrackMetadata"] = None) -> int:
        """Add a track to the end of the queue."""
        return await self._queue.enqueue(track_id, metadata or self._library.get_metadata(track_id))

    async def enqueue_playlist(
        self,
        name: str,
        play_now: bool = False,
        shuffle: bool = False,
    ) -> Optional[GroupId]:
        """Add a library playlist to the queue as one group.

        Raises:
            PlaylistNotFound: If the playlist does not exist
        """
        track_ids = self._library.list_playlist_tracks(name)
        tracks = [(track_id, self._library.get_metadata(track_id)) for track_id in track_ids]
        return await self._queue.enqueue_group(name, tracks, play_now=play_now, shuffle=shuffle)

    async def enqueue_group(
        self,
        playlist_name: str,
        track_ids: List[str],
        play_now: bool = False,
        shuffle: bool = False,
    ) -> Optional[GroupId]:
        """Add arbitrary tracks to the queue as one playlist group."""
        tracks = [(track_id, self._library.get_metadata(track_id)) for track_id in track_ids]
        return await self._queue.enqueue_group(playlist_name, tracks, play_now=play_now, shuffle=shuffle)

    async def play_now(self, track_id: str, metadata: Optional["TrackMetadata"] = None) -> bool:
        """Replace the queue with a single track and play it."""
        return await self._queue.play_now(track_id, metadata or self._library.get_metadata(track_id))

    async def remove_at(self, index: int) -> QueueEntry:
        return await self._queue.remove_at(index)

    def clear(self) -> None:
        """Clear the queue and stop playback."""
        self._queue.clear()

    def toggle_group_collapse(self, group_id: GroupId) -> bool:
        return self._queue.toggle_group_collapse(group_id)

    def get_queue(self) -> List[QueueEntry]:
        return self._queue.get_queue()

    def get_cursor(self) -> Optional[int]:
        return self._queue.get_cursor()

    def get_current_entry(self) -> Optional[QueueEntry]:
        return self._queue.current_entry

    def get_queue_view(self) -> QueueView:
        """Grouped, collapsible view of the queue."""
        return build_queue_view(self._queue)

    # =========================================================================
    # Playback Control
    # =========================================================================

    async def play_next(self) -> bool:
        return await self._queue.play_next()

    async def play_previous(self) -> bool:
        return await self._queue.play_previous()

    async def jump_to(self, index: int) -> bool:
        return await self._queue.jump_to(index)

    async def toggle_play(self) -> bool:
        """Toggle play/pause."""
        return await self._queue.toggle_play()

    def pause(self) -> None:
        self._session.pause()

    def seek(self, seconds: float) -> float:
        return self._session.seek(seconds)

    def set_volume(self, volume: float) -> None:
        self._session.set_volume(volume)

    def toggle_mute(self) -> bool:
        return self._session.toggle_mute()

    def set_playback_rate(self, rate: float) -> float:
        rate = self._session.set_playback_rate(rate)
        self._config.set("playback.playback_rate", rate)
        return rate

    def get_playback_state(self) -> PlaybackState:
        return self._session.state

    # =========================================================================
    # Loop Mode
    # =========================================================================

    def cycle_loop_mode(self) -> LoopMode:
        return self._queue.cycle_loop_mode()

    def set_loop_mode(self, mode: LoopMode) -> None:
        self._queue.set_loop_mode(mode)

    def get_loop_mode(self) -> LoopMode:
        return self._queue.get_loop_mode()

    # =========================================================================
    # Normalization
    # =========================================================================

    def toggle_normalization(self) -> bool:
        """Toggle loudness normalization; returns the new state."""
        return self._gain.toggle()

    def set_normalization_enabled(self, enabled: bool) -> None:
        self._gain.set_enabled(enabled)

    def is_normalization_enabled(self) -> bool:
        return self._gain.is_enabled()

    def clear_loudness_cache(self) -> int:
        """Forget all loudness estimates; returns how many were dropped."""
        count = self._analyzer.cache_size()
        self._analyzer.clear_cache()
        return count

    def loudness_cache_size(self) -> int:
        return self._analyzer.cache_size()

    # =========================================================================
    # Library
    # =========================================================================

    def list_playlists(self) -> List[str]:
        return self._library.list_playlists()

    def list_playlist_tracks(self, name: str) -> List[str]:
        return self._library.list_playlist_tracks(name)

    def list_all_tracks(self) -> List[str]:
        return self._library.list_all_tracks()

    def get_metadata(self, track_id: str) -> "TrackMetadata":
        return self._library.get_metadata(track_id)

    def create_playlist(self, name: str) -> None:
        self._library.create_playlist(name)

    def add_to_playlist(self, name: str, track_id: str) -> None:
        self._library.add_to_playlist(name, track_id)

    def remove_from_playlist(self, name: str, track_id: str) -> None:
        self._library.remove_from_playlist(name, track_id)

    def reorder_playlist(self, name: str, track_ids: List[str]) -> None:
        self._library.reorder_playlist(name, track_ids)

    # =========================================================================
    # Events & Config
    # =========================================================================

    def subscribe(self, event_type: "EventType", callback: Callable[[Any], None]) -> str:
        """Subscribe to an event; returns the subscription id."""
        return self._event_bus.subscribe(event_type, callback)

    def unsubscribe(self, subscription_id: str) -> bool:
        return self._event_bus.unsubscribe(subscription_id)

    def get_config(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def set_config(self, key: str, value: Any, save: bool = True) -> None:
        self._config.set(key, value)
        if save:
            self._config.save()
