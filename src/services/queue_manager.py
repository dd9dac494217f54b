"""
Queue Manager Module

Manages the playback queue, the cursor and the loop policy applied when a
track finishes.
"""

from typing import FrozenSet, Iterable, List, Optional, Set, Tuple, Union
import asyncio
import logging
import random

from core.event_bus import EventBus, EventType
from models.playback import LoopMode
from models.queue_entry import GroupId, QueueEntry
from models.track import TrackMetadata
from services.library_service import TrackUnavailable
from services.playback_session import PlaybackSession

logger = logging.getLogger(__name__)

TrackSpec = Union[str, Tuple[str, Optional[TrackMetadata]]]


class QueueManager:
    """
    Queue Manager

    Ordered list of queue entries (plain or grouped by playlist instance)
    with a cursor. The cursor is None only while the queue is empty.

    Loop policy on natural track end:
        OFF         advance to the next entry, stop at the end of the queue
        REPEAT_ALL  replay the current track from zero, forever
        REPEAT_ONE  replay the current track once, then switch to OFF and advance

    Example:
        queue = QueueManager(session, gain_controller, event_bus)

        await queue.enqueue("song.mp3")
        await queue.enqueue_group("Road Trip", ["a.mp3", "b.mp3"], play_now=False)
        await queue.play_next()
    """

    def __init__(
        self,
        session: PlaybackSession,
        gain_controller=None,
        event_bus: Optional[EventBus] = None,
        rng: Optional[random.Random] = None,
    ):
        self._session = session
        self._gain = gain_controller
        self._event_bus = event_bus
        self._rng = rng or random.Random()

        self._entries: List[QueueEntry] = []
        self._cursor: Optional[int] = None
        self._group_instance_counter = 0
        self._collapsed_groups: Set[GroupId] = set()

        self._loop_mode = LoopMode.OFF
        self._repeated_once = False

        # Bumped by every track transition; a transition that finds it
        # changed after a suspension point has been superseded
        self._transition = 0
        self._tasks: Set[asyncio.Future] = set()

        self._session.set_on_track_ended(self._on_track_ended)

    # ===== Accessors =====

    def get_queue(self) -> List[QueueEntry]:
        return list(self._entries)

    def get_cursor(self) -> Optional[int]:
        return self._cursor

    @property
    def current_entry(self) -> Optional[QueueEntry]:
        if self._cursor is None or not (0 <= self._cursor < len(self._entries)):
            return None
        return self._entries[self._cursor]

    @property
    def next_entry(self) -> Optional[QueueEntry]:
        if self._cursor is None or self._cursor + 1 >= len(self._entries):
            return None
        return self._entries[self._cursor + 1]

    @property
    def collapsed_groups(self) -> FrozenSet[GroupId]:
        return frozenset(self._collapsed_groups)

    def is_collapsed(self, group_id: GroupId) -> bool:
        return group_id in self._collapsed_groups

    @property
    def repeated_once(self) -> bool:
        return self._repeated_once

    def __len__(self) -> int:
        return len(self._entries)

    # ===== Loop mode =====

    def get_loop_mode(self) -> LoopMode:
        return self._loop_mode

    def cycle_loop_mode(self) -> LoopMode:
        """Cycle off -> repeat_all -> repeat_one -> off"""
        self.set_loop_mode(self._loop_mode.next())
        return self._loop_mode

    def set_loop_mode(self, mode: LoopMode) -> None:
        self._loop_mode = mode
        self._repeated_once = False
        logger.debug("Loop mode: %s", mode.value)
        self._publish(EventType.LOOP_MODE_CHANGED, mode)

    # ===== Mutations =====

    async def enqueue(self, track_id: str, metadata: Optional[TrackMetadata] = None) -> int:
        """
        Append a plain entry

        If the queue was empty, playback starts on the new entry.

        Returns:
            int: Index of the new entry

        Raises:
            TrackUnavailable: If auto-started playback cannot load the track
        """
        was_empty = not self._entries
        self._entries.append(self._make_entry(track_id, metadata))
        index = len(self._entries) - 1

        if was_empty:
            self._cursor = index
            self._repeated_once = False
            self._queue_changed()
            await self._play_cursor()
        else:
            self._queue_changed()
            self._schedule_pre_analysis()
        return index

    async def enqueue_group(
        self,
        playlist_name: str,
        tracks: Iterable[TrackSpec],
        play_now: bool = False,
        shuffle: bool = False,
    ) -> Optional[GroupId]:
        """
        Append a playlist as one contiguous group

        Args:
            playlist_name: Playlist the tracks come from
            tracks: Track ids, or (track_id, metadata) pairs, in playlist order
            play_now: Replace the queue and start the group immediately
            shuffle: Permute the tracks once before inserting them

        Returns:
            GroupId: The new group instance, or None if tracks was empty

        Raises:
            TrackUnavailable: If auto-started playback cannot load the first track
        """
        pairs = [self._as_pair(track) for track in tracks]
        if not pairs:
            logger.warning("Playlist %s has no tracks to enqueue", playlist_name)
            return None

        if shuffle:
            self._rng.shuffle(pairs)

        if play_now:
            self._entries = []
            self._cursor = None
            self._collapsed_groups.clear()

        was_empty = not self._entries
        self._group_instance_counter += 1
        group_id = GroupId(playlist_name, self._group_instance_counter)

        start = len(self._entries)
        self._entries.extend(
            self._make_entry(track_id, metadata, group_id) for track_id, metadata in pairs
        )
        self._collapsed_groups.add(group_id)

        logger.info("Queued playlist %s (%d tracks) as %s", playlist_name, len(pairs), group_id)

        if play_now or was_empty:
            self._cursor = start
            self._repeated_once = False
            self._queue_changed()
            await self._play_cursor()
        else:
            self._queue_changed()
            self._schedule_pre_analysis()
        return group_id

    async def play_now(self, track_id: str, metadata: Optional[TrackMetadata] = None) -> bool:
        """Replace the whole queue with one entry and play it"""
        self._entries = [self._make_entry(track_id, metadata)]
        self._collapsed_groups.clear()
        self._cursor = 0
        self._repeated_once = False
        self._queue_changed()
        return await self._play_cursor()

    async def remove_at(self, index: int) -> QueueEntry:
        """
        Remove an entry

        Removing the current entry plays the one that moves into its place;
        removing the current last entry stops playback instead.

        Raises:
            IndexError: If index is out of range
        """
        if not 0 <= index < len(self._entries):
            raise IndexError(f"Queue index out of range: {index}")

        removed = self._entries.pop(index)
        if removed.group_id is not None and not any(
            e.group_id == removed.group_id for e in self._entries
        ):
            self._collapsed_groups.discard(removed.group_id)

        cursor = self._cursor
        if cursor is None or index > cursor:
            self._queue_changed()
            return removed

        if index < cursor:
            self._cursor = cursor - 1
            self._queue_changed()
            return removed

        # Removed the current entry
        self._repeated_once = False
        if not self._entries:
            self._cursor = None
            self._stop_playback("queue_empty")
            self._queue_changed()
        elif index == len(self._entries):
            self._cursor = len(self._entries) - 1
            self._stop_playback("removed_last")
            self._queue_changed()
        else:
            self._queue_changed()
            await self._play_cursor()
        return removed

    def clear(self) -> None:
        """Empty the queue and stop playback"""
        self._entries = []
        self._cursor = None
        self._collapsed_groups.clear()
        self._repeated_once = False
        self._stop_playback("cleared")
        self._queue_changed()

    def toggle_group_collapse(self, group_id: GroupId) -> bool:
        """
        Toggle a group's collapsed state (display only)

        Returns:
            bool: Whether the group is now collapsed
        """
        if group_id in self._collapsed_groups:
            self._collapsed_groups.discard(group_id)
            collapsed = False
        else:
            self._collapsed_groups.add(group_id)
            collapsed = True
        self._publish(EventType.GROUP_COLLAPSE_CHANGED, {"group_id": group_id, "collapsed": collapsed})
        return collapsed

    # ===== Navigation =====

    async def play_next(self) -> bool:
        """
        Advance to the next entry

        At the last entry playback stops; that is not an error.

        Returns:
            bool: Whether a next entry started playing
        """
        self._repeated_once = False
        return await self._advance()

    async def play_previous(self) -> bool:
        """Step back one entry; no wrap at the start"""
        if self._cursor is None or self._cursor <= 0:
            return False
        self._repeated_once = False
        self._cursor -= 1
        self._queue_changed()
        return await self._play_cursor()

    async def jump_to(self, index: int) -> bool:
        """Play the entry at index (queue item click)"""
        if not 0 <= index < len(self._entries):
            raise IndexError(f"Queue index out of range: {index}")
        self._repeated_once = False
        self._cursor = index
        self._queue_changed()
        return await self._play_cursor()

    async def toggle_play(self) -> bool:
        """
        Play/pause toggle

        Resumes a paused track, replays a finished one, or loads the cursor
        entry when nothing is loaded (including a retry after a failed load).

        Returns:
            bool: Whether audio is playing afterwards
        """
        if self._session.is_playing:
            self._session.pause()
            return False
        if self._session.is_loaded:
            if self._session.is_paused:
                return self._session.play()
            return self._session.restart()
        if not self._entries:
            return False
        if self._cursor is None:
            self._cursor = 0
            self._queue_changed()
        return await self._play_cursor()

    async def _advance(self) -> bool:
        if self._cursor is None:
            return False
        if self._cursor < len(self._entries) - 1:
            self._cursor += 1
            self._queue_changed()
            return await self._play_cursor()

        self._session.pause()
        logger.info("End of queue reached")
        self._publish(EventType.PLAYBACK_STOPPED, {
            "entry": self.current_entry,
            "reason": "end_of_queue",
        })
        return False

    # ===== Track end =====

    def _on_track_ended(self) -> None:
        """Engine end callback; runs the loop policy as a task"""
        task = asyncio.ensure_future(self.handle_track_ended())
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Track end handling failed: %s", error)

    async def handle_track_ended(self) -> None:
        """Apply the loop policy after the current track finished naturally"""
        entry = self.current_entry
        if entry is None:
            return
        self._publish(EventType.TRACK_ENDED, entry)

        if self._loop_mode == LoopMode.REPEAT_ONE:
            if not self._repeated_once:
                self._repeated_once = True
                self._replay_current()
                return
            self._repeated_once = False
            self._loop_mode = LoopMode.OFF
            self._publish(EventType.LOOP_MODE_CHANGED, self._loop_mode)
            await self._advance()
        elif self._loop_mode == LoopMode.REPEAT_ALL:
            self._replay_current()
        else:
            await self._advance()

    def _replay_current(self) -> None:
        if self._session.restart():
            self._publish(EventType.TRACK_STARTED, self.current_entry)

    # ===== Playback =====

    async def _play_cursor(self) -> bool:
        """
        Load and play the cursor entry

        Raises:
            TrackUnavailable: If the track cannot be loaded; queue and cursor
                are left as they are
        """
        entry = self.current_entry
        if entry is None:
            return False

        self._transition += 1
        transition = self._transition

        try:
            await self._session.load(entry.track_id)
        except TrackUnavailable as e:
            logger.error("Failed to load %s: %s", entry.track_id, e)
            self._publish(EventType.ERROR_OCCURRED, {
                "source": "QueueManager",
                "error": str(e),
                "track_id": entry.track_id,
            })
            raise

        if transition != self._transition:
            return False

        if self._gain is not None and self._gain.is_enabled():
            await self._gain.apply_normalization(entry.track_id)
            if transition != self._transition:
                return False

        if not self._session.play():
            return False

        logger.info("Playing: %s", entry.title)
        self._publish(EventType.TRACK_STARTED, entry)
        self._schedule_pre_analysis()
        return True

    def _stop_playback(self, reason: str) -> None:
        self._transition += 1
        self._session.stop()
        if self._gain is not None:
            self._gain.reset_baseline()
        self._publish(EventType.PLAYBACK_STOPPED, {"entry": None, "reason": reason})

    def _schedule_pre_analysis(self) -> None:
        if self._gain is None or not self._session.is_playing:
            return
        upcoming = self.next_entry
        if upcoming is not None:
            self._gain.pre_analyze_next(upcoming.track_id)

    async def shutdown(self) -> None:
        """Cancel pending track-end handling"""
        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ===== Helpers =====

    @staticmethod
    def _as_pair(track: TrackSpec) -> Tuple[str, Optional[TrackMetadata]]:
        if isinstance(track, str):
            return track, None
        track_id, metadata = track
        return track_id, metadata

    @staticmethod
    def _make_entry(
        track_id: str,
        metadata: Optional[TrackMetadata],
        group_id: Optional[GroupId] = None,
    ) -> QueueEntry:
        return QueueEntry(
            track_id=track_id,
            metadata=metadata or TrackMetadata.from_filename(track_id),
            group_id=group_id,
        )

    def _queue_changed(self) -> None:
        self._publish(EventType.QUEUE_CHANGED, {
            "entries": list(self._entries),
            "cursor": self._cursor,
        })

    def _publish(self, event_type: EventType, data=None) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event_type, data)
