# -*- coding: utf-8 -*-
"""
Event Bus Module - Publish-Subscribe Pattern Implementation

Provides loose-coupled communication between the queue, the playback
session and whatever presentation layer is attached.

Design Notes:
- Pure Python, does not depend on any UI framework
- One instance is created by AppContainerFactory and injected; there is no
  global instance
- publish() defers callbacks to the running asyncio loop, publish_sync()
  runs them immediately in the caller
"""

from typing import Dict, Callable, Any
from enum import Enum
import asyncio
import uuid
import logging

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Event type enumeration"""

    # Playback events
    TRACK_LOADED = "track_loaded"
    TRACK_STARTED = "track_started"
    TRACK_ENDED = "track_ended"
    PLAYBACK_STOPPED = "playback_stopped"  # Manual stop / end of queue (distinguished from natural end)
    TRACK_PAUSED = "track_paused"
    TRACK_RESUMED = "track_resumed"
    POSITION_CHANGED = "position_changed"
    DURATION_KNOWN = "duration_known"
    VOLUME_CHANGED = "volume_changed"
    PLAYBACK_RATE_CHANGED = "playback_rate_changed"

    # Queue events
    QUEUE_CHANGED = "queue_changed"
    LOOP_MODE_CHANGED = "loop_mode_changed"
    GROUP_COLLAPSE_CHANGED = "group_collapse_changed"

    # Normalization events
    NORMALIZATION_CHANGED = "normalization_changed"
    GAIN_CHANGED = "gain_changed"
    LOUDNESS_ANALYZED = "loudness_analyzed"

    # System events
    ERROR_OCCURRED = "error_occurred"


class EventBus:
    """
    Event Bus

    Usage example:
        event_bus = EventBus()

        def on_track_started(entry):
            logger.info("Playing: %s", entry.title)

        sub_id = event_bus.subscribe(EventType.TRACK_STARTED, on_track_started)
        event_bus.publish_sync(EventType.TRACK_STARTED, entry)
        event_bus.unsubscribe(sub_id)
    """

    def __init__(self):
        self._subscribers: Dict[EventType, Dict[str, Callable]] = {}

    def subscribe(
        self,
        event_type: EventType,
        callback: Callable[[Any], None]
    ) -> str:
        """
        Subscribe to event

        Args:
            event_type: Event type
            callback: Callback function, receiving event data as an argument

        Returns:
            str: Subscription ID, used for unsubscription
        """
        subscription_id = str(uuid.uuid4())
        self._subscribers.setdefault(event_type, {})[subscription_id] = callback
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """
        Unsubscribe

        Args:
            subscription_id: The ID returned when subscribing

        Returns:
            bool: Whether the unsubscription was successful
        """
        for callbacks in self._subscribers.values():
            if subscription_id in callbacks:
                del callbacks[subscription_id]
                return True
        return False

    def publish(self, event_type: EventType, data: Any = None) -> None:
        """
        Publish event asynchronously

        Callbacks are scheduled on the running event loop. Without a running
        loop they are executed immediately.
        """
        callbacks = list(self._subscribers.get(event_type, {}).values())
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        for callback in callbacks:
            if loop is None:
                self._safe_call(callback, data)
            else:
                loop.call_soon(self._safe_call, callback, data)

    def publish_sync(self, event_type: EventType, data: Any = None) -> None:
        """Publish event synchronously in the current call stack"""
        callbacks = list(self._subscribers.get(event_type, {}).values())
        for callback in callbacks:
            self._safe_call(callback, data)

    def _safe_call(self, callback: Callable, data: Any) -> None:
        """Safely call a callback function"""
        try:
            callback(data)
        except Exception as e:
            # Avoid loop: Do not use publish to report error events
            logger.error("Event callback execution error: %s", e)

    def clear(self) -> None:
        """Clear all subscriptions"""
        self._subscribers.clear()

    def shutdown(self) -> None:
        """Shutdown the event bus"""
        self.clear()
