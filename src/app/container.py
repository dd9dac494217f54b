# -*- coding: utf-8 -*-
"""
Application Container Module

Defines the dependency container for the application, holding all service instances centrally.

Design Principles:
- Only the entry point (CLI or a UI main window) holds the complete AppContainer
- Everything else talks to the facade
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from core.event_bus import EventBus
    from core.state_store import StateStore
    from services.config_service import ConfigService
    from services.music_app_facade import MusicAppFacade


@dataclass
class AppContainer:
    """Application Dependency Container

    Holds all service instances centrally, serving as the composition root for dependency injection.

    Usage Example:
        container = AppContainerFactory.create()
        container.start()
        await container.facade.enqueue_playlist("Road Trip")
        ...
        await container.shutdown()
    """

    # === Public Attributes ===
    config: "ConfigService"
    event_bus: "EventBus"
    state_store: "StateStore"
    facade: "MusicAppFacade"

    # === Internal Service References ===
    # Use field(repr=False) to avoid leaking in debug output
    _session: Any = field(default=None, repr=False)
    _queue: Any = field(default=None, repr=False)
    _library: Any = field(default=None, repr=False)
    _analyzer: Any = field(default=None, repr=False)
    _gain: Any = field(default=None, repr=False)

    def start(self) -> None:
        """Start ticking the playback engine; needs a running event loop."""
        if self._session is not None:
            self._session.start()

    async def shutdown(self) -> None:
        """Clean up all resources

        Should be awaited when the application exits.
        """
        if self._queue is not None:
            await self._queue.shutdown()

        if self._gain is not None:
            await self._gain.shutdown()

        if self._session is not None:
            await self._session.shutdown()

        if self.event_bus is not None:
            self.event_bus.shutdown()

        if self.state_store is not None:
            self.state_store.close()
