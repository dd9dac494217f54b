# -*- coding: utf-8 -*-
"""
Container Factory Module

Responsible for creating and assembling all application dependencies.

This is the **only** instance creation point (Composition Root) for the application.
All service instance creation should be done here, not within individual services.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from app.container import AppContainer
    from core.audio_engine import AudioEngineBase

logger = logging.getLogger(__name__)


class AppContainerFactory:
    """Application Container Factory

    Creates and assembles all application dependencies.

    Usage Example:
        # In main.py
        container = AppContainerFactory.create()

        # In tests (no audio device, in-memory state)
        container = AppContainerFactory.create_for_testing(
            engine=FakeEngine(), probe_factory=FakeEngine, library=FakeLibrary())
    """

    @staticmethod
    def create(config_path: Optional[str] = None) -> "AppContainer":
        """Create Application Container

        Creates all service instances in dependency order and assembles them into the container.

        Args:
            config_path: Configuration file path (None: platform default)

        Returns:
            A configured AppContainer instance

        Raises:
            RuntimeError: If no audio backend is available
        """
        from core.engine_factory import AudioEngineFactory
        from core.state_store import StateStore
        from services.config_service import ConfigService
        from services.library_service import LibraryService

        logger.info("Creating application container...")

        # === 1. Infrastructure Layer ===
        config = ConfigService(config_path)
        state_store = StateStore(config.get("storage.state_db") or None)

        library = LibraryService(config.get("library.root"))
        library.ensure_dirs()

        # === 2. Audio Engine ===
        backend = config.get("audio.backend", "miniaudio")
        try:
            engine = AudioEngineFactory.create(backend)
            logger.info("Created audio engine: %s", engine.get_engine_name())
        except RuntimeError as e:
            logger.error("Failed to create audio engine: %s", e)
            raise

        container = AppContainerFactory._assemble(
            config=config,
            state_store=state_store,
            library=library,
            engine=engine,
            probe_factory=AudioEngineFactory.create_probe,
        )
        logger.info("Application container creation complete")
        return container

    @staticmethod
    def create_for_testing(
        engine: "AudioEngineBase",
        probe_factory: Callable[[], "AudioEngineBase"],
        library,
        config_path: Optional[str] = None,
        db_path: str = ":memory:",
    ) -> "AppContainer":
        """Create a container for testing

        Uses an in-memory state store and caller-supplied engines and library.

        Args:
            engine: Playback engine
            probe_factory: Factory for analysis probe engines
            library: Library collaborator
            config_path: Configuration file path
            db_path: State store path (defaults to in-memory)

        Returns:
            A configured test AppContainer instance
        """
        from core.state_store import StateStore
        from services.config_service import ConfigService

        config = ConfigService(config_path)
        state_store = StateStore(db_path)
        return AppContainerFactory._assemble(
            config=config,
            state_store=state_store,
            library=library,
            engine=engine,
            probe_factory=probe_factory,
        )

    @staticmethod
    def _assemble(config, state_store, library, engine, probe_factory) -> "AppContainer":
        from app.container import AppContainer
        from core.event_bus import EventBus
        from services.gain_controller import GainController
        from services.loudness_analyzer import LoudnessAnalyzer
        from services.music_app_facade import MusicAppFacade
        from services.playback_session import PlaybackSession
        from services.queue_manager import QueueManager

        event_bus = EventBus()

        # === Service Layer ===
        session = PlaybackSession(
            engine,
            library,
            event_bus=event_bus,
            default_volume=config.get("playback.default_volume", 0.7),
            playback_rate=config.get("playback.playback_rate", 1.0),
            poll_interval=config.get("audio.poll_interval", 0.25),
        )
        analyzer = LoudnessAnalyzer(
            library,
            probe_factory,
            state_store=state_store,
            sample_seconds=config.get("playback.normalization.sample_seconds", 0.15),
            event_bus=event_bus,
        )
        gain = GainController(session, analyzer, config=config, event_bus=event_bus)
        queue = QueueManager(session, gain, event_bus=event_bus)

        facade = MusicAppFacade(
            queue=queue,
            session=session,
            library=library,
            gain=gain,
            analyzer=analyzer,
            config=config,
            event_bus=event_bus,
        )

        return AppContainer(
            config=config,
            event_bus=event_bus,
            state_store=state_store,
            facade=facade,
            _session=session,
            _queue=queue,
            _library=library,
            _analyzer=analyzer,
            _gain=gain,
        )
