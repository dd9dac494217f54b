"""
Audio Engine Factory

Creates media engines for playback and silent probe engines for loudness
analysis, with fallback between backends.
"""

import logging
from typing import List, Type, Dict, Optional

from core.audio_engine import AudioEngineBase, PygameAudioEngine
from core.miniaudio_engine import MiniaudioEngine

logger = logging.getLogger(__name__)

# Engine registry
_ENGINE_REGISTRY: Dict[str, Type[AudioEngineBase]] = {}


def register_engine(name: str, engine_class: Type[AudioEngineBase]) -> None:
    """
    Register an audio engine.

    Args:
        name: Engine name identifier
        engine_class: Engine class
    """
    _ENGINE_REGISTRY[name] = engine_class


# Register built-in engines
register_engine("pygame", PygameAudioEngine)
register_engine("miniaudio", MiniaudioEngine)


class AudioEngineFactory:
    """
    Audio Engine Factory

    Usage Example:
        # Create a specific backend
        engine = AudioEngineFactory.create("miniaudio")

        # Silent engine for loudness analysis
        probe = AudioEngineFactory.create_probe()
    """

    # Backend priority (fallback order)
    PRIORITY_ORDER = ["miniaudio", "pygame"]

    @classmethod
    def create(cls, backend: str = "miniaudio") -> AudioEngineBase:
        """
        Create a specified audio engine.

        If the specified backend is unavailable, it will automatically fall back to an available one.

        Raises:
            RuntimeError: If no backends are available
        """
        if backend in _ENGINE_REGISTRY:
            try:
                engine = _ENGINE_REGISTRY[backend]()
                logger.info("Using audio backend: %s", backend)
                return engine
            except Exception as e:
                logger.warning("Failed to create %s backend: %s, attempting fallback", backend, e)

        return cls.create_best_available(exclude=[backend])

    @classmethod
    def create_best_available(
        cls, exclude: Optional[List[str]] = None
    ) -> AudioEngineBase:
        """
        Create the best available audio engine, trying each backend in priority order.

        Raises:
            RuntimeError: If no backends are available
        """
        exclude = exclude or []

        for backend in cls.PRIORITY_ORDER:
            if backend in exclude or backend not in _ENGINE_REGISTRY:
                continue
            try:
                engine = _ENGINE_REGISTRY[backend]()
                logger.info("Using audio backend: %s", backend)
                return engine
            except Exception as e:
                logger.debug("Backend %s unavailable: %s", backend, e)

        raise RuntimeError("No audio backends available. Please install miniaudio or pygame.")

    @classmethod
    def create_probe(cls) -> AudioEngineBase:
        """
        Create a silent engine able to sample signal levels.

        Raises:
            RuntimeError: If no backend supports level sampling
        """
        if not MiniaudioEngine.probe():
            raise RuntimeError("Loudness analysis requires the miniaudio backend")
        return MiniaudioEngine(output=False)

    @classmethod
    def get_available_backends(cls) -> List[str]:
        """Available backend names, sorted by priority."""
        return [backend for backend in cls.PRIORITY_ORDER if cls.is_available(backend)]

    @classmethod
    def is_available(cls, backend: str) -> bool:
        """Check if a backend's dependencies are importable."""
        engine_class = _ENGINE_REGISTRY.get(backend)
        if engine_class is None:
            return False
        try:
            return bool(engine_class.probe())
        except Exception:
            return False
