"""
Metadata Parser Module

Reads title, artist and duration from audio files with mutagen. Files
downloaded by the extractor are mostly MP3 with ID3 tags; other formats
go through mutagen's easy tag interface.
"""

from typing import Optional, List
from pathlib import Path
import logging

from models.track import TrackMetadata, UNKNOWN_ARTIST

logger = logging.getLogger(__name__)


class MetadataParser:
    """
    Metadata parser

    Usage example:
        metadata = MetadataParser.parse("path/to/song.mp3")
        if metadata:
            print(f"Title: {metadata.title}")
    """

    SUPPORTED_FORMATS = {'.mp3', '.flac', '.wav', '.ogg', '.m4a',
                         '.aac', '.opus'}

    @classmethod
    def parse(cls, file_path: str) -> Optional[TrackMetadata]:
        """
        Parse audio file metadata

        Args:
            file_path: Audio file path

        Returns:
            TrackMetadata: Metadata object, returns None if parsing fails
        """
        path = Path(file_path)

        if not path.exists() or not cls.is_supported(file_path):
            return None

        try:
            from mutagen import File

            audio = File(file_path, easy=True)
            if audio is None:
                return None

            duration = None
            if audio.info and getattr(audio.info, 'length', 0):
                duration = float(audio.info.length)

            title = cls._first_tag(audio, 'title')
            artist = cls._first_tag(audio, 'artist')

            # If no title, use filename
            fallback = TrackMetadata.from_filename(path.name)
            return TrackMetadata(
                title=title or fallback.title,
                artist=artist or UNKNOWN_ARTIST,
                duration_seconds=duration,
            )

        except Exception as e:
            logger.debug("Parsing failed: %s, Error: %s", file_path, e)
            return None

    @staticmethod
    def _first_tag(audio, key: str) -> str:
        tags = getattr(audio, 'tags', None)
        if not tags or not hasattr(tags, 'get'):
            return ''
        values = tags.get(key) or ['']
        return str(values[0]).strip()

    @staticmethod
    def get_supported_formats() -> List[str]:
        """Get list of supported formats"""
        return list(MetadataParser.SUPPORTED_FORMATS)

    @staticmethod
    def is_supported(file_path: str) -> bool:
        """Check if file format is supported"""
        suffix = Path(file_path).suffix.lower()
        return suffix in MetadataParser.SUPPORTED_FORMATS
