"""
Library Service Module

File-system library layout:

    <root>/all songs/<track files>        every downloaded track
    <root>/playlists/<name>/<link>        one directory per playlist, one
                                          symlink (or .ref file) per member
    <root>/playlists/<name>/.playlist-order.json
    <root>/song-metadata.json             metadata imported from searches

A track id is the file name inside "all songs".
"""

from typing import Dict, List, Optional
from datetime import datetime
from pathlib import Path
import json
import os
import logging

from core.metadata import MetadataParser
from models.track import TrackMetadata

logger = logging.getLogger(__name__)


class TrackUnavailable(Exception):
    """The bytes of a track could not be read"""

    def __init__(self, track_id: str, reason: str = ""):
        self.track_id = track_id
        self.reason = reason
        super().__init__(f"Track unavailable: {track_id}" + (f" ({reason})" if reason else ""))


class PlaylistNotFound(LookupError):
    """No playlist directory with that name"""


class LibraryService:
    """
    Library Service

    Thin I/O wrapper over the library directory.

    Example:
        library = LibraryService("~/Music/musicqueue")
        data = library.fetch_track_bytes("song.mp3")
        tracks = library.list_playlist_tracks("Road Trip")
    """

    ALL_SONGS_DIR = "all songs"
    PLAYLISTS_DIR = "playlists"
    ORDER_FILE = ".playlist-order.json"
    METADATA_FILE = "song-metadata.json"
    REF_SUFFIX = ".ref"

    def __init__(self, root: str):
        self._root = Path(os.path.expanduser(root))
        self._metadata: Optional[Dict[str, dict]] = None

    @property
    def root(self) -> Path:
        return self._root

    @property
    def all_songs_path(self) -> Path:
        return self._root / self.ALL_SONGS_DIR

    @property
    def playlists_path(self) -> Path:
        return self._root / self.PLAYLISTS_DIR

    def ensure_dirs(self) -> None:
        """Create the library directory structure"""
        self.all_songs_path.mkdir(parents=True, exist_ok=True)
        self.playlists_path.mkdir(parents=True, exist_ok=True)

    # ===== Tracks =====

    def track_path(self, track_id: str) -> Path:
        """Path of a track; rejects ids that escape the library"""
        if not track_id or Path(track_id).name != track_id:
            raise TrackUnavailable(track_id, "invalid track id")
        return self.all_songs_path / track_id

    def fetch_track_bytes(self, track_id: str) -> bytes:
        """
        Read the encoded audio bytes of a track

        Raises:
            TrackUnavailable: If the file is missing or unreadable
        """
        path = self.track_path(track_id)
        try:
            return path.read_bytes()
        except OSError as e:
            raise TrackUnavailable(track_id, e.strerror or str(e)) from e

    def list_all_tracks(self) -> List[str]:
        """All track ids, sorted by name"""
        if not self.all_songs_path.is_dir():
            return []
        return sorted(
            p.name for p in self.all_songs_path.iterdir()
            if p.is_file() and MetadataParser.is_supported(p.name)
        )

    # ===== Metadata =====

    def _metadata_store(self) -> Dict[str, dict]:
        if self._metadata is None:
            path = self._root / self.METADATA_FILE
            self._metadata = {}
            if path.exists():
                try:
                    data = json.loads(path.read_text(encoding='utf-8'))
                    if isinstance(data, dict):
                        self._metadata = data
                except (OSError, ValueError) as e:
                    logger.error("Failed to read metadata: %s", e)
        return self._metadata

    def get_metadata(self, track_id: str) -> TrackMetadata:
        """
        Metadata for a track

        Imported metadata wins, then file tags, then the file name.
        """
        stored = self._metadata_store().get(track_id)
        if stored:
            metadata = TrackMetadata.from_dict(stored)
            if metadata.title:
                return metadata

        try:
            path = self.track_path(track_id)
        except TrackUnavailable:
            return TrackMetadata.from_filename(track_id)

        parsed = MetadataParser.parse(str(path))
        return parsed or TrackMetadata.from_filename(track_id)

    def set_metadata(self, track_id: str, metadata: TrackMetadata) -> None:
        """Store metadata imported from a search result"""
        store = self._metadata_store()
        store[track_id] = metadata.to_dict()
        path = self._root / self.METADATA_FILE
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(store, indent=2, ensure_ascii=False), encoding='utf-8')

    # ===== Playlists =====

    def _playlist_dir(self, name: str) -> Path:
        if not name or Path(name).name != name:
            raise PlaylistNotFound(name)
        return self.playlists_path / name

    def list_playlists(self) -> List[str]:
        if not self.playlists_path.is_dir():
            return []
        return sorted(p.name for p in self.playlists_path.iterdir() if p.is_dir())

    def create_playlist(self, name: str) -> Path:
        """
        Create an empty playlist

        Raises:
            FileExistsError: If the playlist already exists
        """
        self.ensure_dirs()
        path = self._playlist_dir(name)
        if path.exists():
            raise FileExistsError(f"Playlist already exists: {name}")
        path.mkdir(parents=True)
        return path

    def add_to_playlist(self, name: str, track_id: str) -> None:
        """Add a member link; falls back to a .ref file where symlinks are unavailable"""
        song_path = self.track_path(track_id)
        playlist_path = self._playlist_dir(name)
        if not song_path.exists():
            raise TrackUnavailable(track_id, "song file does not exist")
        if not playlist_path.is_dir():
            raise PlaylistNotFound(name)

        link_path = playlist_path / track_id
        try:
            if os.name == "nt":
                os.link(song_path, link_path)
            else:
                os.symlink(song_path, link_path)
        except OSError as e:
            logger.debug("Link failed (%s), writing reference file", e)
            (playlist_path / (track_id + self.REF_SUFFIX)).write_text(
                f"# Playlist Reference\nOriginal: {song_path}", encoding='utf-8'
            )

    def remove_from_playlist(self, name: str, track_id: str) -> None:
        playlist_path = self._playlist_dir(name)
        if not playlist_path.is_dir():
            raise PlaylistNotFound(name)
        for candidate in (playlist_path / track_id, playlist_path / (track_id + self.REF_SUFFIX)):
            if candidate.is_symlink() or candidate.exists():
                candidate.unlink()

    def reorder_playlist(self, name: str, ordered_track_ids: List[str]) -> None:
        """Persist a custom member order"""
        playlist_path = self._playlist_dir(name)
        if not playlist_path.is_dir():
            raise PlaylistNotFound(name)
        payload = {
            "order": list(ordered_track_ids),
            "lastUpdated": datetime.now().isoformat(),
        }
        (playlist_path / self.ORDER_FILE).write_text(json.dumps(payload, indent=2), encoding='utf-8')

    def _playlist_order(self, playlist_path: Path) -> List[str]:
        order_path = playlist_path / self.ORDER_FILE
        if not order_path.exists():
            return []
        try:
            data = json.loads(order_path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            logger.error("Failed to get playlist order: %s", e)
            return []
        order = data.get("order") if isinstance(data, dict) else None
        return [t for t in (order or []) if isinstance(t, str)]

    def list_playlist_tracks(self, name: str) -> List[str]:
        """
        Member track ids in persisted order

        Members named in the order file come first in that order, the rest
        follow alphabetically.

        Raises:
            PlaylistNotFound: If the playlist does not exist
        """
        playlist_path = self._playlist_dir(name)
        if not playlist_path.is_dir():
            raise PlaylistNotFound(name)

        members = set()
        for entry in playlist_path.iterdir():
            entry_name = entry.name
            if entry_name.endswith(self.REF_SUFFIX):
                entry_name = entry_name[:-len(self.REF_SUFFIX)]
            if MetadataParser.is_supported(entry_name):
                members.add(entry_name)

        ordered = [t for t in self._playlist_order(playlist_path) if t in members]
        seen = set(ordered)
        ordered.extend(sorted(members - seen))
        return ordered
