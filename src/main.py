"""
musicqueue - Main Entry Point

Headless command-line player on top of the queue/playback core.
"""

import argparse
import asyncio
import logging
import os
import sys

# Add src to path
src_path = os.path.dirname(os.path.abspath(__file__))
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from app.container_factory import AppContainerFactory
from core.event_bus import EventType
from models.playback import LoopMode
from services.library_service import PlaylistNotFound, TrackUnavailable

logger = logging.getLogger("musicqueue")


def setup_logging(debug: bool = False) -> None:
    """Configure console logging for the whole application."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))
    root.addHandler(handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="musicqueue",
        description="Queue-based music player with loudness normalization",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  musicqueue playlists                          # List playlists
  musicqueue play --playlist "Road Trip"        # Play a playlist
  musicqueue play --playlist Mix --shuffle --loop all --normalize
  musicqueue play song-one.mp3 song-two.mp3     # Play individual tracks
  musicqueue clear-cache                        # Forget loudness estimates
        """
    )
    parser.add_argument("--config", "-c", help="Path to configuration file (YAML)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    play = subparsers.add_parser("play", help="Play a playlist and/or tracks")
    play.add_argument("--playlist", "-p", help="Playlist to queue as a group")
    play.add_argument("--shuffle", action="store_true", help="Shuffle the playlist once when queueing it")
    play.add_argument(
        "--loop",
        choices=["off", "all", "one"],
        default="off",
        help="Loop mode (default: off)",
    )
    play.add_argument("--normalize", action="store_true", help="Enable loudness normalization")
    play.add_argument("tracks", nargs="*", metavar="TRACK", help="Track file names from the library")

    subparsers.add_parser("playlists", help="List playlists in the library")
    subparsers.add_parser("clear-cache", help="Clear the loudness cache")
    return parser


async def run_play(container, args: argparse.Namespace) -> int:
    facade = container.facade
    finished = asyncio.Event()
    stalled = False

    def on_started(entry) -> None:
        if entry is not None:
            print(f"Now playing: {entry.metadata.display_name} [{entry.metadata.duration_str}]")

    def on_stopped(data) -> None:
        if data and data.get("reason") in ("end_of_queue", "queue_empty", "cleared"):
            finished.set()

    def on_error(data) -> None:
        nonlocal stalled
        print(f"Error: {data.get('error')}", file=sys.stderr)
        # Failed loads are not skipped, so an idle session means the queue is stuck
        if not facade.get_playback_state().is_playing:
            stalled = True
            finished.set()

    facade.subscribe(EventType.TRACK_STARTED, on_started)
    facade.subscribe(EventType.PLAYBACK_STOPPED, on_stopped)
    facade.subscribe(EventType.ERROR_OCCURRED, on_error)

    facade.set_loop_mode(LoopMode.from_name(args.loop))
    if args.normalize:
        facade.set_normalization_enabled(True)

    container.start()
    try:
        if args.playlist:
            group_id = await facade.enqueue_playlist(args.playlist, shuffle=args.shuffle)
            if group_id is None:
                print(f"Playlist is empty: {args.playlist}", file=sys.stderr)
        for track_id in args.tracks:
            await facade.enqueue(track_id)
    except PlaylistNotFound:
        print(f"No such playlist: {args.playlist}", file=sys.stderr)
        return 1
    except TrackUnavailable as e:
        print(str(e), file=sys.stderr)
        return 1

    if not facade.get_queue():
        print("Nothing to play", file=sys.stderr)
        return 1

    view = facade.get_queue_view()
    print(f"Queued {view.total_tracks} tracks ({view.total_duration_str})")
    await finished.wait()
    return 1 if stalled else 0


async def run(args: argparse.Namespace) -> int:
    try:
        container = AppContainerFactory.create(args.config)
    except RuntimeError as e:
        print(str(e), file=sys.stderr)
        return 1

    try:
        facade = container.facade
        if args.command == "playlists":
            for name in facade.list_playlists():
                print(f"{name} ({len(facade.list_playlist_tracks(name))} tracks)")
            return 0
        if args.command == "clear-cache":
            count = facade.clear_loudness_cache()
            print(f"Cleared {count} cached loudness values")
            return 0
        return await run_play(container, args)
    finally:
        await container.shutdown()


def main(argv=None) -> int:
    """Application entry point"""
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
