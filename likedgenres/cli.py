#!/usr/bin/env python3
"""
Liked songs by genre - command line entry point.

Fetches your Spotify liked songs, enriches them with Spotify artist genres
(and Last.fm tags when LASTFM_API_KEY is set), then lists, filters,
exports or turns the result into a playlist.

Usage:
    likedgenres                                  # Fetch + print a genre summary
    likedgenres --query "rnb, -pop"              # Only songs matching the query
    likedgenres --genres                         # List every available genre
    likedgenres --query phonk --export out.csv   # Save matches as CSV
    likedgenres --query trap --playlist "Trap"   # Create a playlist from matches
    likedgenres --cache-stats                    # Show response cache size
    likedgenres --clear-cache                    # Drop cached API responses

Environment Variables: see likedgenres.config.
"""

import argparse
import sys
import traceback

from .client import LikedGenres
from .errors import ConfigError, LikedGenresError
from .export import export_table
from .log import is_verbose, log, set_verbose, timed_step, verbose_log

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="likedgenres",
        description="Filter your Spotify liked songs by genre",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Query syntax:
    Separate terms with commas or pipes. Prefix a term with - or ! to exclude it.
    "r&b | rnb, -pop"   matches R&B songs that are not tagged pop
        """,
    )
    parser.add_argument("--query", "-q", default="", help="Genre query, e.g. \"rock, -pop\"")
    parser.add_argument("--no-lastfm", action="store_true", help="Skip Last.fm tag enrichment")
    parser.add_argument("--genres", action="store_true", help="List all available genres and exit")
    parser.add_argument("--limit", type=int, default=20, help="Max songs to print (default: 20, 0 = all)")
    parser.add_argument("--export", metavar="PATH", help="Write matching songs to .csv, .json or .parquet")
    parser.add_argument("--playlist", metavar="NAME", help="Create a playlist from matching songs")
    parser.add_argument("--description", default="", help="Description for --playlist")
    parser.add_argument("--private", action="store_true", help="Make the --playlist private")
    parser.add_argument("--refresh", action="store_true", help="Clear the cache before fetching")
    parser.add_argument("--clear-cache", action="store_true", help="Clear cached API responses and exit")
    parser.add_argument("--cache-stats", action="store_true", help="Print cache statistics and exit")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable verbose logging for detailed debugging information")
    return parser


def _print_songs(songs, limit: int) -> None:
    shown = songs if limit <= 0 else songs[:limit]
    for s in shown:
        genres = ", ".join(s.genres[:3]) if s.genres else "no genres"
        print(f"  • {s.track.name} - {', '.join(s.track.artist_names)}  [{genres}]")
    if len(shown) < len(songs):
        print(f"  ... and {len(songs) - len(shown):,} more")


def run(args: argparse.Namespace, client: LikedGenres) -> int:
    if args.clear_cache:
        client.clear_cache()
        return EXIT_OK

    if args.cache_stats:
        stats = client.cache_stats()
        print(f"Cached responses: {stats.count:,} ({stats.total_size_bytes:,} bytes)")
        return EXIT_OK

    with timed_step("Fetch liked songs and genres"):
        if args.refresh:
            client.refresh(enable_lastfm=False if args.no_lastfm else None)
        else:
            client.fetch(enable_lastfm=False if args.no_lastfm else None)

    if args.genres:
        for genre in client.available_genres():
            print(genre)
        return EXIT_OK

    songs = client.filter(args.query)
    if args.query:
        log(f"🔎 {len(songs):,} songs match {args.query!r}")
    else:
        counts = client.genre_counts().head(15)
        for row in counts.itertuples(index=False):
            print(f"  {row.genre:<30} {row.songs:>6,}")
    _print_songs(songs, args.limit)

    if args.export:
        path = export_table(client.songs_frame(songs), args.export)
        log(f"💾 Exported {len(songs):,} songs to {path}")

    if args.playlist:
        if not songs:
            log("⚠️  No matching songs; playlist not created")
            return EXIT_FAILED
        result = client.export_to_playlist(songs, args.playlist, args.description, public=not args.private)
        log(f"🎧 {result.playlist_url or result.playlist_id}")

    return EXIT_OK


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    set_verbose(args.verbose)
    verbose_log("Verbose logging enabled - detailed output will be shown")

    try:
        client = LikedGenres.from_env(progress=True)
    except ConfigError as e:
        log(f"ERROR: {e}")
        return EXIT_CONFIG

    try:
        return run(args, client)
    except (LikedGenresError, ValueError) as e:
        log(f"ERROR: {e}")
        if is_verbose():
            verbose_log(f"Traceback:\n{traceback.format_exc()}")
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
