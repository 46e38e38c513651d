from __future__ import annotations

import argparse
import os
import sys

from playlist_feature_ranker.auth import TokenCache
from playlist_feature_ranker.cache import JsonFileCache
from playlist_feature_ranker.config import Settings, configure_logging, load_local_env_file
from playlist_feature_ranker.errors import RankerError
from playlist_feature_ranker.models import FEATURES, Combinator
from playlist_feature_ranker.pipeline import RankingRequest, run_ranking
from playlist_feature_ranker.spotify_service import Pacer, SpotifyService


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rank a Spotify playlist by audio features")
    parser.add_argument("--playlist", required=True, help="Name of one of your playlists")
    parser.add_argument(
        "--feature",
        dest="features",
        action="append",
        required=True,
        choices=FEATURES,
        help="Audio feature to rank by; repeat to combine several",
    )
    parser.add_argument(
        "--combinator",
        choices=[c.value for c in Combinator],
        help="How to combine several features into one score",
    )
    parser.add_argument(
        "--create-playlist",
        action="store_true",
        help="Save the ranked order as a new playlist",
    )
    parser.add_argument(
        "--cache-dir",
        default=None,
        help="Directory for cached API data and reports (defaults to RANKER_CACHE_DIR env or .)",
    )
    return parser.parse_args(argv)


def build_request(args: argparse.Namespace) -> RankingRequest:
    return RankingRequest(
        playlist_name=args.playlist,
        features=list(args.features),
        combinator=Combinator(args.combinator) if args.combinator else None,
        create_playlist=args.create_playlist,
    )


def token_from_env() -> TokenCache:
    credentials = TokenCache()
    access_token = os.getenv("SPOTIFY_ACCESS_TOKEN")
    if access_token:
        credentials.set_token({"access_token": access_token, "token_type": "Bearer"})
    return credentials


def main(argv: list[str] | None = None) -> int:
    load_local_env_file()
    configure_logging()
    args = parse_args(argv)
    settings = Settings.from_env()
    cache = JsonFileCache(args.cache_dir or settings.cache_dir)

    try:
        request = build_request(args)
        request.validate()
        service = SpotifyService.build(token_from_env(), cache, pacer=Pacer(settings.add_items_interval))
        result = run_ranking(service, cache, request)
    except RankerError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Ranked {len(result.track_ids)} tracks from '{result.playlist.name}'")
    if result.report_key:
        print(f"Report: {cache.path_for(result.report_key)}")
    if result.created_playlist:
        print(f"Created playlist: {result.created_playlist.name} ({result.created_playlist.id})")
    for position, track_id in enumerate(result.track_ids, start=1):
        print(f"{position:4d}. {track_id}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
