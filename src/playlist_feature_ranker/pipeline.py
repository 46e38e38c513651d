from __future__ import annotations

import logging
from dataclasses import dataclass, field

from playlist_feature_ranker.cache import JsonFileCache, report_key
from playlist_feature_ranker.errors import InvalidRequest
from playlist_feature_ranker.models import Combinator, Playlist, is_comparable_feature
from playlist_feature_ranker.ranking import parse_combinator, rank, songs_for_tracklist
from playlist_feature_ranker.spotify_service import SpotifyService

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RankingRequest:
    playlist_name: str
    features: list[str]
    combinator: Combinator | None = None
    create_playlist: bool = False

    def validate(self) -> None:
        if not self.playlist_name:
            raise InvalidRequest("A playlist name is required")
        if not self.features:
            raise InvalidRequest("At least one feature is required")
        invalid = [f for f in self.features if not is_comparable_feature(f)]
        if invalid:
            raise InvalidRequest(f"Invalid features: {', '.join(invalid)}")
        if self.combinator is not None:
            self.combinator = parse_combinator(self.combinator)
        if len(self.features) > 1 and self.combinator is None:
            raise InvalidRequest("A scoring function is required when ranking by more than one feature")

    @property
    def effective_combinator(self) -> Combinator | None:
        return self.combinator if len(self.features) > 1 else None

    def new_playlist_name(self) -> str:
        name = f"{self.playlist_name} by {'+'.join(self.features)}"
        if self.effective_combinator is not None:
            name = f"{name} ({self.effective_combinator.value})"
        return name


@dataclass(slots=True)
class RankingResult:
    playlist: Playlist
    track_ids: list[str] = field(default_factory=list)
    report_key: str | None = None
    created_playlist: Playlist | None = None


def run_ranking(service: SpotifyService, cache: JsonFileCache, request: RankingRequest) -> RankingResult:
    """Rank one playlist end to end, optionally writing the order back as a new playlist.

    Any failure aborts the run; nothing is retried and no partial result is
    returned.
    """
    request.validate()

    playlist = service.resolve_playlist_by_name(request.playlist_name)
    tracklist = service.get_all_playlist_tracks(playlist)
    songs = service.get_tracklist_features(playlist, tracklist)
    songs = songs_for_tracklist(tracklist, songs)

    combinator = request.effective_combinator
    track_ids = rank(songs, request.features, combinator, cache=cache, playlist_name=playlist.name)
    result = RankingResult(
        playlist=playlist,
        track_ids=track_ids,
        report_key=report_key(playlist.name, request.features, combinator.value if combinator else None),
    )
    logger.info("Ranked %d tracks of playlist %s", len(track_ids), playlist.name)

    if request.create_playlist:
        created = service.create_playlist(request.new_playlist_name())
        service.add_tracks_to_playlist(created.id, [tracklist[tid].uri for tid in track_ids])
        result.created_playlist = created

    return result
