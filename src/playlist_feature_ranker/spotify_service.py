from __future__ import annotations

import logging
import time
from typing import Callable, Iterator, Sequence, TypeVar

import spotipy
from requests.exceptions import RequestException
from spotipy.exceptions import SpotifyException

from playlist_feature_ranker.auth import TokenCache, TokenCacheAuthManager
from playlist_feature_ranker.cache import JsonFileCache, features_key, playlists_key, tracks_key
from playlist_feature_ranker.errors import FeatureDataError, NotFound, TransportError
from playlist_feature_ranker.models import Playlist, Song, Track, Tracklist

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _chunks(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class Pacer:
    """Keeps at least ``min_interval`` seconds between successive calls to ``wait``."""

    def __init__(
        self,
        min_interval: float,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.min_interval = min_interval
        self._sleep = sleep
        self._clock = clock
        self._last: float | None = None

    def wait(self) -> None:
        if self._last is not None:
            remaining = self.min_interval - (self._clock() - self._last)
            if remaining > 0:
                self._sleep(remaining)
        self._last = self._clock()


class SpotifyService:
    PLAYLIST_PAGE_LIMIT = 50
    TRACK_PAGE_LIMIT = 50
    # Upper bounds on ids per audio-features and add-items request.
    AUDIO_FEATURES_BATCH = 10
    ADD_ITEMS_BATCH = 75
    TRACK_FIELDS = "total,limit,next,offset,items(track(id,name,uri,artists(name)))"
    PLAYLIST_DESCRIPTION = "Generated Automatically"

    def __init__(
        self,
        client: spotipy.Spotify,
        cache: JsonFileCache,
        user_id: str,
        pacer: Pacer | None = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.user_id = user_id
        self.pacer = pacer or Pacer(0.8)

    @classmethod
    def build(
        cls,
        credentials: TokenCache,
        cache: JsonFileCache,
        user_id: str | None = None,
        pacer: Pacer | None = None,
    ) -> SpotifyService:
        # Retries are disabled: a failed call aborts the run.
        client = spotipy.Spotify(
            auth_manager=TokenCacheAuthManager(credentials),
            retries=0,
            status_retries=0,
        )
        if not user_id:
            profile = cls._call("fetch current user", client.current_user) or {}
            user_id = profile.get("id")
            if not user_id:
                raise NotFound("Failed to get current Spotify user")
        return cls(client, cache, user_id, pacer=pacer)

    @staticmethod
    def _call(action: str, func: Callable[..., T], /, *args, **kwargs) -> T:
        try:
            return func(*args, **kwargs)
        except (SpotifyException, RequestException) as exc:
            status = exc.http_status if isinstance(exc, SpotifyException) else getattr(exc.response, "status_code", None)
            raise TransportError(f"Spotify request failed ({action}, status={status}): {exc}") from exc

    def get_all_playlists(self) -> list[Playlist]:
        logger.info("Retrieving playlists from user %s", self.user_id)

        key = playlists_key(self.user_id)
        if self.cache.exists(key):
            logger.info("Cached playlists found at %s", key)
            return [Playlist.from_dict(p) for p in self.cache.load(key)]

        summaries: list[dict] = []
        offset = 0
        while True:
            page = self._call(
                "list playlists",
                self.client.user_playlists,
                self.user_id,
                limit=self.PLAYLIST_PAGE_LIMIT,
                offset=offset,
            )
            summaries.extend(item for item in page.get("items", []) if item)
            if not page.get("next"):
                break
            offset += self.PLAYLIST_PAGE_LIMIT

        self.cache.store(key, summaries, pretty=True)
        return [Playlist.from_dict(p) for p in summaries]

    def resolve_playlist_by_name(self, name: str) -> Playlist:
        matches = [p for p in self.get_all_playlists() if p.name == name]
        if not matches:
            raise NotFound(f"Playlist {name} not found for user {self.user_id}")
        if len(matches) > 1:
            logger.warning(
                "%d playlists named %r for user %s; using the first (%s)",
                len(matches),
                name,
                self.user_id,
                matches[0].id,
            )
        return matches[0]

    def get_all_playlist_tracks(self, playlist: Playlist) -> Tracklist:
        logger.info("Retrieving tracks from playlist %s (%s)", playlist.name, playlist.id)

        key = tracks_key(playlist.name)
        if self.cache.exists(key):
            logger.info("Cached playlist tracks found at %s", key)
            return {tid: Track.from_dict(t) for tid, t in self.cache.load(key).items()}

        tracklist: Tracklist = {}
        offset = 0
        while True:
            if offset:
                logger.info("Getting page of playlist tracks from offset %d", offset)
            page = self._call(
                "list playlist items",
                self.client.playlist_items,
                playlist.id,
                fields=self.TRACK_FIELDS,
                limit=self.TRACK_PAGE_LIMIT,
                offset=offset,
                additional_types=("track",),
            )
            for item in page.get("items", []):
                track = (item or {}).get("track")
                if not track or not track.get("id"):
                    logger.warning("Skipping playlist item without a track id at offset %d", offset)
                    continue
                if track["id"] in tracklist:
                    continue
                tracklist[track["id"]] = Track(
                    id=track["id"],
                    name=track["name"],
                    artists=[a["name"] for a in track.get("artists", [])],
                    uri=track["uri"],
                )
            if not page.get("next"):
                break
            offset += self.TRACK_PAGE_LIMIT

        self.cache.store(key, {tid: t.to_dict() for tid, t in tracklist.items()})
        return tracklist

    def get_tracklist_features(self, playlist: Playlist, tracklist: Tracklist) -> list[Song]:
        logger.info("Retrieving audio features from playlist %s (%s)", playlist.name, playlist.id)

        key = features_key(playlist.name)
        if self.cache.exists(key):
            logger.info("Cached playlist features found at %s", key)
            return [Song.from_dict(s) for s in self.cache.load(key)]

        songs: list[Song] = []
        for batch in _chunks(list(tracklist), self.AUDIO_FEATURES_BATCH):
            records = self._call("fetch audio features", self.client.audio_features, list(batch)) or []
            by_id = {r["id"]: r for r in records if r}
            for track_id in batch:
                record = by_id.get(track_id)
                if record is None:
                    raise FeatureDataError(f"No audio features returned for track {track_id}")
                track = tracklist[track_id]
                songs.append(Song.from_dict({**record, "name": track.name, "artists": track.artists}))

        self.cache.store(key, [s.to_dict() for s in songs])
        return songs

    def create_playlist(self, name: str) -> Playlist:
        logger.info("Creating playlist %r", name)
        response = self._call(
            "create playlist",
            self.client.user_playlist_create,
            self.user_id,
            name,
            public=True,
            collaborative=False,
            description=self.PLAYLIST_DESCRIPTION,
        )
        logger.info("Created playlist %r (%s)", name, response["id"])
        return Playlist(id=response["id"], name=response.get("name", name), owner_id=self.user_id)

    def add_tracks_to_playlist(self, playlist_id: str, uris: Sequence[str]) -> None:
        logger.info("Adding %d tracks to playlist %s", len(uris), playlist_id)
        for page, batch in enumerate(_chunks(list(uris), self.ADD_ITEMS_BATCH), start=1):
            self.pacer.wait()
            logger.info("Adding page %d of tracks to playlist", page)
            self._call("add playlist items", self.client.playlist_add_items, playlist_id, list(batch))
