"""FastAPI server: interactive login plus the playlist ranking endpoint."""
import logging

from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import BaseModel, Field

from playlist_feature_ranker.auth import TokenCache, build_authorize_url
from playlist_feature_ranker.cache import JsonFileCache
from playlist_feature_ranker.config import Settings
from playlist_feature_ranker.errors import (
    CacheCorrupt,
    CredentialMissing,
    FeatureDataError,
    InvalidRequest,
    NotFound,
    RankerError,
    TransportError,
)
from playlist_feature_ranker.pipeline import RankingRequest, run_ranking
from playlist_feature_ranker.spotify_service import Pacer, SpotifyService

logger = logging.getLogger(__name__)

app = FastAPI(title="Playlist Feature Ranker")

# Token captured by /token, shared by every request in this process.
token_cache = TokenCache()

_CALLBACK_HTML = """<!doctype html>
<html>
  <body>
    <p id="status">Completing Spotify login...</p>
    <script>
      const params = window.location.hash.substring(1);
      fetch("/token?" + params).then((res) => {
        document.getElementById("status").textContent = res.ok
          ? "Logged in. You can close this window."
          : "Login failed.";
      });
    </script>
  </body>
</html>
"""

_ERROR_STATUS = (
    (CredentialMissing, 401),
    (NotFound, 404),
    (InvalidRequest, 422),
    (FeatureDataError, 422),
    (TransportError, 502),
    (CacheCorrupt, 500),
)


class PlaylistRankRequest(BaseModel):
    """Rank a playlist by one or more audio features."""
    playlistName: str = Field(min_length=1)
    features: list[str] = Field(min_length=1)
    scoringFunction: str | None = None
    createPlaylist: bool = False


class PlaylistRankResponse(BaseModel):
    playlist: str
    trackIds: list[str]
    report: str | None = None
    createdPlaylist: str | None = None


def get_settings() -> Settings:
    return Settings.from_env()


def get_spotify_service(settings: Settings) -> SpotifyService:
    """Build a catalog client over the process token cache."""
    return SpotifyService.build(
        token_cache,
        JsonFileCache(settings.cache_dir),
        pacer=Pacer(settings.add_items_interval),
    )


def _status_for(exc: RankerError) -> int:
    for error_type, status in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/login")
def login():
    settings = get_settings()
    if not settings.client_id:
        raise HTTPException(status_code=500, detail="SPOTIPY_CLIENT_ID must be set")
    return RedirectResponse(
        build_authorize_url(settings.client_id, settings.redirect_uri, show_dialog=settings.show_dialog)
    )


@app.get("/callback", response_class=HTMLResponse)
def callback(error: str | None = None):
    if error:
        logger.error("Spotify login failed: %s", error)
    return _CALLBACK_HTML


@app.get("/token")
def store_token(access_token: str | None = None, token_type: str = "Bearer", expires_in: int = 3600):
    if not access_token:
        logger.error("Failed to get token from login callback")
        raise HTTPException(status_code=400, detail="access_token is required")
    token_cache.set_token(
        {
            "access_token": access_token,
            "token_type": token_type,
            "expires_in": expires_in,
            "refresh_token": "",
        }
    )
    logger.info("Stored access token (expires in %ss)", expires_in)
    return {"status": "ok"}


@app.post("/playlist", status_code=201, response_model=PlaylistRankResponse)
def rank_playlist(request: PlaylistRankRequest):
    """Rank a playlist's tracks and optionally save the order as a new playlist."""
    logger.info("Received ranking request %s", request.model_dump())
    settings = get_settings()
    try:
        ranking_request = RankingRequest(
            playlist_name=request.playlistName,
            features=list(request.features),
            combinator=request.scoringFunction,
            create_playlist=request.createPlaylist,
        )
        ranking_request.validate()
        service = get_spotify_service(settings)
        result = run_ranking(service, JsonFileCache(settings.cache_dir), ranking_request)
    except RankerError as exc:
        logger.error("Ranking request failed: %s", exc)
        raise HTTPException(status_code=_status_for(exc), detail=str(exc)) from exc

    return PlaylistRankResponse(
        playlist=result.playlist.name,
        trackIds=result.track_ids,
        report=result.report_key,
        createdPlaylist=result.created_playlist.id if result.created_playlist else None,
    )
