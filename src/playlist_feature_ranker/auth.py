from __future__ import annotations

from urllib.parse import urlencode

from playlist_feature_ranker.errors import CredentialMissing

SPOTIFY_AUTHORIZE_URL = "https://accounts.spotify.com/authorize"

SCOPES = (
    "playlist-read-private",
    "playlist-modify-public",
    "playlist-modify-private",
    "user-library-read",
    "user-library-modify",
    "user-read-private",
)


class TokenCache:
    """In-process holder for the access token captured during login."""

    def __init__(self) -> None:
        self._token: dict | None = None

    def set_token(self, token: dict) -> None:
        self._token = dict(token)

    def get_credential(self) -> dict | None:
        return self._token

    def invalidate(self) -> None:
        self._token = None


class TokenCacheAuthManager:
    """spotipy auth manager that hands out whatever token the provider holds.

    It never acquires or refreshes tokens itself.
    """

    def __init__(self, credentials: TokenCache) -> None:
        self.credentials = credentials

    def get_access_token(self, as_dict: bool = False) -> dict | str:
        token = self.credentials.get_credential()
        if not token or not token.get("access_token"):
            raise CredentialMissing("Failed to retrieve access token; log in first")
        return token if as_dict else token["access_token"]


def build_authorize_url(
    client_id: str,
    redirect_uri: str,
    scopes: tuple[str, ...] | list[str] = SCOPES,
    show_dialog: bool = False,
) -> str:
    query = urlencode(
        {
            "client_id": client_id,
            "response_type": "token",
            "scope": " ".join(scopes),
            "show_dialog": str(show_dialog).lower(),
            "redirect_uri": redirect_uri,
        }
    )
    return f"{SPOTIFY_AUTHORIZE_URL}?{query}"
