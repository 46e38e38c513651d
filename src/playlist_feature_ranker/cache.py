"""JSON file cache for playlist listings, tracklists, features and reports.

A present file is always a hit and its content is trusted as-is. Nothing here
ever expires or refreshes an entry; delete the file to force a refetch.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable

from playlist_feature_ranker.errors import CacheCorrupt

logger = logging.getLogger(__name__)


def _safe_name(name: str) -> str:
    """Percent-escape path separators so each name maps to its own directory."""
    return name.replace("%", "%25").replace("/", "%2F").replace("\\", "%5C")


def playlists_key(user_id: str) -> str:
    return f"{_safe_name(user_id)}.playlists.json"


def tracks_key(playlist_name: str) -> str:
    return f"playlist-{_safe_name(playlist_name)}/tracks.json"


def features_key(playlist_name: str) -> str:
    return f"playlist-{_safe_name(playlist_name)}/features.json"


def report_key(playlist_name: str, features: Iterable[str], combinator: str | None = None) -> str:
    file_name = "+".join(features)
    if combinator:
        file_name = f"{file_name}-{combinator}"
    return f"playlist-{_safe_name(playlist_name)}/{file_name}.json"


class JsonFileCache:
    def __init__(self, root: str | Path = ".") -> None:
        self.root = Path(root)

    def path_for(self, key: str) -> Path:
        return self.root / key

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def load(self, key: str) -> Any:
        path = self.path_for(key)
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise CacheCorrupt(f"Cache artifact {path} is not valid JSON: {exc}") from exc

    def store(self, key: str, value: Any, pretty: bool = False) -> Path:
        """Replace the whole artifact at ``key`` with ``value``.

        The content goes to a temporary file next to the target first and is
        then moved over it, so readers see either the old file or the new one.
        """
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(value, handle, ensure_ascii=False, indent=2 if pretty else None)
            os.replace(tmp_name, path)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("Wrote cache artifact %s", path)
        return path
