from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path


def load_local_env_file(env_path: str = ".env") -> None:
    """Load key=value pairs from a local .env file into process env.

    Existing environment variables are preserved and not overwritten.
    """

    path = Path(env_path)
    if not path.exists():
        return

    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")

        if key and key not in os.environ:
            os.environ[key] = value


def _env_int(name: str, fallback: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return fallback
    try:
        return int(raw)
    except ValueError:
        return fallback


def _env_float(name: str, fallback: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return fallback
    try:
        return float(raw)
    except ValueError:
        return fallback


def _env_bool(name: str, fallback: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return fallback
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(slots=True)
class Settings:
    client_id: str | None = None
    cache_dir: str = "."
    port: int = 3000
    add_items_interval: float = 0.8
    show_dialog: bool = False

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self.port}/callback"

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            client_id=os.getenv("SPOTIPY_CLIENT_ID") or None,
            cache_dir=os.getenv("RANKER_CACHE_DIR") or ".",
            port=_env_int("PORT", 3000),
            add_items_interval=max(0.0, _env_float("RANKER_ADD_ITEMS_INTERVAL", 0.8)),
            show_dialog=_env_bool("RANKER_SHOW_DIALOG", False),
        )


def configure_logging(level: int = logging.INFO) -> None:
    """Send log records to stdout. Safe to call more than once."""
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s - %(message)s", datefmt="%H:%M:%S")
    )
    root.addHandler(handler)
    root.setLevel(level)
