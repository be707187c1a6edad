"""Configuration management via .env file."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

log = logging.getLogger(__name__)

SEARCH_PROVIDERS = ("google_books", "open_library")


def _xdg_data_home() -> Path:
    return Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))


def _xdg_config_home() -> Path:
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))


@dataclass
class AppConfig:
    # Paths
    data_dir: Path = field(default_factory=lambda: _xdg_data_home() / "bookmate")
    config_dir: Path = field(default_factory=lambda: _xdg_config_home() / "bookmate")
    db_path: Path = field(init=False)

    # Search
    search_provider: str = "google_books"
    search_timeout: float = 15.0
    search_debounce: float = 0.5
    search_max_results: int = 20
    google_books_url: str = "https://www.googleapis.com/books/v1/volumes"
    open_library_url: str = "https://openlibrary.org/search.json"

    # Library
    recently_added_limit: int = 10
    seconds_per_page: int = 180  # rough reading-speed estimate
    user_id: Optional[str] = None

    # Per-user storage lives under data_dir/users/<user_id>
    user_dir: Path = field(init=False)
    log_path: Path = field(init=False)

    def __post_init__(self) -> None:
        if self.user_id is not None:
            if self.user_id in ("", ".", "..") or Path(self.user_id).name != self.user_id:
                raise ValueError(f"Invalid user id: {self.user_id!r}")
            self.user_dir = self.data_dir / "users" / self.user_id
        else:
            self.user_dir = self.data_dir
        self.db_path = self.user_dir / "bookmate.db"
        self.log_path = self.data_dir / "bookmate.log"
        self.user_dir.mkdir(parents=True, exist_ok=True)
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def provider_url(self, provider: str) -> str:
        if provider == "google_books":
            return self.google_books_url
        if provider == "open_library":
            return self.open_library_url
        raise ValueError(
            f"Unknown search provider: {provider}. "
            f"Supported: {', '.join(SEARCH_PROVIDERS)}"
        )


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        log.warning("Ignoring invalid %s=%r, using %r", name, raw, default)
        return default


def load_config(
    env_path: Optional[Path] = None,
    data_dir: Optional[Path] = None,
    config_dir: Optional[Path] = None,
) -> AppConfig:
    """Load config from .env file. Searches CWD then config dir."""
    search_paths = [
        env_path,
        Path.cwd() / ".env",
        _xdg_config_home() / "bookmate" / ".env",
        Path.home() / ".env",
    ]
    for p in search_paths:
        if p and p.exists():
            load_dotenv(p)
            break

    dirs = {}
    if data_dir is not None:
        dirs["data_dir"] = data_dir
    elif os.getenv("BOOKMATE_DATA_DIR"):
        dirs["data_dir"] = Path(os.environ["BOOKMATE_DATA_DIR"])
    if config_dir is not None:
        dirs["config_dir"] = config_dir

    defaults = AppConfig(**dirs)

    provider = os.getenv("BOOKMATE_SEARCH_PROVIDER", defaults.search_provider)
    if provider not in SEARCH_PROVIDERS:
        log.warning(
            "Unknown search provider %r, using %r", provider, defaults.search_provider
        )
        provider = defaults.search_provider

    return AppConfig(
        **dirs,
        search_provider=provider,
        search_timeout=_env_number(
            "BOOKMATE_SEARCH_TIMEOUT", defaults.search_timeout, float
        ),
        search_debounce=_env_number(
            "BOOKMATE_SEARCH_DEBOUNCE", defaults.search_debounce, float
        ),
        search_max_results=_env_number(
            "BOOKMATE_SEARCH_MAX_RESULTS", defaults.search_max_results, int
        ),
        google_books_url=os.getenv("GOOGLE_BOOKS_URL", defaults.google_books_url),
        open_library_url=os.getenv("OPEN_LIBRARY_URL", defaults.open_library_url),
        recently_added_limit=_env_number(
            "BOOKMATE_RECENTLY_ADDED_LIMIT", defaults.recently_added_limit, int
        ),
        seconds_per_page=_env_number(
            "BOOKMATE_SECONDS_PER_PAGE", defaults.seconds_per_page, int
        ),
        user_id=os.getenv("BOOKMATE_USER_ID") or None,
    )
