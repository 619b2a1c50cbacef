"""
settings.py
Runtime configuration, read from the environment (and a sibling .env file).

Config (.env beside this file):
  TIMEZONE=Europe/Stockholm
  SUMMARY=Jobb
  EXCLUDE_KEYWORDS=work reduction,holiday,loa,care of child,sick
  DAY_START_HOUR=6
  FEEDS_FILE=feeds.json
  UPDATE_INTERVAL=3600
  UPDATE_API_KEY=...
  PORT=3000
  GITHUB_TOKEN=...
  GITHUB_REPOSITORY=owner/repo
  GITHUB_BRANCH=main
  GITHUB_FOLDER=calendars
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv

from workday_engine import DEFAULT_EXCLUDE_KEYWORDS, DEFAULT_SUMMARY, DEFAULT_TIMEZONE

HERE = Path(__file__).resolve().parent
ENV_FILE = HERE / ".env"


@dataclass(frozen=True)
class Settings:
    timezone: str = DEFAULT_TIMEZONE
    summary: str = DEFAULT_SUMMARY
    exclude_keywords: Tuple[str, ...] = DEFAULT_EXCLUDE_KEYWORDS
    day_start_hour: int = 6
    feeds_file: Path = HERE / "feeds.json"
    update_interval: int = 3600
    update_api_key: str = ""
    port: int = 3000
    github_token: str = ""
    github_repository: str = ""
    github_branch: str = "main"
    github_folder: str = "calendars"

    @property
    def publish_to_github(self) -> bool:
        return bool(self.github_token and self.github_repository)


def _split_keywords(raw: str) -> Tuple[str, ...]:
    return tuple(k.strip() for k in raw.split(",") if k.strip())


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def load_settings(env_file: Path = ENV_FILE) -> Settings:
    """Build Settings from the environment; .env values never override real env vars."""
    load_dotenv(dotenv_path=env_file)
    keywords = os.getenv("EXCLUDE_KEYWORDS")
    feeds_file = Path(os.getenv("FEEDS_FILE", "") or HERE / "feeds.json")
    if not feeds_file.is_absolute():
        feeds_file = HERE / feeds_file
    return Settings(
        timezone=os.getenv("TIMEZONE", DEFAULT_TIMEZONE) or DEFAULT_TIMEZONE,
        summary=os.getenv("SUMMARY", DEFAULT_SUMMARY) or DEFAULT_SUMMARY,
        exclude_keywords=_split_keywords(keywords) if keywords is not None else DEFAULT_EXCLUDE_KEYWORDS,
        day_start_hour=_int_env("DAY_START_HOUR", 6),
        feeds_file=feeds_file,
        update_interval=_int_env("UPDATE_INTERVAL", 3600),
        update_api_key=os.getenv("UPDATE_API_KEY", ""),
        port=_int_env("PORT", 3000),
        github_token=os.getenv("GITHUB_TOKEN", ""),
        github_repository=os.getenv("GITHUB_REPOSITORY", ""),
        github_branch=os.getenv("GITHUB_BRANCH", "main") or "main",
        github_folder=os.getenv("GITHUB_FOLDER", "calendars") or "calendars",
    )
