"""
Watch list loading.

The watch list is a TOML file:

    interval = 1800            # seconds, optional

    [[feed]]
    feed = "https://example.com/rss.xml"
    hook = "https://ci.example.com/trigger"
    headers = { Authorization = "/run/secrets/ci-token" }
    body = { ref = "main" }

Header values that point at a secret file are replaced by the file content.
"""

import os
import tomllib
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import structlog
from pydantic import BaseModel, Field, ValidationError, validator

from fetcher.models import Source

logger = structlog.get_logger(__name__)

CREDENTIALS_PLACEHOLDER = "$CREDENTIALS_DIRECTORY"


class WatchListError(Exception):
    """Watch list file could not be read or validated."""

    def __init__(self, path: Union[str, Path], reason: str):
        super().__init__(f"Error while reading watch list {path}: {reason}")
        self.path = Path(path)
        self.reason = reason


def load_secret(raw: str) -> str:
    """
    Resolve a header value that may reference a secret file.

    A value is read from disk when it is an absolute path to an existing file,
    or when it contains ``$CREDENTIALS_DIRECTORY`` (systemd credentials).
    Anything else is returned unchanged.
    """
    if CREDENTIALS_PLACEHOLDER in raw:
        directory = os.environ.get("CREDENTIALS_DIRECTORY")
        if not directory:
            raise ValueError("CREDENTIALS_DIRECTORY is not set")
        path = Path(raw.replace(CREDENTIALS_PLACEHOLDER, directory))
    elif raw.startswith("/") and Path(raw).exists():
        path = Path(raw)
    else:
        return raw

    try:
        return path.read_text(encoding="utf-8").rstrip("\r\n")
    except OSError as e:
        raise ValueError(f"failed to read secret {path}: {e}") from e


class FeedConfig(BaseModel):
    """One watched source and the hook to call when it changes."""
    feed: str = Field(..., min_length=1, description="Feed URL or docker-hub://namespace/repository")
    hook: str = Field(..., min_length=1, description="URL to POST to on change")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra headers for the hook call")
    body: Any = Field(default=None, description="JSON body for the hook call")

    @validator('hook')
    def validate_hook(cls, v):
        """Hooks are plain http(s) URLs."""
        if not v.startswith(("http://", "https://")):
            raise ValueError('hook must be an http or https URL')
        return v

    @validator('headers')
    def resolve_secrets(cls, v):
        """Load header values stored in secret files."""
        return {key: load_secret(value) for key, value in v.items()}

    def to_source(self) -> Source:
        return Source.from_address(self.feed)


class WatchList(BaseModel):
    """Parsed watch list file."""
    interval: Optional[int] = Field(default=None, gt=0, description="Polling interval in seconds")
    feed: List[FeedConfig] = Field(default_factory=list)

    def get_interval(self, default_seconds: int = 30 * 60) -> timedelta:
        return timedelta(seconds=self.interval or default_seconds)

    @property
    def sources(self) -> List[Source]:
        """Distinct sources in configured order."""
        sources = {}
        for feed in self.feed:
            sources.setdefault(feed.feed, feed.to_source())
        return list(sources.values())

    def feed_for(self, source: Source) -> List[FeedConfig]:
        """All feed entries watching ``source``."""
        return [feed for feed in self.feed if feed.feed == source.address]


def load_watch_list(path: Union[str, Path]) -> WatchList:
    """
    Read and validate a watch list file.

    Args:
        path: TOML file path

    Returns:
        WatchList

    Raises:
        WatchListError: the file is missing, malformed or invalid
    """
    path = Path(path)
    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except OSError as e:
        raise WatchListError(path, str(e)) from e
    except tomllib.TOMLDecodeError as e:
        raise WatchListError(path, f"invalid TOML: {e}") from e

    try:
        watch_list = WatchList(**raw)
    except ValidationError as e:
        raise WatchListError(path, str(e)) from e

    logger.info("Loaded watch list", path=str(path), feeds=len(watch_list.feed), interval=watch_list.interval)
    return watch_list
