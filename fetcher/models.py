"""
Pydantic models for watched sources, cache validators and fetch outcomes.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

REGISTRY_PREFIX = "docker-hub://"


class SourceKind(str, Enum):
    """Reader variant a source is bound to."""
    SYNDICATION = "syndication"
    REGISTRY_TAGS = "registry_tags"


class ErrorKind(str, Enum):
    """Reasons a fetch can fail."""
    NETWORK = "network"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    PARSE_ERROR = "parse_error"
    EMPTY_FEED = "empty_feed"
    MISSING_IDENTITY_KEY = "missing_identity_key"
    INVALID_FORMAT = "invalid_format"
    UNEXPECTED = "unexpected"


class FetchStatus(str, Enum):
    """Tag of a FetchOutcome."""
    RATE_LIMITED = "rate_limited"
    UNMODIFIED = "unmodified"
    FETCHED = "fetched"
    FAILED = "failed"


class Source(BaseModel):
    """
    One configured watch target.

    The reader kind is chosen once from the address syntax: addresses with the
    ``docker-hub://`` prefix are registry coordinates, anything else is a feed URL.
    """
    address: str = Field(..., min_length=1, description="Feed URL or registry coordinate")
    kind: SourceKind = Field(..., description="Reader variant for this source")

    class Config:
        """Pydantic configuration."""
        frozen = True

    @classmethod
    def from_address(cls, address: str) -> "Source":
        if address.startswith(REGISTRY_PREFIX):
            return cls(address=address, kind=SourceKind.REGISTRY_TAGS)
        return cls(address=address, kind=SourceKind.SYNDICATION)

    @property
    def source_id(self) -> str:
        """Stable identity used to key schedule and fingerprint state."""
        return self.address

    @property
    def reader_address(self) -> str:
        """Address handed to the reader, without the registry prefix."""
        if self.kind == SourceKind.REGISTRY_TAGS:
            return self.address[len(REGISTRY_PREFIX):]
        return self.address


class CacheValidators(BaseModel):
    """Conditional caching validators taken from a previous response."""
    etag: Optional[str] = Field(default=None, description="Opaque entity tag")
    last_modified: Optional[datetime] = Field(default=None, description="Last-Modified timestamp")

    class Config:
        """Pydantic configuration."""
        frozen = True

    def is_empty(self) -> bool:
        return self.etag is None and self.last_modified is None


class SchedulePlan(BaseModel):
    """Per-source schedule: when the source may be fetched next and with which validators."""
    next_eligible_time: datetime = Field(..., description="Earliest time of the next fetch")
    validators: CacheValidators = Field(default_factory=CacheValidators)

    class Config:
        """Pydantic configuration."""
        frozen = True

    def is_elapsed(self, now: datetime) -> bool:
        """Check whether the source is due at ``now``."""
        return now >= self.next_eligible_time


class FetchOutcome(BaseModel):
    """Result of a single reader fetch."""
    status: FetchStatus
    validators: CacheValidators = Field(default_factory=CacheValidators)
    fingerprint: Optional[str] = Field(default=None, description="Fingerprint of the newest content")
    retry_after: Optional[timedelta] = Field(default=None, description="Server supplied retry delay")
    error_kind: Optional[ErrorKind] = Field(default=None)
    error: Optional[str] = Field(default=None, description="Human-readable failure description")

    @classmethod
    def rate_limited(cls, retry_after: Optional[timedelta] = None) -> "FetchOutcome":
        return cls(status=FetchStatus.RATE_LIMITED, retry_after=retry_after)

    @classmethod
    def unmodified(cls, validators: CacheValidators) -> "FetchOutcome":
        return cls(status=FetchStatus.UNMODIFIED, validators=validators)

    @classmethod
    def fetched(cls, validators: CacheValidators, fingerprint: str) -> "FetchOutcome":
        return cls(status=FetchStatus.FETCHED, validators=validators, fingerprint=fingerprint)

    @classmethod
    def failed(cls, kind: ErrorKind, error: str) -> "FetchOutcome":
        return cls(status=FetchStatus.FAILED, error_kind=kind, error=error)

    @property
    def is_failure(self) -> bool:
        return self.status == FetchStatus.FAILED
