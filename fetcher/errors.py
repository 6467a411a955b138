"""
Exceptions raised while fetching and reducing a source.

Readers raise these internally and convert them into a failed FetchOutcome
at the fetch boundary, so none of them escape to the scheduler.
"""

from typing import Optional

from fetcher.models import ErrorKind


class FetchError(Exception):
    """Base class for per-source fetch failures."""

    kind: ErrorKind = ErrorKind.NETWORK

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class NetworkError(FetchError):
    """Transport-level failure (DNS, connect, timeout, reset)."""

    kind = ErrorKind.NETWORK


class RemoteClientError(FetchError):
    """Remote answered with a 4xx status other than 429."""

    kind = ErrorKind.CLIENT_ERROR

    def __init__(self, status_code: int, address: str):
        super().__init__(f"{address} returned a client error {status_code}")
        self.status_code = status_code


class RemoteServerError(FetchError):
    """Remote answered with a 5xx status."""

    kind = ErrorKind.SERVER_ERROR

    def __init__(self, status_code: int, address: str):
        super().__init__(f"{address} returned a server error {status_code}")
        self.status_code = status_code


class FeedParseError(FetchError):
    """Content could not be reduced to a fingerprint."""

    kind = ErrorKind.PARSE_ERROR

    @classmethod
    def empty(cls) -> "FeedParseError":
        return cls("Empty feed", ErrorKind.EMPTY_FEED)

    @classmethod
    def missing_identity_key(cls) -> "FeedParseError":
        return cls("No guid, pubDate or link set on feed item", ErrorKind.MISSING_IDENTITY_KEY)


class InvalidSourceAddress(FetchError):
    """Registry coordinate does not have the namespace/repository shape."""

    kind = ErrorKind.INVALID_FORMAT

    def __init__(self, address: str):
        super().__init__(f"Invalid hub url format: {address!r}")
        self.address = address
