"""
Source readers: fetch a remote source conditionally and reduce it to a fingerprint.

Two variants share one contract:
- SyndicationReader for RSS and Atom feeds
- RegistryTagReader for Docker Hub tag listings
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import List, Optional

import feedparser
import httpx
import structlog
from asyncio_throttle import Throttler
from pydantic import BaseModel, ValidationError

from fetcher.caching import CacheNegotiator
from fetcher.errors import (
    FeedParseError, FetchError, InvalidSourceAddress, NetworkError,
    RemoteClientError, RemoteServerError
)
from fetcher.models import CacheValidators, FetchOutcome, SourceKind
from fetcher.fingerprint import ContentFingerprinter

logger = structlog.get_logger(__name__)

TOO_MANY_REQUESTS = 429
NOT_MODIFIED = 304
HUB_TAGS_URL = "https://hub.docker.com/v2/repositories/{namespace}/{repository}/tags"


def parse_retry_after(value: Optional[str]) -> Optional[timedelta]:
    """Return the Retry-After delay when it is a plain number of seconds."""
    if not value:
        return None
    value = value.strip()
    if not value.isdigit():
        return None
    return timedelta(seconds=int(value))


class SourceReader(ABC):
    """Base reader: conditional GET, status classification, content reduction."""

    kind: SourceKind

    def __init__(
        self,
        client: httpx.AsyncClient,
        throttler: Optional[Throttler] = None,
        fingerprinter: Optional[ContentFingerprinter] = None,
    ):
        """
        Initialize the reader.

        Args:
            client: Shared HTTP client (carries the User-Agent header)
            throttler: Optional limiter shared by all outbound requests
            fingerprinter: Fingerprint generator
        """
        self.client = client
        self.throttler = throttler
        self.fingerprinter = fingerprinter or ContentFingerprinter()
        self.logger = logger.bind(component=self.__class__.__name__)

    async def fetch(self, address: str, validators: CacheValidators) -> FetchOutcome:
        """
        Fetch ``address`` with the given validators and classify the result.

        Args:
            address: Reader-specific source address
            validators: Validators from the previous successful response

        Returns:
            FetchOutcome; failures are returned, never raised
        """
        try:
            url = self.build_url(address)
            response = await self._get(url, validators)
            return self.interpret(address, response)
        except FetchError as e:
            self.logger.debug("Fetch failed", address=address, kind=e.kind.value, error=str(e))
            return FetchOutcome.failed(e.kind, str(e))

    def build_url(self, address: str) -> str:
        return address

    async def _get(self, url: str, validators: CacheValidators) -> httpx.Response:
        headers = CacheNegotiator.headers_to_send(validators)
        try:
            if self.throttler is None:
                return await self.client.get(url, headers=headers)
            async with self.throttler:
                return await self.client.get(url, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(f"Error while fetching {url}: {e}") from e

    def interpret(self, address: str, response: httpx.Response) -> FetchOutcome:
        """
        Turn a transport response into a FetchOutcome.

        429 is a rate limit whatever its class; 304 skips reduction entirely.
        """
        status = response.status_code
        if status == TOO_MANY_REQUESTS:
            return FetchOutcome.rate_limited(parse_retry_after(response.headers.get("retry-after")))

        validators = CacheNegotiator.extract(response.headers)
        if status == NOT_MODIFIED:
            return FetchOutcome.unmodified(validators)
        if 400 <= status < 500:
            raise RemoteClientError(status, address)
        if status >= 500:
            raise RemoteServerError(status, address)

        return self.reduce(response, validators)

    @abstractmethod
    def reduce(self, response: httpx.Response, validators: CacheValidators) -> FetchOutcome:
        """Reduce a fresh response body to an outcome carrying its fingerprint."""


class SyndicationReader(SourceReader):
    """Reader for RSS (item oriented) and Atom (entry oriented) feeds."""

    kind = SourceKind.SYNDICATION

    # strict priority, first present field wins
    IDENTITY_FIELDS = ("id", "published", "link")

    def reduce(self, response: httpx.Response, validators: CacheValidators) -> FetchOutcome:
        parsed = feedparser.parse(response.content)
        if not parsed.get("version"):
            reason = parsed.get("bozo_exception") or "unrecognized feed format"
            raise FeedParseError(f"Error while parsing feed: {reason}")

        entries = parsed.get("entries") or []
        if not entries:
            raise FeedParseError.empty()

        identity = self.newest_identity(entries[0])
        return FetchOutcome.fetched(validators, self.fingerprinter.fingerprint_identity(identity))

    def newest_identity(self, entry) -> str:
        """Pick the identity value of the newest entry."""
        for field in self.IDENTITY_FIELDS:
            value = entry.get(field)
            if value:
                return value
        raise FeedParseError.missing_identity_key()


class HubTag(BaseModel):
    """One tag of a Docker Hub repository."""
    id: int
    name: str
    last_updated: Optional[datetime] = None


class HubTagResponse(BaseModel):
    """Docker Hub tag listing page."""
    results: List[HubTag]


class RegistryTagReader(SourceReader):
    """Reader for a Docker Hub ``namespace/repository`` tag list."""

    kind = SourceKind.REGISTRY_TAGS

    def build_url(self, address: str) -> str:
        namespace, repository = self.parse_coordinate(address)
        return HUB_TAGS_URL.format(namespace=namespace, repository=repository)

    @staticmethod
    def parse_coordinate(address: str):
        """Split ``namespace/repository``; anything else is an invalid address."""
        parts = address.split("/")
        if len(parts) != 2 or not all(parts):
            raise InvalidSourceAddress(address)
        return parts[0], parts[1]

    def reduce(self, response: httpx.Response, validators: CacheValidators) -> FetchOutcome:
        try:
            listing = HubTagResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise FeedParseError(f"Error while parsing hub response: {e}") from e

        # an empty listing keeps whatever fingerprint was recorded last
        if not listing.results:
            return FetchOutcome.unmodified(validators)

        fingerprint = self.fingerprinter.fingerprint_tags(
            (tag.id, tag.last_updated) for tag in listing.results
        )
        return FetchOutcome.fetched(validators, fingerprint)
