"""
Conditional caching negotiation.

Translates the validators of a previous response into request headers and
reads them back out of a new response. Parsing is best-effort: a malformed
header degrades to "absent" and never fails the fetch.
"""

from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Dict, Mapping, Optional

import structlog

from fetcher.models import CacheValidators

logger = structlog.get_logger(__name__)


class CacheNegotiator:
    """Pure transforms between CacheValidators and HTTP headers."""

    @staticmethod
    def headers_to_send(validators: CacheValidators) -> Dict[str, str]:
        """
        Build the conditional request headers for the next fetch.

        An entity tag wins over a last-modified timestamp; at most one
        header is emitted.

        Args:
            validators: Validators from the previous response

        Returns:
            Header mapping with zero or one entry
        """
        if validators.etag:
            return {"If-None-Match": validators.etag}
        if validators.last_modified is not None:
            return {"If-Modified-Since": format_http_date(validators.last_modified)}
        return {}

    @staticmethod
    def extract(response_headers: Mapping[str, str]) -> CacheValidators:
        """
        Read validators from response headers.

        Args:
            response_headers: Case-insensitive header mapping (httpx.Headers)

        Returns:
            CacheValidators, with unparseable values left empty
        """
        etag = parse_entity_tag(response_headers.get("etag"))
        last_modified = parse_http_date(response_headers.get("last-modified"))
        return CacheValidators(etag=etag, last_modified=last_modified)


def parse_entity_tag(value: Optional[str]) -> Optional[str]:
    """Return the entity tag unchanged, or None when it cannot be sent back."""
    if value is None:
        return None
    value = value.strip()
    # only visible ASCII, space and tab can be echoed in If-None-Match
    if not value or any(not (" " <= ch <= "~" or ch == "\t") for ch in value):
        logger.debug("Ignoring unusable entity tag", value=value)
        return None
    return value


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 2822 date, returning None on any failure."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        logger.debug("Ignoring malformed date header", value=value)
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_http_date(value: datetime) -> str:
    """Format a timestamp as an RFC 2822 date in GMT."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)
