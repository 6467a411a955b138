"""
Pytest configuration and shared fixtures.
"""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

USER_AGENT = "feed-watch-tests/1.0"
START = datetime(2025, 1, 6, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock for planner and scheduler tests."""
    
    def __init__(self, now: datetime):
        self.now = now
    
    def __call__(self) -> datetime:
        return self.now
    
    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def build_rss(items):
    """Build an RSS 2.0 document; each item is a dict of guid/pubDate/link/title."""
    rendered = []
    for item in items:
        fields = "".join(
            f"<{name}>{value}</{name}>" for name, value in item.items()
        )
        rendered.append(f"<item>{fields}</item>")
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<rss version="2.0"><channel>'
        "<title>Example releases</title>"
        "<link>https://example.com/</link>"
        "<description>Release feed</description>"
        + "".join(rendered)
        + "</channel></rss>"
    ).encode("utf-8")


def build_hub_tags(tags):
    """Build a Docker Hub tag listing body from (id, name, last_updated) tuples."""
    return json.dumps({
        "count": len(tags),
        "next": None,
        "previous": None,
        "results": [
            {"id": tag_id, "name": name, "last_updated": last_updated}
            for tag_id, name, last_updated in tags
        ],
    }).encode("utf-8")


@pytest.fixture
def clock():
    """Fake clock starting at a fixed UTC instant."""
    return FakeClock(START)


@pytest.fixture
def make_client():
    """Factory for an httpx client backed by a MockTransport handler."""
    def _make(handler):
        return httpx.AsyncClient(
            transport=httpx.MockTransport(handler),
            headers={"User-Agent": USER_AGENT},
        )
    return _make


@pytest.fixture
def rss_factory():
    """Factory building RSS bodies from item dicts."""
    return build_rss


@pytest.fixture
def hub_tags_factory():
    """Factory building Docker Hub tag listing bodies."""
    return build_hub_tags


@pytest.fixture
def sample_rss():
    """RSS feed with two items, newest first."""
    return build_rss([
        {
            "title": "v2.0.0",
            "guid": "release-2",
            "pubDate": "Mon, 06 Jan 2025 10:00:00 GMT",
            "link": "https://example.com/releases/2",
        },
        {
            "title": "v1.0.0",
            "guid": "release-1",
            "pubDate": "Sun, 05 Jan 2025 10:00:00 GMT",
            "link": "https://example.com/releases/1",
        },
    ])


@pytest.fixture
def sample_atom():
    """Atom feed with two entries, newest first."""
    return b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example tags</title>
  <id>urn:example:feed</id>
  <updated>2025-01-06T10:00:00Z</updated>
  <entry>
    <title>v2.0.0</title>
    <id>urn:example:entry:2</id>
    <updated>2025-01-06T10:00:00Z</updated>
    <link href="https://example.com/tags/v2.0.0"/>
  </entry>
  <entry>
    <title>v1.0.0</title>
    <id>urn:example:entry:1</id>
    <updated>2025-01-05T10:00:00Z</updated>
    <link href="https://example.com/tags/v1.0.0"/>
  </entry>
</feed>
"""


@pytest.fixture
def empty_rss():
    """Well-formed RSS feed without items."""
    return build_rss([])


@pytest.fixture
def sample_hub_tags():
    """Docker Hub listing with two tags."""
    return build_hub_tags([
        (101, "latest", "2025-01-06T10:00:00.123456Z"),
        (102, "3.13", "2025-01-05T08:30:00.000000Z"),
    ])
