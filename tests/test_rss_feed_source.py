"""Tests for the RSS / Atom feed source."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from digest_curator.adapters.sources import FeedFetchError, RSSFeedSource

RSS_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:media="http://search.yahoo.com/mrss/"
     xmlns:content="http://purl.org/rss/1.0/modules/content/"
     xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel>
    <title>City News</title>
    <item>
      <title>Bridge reopens after repairs</title>
      <link>https://example.com/bridge</link>
      <guid>bridge-123</guid>
      <description>&lt;p&gt;The bridge is open again.&lt;/p&gt;</description>
      <content:encoded><![CDATA[<p>Crews finished work.</p>]]></content:encoded>
      <dc:creator>Jane Reporter</dc:creator>
      <pubDate>Tue, 07 Jan 2025 10:30:00 GMT</pubDate>
      <media:content url="https://example.com/bridge.jpg" medium="image"/>
    </item>
    <item>
      <title>Park cleanup Saturday</title>
      <link>https://example.com/park</link>
      <pubDate>Tue, 07 Jan 2025 09:00:00 GMT</pubDate>
      <enclosure url="https://example.com/park.png" type="image/png" length="100"/>
    </item>
    <item>
      <title>No identifier</title>
    </item>
  </channel>
</rss>
"""

ATOM_FEED = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom" xmlns:media="http://search.yahoo.com/mrss/">
  <title>County Board</title>
  <entry>
    <title>Budget hearing scheduled</title>
    <id>tag:county.example,2025:budget</id>
    <link rel="alternate" href="https://county.example/budget"/>
    <summary>Residents can comment on the levy.</summary>
    <published>2025-01-07T08:00:00Z</published>
    <author><name>County Clerk</name></author>
    <media:thumbnail url="https://county.example/thumb.jpg"/>
  </entry>
</feed>
"""


@pytest.fixture
def source() -> RSSFeedSource:
    return RSSFeedSource(name="City News", url="https://example.com/rss")


def test_parse_rss_feed(source: RSSFeedSource) -> None:
    entries = source.parse_feed(RSS_FEED)

    assert len(entries) == 2

    first = entries[0]
    assert first.external_id == "bridge-123"
    assert first.title == "Bridge reopens after repairs"
    assert first.description == "<p>The bridge is open again.</p>"
    assert first.content == "<p>Crews finished work.</p>"
    assert first.author == "Jane Reporter"
    assert first.published == "Tue, 07 Jan 2025 10:30:00 GMT"
    assert first.image_candidates == ["https://example.com/bridge.jpg"]

    second = entries[1]
    assert second.external_id == "https://example.com/park"
    assert second.author is None
    assert second.image_candidates == ["https://example.com/park.png"]


def test_parse_atom_feed(source: RSSFeedSource) -> None:
    entries = source.parse_feed(ATOM_FEED)

    assert len(entries) == 1
    entry = entries[0]
    assert entry.external_id == "tag:county.example,2025:budget"
    assert entry.link == "https://county.example/budget"
    assert entry.description == "Residents can comment on the levy."
    assert entry.published == "2025-01-07T08:00:00Z"
    assert entry.author == "County Clerk"
    assert entry.image_candidates == ["https://county.example/thumb.jpg"]


def test_parse_feed_malformed(source: RSSFeedSource) -> None:
    with pytest.raises(FeedFetchError, match="invalid XML"):
        source.parse_feed("<rss><channel><item>")


@pytest.mark.asyncio
async def test_fetch_entries(source: RSSFeedSource) -> None:
    with patch("httpx.AsyncClient") as mock_client_class:
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.text = RSS_FEED

        mock_client = AsyncMock()
        mock_client.__aenter__.return_value = mock_client
        mock_client.get.return_value = mock_response
        mock_client_class.return_value = mock_client

        entries = await source.fetch_entries()

        assert len(entries) == 2
        mock_client.get.assert_called_once_with("https://example.com/rss")


@pytest.mark.asyncio
async def test_fetch_entries_http_error(source: RSSFeedSource) -> None:
    with patch("httpx.AsyncClient") as mock_client_class:
        mock_response = MagicMock()
        mock_response.status_code = 503

        mock_client = AsyncMock()
        mock_client.__aenter__.return_value = mock_client
        mock_client.get.return_value = mock_response
        mock_client_class.return_value = mock_client

        with pytest.raises(FeedFetchError, match="HTTP 503"):
            await source.fetch_entries()
