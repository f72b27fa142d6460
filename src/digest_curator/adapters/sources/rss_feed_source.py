"""RSS 2.0 / Atom feed source."""

from typing import Optional
from xml.etree import ElementTree as ET

import httpx

from digest_curator.core import FeedEntry, FeedSource
from digest_curator.core.normalize import looks_like_image

NAMESPACES = {
    "atom": "http://www.w3.org/2005/Atom",
    "media": "http://search.yahoo.com/mrss/",
    "content": "http://purl.org/rss/1.0/modules/content/",
    "dc": "http://purl.org/dc/elements/1.1/",
}


class FeedFetchError(Exception):
    """Feed could not be downloaded or parsed."""


class RSSFeedSource(FeedSource):
    """Fetch entries from an RSS 2.0 or Atom feed."""

    emoji = "📰"

    def __init__(self, name: str, url: str, timeout: float = 30.0) -> None:
        self.name = name
        self.url = url
        self.timeout = timeout

    async def fetch_entries(self) -> list[FeedEntry]:
        """Download and parse the feed.

        Raises:
            FeedFetchError: non-200 response or unparsable XML
            httpx.RequestError: network failure
        """
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            response = await client.get(self.url)

        if response.status_code != 200:
            raise FeedFetchError(f"{self.name}: HTTP {response.status_code}")

        return self.parse_feed(response.text)

    def parse_feed(self, xml_content: str) -> list[FeedEntry]:
        """Parse RSS 2.0 items or Atom entries."""
        try:
            root = ET.fromstring(xml_content)
        except ET.ParseError as e:
            raise FeedFetchError(f"{self.name}: invalid XML ({e})") from e

        entries = []

        # RSS 2.0 items carry no namespace
        for item in root.findall(".//item"):
            entry = self._parse_rss_item(item)
            if entry is not None:
                entries.append(entry)

        for item in root.findall(".//atom:entry", NAMESPACES):
            entry = self._parse_atom_entry(item)
            if entry is not None:
                entries.append(entry)

        return entries

    def _parse_rss_item(self, item: ET.Element) -> Optional[FeedEntry]:
        link = _text(item.find("link"))
        guid = _text(item.find("guid"))
        external_id = guid or link
        if not external_id:
            return None

        content = _text(item.find("content:encoded", NAMESPACES))
        author = _text(item.find("dc:creator", NAMESPACES)) or _text(item.find("author"))

        return FeedEntry(
            external_id=external_id,
            title=_text(item.find("title")),
            description=_text(item.find("description")),
            content=content,
            link=link,
            published=_text(item.find("pubDate")) or _text(item.find("dc:date", NAMESPACES)),
            author=author or None,
            image_candidates=self._media_images(item),
        )

    def _parse_atom_entry(self, item: ET.Element) -> Optional[FeedEntry]:
        link = ""
        for link_elem in item.findall("atom:link", NAMESPACES):
            rel = link_elem.get("rel", "alternate")
            if rel == "alternate" and link_elem.get("href"):
                link = link_elem.get("href", "")
                break

        external_id = _text(item.find("atom:id", NAMESPACES)) or link
        if not external_id:
            return None

        author = _text(item.find("atom:author/atom:name", NAMESPACES))

        return FeedEntry(
            external_id=external_id,
            title=_text(item.find("atom:title", NAMESPACES)),
            description=_text(item.find("atom:summary", NAMESPACES)),
            content=_text(item.find("atom:content", NAMESPACES)),
            link=link,
            published=(
                _text(item.find("atom:published", NAMESPACES))
                or _text(item.find("atom:updated", NAMESPACES))
            ),
            author=author or None,
            image_candidates=self._media_images(item),
        )

    def _media_images(self, item: ET.Element) -> list[str]:
        """Image urls in preference order: media:content, media:thumbnail, enclosure."""
        images = []

        for media in item.findall(".//media:content", NAMESPACES):
            url = media.get("url", "")
            medium = media.get("medium", "")
            media_type = media.get("type", "")
            if url and (medium == "image" or media_type.startswith("image/") or looks_like_image(url)):
                images.append(url)

        for thumb in item.findall(".//media:thumbnail", NAMESPACES):
            if thumb.get("url"):
                images.append(thumb.get("url", ""))

        for enclosure in item.findall("enclosure"):
            if enclosure.get("type", "").startswith("image/") and enclosure.get("url"):
                images.append(enclosure.get("url", ""))

        return images


def _text(elem: Optional[ET.Element]) -> str:
    if elem is None or elem.text is None:
        return ""
    return elem.text.strip()
