"""RSS/Atom feed client.

Items are pulled out with tag extraction, so documents do not need to be
well-formed XML.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

import aiohttp

from scoop.core.utils import clean_text, parse_datetime
from scoop.models.content import Feed, Post

logger = logging.getLogger(__name__)

_ITEM_RE = re.compile(r"<item\b[^>]*>(.*?)</item>", re.IGNORECASE | re.DOTALL)
_ENTRY_RE = re.compile(r"<entry\b[^>]*>(.*?)</entry>", re.IGNORECASE | re.DOTALL)
_CDATA_RE = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)
_ATTR_RE = re.compile(r"([\w:-]+)\s*=\s*(?:\"([^\"]*)\"|'([^']*)')")
_IMG_SRC_RE = re.compile(r"<img\b[^>]*\bsrc\s*=\s*[\"']([^\"']+)[\"']", re.IGNORECASE)


@dataclass
class FeedFetchResult:
    """Outcome of fetching one feed."""

    feed: Feed
    posts: List[Post] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _unwrap(value: str) -> str:
    return _CDATA_RE.sub(lambda m: m.group(1), value).strip()


def _extract_tag(block: str, *tags: str) -> str:
    """Return the inner text of the first tag present in ``block``."""
    for tag in tags:
        match = re.search(
            rf"<{re.escape(tag)}\b[^>]*>(.*?)</{re.escape(tag)}\s*>",
            block,
            re.IGNORECASE | re.DOTALL,
        )
        if match:
            return _unwrap(match.group(1))
    return ""


def _tag_attributes(block: str, tag: str) -> List[Dict[str, str]]:
    """Attributes of every ``tag`` element (self-closing or not) in ``block``."""
    found = []
    for match in re.finditer(
        rf"<{re.escape(tag)}\b([^>]*?)/?>", block, re.IGNORECASE | re.DOTALL
    ):
        attrs = {
            name.lower(): (dq if dq else sq)
            for name, dq, sq in _ATTR_RE.findall(match.group(1))
        }
        found.append(attrs)
    return found


class RSSClient:
    """Client for fetching and parsing RSS 2.0 and Atom feeds."""

    def __init__(self, settings=None):
        """Initialize RSS client.

        Args:
            settings: Settings instance for configuration values
        """
        self.feed_timeout = settings.rss_feed_timeout if settings else 30.0
        self.user_agent = (
            settings.default_user_agent if settings else "Scoop-Newsletter/1.0"
        )

    async def fetch_feeds(
        self, feeds: List[Feed], since: Optional[datetime] = None
    ) -> List[FeedFetchResult]:
        """Fetch every feed concurrently.

        A failing feed is reported in its result and never aborts the batch.

        Args:
            feeds: Feeds to fetch
            since: Drop items published before this instant

        Returns:
            One result per feed, in input order
        """
        if not feeds:
            logger.warning("No RSS feeds configured")
            return []

        async with aiohttp.ClientSession() as session:
            tasks = [self._fetch_feed(session, feed, since) for feed in feeds]
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        results = []
        for feed, outcome in zip(feeds, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Error fetching feed {feed.name} ({feed.url}): {outcome}")
                results.append(FeedFetchResult(feed=feed, error=str(outcome) or repr(outcome)))
            else:
                logger.info(f"📰 {feed.name}: {len(outcome)} recent posts")
                results.append(FeedFetchResult(feed=feed, posts=outcome))

        total = sum(len(r.posts) for r in results)
        logger.info(f"Retrieved {total} posts from {len(feeds)} RSS feeds")
        return results

    async def _fetch_feed(
        self, session: aiohttp.ClientSession, feed: Feed, since: Optional[datetime]
    ) -> List[Post]:
        """Fetch and parse a single feed.

        Raises:
            aiohttp.ClientError: On network failures or non-200 responses
            asyncio.TimeoutError: When the feed does not answer in time
        """
        headers = {"User-Agent": f"{self.user_agent} (RSS Reader)"}
        timeout = aiohttp.ClientTimeout(total=self.feed_timeout)
        async with session.get(feed.url, headers=headers, timeout=timeout) as response:
            if response.status != 200:
                raise aiohttp.ClientResponseError(
                    response.request_info,
                    response.history,
                    status=response.status,
                    message=f"HTTP {response.status}",
                )
            content = await response.text()

        posts = self.parse_feed(content, since=since)
        for post in posts:
            post.feed_id = feed.id
        return posts

    def parse_feed(self, xml_content: str, since: Optional[datetime] = None) -> List[Post]:
        """Parse RSS 2.0 or Atom text into posts.

        Args:
            xml_content: Feed document
            since: Drop items published before this instant; items without a
                parseable date are kept

        Returns:
            Parsed posts, without feed or campaign ids
        """
        blocks = _ITEM_RE.findall(xml_content)
        is_atom = False
        if not blocks:
            blocks = _ENTRY_RE.findall(xml_content)
            is_atom = bool(blocks)

        posts = []
        for block in blocks:
            post = self._parse_atom_entry(block) if is_atom else self._parse_rss_item(block)
            if post is None:
                continue
            if since and post.publication_date and post.publication_date < since:
                continue
            posts.append(post)
        return posts

    def _parse_rss_item(self, block: str) -> Optional[Post]:
        title = clean_text(_extract_tag(block, "title"))
        link = clean_text(_extract_tag(block, "link"))
        guid = clean_text(_extract_tag(block, "guid"))
        external_id = guid or link
        if not title or not external_id:
            logger.debug("Skipping RSS item without title or identifier")
            return None

        raw_content = _extract_tag(block, "content:encoded")
        return Post(
            external_id=external_id,
            title=title,
            description=clean_text(_extract_tag(block, "description")),
            content=clean_text(raw_content),
            author=clean_text(_extract_tag(block, "dc:creator", "author")),
            publication_date=parse_datetime(
                clean_text(_extract_tag(block, "pubDate", "dc:date"))
            ),
            source_url=link,
            image_url=self._extract_image(block, raw_content),
        )

    def _parse_atom_entry(self, block: str) -> Optional[Post]:
        title = clean_text(_extract_tag(block, "title"))
        link = ""
        for attrs in _tag_attributes(block, "link"):
            if attrs.get("rel", "alternate") == "alternate" and attrs.get("href"):
                link = attrs["href"]
                break
        external_id = clean_text(_extract_tag(block, "id")) or link
        if not title or not external_id:
            logger.debug("Skipping Atom entry without title or identifier")
            return None

        raw_content = _extract_tag(block, "content")
        author_block = _extract_tag(block, "author")
        author = _extract_tag(author_block, "name") if author_block else ""
        return Post(
            external_id=external_id,
            title=title,
            description=clean_text(_extract_tag(block, "summary")),
            content=clean_text(raw_content),
            author=clean_text(author),
            publication_date=parse_datetime(
                clean_text(_extract_tag(block, "published", "updated"))
            ),
            source_url=link,
            image_url=self._extract_image(block, raw_content),
        )

    def _extract_image(self, block: str, raw_content: str = "") -> str:
        """Find the item's image.

        Order: ``media:content`` images, ``media:thumbnail``, an image
        enclosure, then the first ``<img>`` in the item's HTML content.
        """
        for attrs in _tag_attributes(block, "media:content"):
            url = attrs.get("url", "")
            medium = attrs.get("medium", "")
            mime = attrs.get("type", "")
            if url and (medium == "image" or mime.startswith("image/") or not (medium or mime)):
                return url
        for attrs in _tag_attributes(block, "media:thumbnail"):
            if attrs.get("url"):
                return attrs["url"]
        for attrs in _tag_attributes(block, "enclosure"):
            if attrs.get("url") and attrs.get("type", "").startswith("image/"):
                return attrs["url"]
        match = _IMG_SRC_RE.search(clean_html_entities(raw_content))
        return match.group(1) if match else ""

    async def test_feeds(self, feed_urls: List[str]) -> Dict[str, bool]:
        """Test connectivity to feeds.

        Returns:
            Dictionary mapping feed URLs to reachability
        """
        if not feed_urls:
            return {}

        async with aiohttp.ClientSession() as session:
            outcomes = await asyncio.gather(
                *[self._test_feed(session, url) for url in feed_urls],
                return_exceptions=True,
            )

        results = {}
        for url, outcome in zip(feed_urls, outcomes):
            results[url] = outcome is True
            if results[url]:
                logger.info(f"RSS feed test successful: {url}")
            else:
                logger.warning(f"RSS feed test failed: {url}")
        return results

    async def _test_feed(self, session: aiohttp.ClientSession, feed_url: str) -> bool:
        headers = {"User-Agent": f"{self.user_agent} (RSS Reader)"}
        timeout = aiohttp.ClientTimeout(total=self.feed_timeout)
        try:
            async with session.get(feed_url, headers=headers, timeout=timeout) as response:
                if response.status != 200:
                    return False
                content = (await response.text()).lower()
                return any(tag in content for tag in ("<rss", "<feed", "<item", "<entry"))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug(f"Feed test error for {feed_url}: {e}")
            return False


def clean_html_entities(value: str) -> str:
    """Undo entity-escaped markup so embedded ``<img>`` tags can be found."""
    return value.replace("&lt;", "<").replace("&gt;", ">").replace("&quot;", '"')
