"""Essay titles from the site's RSS feed, for friendly report names."""

from __future__ import annotations

import html
import logging
import re
from typing import Any
from urllib.parse import urlparse

import httpx

from v4v_analytics.cache import TitlesCache

logger = logging.getLogger(__name__)

_ITEM_RE = re.compile(r"<item\b[^>]*>(?P<body>.*?)</item>", re.DOTALL | re.IGNORECASE)
_TITLE_RE = re.compile(
    r"<title>\s*(?:<!\[CDATA\[(?P<cdata>.*?)\]\]>|(?P<text>.*?))\s*</title>",
    re.DOTALL | re.IGNORECASE,
)
_LINK_RE = re.compile(r"<link>\s*(?P<link>.*?)\s*</link>", re.DOTALL | re.IGNORECASE)


def parse_rss(xml: str) -> dict[str, str]:
    """Map slug -> title for every <item> with both a title and a link.

    The slug is the link path without leading or trailing slashes, so
    ``https://example.com/essays/my-post/`` becomes ``essays/my-post``.
    """
    titles: dict[str, str] = {}
    for item in _ITEM_RE.finditer(xml):
        body = item.group("body")
        title_match = _TITLE_RE.search(body)
        link_match = _LINK_RE.search(body)
        if not title_match or not link_match:
            continue

        raw_title = title_match.group("cdata")
        if raw_title is None:
            raw_title = html.unescape(title_match.group("text") or "")
        title = raw_title.strip()
        link = html.unescape(link_match.group("link"))
        try:
            slug = urlparse(link).path.strip("/")
        except ValueError as e:
            logger.debug("Skipping RSS item with bad link %r: %s", link, e)
            continue
        if slug and title:
            titles[slug] = title
    return titles


class TitleSource:
    """Cached RSS title lookup.

    A fresh cache short-circuits the network. If the feed cannot be fetched
    the last cached titles are returned even when stale, else ``{}``.
    """

    def __init__(
        self,
        rss_url: str | None,
        cache: TitlesCache,
        timeout: float = 10.0,
        **httpx_kwargs: Any,
    ):
        self._rss_url = rss_url
        self._cache = cache
        self._timeout = timeout
        self._httpx_kwargs = httpx_kwargs

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._timeout, follow_redirects=True, **self._httpx_kwargs
        )

    async def fetch_titles(self, force_refresh: bool = False) -> dict[str, str]:
        if not self._rss_url:
            logger.warning("No site or RSS URL configured, skipping title fetch")
            return {}

        if not force_refresh:
            cached = self._cache.load()
            if cached is not None:
                return cached

        try:
            async with self._build_client() as client:
                response = await client.get(self._rss_url)
                response.raise_for_status()
            titles = parse_rss(response.text)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("Could not fetch RSS feed from %s: %s", self._rss_url, e)
            return self._cache.load(allow_stale=True) or {}

        self._cache.save(titles)
        return titles
