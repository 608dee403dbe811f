"""Link classifier: categorise a URL and pull its content through an extractor.

``analyze_url`` never raises. When extraction fails the result is degraded
to the hostname (plus a predictable thumbnail for YouTube videos) so the
caller always has something to render.
"""

from __future__ import annotations

import html
import re
from collections.abc import Mapping
from typing import Any, Protocol
from urllib.parse import urlparse

import httpx
from loguru import logger
from readability import Document

from kai.actions.types import LinkAnalysisResult, LinkCategory
from kai.integrations.functions.gateway import FunctionsGateway
from kai.settings import KaiSettings, get_settings

USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_7_2) AppleWebKit/537.36"
MAX_CONTENT_CHARS = 20_000

# Checked in order; first hit wins.
CATEGORY_DOMAINS: tuple[tuple[LinkCategory, tuple[str, ...]], ...] = (
    (LinkCategory.YOUTUBE, ("youtube.com", "youtu.be")),
    (LinkCategory.SOCIAL, (
        "instagram.com", "instagr.am", "tiktok.com", "twitter.com", "x.com",
        "linkedin.com", "facebook.com", "fb.com", "threads.net",
    )),
    (LinkCategory.NEWSLETTER, (
        "substack.com", "beehiiv.com", "mailchi.mp", "convertkit.com",
        "buttondown.email", "ghost.io",
    )),
)

_YOUTUBE_ID = re.compile(r"(?:[?&]v=|youtu\.be/|/shorts/|/embed/|/live/)([A-Za-z0-9_-]{11})")


def hostname(url: str) -> str:
    try:
        parsed = urlparse(url if "://" in url else f"https://{url}")
        host = (parsed.hostname or "").lower()
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def categorize(url: str) -> LinkCategory:
    host = hostname(url)
    for category, domains in CATEGORY_DOMAINS:
        if any(host == d or host.endswith(f".{d}") for d in domains):
            return category
    return LinkCategory.ARTICLE


def youtube_video_id(url: str) -> str | None:
    m = _YOUTUBE_ID.search(url)
    return m.group(1) if m else None


def youtube_thumbnail(video_id: str) -> str:
    return f"https://img.youtube.com/vi/{video_id}/hqdefault.jpg"


# ---------------------------------------------------------------------------
# extractors
# ---------------------------------------------------------------------------


class LinkExtractor(Protocol):
    async def extract(self, url: str) -> Mapping[str, Any]: ...


class RemoteVideoExtractor:
    def __init__(self, gateway: FunctionsGateway) -> None:
        self._gateway = gateway

    async def extract(self, url: str) -> Mapping[str, Any]:
        return await self._gateway.extract_video(url)


class RemoteContentExtractor:
    def __init__(self, gateway: FunctionsGateway) -> None:
        self._gateway = gateway

    async def extract(self, url: str) -> Mapping[str, Any]:
        return await self._gateway.extract_content(url)


class OEmbedVideoExtractor:
    """YouTube oEmbed: title, channel and thumbnail without an API key."""

    endpoint = "https://www.youtube.com/oembed"

    def __init__(self, http: httpx.AsyncClient | None = None, timeout: float = 15.0) -> None:
        self._http = http
        self._timeout = timeout

    async def extract(self, url: str) -> Mapping[str, Any]:
        params = {"url": url, "format": "json"}
        if self._http is not None:
            r = await self._http.get(self.endpoint, params=params, timeout=self._timeout)
        else:
            async with httpx.AsyncClient() as client:
                r = await client.get(self.endpoint, params=params, timeout=self._timeout)
        r.raise_for_status()
        data = r.json()
        return {
            "title": data.get("title"),
            "author": data.get("author_name"),
            "thumbnailUrl": data.get("thumbnail_url"),
            "provider": data.get("provider_name"),
        }


class HtmlPageExtractor:
    """Fetch a page and read its title, meta tags and visible text."""

    def __init__(self, http: httpx.AsyncClient | None = None, timeout: float = 15.0) -> None:
        self._http = http
        self._timeout = timeout

    async def extract(self, url: str) -> Mapping[str, Any]:
        headers = {"User-Agent": USER_AGENT}
        if self._http is not None:
            r = await self._http.get(url, headers=headers, timeout=self._timeout, follow_redirects=True)
        else:
            async with httpx.AsyncClient(follow_redirects=True, max_redirects=5) as client:
                r = await client.get(url, headers=headers, timeout=self._timeout)
        r.raise_for_status()
        return parse_html_page(r.text)


_TITLE = re.compile(r"<title[^>]*>([\s\S]*?)</title>", re.I)
_META = re.compile(r"<meta\s[^>]*>", re.I)
_ATTR = re.compile(r"""([\w:-]+)\s*=\s*(?:"([^"]*)"|'([^']*)')""")
_BODY = re.compile(r"<body[^>]*>([\s\S]*)</body>", re.I)


def _strip_tags(text: str) -> str:
    """Remove HTML tags and decode entities."""
    text = re.sub(r"<script[\s\S]*?</script>", "", text, flags=re.I)
    text = re.sub(r"<style[\s\S]*?</style>", "", text, flags=re.I)
    text = re.sub(r"<[^>]+>", "", text)
    return html.unescape(text).strip()


def _normalize(text: str) -> str:
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r" ?\n ?", "\n", text)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def _to_text(raw_html: str) -> str:
    """Plain text that keeps headings, list items and block breaks on their own lines."""
    text = re.sub(r"<h[1-6][^>]*>([\s\S]*?)</h[1-6]>", lambda m: f"\n{_strip_tags(m[1])}\n", raw_html, flags=re.I)
    text = re.sub(r"<li[^>]*>([\s\S]*?)</li>", lambda m: f"\n- {_strip_tags(m[1])}", text, flags=re.I)
    text = re.sub(r"</(p|div|section|article|blockquote|pre)>", "\n\n", text, flags=re.I)
    text = re.sub(r"<(br|hr)\s*/?>", "\n", text, flags=re.I)
    return _normalize(_strip_tags(text))


def _main_content(page: str) -> tuple[str, str]:
    """Readable article text and title; the whole body when readability gives up."""
    try:
        doc = Document(page)
        content, title = _to_text(doc.summary()), doc.short_title() or ""
    except Exception as e:
        logger.debug(f"readability failed, using the page body: {e}")
        content, title = "", ""
    if not content:
        body_match = _BODY.search(page)
        content = _to_text(body_match.group(1) if body_match else page)
    return content, title


def parse_html_page(page: str) -> dict[str, Any]:
    meta: dict[str, str] = {}
    for tag in _META.findall(page):
        attrs = {k.lower(): (a if a else b) for k, a, b in _ATTR.findall(tag)}
        key = attrs.get("property") or attrs.get("name")
        if key and "content" in attrs:
            meta.setdefault(key.lower(), html.unescape(attrs["content"]).strip())

    title_match = _TITLE.search(page)
    content, readable_title = _main_content(page)

    return {
        "title": (
            meta.get("og:title")
            or readable_title
            or (_strip_tags(title_match.group(1)) if title_match else None)
        ),
        "description": meta.get("og:description") or meta.get("description"),
        "content": content[:MAX_CONTENT_CHARS] or None,
        "thumbnailUrl": meta.get("og:image"),
        "author": meta.get("author") or meta.get("article:author"),
        "publishedAt": meta.get("article:published_time"),
        "siteName": meta.get("og:site_name"),
        "type": meta.get("og:type"),
    }


# ---------------------------------------------------------------------------
# classifier
# ---------------------------------------------------------------------------


def _text(data: Mapping[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


_CONSUMED_KEYS = frozenset({
    "title", "description", "content", "transcript", "markdown",
    "thumbnailUrl", "thumbnail", "ogImage", "images",
    "author", "channel", "publishedAt", "publishDate", "date",
    "success", "type",
})


class LinkClassifier:
    def __init__(self, video_extractor: LinkExtractor, content_extractor: LinkExtractor) -> None:
        self._video = video_extractor
        self._content = content_extractor

    @classmethod
    def from_settings(
        cls,
        settings: KaiSettings | None = None,
        gateway: FunctionsGateway | None = None,
    ) -> LinkClassifier:
        """Remote extractors when a functions endpoint exists, direct fetchers otherwise."""
        s = settings or get_settings()
        if gateway is not None or s.functions_base_url:
            gw = gateway or FunctionsGateway(s)
            return cls(RemoteVideoExtractor(gw), RemoteContentExtractor(gw))
        timeout = s.link_fetch_timeout_seconds
        return cls(OEmbedVideoExtractor(timeout=timeout), HtmlPageExtractor(timeout=timeout))

    async def analyze_url(self, url: str) -> LinkAnalysisResult:
        url = url.strip() if isinstance(url, str) else ""
        category = categorize(url)
        extractor = self._video if category is LinkCategory.YOUTUBE else self._content
        try:
            data = await extractor.extract(url)
            return self._to_result(url, category, data)
        except Exception as e:
            logger.warning(f"Link extraction failed for {url!r} ({category.value}): {e}")
            return degraded_result(url, category, e)

    def _to_result(self, url: str, category: LinkCategory, data: Mapping[str, Any]) -> LinkAnalysisResult:
        host = hostname(url)
        if category is LinkCategory.ARTICLE and data.get("type") == "newsletter":
            category = LinkCategory.NEWSLETTER

        thumbnail = _text(data, "thumbnailUrl", "thumbnail", "ogImage")
        images = data.get("images")
        if not thumbnail and isinstance(images, list) and images and isinstance(images[0], str):
            thumbnail = images[0]

        metadata: dict[str, Any] = {
            k: v for k, v in data.items()
            if k not in _CONSUMED_KEYS and isinstance(v, (str, int, float, bool))
        }
        metadata.update({"source": host, "url": url})
        if category is LinkCategory.YOUTUBE and (video_id := youtube_video_id(url)):
            metadata["video_id"] = video_id
            thumbnail = thumbnail or youtube_thumbnail(video_id)

        return LinkAnalysisResult(
            type=category,
            title=_text(data, "title") or host or url,
            description=_text(data, "description"),
            content=_text(data, "content", "transcript", "markdown"),
            thumbnail_url=thumbnail,
            author=_text(data, "author", "channel"),
            published_at=_text(data, "publishedAt", "publishDate", "date"),
            metadata=metadata,
        )


def degraded_result(url: str, category: LinkCategory, error: Exception | None = None) -> LinkAnalysisResult:
    host = hostname(url)
    metadata: dict[str, Any] = {"source": host, "url": url, "degraded": True}
    if error is not None:
        metadata["error"] = str(error)
    thumbnail = None
    if category is LinkCategory.YOUTUBE and (video_id := youtube_video_id(url)):
        metadata["video_id"] = video_id
        thumbnail = youtube_thumbnail(video_id)
    return LinkAnalysisResult(
        type=category,
        title=host or url or "link",
        thumbnail_url=thumbnail,
        metadata=metadata,
    )
