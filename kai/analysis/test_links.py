import asyncio

import httpx

from kai.actions.types import LinkCategory
from kai.analysis.links import (
    HtmlPageExtractor,
    LinkClassifier,
    OEmbedVideoExtractor,
    categorize,
    parse_html_page,
    youtube_video_id,
)


class _Extractor:
    def __init__(self, data: dict | None = None, error: Exception | None = None) -> None:
        self.data = data or {}
        self.error = error
        self.urls: list[str] = []

    async def extract(self, url: str):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.data


def test_categorize_by_hostname() -> None:
    assert categorize("https://www.youtube.com/watch?v=dQw4w9WgXcQ") is LinkCategory.YOUTUBE
    assert categorize("https://youtu.be/dQw4w9WgXcQ") is LinkCategory.YOUTUBE
    assert categorize("https://instagram.com/p/abc") is LinkCategory.SOCIAL
    assert categorize("https://x.com/someone/status/1") is LinkCategory.SOCIAL
    assert categorize("https://www.linkedin.com/posts/abc") is LinkCategory.SOCIAL
    assert categorize("https://lenny.substack.com/p/growth") is LinkCategory.NEWSLETTER
    assert categorize("https://example.com/blog/post") is LinkCategory.ARTICLE


def test_lookalike_domains_are_articles() -> None:
    assert categorize("https://netflix.com/title/1") is LinkCategory.ARTICLE
    assert categorize("https://notyoutube.com/watch?v=x") is LinkCategory.ARTICLE
    assert categorize("not a url") is LinkCategory.ARTICLE


def test_youtube_video_id_forms() -> None:
    assert youtube_video_id("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=1") == "dQw4w9WgXcQ"
    assert youtube_video_id("https://youtu.be/dQw4w9WgXcQ") == "dQw4w9WgXcQ"
    assert youtube_video_id("https://youtube.com/shorts/dQw4w9WgXcQ") == "dQw4w9WgXcQ"
    assert youtube_video_id("https://youtube.com/@channel") is None


def test_video_links_use_video_extractor() -> None:
    video = _Extractor({
        "title": "How to grow", "channel": "Growth TV", "transcript": "hello", "duration": 120,
    })
    content = _Extractor()
    url = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"

    result = asyncio.run(LinkClassifier(video, content).analyze_url(url))

    assert video.urls == [url]
    assert content.urls == []
    assert result.type is LinkCategory.YOUTUBE
    assert result.title == "How to grow"
    assert result.author == "Growth TV"
    assert result.content == "hello"
    assert result.thumbnail_url == "https://img.youtube.com/vi/dQw4w9WgXcQ/hqdefault.jpg"
    assert result.metadata["video_id"] == "dQw4w9WgXcQ"
    assert result.metadata["duration"] == 120
    assert result.metadata["source"] == "youtube.com"
    assert not result.degraded


def test_article_mapping_and_newsletter_hint() -> None:
    content = _Extractor({
        "title": "Weekly #12",
        "description": "issue",
        "markdown": "# body",
        "images": ["https://cdn.example.com/a.png"],
        "publishDate": "2024-05-01",
        "type": "newsletter",
    })

    result = asyncio.run(LinkClassifier(_Extractor(), content).analyze_url("https://news.example.com/12"))

    assert result.type is LinkCategory.NEWSLETTER
    assert result.content == "# body"
    assert result.thumbnail_url == "https://cdn.example.com/a.png"
    assert result.published_at == "2024-05-01"


def test_extractor_failure_degrades_to_hostname() -> None:
    failing = _Extractor(error=RuntimeError("502"))
    classifier = LinkClassifier(failing, failing)

    article = asyncio.run(classifier.analyze_url("https://www.example.com/a"))
    video = asyncio.run(classifier.analyze_url("https://youtu.be/dQw4w9WgXcQ"))

    assert article.type is LinkCategory.ARTICLE
    assert article.title == "example.com"
    assert article.thumbnail_url is None
    assert article.degraded
    assert video.type is LinkCategory.YOUTUBE
    assert video.title == "youtu.be"
    assert video.thumbnail_url == "https://img.youtube.com/vi/dQw4w9WgXcQ/hqdefault.jpg"
    assert video.metadata["error"] == "502"


def test_unreachable_host_still_returns_a_result() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Name or service not known", request=request)

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            classifier = LinkClassifier(OEmbedVideoExtractor(http), HtmlPageExtractor(http))
            return await classifier.analyze_url("https://does-not-exist.invalid/page")

    result = asyncio.run(scenario())

    assert result.type is LinkCategory.ARTICLE
    assert result.title == "does-not-exist.invalid"
    assert result.degraded


def test_html_page_extractor_reads_meta_tags() -> None:
    page = """
    <html><head>
      <title>Fallback &amp; title</title>
      <meta property="og:title" content="Growth loops">
      <meta name="description" content="How loops work">
      <meta property="og:image" content="https://example.com/cover.jpg">
      <meta name="author" content="Ana Souza">
      <meta property="article:published_time" content="2024-04-02T10:00:00Z">
    </head><body><script>var x = 1;</script><h1>Growth loops</h1><p>Loops   compound.</p></body></html>
    """

    def handler(request: httpx.Request) -> httpx.Response:
        assert "Mozilla" in request.headers["User-Agent"]
        return httpx.Response(200, text=page, headers={"Content-Type": "text/html"})

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            classifier = LinkClassifier(_Extractor(), HtmlPageExtractor(http))
            return await classifier.analyze_url("https://blog.example.com/loops")

    result = asyncio.run(scenario())

    assert result.title == "Growth loops"
    assert result.description == "How loops work"
    assert result.thumbnail_url == "https://example.com/cover.jpg"
    assert result.author == "Ana Souza"
    assert result.published_at == "2024-04-02T10:00:00Z"
    assert "Loops compound." in (result.content or "")
    assert "var x" not in (result.content or "")


def test_parse_html_page_falls_back_to_title_tag() -> None:
    data = parse_html_page("<html><head><title>Only &amp; title</title></head><body></body></html>")

    assert data["title"] == "Only & title"
    assert data["description"] is None
    assert data["content"] is None


def test_oembed_extractor() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/oembed"
        assert request.url.params["url"] == "https://youtu.be/dQw4w9WgXcQ"
        return httpx.Response(200, json={
            "title": "Video", "author_name": "Chan", "thumbnail_url": "https://i.ytimg.com/x.jpg",
        })

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            classifier = LinkClassifier(OEmbedVideoExtractor(http), _Extractor())
            return await classifier.analyze_url("https://youtu.be/dQw4w9WgXcQ")

    result = asyncio.run(scenario())

    assert result.title == "Video"
    assert result.author == "Chan"
    assert result.thumbnail_url == "https://i.ytimg.com/x.jpg"


def test_parse_html_page_keeps_the_article_and_drops_boilerplate() -> None:
    page = """
    <html><head><title>Growth loops | Example</title></head><body>
      <nav class="menu"><a href="/">Home</a> | <a href="/pricing">Pricing</a> | <a href="/login">Login</a></nav>
      <div class="cookie-popup">We use cookies. <button>Accept all</button></div>
      <div id="content" class="post-body">
        <h1>Growth loops</h1>
        <p>Loops compound over time, because every new user brings in the next one, and so on.</p>
        <p>Unlike funnels, loops feed their own output back into the top, which makes growth durable.</p>
        <p>To find yours, list what users create, where it travels, and who it brings back with it.</p>
      </div>
      <footer class="footer">Copyright 2024 Example Inc. <a href="/privacy">Privacy</a> <a href="/terms">Terms</a></footer>
    </body></html>
    """

    content = parse_html_page(page)["content"] or ""

    assert "Loops compound over time" in content
    assert "which makes growth durable." in content
    assert "Accept all" not in content
    assert "Pricing" not in content
    assert "Copyright" not in content
    assert "one, and so on.\n" in content
