"""
Unit Tests for the Default Pipeline Stages
==========================================

- WebsiteAnalyzer crawl and failure classification (httpx MockTransport)
- URL precheck
- SchemaAnalyzer JSON-LD classification
- GeoScorer and ClaimsAnalyzer with a canned LLM
"""

import httpx
import pytest

from config.settings import LLMSettings, ScrapingSettings
from core.exceptions import ScrapingError
from execution.claims_analyzer import ClaimsAnalyzer, is_risky
from execution.geo_scorer import GeoScorer
from execution.schema_analyzer import SchemaAnalyzer, collect_types
from execution.website_analyzer import WebsiteAnalyzer, precheck_url
from tests.fakes import FakeLLM, InMemoryPages

ROOT_HTML = """
<html lang="en"><head>
  <title>Acme Widgets</title>
  <meta name="description" content="Industrial widgets since 1990">
  <meta property="og:title" content="Acme">
  <link rel="canonical" href="https://acme.example/">
  <script type="application/ld+json">{"@context": "https://schema.org", "@type": "Organization", "name": "Acme"}</script>
</head><body>
  <nav>Menu</nav>
  <main><h1>Widgets</h1><p>We build   widgets.</p></main>
  <a href="/about">About</a>
  <a href="/faq#top">FAQ</a>
  <a href="https://other.example/">Elsewhere</a>
  <a href="mailto:sales@acme.example">Mail</a>
  <a href="/logo.png">Logo</a>
</body></html>
"""

ABOUT_HTML = "<html><head><title>About Acme</title></head><body><h1>About</h1><p>Family owned.</p></body></html>"


@pytest.fixture
def scraping_settings():
    return ScrapingSettings(min_delay_between_requests=0.0, max_pages=10)


@pytest.fixture
def mock_http(monkeypatch):
    """Route every httpx.AsyncClient through ``handler``."""
    real_client = httpx.AsyncClient

    def install(handler):
        monkeypatch.setattr(
            httpx,
            "AsyncClient",
            lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
        )

    return install


def html(body, status=200):
    return httpx.Response(status, text=body, headers={"content-type": "text/html; charset=utf-8"})


class TestWebsiteAnalyzer:
    @pytest.mark.asyncio
    async def test_crawls_same_host_pages(self, mock_http, scraping_settings):
        requested = []

        def handler(request):
            requested.append(str(request.url))
            if request.url.path == "/":
                return html(ROOT_HTML)
            if request.url.path == "/about":
                return html(ABOUT_HTML)
            return html("missing", status=404)

        mock_http(handler)
        pages = InMemoryPages()
        analyzer = WebsiteAnalyzer(pages, scraping_settings)

        result = await analyzer.run("https://acme.example/", {"domain": "acme.example"})

        assert result.success
        assert result.data["pages_crawled"] == 2
        assert "https://other.example/" not in requested
        assert not any(url.endswith(".png") for url in requested)

        root = pages.pages[0]
        assert root["title"] == "Acme Widgets"
        assert root["meta"]["description"] == "Industrial widgets since 1990"
        assert root["meta"]["canonical"] == "https://acme.example/"
        assert root["meta"]["lang"] == "en"
        assert root["headings"]["h1"] == ["Widgets"]
        assert root["text"] == "Widgets We build widgets."
        assert root["json_ld"][0]["@type"] == "Organization"

    @pytest.mark.asyncio
    async def test_server_error_on_root_is_retryable(self, mock_http, scraping_settings):
        mock_http(lambda request: html("down", status=503))
        analyzer = WebsiteAnalyzer(InMemoryPages(), scraping_settings)

        with pytest.raises(ScrapingError) as exc_info:
            await analyzer.run("https://acme.example/", {"domain": "acme.example"})
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_not_found_on_root_is_permanent(self, mock_http, scraping_settings):
        mock_http(lambda request: html("gone", status=404))
        analyzer = WebsiteAnalyzer(InMemoryPages(), scraping_settings)

        with pytest.raises(ScrapingError) as exc_info:
            await analyzer.run("https://acme.example/", {"domain": "acme.example"})
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_connection_failure_is_retryable(self, mock_http, scraping_settings):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        mock_http(handler)
        analyzer = WebsiteAnalyzer(InMemoryPages(), scraping_settings)

        with pytest.raises(ScrapingError) as exc_info:
            await analyzer.run("https://acme.example/", {"domain": "acme.example"})
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_non_html_root_fails_the_stage(self, mock_http, scraping_settings):
        mock_http(lambda request: httpx.Response(200, json={"ok": True}))
        analyzer = WebsiteAnalyzer(InMemoryPages(), scraping_settings)

        result = await analyzer.run("https://acme.example/", {"domain": "acme.example"})

        assert not result.success


class TestPrecheck:
    @pytest.mark.asyncio
    async def test_bare_host_falls_back_to_get(self, mock_http, scraping_settings):
        def handler(request):
            if request.method == "HEAD":
                return httpx.Response(405)
            return html("ok")

        mock_http(handler)

        result = await precheck_url("acme.example", scraping_settings)

        assert result["input"] == "acme.example"
        assert result["normalized_url"] == "https://acme.example"
        assert result["final_url"].rstrip("/") == "https://acme.example"
        assert result["status"] == 200
        assert result["redirected"] is False

    @pytest.mark.asyncio
    async def test_bare_host_tries_http_after_https(self, mock_http, scraping_settings):
        def handler(request):
            if request.url.scheme == "https":
                raise httpx.ConnectError("tls failure", request=request)
            return html("ok")

        mock_http(handler)

        result = await precheck_url("acme.example", scraping_settings)

        assert result["normalized_url"] == "http://acme.example"

    @pytest.mark.asyncio
    async def test_unreachable_returns_none(self, mock_http, scraping_settings):
        def handler(request):
            raise httpx.ConnectError("no route", request=request)

        mock_http(handler)

        assert await precheck_url("https://acme.example", scraping_settings) is None
        assert await precheck_url("   ", scraping_settings) is None


class TestSchemaAnalyzer:
    def test_collect_types_walks_graph_and_lists(self):
        blocks = [
            {"@graph": [{"@type": "WebSite"}, {"@type": ["Organization", "Brand"]}]},
            {"@type": "FAQPage", "mainEntity": [{"@type": "Question"}]},
        ]
        assert collect_types(blocks) == {"WebSite", "Organization", "Brand", "FAQPage", "Question"}

    @pytest.mark.asyncio
    async def test_flags_missing_recommended_types(self):
        pages = InMemoryPages(
            [
                {
                    "url": "https://acme.example/faq",
                    "domain": "acme.example",
                    "title": "Frequently asked questions",
                    "json_ld": [],
                },
                {
                    "url": "https://acme.example/",
                    "domain": "acme.example",
                    "title": "Acme",
                    "json_ld": [{"@type": "Organization"}],
                },
            ]
        )

        result = await SchemaAnalyzer(pages).run("https://acme.example/", {"domain": "acme.example"})

        assert result.success
        assert result.data["missing_site_types"] == ["WebSite"]
        faq = pages.pages[0]["geo_schema"]
        assert faq["has_json_ld"] is False
        assert faq["missing"] == ["FAQPage"]

    @pytest.mark.asyncio
    async def test_no_pages_fails(self):
        result = await SchemaAnalyzer(InMemoryPages()).run("https://acme.example/", {"domain": "acme.example"})
        assert not result.success


class TestLLMStages:
    @pytest.fixture
    def pages(self):
        return InMemoryPages(
            [
                {"url": "https://acme.example/", "domain": "acme.example", "title": "Acme", "text": "Best widgets."},
                {"url": "https://acme.example/about", "domain": "acme.example", "title": "About", "text": "Since 1990."},
            ]
        )

    @pytest.mark.asyncio
    async def test_geo_scorer_clamps_and_averages(self, pages):
        llm = FakeLLM(
            {
                "component_scores": {
                    "semantic_clarity": {"score": 1.4, "reasoning": "clear"},
                    "contextual_relevance": {"score": 0.5},
                    "structural_optimization": {"score": "bad"},
                    "ai_query_alignment": {"score": 0.5},
                    "citation_potential": {"score": 0.5},
                },
                "reasoning": "ok",
            }
        )
        scorer = GeoScorer(pages, llm, LLMSettings(OPENAI_API_KEY="k"))

        result = await scorer.run("https://acme.example/", {"domain": "acme.example"})

        assert result.success
        assert result.data == {"pages_scored": 2, "site_score": 50.0}
        components = pages.pages[0]["geo_score"]["component_scores"]
        assert components["semantic_clarity"]["score"] == 1.0
        assert components["structural_optimization"]["score"] == 0.0
        assert components["contextual_relevance"]["reasoning"] == "Not analyzed"

    @pytest.mark.asyncio
    async def test_geo_scorer_respects_page_limit(self, pages):
        llm = FakeLLM({"component_scores": {}})
        scorer = GeoScorer(pages, llm, LLMSettings(OPENAI_API_KEY="k", LLM_MAX_PAGES_PER_STAGE=1))

        result = await scorer.run("https://acme.example/", {"domain": "acme.example"})

        assert result.data["pages_scored"] == 1
        assert len(llm.prompts) == 1

    @pytest.mark.asyncio
    async def test_claims_analyzer_counts_risky_claims(self, pages):
        llm = FakeLLM(
            {
                "claims": [
                    {"claim": "Best widgets in the world", "is_vague": 1, "needs_verification": 1},
                    {"claim": "Founded in 1990", "is_vague": 0, "needs_verification": 0},
                    {"not_a_claim": True},
                ],
                "faq": [{"question": "Who are you?", "answer": "Acme."}, {"question": "No answer"}],
                "summary": "One risky claim.",
            }
        )
        analyzer = ClaimsAnalyzer(pages, llm, LLMSettings(OPENAI_API_KEY="k"))

        result = await analyzer.run("https://acme.example/", {"domain": "acme.example"})

        assert result.data == {"total_claims": 4, "risky_claims": 2}
        evaluation = pages.pages[0]["claims_evaluation"]
        assert evaluation["faq"] == [{"question": "Who are you?", "answer": "Acme."}]
        assert evaluation["risky_claims"] == 1

    def test_is_risky_tolerates_bad_values(self):
        assert is_risky({"is_vague": "1"})
        assert not is_risky({"is_vague": "n/a"})
        assert not is_risky({})
