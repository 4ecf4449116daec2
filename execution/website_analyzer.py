"""
Website Analyzer - Structure Extraction Stage
==============================================

Crawls a website on its own host and stores, per page:
- Title, meta tags and canonical link
- Heading outline (h1-h3)
- Visible text (boilerplate removed, truncated)
- Parsed JSON-LD blocks

Rows land in the working collection, where the later stages pick them up.
"""

import asyncio
import json
import re
from collections import deque
from typing import Any, Dict, List, Optional, Set
from urllib.parse import urldefrag, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup
from loguru import logger

from config.settings import ScrapingSettings
from core.exceptions import ScrapingError
from core.identity import hostname_of
from core.models import StageResult
from infrastructure.working_store import WorkingCollection

_SKIP_EXTENSIONS = re.compile(r"\.(jpg|jpeg|png|gif|svg|webp|pdf|zip|css|js|xml|mp4|mp3|ico)$", re.I)


class WebsiteAnalyzer:
    """
    Breadth-first same-host crawler.

    Strategy:
    1. Fetch the submitted URL (failure here fails the stage)
    2. Follow same-host links breadth-first up to ``max_pages``
    3. Extract structure from each HTML page
    4. Store all pages in the working collection
    """

    def __init__(self, working_collection: WorkingCollection, scraping_settings: ScrapingSettings):
        """
        Initialize analyzer with dependencies.

        Args:
            working_collection: Scratch table receiving the extracted pages
            scraping_settings: Configuration for crawling behavior
        """
        self.working_collection = working_collection
        self.scraping_settings = scraping_settings

    async def run(self, url: str, config: Dict[str, Any]) -> StageResult:
        domain = config.get("domain") or hostname_of(url)
        logger.info(f"Crawling {url} (max {self.scraping_settings.max_pages} pages)")

        pages = await self._crawl(url, domain)
        if not pages:
            return StageResult(success=False, error=f"No crawlable HTML pages found at {url}")

        stored = await self.working_collection.insert_pages(pages)
        logger.info(f"Stored {stored} pages for {domain}")
        return StageResult(
            success=True,
            data={"pages_crawled": stored, "domain": domain, "urls": [p["url"] for p in pages]},
        )

    # =========================================================================
    # CRAWLING
    # =========================================================================

    async def _crawl(self, start_url: str, domain: str) -> List[Dict[str, Any]]:
        pages: List[Dict[str, Any]] = []
        seen: Set[str] = {start_url}
        frontier = deque([start_url])

        async with httpx.AsyncClient(
            timeout=self.scraping_settings.request_timeout,
            headers={"User-Agent": self.scraping_settings.user_agent},
            follow_redirects=True,
        ) as client:
            while frontier and len(pages) < self.scraping_settings.max_pages:
                url = frontier.popleft()
                is_root = url == start_url

                try:
                    response = await client.get(url)
                    if is_root:
                        response.raise_for_status()
                except httpx.HTTPStatusError as e:
                    raise ScrapingError(
                        f"Failed to fetch {url}: HTTP {e.response.status_code}",
                        url=url,
                        retryable=e.response.status_code >= 500,
                        cause=e,
                    ) from e
                except httpx.HTTPError as e:
                    if is_root:
                        raise ScrapingError(
                            f"Network error fetching {url}: {e}",
                            url=url,
                            retryable=isinstance(e, httpx.TransportError),
                            cause=e,
                        ) from e
                    logger.debug(f"Skipping {url}: {e}")
                    continue

                if response.status_code >= 400 or "html" not in response.headers.get("content-type", "html"):
                    continue

                soup = BeautifulSoup(response.text, "html.parser")
                pages.append(self.extract_page(str(response.url), domain, response.status_code, soup))

                for link in self._same_host_links(soup, str(response.url), domain):
                    if link not in seen:
                        seen.add(link)
                        frontier.append(link)

                if frontier and len(pages) < self.scraping_settings.max_pages:
                    await asyncio.sleep(self.scraping_settings.min_delay_between_requests)

        return pages

    @staticmethod
    def _same_host_links(soup: BeautifulSoup, base_url: str, domain: str) -> List[str]:
        links = []
        for anchor in soup.find_all("a", href=True):
            href = anchor["href"].strip()
            if href.startswith(("mailto:", "tel:", "javascript:")):
                continue
            absolute, _ = urldefrag(urljoin(base_url, href))
            parsed = urlparse(absolute)
            if parsed.scheme not in ("http", "https") or (parsed.hostname or "").lower() != domain:
                continue
            if _SKIP_EXTENSIONS.search(parsed.path):
                continue
            links.append(absolute)
        return links

    # =========================================================================
    # EXTRACTION
    # =========================================================================

    def extract_page(self, url: str, domain: str, status_code: int, soup: BeautifulSoup) -> Dict[str, Any]:
        """Build a working-collection row from a parsed page."""
        title_tag = soup.find("title")
        json_ld = self._extract_json_ld(soup)

        return {
            "url": url,
            "domain": domain,
            "status_code": status_code,
            "title": title_tag.get_text().strip() if title_tag else None,
            "meta": self._extract_meta(soup),
            "headings": {
                level: [h.get_text(" ", strip=True) for h in soup.find_all(level)] for level in ("h1", "h2", "h3")
            },
            "text": self._extract_text(soup),
            "json_ld": json_ld,
        }

    @staticmethod
    def _extract_meta(soup: BeautifulSoup) -> Dict[str, str]:
        meta: Dict[str, str] = {}
        for tag in soup.find_all("meta"):
            key = tag.get("name") or tag.get("property")
            content = tag.get("content")
            if key and content is not None:
                meta[key.lower()] = content.strip()

        canonical = soup.find("link", rel="canonical")
        if canonical and canonical.get("href"):
            meta["canonical"] = canonical["href"].strip()

        html = soup.find("html")
        if html and html.get("lang"):
            meta["lang"] = html["lang"]
        return meta

    @staticmethod
    def _extract_json_ld(soup: BeautifulSoup) -> List[Any]:
        blocks: List[Any] = []
        for script in soup.find_all("script", type="application/ld+json"):
            raw = script.string or script.get_text()
            if not raw or not raw.strip():
                continue
            try:
                blocks.append(json.loads(raw))
            except json.JSONDecodeError:
                logger.debug("Skipping malformed JSON-LD block")
        return blocks

    def _extract_text(self, soup: BeautifulSoup) -> str:
        for tag in soup(["script", "style", "noscript", "nav", "footer", "header", "svg"]):
            tag.decompose()

        root = soup.select_one("main") or soup.select_one("article") or soup.body or soup
        text = re.sub(r"\s+", " ", root.get_text(" ")).strip()
        return text[: self.scraping_settings.max_text_chars]


async def precheck_url(raw_url: str, settings: ScrapingSettings) -> Optional[Dict[str, Any]]:
    """
    Check that a submitted URL answers at all.

    URLs with a scheme are tried as given; bare hosts over https first, then
    http. Each candidate gets a HEAD request, retried as GET when HEAD is
    rejected. Any HTTP answer counts as reachable. Returns ``None`` when no
    candidate answered.
    """
    raw = (raw_url or "").strip()
    if not raw:
        return None
    if re.match(r"^https?://", raw, re.I):
        candidates = [raw]
    else:
        cleaned = re.sub(r"^\w+://", "", raw)
        candidates = [f"https://{cleaned}", f"http://{cleaned}"]

    async with httpx.AsyncClient(
        timeout=settings.precheck_timeout,
        headers={"User-Agent": settings.user_agent},
        follow_redirects=True,
    ) as client:
        for candidate in candidates:
            try:
                response = await client.head(candidate)
                if response.status_code >= 400:
                    response = await client.get(candidate)
            except httpx.HTTPError as e:
                logger.debug(f"Precheck failed for {candidate}: {e}")
                continue

            return {
                "input": raw,
                "normalized_url": candidate,
                "final_url": str(response.url),
                "status": response.status_code,
                "redirected": bool(response.history),
            }
    return None
