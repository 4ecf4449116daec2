"""
Report Generators
=================

Five independent PDF reports rendered with reportlab from the pages held in
the working collection. Each generator returns a ``ReportResult`` and never
raises; one broken report must not cost the customer the other four.

Rendering is synchronous (reportlab) and runs in a worker thread.
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from urllib.robotparser import RobotFileParser
from xml.sax.saxutils import escape

import httpx
from loguru import logger
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, Preformatted, SimpleDocTemplate, Spacer, Table, TableStyle

from config.settings import ScrapingSettings
from core.enums import ReportStage
from core.exceptions import ReportGenerationError
from core.identity import hostname_of
from core.models import ReportResult
from infrastructure.working_store import WorkingCollection

AI_CRAWLERS = ("GPTBot", "OAI-SearchBot", "ChatGPT-User", "ClaudeBot", "PerplexityBot", "Google-Extended", "CCBot")

COLORS = {
    "dark_gray": colors.HexColor("#1F2937"),
    "medium_gray": colors.HexColor("#6B7280"),
    "light_gray": colors.HexColor("#F3F4F6"),
    "blue": colors.HexColor("#3B82F6"),
}


@dataclass
class ReportSection:
    heading: str
    paragraphs: List[str] = field(default_factory=list)
    rows: List[Sequence[Any]] = field(default_factory=list)
    code: Optional[str] = None


def _styles():
    styles = getSampleStyleSheet()
    styles.add(
        ParagraphStyle(
            name="ReportTitle",
            parent=styles["Heading1"],
            fontSize=20,
            textColor=COLORS["dark_gray"],
            spaceAfter=6,
        )
    )
    styles.add(
        ParagraphStyle(
            name="ReportMeta",
            parent=styles["Normal"],
            fontSize=9,
            textColor=COLORS["medium_gray"],
            spaceAfter=14,
        )
    )
    styles.add(ParagraphStyle(name="Cell", parent=styles["Normal"], fontSize=8, leading=10))
    return styles


def render_pdf(path: Path, title: str, url: str, sections: List[ReportSection]) -> None:
    """Write a plain tabular PDF report to ``path``."""
    styles = _styles()
    doc = SimpleDocTemplate(
        str(path),
        pagesize=A4,
        leftMargin=0.7 * inch,
        rightMargin=0.7 * inch,
        topMargin=0.7 * inch,
        bottomMargin=0.7 * inch,
        title=title,
    )

    story: List[Any] = [
        Paragraph(escape(title), styles["ReportTitle"]),
        Paragraph(
            f"{escape(url)} - generated {datetime.now(timezone.utc):%Y-%m-%d %H:%M} UTC",
            styles["ReportMeta"],
        ),
    ]

    for section in sections:
        story.append(Paragraph(escape(section.heading), styles["Heading2"]))
        for text in section.paragraphs:
            story.append(Paragraph(escape(text), styles["Normal"]))
            story.append(Spacer(1, 4))
        if section.rows:
            data = [[Paragraph(escape(str(cell)), styles["Cell"]) for cell in row] for row in section.rows]
            table = Table(data, repeatRows=1, hAlign="LEFT")
            table.setStyle(
                TableStyle(
                    [
                        ("BACKGROUND", (0, 0), (-1, 0), COLORS["light_gray"]),
                        ("GRID", (0, 0), (-1, -1), 0.25, COLORS["medium_gray"]),
                        ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ]
                )
            )
            story.append(table)
        if section.code:
            story.append(Preformatted(section.code, styles["Code"]))
        story.append(Spacer(1, 10))

    doc.build(story)


class ReportGenerator:
    """
    Base generator: load pages, build sections, render.

    Subclasses set ``stage``, ``filename`` and ``title`` and implement
    ``build_sections``.
    """

    stage: ReportStage
    filename: str
    title: str

    def __init__(self, working_collection: WorkingCollection):
        self.working_collection = working_collection

    async def generate(self, url: str, report_dir: str) -> ReportResult:
        start = time.perf_counter()
        try:
            pages = await self.working_collection.fetch_for_domain(hostname_of(url))
            if not pages:
                raise ReportGenerationError(f"No extracted pages for {url}", stage=self.stage.value)

            sections = await self.build_sections(url, pages)
            path = Path(report_dir) / self.filename
            await asyncio.to_thread(render_pdf, path, self.title, url, sections)
        except Exception as e:
            logger.warning(f"{self.filename} generation failed: {e}")
            return ReportResult(success=False, error=str(e), duration=time.perf_counter() - start)

        return ReportResult(success=True, path=str(path), duration=time.perf_counter() - start)

    async def build_sections(self, url: str, pages: List[Dict[str, Any]]) -> List[ReportSection]:
        raise NotImplementedError


class ProfessionalReport(ReportGenerator):
    stage = ReportStage.PROFESSIONAL
    filename = "WebsiteContent_report.pdf"
    title = "Website Content Report"

    async def build_sections(self, url, pages):
        scored = [p["geo_score"]["score"] for p in pages if p.get("geo_score")]
        site_score = round(sum(scored) / len(scored), 1) if scored else None

        summary = ReportSection(
            "Summary",
            paragraphs=[
                f"Pages analyzed: {len(pages)}",
                f"Overall GEO score: {site_score if site_score is not None else 'n/a'} / 100",
            ],
        )
        rows: List[Sequence[Any]] = [("Page", "Title", "Words", "GEO score")]
        for page in pages:
            words = len((page.get("text") or "").split())
            score = (page.get("geo_score") or {}).get("score", "n/a")
            rows.append((page["url"], page.get("title") or "-", words, score))

        sections = [summary, ReportSection("Pages", rows=rows)]

        for page in pages:
            components = (page.get("geo_score") or {}).get("component_scores")
            if not components:
                continue
            sections.append(
                ReportSection(
                    f"Score breakdown: {page['url']}",
                    rows=[("Component", "Score", "Reasoning")]
                    + [(name, f"{c['score']:.2f}", c["reasoning"]) for name, c in components.items()],
                )
            )
        return sections


class CrawlabilityReport(ReportGenerator):
    stage = ReportStage.CRAWLABILITY
    filename = "llm_Crawlability_Report.pdf"
    title = "LLM Crawlability Report"

    def __init__(self, working_collection: WorkingCollection, scraping_settings: ScrapingSettings):
        super().__init__(working_collection)
        self.scraping_settings = scraping_settings

    async def build_sections(self, url, pages):
        host = hostname_of(url)
        base = f"https://{host}"
        robots_txt, llms_txt = await self._fetch_text(f"{base}/robots.txt"), await self._fetch_text(f"{base}/llms.txt")

        rows: List[Sequence[Any]] = [("Crawler", "Homepage allowed")]
        if robots_txt is None:
            robots_note = "No robots.txt found; all crawlers are allowed unless meta tags say otherwise."
            rows.extend((bot, "yes") for bot in AI_CRAWLERS)
        else:
            parser = RobotFileParser()
            parser.parse(robots_txt.splitlines())
            robots_note = "robots.txt found."
            rows.extend((bot, "yes" if parser.can_fetch(bot, url) else "no") for bot in AI_CRAWLERS)

        restricted = [
            (p["url"], (p.get("meta") or {}).get("robots", ""))
            for p in pages
            if any(d in (p.get("meta") or {}).get("robots", "").lower() for d in ("noindex", "nofollow"))
        ]

        return [
            ReportSection("robots.txt", paragraphs=[robots_note], rows=rows),
            ReportSection(
                "llms.txt",
                paragraphs=["llms.txt present." if llms_txt else "No llms.txt found. Consider publishing one."],
            ),
            ReportSection(
                "Meta robots restrictions",
                paragraphs=[f"{len(restricted)} of {len(pages)} pages restrict indexing."],
                rows=[("Page", "Directive")] + restricted if restricted else [],
            ),
        ]

    async def _fetch_text(self, url: str) -> Optional[str]:
        try:
            async with httpx.AsyncClient(
                timeout=self.scraping_settings.request_timeout,
                headers={"User-Agent": self.scraping_settings.user_agent},
                follow_redirects=True,
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            logger.debug(f"Could not fetch {url}: {e}")
            return None
        return response.text if response.status_code == 200 else None


class FAQReport(ReportGenerator):
    stage = ReportStage.FAQ
    filename = "faq_jsonld_report.pdf"
    title = "FAQ JSON-LD Suggestions"

    async def build_sections(self, url, pages):
        sections = []
        for page in pages:
            faq = (page.get("claims_evaluation") or {}).get("faq") or []
            if not faq:
                continue
            json_ld = {
                "@context": "https://schema.org",
                "@type": "FAQPage",
                "mainEntity": [
                    {
                        "@type": "Question",
                        "name": item["question"],
                        "acceptedAnswer": {"@type": "Answer", "text": item["answer"]},
                    }
                    for item in faq
                ],
            }
            sections.append(
                ReportSection(
                    page["url"],
                    rows=[("Question", "Answer")] + [(i["question"], i["answer"]) for i in faq],
                    code=json.dumps(json_ld, indent=2, ensure_ascii=False),
                )
            )

        if not sections:
            sections.append(ReportSection("No suggestions", paragraphs=["No FAQ content could be derived."]))
        return sections


class StructuredDataReport(ReportGenerator):
    stage = ReportStage.STRUCTURED_DATA
    filename = "structuredDataAudit_report.pdf"
    title = "Structured Data Audit"

    async def build_sections(self, url, pages):
        rows: List[Sequence[Any]] = [("Page", "Types found", "Missing")]
        without = 0
        for page in pages:
            schema = page.get("geo_schema") or {}
            if not schema.get("has_json_ld"):
                without += 1
            rows.append(
                (
                    page["url"],
                    ", ".join(schema.get("types", [])) or "-",
                    ", ".join(schema.get("missing", [])) or "-",
                )
            )
        return [
            ReportSection(
                "Coverage",
                paragraphs=[f"{len(pages) - without} of {len(pages)} pages carry JSON-LD structured data."],
            ),
            ReportSection("Pages", rows=rows),
        ]


class MetaTagsReport(ReportGenerator):
    stage = ReportStage.META_TAGS
    filename = "metaTags_analysis.pdf"
    title = "Meta Tags Analysis"

    @staticmethod
    def issues_for(page: Dict[str, Any]) -> List[str]:
        meta = page.get("meta") or {}
        title = page.get("title") or ""
        description = meta.get("description", "")
        issues = []
        if not title:
            issues.append("missing title")
        elif not 30 <= len(title) <= 60:
            issues.append(f"title length {len(title)} (30-60 recommended)")
        if not description:
            issues.append("missing meta description")
        elif not 70 <= len(description) <= 160:
            issues.append(f"description length {len(description)} (70-160 recommended)")
        if "og:title" not in meta:
            issues.append("missing og:title")
        if "canonical" not in meta:
            issues.append("missing canonical link")
        return issues

    async def build_sections(self, url, pages):
        rows: List[Sequence[Any]] = [("Page", "Title", "Issues")]
        clean = 0
        for page in pages:
            issues = self.issues_for(page)
            if not issues:
                clean += 1
            rows.append((page["url"], page.get("title") or "-", "; ".join(issues) or "none"))
        return [
            ReportSection("Summary", paragraphs=[f"{clean} of {len(pages)} pages have no meta tag issues."]),
            ReportSection("Pages", rows=rows),
        ]
