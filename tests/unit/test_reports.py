"""
Unit Tests for the PDF Report Generators
"""

from pathlib import Path

import pytest

from execution.reports import FAQReport, MetaTagsReport, StructuredDataReport
from tests.fakes import InMemoryPages

URL = "https://acme.example/"


def page(**overrides):
    base = {
        "url": URL,
        "domain": "acme.example",
        "title": "Acme Industrial Widgets and Replacement Parts",
        "meta": {
            "description": "Acme has built industrial widgets and replacement parts for factories since 1990.",
            "og:title": "Acme",
            "canonical": URL,
        },
        "text": "We build widgets.",
    }
    base.update(overrides)
    return base


class TestMetaTagsReport:
    def test_clean_page_has_no_issues(self):
        assert MetaTagsReport.issues_for(page()) == []

    def test_reports_each_missing_tag(self):
        issues = MetaTagsReport.issues_for(page(title="Acme", meta={}))

        assert issues == [
            "title length 4 (30-60 recommended)",
            "missing meta description",
            "missing og:title",
            "missing canonical link",
        ]


class TestReportGeneration:
    @pytest.mark.asyncio
    async def test_faq_report_writes_pdf(self, tmp_path):
        pages = InMemoryPages(
            [page(claims_evaluation={"faq": [{"question": "Who are you?", "answer": "Acme & sons."}]})]
        )

        result = await FAQReport(pages).generate(URL, str(tmp_path))

        assert result.success
        assert result.path == str(tmp_path / "faq_jsonld_report.pdf")
        assert Path(result.path).read_bytes().startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_structured_data_report_writes_pdf(self, tmp_path):
        pages = InMemoryPages([page(geo_schema={"types": ["Organization"], "has_json_ld": True, "missing": []})])

        result = await StructuredDataReport(pages).generate(URL, str(tmp_path))

        assert result.success
        assert (tmp_path / "structuredDataAudit_report.pdf").is_file()

    @pytest.mark.asyncio
    async def test_missing_pages_returns_failure_instead_of_raising(self, tmp_path):
        result = await MetaTagsReport(InMemoryPages()).generate(URL, str(tmp_path))

        assert not result.success
        assert "No extracted pages" in result.error
        assert list(tmp_path.iterdir()) == []
