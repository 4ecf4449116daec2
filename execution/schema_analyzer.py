"""
GEO Schema Analyzer
===================

Classifies the JSON-LD already extracted for each crawled page and records
which schema.org types an AI answer engine would expect but cannot find.
"""

from typing import Any, Dict, Iterable, List, Set

from loguru import logger

from core.models import StageResult
from infrastructure.working_store import WorkingCollection

# Site-wide types every business site should expose at least once.
SITE_RECOMMENDED_TYPES = ("Organization", "WebSite")

# Page-level hints: if the page looks like X, it should carry schema Y.
PAGE_TYPE_HINTS = {
    "FAQPage": ("faq", "frequently asked", "questions"),
    "Article": ("blog", "news", "article", "/post"),
    "Product": ("product", "shop", "pricing"),
    "ContactPoint": ("contact",),
}


def collect_types(blocks: Iterable[Any]) -> Set[str]:
    """Flatten ``@type`` values from JSON-LD blocks, including ``@graph`` members."""
    found: Set[str] = set()

    def visit(node: Any) -> None:
        if isinstance(node, list):
            for item in node:
                visit(item)
        elif isinstance(node, dict):
            node_type = node.get("@type")
            if isinstance(node_type, str):
                found.add(node_type)
            elif isinstance(node_type, list):
                found.update(t for t in node_type if isinstance(t, str))
            for value in node.values():
                if isinstance(value, (dict, list)):
                    visit(value)

    visit(list(blocks))
    return found


class SchemaAnalyzer:
    def __init__(self, working_collection: WorkingCollection):
        self.working_collection = working_collection

    async def run(self, url: str, config: Dict[str, Any]) -> StageResult:
        pages = await self.working_collection.fetch_for_domain(config["domain"])
        if not pages:
            return StageResult(success=False, error="No extracted pages available for schema analysis")

        site_types: Set[str] = set()
        for page in pages:
            evaluation = self.evaluate_page(page)
            site_types.update(evaluation["types"])
            await self.working_collection.update_page(page["id"], {"geo_schema": evaluation})

        missing_site = [t for t in SITE_RECOMMENDED_TYPES if t not in site_types]
        logger.info(f"Schema analysis: {len(site_types)} types across {len(pages)} pages | missing={missing_site}")
        return StageResult(
            success=True,
            data={
                "pages_analyzed": len(pages),
                "schema_types": sorted(site_types),
                "missing_site_types": missing_site,
            },
        )

    @staticmethod
    def evaluate_page(page: Dict[str, Any]) -> Dict[str, Any]:
        types = collect_types(page.get("json_ld") or [])
        haystack = " ".join(
            [
                (page.get("url") or "").lower(),
                (page.get("title") or "").lower(),
                " ".join((page.get("headings") or {}).get("h1", [])).lower(),
            ]
        )

        recommended: List[str] = [
            schema for schema, hints in PAGE_TYPE_HINTS.items() if any(h in haystack for h in hints)
        ]
        missing = [schema for schema in recommended if schema not in types]

        return {
            "types": sorted(types),
            "has_json_ld": bool(types),
            "recommended": recommended,
            "missing": missing,
        }
