"""
GEO Scorer
==========

Asks the LLM how findable and citable each crawled page is for AI answer
engines. Each page gets five component scores in [0, 1] and an overall
score on a 0-100 scale; the site score is the mean of the page scores.
"""

from typing import Any, Dict, List

from loguru import logger

from config.settings import LLMSettings
from core.models import StageResult
from infrastructure.llm_client import LLMClient
from infrastructure.working_store import WorkingCollection

COMPONENTS = (
    "semantic_clarity",
    "contextual_relevance",
    "structural_optimization",
    "ai_query_alignment",
    "citation_potential",
)

SYSTEM_PROMPT = (
    "You audit web pages for Generative Engine Optimization. "
    "Reply with a JSON object only."
)

PAGE_PROMPT = """Rate how well this page would be understood and cited by AI assistants.

URL: {url}
Title: {title}
Meta description: {description}
Headings: {headings}
JSON-LD types: {types}
Content excerpt:
{text}

Return JSON: {{"component_scores": {{{components}}}, "reasoning": "<one paragraph>"}}
where each component is an object {{"score": <0.0-1.0>, "reasoning": "<short>"}}."""


def _clamp(value: Any) -> float:
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return 0.0


class GeoScorer:
    def __init__(self, working_collection: WorkingCollection, llm_client: LLMClient, llm_settings: LLMSettings):
        self.working_collection = working_collection
        self.llm = llm_client
        self.max_pages = llm_settings.max_pages_per_stage

    async def run(self, url: str, config: Dict[str, Any]) -> StageResult:
        pages = await self.working_collection.fetch_for_domain(config["domain"])
        if not pages:
            return StageResult(success=False, error="No extracted pages available for scoring")

        scores: List[float] = []
        for page in pages[: self.max_pages]:
            evaluation = await self.score_page(page)
            scores.append(evaluation["score"])
            await self.working_collection.update_page(page["id"], {"geo_score": evaluation})

        site_score = round(sum(scores) / len(scores), 1)
        logger.info(f"GEO scoring complete for {config['domain']} | pages={len(scores)} | score={site_score}")
        return StageResult(success=True, data={"pages_scored": len(scores), "site_score": site_score})

    async def score_page(self, page: Dict[str, Any]) -> Dict[str, Any]:
        meta = page.get("meta") or {}
        headings = page.get("headings") or {}
        schema = page.get("geo_schema") or {}

        prompt = PAGE_PROMPT.format(
            url=page.get("url"),
            title=page.get("title") or "",
            description=meta.get("description", ""),
            headings="; ".join(headings.get("h1", []) + headings.get("h2", [])[:10]),
            types=", ".join(schema.get("types", [])) or "none",
            text=(page.get("text") or "")[:4000],
            components=", ".join(f'"{c}": {{...}}' for c in COMPONENTS),
        )
        data = await self.llm.complete_json(prompt, system=SYSTEM_PROMPT)

        raw_components = data.get("component_scores") or {}
        components = {}
        for name in COMPONENTS:
            entry = raw_components.get(name) or {}
            components[name] = {
                "score": _clamp(entry.get("score")),
                "reasoning": entry.get("reasoning") or "Not analyzed",
            }

        overall = sum(c["score"] for c in components.values()) / len(COMPONENTS)
        return {
            "score": round(overall * 100, 1),
            "component_scores": components,
            "reasoning": data.get("reasoning", ""),
        }
