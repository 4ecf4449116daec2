"""
Claims & Risk Analyzer
======================

Extracts the key claims each page makes, rates how well they are supported
and drafts FAQ entries an answer engine could quote. Claims that are vague
or need verification count as risks.
"""

from typing import Any, Dict, List

from loguru import logger

from config.settings import LLMSettings
from core.models import StageResult
from infrastructure.llm_client import LLMClient
from infrastructure.working_store import WorkingCollection

SYSTEM_PROMPT = "You review marketing copy for unsupported or risky claims. Reply with a JSON object only."

PAGE_PROMPT = """Page: {url}
Title: {title}
Content excerpt:
{text}

List the page's key claims and draft up to 5 FAQ entries grounded in the content.
Return JSON:
{{"claims": [{{"claim": "...", "type": "fact|statistic|citation",
   "is_quantified": 0-2, "is_vague": 0-1, "needs_verification": 0-1,
   "claim_score": 0-10, "improvement_suggestions": "..."}}],
  "faq": [{{"question": "...", "answer": "..."}}],
  "summary": "..."}}"""


def is_risky(claim: Dict[str, Any]) -> bool:
    try:
        return float(claim.get("is_vague") or 0) >= 1 or float(claim.get("needs_verification") or 0) >= 1
    except (TypeError, ValueError):
        return False


class ClaimsAnalyzer:
    def __init__(self, working_collection: WorkingCollection, llm_client: LLMClient, llm_settings: LLMSettings):
        self.working_collection = working_collection
        self.llm = llm_client
        self.max_pages = llm_settings.max_pages_per_stage

    async def run(self, url: str, config: Dict[str, Any]) -> StageResult:
        pages = await self.working_collection.fetch_for_domain(config["domain"])
        if not pages:
            return StageResult(success=False, error="No extracted pages available for claims analysis")

        total_claims = 0
        risky_claims = 0
        for page in pages[: self.max_pages]:
            evaluation = await self.evaluate_page(page)
            total_claims += len(evaluation["claims"])
            risky_claims += evaluation["risky_claims"]
            await self.working_collection.update_page(page["id"], {"claims_evaluation": evaluation})

        logger.info(f"Claims analysis for {config['domain']} | claims={total_claims} | risky={risky_claims}")
        return StageResult(success=True, data={"total_claims": total_claims, "risky_claims": risky_claims})

    async def evaluate_page(self, page: Dict[str, Any]) -> Dict[str, Any]:
        prompt = PAGE_PROMPT.format(
            url=page.get("url"),
            title=page.get("title") or "",
            text=(page.get("text") or "")[:4000],
        )
        data = await self.llm.complete_json(prompt, system=SYSTEM_PROMPT)

        claims: List[Dict[str, Any]] = [c for c in data.get("claims") or [] if isinstance(c, dict) and c.get("claim")]
        faq = [
            {"question": str(item["question"]), "answer": str(item["answer"])}
            for item in data.get("faq") or []
            if isinstance(item, dict) and item.get("question") and item.get("answer")
        ]
        return {
            "claims": claims,
            "risky_claims": sum(1 for c in claims if is_risky(c)),
            "faq": faq,
            "summary": data.get("summary", ""),
        }
