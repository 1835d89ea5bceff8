"""
Verifier Agent
==============

Checks a draft against the knowledge base context and returns a JSON
verdict: pass, or revise with issues, missing citations and rewrite
guidance.

An unusable verifier reply is never read as "pass". It becomes a revise
verdict with generic guidance and parsed=False, so the finalizer errs on
the side of caution and the result can be flagged as unverified.
"""

import logging

from campus_rag.agents.base_agent import BaseAgent
from campus_rag.agents.structured_output import Fallback, extract_first_json_object
from campus_rag.schemas.models import AgentRole, VerificationVerdict

logger = logging.getLogger(__name__)


VERIFIER_SYSTEM_PROMPT = """You are "VerifierAgent".
You check the draft answer for hallucination and unsupported campus-specific claims.

Return ONLY valid JSON:
{
  "verdict": "pass" | "revise",
  "issues": string[],
  "missing_citations": string[],
  "rewrite_guidance": string
}

Rules:
- If a statement depends on campus-specific facts but is not supported by KB context, verdict must be "revise".
- If KB context exists and the draft contains key claims without [KB*] citations, list them in missing_citations.
- Keep rewrite_guidance short and actionable."""

FALLBACK_GUIDANCE = (
    "请减少不确定的校园细节，补齐引用标签 [KB1]/[KB2]，并明确不确定项需要官方确认。"
)


def _string_list(value, limit: int = 10) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value][:limit]


class VerifierAgent(BaseAgent):
    """Reviews drafts. Deterministic sampling (temperature 0)."""

    temperature = 0.0
    max_tokens = 600

    @property
    def role(self) -> AgentRole:
        return AgentRole.VERIFIER

    async def review(self, draft: str, kb_context: str) -> str:
        """Ask the backend for a verdict. Returns the raw reply."""
        user_prompt = (
            f"## Knowledge Base Context\n{kb_context or '(none)'}\n\n"
            f"## Draft Answer\n{draft}"
        )
        return await self._complete([
            {"role": "system", "content": VERIFIER_SYSTEM_PROMPT},
            {"role": "user", "content": user_prompt},
        ])

    @staticmethod
    def parse_verdict(raw: str) -> VerificationVerdict:
        """Normalize a verifier reply; unusable replies become a cautious revise."""
        outcome = extract_first_json_object(raw)

        if isinstance(outcome, Fallback) or not outcome.value.get("verdict"):
            reason = outcome.reason if isinstance(outcome, Fallback) else "missing verdict"
            logger.warning(f"Verifier output unusable ({reason}), forcing revise")
            return VerificationVerdict(
                verdict="revise",
                issues=["Verifier output is not valid JSON"],
                missing_citations=[],
                rewrite_guidance=FALLBACK_GUIDANCE,
                parsed=False,
            )

        data = outcome.value
        return VerificationVerdict(
            verdict="pass" if data.get("verdict") == "pass" else "revise",
            issues=_string_list(data.get("issues")),
            missing_citations=_string_list(data.get("missing_citations")),
            rewrite_guidance=str(data.get("rewrite_guidance") or "")[:800],
            parsed=True,
        )

    async def verify(self, draft: str, kb_context: str) -> VerificationVerdict:
        """review followed by parse_verdict."""
        return self.parse_verdict(await self.review(draft, kb_context))
