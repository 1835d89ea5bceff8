"""
Finalizer Agent
===============

Merges the specialist draft and the verifier's feedback into the answer the
user sees. It must not emit JSON, must apply the rewrite guidance when the
verdict is "revise", and ends with a short reference list naming only the
[KB*] labels actually cited in the body.
"""

import logging

from campus_rag.agents.base_agent import BaseAgent
from campus_rag.schemas.models import AgentMode, AgentRole, VerificationVerdict

logger = logging.getLogger(__name__)


FINALIZER_SYSTEM_PROMPT = """你是 "FinalizerAgent"。
你把 Specialist 草稿 + Verifier 反馈整合为最终回答。

强制规则：
1) 不要输出任何 JSON；直接输出最终中文回答。
2) 对校园具体事实：有 KB 就引用 [KB1]/[KB2]；没有 KB 或不支持就明确不确定并给出官方确认渠道。
3) 若 Verifier 判定需要修改，必须遵循 rewrite_guidance 修正草稿。
4) 结尾追加一个简短的“参考资料”小节，仅列出你在正文引用过的 [KB*] 标签对应的标题。"""


def format_verdict_block(verification: VerificationVerdict) -> str:
    """Render the verdict as the markdown block the finalizer reads."""
    return (
        f"## Verifier Verdict\n{verification.verdict}\n\n"
        f"## Issues\n{chr(10).join(verification.issues) or '(none)'}\n\n"
        f"## Missing citations\n{chr(10).join(verification.missing_citations) or '(none)'}\n\n"
        f"## Rewrite guidance\n{verification.rewrite_guidance or '(none)'}"
    )


class FinalizerAgent(BaseAgent):
    """Produces the final answer text."""

    temperature = 0.2
    max_tokens = 1400

    @property
    def role(self) -> AgentRole:
        return AgentRole.FINALIZER

    async def finalize(
        self,
        mode: AgentMode,
        message: str,
        draft: str,
        verification: VerificationVerdict,
        kb_context: str,
    ) -> str:
        """
        Produce the final answer.

        Returns:
            Final text, or "" if the backend returned nothing
        """
        user_prompt = "\n\n".join(part for part in (
            kb_context,
            f"## User Question\n{message}",
            f"## Draft Answer\n{draft}",
            format_verdict_block(verification),
        ) if part)

        final_text = await self._complete([
            {"role": "system", "content": FINALIZER_SYSTEM_PROMPT},
            {"role": "user", "content": user_prompt},
        ])

        logger.info(
            f"Finalizer ({mode.value}, verdict={verification.verdict}) "
            f"produced {len(final_text)} chars"
        )
        return final_text
