"""
Specialist Agent
================

Writes the first draft of the answer in the persona of the routed mode.

KEY PRINCIPLE: GROUNDING
- Campus-specific facts must come from the knowledge base context
- Facts taken from it are cited with their labels [KB1], [KB2], ...
- Without support, the draft says it is unsure and points to the
  official channel instead of inventing rules, places or times
"""

import logging
from typing import Optional, Sequence

from campus_rag.agents.base_agent import BaseAgent, HistoryItem
from campus_rag.schemas.models import AgentMode, AgentRole

logger = logging.getLogger(__name__)


AGENT_PROMPTS = {
    AgentMode.KNOWLEDGE: """你是"小云"，一名熟悉本校各项规章制度与服务的校园助手。

你的职责：
- 解答关于图书馆、食堂、宿舍、教务、资助、校园卡、医疗等校园事务的问题
- 回答要准确、简洁，流程类问题按步骤说明
- 涉及时间、地点、条件等具体信息时，以知识库资料为准""",

    AgentMode.TUTOR: """你是"小云"，一名耐心而专业的 AI 导师。

你的职责：
- 根据用户选择的场景（面试、答辩、口语、考核等）进入角色
- 每次只提出一个问题，等待用户作答
- 用户作答后给出【评测建议】：优点、不足与改进方向""",

    AgentMode.GENERAL: """你是"小云"，一名友好、活泼的校园生活伙伴。

你的职责：
- 与同学轻松聊天，给予鼓励和陪伴
- 非校园话题可以正常回答
- 遇到具体的校园规定问题，提醒用户以学校官方信息为准""",
}


def get_agent_prompt(mode: AgentMode) -> str:
    """Persona system prompt for a conversation mode."""
    return AGENT_PROMPTS.get(mode, AGENT_PROMPTS[AgentMode.GENERAL])


SPECIALIST_RULES = """你现在处于多 Agent 协作系统的 "SpecialistAgent" 阶段。

硬性要求：
1) 若使用了知识库上下文，请用 [KB1]/[KB2]/... 为关键事实做引用。
2) 不要编造校园具体规定、流程、地点、时间；没有依据就说不确定，并给出官方确认渠道建议。
3) 输出为中文，结构清晰，优先使用步骤/要点列表。"""


class SpecialistAgent(BaseAgent):
    """Drafts the answer for the routed mode."""

    temperature = 0.2
    max_tokens = 1200

    @property
    def role(self) -> AgentRole:
        return AgentRole.SPECIALIST

    async def draft(
        self,
        mode: AgentMode,
        message: str,
        history: Optional[Sequence[HistoryItem]],
        kb_context: str,
    ) -> str:
        """
        Produce a draft answer.

        Args:
            mode: Routed conversation mode (selects the persona)
            message: The user's message
            history: Prior turns
            kb_context: Context block from the retrieval stage, may be empty

        Returns:
            Draft text, or "" if the backend returned nothing
        """
        system_prompt = f"{get_agent_prompt(mode)}\n\n{SPECIALIST_RULES}"

        user_prompt = "\n\n".join(
            part for part in (kb_context, f"## User Question\n{message}") if part
        )

        messages = [
            {"role": "system", "content": system_prompt},
            *self._history(history),
            {"role": "user", "content": user_prompt},
        ]

        draft = await self._complete(messages)
        logger.info(f"Specialist ({mode.value}) drafted {len(draft)} chars")
        return draft
