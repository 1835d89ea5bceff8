"""
Router Agent
============

Decides which conversation mode handles a message and whether it needs to
be grounded in the campus knowledge base.

TWO STRATEGIES, ONE OUTPUT SHAPE (RoutingDecision):
- HeuristicRouter: keyword matching over the message and recent history.
  No external call, always available.
- PlannerAgent: one LLM call that returns a JSON plan, given the heuristic
  decision as a hint.

QueryRouter runs the heuristic first and lets the planner override it when
a chat backend is configured and the planner's JSON is usable. Anything
else (non-JSON, unknown agent, empty reply) keeps the heuristic decision,
so a routing decision always exists.

ROUTING LOGIC:
┌────────────────────────────────────┬───────────┬──────────────┐
│ Message                            │ Mode      │ Retrieval    │
├────────────────────────────────────┼───────────┼──────────────┤
│ Interview / practice / role play   │ tutor     │ NO           │
│ Campus facility or process         │ knowledge │ YES          │
│ Follow-up inside a tutor session   │ tutor     │ NO           │
│ Generic how/where/when question    │ knowledge │ YES          │
│ Greeting / small talk / other      │ general   │ NO           │
└────────────────────────────────────┴───────────┴──────────────┘
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from campus_rag.agents.base_agent import BaseAgent, HistoryItem, format_history, normalize_history
from campus_rag.agents.structured_output import Fallback, Parsed, extract_first_json_object
from campus_rag.config import Settings, get_settings
from campus_rag.schemas.models import AgentMode, AgentRole, RoutingDecision
from campus_rag.services.llm_gateway import LLMGateway
from campus_rag.services.rag_service import needs_retrieval

logger = logging.getLogger(__name__)


TUTOR_KEYWORDS = (
    "面试", "模拟", "陪练", "练习", "考核", "角色扮演", "扮演", "答辩",
    "口语", "测评", "评测", "打分", "interview", "practice", "mock", "role play", "roleplay",
)

CAMPUS_TOPIC_KEYWORDS = (
    "图书馆", "食堂", "宿舍", "教室", "体育馆", "校医院", "校园", "学校", "学院",
    "奖学金", "助学金", "贷款", "补助",
    "选课", "退课", "成绩", "绩点", "挂科", "补考", "重修",
    "报到", "入学", "毕业", "转专业", "休学", "退学",
    "校园卡", "充值", "挂失", "快递", "wifi", "网络", "打印",
    "医保", "报销", "就诊",
)

GREETING_KEYWORDS = ("你好", "您好", "嗨", "谢谢", "再见", "早上好", "晚上好")

# English greetings are matched as whole words so "this" or "which" do not count.
ENGLISH_GREETING_PATTERN = re.compile(r"\b(?:hello|hi|hey|thanks)\b")

# How many recent user turns count as "the current session" for tutor mode.
TUTOR_SESSION_TURNS = 3


def _contains_any(text: str, keywords: Sequence[str]) -> bool:
    return any(keyword in text for keyword in keywords)


class HeuristicRouter:
    """
    Keyword-based routing. Fast and always available.

    Usage:
        decision = HeuristicRouter().route("图书馆几点开门")
        # RoutingDecision(agent=knowledge, needs_retrieval=True, ...)
    """

    def route(
        self,
        message: str,
        history: Optional[Sequence[HistoryItem]] = None,
    ) -> RoutingDecision:
        text = (message or "").lower()

        if _contains_any(text, TUTOR_KEYWORDS):
            return RoutingDecision(
                agent=AgentMode.TUTOR,
                needs_retrieval=False,
                confidence=0.85,
                reason="Practice or interview request",
            )

        if _contains_any(text, CAMPUS_TOPIC_KEYWORDS):
            return RoutingDecision(
                agent=AgentMode.KNOWLEDGE,
                needs_retrieval=True,
                confidence=0.85,
                reason="Mentions a campus facility or process",
            )

        if self._in_tutor_session(history):
            return RoutingDecision(
                agent=AgentMode.TUTOR,
                needs_retrieval=False,
                confidence=0.6,
                reason="Continuing a practice session",
            )

        if needs_retrieval(text):
            return RoutingDecision(
                agent=AgentMode.KNOWLEDGE,
                needs_retrieval=True,
                confidence=0.6,
                reason="Procedural question, may concern campus rules",
            )

        if _contains_any(text, GREETING_KEYWORDS) or ENGLISH_GREETING_PATTERN.search(text):
            return RoutingDecision(
                agent=AgentMode.GENERAL,
                needs_retrieval=False,
                confidence=0.9,
                reason="Greeting or small talk",
            )

        return RoutingDecision(
            agent=AgentMode.GENERAL,
            needs_retrieval=False,
            confidence=0.5,
            reason="No campus or practice signal",
        )

    @staticmethod
    def _in_tutor_session(history: Optional[Sequence[HistoryItem]]) -> bool:
        user_turns = [
            turn["content"].lower()
            for turn in normalize_history(history)
            if turn["role"] == "user"
        ]
        return any(
            _contains_any(content, TUTOR_KEYWORDS)
            for content in user_turns[-TUTOR_SESSION_TURNS:]
        )


PLANNER_SYSTEM_PROMPT = """You are "PlannerAgent".
You route the user's request to the best specialist agent and decide whether retrieval is needed.

Return ONLY valid JSON:
{
  "agent": "knowledge" | "tutor" | "general",
  "needsRAG": boolean,
  "confidence": number,
  "plan": string[],
  "notes": string
}

Rules:
- agent="knowledge" for campus policy/process/location/schedule questions.
- agent="tutor" for practice, interview, evaluation, role-play training.
- agent="general" for chit-chat or non-campus topics.
- needsRAG should be true only when agent="knowledge" and the answer depends on campus-specific facts.
- confidence is 0..1."""

PLANNER_USER_PROMPT = """User message:
{message}

Recent conversation:
{history}

Heuristic routing suggestion:
{hint}"""


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


class PlannerAgent(BaseAgent):
    """
    LLM-backed routing.

    The planner's reply is untrusted text: parse_plan returns Parsed with a
    RoutingDecision or Fallback with the reason it was rejected.
    """

    temperature = 0.1
    max_tokens = 500

    @property
    def role(self) -> AgentRole:
        return AgentRole.PLANNER

    async def request_plan(
        self,
        message: str,
        history: Optional[Sequence[HistoryItem]],
        hint: RoutingDecision,
    ) -> str:
        """Ask the backend for a plan. Returns the raw reply ("" on failure)."""
        user_prompt = PLANNER_USER_PROMPT.format(
            message=message,
            history=format_history(self._history(history)),
            hint=json.dumps(
                hint.model_dump(mode="json", by_alias=True, include={"agent", "needs_retrieval", "confidence", "reason"}),
                ensure_ascii=False,
            ),
        )
        return await self._complete([
            {"role": "system", "content": PLANNER_SYSTEM_PROMPT},
            {"role": "user", "content": user_prompt},
        ])

    @staticmethod
    def parse_plan(raw: str, hint: RoutingDecision):
        """
        Turn a planner reply into a RoutingDecision.

        Returns:
            Parsed(value=RoutingDecision) or Fallback(reason)
        """
        outcome = extract_first_json_object(raw)
        if isinstance(outcome, Fallback):
            return outcome

        data = outcome.value
        try:
            agent = AgentMode(data.get("agent"))
        except ValueError:
            return Fallback(f"unknown agent {data.get('agent')!r}")

        # json.loads accepts NaN and Infinity
        confidence = data.get("confidence")
        if (
            isinstance(confidence, (int, float))
            and not isinstance(confidence, bool)
            and math.isfinite(confidence)
        ):
            confidence = min(max(float(confidence), 0.0), 1.0)
        else:
            confidence = hint.confidence

        plan = data.get("plan")
        plan = [str(step) for step in plan][:8] if isinstance(plan, list) else []

        notes = str(data.get("notes") or "")[:500]

        try:
            decision = RoutingDecision(
                agent=agent,
                needs_retrieval=_as_bool(data.get("needsRAG")),
                confidence=confidence,
                reason=notes or "PlannerAgent routing",
                plan=plan,
                strategy="planner",
            )
        except ValidationError as e:
            return Fallback(f"invalid plan: {e}")

        return Parsed(decision)

    async def plan(
        self,
        message: str,
        history: Optional[Sequence[HistoryItem]],
        hint: RoutingDecision,
    ):
        """request_plan followed by parse_plan."""
        return self.parse_plan(await self.request_plan(message, history, hint), hint)


@dataclass
class RouteOutcome:
    """The decision plus what the planner said, for tracing."""
    decision: RoutingDecision
    planner_raw: Optional[str] = None
    fallback_reason: Optional[str] = None


class QueryRouter:
    """
    Combines both strategies.

    Usage:
        router = QueryRouter(gateway=gateway)
        outcome = await router.route("图书馆几点开门", history=[])
        outcome.decision.agent  # AgentMode.KNOWLEDGE
    """

    def __init__(
        self,
        gateway: Optional[LLMGateway] = None,
        settings: Optional[Settings] = None,
        heuristic: Optional[HeuristicRouter] = None,
        planner: Optional[PlannerAgent] = None,
    ):
        self._settings = settings or get_settings()
        self._gateway = gateway or LLMGateway(settings=self._settings)
        self._heuristic = heuristic or HeuristicRouter()
        self._planner = planner or PlannerAgent(gateway=self._gateway, settings=self._settings)

    async def route(
        self,
        message: str,
        history: Optional[Sequence[HistoryItem]] = None,
    ) -> RouteOutcome:
        """
        Route a message.

        The planner is only consulted when a chat credential is configured.
        """
        base = self._heuristic.route(message, history)

        if not self._gateway.has_credential:
            return RouteOutcome(decision=base)

        raw = await self._planner.request_plan(message, history, base)
        outcome = self._planner.parse_plan(raw, base)

        if isinstance(outcome, Parsed):
            decision = outcome.value
            logger.info(
                f"Planner routed to {decision.agent.value} "
                f"(needsRAG={decision.needs_retrieval}, confidence={decision.confidence:.2f})"
            )
            return RouteOutcome(decision=decision, planner_raw=raw)

        logger.warning(f"Planner output unusable ({outcome.reason}), using heuristic routing")
        return RouteOutcome(decision=base, planner_raw=raw, fallback_reason=outcome.reason)
