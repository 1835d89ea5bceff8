"""Tests for history handling and the specialist, verifier and finalizer agents."""

import json

import pytest

from campus_rag.agents.base_agent import format_history, normalize_history
from campus_rag.agents.finalizer_agent import FinalizerAgent
from campus_rag.agents.specialist_agent import SpecialistAgent, get_agent_prompt
from campus_rag.agents.verifier_agent import FALLBACK_GUIDANCE, VerifierAgent
from campus_rag.schemas.models import AgentMode, ConversationMessage, VerificationVerdict


class TestHistory:
    def test_keeps_last_window_of_valid_turns(self):
        history = [{"role": "user", "content": f"第{i}轮"} for i in range(15)]
        history.insert(3, {"role": "system", "content": "ignored"})
        history.insert(5, {"role": "assistant", "content": ""})

        turns = normalize_history(history, window=10)

        assert len(turns) == 10
        assert turns[-1]["content"] == "第14轮"
        assert all(turn["role"] in ("user", "assistant") for turn in turns)

    def test_clips_content(self):
        turns = normalize_history([{"role": "user", "content": "长" * 5000}], max_chars=4000)
        assert len(turns[0]["content"]) == 4000

    def test_accepts_models(self):
        turns = normalize_history([ConversationMessage(role="assistant", content="好的")])
        assert turns == [{"role": "assistant", "content": "好的"}]

    def test_none(self):
        assert normalize_history(None) == []
        assert format_history([]) == "(none)"

    def test_format(self):
        assert format_history([{"role": "user", "content": "你好"}]) == "USER: 你好"


class TestVerifierParsing:
    def test_pass(self):
        verdict = VerifierAgent.parse_verdict(json.dumps({
            "verdict": "pass", "issues": [], "missing_citations": [], "rewrite_guidance": "",
        }))

        assert verdict.passed
        assert verdict.parsed

    def test_revise_with_clipping(self):
        verdict = VerifierAgent.parse_verdict(json.dumps({
            "verdict": "revise",
            "issues": [f"issue {i}" for i in range(15)],
            "missing_citations": ["开放时间"],
            "rewrite_guidance": "g" * 1000,
        }))

        assert not verdict.passed
        assert len(verdict.issues) == 10
        assert verdict.missing_citations == ["开放时间"]
        assert len(verdict.rewrite_guidance) == 800

    def test_unknown_verdict_is_revise(self):
        assert VerifierAgent.parse_verdict('{"verdict": "looks fine"}').verdict == "revise"

    @pytest.mark.parametrize("raw", ["", "The draft looks good to me.", '{"issues": []}'])
    def test_unusable_output_forces_cautious_revise(self, raw):
        verdict = VerifierAgent.parse_verdict(raw)

        assert verdict.verdict == "revise"
        assert not verdict.parsed
        assert verdict.rewrite_guidance == FALLBACK_GUIDANCE


class TestSpecialistAgent:
    def test_personas_differ(self):
        prompts = {mode: get_agent_prompt(mode) for mode in AgentMode}
        assert len(set(prompts.values())) == 3

    @pytest.mark.asyncio
    async def test_prompt_contains_persona_context_and_history(self, online_settings, scripted_llm, gateway_factory):
        factory = scripted_llm({"specialist": "草稿 [KB1]"})
        agent = SpecialistAgent(gateway=gateway_factory(online_settings, factory), settings=online_settings)

        draft = await agent.draft(
            AgentMode.TUTOR,
            "开始吧",
            [{"role": "user", "content": "我想模拟面试"}],
            "## Knowledge Base Context\nKB1: 图书馆几点开门？",
        )

        assert draft == "草稿 [KB1]"
        messages = factory.model.calls[0][1]
        assert get_agent_prompt(AgentMode.TUTOR) in messages[0].content
        assert messages[1].content == "我想模拟面试"
        assert messages[-1].content.startswith("## Knowledge Base Context")
        assert messages[-1].content.endswith("## User Question\n开始吧")
        assert factory.created == [(0.2, 1200)]

    @pytest.mark.asyncio
    async def test_backend_failure_gives_empty_draft(self, online_settings, scripted_llm, gateway_factory):
        factory = scripted_llm({"specialist": RuntimeError("boom")})
        agent = SpecialistAgent(gateway=gateway_factory(online_settings, factory), settings=online_settings)

        assert await agent.draft(AgentMode.GENERAL, "你好", [], "") == ""


class TestFinalizerAgent:
    @pytest.mark.asyncio
    async def test_prompt_carries_verdict(self, online_settings, scripted_llm, gateway_factory):
        factory = scripted_llm({"finalizer": "最终回答"})
        agent = FinalizerAgent(gateway=gateway_factory(online_settings, factory), settings=online_settings)
        verdict = VerificationVerdict(
            verdict="revise",
            issues=["开放时间没有引用"],
            missing_citations=["早8点"],
            rewrite_guidance="为开放时间补充 [KB1]",
        )

        final = await agent.finalize(AgentMode.KNOWLEDGE, "图书馆几点开门", "早8点开门", verdict, "")

        assert final == "最终回答"
        prompt = factory.model.prompts("finalizer")[0]
        assert "## Draft Answer\n早8点开门" in prompt
        assert "## Verifier Verdict\nrevise" in prompt
        assert "## Rewrite guidance\n为开放时间补充 [KB1]" in prompt
        assert factory.created == [(0.2, 1400)]

    @pytest.mark.asyncio
    async def test_verifier_uses_deterministic_sampling(self, online_settings, scripted_llm, gateway_factory):
        factory = scripted_llm({"verifier": '{"verdict": "pass"}'})
        agent = VerifierAgent(gateway=gateway_factory(online_settings, factory), settings=online_settings)

        verdict = await agent.verify("草稿", "")

        assert verdict.passed
        assert factory.created == [(0.0, 600)]
        assert "## Knowledge Base Context\n(none)" in factory.model.prompts("verifier")[0]
