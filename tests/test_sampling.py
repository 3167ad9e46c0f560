"""Sampling orchestrator: per-hint isolation, ordering, rendering."""
import asyncio
import time

import pytest

from calculator.arithmetic import calculate
from calculator.sampling import CombinedArtifact, SamplingOrchestrator, build_user_prompt, hint_label
from protocol.schema import CAPABILITY_UNAVAILABLE, Failure, Success
from protocol.session import Session
from protocol.transport import memory_pair
from tests.helpers import FakeLLM, connected


def _sections(markdown: str) -> list[str]:
    return [line[3:] for line in markdown.splitlines() if line.startswith("## ")]


@pytest.mark.asyncio
async def test_one_backend_failing_does_not_affect_the_other():
    backends = {"openai": FakeLLM("Fifteen apples meet twenty-seven oranges..."),
                "ollama": FakeLLM(error=RuntimeError("connection refused"))}
    async with connected(backends) as (_, server):
        orch = SamplingOrchestrator(server, ["openai", "ollama"], timeout=2.0)
        artifact = await orch.explain(calculate(15.0, 27.0, "add"))

    assert artifact.hints == ["openai", "ollama"]
    openai, ollama = (o for _, o in artifact.sections)
    assert openai == Success("Fifteen apples meet twenty-seven oranges...", "fake")
    assert isinstance(ollama, Failure) and "connection refused" in ollama.reason

    text = artifact.render()
    assert _sections(text) == ["OpenAI Creative Explanation", "Ollama Creative Explanation"]
    assert "Fifteen apples meet twenty-seven oranges..." in text
    assert "Ollama explanation unavailable:" in text
    assert "**15.0 + 27.0 = 42.0**" in text


@pytest.mark.asyncio
async def test_order_follows_hints_not_latency():
    backends = {"openai": FakeLLM("A", delay=0.3), "ollama": FakeLLM("B"), "github": FakeLLM("C", delay=0.1)}
    async with connected(backends) as (_, server):
        orch = SamplingOrchestrator(server, ["openai", "ollama", "github"])
        artifact = await orch.explain(calculate(6.0, 3.0, "divide"))
    assert [(h, o.text) for h, o in artifact.sections] == [("openai", "A"), ("ollama", "B"), ("github", "C")]
    assert _sections(artifact.render()) == [
        "OpenAI Creative Explanation", "Ollama Creative Explanation", "GitHub Models Creative Explanation",
    ]


@pytest.mark.asyncio
async def test_backends_are_called_concurrently():
    backends = {"openai": FakeLLM("A", delay=0.4), "ollama": FakeLLM("B", delay=0.4)}
    async with connected(backends) as (_, server):
        orch = SamplingOrchestrator(server, ["openai", "ollama"])
        started = time.perf_counter()
        await orch.explain(calculate(1.0, 1.0, "add"))
        assert time.perf_counter() - started < 0.75


@pytest.mark.asyncio
async def test_timeout_only_fails_the_slow_hint():
    backends = {"openai": FakeLLM("quick"), "ollama": FakeLLM("too slow", delay=2.0)}
    async with connected(backends) as (_, server):
        orch = SamplingOrchestrator(server, ["openai", "ollama"], timeout=0.1)
        artifact = await orch.explain(calculate(2.0, 2.0, "multiply"))
    assert artifact.sections == [("openai", Success("quick", "fake")), ("ollama", Failure("timeout"))]


@pytest.mark.asyncio
async def test_every_hint_gets_a_section_even_when_all_fail():
    hints = ["openai", "ollama", "github", "mistral"]
    async with connected({}) as (_, server):  # router knows no backend at all
        artifact = await SamplingOrchestrator(server, hints).explain(calculate(1.0, 2.0, "subtract"))
    assert artifact.hints == hints
    assert all(not o.ok for _, o in artifact.sections)
    assert len(_sections(artifact.render())) == len(hints)


@pytest.mark.asyncio
async def test_missing_capability_yields_unavailability_per_hint():
    async with connected(sampling=False) as (_, server):
        artifact = await SamplingOrchestrator(server, ["openai", "ollama"]).explain(calculate(1.0, 2.0, "add"))
    assert artifact.sections == [("openai", Failure(CAPABILITY_UNAVAILABLE)), ("ollama", Failure(CAPABILITY_UNAVAILABLE))]
    assert "OpenAI explanation unavailable: capability not available" in artifact.render()


@pytest.mark.asyncio
async def test_uninitialized_session_is_isolated_per_hint():
    _, server_end = memory_pair()
    session = Session(server_end, name="srv")
    artifact = await SamplingOrchestrator(session, ["openai", "ollama"]).explain(calculate(1.0, 2.0, "add"))
    assert [o.reason for _, o in artifact.sections] == ["Session not initialized"] * 2


@pytest.mark.asyncio
async def test_progress_notifications_bracket_the_dispatch():
    seen = []
    async with connected({"openai": FakeLLM("x")}, on_log=seen.append) as (_, server):
        await SamplingOrchestrator(server, ["openai"]).explain(calculate(1.0, 2.0, "add"))
        await asyncio.sleep(0.05)
    assert [n["data"] for n in seen] == [
        "Start sampling for calculation explanation",
        "Finish sampling for calculation explanation",
    ]


@pytest.mark.asyncio
async def test_prompt_is_shared_and_only_the_hint_varies():
    openai, ollama = FakeLLM("a"), FakeLLM("b")
    async with connected({"openai": openai, "ollama": ollama}) as (_, server):
        await SamplingOrchestrator(server, ["openai", "ollama"]).explain(
            calculate(15.0, 27.0, "add"), exchange_note="1 USD = 0.9000 EUR")
    assert openai.calls == ollama.calls
    system, user = openai.calls[0]
    assert system["role"] == "system" and "creative mathematics teacher" in system["content"]
    assert "Calculation: 15.0 + 27.0 = 42.0" in user["content"]
    assert "Exchange rate: 1 USD = 0.9000 EUR" in user["content"]


def test_duplicate_hints_are_collapsed():
    _, end = memory_pair()
    orch = SamplingOrchestrator(Session(end, name="srv"), ["openai", "ollama", "openai", ""])
    assert orch.hints == ("openai", "ollama")


def test_user_prompt_is_deterministic():
    res = calculate(5.0, 2.0, "divide")
    assert build_user_prompt(res) == build_user_prompt(res)
    assert "Operation: divide" in build_user_prompt(res)
    assert "Exchange rate" not in build_user_prompt(res)


def test_render_with_exchange_note_and_unknown_label():
    artifact = CombinedArtifact(
        calculate(2.0, 2.0, "add"),
        [("mistral", Success("four")), ("openai", Failure("boom"))],
        exchange_note="1 USD = 1 USD (same currency)",
    )
    text = artifact.render()
    assert text.startswith("# Calculation Result")
    assert "**Exchange Rate:** 1 USD = 1 USD (same currency)" in text
    assert _sections(text) == ["mistral Creative Explanation", "OpenAI Creative Explanation"]
    assert "OpenAI explanation unavailable: boom" in text
    assert hint_label("GitHub") == "GitHub Models"
