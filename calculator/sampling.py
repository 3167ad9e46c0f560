import asyncio
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

import structlog

from protocol.schema import CAPABILITY_UNAVAILABLE, Failure, SamplingOutcome, SamplingRequest
from protocol.session import Session, SessionState
from .arithmetic import CalculationResult

log = structlog.get_logger(__name__)

SYSTEM_PROMPT = (
    "You are a creative mathematics teacher who explains calculations "
    "in an engaging and imaginative way!"
)

HINT_LABELS = {
    "openai": "OpenAI",
    "ollama": "Ollama",
    "github": "GitHub Models",
}


def hint_label(hint: str) -> str:
    return HINT_LABELS.get(hint.lower(), hint)


def build_user_prompt(result: CalculationResult, exchange_note: Optional[str] = None) -> str:
    lines = [
        "Please create a creative and educational explanation for this calculation. "
        "Use metaphors, storytelling, or real-world examples to make it interesting:",
        "",
        f"Calculation: {result.equation}",
        f"Operation: {result.operation}",
    ]
    if exchange_note:
        lines.append(f"Exchange rate: {exchange_note}")
    lines += ["", "Make it engaging and educational. Use markdown formatting for better presentation."]
    return "\n".join(lines)


@dataclass
class CombinedArtifact:
    result: CalculationResult
    sections: List[Tuple[str, SamplingOutcome]] = field(default_factory=list)
    exchange_note: Optional[str] = None

    @property
    def hints(self) -> List[str]:
        return [hint for hint, _ in self.sections]

    def render(self) -> str:
        parts = [
            "# Calculation Result\n",
            f"**{self.result.equation}**\n",
        ]
        if self.exchange_note:
            parts.append(f"**Exchange Rate:** {self.exchange_note}\n")
        for hint, outcome in self.sections:
            label = hint_label(hint)
            body = outcome.text if outcome.ok else f"{label} explanation unavailable: {outcome.reason}"
            parts += ["---\n", f"## {label} Creative Explanation\n", f"{body}\n"]
        parts += ["---\n", "*This response was generated using MCP Sampling with multiple AI providers.*"]
        return "\n".join(parts)


class SamplingOrchestrator:
    """Fans one explanation prompt out to every configured model hint.

    Each hint is dispatched as its own task over the shared session; a failing
    or slow backend only affects its own section. Sections come back in hint
    order no matter which backend answers first.
    """

    def __init__(
        self,
        session: Session,
        hints: Iterable[str],
        *,
        timeout: Optional[float] = None,
        max_tokens: int = 1024,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self.session = session
        self.hints: Tuple[str, ...] = tuple(dict.fromkeys(h for h in hints if h))
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.system_prompt = system_prompt

    def template(self, result: CalculationResult, exchange_note: Optional[str] = None) -> SamplingRequest:
        return SamplingRequest(
            system_prompt=self.system_prompt,
            user_prompt=build_user_prompt(result, exchange_note),
            model_hint="",
            max_tokens=self.max_tokens,
        )

    async def explain(
        self,
        result: CalculationResult,
        hints: Optional[Sequence[str]] = None,
        exchange_note: Optional[str] = None,
    ) -> CombinedArtifact:
        hints = tuple(dict.fromkeys(h for h in hints if h)) if hints is not None else self.hints
        self.session.notify_logging("info", "Start sampling for calculation explanation")

        if self.session.state is SessionState.INITIALIZED and not self.session.sampling_supported:
            log.warning("sampling_capability_missing", peer=self.session.peer_info)
            outcomes: List[SamplingOutcome] = [Failure(CAPABILITY_UNAVAILABLE) for _ in hints]
        else:
            template = self.template(result, exchange_note)
            outcomes = list(await asyncio.gather(*(self._sample(template.with_hint(h)) for h in hints)))

        self.session.notify_logging("info", "Finish sampling for calculation explanation")

        artifact = CombinedArtifact(result, list(zip(hints, outcomes)), exchange_note)
        log.info(
            "generated_explanations",
            equation=result.equation,
            succeeded=[h for h, o in artifact.sections if o.ok],
            failed=[h for h, o in artifact.sections if not o.ok],
        )
        return artifact

    async def _sample(self, request: SamplingRequest) -> SamplingOutcome:
        try:
            outcome = await self.session.create_message(request, timeout=self.timeout)
        except Exception as e:
            outcome = Failure(str(e) or type(e).__name__)
        if not outcome.ok:
            log.warning("sampling_failed", hint=request.model_hint, reason=outcome.reason)
        return outcome
