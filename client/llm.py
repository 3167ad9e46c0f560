from typing import Any, Dict, List, Optional

import structlog
from openai import AsyncOpenAI

from protocol.errors import JSONRPCError
from protocol.schema import SamplingRequest
from .config import BackendConfig, backends_from_settings

log = structlog.get_logger(__name__)


class LLM:
    """Lightweight wrapper around OpenAI-compatible Chat Completions (v1+)."""
    def __init__(self, cfg: BackendConfig):
        self.cfg = cfg
        self.model = cfg.model
        self._async = (
            AsyncOpenAI(api_key=cfg.api_key, base_url=cfg.api_base)
            if cfg.api_key else None
        )

    async def complete(self, messages: List[Dict], temperature: float = 0.7, max_tokens: Optional[int] = None) -> str:
        if not self._async:
            raise RuntimeError(
                f"{self.cfg.provider}: API key not configured (set it in .env)"
            )
        extra = {"max_tokens": max_tokens} if max_tokens else {}
        resp = await self._async.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            **extra,
        )
        return (resp.choices[0].message.content or "").strip()


class BackendRouter:
    """Answers sampling/createMessage by routing on the first model hint."""

    def __init__(self, backends: Optional[Dict[str, Any]] = None, default: Optional[str] = None):
        backends = backends_from_settings() if backends is None else backends
        # accept ready-made LLM-like objects (anything with async complete()) as well as configs
        self.backends = {k: (LLM(v) if isinstance(v, BackendConfig) else v) for k, v in backends.items()}
        self.default = default

    def pick(self, hint: str):
        if hint in self.backends:
            return self.backends[hint]
        for key, llm in self.backends.items():
            if hint and hint in key:
                return llm
        if self.default and self.default in self.backends:
            return self.backends[self.default]
        raise LookupError(f"No LLM backend configured for model hint '{hint}'")

    async def handle_create_message(self, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            req = SamplingRequest.from_params(params)
        except ValueError as e:
            raise JSONRPCError(str(e)) from e
        llm = self.pick(req.model_hint)
        log.info("sampling_request", hint=req.model_hint, model=getattr(llm, "model", None))
        messages = []
        if req.system_prompt:
            messages.append({"role": "system", "content": req.system_prompt})
        messages.append({"role": "user", "content": req.user_prompt})
        text = await llm.complete(messages, max_tokens=req.max_tokens)
        return {
            "role": "assistant",
            "content": {"type": "text", "text": text},
            "model": getattr(llm, "model", req.model_hint),
            "stopReason": "endTurn",
        }
