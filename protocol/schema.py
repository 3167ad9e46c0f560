from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Union

PROTOCOL_VERSION = "2024-11-05"
CAPABILITY_UNAVAILABLE = "capability not available"

LogLevel = Literal["debug", "info", "notice", "warning", "error", "critical", "alert", "emergency"]


@dataclass(frozen=True)
class Capabilities:
    sampling: bool = False
    tools: bool = False
    logging: bool = False

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.sampling:
            out["sampling"] = {}
        if self.tools:
            out["tools"] = {}
        if self.logging:
            out["logging"] = {}
        return out

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "Capabilities":
        # MCP advertises a capability by the presence of its key, even as {}
        raw = raw or {}
        return cls(
            sampling=raw.get("sampling") is not None,
            tools=raw.get("tools") is not None,
            logging=raw.get("logging") is not None,
        )


@dataclass(frozen=True)
class SamplingRequest:
    system_prompt: str
    user_prompt: str
    model_hint: str
    max_tokens: int = 1024

    def with_hint(self, hint: str) -> "SamplingRequest":
        return SamplingRequest(self.system_prompt, self.user_prompt, hint, self.max_tokens)

    def to_params(self) -> Dict[str, Any]:
        return {
            "messages": [{"role": "user", "content": {"type": "text", "text": self.user_prompt}}],
            "systemPrompt": self.system_prompt,
            "modelPreferences": {"hints": [{"name": self.model_hint}]},
            "maxTokens": self.max_tokens,
        }

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "SamplingRequest":
        messages = params.get("messages") or []
        if not messages:
            raise ValueError("sampling request has no messages")
        content = messages[0].get("content") or {}
        hints = (params.get("modelPreferences") or {}).get("hints") or []
        return cls(
            system_prompt=params.get("systemPrompt") or "",
            user_prompt=content.get("text", "") if isinstance(content, dict) else str(content),
            model_hint=hints[0].get("name", "") if hints else "",
            max_tokens=int(params.get("maxTokens") or 1024),
        )


@dataclass(frozen=True)
class Success:
    text: str
    model: Optional[str] = None

    ok = True


@dataclass(frozen=True)
class Failure:
    reason: str

    ok = False


SamplingOutcome = Union[Success, Failure]


def outcome_from_result(result: Optional[Dict[str, Any]]) -> SamplingOutcome:
    content = (result or {}).get("content") or {}
    if not isinstance(content, dict) or content.get("type") != "text":
        return Failure("response did not contain text content")
    return Success(content.get("text", ""), (result or {}).get("model"))


@dataclass
class ToolResult:
    text: str
    is_error: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"content": [{"type": "text", "text": self.text}], "isError": self.is_error}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ToolResult":
        parts = [c.get("text", "") for c in raw.get("content", []) if c.get("type") == "text"]
        return cls(text="\n".join(parts), is_error=bool(raw.get("isError")))
