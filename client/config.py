from dataclasses import dataclass
from typing import Dict

from config.settings import settings


# ---------- LLM backend ----------
@dataclass
class BackendConfig:
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    api_base: str | None = None     # None -> the OpenAI default endpoint
    api_key: str = ""


def backends_from_settings() -> Dict[str, BackendConfig]:
    """Model hint -> backend. Ollama and GitHub Models both speak the OpenAI chat API."""
    backends = {
        "openai": BackendConfig("openai", settings.OPENAI_MODEL, None, settings.OPENAI_API_KEY),
        # Ollama ignores the key but the client insists on one
        "ollama": BackendConfig("ollama", settings.OLLAMA_MODEL, settings.OLLAMA_BASE_URL, "ollama"),
    }
    if settings.GITHUB_TOKEN:
        backends["github"] = BackendConfig(
            "github", settings.GITHUB_MODEL, settings.GITHUB_MODELS_BASE_URL, settings.GITHUB_TOKEN
        )
    return backends
