import os
from dotenv import load_dotenv

load_dotenv()


def _csv(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


class Settings:
    # ---------- exchange rates ----------
    EXCHANGE_API_BASE_URL = os.getenv("EXCHANGE_API_BASE_URL", "https://open.er-api.com/v6/latest")
    CONNECT_TIMEOUT_MS = int(os.getenv("CONNECT_TIMEOUT_MS", "20000"))
    READ_TIMEOUT_MS = int(os.getenv("READ_TIMEOUT_MS", "25000"))

    # ---------- sampling ----------
    MODEL_HINTS = _csv(os.getenv("MODEL_HINTS", "openai,ollama"))
    SAMPLING_TIMEOUT_SEC = float(os.getenv("SAMPLING_TIMEOUT_SEC", "120"))
    SAMPLING_MAX_TOKENS = int(os.getenv("SAMPLING_MAX_TOKENS", "1024"))

    # ---------- session ----------
    INIT_TIMEOUT_SEC = float(os.getenv("INIT_TIMEOUT_SEC", "30"))
    CALL_TIMEOUT_SEC = float(os.getenv("CALL_TIMEOUT_SEC", "300"))
    MCP_SERVER_COMMAND = os.getenv("MCP_SERVER_COMMAND", "")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # ---------- LLM backends (client side) ----------
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
    OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434/v1")
    OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.2")
    GITHUB_TOKEN = os.getenv("GITHUB_TOKEN", "")
    GITHUB_MODELS_BASE_URL = os.getenv("GITHUB_MODELS_BASE_URL", "https://models.inference.ai.azure.com")
    GITHUB_MODEL = os.getenv("GITHUB_MODEL", "gpt-4o-mini")

settings = Settings()
