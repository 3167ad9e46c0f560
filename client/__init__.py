from .config import BackendConfig, backends_from_settings
from .connection import build_client_session, open_session
from .llm import LLM, BackendRouter
