import sys
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Optional

import structlog

from config.settings import settings
from protocol.schema import Capabilities
from protocol.session import Session
from protocol.transport import ProcessTransport, Transport
from .llm import BackendRouter

log = structlog.get_logger(__name__)

CLIENT_NAME = "mcp-sampling-client"


def server_command() -> list[str]:
    if settings.MCP_SERVER_COMMAND:
        return settings.MCP_SERVER_COMMAND.split()
    return [sys.executable, "-m", "calculator.server"]


def build_client_session(
    transport: Transport,
    router: Optional[BackendRouter] = None,
    on_log: Optional[Callable[[Dict[str, Any]], Any]] = None,
) -> Session:
    """Sampling is advertised only when a router is there to answer it."""
    session = Session(
        transport,
        name=CLIENT_NAME,
        capabilities=Capabilities(sampling=router is not None),
        init_timeout=settings.INIT_TIMEOUT_SEC,
        call_timeout=settings.CALL_TIMEOUT_SEC,
    )
    if router is not None:
        session.on_request("sampling/createMessage", router.handle_create_message)
    if on_log is not None:
        session.on_notification("notifications/message", on_log)
    return session


@asynccontextmanager
async def open_session(
    command: Optional[list[str]] = None,
    *,
    router: Optional[BackendRouter] = None,
    on_log: Optional[Callable[[Dict[str, Any]], Any]] = None,
):
    transport = ProcessTransport(command or server_command(), start_timeout=settings.INIT_TIMEOUT_SEC)
    await transport.start()
    session = build_client_session(transport, router, on_log)
    try:
        await session.initialize()
        yield session
    finally:
        await session.close()
