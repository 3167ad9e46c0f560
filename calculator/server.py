# calculator/server.py
# python -m calculator.server: MCP calculator on stdio, logs go to stderr.
import asyncio
import sys
from typing import Optional

import structlog

from config.logsetup import setup_logging
from config.settings import settings
from protocol.schema import Capabilities
from protocol.session import Session
from protocol.transport import StdioTransport, Transport
from .rates import RateResolver
from .tools import Toolbox

log = structlog.get_logger(__name__)

SERVER_NAME = "mcp-sampling-calculator"
SERVER_VERSION = "0.1.0"


def build_session(
    transport: Transport,
    *,
    resolver: Optional[RateResolver] = None,
    hints=None,
    sampling_timeout: Optional[float] = None,
) -> Session:
    session = Session(
        transport,
        name=SERVER_NAME,
        version=SERVER_VERSION,
        capabilities=Capabilities(tools=True, logging=True),
        call_timeout=settings.CALL_TIMEOUT_SEC,
    )
    Toolbox(
        session,
        resolver or RateResolver.from_settings(),
        settings.MODEL_HINTS if hints is None else hints,
        sampling_timeout=settings.SAMPLING_TIMEOUT_SEC if sampling_timeout is None else sampling_timeout,
        max_tokens=settings.SAMPLING_MAX_TOKENS,
    ).bind()
    return session


async def serve(transport: Optional[Transport] = None, **kwargs) -> None:
    session = build_session(transport or StdioTransport(), **kwargs)
    await session.start()
    log.info("server_ready", name=SERVER_NAME, hints=settings.MODEL_HINTS)
    try:
        await session.wait_closed()
    finally:
        await session.close()


def main():
    setup_logging(stream=sys.stderr)
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
