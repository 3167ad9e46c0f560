import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx

from calculator.rates import RateResolver
from calculator.server import build_session
from client.connection import build_client_session
from client.llm import BackendRouter
from protocol.transport import memory_pair


class FakeLLM:
    """Stands in for an LLM backend: fixed text, optional delay, optional error."""

    def __init__(self, text: str = "", *, error: Optional[Exception] = None, delay: float = 0.0, model: str = "fake"):
        self.text = text
        self.error = error
        self.delay = delay
        self.model = model
        self.calls: list = []

    async def complete(self, messages, temperature: float = 0.7, max_tokens=None) -> str:
        self.calls.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.text


def rate_api(rates: Optional[Dict[str, Any]] = None, *, result: str = "success", status: int = 200,
             calls: Optional[list] = None, body: Any = None) -> httpx.AsyncClient:
    """httpx client backed by a fake open.er-api.com; every request is appended to calls."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        if body is not None:
            return httpx.Response(status, content=body)
        base = request.url.path.rsplit("/", 1)[-1]
        payload: Dict[str, Any] = {"result": result, "base_code": base}
        if result == "success":
            payload["rates"] = rates if rates is not None else {}
        else:
            payload["error-type"] = "unsupported-code"
        return httpx.Response(status, json=payload)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def failing_api(exc_type, calls: Optional[list] = None) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        raise exc_type("simulated failure", request=request)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@asynccontextmanager
async def connected(
    backends: Optional[Dict[str, Any]] = None,
    *,
    hints=("openai", "ollama"),
    resolver: Optional[RateResolver] = None,
    sampling: bool = True,
    sampling_timeout: float = 5.0,
    on_log=None,
):
    """A calculator server and a sampling client joined in-process; yields (client, server)."""
    client_end, server_end = memory_pair()
    server = build_session(
        server_end,
        resolver=resolver or RateResolver(client=rate_api({"EUR": 0.9})),
        hints=list(hints),
        sampling_timeout=sampling_timeout,
    )
    router = BackendRouter(backends or {}) if sampling else None
    client = build_client_session(client_end, router, on_log)
    await server.start()
    try:
        await client.initialize()
        yield client, server
    finally:
        await client.close()
        await server.close()
