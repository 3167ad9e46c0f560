import asyncio
import inspect
import uuid
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog

from .errors import (
    INTERNAL_ERROR,
    METHOD_NOT_FOUND,
    SERVER_ERROR,
    JSONRPCError,
    NotInitialized,
    SessionClosed,
    SessionError,
)
from .schema import (
    CAPABILITY_UNAVAILABLE,
    PROTOCOL_VERSION,
    Capabilities,
    Failure,
    SamplingOutcome,
    SamplingRequest,
    outcome_from_result,
)
from .transport import Transport

log = structlog.get_logger(__name__)

RequestHandler = Callable[[Dict[str, Any]], Awaitable[Any]]
NotificationHandler = Callable[[Dict[str, Any]], Any]


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    CLOSED = "closed"


class Session:
    """One end of a bidirectional JSON-RPC channel.

    Both peers use this class. The client calls initialize(); the server side
    reaches INITIALIZED when it answers the client's initialize request. After
    that either side may issue requests; replies are matched to callers by id,
    so any number of requests (e.g. one create_message per model hint) can be
    in flight at once.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        name: str,
        version: str = "0.1.0",
        capabilities: Optional[Capabilities] = None,
        init_timeout: float = 30.0,
        call_timeout: float = 45.0,
    ):
        self.transport = transport
        self.info = {"name": name, "version": version}
        self.capabilities = capabilities or Capabilities()
        self.init_timeout = init_timeout
        self.call_timeout = call_timeout

        self.state = SessionState.UNINITIALIZED
        self.peer_capabilities = Capabilities()
        self.peer_info: Dict[str, Any] = {}

        self.pending: Dict[str, asyncio.Future] = {}
        self.reader_task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()
        self._closed = asyncio.Event()
        self._shut_down = False

        self._request_handlers: Dict[str, RequestHandler] = {
            "initialize": self._on_initialize,
            "ping": self._on_ping,
        }
        self._notification_handlers: Dict[str, NotificationHandler] = {}

    # ------------------------------------------------------------------ setup

    def on_request(self, method: str, handler: RequestHandler) -> None:
        self._request_handlers[method] = handler

    def on_notification(self, method: str, handler: NotificationHandler) -> None:
        self._notification_handlers[method] = handler

    @property
    def sampling_supported(self) -> bool:
        return self.peer_capabilities.sampling

    async def start(self) -> None:
        if self.reader_task is None:
            self.reader_task = asyncio.create_task(self._reader())

    async def wait_closed(self) -> None:
        await self._closed.wait()

    # -------------------------------------------------------------- operations

    async def initialize(self, client_info: Optional[Dict[str, Any]] = None) -> Capabilities:
        if self.state is SessionState.CLOSED:
            raise SessionClosed()
        if self.state is SessionState.INITIALIZED:
            raise SessionError("Session already initialized")
        await self.start()
        result = await self._request(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": self.capabilities.to_dict(),
                "clientInfo": client_info or self.info,
            },
            timeout=self.init_timeout,
        )
        result = result or {}
        self.peer_capabilities = Capabilities.from_dict(result.get("capabilities"))
        self.peer_info = result.get("serverInfo") or {}
        self.state = SessionState.INITIALIZED
        await self._notify("notifications/initialized", {})
        log.info("session_initialized", peer=self.peer_info, capabilities=self.peer_capabilities)
        return self.peer_capabilities

    async def ping(self) -> None:
        self._require_initialized()
        await self._request("ping", {})

    async def list_tools(self) -> list[Dict[str, Any]]:
        self._require_initialized()
        res = await self._request("tools/list", {})
        return (res or {}).get("tools", [])

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        self._require_initialized()
        return await self._request("tools/call", {"name": name, "arguments": arguments}) or {}

    async def create_message(self, request: SamplingRequest, timeout: Optional[float] = None) -> SamplingOutcome:
        """Ask the peer to run a completion. Remote failures come back as Failure, not exceptions."""
        self._require_initialized()
        if not self.sampling_supported:
            return Failure(CAPABILITY_UNAVAILABLE)
        try:
            result = await self._request("sampling/createMessage", request.to_params(), timeout=timeout)
        except TimeoutError:
            return Failure("timeout")
        except JSONRPCError as e:
            return Failure(e.message)
        return outcome_from_result(result)

    def notify_logging(self, level: str, message: Any, logger: Optional[str] = None) -> None:
        """Fire-and-forget notifications/message; never raises."""
        if self.state is not SessionState.INITIALIZED:
            log.debug("logging_notification_dropped", state=self.state.value, message=message)
            return
        params: Dict[str, Any] = {"level": level, "data": message}
        if logger:
            params["logger"] = logger
        try:
            task = asyncio.get_running_loop().create_task(self._notify("notifications/message", params))
        except RuntimeError:
            log.debug("logging_notification_dropped", reason="no running loop", message=message)
            return
        self._track(task)

    async def close(self) -> None:
        if self._shut_down:
            return
        self._shut_down = True
        self._mark_closed(SessionClosed())

        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current and not t.done()]
        if self.reader_task and self.reader_task is not current and not self.reader_task.done():
            tasks.append(self.reader_task)
        for t in tasks:
            t.cancel()
        for t in tasks:
            try:
                await t
            except asyncio.CancelledError:
                pass
            except Exception as e:
                log.warning("task_stop_error", error=repr(e))

        await self.transport.close()
        log.info("session_closed", peer=self.peer_info)

    # ---------------------------------------------------------------- plumbing

    def _require_initialized(self) -> None:
        if self.state is SessionState.CLOSED:
            raise SessionClosed()
        if self.state is SessionState.UNINITIALIZED:
            raise NotInitialized()

    def _mark_closed(self, err: Exception) -> None:
        self.state = SessionState.CLOSED
        for mid, fut in list(self.pending.items()):
            if not fut.done():
                fut.set_exception(err)
        self.pending.clear()
        self._closed.set()

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.warning("background_task_failed", error=repr(task.exception()))

    async def _request(self, method: str, params: Any | None = None, *, timeout: Optional[float] = None):
        """Send a request and wait for the matching response."""
        if self.state is SessionState.CLOSED:
            raise SessionClosed()

        mid = str(uuid.uuid4())
        req = {"jsonrpc": "2.0", "id": mid, "method": method, "params": params or {}}

        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        self.pending[mid] = fut
        try:
            await self.transport.send(req)
        except Exception as e:
            self.pending.pop(mid, None)
            raise SessionError(f"Failed to send {method}: {e!r}") from e

        to = timeout or self.call_timeout
        try:
            resp = await asyncio.wait_for(fut, timeout=to)
        except asyncio.TimeoutError as e:
            # drop the waiter; a late reply is then ignored by the reader
            self.pending.pop(mid, None)
            raise TimeoutError(f"MCP call timeout after {to}s: {method}") from e

        if resp.get("error") is not None:
            raise JSONRPCError.from_response(method, resp["error"])
        return resp.get("result")

    async def _notify(self, method: str, params: Dict[str, Any]) -> None:
        await self.transport.send({"jsonrpc": "2.0", "method": method, "params": params})

    async def _reply(self, mid: Any, result: Any = None, error: Optional[JSONRPCError] = None) -> None:
        resp: Dict[str, Any] = {"jsonrpc": "2.0", "id": mid}
        if error is not None:
            resp["error"] = error.to_dict()
        else:
            resp["result"] = result if result is not None else {}
        try:
            await self.transport.send(resp)
        except Exception as e:
            log.warning("reply_failed", id=mid, error=repr(e))

    async def _reader(self) -> None:
        while True:
            try:
                msg = await self.transport.receive()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.error("reader_crashed", error=repr(e))
                self._mark_closed(SessionClosed(f"MCP reader crashed: {e!r}"))
                return

            if msg is None:
                self._mark_closed(SessionClosed("MCP peer closed the connection"))
                return

            if "method" in msg:
                if "id" in msg:
                    self._track(asyncio.create_task(self._handle_request(msg)))
                else:
                    self._handle_notification(msg)
            elif "id" in msg:
                fut = self.pending.pop(msg["id"], None)
                if fut and not fut.done():
                    fut.set_result(msg)
                else:
                    log.debug("unmatched_response", id=msg["id"])
            else:
                log.warning("unrecognized_message", message=msg)

    async def _handle_request(self, msg: Dict[str, Any]) -> None:
        mid = msg["id"]
        method = msg.get("method")
        params = msg.get("params") or {}

        handler = self._request_handlers.get(method)
        if handler is None:
            await self._reply(mid, error=JSONRPCError(f"Method not found: {method}", METHOD_NOT_FOUND))
            return
        if self.state is SessionState.UNINITIALIZED and method not in ("initialize", "ping"):
            await self._reply(mid, error=NotInitialized())
            return

        try:
            result = await handler(params)
        except JSONRPCError as e:
            await self._reply(mid, error=e)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error("request_handler_failed", method=method, error=repr(e))
            await self._reply(mid, error=JSONRPCError(str(e), SERVER_ERROR))
        else:
            await self._reply(mid, result)

    def _handle_notification(self, msg: Dict[str, Any]) -> None:
        method = msg.get("method")
        handler = self._notification_handlers.get(method)
        if handler is None:
            log.debug("notification_ignored", method=method)
            return
        try:
            res = handler(msg.get("params") or {})
            if inspect.isawaitable(res):
                self._track(asyncio.ensure_future(res))
        except Exception as e:
            log.warning("notification_handler_failed", method=method, error=repr(e))

    async def _on_initialize(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if self.state is SessionState.INITIALIZED:
            raise JSONRPCError("Session already initialized", INTERNAL_ERROR)
        self.peer_capabilities = Capabilities.from_dict(params.get("capabilities"))
        self.peer_info = params.get("clientInfo") or {}
        self.state = SessionState.INITIALIZED
        log.info("session_initialized", peer=self.peer_info, capabilities=self.peer_capabilities)
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": self.capabilities.to_dict(),
            "serverInfo": self.info,
        }

    async def _on_ping(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {}
