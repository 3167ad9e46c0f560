import asyncio
import json
import subprocess
import sys
from typing import Any, Dict, Optional

import structlog

from .errors import JSONRPCError

log = structlog.get_logger(__name__)


class Transport:
    """Moves whole JSON-RPC messages. receive() returns None once the peer hangs up."""

    async def send(self, message: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def receive(self) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def close(self) -> None:
        pass


def encode(message: Dict[str, Any]) -> bytes:
    return (json.dumps(message, ensure_ascii=False) + "\n").encode("utf-8")


def decode(line: bytes | str) -> Optional[Dict[str, Any]]:
    """One line -> message; None for blank or non-JSON lines (treated as log output)."""
    raw = line.decode("utf-8", errors="ignore") if isinstance(line, bytes) else line
    raw = raw.strip()
    if not raw:
        return None
    try:
        msg = json.loads(raw)
    except json.JSONDecodeError:
        log.info("peer_log", line=raw)
        return None
    if not isinstance(msg, dict):
        log.warning("non_object_message", line=raw)
        return None
    return msg


class ProcessTransport(Transport):
    """Spawns the server and talks line-delimited JSON over its stdin/stdout."""

    def __init__(self, command: list[str], *, start_timeout: float = 30.0):
        self.command = command
        self.start_timeout = start_timeout
        self.proc: Optional[asyncio.subprocess.Process] = None

    async def start(self, timeout: Optional[float] = None):
        if not self.command:
            raise JSONRPCError("Empty MCP command")

        # Windows: hide the child console window
        creationflags = 0
        if sys.platform.startswith("win"):
            creationflags |= subprocess.CREATE_NO_WINDOW

        to = timeout or self.start_timeout
        try:
            self.proc = await asyncio.wait_for(
                asyncio.create_subprocess_exec(
                    *self.command,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=sys.stderr,  # server logs go straight to our console
                    creationflags=creationflags,
                ),
                timeout=to,
            )
        except asyncio.TimeoutError as e:
            raise TimeoutError(f"MCP start timeout after {to}s: {self.command}") from e
        log.info("server_started", command=self.command, pid=self.proc.pid)

    async def send(self, message: Dict[str, Any]) -> None:
        if not self.proc or not self.proc.stdin:
            raise JSONRPCError("MCP process not started")
        try:
            self.proc.stdin.write(encode(message))
            await self.proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise JSONRPCError(f"Failed to write to MCP stdin: {e!r}") from e

    async def receive(self) -> Optional[Dict[str, Any]]:
        assert self.proc and self.proc.stdout
        while True:
            line = await self.proc.stdout.readline()
            if not line:
                return None
            msg = decode(line)
            if msg is not None:
                return msg

    async def close(self) -> None:
        if not self.proc:
            return
        if self.proc.stdin and not self.proc.stdin.is_closing():
            self.proc.stdin.close()
        try:
            await asyncio.wait_for(self.proc.wait(), timeout=5.0)
        except asyncio.TimeoutError:
            log.warning("server_did_not_exit", pid=self.proc.pid)
            try:
                self.proc.kill()
            except ProcessLookupError:
                pass
            await self.proc.wait()
        self.proc = None


class StdioTransport(Transport):
    """Server side of ProcessTransport: requests on stdin, replies on stdout."""

    def __init__(self, stdin=None, stdout=None):
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout
        self._write_lock = asyncio.Lock()

    async def send(self, message: Dict[str, Any]) -> None:
        async with self._write_lock:
            self.stdout.write(json.dumps(message, ensure_ascii=False) + "\n")
            self.stdout.flush()

    async def receive(self) -> Optional[Dict[str, Any]]:
        while True:
            line = await asyncio.to_thread(self.stdin.readline)
            if not line:
                return None
            msg = decode(line)
            if msg is not None:
                return msg


class MemoryTransport(Transport):
    def __init__(self, inbox: asyncio.Queue, outbox: asyncio.Queue):
        self._inbox = inbox
        self._outbox = outbox
        self._closed = False

    async def send(self, message: Dict[str, Any]) -> None:
        if self._closed:
            raise JSONRPCError("transport closed")
        # round-trip through JSON so both ends see exactly what a pipe would carry
        await self._outbox.put(json.loads(json.dumps(message)))

    async def receive(self) -> Optional[Dict[str, Any]]:
        if self._closed:
            return None
        return await self._inbox.get()

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            await self._outbox.put(None)


def memory_pair() -> tuple[MemoryTransport, MemoryTransport]:
    """Two connected in-process transports: (client end, server end)."""
    a_to_b: asyncio.Queue = asyncio.Queue()
    b_to_a: asyncio.Queue = asyncio.Queue()
    return MemoryTransport(b_to_a, a_to_b), MemoryTransport(a_to_b, b_to_a)
