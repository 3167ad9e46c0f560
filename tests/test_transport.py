"""Line framing and a real subprocess round trip."""
import sys

import pytest

from client.connection import open_session
from client.llm import BackendRouter
from protocol.schema import ToolResult
from protocol.transport import decode, encode
from tests.helpers import FakeLLM


def test_encode_is_one_line():
    line = encode({"jsonrpc": "2.0", "method": "notifications/message", "params": {"data": "a\nb ÷"}})
    assert line.endswith(b"\n") and line.count(b"\n") == 1
    assert decode(line)["params"]["data"] == "a\nb ÷"


@pytest.mark.parametrize("line", [b"", b"   \n", b"INFO server starting\n", b"[1, 2]\n"])
def test_decode_skips_non_messages(line):
    assert decode(line) is None


@pytest.mark.asyncio
async def test_subprocess_server_round_trip():
    router = BackendRouter({"openai": FakeLLM("via subprocess"), "ollama": FakeLLM("also here")})
    async with open_session([sys.executable, "-m", "calculator.server"], router=router) as session:
        await session.ping()
        add = ToolResult.from_dict(await session.call_tool("add", {"a": 15.0, "b": 27.0}))
        assert add.text == "42.0"
        res = ToolResult.from_dict(await session.call_tool(
            "calculate_with_creative_explanation", {"operation": "add", "a": 1, "b": 2}))
        assert "via subprocess" in res.text
