import asyncio
import json
import shlex

from rich.console import Console

from config.logsetup import setup_logging
from protocol.errors import JSONRPCError
from protocol.schema import ToolResult
from .connection import open_session
from .llm import BackendRouter

HELP = """
/tools → list the server's tools
/ping → liveness check
/call <tool> <json-args> → e.g. /call add {"a": 15, "b": 27}
/explain <a> <op> <b> → calculation with creative explanations from every model hint
/rate <a> <op> <b> <from> <to> → same, with an exchange-rate annotation
/exit → quit
"""


def _print_tool_result(cons: Console, raw: dict):
    res = ToolResult.from_dict(raw)
    if res.is_error:
        cons.print(f"[red]Tool error:[/red] {res.text}")
    else:
        cons.print(res.text)


async def main():
    setup_logging(level="WARNING")
    cons = Console()

    def on_log(params: dict):
        cons.print(f"MCP LOGGING: [{params.get('level')}] {params.get('data')}", markup=False)

    async with open_session(router=BackendRouter(), on_log=on_log) as session:
        cons.print(f"🧮 Connected to {session.peer_info.get('name', 'server')}\n" + HELP)
        while True:
            try:
                q = (await asyncio.to_thread(input, "\nYou> ")).strip()
            except EOFError:
                break
            if not q:
                continue
            if q == "/exit":
                break
            try:
                if q == "/tools":
                    for t in await session.list_tools():
                        cons.print(f"[bold]{t['name']}[/bold] — {t.get('description', '')}")
                elif q == "/ping":
                    await session.ping()
                    cons.print("pong")
                elif q.startswith("/call"):
                    parts = q.split(maxsplit=2)
                    if len(parts) < 2:
                        raise ValueError('Usage: /call <tool> {"a": 1, "b": 2}')
                    args = json.loads(parts[2]) if len(parts) > 2 else {}
                    _print_tool_result(cons, await session.call_tool(parts[1], args))
                elif q.startswith("/explain"):
                    a, op, b = shlex.split(q)[1:4]
                    _print_tool_result(cons, await session.call_tool(
                        "calculate_with_creative_explanation", {"a": float(a), "b": float(b), "operation": op}))
                elif q.startswith("/rate"):
                    a, op, b, src, dst = shlex.split(q)[1:6]
                    _print_tool_result(cons, await session.call_tool(
                        "calculate_with_exchange_rate",
                        {"a": float(a), "b": float(b), "operation": op, "from_currency": src, "to_currency": dst}))
                else:
                    cons.print(HELP)
            except (ValueError, JSONRPCError, TimeoutError) as e:
                cons.print(f"[red]Error:[/red] {e}")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
