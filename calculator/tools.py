from typing import Any, Dict, Optional, Sequence

import structlog

from protocol.errors import INVALID_PARAMS, JSONRPCError
from protocol.schema import ToolResult
from protocol.session import Session
from .arithmetic import calculate, evaluate
from .errors import CalculatorError
from .rates import RateResolver
from .sampling import SamplingOrchestrator

log = structlog.get_logger(__name__)


def _number(desc: str) -> Dict[str, Any]:
    return {"type": "number", "description": desc}


def _string(desc: str) -> Dict[str, Any]:
    return {"type": "string", "description": desc}


def _schema(**props) -> Dict[str, Any]:
    return {"type": "object", "properties": props, "required": list(props)}


_AB = {"a": _number("First number"), "b": _number("Second number")}
_CURRENCIES = {
    "from_currency": _string("Source currency code (e.g., USD)"),
    "to_currency": _string("Target currency code (e.g., EUR)"),
}
_OPERATION = {"operation": _string("Operation: add, subtract, multiply, divide")}

TOOLS = [
    {"name": "add", "description": "Add two numbers together", "inputSchema": _schema(**_AB)},
    {"name": "subtract", "description": "Subtract second number from first number", "inputSchema": _schema(**_AB)},
    {"name": "multiply", "description": "Multiply two numbers", "inputSchema": _schema(**_AB)},
    {"name": "divide", "description": "Divide first number by second number", "inputSchema": _schema(**_AB)},
    {
        "name": "convert_currency",
        "description": "Convert amount from one currency to another using live exchange rates",
        "inputSchema": _schema(amount=_number("Amount to convert"), **_CURRENCIES),
    },
    {
        "name": "get_exchange_rate",
        "description": "Get the current exchange rate between two currencies",
        "inputSchema": _schema(**_CURRENCIES),
    },
    {
        "name": "calculate_with_creative_explanation",
        "description": "Perform calculation and generate creative explanations using multiple AI providers",
        "inputSchema": _schema(**_OPERATION, **_AB),
    },
    {
        "name": "calculate_with_exchange_rate",
        "description": "Perform basic calculation and get exchange rate with creative explanations",
        "inputSchema": _schema(**_AB, **_OPERATION, **_CURRENCIES),
    },
]


def _arg(args: Dict[str, Any], name: str, kind=float):
    if name not in args or args[name] is None:
        raise JSONRPCError(f"Missing required argument: {name}", INVALID_PARAMS)
    if kind is float:
        value = args[name]
        if isinstance(value, bool):
            raise JSONRPCError(f"Argument {name} must be a number", INVALID_PARAMS)
        try:
            return float(value)
        except (TypeError, ValueError):
            raise JSONRPCError(f"Argument {name} must be a number", INVALID_PARAMS) from None
    return str(args[name])


class Toolbox:
    """Calculator tools bound to one session, so sampling goes back to the caller."""

    def __init__(
        self,
        session: Session,
        resolver: RateResolver,
        hints: Sequence[str],
        *,
        sampling_timeout: Optional[float] = None,
        max_tokens: int = 1024,
    ):
        self.session = session
        self.resolver = resolver
        self.orchestrator = SamplingOrchestrator(session, hints, timeout=sampling_timeout, max_tokens=max_tokens)

    def bind(self) -> None:
        self.session.on_request("tools/list", self.list_tools)
        self.session.on_request("tools/call", self.call_tool)

    async def list_tools(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"tools": TOOLS}

    async def call_tool(self, params: Dict[str, Any]) -> Dict[str, Any]:
        name = params.get("name")
        args = params.get("arguments") or {}
        log.info("tool_called", tool=name, arguments=args)
        try:
            text = await self.run(name, args)
        except CalculatorError as e:
            log.warning("tool_failed", tool=name, error=str(e), error_type=type(e).__name__)
            return ToolResult(str(e), is_error=True).to_dict()
        return ToolResult(text).to_dict()

    async def run(self, name: str, args: Dict[str, Any]) -> str:
        if name in ("add", "subtract", "multiply", "divide"):
            return str(evaluate(_arg(args, "a"), _arg(args, "b"), name))
        elif name == "convert_currency":
            conv = await self.resolver.convert(
                _arg(args, "amount"), _arg(args, "from_currency", str), _arg(args, "to_currency", str)
            )
            return str(conv.converted)
        elif name == "get_exchange_rate":
            quote = await self.resolver.resolve(_arg(args, "from_currency", str), _arg(args, "to_currency", str))
            return str(quote.rate)
        elif name == "calculate_with_creative_explanation":
            result = calculate(_arg(args, "a"), _arg(args, "b"), _arg(args, "operation", str))
            artifact = await self.orchestrator.explain(result)
            return artifact.render()
        elif name == "calculate_with_exchange_rate":
            result = calculate(_arg(args, "a"), _arg(args, "b"), _arg(args, "operation", str))
            note = await self.resolver.describe(_arg(args, "from_currency", str), _arg(args, "to_currency", str))
            artifact = await self.orchestrator.explain(result, exchange_note=note)
            return artifact.render()
        else:
            raise JSONRPCError(f"Unknown tool: {name}", INVALID_PARAMS)
