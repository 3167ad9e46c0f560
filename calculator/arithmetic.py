import operator
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

import structlog

from .errors import DivisionByZero, UnsupportedOperation

log = structlog.get_logger(__name__)

# canonical name -> (display symbol, implementation)
_OPERATIONS: Dict[str, Tuple[str, Callable[[float, float], float]]] = {
    "add": ("+", operator.add),
    "subtract": ("-", operator.sub),
    "multiply": ("×", operator.mul),
    "divide": ("÷", operator.truediv),
}

_SYNONYMS = {
    "add": "add", "addition": "add", "plus": "add", "+": "add",
    "subtract": "subtract", "subtraction": "subtract", "minus": "subtract", "-": "subtract",
    "multiply": "multiply", "multiplication": "multiply", "times": "multiply",
    "*": "multiply", "x": "multiply", "×": "multiply",
    "divide": "divide", "division": "divide", "/": "divide", "÷": "divide",
}


@dataclass(frozen=True)
class CalculationResult:
    a: float
    b: float
    symbol: str
    operation: str
    value: float

    @property
    def equation(self) -> str:
        return f"{self.a} {self.symbol} {self.b} = {self.value}"


def canonical_operation(operation: str) -> str:
    """Map any accepted spelling ("Addition", " + ", "times") to its canonical name."""
    key = (operation or "").strip().lower()
    try:
        return _SYNONYMS[key]
    except KeyError:
        raise UnsupportedOperation(operation) from None


def operation_symbol(operation: str) -> str:
    return _OPERATIONS[canonical_operation(operation)][0]


def evaluate(a: float, b: float, operation: str) -> float:
    name = canonical_operation(operation)
    if name == "divide" and b == 0:
        raise DivisionByZero()
    value = _OPERATIONS[name][1](a, b)
    log.debug("evaluated", a=a, b=b, operation=name, value=value)
    return value


def calculate(a: float, b: float, operation: str) -> CalculationResult:
    name = canonical_operation(operation)
    value = evaluate(a, b, name)
    return CalculationResult(a=a, b=b, symbol=operation_symbol(name), operation=name, value=value)
