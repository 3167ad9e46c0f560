from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field
import structlog

from calculator.arithmetic import evaluate
from calculator.errors import CalculatorError, ConversionError, NetworkTimeout, ValidationError
from calculator.rates import RateResolver

log = structlog.get_logger(__name__)

app = FastAPI(title="Calculator & Currency Service")

INFO = """Calculator & Currency Service

Available Operations:
POST /calculate
- Supported operations: add, subtract, multiply, divide
- Example: {"a": 5, "b": 3, "operation": "add"}

POST /convert-currency
- Supports 150+ currencies (ISO 4217 codes)
- Example: {"amount": 100, "from": "USD", "to": "EUR"}

GET /health - Service health check
GET /info - This information
"""


class CalculationReq(BaseModel):
    a: float
    b: float
    operation: str


class ConversionReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: float
    from_currency: str | None = Field(default=None, alias="from")
    to_currency: str | None = Field(default=None, alias="to")


def get_resolver() -> RateResolver:
    return RateResolver.from_settings()


def _error(status: int, e: Exception) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": str(e), "type": type(e).__name__})


@app.get("/health", response_class=PlainTextResponse)
def health():
    return "Calculator & Currency Service is running"


@app.get("/info", response_class=PlainTextResponse)
def info():
    return INFO


@app.post("/calculate")
def calculate(req: CalculationReq):
    log.info("calculation_request", a=req.a, b=req.b, operation=req.operation)
    try:
        result = evaluate(req.a, req.b, req.operation)
    except CalculatorError as e:
        # bad operation and division by zero are both the caller's fault
        log.error("calculation_rejected", error=str(e))
        return _error(400, e)
    return {"result": result}


@app.post("/convert-currency")
async def convert_currency(req: ConversionReq, resolver: RateResolver = Depends(get_resolver)):
    log.info("conversion_request", amount=req.amount, source=req.from_currency, target=req.to_currency)
    try:
        conv = await resolver.convert(req.amount, req.from_currency, req.to_currency)
    except ValidationError as e:
        return _error(400, e)
    except NetworkTimeout as e:
        return _error(504, e)
    except ConversionError as e:
        log.error("conversion_failed", error=str(e))
        return _error(502, e)
    return {
        "amount": conv.amount,
        "from": conv.source,
        "to": conv.target,
        "convertedAmount": conv.converted,
        "exchangeRate": conv.rate,
    }
