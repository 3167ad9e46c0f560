from .arithmetic import CalculationResult, calculate, canonical_operation, evaluate
from .errors import (
    CalculatorError,
    ConversionError,
    DivisionByZero,
    InvalidCurrency,
    NetworkError,
    NetworkTimeout,
    UnsupportedOperation,
    UpstreamError,
    ValidationError,
)
from .rates import Conversion, ExchangeQuote, RateResolver, round_half_up
from .sampling import CombinedArtifact, SamplingOrchestrator
