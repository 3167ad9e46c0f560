class CalculatorError(Exception):
    """Base class for every failure the calculator core reports to its caller."""


class ValidationError(CalculatorError, ValueError):
    pass


class UnsupportedOperation(ValidationError):
    def __init__(self, operation):
        super().__init__(f"Unsupported operation: {operation}")
        self.operation = operation


class InvalidCurrency(ValidationError):
    pass


class DivisionByZero(CalculatorError, ArithmeticError):
    def __init__(self, message: str = "Division by zero is not allowed"):
        super().__init__(message)


class ConversionError(CalculatorError):
    """The rate-quote service could not produce a usable rate."""


class NetworkError(ConversionError):
    pass


class NetworkTimeout(NetworkError):
    pass


class UpstreamError(ConversionError):
    def __init__(self, reason: str):
        super().__init__(f"Exchange rate API error: {reason}")
        self.reason = reason
