from .errors import JSONRPCError, NotInitialized, SessionClosed, SessionError
from .schema import (
    CAPABILITY_UNAVAILABLE,
    Capabilities,
    Failure,
    SamplingOutcome,
    SamplingRequest,
    Success,
    ToolResult,
)
from .session import Session, SessionState
from .transport import MemoryTransport, ProcessTransport, StdioTransport, Transport, memory_pair
