METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SERVER_ERROR = -32000
NOT_INITIALIZED = -32002


class JSONRPCError(Exception):
    def __init__(self, message: str, code: int = SERVER_ERROR, data=None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data

    def to_dict(self) -> dict:
        err = {"code": self.code, "message": self.message}
        if self.data is not None:
            err["data"] = self.data
        return err

    @classmethod
    def from_response(cls, method: str, err_obj) -> "JSONRPCError":
        # tolerate both {"code", "message"} objects and bare strings
        if isinstance(err_obj, str):
            return cls(f"{method} error: {err_obj}")
        msg = err_obj.get("message", str(err_obj))
        return cls(f"{method} error: {msg}", err_obj.get("code", SERVER_ERROR), err_obj.get("data"))


class SessionError(JSONRPCError):
    pass


class NotInitialized(SessionError):
    def __init__(self, message: str = "Session not initialized"):
        super().__init__(message, NOT_INITIALIZED)


class SessionClosed(SessionError):
    def __init__(self, message: str = "Session closed"):
        super().__init__(message)
