"""Custom exception classes for the ACP client."""


class ACPClientError(Exception):
    """Base exception for ACP client errors."""

    def __init__(self, message: str, code: str = "internal", detail: str = ""):
        self.message = message
        self.code = code
        self.detail = detail
        super().__init__(message)


class ConnectionError(ACPClientError):
    """Errors related to the WebSocket connection."""

    pass


class ConnectError(ConnectionError):
    """The socket failed before the connection opened."""

    def __init__(self, url: str, detail: str = ""):
        super().__init__(
            f"Failed to connect to {url}", code="connect_failed", detail=detail
        )


class ConnectTimeoutError(ConnectionError):
    """The connection did not open within the allowed time."""

    def __init__(self, url: str, timeout: float):
        super().__init__(
            f"WebSocket connect to {url} timed out after {timeout:g}s",
            code="connect_timeout",
        )


class ConnectionClosedError(ConnectionError):
    """The connection has been closed and cannot be reopened."""

    def __init__(self, message: str = "Connection is closed; create a new client"):
        super().__init__(message, code="connection_closed")


class ToolError(ACPClientError):
    """Errors raised while handling a tool call."""

    pass


class ToolArgumentError(ToolError):
    """Tool-call arguments failed validation."""

    def __init__(self, tool: str, detail: str):
        super().__init__(
            f"Invalid {tool} args: {detail}", code="invalid_args", detail=detail
        )


class ConfigError(ACPClientError):
    """Configuration values failed validation."""

    def __init__(self, message: str, detail: str = ""):
        super().__init__(message, code="invalid_config", detail=detail)


class SessionError(ACPClientError):
    """Errors related to saved sessions."""

    pass


class SessionNotFoundError(SessionError):
    """Session not found."""

    def __init__(self, name: str):
        super().__init__(f"Session not found: {name}", code="session_not_found")
