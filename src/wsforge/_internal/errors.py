"""Custom exception hierarchy for WsForge."""

from __future__ import annotations


class WsForgeError(Exception):
    """Base exception for all WsForge errors."""


class ConfigError(WsForgeError):
    """Raised when configuration is invalid.

    Examples:
        - ``WSFORGE_VUS`` is not an integer.
        - A duration string such as ``"ten minutes"`` cannot be parsed.
        - A scenario stage has a negative duration or target.
    """


class ScenarioError(WsForgeError):
    """Raised when a scenario descriptor cannot be executed.

    Examples:
        - A sub-run names an entry point the workload does not define.
        - A threshold expression cannot be parsed.
    """


class EngineError(WsForgeError):
    """Raised when the host runtime fails as a whole."""


class SessionError(WsForgeError):
    """Base class for connection-session errors."""


class InvalidTransitionError(SessionError):
    """Raised when a signal arrives in a state that cannot accept it.

    Examples:
        - A ``Message`` is dispatched after the session has closed.
        - ``connect()`` is called twice on the same session.
    """


class TransportError(WsForgeError):
    """Base class for errors raised by a transport implementation.

    Attributes:
        cause: Short cause string reported to the session's error handling.
    """

    def __init__(self, cause: str) -> None:
        super().__init__(cause)
        self.cause = cause


class ConnectError(TransportError):
    """Raised when the connection handshake fails.

    Attributes:
        status: HTTP status of the handshake response, 0 if none was received.
    """

    def __init__(self, cause: str, status: int = 0) -> None:
        super().__init__(cause)
        self.status = status


class ConnectionClosedError(TransportError):
    """Raised when sending on a connection whose close was already requested."""
