import logging
from enum import Enum
from typing import Dict, FrozenSet, Optional

logger = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class InvalidTransitionError(RuntimeError):
    pass


_ALLOWED: Dict[ConnectionStatus, FrozenSet[ConnectionStatus]] = {
    ConnectionStatus.DISCONNECTED: frozenset({ConnectionStatus.CONNECTING}),
    ConnectionStatus.CONNECTING: frozenset({ConnectionStatus.CONNECTED, ConnectionStatus.ERROR}),
    ConnectionStatus.CONNECTED: frozenset({ConnectionStatus.CONNECTING}),
    ConnectionStatus.ERROR: frozenset({ConnectionStatus.CONNECTING}),
}


class ConnectionMonitor:
    """Current connection state and the last error message, nothing more."""

    def __init__(self) -> None:
        self._status = ConnectionStatus.DISCONNECTED
        self._last_error: Optional[str] = None

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def _move(self, target: ConnectionStatus) -> None:
        if target not in _ALLOWED[self._status]:
            raise InvalidTransitionError(f"Cannot move from {self._status.value} to {target.value}")
        logger.debug("Connection %s -> %s", self._status.value, target.value)
        self._status = target

    def begin(self) -> None:
        if self._status is ConnectionStatus.CONNECTING:
            return
        self._move(ConnectionStatus.CONNECTING)

    def succeed(self) -> None:
        self._move(ConnectionStatus.CONNECTED)
        self._last_error = None

    def fail(self, reason: str) -> None:
        self._move(ConnectionStatus.ERROR)
        self._last_error = reason

    def disconnect(self, reason: Optional[str] = None) -> None:
        self._status = ConnectionStatus.DISCONNECTED
        self._last_error = reason

    def snapshot(self) -> Dict[str, Optional[str]]:
        return {"status": self._status.value, "error": self._last_error}
