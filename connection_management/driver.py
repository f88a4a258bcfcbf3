"""
Database Driver Boundary

The connection manager only needs two things from a backing store: a way to
open a connection bounded by the configured timeouts, and the live state of
an open connection. Everything else (queries, sockets, DNS) stays inside the
driver.
"""

from abc import ABC, abstractmethod
from enum import Enum

from config import DatabaseSettings


class ConnectionState(str, Enum):
    """
    Driver-reported state of a database connection.

    - DISCONNECTED: closed, or never opened
    - CONNECTED: open and usable for queries (the only ready state)
    - CONNECTING: opening, or lost its server and trying to recover
    - DISCONNECTING: close in progress
    """
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    CONNECTING = "connecting"
    DISCONNECTING = "disconnecting"

    @property
    def is_ready(self) -> bool:
        return self is ConnectionState.CONNECTED


class DatabaseConnection(ABC):
    """A live handle to the database."""

    @property
    @abstractmethod
    def state(self) -> ConnectionState:
        """Current state, read from the driver on every access."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection and release its resources."""


class DatabaseDriver(ABC):
    """Opens connections to one kind of backing store."""

    name = "database"

    @abstractmethod
    async def connect(self, settings: DatabaseSettings) -> DatabaseConnection:
        """
        Open a connection using the timeouts and pool size in ``settings``.

        Raises:
            The driver's own exception type when the connection cannot be
            established; it is never translated.
        """
