"""
Database Connection Manager

This module owns the single long-lived database connection of a process:
it establishes the connection lazily, reuses it while the driver reports it
ready, collapses concurrent connect attempts into one, and discards it when
it goes stale.
"""

import logging
from typing import Any, Dict, List, Optional

from config import DatabaseSettings
from connection_management.connection_exceptions import ConnectionInitializationError
from connection_management.driver import ConnectionState, DatabaseConnection, DatabaseDriver
from utils.single_flight import SingleFlight

# Logger setup
logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Cached-connection manager for one database.

    Construct one instance at process startup and pass it to every consumer.
    The cache holds at most one connection; connect attempts go through a
    single-flight cell, so callers arriving while a connect is running share
    its outcome instead of opening a second connection.

    Connection lifecycle:
    - empty until the first ``ensure_connected()``
    - populated when a connect attempt succeeds
    - invalidated when the cached connection reports any state other than
      connected, or when the retry executor sees a transient failure
    - emptied by ``disconnect()``, which also closes invalidated connections

    Example:
        >>> manager = ConnectionManager(settings.database, MongoDriver())
        >>> connection = await manager.ensure_connected()
        >>> orders = connection.database["orders"]
        >>> await manager.disconnect()
    """

    def __init__(self, settings: DatabaseSettings, driver: DatabaseDriver):
        """
        Args:
            settings: Connection string, timeouts and pool size
            driver: Driver used to open connections
        """
        self.settings = settings
        self._driver = driver
        self._connection: Optional[DatabaseConnection] = None
        self._connect_flight: SingleFlight[DatabaseConnection] = SingleFlight(
            name=f"{driver.name}-connect"
        )
        self._superseded: List[DatabaseConnection] = []
        self._connect_count = 0

        logger.debug(f"ConnectionManager initialized for {driver.name}")

    @property
    def connection(self) -> Optional[DatabaseConnection]:
        """The cached connection, or None."""
        return self._connection

    @property
    def state(self) -> ConnectionState:
        """State of the cached connection; DISCONNECTED when there is none."""
        if self._connection is None:
            return ConnectionState.DISCONNECTED
        return self._connection.state

    @property
    def connect_count(self) -> int:
        """Number of physical connect attempts started so far."""
        return self._connect_count

    async def ensure_connected(self) -> DatabaseConnection:
        """
        Return a connection that is ready at the moment it is returned.

        1. A cached connection in the connected state is returned as is.
           Any other state marks it stale: it is dropped from the cache
           and closed on ``disconnect()``.
        2. A connect attempt already in flight is joined; every joiner gets
           the same connection or the same exception.
        3. Otherwise a new attempt is started with the configured timeouts.

        Returns:
            The ready connection

        Raises:
            ConnectionInitializationError: The driver returned a connection
                that is not ready
            The driver's exception, unchanged, when the connect fails
        """
        connection = self._connection
        if connection is not None:
            state = connection.state
            if state.is_ready:
                logger.debug("Reusing cached database connection")
                return connection
            self.invalidate(reason=f"cached connection is {state.value}")

        return await self._connect_flight.do(self._open_connection)

    async def _open_connection(self) -> DatabaseConnection:
        self._connect_count += 1
        logger.debug(f"Opening {self._driver.name} connection (attempt #{self._connect_count})")
        try:
            connection = await self._driver.connect(self.settings)
        except Exception as e:
            logger.error(f"{self._driver.name} connection error: {e}")
            raise

        state = connection.state
        if not state.is_ready:
            await self._close_quietly(connection)
            raise ConnectionInitializationError(
                f"{self._driver.name} connection not connected after connect attempt "
                f"(state={state.value})"
            )

        self._connection = connection
        logger.info(f"{self._driver.name} connection established")
        return connection

    def invalidate(self, reason: Optional[str] = None) -> None:
        """
        Drop the cached connection so the next ``ensure_connected()`` reconnects.

        Only the reference is dropped. Other callers may still be running
        operations on the connection, so it stays open until ``disconnect()``.
        """
        connection = self._connection
        if connection is None:
            return
        self._connection = None
        logger.info(f"Discarding cached {self._driver.name} connection" + (f": {reason}" if reason else ""))
        self._superseded = [
            c for c in self._superseded if c.state is not ConnectionState.DISCONNECTED
        ]
        self._superseded.append(connection)

    async def _close_quietly(self, connection: DatabaseConnection) -> None:
        if connection.state is ConnectionState.DISCONNECTED:
            return
        try:
            await connection.close()
        except Exception as e:
            logger.warning(f"Error while closing {self._driver.name} connection: {e}")

    async def disconnect(self) -> None:
        """
        Close the cached connection unless it is already disconnected.

        A connect still in flight is awaited first, so it cannot repopulate
        the cache afterwards. Connections discarded by ``invalidate()`` are
        closed as well. Safe to call repeatedly: with no connection, or a
        connection that is already closed, this is a no-op. Close errors are
        logged, not raised.
        """
        await self._connect_flight.wait()

        connection = self._connection
        self._connection = None
        superseded, self._superseded = self._superseded, []

        if connection is None:
            logger.debug("disconnect(): no cached connection")
        elif connection.state is ConnectionState.DISCONNECTED:
            logger.debug("disconnect(): connection already closed")
        else:
            await self._close_quietly(connection)
            logger.info(f"{self._driver.name} connection closed")

        for stale in superseded:
            await self._close_quietly(stale)

    def get_metrics(self) -> Dict[str, Any]:
        """Connection metrics for monitoring and health endpoints."""
        return {
            "driver": self._driver.name,
            "state": self.state.value,
            "connect_attempts": self._connect_count,
            "superseded_connections": len(self._superseded),
            "connect_flight": self._connect_flight.get_metrics(),
        }

    async def __aenter__(self) -> "ConnectionManager":
        await self.ensure_connected()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()
