"""
MongoDB Driver

Concrete driver over pymongo's asyncio client. A connect attempt builds a
client with bounded timeouts and verifies the deployment with a ``ping``
before handing the connection out, so a returned connection has already
completed server selection.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

from pymongo import AsyncMongoClient

from config import DatabaseSettings
from connection_management.driver import ConnectionState, DatabaseConnection, DatabaseDriver
from utils.uri import redact_uri

logger = logging.getLogger(__name__)


class MongoConnection(DatabaseConnection):
    """
    Handle around an ``AsyncMongoClient``.

    The state is derived from the client's topology description: the
    connection is ready while a writable server is known. Losing the primary
    (failover, network partition) reports CONNECTING until pymongo finds one
    again.
    """

    def __init__(self, client: Any, database_name: Optional[str] = None):
        self._client = client
        self._database_name = database_name
        self._lifecycle: Optional[ConnectionState] = None

    @property
    def client(self) -> Any:
        """The underlying pymongo client."""
        return self._client

    @property
    def database(self) -> Any:
        """
        Database handle used by operations.

        Uses ``database_name`` when configured, otherwise the database named
        in the connection string.
        """
        if self._database_name:
            return self._client[self._database_name]
        return self._client.get_default_database()

    @property
    def state(self) -> ConnectionState:
        if self._lifecycle is not None:
            return self._lifecycle
        if self._client.topology_description.has_writable_server():
            return ConnectionState.CONNECTED
        return ConnectionState.CONNECTING

    async def close(self) -> None:
        if self._lifecycle is ConnectionState.DISCONNECTED:
            return
        self._lifecycle = ConnectionState.DISCONNECTING
        try:
            await self._client.close()
        finally:
            self._lifecycle = ConnectionState.DISCONNECTED

    def __repr__(self) -> str:
        return f"MongoConnection(database={self._database_name!r}, state={self.state.value})"


class MongoDriver(DatabaseDriver):
    """
    Opens MongoDB connections.

    Args:
        client_factory: Callable building the client from ``(uri, **options)``.
                        Defaults to ``pymongo.AsyncMongoClient``.
    """

    name = "mongodb"

    def __init__(self, client_factory: Callable[..., Any] = AsyncMongoClient):
        self._client_factory = client_factory

    @staticmethod
    def build_client_options(settings: DatabaseSettings) -> Dict[str, Any]:
        """Translate settings into pymongo client keyword arguments."""
        return {
            "connectTimeoutMS": settings.connect_timeout_ms,
            "serverSelectionTimeoutMS": settings.server_selection_timeout_ms,
            "socketTimeoutMS": settings.socket_timeout_ms,
            "maxPoolSize": settings.max_pool_size,
            "appname": settings.app_name,
        }

    async def connect(self, settings: DatabaseSettings) -> MongoConnection:
        start = time.monotonic()
        logger.debug(f"Connecting to {redact_uri(settings.uri)}")
        client = self._client_factory(settings.uri, **self.build_client_options(settings))
        try:
            await client.admin.command("ping")
        except Exception:
            try:
                await client.close()
            except Exception as close_error:
                logger.debug(f"Ignoring error while closing failed client: {close_error}")
            raise

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(f"MongoDB connected successfully ({elapsed_ms:.0f}ms)")
        return MongoConnection(client, settings.database_name)
