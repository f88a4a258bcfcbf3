"""
Cafe DB Client

This module provides the main client interface for database access,
wiring configuration, the driver, the connection manager and the retry
executor together.
"""

from typing import Any, Awaitable, Callable, Optional, TypeVar, Union
import logging
from pathlib import Path

from config import CafeDbSettings, load_settings
from cafe_db_exceptions import ConfigurationError
from connection_management import (
    ConnectionManager,
    DatabaseConnection,
    DatabaseDriver,
    ErrorClassifier,
    MongoDriver,
    MongoErrorClassifier,
    RetryExecutor,
)

# Logger setup
logger = logging.getLogger(__name__)

T = TypeVar("T")


class CafeDbClient:
    """
    Main client interface for database operations.

    Construct one client at process startup and hand it to the route layer.
    Route handlers wrap each unit of database work in ``with_retry`` and map
    whatever it raises to their own responses.

    Example:
        >>> db = CafeDbClient()
        >>> async def find_table():
        ...     database = await db.database()
        ...     return await database["tables"].find_one({"number": 4})
        >>> table = await db.with_retry(find_table)
        >>> await db.disconnect()
    """

    def __init__(
        self,
        config: Optional[Union[CafeDbSettings, str, Path]] = None,
        driver: Optional[DatabaseDriver] = None,
        classifier: Optional[ErrorClassifier] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        Initialize the client.

        Args:
            config: Either a CafeDbSettings object or a path to a config YAML file.
                   If None, configuration is read from the environment.
            driver: Database driver; defaults to MongoDriver
            classifier: Transient error classifier; defaults to MongoErrorClassifier
            sleep: Coroutine used between retries; defaults to asyncio.sleep

        Raises:
            ConfigurationError: If the configuration is invalid or MONGO_URI is missing
        """
        if config is None:
            self.config = load_settings()
        elif isinstance(config, (str, Path)):
            self.config = load_settings(str(config))
        elif isinstance(config, CafeDbSettings):
            self.config = config
        else:
            raise ConfigurationError("Invalid configuration type. Expected CafeDbSettings, str, Path, or None.")

        self.connections = ConnectionManager(self.config.database, driver or MongoDriver())
        executor_kwargs = {} if sleep is None else {"sleep": sleep}
        self.executor = RetryExecutor(
            self.connections,
            classifier or MongoErrorClassifier(),
            self.config.retry,
            **executor_kwargs,
        )

        logger.info("CafeDbClient initialized successfully")

    async def with_retry(self, operation: Callable[[], Awaitable[T]], max_attempts: Optional[int] = None) -> T:
        """Run ``operation`` with a ready connection and transient-failure retries."""
        return await self.executor.with_retry(operation, max_attempts=max_attempts)

    def retrying(self, func=None, *, max_attempts: Optional[int] = None):
        """Decorator form of ``with_retry``."""
        return self.executor.retrying(func, max_attempts=max_attempts)

    async def ensure_connected(self) -> DatabaseConnection:
        return await self.connections.ensure_connected()

    async def database(self) -> Any:
        """Database handle of the ready connection."""
        connection = await self.connections.ensure_connected()
        return connection.database

    async def disconnect(self) -> None:
        """Close the connection; safe to call when already disconnected"""
        await self.connections.disconnect()
        logger.info("CafeDbClient connection closed")

    async def __aenter__(self) -> "CafeDbClient":
        await self.connections.ensure_connected()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()
