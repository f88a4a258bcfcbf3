"""
Connection Management Module

This module provides resilient connection management for the document
database behind the cafe ordering and management backend.

Key capabilities:
- One cached connection per process, reused while the driver reports it ready
- Single-flight connect: concurrent callers share one in-progress attempt
- Stale connection detection and automatic re-establishment
- Pluggable classification of transient versus application errors
- Exponential backoff retries with a ceiling for transient failures
- Idempotent shutdown for one-off maintenance jobs
"""

from .connection_manager import ConnectionManager
from .retry_executor import RetryExecutor
from .driver import ConnectionState, DatabaseConnection, DatabaseDriver
from .mongo_driver import MongoConnection, MongoDriver
from .error_classifier import (
    ErrorClassifier,
    PatternErrorClassifier,
    MongoErrorClassifier,
    describe_error,
    is_dns_error,
)
from .connection_exceptions import (
    ConnectionError,
    ConnectionInitializationError,
)

__all__ = [
    'ConnectionManager',
    'RetryExecutor',
    'ConnectionState',
    'DatabaseConnection',
    'DatabaseDriver',
    'MongoConnection',
    'MongoDriver',
    'ErrorClassifier',
    'PatternErrorClassifier',
    'MongoErrorClassifier',
    'describe_error',
    'is_dns_error',
    'ConnectionError',
    'ConnectionInitializationError',
]
