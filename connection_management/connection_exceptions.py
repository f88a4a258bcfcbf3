"""
Connection Management Exceptions

This module defines specialized exceptions for database connection
management.

Only failures that originate in this package get their own types. Errors
raised by the driver or by a wrapped operation are propagated unchanged so
upstream handlers can map them by their original type.
"""

from cafe_db_exceptions import CafeDbError


class ConnectionError(CafeDbError):
    """
    Base exception for all connection-related errors raised by this package.

    Applications can catch all package connection errors uniformly while
    still letting driver errors flow through untouched.
    """
    pass


class ConnectionInitializationError(ConnectionError):
    """
    Raised when a connect attempt returns a handle that is not ready.

    The driver reported success but the connection is not in the connected
    state; the attempt is treated as a transient connectivity failure.
    """
    pass
