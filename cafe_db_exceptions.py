"""
Cafe DB Operations Exceptions

This module defines custom exceptions for the cafe_db_ops package
to provide clear error handling and reporting.

Driver and application errors raised inside a retried operation are never
translated into these types; they reach the caller unchanged.
"""

class CafeDbError(Exception):
    """Base exception for all cafe_db_ops errors"""
    pass


class ConfigurationError(CafeDbError):
    """Raised when configuration is invalid or missing"""
    pass

