"""
Utilities Module

This module provides common helpers used across the package:
- Single-flight de-duplication of concurrent attempts
- Connection string helpers (credential redaction, host extraction)

Implements shared functionality used across the package to ensure
consistency, reliability, and maintainability.
"""

from .single_flight import SingleFlight
from .uri import redact_uri, extract_hostname, is_srv_uri

__all__ = [
    'SingleFlight',
    'redact_uri',
    'extract_hostname',
    'is_srv_uri',
]
