"""
Configuration Module

This module provides centralized configuration management for the
database access layer:
- Connection string and driver timeouts
- Retry and backoff policy
- Logging level
- Configuration validation and loading

Implements a flexible, environment-aware configuration system
with sensible defaults and comprehensive validation using Pydantic.
"""

from .settings import (
    CafeDbSettings,
    DatabaseSettings,
    RetrySettings,
    MonitoringSettings,
    load_settings,
)

__all__ = [
    'CafeDbSettings',
    'DatabaseSettings',
    'RetrySettings',
    'MonitoringSettings',
    'load_settings',
]
