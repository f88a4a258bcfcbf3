"""
Diagnostics Module

Operator-facing checks for database connectivity problems: DNS
resolution, SRV lookup and a timed connect, each with troubleshooting
hints. Run ``python -m diagnostics`` for a report on the configured
database.
"""

from .connection_diagnostics import (
    ConnectionDiagnostics,
    DiagnosticReport,
    DiagnosticStatus,
    DiagnosticStep,
    troubleshooting_hints,
)

__all__ = [
    'ConnectionDiagnostics',
    'DiagnosticReport',
    'DiagnosticStatus',
    'DiagnosticStep',
    'troubleshooting_hints',
]
