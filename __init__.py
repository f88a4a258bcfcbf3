"""
cafe_db_ops - Resilient database access layer for the cafe ordering backend

Keeps one cached document-database connection per process, shares
in-flight connect attempts between concurrent callers, and retries
operations that fail on transient network or DNS problems with
exponential backoff.
"""

__version__ = "0.1.0"
