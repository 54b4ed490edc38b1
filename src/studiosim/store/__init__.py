"""In-memory query store over the generated dataset."""

from .query_store import (
    DEFAULT_LOG_LIMIT,
    MAX_LOG_LIMIT,
    QUICK_EXPERIMENT_ID,
    AlertSummary,
    CreatedRun,
    Dashboard,
    LogFingerprint,
    QueryStore,
    StoreStats,
)

__all__ = [
    "QueryStore",
    "CreatedRun",
    "Dashboard",
    "AlertSummary",
    "LogFingerprint",
    "StoreStats",
    "DEFAULT_LOG_LIMIT",
    "MAX_LOG_LIMIT",
    "QUICK_EXPERIMENT_ID",
]
