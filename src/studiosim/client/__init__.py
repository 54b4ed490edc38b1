"""Consumer side of the live run stream: reconnect with backoff, de-duplicating merge."""

from .merge import RunStreamBuffers, SortedDedupBuffer
from .reconnect import BackoffPolicy, RunStreamClient, StreamStatus
from .transport import Connection, ConnectionHandlers, Transport

__all__ = [
    "RunStreamClient",
    "StreamStatus",
    "BackoffPolicy",
    "RunStreamBuffers",
    "SortedDedupBuffer",
    "Transport",
    "Connection",
    "ConnectionHandlers",
]
