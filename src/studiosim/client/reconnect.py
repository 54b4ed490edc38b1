"""
Live run subscription with automatic reconnect.

    idle -> connecting -> connected
                 ^            |
                 |   close/error (not disposed)
                 |            v
             (backoff) <- reconnecting   (error: status error, force close, then backoff)

The attempt counter grows with every connect and resets on a successful
open, so the delay before attempt n is ``min(max, base * 2**min(5, n))`` plus
0-250 ms jitter. Disposal cancels the pending backoff timer and the current
connection; nothing reconnects afterwards. Callbacks from a connection that
has since been replaced are ignored.
"""

import logging
import math
import random
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from ..streaming.clock import Scheduler, TimerHandle
from ..streaming.events import FrameError, loads_event
from .merge import RunStreamBuffers
from .transport import Connection, ConnectionHandlers, Transport

logger = logging.getLogger(__name__)


class StreamStatus(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    ERROR = "error"


@dataclass(frozen=True)
class BackoffPolicy:
    base_ms: float = 450
    max_ms: float = 8000
    max_exponent: int = 5
    jitter_ms: float = 250

    def delay_before_jitter(self, attempt: int) -> float:
        return min(self.max_ms, self.base_ms * 2 ** min(self.max_exponent, max(0, attempt)))

    def delay_ms(self, attempt: int, rand: random.Random) -> int:
        return math.floor(self.delay_before_jitter(attempt) + rand.random() * self.jitter_ms)


class RunStreamClient:
    """Keep one run's live stream connected and merge what it delivers."""

    def __init__(
        self,
        run_id: str,
        transport: Transport,
        scheduler: Scheduler,
        *,
        backoff: BackoffPolicy | None = None,
        rand: random.Random | None = None,
        buffers: RunStreamBuffers | None = None,
        on_status: Callable[[StreamStatus], None] | None = None,
    ):
        self.run_id = run_id
        self.buffers = buffers or RunStreamBuffers()
        self.backoff = backoff or BackoffPolicy()
        self._transport = transport
        self._scheduler = scheduler
        self._rand = rand or random.Random()
        self._on_status = on_status

        self.status = StreamStatus.IDLE
        self.attempt = 0
        self.connects = 0
        self.malformed_frames = 0
        self._disposed = False
        self._generation = 0
        self._connection: Connection | None = None
        self._reconnect_timer: TimerHandle | None = None

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None

    def subscribe(self) -> None:
        if self._disposed or self.status is not StreamStatus.IDLE:
            return
        self._connect()

    def dispose(self) -> None:
        """Stop for good: cancel any pending reconnect and close the connection."""
        if self._disposed:
            return
        self._disposed = True
        self._generation += 1
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None
        connection, self._connection = self._connection, None
        if connection is not None:
            connection.close()
        logger.debug("Stream client for %s disposed", self.run_id)

    def _set_status(self, status: StreamStatus) -> None:
        if status is self.status:
            return
        self.status = status
        if self._on_status is not None:
            self._on_status(status)

    def _connect(self) -> None:
        self._reconnect_timer = None
        if self._disposed:
            return
        self.attempt += 1
        self.connects += 1
        self._set_status(
            StreamStatus.CONNECTING if self.attempt == 1 else StreamStatus.RECONNECTING
        )
        self._generation += 1
        generation = self._generation
        handlers = ConnectionHandlers(
            on_open=lambda: self._handle_open(generation),
            on_message=lambda text: self._handle_message(generation, text),
            on_error=lambda exc: self._handle_error(generation, exc),
            on_close=lambda code, reason: self._handle_close(generation, code, reason),
        )
        self._connection = self._transport.connect(self.run_id, handlers)

    def _is_current(self, generation: int) -> bool:
        return not self._disposed and generation == self._generation

    def _handle_open(self, generation: int) -> None:
        if not self._is_current(generation):
            return
        self.attempt = 0
        self._set_status(StreamStatus.CONNECTED)

    def _handle_message(self, generation: int, text: str) -> None:
        if not self._is_current(generation) or not text:
            return
        try:
            event = loads_event(text)
        except FrameError as e:
            self.malformed_frames += 1
            logger.debug("Ignoring frame on %s: %s", self.run_id, e)
            return
        if event.run_id != self.run_id:
            return
        self.buffers.apply(event)

    def _handle_error(self, generation: int, exc: BaseException | None) -> None:
        if not self._is_current(generation):
            return
        self._set_status(StreamStatus.ERROR)
        logger.debug("Stream error on %s: %s", self.run_id, exc)
        self._drop_connection()
        self._schedule_reconnect()

    def _handle_close(self, generation: int, code: int, reason: str) -> None:
        if not self._is_current(generation):
            return
        logger.debug("Stream for %s closed: %d %s", self.run_id, code, reason)
        self._connection = None
        self._generation += 1
        self._schedule_reconnect()

    def _drop_connection(self) -> None:
        self._generation += 1
        connection, self._connection = self._connection, None
        if connection is not None:
            connection.close()

    def _schedule_reconnect(self) -> None:
        if self._disposed:
            return
        self._set_status(StreamStatus.RECONNECTING)
        delay_ms = self.backoff.delay_ms(self.attempt, self._rand)
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
        self._reconnect_timer = self._scheduler.call_later(delay_ms / 1000, self._connect)
        logger.info(
            "Reconnecting to %s in %d ms (attempt %d)", self.run_id, delay_ms, self.attempt + 1
        )
