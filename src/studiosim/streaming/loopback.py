"""
In-process transport: a reconnect client talks to a live simulator directly.

Frames are serialised to JSON text exactly as they would be on the wire, so
the client's decode and merge path is exercised end to end. Opening is
deferred by one scheduler turn, like a real socket handshake.
"""

import json
import logging
import random
from collections.abc import Callable
from datetime import datetime
from typing import Any

from ..client.transport import ConnectionHandlers
from ..store import QueryStore
from ..timeutil import utc_now
from .clock import Scheduler
from .events import NORMAL_CLOSURE, RunEvent, dumps_event
from .simulator import LiveRunSimulator, simulator_for_run

logger = logging.getLogger(__name__)


class LoopbackConnection:
    def __init__(self, transport: "LoopbackTransport", run_id: str, handlers: ConnectionHandlers):
        self.run_id = run_id
        self._transport = transport
        self._handlers = handlers
        self._scheduler = transport.scheduler
        self.simulator: LiveRunSimulator | None = None
        self.closed = False

    def _open(self) -> None:
        if self.closed:
            return
        if self._transport.refuse_connections > 0:
            self._transport.refuse_connections -= 1
            self._handlers.on_error(ConnectionRefusedError(f"refused: {self.run_id}"))
            return

        self.simulator = simulator_for_run(
            self._transport.store,
            self.run_id,
            self._scheduler,
            self._deliver,
            self._server_close,
            **self._transport.simulator_options,
        )
        self._handlers.on_open()
        if self.simulator is None:
            self._handlers.on_message(
                json.dumps({"code": "NOT_FOUND", "message": f"Run not found: {self.run_id}"})
            )
            self._server_close(NORMAL_CLOSURE, "")
            return
        self._transport.opened.append(self)
        self.simulator.start()

    def _deliver(self, frame: RunEvent) -> None:
        if not self.closed:
            self._handlers.on_message(dumps_event(frame))

    def _server_close(self, code: int, reason: str) -> None:
        if self.closed:
            return
        self.closed = True
        if self.simulator is not None:
            self.simulator.stop()
        self._handlers.on_close(code, reason)

    def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """Client-initiated close. The close callback follows on the next scheduler turn."""
        if self.closed:
            return
        self.closed = True
        if self.simulator is not None:
            self.simulator.stop()
        self._scheduler.call_later(0, self._handlers.on_close, code, reason)


class LoopbackTransport:
    """
    Connect clients to simulators over a shared store and scheduler.

    ``refuse_connections`` makes that many upcoming connects fail with an
    error before opening, for exercising the reconnect path.
    """

    def __init__(
        self,
        store: QueryStore,
        scheduler: Scheduler,
        *,
        rand: random.Random | None = None,
        clock: Callable[[], datetime] = utc_now,
        disconnect_window_ms: tuple[int, int] | None = (20_000, 45_000),
        refuse_connections: int = 0,
    ):
        self.store = store
        self.scheduler = scheduler
        self.refuse_connections = refuse_connections
        self.opened: list[LoopbackConnection] = []
        self.simulator_options: dict[str, Any] = {
            "rand": rand or random.Random(),
            "clock": clock,
            "disconnect_window_ms": disconnect_window_ms,
        }

    def connect(self, run_id: str, handlers: ConnectionHandlers) -> LoopbackConnection:
        connection = LoopbackConnection(self, run_id, handlers)
        self.scheduler.call_later(0, connection._open)
        logger.debug("Loopback connect to %s", run_id)
        return connection
