"""Connection interface the reconnect client is written against."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class ConnectionHandlers:
    on_open: Callable[[], None]
    on_message: Callable[[str], None]
    on_error: Callable[[BaseException | None], None]
    on_close: Callable[[int, str], None]


class Connection(Protocol):
    def close(self, code: int = 1000, reason: str = "") -> None: ...


class Transport(Protocol):
    def connect(self, run_id: str, handlers: ConnectionHandlers) -> Connection: ...
