"""Progress tracking and cooperative cancellation for long operations."""

import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

from resinstack.stacking.errors import OperationCancelled


@dataclass
class OperationProgress:
    """Shared progress state for a running operation.

    The processed counter is updated under a lock; the operation polls
    :meth:`check_cancelled` at its own safe points.
    """
    title: str = ""
    item_name: str = "Processed layers"
    total: int = 0
    on_update: Optional[Callable[["OperationProgress"], None]] = None

    _processed: int = field(default=0, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _cancel_event: threading.Event = field(default_factory=threading.Event, init=False, repr=False)

    def reset(self, title: str, total: int) -> None:
        """Start a new run."""
        with self._lock:
            self.title = title
            self.total = total
            self._processed = 0

    @property
    def processed(self) -> int:
        return self._processed

    @processed.setter
    def processed(self, value: int) -> None:
        with self._lock:
            changed = value != self._processed
            self._processed = value
        if changed and self.on_update:
            self.on_update(self)

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 0.0
        return round(self._processed * 100.0 / self.total, 2)

    def cancel(self) -> None:
        """Request cancellation."""
        self._cancel_event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def check_cancelled(self) -> None:
        """Raise :class:`OperationCancelled` if cancellation was requested."""
        if self._cancel_event.is_set():
            raise OperationCancelled(f"{self.title or 'Operation'} was cancelled")
