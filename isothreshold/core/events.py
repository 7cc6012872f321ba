"""
Change Notifications

Minimal synchronous signal used between the core objects. It follows the
connect / disconnect / emit shape of Qt signals but calls its slots directly,
in connection order, so an exception raised by a slot propagates to whoever
triggered the emission.
"""

import logging
from typing import Callable, List

logger = logging.getLogger(__name__)


class Signal:
    """Ordered list of callbacks invoked on emit()."""

    def __init__(self, name: str = ""):
        self.name = name
        self._slots: List[Callable] = []

    def connect(self, slot: Callable) -> None:
        """Connect a callback. Connecting the same callback twice has no effect."""
        if slot in self._slots:
            logger.debug(f"Signal '{self.name}': slot already connected")
            return
        self._slots.append(slot)

    def disconnect(self, slot: Callable) -> None:
        """
        Disconnect a callback.

        Raises:
            ValueError: if the callback is not connected
        """
        try:
            self._slots.remove(slot)
        except ValueError:
            raise ValueError(f"Signal '{self.name}': slot is not connected") from None

    def is_connected(self, slot: Callable) -> bool:
        return slot in self._slots

    def receivers(self) -> int:
        return len(self._slots)

    def emit(self, *args) -> None:
        # Snapshot so slots may disconnect themselves while being called
        for slot in list(self._slots):
            slot(*args)
