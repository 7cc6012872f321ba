"""
Data Components

A Component is a named per-vertex scalar array owned by a Block. The array is
replaced wholesale; every replacement emits ``array_changed`` so effects bound
to the component can rebind and recompute.
"""

import logging
from typing import Sequence, Union

import numpy as np

from .events import Signal
from .tetrahedral_mesh import ScalarField

logger = logging.getLogger(__name__)


class Component:
    """Named scalar array with a change notification."""

    def __init__(self, name: str, array: Union[Sequence[float], np.ndarray]):
        self.name = name
        self.array_changed = Signal(f"{name}:array_changed")
        self._field = ScalarField.coerce(array, name=name)

    @property
    def array(self) -> np.ndarray:
        """Current values (read-only)."""
        return self._field.values

    @array.setter
    def array(self, values: Union[Sequence[float], np.ndarray]):
        """
        Replace the values and notify subscribers.

        If a subscriber raises, the previous values are restored before the
        exception propagates.
        """
        previous = self._field
        self._field = ScalarField.coerce(values, name=self.name)
        logger.debug(f"Component '{self.name}' array replaced ({len(self._field)} values)")
        try:
            self.array_changed.emit()
        except Exception:
            logger.debug(f"Component '{self.name}' change rejected, restoring {len(previous)} values")
            self._field = previous
            raise

    @property
    def field(self) -> ScalarField:
        return self._field

    @property
    def range(self) -> tuple:
        """(min, max) of the current values, (0.0, 0.0) when empty."""
        if len(self._field) == 0:
            return 0.0, 0.0
        return float(np.nanmin(self._field.values)), float(np.nanmax(self._field.values))

    def __len__(self) -> int:
        return len(self._field)

    def __repr__(self) -> str:
        return f"Component(name={self.name!r}, size={len(self._field)})"
