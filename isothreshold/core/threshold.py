"""
Threshold Effect Controller

Shows only the part of a block where an input component lies inside
[min, max] (or (min, max) when not inclusive), and, when the block has
tetrahedra, keeps two isosurfaces at min and max so the cut is real geometry.

Transitions:
    set_min(v)          recompute the min surface      -> geometry_changed, mask_changed
    set_max(v)          recompute the max surface      -> geometry_changed, mask_changed
    set_inclusive(b)    predicate only, no geometry    -> mask_changed
    on_field_changed()  rebind + recompute both        -> geometry_changed
    set_input(c)        resubscribe + recompute both   -> geometry_changed

Without tetrahedra no surface is extracted and the parent's geometry_changed
is forwarded unchanged. The topology mode is chosen once at construction.

Notification handlers must not mutate the controller that notified them;
doing so raises ReentrantUpdateError. This includes assigning the input
component's array from a handler: the component then restores its previous
values, so it keeps matching the surfaces.
"""

import logging
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import trimesh

from .block import Block
from .component import Component
from .events import Signal
from .iso_surface import IsoSurfaceExtractor, IsoSurfaceMesh
from .mask import MaskPredicate
from .tetrahedral_mesh import ScalarField, TetrahedralMesh

logger = logging.getLogger(__name__)


DEFAULT_MIN = 0.0
DEFAULT_MAX = 1.0
DEFAULT_DYNAMIC = False
DEFAULT_INCLUSIVE = True

MIN_BOUND = 'min'
MAX_BOUND = 'max'


class ReentrantUpdateError(RuntimeError):
    """The controller was mutated from inside one of its own notifications."""


class ThresholdChange(Enum):
    """What changed, which decides which surfaces are recomputed."""
    FIELD = "field"
    MIN = "min"
    MAX = "max"
    INCLUSIVE = "inclusive"


BOUNDS_FOR_CHANGE: Dict[ThresholdChange, Tuple[str, ...]] = {
    ThresholdChange.FIELD: (MIN_BOUND, MAX_BOUND),
    ThresholdChange.MIN: (MIN_BOUND,),
    ThresholdChange.MAX: (MAX_BOUND,),
    ThresholdChange.INCLUSIVE: (),
}


@dataclass
class ThresholdOptions:
    """Construction-time configuration of a threshold effect."""
    min: float = DEFAULT_MIN
    max: float = DEFAULT_MAX
    dynamic: bool = DEFAULT_DYNAMIC
    inclusive: bool = DEFAULT_INCLUSIVE

    @classmethod
    def from_dict(cls, options: Optional[Dict[str, Any]]) -> 'ThresholdOptions':
        """
        Build options from a plain dict; missing or None entries keep their defaults.

        Raises:
            ValueError: on unknown keys
        """
        if not options:
            return cls()

        known = {f.name for f in fields(cls)}
        unknown = set(options) - known
        if unknown:
            raise ValueError(f"Unknown threshold options: {sorted(unknown)}")

        values = {key: value for key, value in options.items() if value is not None}
        result = cls(**values)
        result.min = float(result.min)
        result.max = float(result.max)
        result.dynamic = bool(result.dynamic)
        result.inclusive = bool(result.inclusive)
        return result


@dataclass(frozen=True)
class ThresholdState:
    min: float
    max: float
    inclusive: bool
    dynamic: bool


@dataclass(frozen=True)
class WithTetrahedra:
    """Topology mode: isosurfaces are extracted from this mesh."""
    mesh: TetrahedralMesh


@dataclass(frozen=True)
class Passthrough:
    """Topology mode: no tetrahedra, parent geometry notifications are forwarded."""


TopologyMode = Union[WithTetrahedra, Passthrough]


class ThresholdController:
    """
    Keeps the threshold mask and the min/max isosurfaces of one block in sync.
    """

    def __init__(
        self,
        parent: Block,
        input: Union[Component, str],
        options: Optional[Union[ThresholdOptions, Dict[str, Any]]] = None
    ):
        """
        Args:
            parent: Block providing vertices, tetrahedra and materials
            input: Component (or its name in parent.data) to threshold
            options: ThresholdOptions or an equivalent dict
        """
        if not isinstance(options, ThresholdOptions):
            options = ThresholdOptions.from_dict(options)

        self.parent = parent
        self.geometry_changed = Signal("threshold:geometry_changed")
        self.mask_changed = Signal("threshold:mask_changed")

        self._state = ThresholdState(
            min=float(options.min),
            max=float(options.max),
            inclusive=bool(options.inclusive),
            dynamic=bool(options.dynamic),
        )
        self._predicate = MaskPredicate(self._state.min, self._state.max, self._state.inclusive)
        self._busy = False
        self._disposed = False

        self._input: Component = self._resolve_input(input)
        self._extractors: Dict[str, IsoSurfaceExtractor] = {}

        tet_mesh = parent.tetrahedral_mesh
        if tet_mesh is not None:
            self._topology: TopologyMode = WithTetrahedra(tet_mesh)

            for bound in (MIN_BOUND, MAX_BOUND):
                extractor = IsoSurfaceExtractor(tet_mesh, dynamic=self._state.dynamic)
                extractor.update_input(self._input.field)
                self._extractors[bound] = extractor

            self._recompute((MIN_BOUND, MAX_BOUND))
            self._input.array_changed.connect(self._on_input_array_changed)
            logger.info(f"Threshold on '{self._input.name}' [{self._state.min:g}, {self._state.max:g}] "
                        f"with {tet_mesh.num_tetrahedra} tetrahedra (dynamic={self._state.dynamic})")
        else:
            self._topology = Passthrough()
            parent.geometry_changed.connect(self._forward_parent_geometry)
            logger.info(f"Threshold on '{self._input.name}' without tetrahedra - forwarding parent geometry")

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ThresholdState:
        return self._state

    @property
    def topology(self) -> TopologyMode:
        return self._topology

    @property
    def has_surfaces(self) -> bool:
        return isinstance(self._topology, WithTetrahedra)

    @property
    def input(self) -> Component:
        return self._input

    @property
    def predicate(self) -> MaskPredicate:
        return self._predicate

    @property
    def min(self) -> float:
        return self._state.min

    @min.setter
    def min(self, value: float):
        self.set_min(value)

    @property
    def max(self) -> float:
        return self._state.max

    @max.setter
    def max(self, value: float):
        self.set_max(value)

    @property
    def inclusive(self) -> bool:
        return self._state.inclusive

    @inclusive.setter
    def inclusive(self, value: bool):
        self.set_inclusive(value)

    @property
    def dynamic(self) -> bool:
        return self._state.dynamic

    @staticmethod
    def bounds_for(change: ThresholdChange) -> Tuple[str, ...]:
        """Bounds whose surface must be recomputed after a change."""
        return BOUNDS_FOR_CHANGE[change]

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def set_min(self, value: float) -> None:
        self._ensure_mutable()
        self._state = replace(self._state, min=float(value))
        self._apply(ThresholdChange.MIN)

    def set_max(self, value: float) -> None:
        self._ensure_mutable()
        self._state = replace(self._state, max=float(value))
        self._apply(ThresholdChange.MAX)

    def set_inclusive(self, value: bool) -> None:
        self._ensure_mutable()
        self._state = replace(self._state, inclusive=bool(value))
        self._apply(ThresholdChange.INCLUSIVE)

    def on_field_changed(self, field: Optional[Union[ScalarField, Sequence[float], np.ndarray]] = None) -> None:
        """
        Rebind both extractors to a new field and recompute both surfaces.

        Args:
            field: New values; defaults to the current array of the input component

        Raises:
            DimensionMismatch: if the field length differs from the vertex count.
                Both surfaces and bindings are left as they were.
        """
        self._ensure_mutable()
        if not self.has_surfaces:
            return

        field = ScalarField.coerce(self._input.field if field is None else field, name=self._input.name)
        self._topology.mesh.check_field(field.values)

        for extractor in self._extractors.values():
            extractor.update_input(field)

        self._apply(ThresholdChange.FIELD)

    def set_input(self, input: Union[Component, str]) -> None:
        """
        Threshold a different component.

        The subscription moves from the old component to the new one within
        this call, so exactly one component is observed at any time.
        """
        self._ensure_mutable()
        component = self._resolve_input(input)

        if self.has_surfaces:
            self._topology.mesh.check_field(np.asarray(component.array))

            if self._input.array_changed.is_connected(self._on_input_array_changed):
                self._input.array_changed.disconnect(self._on_input_array_changed)
            self._input = component
            self._input.array_changed.connect(self._on_input_array_changed)

            logger.info(f"Threshold input switched to '{component.name}'")
            self.on_field_changed(component.field)
        else:
            self._input = component
            self.mask_changed.emit()

    def dispose(self) -> None:
        """Drop all subscriptions to the input component and parent."""
        if self._disposed:
            return

        if self.has_surfaces:
            if self._input.array_changed.is_connected(self._on_input_array_changed):
                self._input.array_changed.disconnect(self._on_input_array_changed)
        elif self.parent.geometry_changed.is_connected(self._forward_parent_geometry):
            self.parent.geometry_changed.disconnect(self._forward_parent_geometry)

        self._disposed = True

    # -------------------------------------------------------------------------
    # Outputs
    # -------------------------------------------------------------------------

    def surface(self, bound: str) -> Optional[IsoSurfaceMesh]:
        extractor = self._extractors.get(bound)
        return extractor.mesh if extractor is not None else None

    @property
    def min_surface(self) -> Optional[IsoSurfaceMesh]:
        return self.surface(MIN_BOUND)

    @property
    def max_surface(self) -> Optional[IsoSurfaceMesh]:
        return self.surface(MAX_BOUND)

    def extractor(self, bound: str) -> Optional[IsoSurfaceExtractor]:
        return self._extractors.get(bound)

    def surfaces(self) -> List[trimesh.Trimesh]:
        """Min and max surfaces as trimesh meshes carrying the parent's material color."""
        color = self.parent.material_color
        meshes = []
        for bound in (MIN_BOUND, MAX_BOUND):
            surface = self.surface(bound)
            if surface is not None:
                meshes.append(surface.to_trimesh(color=color))
        return meshes

    def mask(self, values: Optional[np.ndarray] = None) -> np.ndarray:
        """Per-vertex visibility of the input (or of the given values)."""
        if values is None:
            values = self._input.array
        return self._predicate.evaluate(values)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _resolve_input(self, input: Union[Component, str]) -> Component:
        if isinstance(input, Component):
            return input
        return self.parent.get_component(input)

    def _ensure_mutable(self) -> None:
        if self._busy:
            raise ReentrantUpdateError(
                "Threshold controller cannot be modified from inside its own change notification"
            )
        if self._disposed:
            raise RuntimeError("Threshold controller has been disposed")

    def _apply(self, change: ThresholdChange) -> None:
        self._busy = True
        try:
            mask_affected = change != ThresholdChange.FIELD
            if mask_affected:
                self._predicate = MaskPredicate(self._state.min, self._state.max, self._state.inclusive)

            recomputed = False
            if self.has_surfaces:
                bounds = self.bounds_for(change)
                self._recompute(bounds)
                recomputed = len(bounds) > 0

            if recomputed:
                self.geometry_changed.emit()
            if mask_affected:
                self.mask_changed.emit()
        finally:
            self._busy = False

    def _recompute(self, bounds: Sequence[str]) -> None:
        for bound in bounds:
            isovalue = self._state.min if bound == MIN_BOUND else self._state.max
            self._extractors[bound].compute_iso_surface(isovalue)

    def _on_input_array_changed(self) -> None:
        self.on_field_changed(self._input.field)

    def _forward_parent_geometry(self) -> None:
        self.geometry_changed.emit()
