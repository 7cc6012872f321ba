"""
Block

The parent object effects attach to: vertex positions, an optional list of
tetrahedra, the renderable meshes (meshes[0] is the material source for
generated surfaces) and named data components.
"""

import logging
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import trimesh

from .component import Component
from .events import Signal
from .tetrahedral_mesh import TetrahedralMesh, extract_boundary_surface

logger = logging.getLogger(__name__)

DEFAULT_MESH_COLOR = [0, 170, 255, 255]


class Block:
    """Geometry + data container owning the base meshes."""

    def __init__(
        self,
        vertices: np.ndarray,
        tetrahedra: Optional[np.ndarray] = None,
        meshes: Optional[List[trimesh.Trimesh]] = None,
        data: Optional[Dict[str, Component]] = None
    ):
        """
        Args:
            vertices: (N, 3) vertex positions
            tetrahedra: (M, 4) tetrahedron indices, or None for surface-only blocks
            meshes: Renderable meshes; meshes[0] provides the material
            data: Components by name
        """
        self.vertices = np.asarray(vertices, dtype=np.float64)
        self.meshes: List[trimesh.Trimesh] = list(meshes) if meshes else []
        self.data: Dict[str, Component] = dict(data) if data else {}
        self.geometry_changed = Signal("block:geometry_changed")

        # Validated once; InvalidTopology surfaces here rather than mid-extraction
        self._tetrahedral_mesh: Optional[TetrahedralMesh] = None
        if tetrahedra is not None:
            self._tetrahedral_mesh = TetrahedralMesh(vertices=self.vertices, tetrahedra=tetrahedra)

    @classmethod
    def from_tetrahedral_mesh(
        cls,
        mesh: TetrahedralMesh,
        data: Optional[Dict[str, Union[Component, Sequence[float], np.ndarray]]] = None,
        color: Optional[Sequence[int]] = None
    ) -> 'Block':
        """
        Build a block whose base rendering is the boundary surface of a tet mesh.

        Args:
            mesh: Tetrahedral mesh
            data: Components, or raw arrays wrapped into components by name
            color: RGBA color of the base surface
        """
        surface = extract_boundary_surface(mesh)
        if len(surface.faces) > 0:
            surface.visual.face_colors = color if color is not None else DEFAULT_MESH_COLOR

        components = {}
        for name, values in (data or {}).items():
            components[name] = values if isinstance(values, Component) else Component(name, values)

        block = cls(mesh.vertices, meshes=[surface], data=components)
        block._tetrahedral_mesh = mesh
        return block

    @property
    def tetrahedral_mesh(self) -> Optional[TetrahedralMesh]:
        return self._tetrahedral_mesh

    @property
    def tetrahedron_indices(self) -> Optional[np.ndarray]:
        if self._tetrahedral_mesh is None:
            return None
        return self._tetrahedral_mesh.tetrahedra

    @property
    def material_color(self) -> np.ndarray:
        """RGBA color of meshes[0], falling back to the default color."""
        if self.meshes and len(self.meshes[0].faces) > 0:
            return np.array(self.meshes[0].visual.main_color, dtype=np.uint8)
        return np.array(DEFAULT_MESH_COLOR, dtype=np.uint8)

    def add_component(self, component: Component) -> Component:
        self.data[component.name] = component
        return component

    def get_component(self, name: str) -> Component:
        try:
            return self.data[name]
        except KeyError:
            raise KeyError(f"Block has no component named '{name}' (available: {sorted(self.data)})") from None

    def set_meshes(self, meshes: List[trimesh.Trimesh]) -> None:
        """Replace the renderable meshes and notify listeners."""
        self.meshes = list(meshes)
        logger.debug(f"Block geometry replaced ({len(self.meshes)} meshes)")
        self.geometry_changed.emit()
