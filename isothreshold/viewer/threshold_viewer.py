"""
Threshold Viewer

PyVista rendering of a threshold effect:
- Base surface of the block clipped to the threshold interval
- Min and max isosurfaces closing the clipped region
- Actors refreshed whenever the controller reports geometry or mask changes

Works with any PyVista plotter, including the pyvistaqt QtInteractor used by
the desktop window.
"""

import logging
from typing import Optional

import numpy as np
import trimesh

try:
    import pyvista as pv
    PYVISTA_AVAILABLE = True
except ImportError:
    PYVISTA_AVAILABLE = False

from ..core.block import Block
from ..core.component import Component
from ..core.iso_surface import IsoSurfaceMesh
from ..core.mask import MaskPredicate
from ..core.threshold import MAX_BOUND, MIN_BOUND, ThresholdController

logger = logging.getLogger(__name__)


def _require_pyvista():
    if not PYVISTA_AVAILABLE:
        raise ImportError("pyvista is not installed. Install with: pip install pyvista")


def trimesh_to_pyvista(mesh: trimesh.Trimesh) -> 'pv.PolyData':
    """
    Convert a trimesh mesh to PyVista PolyData.

    Args:
        mesh: The trimesh mesh to convert

    Returns:
        PyVista PolyData mesh (empty PolyData for a mesh without faces)
    """
    _require_pyvista()

    vertices = np.asarray(mesh.vertices, dtype=np.float64)
    faces = np.asarray(mesh.faces, dtype=np.int64)
    if len(faces) == 0:
        return pv.PolyData()

    # PyVista expects faces in format: [n, v0, v1, v2, n, v0, v1, v2, ...]
    pv_faces = np.column_stack([
        np.full(len(faces), 3, dtype=np.int64),
        faces
    ]).ravel()

    return pv.PolyData(vertices, pv_faces)


def iso_surface_to_pyvista(surface: IsoSurfaceMesh) -> 'pv.PolyData':
    """Convert an extracted isosurface to PolyData with point normals."""
    _require_pyvista()

    if surface.is_empty:
        return pv.PolyData()

    pv_faces = np.column_stack([
        np.full(surface.num_triangles, 3, dtype=np.int64),
        np.asarray(surface.triangles, dtype=np.int64)
    ]).ravel()
    pv_mesh = pv.PolyData(np.array(surface.vertices, dtype=np.float64), pv_faces)
    pv_mesh.compute_normals(inplace=True, cell_normals=False, point_normals=True, auto_orient_normals=False)

    return pv_mesh


def base_surface_with_scalars(block: Block, component: Component) -> 'pv.PolyData':
    """
    Base rendering of a block carrying the component values as point data.

    The boundary surface of a tetrahedral block stores the original vertex
    indices in its metadata; a plain surface block must have one value per
    surface vertex.
    """
    _require_pyvista()

    if not block.meshes:
        return pv.PolyData()

    base = block.meshes[0]
    pv_mesh = trimesh_to_pyvista(base)
    if pv_mesh.n_points == 0:
        return pv_mesh

    values = np.asarray(component.array, dtype=np.float64)
    vertex_indices = base.metadata.get('vertex_indices')
    if vertex_indices is not None:
        values = values[vertex_indices]
    elif len(values) != len(base.vertices):
        raise ValueError(
            f"Component '{component.name}' has {len(values)} values, "
            f"base mesh has {len(base.vertices)} vertices"
        )

    pv_mesh.point_data[component.name] = values
    return pv_mesh


def clip_to_interval(dataset: 'pv.PolyData', scalars: str, predicate: MaskPredicate) -> 'pv.PolyData':
    """
    Clip a surface to the region where ``scalars`` passes the mask predicate.

    Clipping interpolates the cut exactly at min and max, the same places the
    isosurfaces sit. Inclusivity only decides values lying exactly on a bound,
    which a continuous clip keeps either way.
    """
    _require_pyvista()

    if predicate.is_empty or dataset.n_points == 0:
        return pv.PolyData()

    clipped = dataset.clip_scalar(scalars=scalars, value=predicate.min, invert=False)
    if clipped.n_points == 0:
        return pv.PolyData()

    clipped = clipped.clip_scalar(scalars=scalars, value=predicate.max, invert=True)
    return clipped


class ThresholdViewer:
    """
    Keeps a plotter's actors in sync with a ThresholdController.
    """

    BASE_ACTOR = 'threshold_base'
    SURFACE_ACTORS = {
        MIN_BOUND: 'threshold_min_surface',
        MAX_BOUND: 'threshold_max_surface',
    }

    BASE_COLOR = "#00aaff"        # Light blue - clipped base surface
    SURFACE_COLOR = "#00ffaa"     # Teal - isosurface caps
    CONTEXT_COLOR = "#666666"     # Gray - unclipped outline
    CONTEXT_OPACITY = 0.15

    def __init__(self, plotter, controller: ThresholdController, show_context: bool = True,
                 auto_render: bool = True):
        """
        Args:
            plotter: PyVista plotter (pv.Plotter or pyvistaqt QtInteractor)
            controller: Threshold controller to display
            show_context: Show the unclipped base surface as a faint outline
            auto_render: Render after every refresh
        """
        _require_pyvista()

        self.plotter = plotter
        self.controller = controller
        self.show_context = show_context
        self.auto_render = auto_render

        self._base: Optional['pv.PolyData'] = None
        self._visible_actors = set()

        controller.geometry_changed.connect(self.refresh)
        controller.mask_changed.connect(self.refresh)

        self.refresh()

    @property
    def visible_actors(self) -> set:
        """Names of the actors currently shown."""
        return set(self._visible_actors)

    def refresh(self):
        """Rebuild the clipped base and the isosurface actors."""
        component = self.controller.input
        self._base = base_surface_with_scalars(self.controller.parent, component)

        if self.show_context:
            self._set_actor('threshold_context', self._base, color=self.CONTEXT_COLOR,
                            opacity=self.CONTEXT_OPACITY, style='wireframe')

        clipped = clip_to_interval(self._base, component.name, self.controller.predicate)
        self._set_actor(self.BASE_ACTOR, clipped, color=self.BASE_COLOR, opacity=1.0)

        for bound, name in self.SURFACE_ACTORS.items():
            surface = self.controller.surface(bound)
            pv_surface = iso_surface_to_pyvista(surface) if surface is not None else pv.PolyData()
            self._set_actor(name, pv_surface, color=self.SURFACE_COLOR, opacity=1.0)

        logger.debug(f"Threshold viewer refreshed: {sorted(self._visible_actors)}")

        if self.auto_render:
            self.plotter.render()

    def dispose(self):
        """Disconnect from the controller and remove the actors."""
        if self.controller.geometry_changed.is_connected(self.refresh):
            self.controller.geometry_changed.disconnect(self.refresh)
        if self.controller.mask_changed.is_connected(self.refresh):
            self.controller.mask_changed.disconnect(self.refresh)

        for name in list(self._visible_actors):
            self.plotter.remove_actor(name)
        self._visible_actors.clear()

    def _set_actor(self, name: str, dataset: 'pv.PolyData', color: str, opacity: float,
                   style: str = 'surface'):
        if dataset.n_cells == 0:
            if name in self._visible_actors:
                self.plotter.remove_actor(name)
                self._visible_actors.discard(name)
            return

        # Same name replaces the previous actor
        self.plotter.add_mesh(
            dataset,
            name=name,
            color=color,
            opacity=opacity,
            style=style,
            smooth_shading=False,
            show_edges=False,
            scalars=None,
            reset_camera=False,
        )
        self._visible_actors.add(name)
