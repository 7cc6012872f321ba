from .threshold_viewer import (
    ThresholdViewer,
    trimesh_to_pyvista,
    iso_surface_to_pyvista,
    base_surface_with_scalars,
    clip_to_interval,
    PYVISTA_AVAILABLE,
)

__all__ = [
    'ThresholdViewer',
    'trimesh_to_pyvista',
    'iso_surface_to_pyvista',
    'base_surface_with_scalars',
    'clip_to_interval',
    'PYVISTA_AVAILABLE',
]
