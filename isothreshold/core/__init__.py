# Core module for threshold and isosurface operations
from .tetrahedral_mesh import (
    TetrahedralMesh,
    ScalarField,
    DimensionMismatch,
    InvalidTopology,
    extract_boundary_surface,
    create_box_tetrahedra,
)
from .surface_cache import SurfaceCache
from .iso_surface import (
    IsoSurfaceExtractor,
    IsoSurfaceMesh,
    ExtractionStats,
    MARCHING_TET_TABLE,
    EQUAL_COUNTS_AS_BELOW,
)
from .mask import mask, MaskPredicate
from .events import Signal
from .component import Component
from .block import Block
from .threshold import (
    ThresholdController,
    ThresholdOptions,
    ThresholdState,
    ThresholdChange,
    WithTetrahedra,
    Passthrough,
    ReentrantUpdateError,
)

__all__ = [
    # Tetrahedral mesh
    'TetrahedralMesh',
    'ScalarField',
    'DimensionMismatch',
    'InvalidTopology',
    'extract_boundary_surface',
    'create_box_tetrahedra',
    # Isosurface extraction
    'SurfaceCache',
    'IsoSurfaceExtractor',
    'IsoSurfaceMesh',
    'ExtractionStats',
    'MARCHING_TET_TABLE',
    'EQUAL_COUNTS_AS_BELOW',
    # Mask
    'mask',
    'MaskPredicate',
    # Blocks and data
    'Signal',
    'Component',
    'Block',
    # Threshold effect
    'ThresholdController',
    'ThresholdOptions',
    'ThresholdState',
    'ThresholdChange',
    'WithTetrahedra',
    'Passthrough',
    'ReentrantUpdateError',
]
