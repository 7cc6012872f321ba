"""
Isosurface Extraction using Marching Tetrahedra

This module extracts a triangulated level set {x : f(x) = isovalue} of a
scalar field sampled on the vertices of a tetrahedral mesh. The field is
linearly interpolated inside each tetrahedron, so the level set is planar
per tetrahedron.

Algorithm:
1. Classify the 4 vertices of each tetrahedron as above (value > isovalue)
   or below. A value exactly equal to the isovalue counts as below
   (EQUAL_COUNTS_AS_BELOW), so a vertex is never emitted on both sides.
2. Build a 4-bit classification code per tetrahedron. Codes 0 and 15 are
   entirely on one side; the 14 others are cut by the surface.
3. An edge is cut when its endpoints are classified differently. That gives
   3 cut edges (one isolated vertex -> 1 triangle) or 4 (a 2-2 split -> a quad
   fanned into 2 triangles). Triangles come from a lookup table keyed by the
   6-bit cut-edge mask.
4. Crossing points are interpolated along each cut edge and deduplicated by
   edge key, so neighbouring tetrahedra share surface vertices.
5. Each triangle is wound so its normal points toward the above side.

Edge numbering within a tetrahedron (vertices 0,1,2,3):
    Edge 0: (0,1)
    Edge 1: (0,2)
    Edge 2: (0,3)
    Edge 3: (1,2)
    Edge 4: (1,3)
    Edge 5: (2,3)
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import trimesh

from .surface_cache import SurfaceCache
from .tetrahedral_mesh import TET_EDGES, ScalarField, TetrahedralMesh, read_only

logger = logging.getLogger(__name__)


# Vertices whose value equals the isovalue are classified as below it.
EQUAL_COUNTS_AS_BELOW = True

VERTEX_BITS = np.array([1, 2, 4, 8], dtype=np.uint8)


# =============================================================================
# MARCHING TETRAHEDRA LOOKUP TABLES
# =============================================================================

def _build_marching_tet_table() -> Dict[int, List[Tuple[int, int, int]]]:
    """
    Build the 64-entry marching tetrahedra lookup table.

    Only 7 cut-edge masks can come out of a two-sided vertex classification:
    - 3 edges cut: exactly 1 vertex differs (vertex isolated) -> 1 triangle
    - 4 edges cut: 2-2 split -> 2 triangles (quad)

    Returns:
        Dictionary mapping 6-bit cut-edge mask -> list of triangles
        Each triangle is (edge_a, edge_b, edge_c) using local edge indices.
    """
    table = {i: [] for i in range(64)}

    # Vertex 0 isolated: edges 0, 1, 2
    table[7] = [(0, 1, 2)]
    # Vertex 1 isolated: edges 0, 3, 4
    table[25] = [(0, 3, 4)]
    # Vertex 2 isolated: edges 1, 3, 5
    table[42] = [(1, 3, 5)]
    # Vertex 3 isolated: edges 2, 4, 5
    table[52] = [(2, 4, 5)]

    # The quad edges are listed in cycle order, fanned from the first edge.
    # Split {0,1} vs {2,3}: cycle 1,3,4,2
    table[30] = [(1, 3, 4), (1, 4, 2)]
    # Split {0,2} vs {1,3}: cycle 0,3,5,2
    table[45] = [(0, 3, 5), (0, 5, 2)]
    # Split {0,3} vs {1,2}: cycle 0,4,5,1
    table[51] = [(0, 4, 5), (0, 5, 1)]

    return table


def _build_code_to_edge_mask() -> np.ndarray:
    """Map each 4-bit vertex classification code to its 6-bit cut-edge mask."""
    masks = np.zeros(16, dtype=np.int64)
    for code in range(16):
        mask = 0
        for e, (i, j) in enumerate(TET_EDGES):
            if ((code >> i) & 1) != ((code >> j) & 1):
                mask |= 1 << e
        masks[code] = mask
    return masks


MARCHING_TET_TABLE = _build_marching_tet_table()
CODE_TO_EDGE_MASK = _build_code_to_edge_mask()

# Positively oriented reference tetrahedron
REFERENCE_TET = np.array([
    [0.0, 0.0, 0.0],
    [1.0, 0.0, 0.0],
    [0.0, 1.0, 0.0],
    [0.0, 0.0, 1.0],
])


def _build_triangle_flips() -> np.ndarray:
    """
    Decide, per classification code and table triangle, whether the table
    winding must be reversed so the normal points toward the above side.

    The decision is made on REFERENCE_TET using the above endpoint of the
    edge carrying the triangle's first vertex. Its side of the triangle plane
    does not change while crossing points move along their edges, and an
    affine map to any other tetrahedron only flips it when the tetrahedron is
    negatively oriented.

    Returns:
        (16, 2) bool array, True where the table triangle must be flipped
    """
    flips = np.zeros((16, 2), dtype=bool)
    midpoints = 0.5 * (REFERENCE_TET[TET_EDGES[:, 0]] + REFERENCE_TET[TET_EDGES[:, 1]])

    for code in range(1, 15):
        above = [(code >> v) & 1 == 1 for v in range(4)]
        triangles = MARCHING_TET_TABLE[int(CODE_TO_EDGE_MASK[code])]
        for k, (ea, eb, ec) in enumerate(triangles):
            i, j = TET_EDGES[ea]
            above_vertex = REFERENCE_TET[i] if above[i] else REFERENCE_TET[j]
            pa, pb, pc = midpoints[ea], midpoints[eb], midpoints[ec]
            volume = np.dot(np.cross(pb - pa, pc - pa), above_vertex - pa)
            flips[code, k] = volume < 0

    return flips


TRIANGLE_FLIPS = _build_triangle_flips()


def _log_table_stats():
    """Log statistics about the lookup table."""
    stats = {}
    for triangles in MARCHING_TET_TABLE.values():
        n_tris = len(triangles)
        stats[n_tris] = stats.get(n_tris, 0) + 1

    logger.debug(f"Marching tet table: {sum(stats.values())} masks")
    for n_tris, count in sorted(stats.items()):
        logger.debug(f"  {count} masks with {n_tris} triangle(s)")


_log_table_stats()


# =============================================================================
# ISOSURFACE EXTRACTION
# =============================================================================

@dataclass(eq=False)
class IsoSurfaceMesh:
    """Triangle mesh of one level set."""

    # Surface vertices (V x 3) - crossing points on cut edges
    vertices: np.ndarray

    # Surface triangles (F x 3)
    triangles: np.ndarray

    # Edge key (V x 2) of the tetrahedron edge each vertex sits on
    edge_keys: np.ndarray

    isovalue: float

    @property
    def num_vertices(self) -> int:
        return len(self.vertices)

    @property
    def num_triangles(self) -> int:
        return len(self.triangles)

    @property
    def is_empty(self) -> bool:
        return len(self.triangles) == 0

    def to_trimesh(self, color: Optional[Sequence[int]] = None) -> trimesh.Trimesh:
        """
        Copy the surface into a trimesh mesh.

        Args:
            color: Optional RGBA face color applied to every triangle

        Returns:
            trimesh.Trimesh with the same vertex order (no merging)
        """
        mesh = trimesh.Trimesh(
            vertices=np.array(self.vertices, dtype=np.float64),
            faces=np.array(self.triangles, dtype=np.int64),
            process=False
        )
        if color is not None and not self.is_empty:
            mesh.visual.face_colors = color
        return mesh


@dataclass
class ExtractionStats:
    """Statistics of one extraction call."""
    num_tets_processed: int = 0
    num_tets_contributing: int = 0
    num_vertices: int = 0
    num_triangles: int = 0
    reused_topology: bool = False
    extraction_time_ms: float = 0.0


def classify_vertices(values: np.ndarray, isovalue: float) -> np.ndarray:
    """Return True where a value lies above the isovalue."""
    if EQUAL_COUNTS_AS_BELOW:
        return values > isovalue
    return values >= isovalue


def classification_codes(above: np.ndarray) -> np.ndarray:
    """
    Pack per-tetrahedron vertex classifications into 4-bit codes.

    Args:
        above: (M, 4) bool classification of each tetrahedron's vertices

    Returns:
        (M,) uint8 codes, bit v set when vertex v is above
    """
    return (above * VERTEX_BITS).sum(axis=1).astype(np.uint8)


def _tet_orientation(vertices: np.ndarray, tetrahedra: np.ndarray) -> np.ndarray:
    """Signed volume (times 6) of each tetrahedron."""
    p = vertices[tetrahedra]
    return np.einsum(
        'ij,ij->i',
        np.cross(p[:, 1] - p[:, 0], p[:, 2] - p[:, 0]),
        p[:, 3] - p[:, 0]
    )


def build_surface_topology(
    mesh: TetrahedralMesh,
    above: np.ndarray,
    codes: np.ndarray
) -> Tuple[np.ndarray, np.ndarray, int]:
    """
    Build the deduplicated cut-edge list and triangle indices for a classification.

    The result depends only on the classification, not on the isovalue, which
    is what allows the static cache to keep it across extractions.

    Args:
        mesh: Tetrahedral mesh
        above: (M, 4) bool vertex classification per tetrahedron
        codes: (M,) classification codes

    Returns:
        Tuple of (edge_keys, triangles, num_contributing)
        - edge_keys: (V, 2) sorted unique cut edges, one per output vertex
        - triangles: (F, 3) output vertex indices, ordered by tetrahedron
        - num_contributing: number of tetrahedra cut by the surface
    """
    contributing = np.nonzero((codes != 0) & (codes != 15))[0]

    if len(contributing) == 0:
        return np.zeros((0, 2), dtype=np.int64), np.zeros((0, 3), dtype=np.int64), 0

    tets = mesh.tetrahedra[contributing]
    sub_above = above[contributing]
    sub_codes = codes[contributing]

    cut = sub_above[:, TET_EDGES[:, 0]] != sub_above[:, TET_EDGES[:, 1]]
    keys = np.sort(tets[:, TET_EDGES], axis=2)

    # Shared edges collapse to one output vertex
    edge_keys, inverse = np.unique(keys[cut], axis=0, return_inverse=True)
    local_vertex = np.full(cut.shape, -1, dtype=np.int64)
    local_vertex[cut] = inverse.reshape(-1)

    negative = _tet_orientation(mesh.vertices, tets) < 0
    edge_masks = CODE_TO_EDGE_MASK[sub_codes]

    rows_parts = []
    slot_parts = []
    tri_parts = []
    for mask, table_triangles in MARCHING_TET_TABLE.items():
        if not table_triangles:
            continue

        rows = np.nonzero(edge_masks == mask)[0]
        if len(rows) == 0:
            continue

        for k, local_tri in enumerate(table_triangles):
            tri = local_vertex[rows][:, list(local_tri)]
            flip = TRIANGLE_FLIPS[sub_codes[rows], k] ^ negative[rows]
            tri[flip] = tri[flip][:, [0, 2, 1]]

            rows_parts.append(rows)
            slot_parts.append(np.full(len(rows), k))
            tri_parts.append(tri)

    rows_all = np.concatenate(rows_parts)
    slots_all = np.concatenate(slot_parts)
    order = np.lexsort((slots_all, rows_all))
    triangles = np.vstack(tri_parts)[order]

    return edge_keys, triangles, len(contributing)


def interpolate_crossings(
    vertices: np.ndarray,
    values: np.ndarray,
    edge_keys: np.ndarray,
    isovalue: float
) -> np.ndarray:
    """
    Interpolate the point where the field crosses the isovalue on each edge.

    p = pos[a] + (iso - val[a]) / (val[b] - val[a]) * (pos[b] - pos[a])

    An edge with equal end values cannot straddle the isovalue; it is left
    at its first endpoint instead of dividing by zero.

    Args:
        vertices: (N, 3) mesh vertex positions
        values: (N,) scalar field
        edge_keys: (V, 2) edges to interpolate on
        isovalue: Level to interpolate

    Returns:
        (V, 3) crossing positions
    """
    if len(edge_keys) == 0:
        return np.zeros((0, 3), dtype=np.float64)

    a = edge_keys[:, 0]
    b = edge_keys[:, 1]
    va = values[a]
    delta = values[b] - va

    t = np.zeros(len(edge_keys), dtype=np.float64)
    np.divide(isovalue - va, delta, out=t, where=delta != 0)

    pa = vertices[a]
    return pa + t[:, None] * (vertices[b] - pa)


class IsoSurfaceExtractor:
    """
    Marching tetrahedra extractor bound to one tetrahedral mesh.

    The mesh is borrowed and never modified. The scalar field is bound with
    update_input() and can be swapped between extractions; the surface of the
    last extraction stays available through ``mesh`` until the next
    successful extraction replaces it.
    """

    def __init__(self, mesh: TetrahedralMesh, dynamic: bool = False):
        """
        Args:
            mesh: Tetrahedral topology and vertex positions
            dynamic: If True, rebuild the surface topology on every call
                     instead of reusing it when the cut edges are unchanged
        """
        self._tet_mesh = mesh
        self._field: Optional[ScalarField] = None
        self._isovalue: Optional[float] = None
        self._cache = SurfaceCache(dynamic=dynamic)
        self._last_stats: Optional[ExtractionStats] = None

    @property
    def tetrahedral_mesh(self) -> TetrahedralMesh:
        return self._tet_mesh

    @property
    def field(self) -> Optional[ScalarField]:
        return self._field

    @property
    def dynamic(self) -> bool:
        return self._cache.dynamic

    @property
    def cache(self) -> SurfaceCache:
        return self._cache

    @property
    def isovalue(self) -> Optional[float]:
        """Isovalue of the current surface, None before the first extraction."""
        return self._isovalue

    @property
    def last_stats(self) -> Optional[ExtractionStats]:
        return self._last_stats

    @property
    def mesh(self) -> Optional[IsoSurfaceMesh]:
        """Read-only view of the current surface."""
        if self._cache.is_empty or self._isovalue is None:
            return None

        return IsoSurfaceMesh(
            vertices=read_only(self._cache.vertices),
            triangles=read_only(self._cache.triangles),
            edge_keys=read_only(self._cache.edge_keys),
            isovalue=self._isovalue,
        )

    def update_input(self, field: Union[ScalarField, Sequence[float], np.ndarray]) -> None:
        """
        Bind a new scalar field without recomputing the surface.

        Raises:
            DimensionMismatch: if the field does not have one value per vertex.
                The previous binding is kept.
        """
        field = ScalarField.coerce(field)
        self._tet_mesh.check_field(field.values)
        self._field = field

    def compute_iso_surface(self, isovalue: float) -> IsoSurfaceMesh:
        """
        Extract the level set of the bound field at an isovalue.

        Args:
            isovalue: Level to extract

        Returns:
            Read-only view of the extracted surface

        Raises:
            ValueError: if no field is bound
            DimensionMismatch: if the bound field no longer matches the mesh
        """
        if self._field is None:
            raise ValueError("No scalar field bound - call update_input() first")

        values = self._field.values
        self._tet_mesh.check_field(values)

        isovalue = float(isovalue)
        start = time.perf_counter()

        tetrahedra = self._tet_mesh.tetrahedra
        above = classify_vertices(values[tetrahedra], isovalue).reshape(-1, 4)
        codes = classification_codes(above)

        stats = ExtractionStats(num_tets_processed=len(tetrahedra))

        if self._cache.can_reuse(codes):
            positions = interpolate_crossings(self._tet_mesh.vertices, values, self._cache.edge_keys, isovalue)
            self._cache.rewrite_positions(positions)
            stats.reused_topology = True
            stats.num_tets_contributing = int(np.count_nonzero((codes != 0) & (codes != 15)))
        else:
            edge_keys, triangles, n_contributing = build_surface_topology(self._tet_mesh, above, codes)
            positions = interpolate_crossings(self._tet_mesh.vertices, values, edge_keys, isovalue)
            self._cache.store(codes, edge_keys, triangles, positions)
            stats.num_tets_contributing = n_contributing

        self._isovalue = isovalue

        stats.num_vertices = self._cache.num_vertices
        stats.num_triangles = len(self._cache.triangles)
        stats.extraction_time_ms = (time.perf_counter() - start) * 1000
        self._last_stats = stats

        if stats.num_triangles == 0:
            logger.debug(f"Isovalue {isovalue:g} does not cut the mesh - surface is empty")

        logger.info(f"Isosurface @ {isovalue:g}: {stats.num_vertices} vertices, {stats.num_triangles} triangles "
                    f"from {stats.num_tets_contributing}/{stats.num_tets_processed} tets "
                    f"({'reused' if stats.reused_topology else 'rebuilt'} topology) "
                    f"in {stats.extraction_time_ms:.1f}ms")

        return self.mesh
