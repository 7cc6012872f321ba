"""
Tetrahedral Mesh and Scalar Field

Data holders consumed by the isosurface extractor:
- TetrahedralMesh: vertex positions + tetrahedra (4 vertex indices each)
- ScalarField: one scalar value per mesh vertex

Topology is validated once, when the mesh is built, so the extraction loop
never has to check indices. Both holders store read-only arrays; a field is
replaced wholesale, never edited in place.

Also provides the two mesh helpers used around extraction: the boundary
surface (the base rendering of a block) and a conforming box
tetrahedralization for structured domains.
"""

import logging
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

import numpy as np
import trimesh

logger = logging.getLogger(__name__)


# Local edge numbering shared by every tetrahedron:
#   Edge 0: (0,1)  Edge 1: (0,2)  Edge 2: (0,3)
#   Edge 3: (1,2)  Edge 4: (1,3)  Edge 5: (2,3)
TET_EDGES = np.array([
    (0, 1),
    (0, 2),
    (0, 3),
    (1, 2),
    (1, 3),
    (2, 3),
], dtype=np.int64)

# Kuhn decomposition of a unit cell into 6 tetrahedra sharing the (0,0,0)-(1,1,1)
# diagonal. Corner c is at offset (c & 1, (c >> 1) & 1, (c >> 2) & 1).
CELL_TETRAHEDRA = [
    (0, 1, 3, 7),
    (0, 1, 5, 7),
    (0, 2, 3, 7),
    (0, 2, 6, 7),
    (0, 4, 5, 7),
    (0, 4, 6, 7),
]


class InvalidTopology(ValueError):
    """A tetrahedron references a vertex index outside the vertex buffer."""


class DimensionMismatch(ValueError):
    """A scalar field does not have one value per mesh vertex."""


def read_only(array: np.ndarray) -> np.ndarray:
    """Return a non-writeable view of an array."""
    view = array.view()
    view.flags.writeable = False
    return view


@dataclass(frozen=True, eq=False)
class TetrahedralMesh:
    """
    Static tetrahedral topology shared by every extractor bound to it.

    Attributes:
        vertices: (N, 3) float64 vertex positions
        tetrahedra: (M, 4) int64 vertex indices, M may be 0
    """
    vertices: np.ndarray
    tetrahedra: np.ndarray

    def __post_init__(self):
        vertices = np.array(self.vertices, dtype=np.float64)
        if vertices.ndim != 2 or vertices.shape[1] != 3:
            raise InvalidTopology(f"vertices must have shape (N, 3), got {vertices.shape}")

        tetrahedra = np.array(self.tetrahedra, dtype=np.int64)
        if tetrahedra.size == 0:
            tetrahedra = tetrahedra.reshape(0, 4)
        if tetrahedra.ndim != 2 or tetrahedra.shape[1] != 4:
            raise InvalidTopology(f"tetrahedra must have shape (M, 4), got {tetrahedra.shape}")

        if len(tetrahedra) > 0:
            bad = (tetrahedra < 0) | (tetrahedra >= len(vertices))
            if np.any(bad):
                tet_idx = int(np.nonzero(bad.any(axis=1))[0][0])
                raise InvalidTopology(
                    f"Tetrahedron {tet_idx} references vertex indices {tetrahedra[tet_idx].tolist()} "
                    f"outside [0, {len(vertices)})"
                )

        object.__setattr__(self, 'vertices', read_only(vertices))
        object.__setattr__(self, 'tetrahedra', read_only(tetrahedra))

    @property
    def num_vertices(self) -> int:
        return len(self.vertices)

    @property
    def num_tetrahedra(self) -> int:
        return len(self.tetrahedra)

    def check_field(self, values: np.ndarray) -> None:
        """Raise DimensionMismatch unless there is exactly one value per vertex."""
        if values.ndim != 1 or len(values) != self.num_vertices:
            raise DimensionMismatch(
                f"Scalar field has shape {values.shape}, mesh has {self.num_vertices} vertices"
            )


@dataclass(frozen=True, eq=False)
class ScalarField:
    """Read-only snapshot of a per-vertex scalar array."""
    values: np.ndarray
    name: str = ""

    def __post_init__(self):
        values = np.array(self.values, dtype=np.float64)
        if values.ndim != 1:
            raise DimensionMismatch(f"Scalar field must be 1-D, got shape {values.shape}")
        object.__setattr__(self, 'values', read_only(values))

    def __len__(self) -> int:
        return len(self.values)

    @classmethod
    def coerce(cls, data: Union['ScalarField', Sequence[float], np.ndarray], name: str = "") -> 'ScalarField':
        if isinstance(data, ScalarField):
            return data
        return cls(values=data, name=name)


def extract_boundary_surface(mesh: TetrahedralMesh) -> trimesh.Trimesh:
    """
    Extract the boundary surface of a tetrahedral mesh.

    Boundary faces belong to exactly one tetrahedron. Faces are wound so the
    normal points away from the vertex opposite to them, i.e. out of the
    volume. The indices of the original vertices kept on the surface are
    stored in ``metadata['vertex_indices']`` so per-vertex data can be mapped
    onto the surface.

    Args:
        mesh: Source tetrahedral mesh

    Returns:
        trimesh.Trimesh of the boundary surface (empty when there are no tetrahedra)
    """
    tetrahedra = mesh.tetrahedra
    vertices = mesh.vertices

    if len(tetrahedra) == 0:
        empty = trimesh.Trimesh(vertices=np.zeros((0, 3)), faces=np.zeros((0, 3), dtype=np.int64), process=False)
        empty.metadata['vertex_indices'] = np.zeros(0, dtype=np.int64)
        return empty

    # Face opposite vertex k, listed with the opposite vertex last
    face_local_indices = [
        (1, 2, 3, 0),
        (0, 2, 3, 1),
        (0, 1, 3, 2),
        (0, 1, 2, 3),
    ]

    all_faces = []
    opposite = []
    for i, j, k, o in face_local_indices:
        all_faces.append(tetrahedra[:, [i, j, k]])
        opposite.append(tetrahedra[:, o])

    all_faces = np.vstack(all_faces)
    opposite = np.concatenate(opposite)

    sorted_faces = np.sort(all_faces, axis=1)
    _, inverse, counts = np.unique(
        sorted_faces, axis=0, return_inverse=True, return_counts=True
    )
    boundary_mask = counts[inverse.reshape(-1)] == 1
    boundary_faces = all_faces[boundary_mask]
    boundary_opposite = opposite[boundary_mask]

    # Orient outward: flip faces whose normal points toward the opposite vertex
    p0 = vertices[boundary_faces[:, 0]]
    normals = np.cross(vertices[boundary_faces[:, 1]] - p0, vertices[boundary_faces[:, 2]] - p0)
    inward = np.einsum('ij,ij->i', normals, vertices[boundary_opposite] - p0) > 0
    boundary_faces[inward] = boundary_faces[inward][:, [0, 2, 1]]

    vertex_indices = np.unique(boundary_faces.ravel())
    vertex_remap = np.full(len(vertices), -1, dtype=np.int64)
    vertex_remap[vertex_indices] = np.arange(len(vertex_indices))

    boundary_mesh = trimesh.Trimesh(
        vertices=np.array(vertices[vertex_indices]),
        faces=vertex_remap[boundary_faces],
        process=False
    )
    boundary_mesh.metadata['vertex_indices'] = vertex_indices

    logger.info(f"Extracted {len(boundary_faces)} boundary faces from {len(tetrahedra)} tetrahedra")

    return boundary_mesh


def create_box_tetrahedra(
    shape: Tuple[int, int, int],
    bounds_min: Sequence[float] = (0.0, 0.0, 0.0),
    bounds_max: Sequence[float] = (1.0, 1.0, 1.0)
) -> TetrahedralMesh:
    """
    Tetrahedralize an axis-aligned box on a regular grid.

    Every cell is split into the same 6 tetrahedra around its main diagonal,
    which makes neighbouring cells share their face diagonals (the mesh is
    conforming, so extracted surfaces close up across cells).

    Args:
        shape: Number of grid points along x, y and z (each >= 2)
        bounds_min: Lower corner of the box
        bounds_max: Upper corner of the box

    Returns:
        TetrahedralMesh with prod(shape) vertices and 6 * prod(shape - 1) tetrahedra
    """
    nx, ny, nz = (int(n) for n in shape)
    if min(nx, ny, nz) < 2:
        raise ValueError(f"Box grid needs at least 2 points per axis, got {shape}")

    lo = np.asarray(bounds_min, dtype=np.float64)
    hi = np.asarray(bounds_max, dtype=np.float64)

    xs = np.linspace(lo[0], hi[0], nx)
    ys = np.linspace(lo[1], hi[1], ny)
    zs = np.linspace(lo[2], hi[2], nz)
    X, Y, Z = np.meshgrid(xs, ys, zs, indexing='ij')
    vertices = np.column_stack([X.ravel(), Y.ravel(), Z.ravel()])

    index = np.arange(nx * ny * nz).reshape(nx, ny, nz)

    # (C, 8) corner vertex indices per cell, corner c at offset bits (x, y, z)
    corners = np.stack([
        index[
            (c & 1):nx - 1 + (c & 1),
            ((c >> 1) & 1):ny - 1 + ((c >> 1) & 1),
            ((c >> 2) & 1):nz - 1 + ((c >> 2) & 1),
        ].ravel()
        for c in range(8)
    ], axis=1)

    tetrahedra = np.vstack([corners[:, list(tet)] for tet in CELL_TETRAHEDRA])

    logger.debug(f"Box grid {nx}x{ny}x{nz}: {len(vertices)} vertices, {len(tetrahedra)} tetrahedra")

    return TetrahedralMesh(vertices=vertices, tetrahedra=tetrahedra)
