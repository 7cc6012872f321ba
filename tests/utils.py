import numpy as np

from isothreshold.core import Block, TetrahedralMesh, create_box_tetrahedra

UNIT_TET_VERTICES = np.array([
    [0.0, 0.0, 0.0],
    [1.0, 0.0, 0.0],
    [0.0, 1.0, 0.0],
    [0.0, 0.0, 1.0],
])


def unit_tetrahedron(order=(0, 1, 2, 3)):
    return TetrahedralMesh(vertices=UNIT_TET_VERTICES, tetrahedra=[list(order)])


def box_mesh(n=11):
    return create_box_tetrahedra((n, n, n))


def radial_field(mesh, center=(0.5, 0.5, 0.5)):
    return np.linalg.norm(mesh.vertices - np.asarray(center), axis=1)


def box_block(n=9, name='temperature'):
    mesh = box_mesh(n)
    return Block.from_tetrahedral_mesh(mesh, data={name: mesh.vertices[:, 0].copy()})


def edge_use_counts(triangles):
    """Number of triangles using each undirected edge."""
    edges = np.vstack([triangles[:, [0, 1]], triangles[:, [1, 2]], triangles[:, [2, 0]]])
    edges = np.sort(edges, axis=1)
    unique, counts = np.unique(edges, axis=0, return_counts=True)
    return unique, counts


def triangle_normals(surface):
    v = np.asarray(surface.vertices)
    t = np.asarray(surface.triangles)
    return np.cross(v[t[:, 1]] - v[t[:, 0]], v[t[:, 2]] - v[t[:, 0]])


def field_at_surface_vertices(surface, mesh, values):
    """Linear interpolation of the field at each surface vertex along its edge."""
    keys = np.asarray(surface.edge_keys)
    pa = mesh.vertices[keys[:, 0]]
    pb = mesh.vertices[keys[:, 1]]
    length = np.linalg.norm(pb - pa, axis=1)
    t = np.linalg.norm(np.asarray(surface.vertices) - pa, axis=1) / length
    return values[keys[:, 0]] + t * (values[keys[:, 1]] - values[keys[:, 0]])
