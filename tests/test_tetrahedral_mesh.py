import unittest

import numpy as np

from isothreshold.core import (
    DimensionMismatch,
    InvalidTopology,
    IsoSurfaceExtractor,
    ScalarField,
    TetrahedralMesh,
    create_box_tetrahedra,
    extract_boundary_surface,
)
from tests.utils import UNIT_TET_VERTICES, unit_tetrahedron


class TestTetrahedralMesh(unittest.TestCase):
    def test_valid_mesh(self):
        mesh = unit_tetrahedron()
        self.assertEqual(mesh.num_vertices, 4)
        self.assertEqual(mesh.num_tetrahedra, 1)
        self.assertEqual(mesh.tetrahedra.dtype, np.int64)

    def test_arrays_are_read_only(self):
        mesh = unit_tetrahedron()
        with self.assertRaises(ValueError):
            mesh.vertices[0, 0] = 5.0
        with self.assertRaises(ValueError):
            mesh.tetrahedra[0, 0] = 1

    def test_out_of_range_index(self):
        with self.assertRaises(InvalidTopology):
            TetrahedralMesh(vertices=UNIT_TET_VERTICES, tetrahedra=[[0, 1, 2, 4]])

    def test_negative_index(self):
        with self.assertRaises(InvalidTopology):
            TetrahedralMesh(vertices=UNIT_TET_VERTICES, tetrahedra=[[0, 1, -1, 3]])

    def test_bad_shapes(self):
        with self.assertRaises(InvalidTopology):
            TetrahedralMesh(vertices=UNIT_TET_VERTICES, tetrahedra=[[0, 1, 2]])
        with self.assertRaises(InvalidTopology):
            TetrahedralMesh(vertices=np.zeros((4, 2)), tetrahedra=[[0, 1, 2, 3]])

    def test_no_tetrahedra(self):
        mesh = TetrahedralMesh(vertices=UNIT_TET_VERTICES, tetrahedra=np.zeros((0, 4), dtype=np.int64))
        self.assertEqual(mesh.num_tetrahedra, 0)

        extractor = IsoSurfaceExtractor(mesh)
        extractor.update_input(np.zeros(4))
        self.assertTrue(extractor.compute_iso_surface(0.0).is_empty)

    def test_check_field(self):
        mesh = unit_tetrahedron()
        mesh.check_field(np.zeros(4))
        with self.assertRaises(DimensionMismatch):
            mesh.check_field(np.zeros(5))

    def test_input_not_mutated(self):
        vertices = UNIT_TET_VERTICES.copy()
        mesh = TetrahedralMesh(vertices=vertices, tetrahedra=[[0, 1, 2, 3]])
        self.assertFalse(np.shares_memory(mesh.vertices, vertices))
        self.assertTrue(vertices.flags.writeable)


class TestScalarField(unittest.TestCase):
    def test_coerce(self):
        field = ScalarField.coerce([0, 1, 2], name='t')
        self.assertEqual(len(field), 3)
        self.assertEqual(field.values.dtype, np.float64)
        self.assertIs(ScalarField.coerce(field), field)

    def test_rejects_2d(self):
        with self.assertRaises(DimensionMismatch):
            ScalarField(np.zeros((2, 2)))


class TestBoxTetrahedra(unittest.TestCase):
    def test_counts_and_volume(self):
        mesh = create_box_tetrahedra((3, 4, 5), (0, 0, 0), (2, 3, 4))
        self.assertEqual(mesh.num_vertices, 3 * 4 * 5)
        self.assertEqual(mesh.num_tetrahedra, 6 * 2 * 3 * 4)

        p = mesh.vertices[mesh.tetrahedra]
        volumes = np.abs(np.einsum(
            'ij,ij->i',
            np.cross(p[:, 1] - p[:, 0], p[:, 2] - p[:, 0]),
            p[:, 3] - p[:, 0]
        )) / 6.0
        self.assertTrue(np.all(volumes > 0))
        self.assertAlmostEqual(volumes.sum(), 24.0)

    def test_too_small(self):
        with self.assertRaises(ValueError):
            create_box_tetrahedra((1, 3, 3))


class TestBoundarySurface(unittest.TestCase):
    def test_box_boundary(self):
        mesh = create_box_tetrahedra((3, 3, 3))
        surface = extract_boundary_surface(mesh)

        self.assertEqual(len(surface.faces), 48)
        self.assertEqual(len(surface.vertices), 26)
        self.assertTrue(surface.is_watertight)
        self.assertTrue(surface.is_winding_consistent)
        # Outward winding gives a positive enclosed volume
        self.assertAlmostEqual(surface.volume, 1.0)

    def test_vertex_indices_metadata(self):
        mesh = create_box_tetrahedra((3, 3, 3))
        surface = extract_boundary_surface(mesh)
        indices = surface.metadata['vertex_indices']
        np.testing.assert_array_equal(mesh.vertices[indices], surface.vertices)
        # The only interior vertex is the center
        center = np.nonzero(np.all(np.isclose(mesh.vertices, 0.5), axis=1))[0][0]
        self.assertNotIn(center, indices)

    def test_empty(self):
        mesh = TetrahedralMesh(vertices=UNIT_TET_VERTICES, tetrahedra=np.zeros((0, 4), dtype=np.int64))
        surface = extract_boundary_surface(mesh)
        self.assertEqual(len(surface.faces), 0)


if __name__ == '__main__':
    unittest.main()
