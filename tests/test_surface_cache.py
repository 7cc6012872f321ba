import unittest

import numpy as np

from isothreshold.core import IsoSurfaceExtractor, SurfaceCache
from tests.utils import box_mesh, triangle_normals


class TestSurfaceCache(unittest.TestCase):
    def test_empty_cache_never_reuses(self):
        cache = SurfaceCache()
        self.assertTrue(cache.is_empty)
        self.assertFalse(cache.can_reuse(np.zeros(3, dtype=np.uint8)))

    def test_dynamic_cache_never_reuses(self):
        cache = SurfaceCache(dynamic=True)
        codes = np.array([1, 2, 3], dtype=np.uint8)
        cache.store(codes, np.zeros((0, 2), dtype=np.int64), np.zeros((0, 3), dtype=np.int64), np.zeros((0, 3)))
        self.assertFalse(cache.can_reuse(codes))

    def test_codes_must_match(self):
        cache = SurfaceCache()
        codes = np.array([1, 2, 3], dtype=np.uint8)
        cache.store(codes, np.zeros((0, 2), dtype=np.int64), np.zeros((0, 3), dtype=np.int64), np.zeros((0, 3)))
        self.assertTrue(cache.can_reuse(codes.copy()))
        self.assertFalse(cache.can_reuse(np.array([1, 2, 4], dtype=np.uint8)))
        self.assertFalse(cache.can_reuse(np.array([1, 2], dtype=np.uint8)))

    def test_stored_codes_are_copied(self):
        cache = SurfaceCache()
        codes = np.array([1, 2, 3], dtype=np.uint8)
        cache.store(codes, np.zeros((0, 2), dtype=np.int64), np.zeros((0, 3), dtype=np.int64), np.zeros((0, 3)))
        codes[0] = 7
        self.assertFalse(cache.can_reuse(codes))

    def test_rewrite_positions_shape_check(self):
        cache = SurfaceCache()
        cache.store(np.array([1], dtype=np.uint8), np.zeros((3, 2), dtype=np.int64),
                    np.zeros((1, 3), dtype=np.int64), np.zeros((3, 3)))
        with self.assertRaises(ValueError):
            cache.rewrite_positions(np.zeros((4, 3)))

    def test_invalidate(self):
        cache = SurfaceCache()
        cache.store(np.array([1], dtype=np.uint8), np.zeros((3, 2), dtype=np.int64),
                    np.zeros((1, 3), dtype=np.int64), np.zeros((3, 3)))
        cache.invalidate()
        self.assertTrue(cache.is_empty)
        self.assertEqual(cache.num_vertices, 0)


class TestStaticReuse(unittest.TestCase):
    def setUp(self):
        self.mesh = box_mesh(11)
        self.values = self.mesh.vertices[:, 0].copy()

    def test_hit_rewrites_positions_in_place(self):
        extractor = IsoSurfaceExtractor(self.mesh, dynamic=False)
        extractor.update_input(self.values)
        first = extractor.compute_iso_surface(0.37)
        first_triangles = np.array(first.triangles)

        # Same cut edges between the 0.3 and 0.4 grid planes
        second = extractor.compute_iso_surface(0.39)

        self.assertTrue(extractor.last_stats.reused_topology)
        self.assertEqual(extractor.cache.hits, 1)
        self.assertEqual(extractor.cache.misses, 1)
        self.assertTrue(np.shares_memory(first.vertices, second.vertices))
        np.testing.assert_array_equal(second.triangles, first_triangles)
        np.testing.assert_allclose(np.asarray(first.vertices)[:, 0], 0.39, atol=1e-12)

    def test_hit_matches_full_rebuild(self):
        static = IsoSurfaceExtractor(self.mesh, dynamic=False)
        dynamic = IsoSurfaceExtractor(self.mesh, dynamic=True)
        for extractor in (static, dynamic):
            extractor.update_input(self.values)
            extractor.compute_iso_surface(0.37)

        reused = static.compute_iso_surface(0.39)
        rebuilt = dynamic.compute_iso_surface(0.39)

        self.assertTrue(static.last_stats.reused_topology)
        self.assertFalse(dynamic.last_stats.reused_topology)
        np.testing.assert_array_equal(reused.edge_keys, rebuilt.edge_keys)
        np.testing.assert_array_equal(reused.triangles, rebuilt.triangles)
        np.testing.assert_allclose(reused.vertices, rebuilt.vertices)

    def test_dynamic_allocates_new_buffers(self):
        extractor = IsoSurfaceExtractor(self.mesh, dynamic=True)
        extractor.update_input(self.values)
        first = extractor.compute_iso_surface(0.37)
        second = extractor.compute_iso_surface(0.39)

        self.assertFalse(np.shares_memory(first.vertices, second.vertices))
        np.testing.assert_allclose(np.asarray(first.vertices)[:, 0], 0.37, atol=1e-12)
        self.assertEqual(extractor.cache.hits, 0)
        self.assertEqual(extractor.cache.misses, 2)

    def test_classification_change_is_a_miss(self):
        extractor = IsoSurfaceExtractor(self.mesh)
        extractor.update_input(self.values)
        extractor.compute_iso_surface(0.37)
        surface = extractor.compute_iso_surface(0.62)

        self.assertFalse(extractor.last_stats.reused_topology)
        self.assertEqual(extractor.cache.misses, 2)
        np.testing.assert_allclose(np.asarray(surface.vertices)[:, 0], 0.62, atol=1e-12)

    def test_negated_field_is_a_miss(self):
        extractor = IsoSurfaceExtractor(self.mesh)
        extractor.update_input(self.values)
        extractor.compute_iso_surface(0.37)

        # Same cut edges, opposite sides: the winding must follow
        extractor.update_input(-self.values)
        surface = extractor.compute_iso_surface(-0.37)

        self.assertFalse(extractor.last_stats.reused_topology)
        self.assertTrue(np.all(triangle_normals(surface)[:, 0] < 0))

    def test_field_swap_with_same_classification_is_a_hit(self):
        extractor = IsoSurfaceExtractor(self.mesh)
        extractor.update_input(self.values)
        extractor.compute_iso_surface(0.37)

        extractor.update_input(self.values + 0.01)
        surface = extractor.compute_iso_surface(0.37)

        self.assertTrue(extractor.last_stats.reused_topology)
        np.testing.assert_allclose(np.asarray(surface.vertices)[:, 0], 0.36, atol=1e-12)

    def test_invalidate_forces_rebuild(self):
        extractor = IsoSurfaceExtractor(self.mesh)
        extractor.update_input(self.values)
        extractor.compute_iso_surface(0.37)
        extractor.cache.invalidate()
        self.assertIsNone(extractor.mesh)

        extractor.compute_iso_surface(0.38)
        self.assertFalse(extractor.last_stats.reused_topology)
        self.assertEqual(extractor.cache.misses, 2)


if __name__ == '__main__':
    unittest.main()
