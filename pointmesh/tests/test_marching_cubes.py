# SPDX-FileCopyrightText: Copyright (c) 2025 The PointMesh Developers
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Tests for Marching Cubes extraction over the point distance field."""

import unittest

import numpy as np
import warp as wp

from pointmesh import AlgorithmError, HashGrid, MarchingCubes, SearchIndex
from pointmesh.geometry import CORNER_OFFSETS, EDGE_TABLE, EDGE_VERTICES, TRI_TABLE, interpolate_edge
from pointmesh.tests.unittest_utils import add_function_test, get_test_devices


def _fibonacci_sphere(n, radius=1.0):
    i = np.arange(n, dtype=np.float64) + 0.5
    phi = np.arccos(1.0 - 2.0 * i / n)
    theta = np.pi * (1.0 + 5.0**0.5) * i
    return radius * np.stack([np.cos(theta) * np.sin(phi), np.sin(theta) * np.sin(phi), np.cos(phi)], axis=1)


def _extractor(points, normals, voxel_size, kd, device):
    grid = HashGrid(points, voxel_size, device=device)
    return MarchingCubes(grid, SearchIndex(points), normals, kd=kd, device=device)


class TestInterpolateEdge(unittest.TestCase):
    def setUp(self):
        self.p1 = np.array([0.0, 0.0, 0.0])
        self.p2 = np.array([1.0, 0.0, 0.0])

    def test_linear(self):
        np.testing.assert_allclose(interpolate_edge(self.p1, self.p2, -1.0, 3.0), [0.25, 0.0, 0.0])
        np.testing.assert_allclose(interpolate_edge(self.p1, self.p2, 2.0, -2.0), [0.5, 0.0, 0.0])

    def test_endpoint_on_surface(self):
        np.testing.assert_array_equal(interpolate_edge(self.p1, self.p2, 0.0, 1.0), self.p1)
        np.testing.assert_array_equal(interpolate_edge(self.p1, self.p2, 1.0, 1.0e-12), self.p2)

    def test_equal_values(self):
        np.testing.assert_array_equal(interpolate_edge(self.p1, self.p2, 0.5, 0.5), self.p1)


class TestTables(unittest.TestCase):
    def test_edges_join_adjacent_corners(self):
        self.assertEqual(CORNER_OFFSETS.shape, (8, 3))
        self.assertEqual(EDGE_VERTICES.shape, (12, 2))
        self.assertEqual(len({tuple(c) for c in CORNER_OFFSETS.tolist()}), 8)
        for a, b in EDGE_VERTICES:
            self.assertEqual(int(np.abs(CORNER_OFFSETS[a] - CORNER_OFFSETS[b]).sum()), 1)
        self.assertEqual(len({tuple(sorted(e)) for e in EDGE_VERTICES.tolist()}), 12)

    def test_all_cases(self):
        """Every cube index maps to the crossed edges and triangles that use exactly those edges."""
        self.assertEqual(EDGE_TABLE.shape, (256,))
        self.assertEqual(TRI_TABLE.shape, (256, 16))
        for cube_index in range(256):
            with self.subTest(cube_index=cube_index):
                inside = [(cube_index >> i) & 1 for i in range(8)]
                expected = 0
                for edge, (a, b) in enumerate(EDGE_VERTICES):
                    if inside[a] != inside[b]:
                        expected |= 1 << edge
                self.assertEqual(int(EDGE_TABLE[cube_index]), expected)

                row = TRI_TABLE[cube_index].tolist()
                count = row.index(-1)
                self.assertEqual(count % 3, 0)
                self.assertTrue(all(v == -1 for v in row[count:]))
                used = 0
                for edge in row[:count]:
                    self.assertTrue(0 <= edge < 12)
                    used |= 1 << edge
                self.assertEqual(used, expected)


class TestMarchingCubes(unittest.TestCase):
    pass


def test_sphere_field_sign(test, device):
    """With outward normals the field is negative inside and positive outside."""
    points = _fibonacci_sphere(400)
    mc = _extractor(points, points.copy(), 0.25, 5, device)
    test.assertLess(mc.distance([0.0, 0.0, 0.0]), 0.0)
    for axis in np.eye(3):
        test.assertGreater(mc.distance(2.0 * axis), 0.0)
        test.assertGreater(mc.distance(-2.0 * axis), 0.0)
    # magnitude is the distance to the nearest sample
    test.assertAlmostEqual(abs(mc.distance([0.0, 0.0, 0.0])), 1.0, places=6)


def test_field_cache(test, device):
    points = _fibonacci_sphere(100)
    mc = _extractor(points, points.copy(), 0.5, 3, device)
    value = mc.distance([0.01, 0.02, 0.03])
    coord = mc.grid.point_to_cell([0.01, 0.02, 0.03])
    test.assertEqual(mc.distance_cache[coord], value)
    # any other query inside the same voxel reuses the cached value
    test.assertEqual(mc.distance(mc.grid.cell_center(coord)), value)
    test.assertNotEqual(mc.evaluate(mc.grid.cell_center(coord))[0], value)


def test_field_without_normals(test, device):
    """Without normals the sign compares the nearest distance with the mean distance."""
    points = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 3.0, 0.0]])
    mc = _extractor(points, None, 1.0, 3, device)
    values = mc.evaluate(np.array([[0.2, 0.0, 0.0], [0.0, 0.0, 5.0]]))
    np.testing.assert_allclose(values, [-0.2, -5.0])

    mc_one = _extractor(points, None, 1.0, 1, device)
    np.testing.assert_allclose(mc_one.evaluate([[0.2, 0.0, 0.0]]), [-0.2])


def test_field_without_neighbors(test, device):
    points = _fibonacci_sphere(20)
    mc = _extractor(points, points.copy(), 0.5, 0, device)
    test.assertEqual(mc.distance([0.0, 0.0, 0.0]), 1.0)


def test_cube_corners(test, device):
    """Eight samples on the corners of a unit cube produce a mesh around the cube."""
    signs = np.array([[x, y, z] for x in (-1.0, 1.0) for y in (-1.0, 1.0) for z in (-1.0, 1.0)])
    points = 0.5 * signs
    normals = signs / np.sqrt(3.0)

    mesh = _extractor(points, normals, 1.0, 3, device).extract()
    test.assertGreater(mesh.num_vertices, 0)
    test.assertGreater(mesh.num_faces, 0)

    lo, hi = mesh.bounding_box()
    test.assertTrue(np.all(lo >= -1.5) and np.all(lo <= 0.5))
    test.assertTrue(np.all(hi <= 1.5) and np.all(hi >= -0.5))


def test_sphere_mesh(test, device):
    points = _fibonacci_sphere(2000)
    voxel_size = 0.2
    mc = _extractor(points, points.copy(), voxel_size, 5, device)
    mesh = mc.extract()

    test.assertGreater(mesh.num_faces, 100)
    radii = np.linalg.norm(mesh.vertices, axis=1)
    test.assertLess(np.abs(radii - 1.0).max(), voxel_size * 1.25)

    faces = mesh.faces
    test.assertTrue(np.all(faces >= 0) and np.all(faces < mesh.num_vertices))
    test.assertEqual(len(mc.vertex_map), mesh.num_vertices)
    np.testing.assert_allclose(np.linalg.norm(mesh.normals, axis=1), np.ones(mesh.num_vertices), atol=1.0e-5)

    for _, cell in mc.grid.cells():
        test.assertTrue(cell.processed)
        test.assertIsNotNone(cell.distance)


def test_outward_faces(test, device):
    """Faces and vertex normals point away from the inside of a closed surface."""
    points = _fibonacci_sphere(2000)
    mesh = _extractor(points, points.copy(), 0.2, 5, device).extract()

    centroids = mesh.vertices[mesh.faces].mean(axis=1)
    outward = np.einsum("ij,ij->i", mesh.compute_face_normals(), centroids) > 0.0
    test.assertGreater(outward.mean(), 0.95)

    outward = np.einsum("ij,ij->i", mesh.normals, mesh.vertices) > 0.0
    test.assertGreater(outward.mean(), 0.95)


def test_idempotent(test, device):
    points = _fibonacci_sphere(600)
    mc = _extractor(points, points.copy(), 0.25, 4, device)
    first = mc.extract()
    second = mc.extract()
    np.testing.assert_array_equal(first.vertices, second.vertices)
    np.testing.assert_array_equal(first.indices, second.indices)


def test_no_surface(test, device):
    points = _fibonacci_sphere(200)
    # every corner is "outside" without neighbors
    with test.assertRaises(AlgorithmError):
        _extractor(points, points.copy(), 0.3, 0, device).extract()
    # the normal-free heuristic never reports "outside", so every voxel is full
    with test.assertRaises(AlgorithmError):
        _extractor(points, None, 0.3, 5, device).extract()


devices = get_test_devices()

add_function_test(TestMarchingCubes, "test_sphere_field_sign", test_sphere_field_sign, devices=devices)
add_function_test(TestMarchingCubes, "test_field_cache", test_field_cache, devices=devices)
add_function_test(TestMarchingCubes, "test_field_without_normals", test_field_without_normals, devices=devices)
add_function_test(TestMarchingCubes, "test_field_without_neighbors", test_field_without_neighbors, devices=devices)
add_function_test(TestMarchingCubes, "test_cube_corners", test_cube_corners, devices=devices)
add_function_test(TestMarchingCubes, "test_sphere_mesh", test_sphere_mesh, devices=devices)
add_function_test(TestMarchingCubes, "test_outward_faces", test_outward_faces, devices=devices)
add_function_test(TestMarchingCubes, "test_idempotent", test_idempotent, devices=devices)
add_function_test(TestMarchingCubes, "test_no_surface", test_no_surface, devices=devices)


if __name__ == "__main__":
    wp.init()
    unittest.main(verbosity=2)
