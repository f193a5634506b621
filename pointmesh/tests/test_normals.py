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

"""Tests for PCA normal estimation."""

import unittest

import numpy as np
import warp as wp

from pointmesh import InvalidParameters, NotEnoughPoints, PointCloud, SearchIndex, estimate_normals
from pointmesh.tests.unittest_utils import add_function_test, get_test_devices


def _grid_plane(n=5, spacing=1.0):
    xs = np.arange(n, dtype=np.float64) * spacing
    x, y = np.meshgrid(xs, xs, indexing="ij")
    return np.stack([x.ravel(), y.ravel(), np.zeros(n * n)], axis=1)


def _fibonacci_sphere(n, radius=1.0):
    i = np.arange(n, dtype=np.float64) + 0.5
    phi = np.arccos(1.0 - 2.0 * i / n)
    theta = np.pi * (1.0 + 5.0**0.5) * i
    return radius * np.stack([np.cos(theta) * np.sin(phi), np.sin(theta) * np.sin(phi), np.cos(phi)], axis=1)


class TestNormals(unittest.TestCase):
    pass


def test_flat_plane(test, device):
    """Points on the z = 0 plane get normals (0, 0, +-1)."""
    points = _grid_plane()
    normals = estimate_normals(points, 8, device=device)
    test.assertEqual(normals.shape, (25, 3))
    np.testing.assert_allclose(np.abs(normals), np.tile([0.0, 0.0, 1.0], (25, 1)), atol=1.0e-4)


def test_tilted_plane(test, device):
    n = np.array([1.0, 2.0, 2.0]) / 3.0
    u = np.cross(n, [1.0, 0.0, 0.0])
    u /= np.linalg.norm(u)
    v = np.cross(n, u)
    rng = np.random.default_rng(11)
    ab = rng.uniform(-2.0, 2.0, size=(300, 2))
    points = ab[:, :1] * u + ab[:, 1:] * v + np.array([5.0, -3.0, 1.0])

    normals = estimate_normals(points, 12, device=device)
    np.testing.assert_allclose(np.abs(normals @ n), np.ones(len(points)), atol=1.0e-3)


def test_far_from_origin(test, device):
    """Large coordinates do not degrade the estimate."""
    points = _grid_plane(6, 0.01) + np.array([1.0e6, -2.0e6, 5.0e5])
    normals = estimate_normals(points, 8, device=device)
    np.testing.assert_allclose(np.abs(normals[:, 2]), np.ones(len(points)), atol=1.0e-4)


def test_sphere(test, device):
    points = _fibonacci_sphere(500)
    normals = estimate_normals(PointCloud(points), 10, device=device)
    np.testing.assert_allclose(np.linalg.norm(normals, axis=1), np.ones(len(points)), atol=1.0e-5)
    alignment = np.abs(np.einsum("ij,ij->i", normals, points))
    test.assertGreater(alignment.min(), 0.95)


def test_prebuilt_index(test, device):
    points = _grid_plane()
    index = SearchIndex(points)
    np.testing.assert_allclose(
        estimate_normals(points, 8, index=index, device=device),
        estimate_normals(points, 8, device=device),
    )


def test_degenerate_neighborhood(test, device):
    """Coincident points yield (0, 0, 1)."""
    points = np.zeros((12, 3))
    normals = estimate_normals(points, 5, device=device)
    np.testing.assert_allclose(normals, np.tile([0.0, 0.0, 1.0], (12, 1)))


def test_not_enough_points(test, device):
    with test.assertRaises(NotEnoughPoints) as ctx:
        estimate_normals(_grid_plane(2), 8, device=device)
    test.assertEqual(ctx.exception.count, 4)
    with test.assertRaises(InvalidParameters):
        estimate_normals(_grid_plane(), -1, device=device)


def test_empty_neighborhood(test, device):
    """With k = 0 each neighborhood is the point alone, giving (0, 0, 1)."""
    normals = estimate_normals(_grid_plane(), 0, device=device)
    np.testing.assert_allclose(normals, np.tile([0.0, 0.0, 1.0], (len(normals), 1)))


devices = get_test_devices()

add_function_test(TestNormals, "test_flat_plane", test_flat_plane, devices=devices)
add_function_test(TestNormals, "test_tilted_plane", test_tilted_plane, devices=devices)
add_function_test(TestNormals, "test_far_from_origin", test_far_from_origin, devices=devices)
add_function_test(TestNormals, "test_sphere", test_sphere, devices=devices)
add_function_test(TestNormals, "test_prebuilt_index", test_prebuilt_index, devices=devices)
add_function_test(TestNormals, "test_degenerate_neighborhood", test_degenerate_neighborhood, devices=devices)
add_function_test(TestNormals, "test_not_enough_points", test_not_enough_points, devices=devices)
add_function_test(TestNormals, "test_empty_neighborhood", test_empty_neighborhood, devices=devices)


if __name__ == "__main__":
    wp.init()
    unittest.main(verbosity=2)
