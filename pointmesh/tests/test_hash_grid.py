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

"""Tests for the sparse voxel grid."""

import unittest

import numpy as np
import warp as wp

from pointmesh import HashGrid, InvalidParameters, NotEnoughPoints
from pointmesh._src.geometry.hash_grid import GridCell
from pointmesh.geometry import CORNER_OFFSETS
from pointmesh.tests.unittest_utils import add_function_test, get_test_devices


class TestHashGrid(unittest.TestCase):
    pass


def _check_invariant(test, grid):
    """Every point stored in a cell maps back to that cell's coordinate."""
    for coord, cell in grid.cells():
        for index in cell.point_indices:
            test.assertTrue(0 <= index < len(grid.points))
            test.assertEqual(grid.point_to_cell(grid.points[index]), coord)


def test_layout(test, device):
    points = np.array([[0.0, 0.0, 0.0], [2.0, 1.0, 0.5]])
    grid = HashGrid(points, voxel_size=0.5, device=device)

    np.testing.assert_allclose(grid.origin, [-0.5, -0.5, -0.5])
    lo, hi = grid.bounding_box
    np.testing.assert_allclose(hi, [2.5, 1.5, 1.0])
    test.assertEqual(grid.dims, (7, 5, 4))
    test.assertEqual(grid.point_to_cell(points[0]), (1, 1, 1))
    test.assertEqual(grid.point_to_cell(points[1]), (5, 3, 2))
    test.assertEqual(grid.num_cells, 2)


def test_all_points_assigned(test, device):
    rng = np.random.default_rng(3)
    points = rng.uniform(-5.0, 5.0, size=(2000, 3))
    grid = HashGrid(points, voxel_size=0.7, device=device)

    all_indices = sorted(i for _, cell in grid.cells() for i in cell.point_indices)
    test.assertEqual(all_indices, list(range(len(points))))
    _check_invariant(test, grid)

    expected = {tuple(c) for c in grid.points_to_cells(points).tolist()}
    test.assertEqual(set(grid.cell_coords()), expected)


def test_deterministic_order(test, device):
    """Cells come in order of first occurrence, with point indices ascending."""
    points = np.array(
        [[0.5, 0.5, 0.5], [3.5, 0.5, 0.5], [0.6, 0.6, 0.6], [2.0, 2.0, 2.0], [3.6, 0.6, 0.6]],
        dtype=np.float64,
    )
    grid = HashGrid(points, voxel_size=1.0, device=device)
    coords = list(grid.cell_coords())
    test.assertEqual(coords, [grid.point_to_cell(points[i]) for i in (0, 1, 3)])
    test.assertEqual(grid.get_cell(coords[0]).point_indices, [0, 2])
    test.assertEqual(grid.get_cell(coords[1]).point_indices, [1, 4])
    test.assertEqual(grid.get_cell(coords[2]).point_indices, [3])


def test_get_cell_does_not_create(test, device):
    grid = HashGrid(np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0]]), voxel_size=0.25, device=device)
    count = grid.num_cells
    test.assertIsNone(grid.get_cell((100, 100, 100)))
    test.assertNotIn((100, 100, 100), grid)
    test.assertEqual(grid.num_cells, count)


def test_insert_and_set_cell(test, device):
    points = np.array([[0.0, 0.0, 0.0], [0.05, 0.0, 0.0], [1.0, 1.0, 1.0]])
    grid = HashGrid(points, voxel_size=0.5, device=device)
    coord = grid.insert(1)
    test.assertEqual(grid.get_cell(coord).point_indices, [0, 1, 1])
    _check_invariant(test, grid)

    grid.set_cell((0, 0, 0), GridCell())
    test.assertIn((0, 0, 0), grid)
    test.assertEqual(grid.get_cell((0, 0, 0)).point_indices, [])

    with test.assertRaises(IndexError):
        grid.insert(3)


def test_cell_geometry(test, device):
    grid = HashGrid(np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0]]), voxel_size=0.5, device=device)
    coord = (2, 3, 4)
    np.testing.assert_allclose(grid.cell_corner(coord), [0.5, 1.0, 1.5])
    np.testing.assert_allclose(grid.cell_center(coord), [0.75, 1.25, 1.75])

    corners = grid.cell_corners(coord)
    test.assertEqual(corners.shape, (8, 3))
    np.testing.assert_allclose(corners[0], grid.cell_corner(coord))
    np.testing.assert_allclose(corners[6], grid.cell_corner((3, 4, 5)))
    np.testing.assert_array_equal(grid.corner_coords(coord), np.array(coord) + CORNER_OFFSETS)
    # bottom face 0-3 counter-clockwise, top face directly above
    np.testing.assert_allclose(corners[4:] - corners[:4], np.tile([0.0, 0.0, 0.5], (4, 1)))


def test_negative_coordinates(test, device):
    points = np.array([[-1000.0, -2000.0, -3000.0], [-999.0, -1999.0, -2999.0]])
    grid = HashGrid(points, voxel_size=0.1, device=device)
    test.assertEqual(grid.num_cells, 2)
    _check_invariant(test, grid)


def test_invalid_parameters(test, device):
    points = np.zeros((4, 3))
    with test.assertRaises(InvalidParameters):
        HashGrid(points, voxel_size=0.0, device=device)
    with test.assertRaises(InvalidParameters):
        HashGrid(points, voxel_size=-1.0, device=device)
    with test.assertRaises(ValueError):
        HashGrid(points, voxel_size=float("nan"), device=device)
    with test.assertRaises(NotEnoughPoints):
        HashGrid(np.zeros((0, 3)), voxel_size=1.0, device=device)
    with test.assertRaises(InvalidParameters):
        HashGrid(np.array([[0.0, 0.0, 0.0], [1.0e6, 0.0, 0.0]]), voxel_size=1.0e-3, device=device)


def test_reset(test, device):
    grid = HashGrid(np.random.default_rng(0).uniform(size=(50, 3)), voxel_size=0.3, device=device)
    for _, cell in grid.cells():
        cell.distance = 1.0
        cell.processed = True
    grid.reset()
    for _, cell in grid.cells():
        test.assertIsNone(cell.distance)
        test.assertFalse(cell.processed)


devices = get_test_devices()

add_function_test(TestHashGrid, "test_layout", test_layout, devices=devices)
add_function_test(TestHashGrid, "test_all_points_assigned", test_all_points_assigned, devices=devices)
add_function_test(TestHashGrid, "test_deterministic_order", test_deterministic_order, devices=devices)
add_function_test(TestHashGrid, "test_get_cell_does_not_create", test_get_cell_does_not_create, devices=devices)
add_function_test(TestHashGrid, "test_insert_and_set_cell", test_insert_and_set_cell, devices=devices)
add_function_test(TestHashGrid, "test_cell_geometry", test_cell_geometry, devices=devices)
add_function_test(TestHashGrid, "test_negative_coordinates", test_negative_coordinates, devices=devices)
add_function_test(TestHashGrid, "test_invalid_parameters", test_invalid_parameters, devices=devices)
add_function_test(TestHashGrid, "test_reset", test_reset, devices=devices)


if __name__ == "__main__":
    wp.init()
    unittest.main(verbosity=2)
