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

import unittest

import numpy as np

from pointmesh import NotEnoughPoints, SearchIndex


class TestSearchIndex(unittest.TestCase):
    def setUp(self):
        rng = np.random.default_rng(7)
        self.points = rng.uniform(-1.0, 1.0, size=(200, 3))
        self.index = SearchIndex(self.points)

    def test_empty_index_raises(self):
        with self.assertRaises(NotEnoughPoints) as ctx:
            SearchIndex(np.zeros((0, 3)))
        self.assertEqual(ctx.exception.count, 0)

    def test_k_nearest_sorted(self):
        query = np.array([0.1, -0.2, 0.3])
        result = self.index.k_nearest(query, 10)
        self.assertEqual(result.shape, (10, 3))
        dists = np.linalg.norm(result - query, axis=1)
        self.assertTrue(np.all(np.diff(dists) >= 0.0))

        # matches brute force
        brute = np.sort(np.linalg.norm(self.points - query, axis=1))[:10]
        np.testing.assert_allclose(dists, brute)

    def test_k_nearest_indices(self):
        query = self.points[17]
        indices = self.index.k_nearest_indices(query, 5)
        self.assertEqual(len(indices), 5)
        self.assertEqual(indices[0], 17)
        np.testing.assert_array_equal(self.index.k_nearest(query, 5), self.points[indices])

    def test_k_larger_than_point_count(self):
        index = SearchIndex(self.points[:4])
        self.assertEqual(len(index.k_nearest([0.0, 0.0, 0.0], 10)), 4)
        self.assertEqual(len(index.k_nearest([0.0, 0.0, 0.0], 1)), 1)
        self.assertEqual(len(index.k_nearest([0.0, 0.0, 0.0], 0)), 0)

    def test_single_point(self):
        index = SearchIndex([[1.0, 2.0, 3.0]])
        np.testing.assert_array_equal(index.k_nearest([0.0, 0.0, 0.0], 3), [[1.0, 2.0, 3.0]])

    def test_radius_inclusive(self):
        points = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 2.0, 0.0], [0.0, 0.0, 0.5]])
        index = SearchIndex(points)
        found = sorted(index.radius_indices([0.0, 0.0, 0.0], 1.0).tolist())
        self.assertEqual(found, [0, 1, 3])
        self.assertEqual(len(index.radius([0.0, 0.0, 0.0], 0.1)), 1)
        self.assertEqual(len(index.radius([10.0, 0.0, 0.0], 1.0)), 0)

    def test_batch_query(self):
        dists, indices = self.index.query(self.points[:20], 4)
        self.assertEqual(dists.shape, (20, 4))
        self.assertEqual(indices.shape, (20, 4))
        np.testing.assert_array_equal(indices[:, 0], np.arange(20))
        self.assertTrue(np.all(np.diff(dists, axis=1) >= 0.0))

    def test_threads(self):
        index = SearchIndex(self.points, num_threads=2)
        self.assertEqual(index.workers, 2)
        self.assertEqual(self.index.workers, -1)
        np.testing.assert_array_equal(index.query(self.points, 3)[1], self.index.query(self.points, 3)[1])


if __name__ == "__main__":
    unittest.main(verbosity=2)
