"""
Unit tests for the 3D Delaunay construction in `delaunay_3d.py`.

This module tests:
- The bounding super-tetrahedron and cavity boundary extraction helpers.
- The `tetrahedralize` edge skeleton on empty, single-point, tetrahedron, cube,
  coplanar and random inputs, including the empty-circumsphere property.
- Hull coverage (cell volumes sum to the hull volume) and near-flat hull cells.
- Input validation (non-finite, fully coincident and near-coincident points).
- The index-tensor entry points `delaunay_triangulation_3d` and `delaunay_edges_3d`,
  including invariance under translation and uniform scaling.
"""
import itertools
import unittest

import torch

from ..delaunay_3d import (
    corner_tolerance, delaunay_edges_3d, delaunay_tetrahedra, delaunay_triangulation_3d,
    extract_boundary_faces, extract_edges, make_super_tetrahedron, tetrahedralize,
)
from ..geometry_core import FUZZY_TOLERANCE, Cell, DegenerateInputError, Edge, InvalidPointError, Point
from ..predicates import in_sphere_sign, orient3d, orient3d_signs

UNIT_TET = [Point(0, 0, 0), Point(1, 0, 0), Point(0, 1, 0), Point(0, 0, 1)]
CUBE = [Point(float(i), float(j), float(k)) for i in range(2) for j in range(2) for k in range(2)]
OCTAHEDRON = [
    Point(1, 0, 0), Point(-1, 0, 0), Point(0, 1, 0), Point(0, -1, 0), Point(0, 0, 1), Point(0, 0, -1),
    Point(0.125, 0.25, -0.0625), Point(-0.25, 0.0625, 0.125), Point(0.0625, -0.1875, 0.25),
]


def _strictly_inside(cell: Cell, p: Point) -> bool:
    """True if `p` is on the same side of every face as the opposite vertex."""
    a, b, c, d = cell.points
    for face, opposite in [((b, c, d), a), ((a, c, d), b), ((a, b, d), c), ((a, b, c), d)]:
        side = orient3d(*face, p)
        if side == 0 or side != orient3d(*face, opposite):
            return False
    return True


def _random_points(n, seed, extent=100.0):
    gen = torch.Generator().manual_seed(seed)
    coords = torch.rand((n, 3), generator=gen, dtype=torch.float64) * extent
    return [Point(*row) for row in coords.tolist()]


class TestDelaunay3DHelpers(unittest.TestCase):
    """Tests for the super-tetrahedron builder and boundary-face extraction."""

    def test_super_tetrahedron_contains_points(self):
        for pts in [UNIT_TET, CUBE, OCTAHEDRON, _random_points(30, seed=3), [Point(5, 5, 5)]]:
            super_cell = make_super_tetrahedron(pts)
            for p in pts:
                self.assertTrue(_strictly_inside(super_cell, p), f"{p} not strictly inside {super_cell}.")

    def test_super_tetrahedron_contains_bounding_box_corners(self):
        super_cell = make_super_tetrahedron(CUBE, scale=2.0)
        for corner in CUBE:
            self.assertTrue(_strictly_inside(super_cell, corner))

    def test_super_tetrahedron_corner_below_minimum(self):
        # cube: d = 2, so the corner sits scale * d below the minimum
        super_cell = make_super_tetrahedron(CUBE, scale=5.0)
        self.assertEqual(super_cell.a, Point(-10, -10, -10))
        self.assertEqual(super_cell.b, Point(26, -10, -10))
        self.assertEqual(orient3d(*super_cell.points), 1)

    def test_super_tetrahedron_scales_with_input(self):
        small = make_super_tetrahedron(UNIT_TET)
        large = make_super_tetrahedron([Point(p.x * 1024, p.y * 1024, p.z * 1024) for p in UNIT_TET])
        for p, q in zip(small.points, large.points):
            self.assertEqual(Point(p.x * 1024, p.y * 1024, p.z * 1024), q)

    def test_super_tetrahedron_single_point(self):
        super_cell = make_super_tetrahedron([Point(5, 5, 5)], scale=1.0)
        self.assertEqual(super_cell.a, Point(4, 4, 4))
        self.assertTrue(_strictly_inside(super_cell, Point(5, 5, 5)))

    def test_corner_tolerance_never_covers_input(self):
        points = [Point(p.x * 1e-3, p.y * 1e-3, p.z * 1e-3) for p in UNIT_TET]
        super_cell = make_super_tetrahedron(points, scale=1.0)
        tol = corner_tolerance(super_cell, points)
        self.assertLess(tol, FUZZY_TOLERANCE)
        for corner in super_cell.points:
            self.assertFalse(any(corner.almost_equal(p, tol) for p in points))
        self.assertEqual(corner_tolerance(make_super_tetrahedron(CUBE), CUBE), FUZZY_TOLERANCE)

    def test_super_tetrahedron_rejects_bad_input(self):
        with self.assertRaises(ValueError):
            make_super_tetrahedron([])
        with self.assertRaises(ValueError):
            make_super_tetrahedron(CUBE, scale=0.5)

    def test_shared_face_is_removed(self):
        apex_up, apex_down = Point(0, 0, 1), Point(0, 0, -1)
        base = (Point(0, 0, 0), Point(1, 0, 0), Point(0, 1, 0))
        faces = Cell(*base, apex_up).faces() + Cell(*base, apex_down).faces()
        boundary = extract_boundary_faces(faces)
        self.assertEqual(len(boundary), 6)
        self.assertNotIn(faces[0].key, {f.key for f in boundary})
        self.assertTrue(faces[0].discarded and faces[4].discarded)

    def test_face_does_not_cancel_against_itself(self):
        faces = Cell(*UNIT_TET).faces()
        self.assertEqual(extract_boundary_faces(faces), faces)
        self.assertEqual(extract_boundary_faces([]), [])

    def test_extract_edges_drops_super_cells(self):
        super_cell = make_super_tetrahedron(UNIT_TET)
        cells = [Cell(*UNIT_TET), Cell(super_cell.a, *UNIT_TET[1:])]
        self.assertEqual(extract_edges(cells, super_cell), set(Cell(*UNIT_TET).edges()))


class TestTetrahedralize(unittest.TestCase):
    """Tests for the `tetrahedralize` edge skeleton."""

    def _assert_empty_circumspheres(self, cells, points):
        for cell in cells:
            for p in points:
                self.assertLessEqual(in_sphere_sign(*cell.points, p), 0,
                                     f"{p} lies strictly inside the circumsphere of {cell}.")

    def test_empty_input(self):
        self.assertIsNone(tetrahedralize([]))
        self.assertEqual(delaunay_tetrahedra([]), [])

    def test_single_point(self):
        edges = tetrahedralize([Point(1, 2, 3)])
        self.assertIsNotNone(edges)
        self.assertEqual(edges, set())

    def test_two_and_three_points(self):
        self.assertEqual(tetrahedralize(UNIT_TET[:2]), set())
        self.assertEqual(tetrahedralize(UNIT_TET[:3]), set())

    def test_single_tetrahedron(self):
        edges = tetrahedralize(UNIT_TET)
        expected = {Edge(p, q) for p, q in itertools.combinations(UNIT_TET, 2)}
        self.assertEqual(edges, expected)
        self.assertEqual(len(edges), 6)

    def test_near_flat_tetrahedron(self):
        # circumsphere radius is about 21, far larger than the points' extent
        points = [Point(0, 0, 0), Point(1, 0, 0), Point(0, 1, 0), Point(0.3, 0.3, 0.01)]
        expected = {Edge(p, q) for p, q in itertools.combinations(points, 2)}
        self.assertEqual(tetrahedralize(points), expected)
        self.assertEqual(len(delaunay_tetrahedra(points)), 1)

    def test_large_merge_tolerance_keeps_cells(self):
        # tol only merges input points; corner detection does not depend on it
        points = [Point(p.x * 10, p.y * 10, p.z * 10) for p in UNIT_TET]
        edges = tetrahedralize(points, tol=50.0)
        self.assertEqual(len(edges), 6)

    def test_accepts_coordinate_tuples(self):
        edges = tetrahedralize([p.as_tuple() for p in UNIT_TET])
        self.assertEqual(edges, tetrahedralize(UNIT_TET))

    def test_edges_are_direction_independent(self):
        edges = tetrahedralize(UNIT_TET)
        for p, q in itertools.permutations(UNIT_TET, 2):
            self.assertIn(Edge(p, q), edges)

    def test_coplanar_points(self):
        points = [Point(0, 0, 0), Point(1, 0, 0), Point(0, 1, 0), Point(1, 1, 0)]
        self.assertEqual(tetrahedralize(points), set(), "Coplanar points bound no 3D cell.")

    def test_cube(self):
        cells = delaunay_tetrahedra(CUBE)
        self.assertGreaterEqual(len(cells), 5)
        self._assert_empty_circumspheres(cells, CUBE)
        self.assertAlmostEqual(sum(cell.volume() for cell in cells), 1.0, places=9)

        edges = tetrahedralize(CUBE)
        cube_edges = {Edge(p, q) for p, q in itertools.combinations(CUBE, 2)
                      if p.squared_distance(q) == 1.0}
        self.assertEqual(len(cube_edges), 12)
        self.assertTrue(cube_edges <= edges)
        self.assertEqual(edges, set(e for cell in cells for e in cell.edges()))

    def test_cells_cover_convex_hull(self):
        # cube corners plus interior points: the hull is the unit cube, volume 1
        gen = torch.Generator().manual_seed(5)
        interior = torch.rand((20, 3), generator=gen, dtype=torch.float64) * 0.9 + 0.05
        points = CUBE + [Point(*row) for row in interior.tolist()]
        cells = delaunay_tetrahedra(points, tol=1e-9)
        self._assert_empty_circumspheres(cells, points)
        self.assertAlmostEqual(sum(cell.volume() for cell in cells), 1.0, places=9)
        used = {p for cell in cells for p in cell.points}
        self.assertEqual(used, set(points), "Every input point is a vertex of some cell.")

    def test_endpoints_come_from_input(self):
        points = _random_points(25, seed=7)
        edges = tetrahedralize(points)
        self.assertTrue(edges)
        endpoints = {p for edge in edges for p in edge}
        self.assertTrue(endpoints <= set(points))
        super_cell = make_super_tetrahedron(points)
        for corner in super_cell.points:
            self.assertFalse(any(corner.almost_equal(p) for p in endpoints))

    def test_random_points_empty_circumsphere(self):
        for n, seed in [(10, 0), (20, 1)]:
            points = _random_points(n, seed)
            cells = delaunay_tetrahedra(points)
            self.assertGreaterEqual(len(cells), 1)
            self._assert_empty_circumspheres(cells, points)
            for cell in cells:
                self.assertNotEqual(orient3d(*cell.points), 0, "Flat cell in triangulation.")

    def test_idempotent(self):
        points = _random_points(15, seed=11)
        self.assertEqual(tetrahedralize(points), tetrahedralize(points))

    def test_exact_duplicates_are_ignored(self):
        points = UNIT_TET + [Point(0, 0, 0), Point(1, 0, 0)]
        self.assertEqual(tetrahedralize(points), tetrahedralize(UNIT_TET))

    def test_near_coincident_points_are_merged(self):
        points = UNIT_TET + [Point(0.01, 0.0, 0.0)]
        with self.assertLogs("delaunay3d.geometry_core", level="WARNING"):
            edges = tetrahedralize(points)
        self.assertEqual(edges, tetrahedralize(UNIT_TET))

    def test_construction_steps_are_logged(self):
        with self.assertLogs("delaunay3d.delaunay_3d", level="DEBUG"):
            tetrahedralize(UNIT_TET)

    def test_all_points_coincident_rejected(self):
        with self.assertRaises(DegenerateInputError):
            tetrahedralize([Point(1, 1, 1), Point(1, 1, 1)])
        with self.assertRaises(DegenerateInputError):
            tetrahedralize([Point(1, 1, 1), Point(1.02, 1, 1), Point(1, 1.03, 1)])

    def test_non_finite_input_rejected(self):
        with self.assertRaises(InvalidPointError):
            tetrahedralize([(0.0, 0.0, 0.0), (float("nan"), 1.0, 0.0)])
        with self.assertRaises(InvalidPointError):
            tetrahedralize([(0.0, 0.0, 0.0), (1.0, 1.0)])


class TestDelaunayTensorInterface(unittest.TestCase):
    """Tests for `delaunay_triangulation_3d` and `delaunay_edges_3d`."""

    def test_fewer_than_four_points(self):
        self.assertEqual(delaunay_triangulation_3d(torch.empty((0, 3))).shape, (0, 4))
        self.assertEqual(delaunay_triangulation_3d(torch.tensor([[0., 0., 0.], [1., 1., 1.]])).shape, (0, 4))
        self.assertEqual(delaunay_edges_3d(torch.empty((0, 3))).shape, (0, 2))
        self.assertEqual(delaunay_edges_3d(torch.tensor([[0., 0., 0.]])).shape, (0, 2))

    def test_rejects_bad_shape(self):
        with self.assertRaises(ValueError):
            delaunay_triangulation_3d(torch.zeros((4, 2)))
        with self.assertRaises(ValueError):
            delaunay_edges_3d([[0., 0., 0.]])

    def test_single_tetrahedron_indices(self):
        points = torch.tensor([p.as_tuple() for p in UNIT_TET], dtype=torch.float32)
        tets = delaunay_triangulation_3d(points)
        self.assertEqual(tets.shape, (1, 4))
        self.assertEqual(sorted(tets[0].tolist()), [0, 1, 2, 3])
        self.assertEqual(tets.dtype, torch.long)

        edges = delaunay_edges_3d(points)
        self.assertEqual(edges.tolist(), [list(pair) for pair in itertools.combinations(range(4), 2)])

    def test_cube_cells_positively_oriented(self):
        points = torch.tensor([p.as_tuple() for p in CUBE], dtype=torch.float64)
        tets = delaunay_triangulation_3d(points)
        self.assertGreaterEqual(tets.shape[0], 5)
        self.assertTrue(torch.all((tets >= 0) & (tets < 8)))
        self.assertTrue(torch.all(orient3d_signs(points[tets]) == 1))

    def test_duplicate_points_resolve_to_first_index(self):
        points = torch.tensor([[0., 0., 0.], [1., 0., 0.], [0., 1., 0.], [0., 0., 1.], [0., 0., 0.]])
        tets = delaunay_triangulation_3d(points)
        self.assertEqual(tets.shape, (1, 4))
        self.assertNotIn(4, tets.flatten().tolist())

    def test_translation_and_scaling_invariance(self):
        # dyadic coordinates: translating by integers and halving are exact
        points = torch.tensor([p.as_tuple() for p in OCTAHEDRON], dtype=torch.float64) * 0.5
        reference = delaunay_edges_3d(points, tol=1e-6)
        self.assertGreater(reference.shape[0], 12)

        translated = points + torch.tensor([8.0, -4.0, 2.0], dtype=torch.float64)
        self.assertTrue(torch.equal(delaunay_edges_3d(translated, tol=1e-6), reference))

        for factor in (0.5, 1024.0):
            scaled = points * factor
            self.assertTrue(torch.equal(delaunay_edges_3d(scaled, tol=1e-6), reference), f"Scaled by {factor}.")

    def test_near_flat_tetrahedron_scaled_up(self):
        points = torch.tensor([[0., 0., 0.], [1., 0., 0.], [0., 1., 0.], [0.3, 0.3, 0.01]], dtype=torch.float64)
        expected = [list(pair) for pair in itertools.combinations(range(4), 2)]
        for factor in (1.0, 16.0, 16.0 * 1024):
            self.assertEqual(delaunay_edges_3d(points * factor).tolist(), expected, f"Scaled by {factor}.")


if __name__ == '__main__':
    unittest.main(argv=['first-arg-is-ignored'], exit=False)
