"""
Computes the 3D Delaunay tetrahedralization of a point set with the Bowyer-Watson algorithm.

The construction starts from a single super-tetrahedron that strictly contains
every input point and inserts the points one at a time. For each insertion the
cells whose circumsphere strictly contains the new point are removed, and the
resulting cavity is re-filled with cells joining its boundary faces to the new
point. Cells that still touch a super-tetrahedron corner at the end are dropped,
and the remaining cells are flattened into an undirected edge set.

In-sphere tests run batched over all current cells through the exact predicates
in `predicates.py`, so ties (cospherical points) are resolved consistently: a
point on a circumsphere is never treated as inside it.

Entry points:
- `tetrahedralize`: edge skeleton of the triangulation as a set of `Edge`.
- `delaunay_tetrahedra`: the triangulation cells themselves.
- `delaunay_triangulation_3d` / `delaunay_edges_3d`: the same results as index
  tensors over an (N, 3) input tensor.
"""
import logging
from collections import defaultdict
from typing import Iterable, List, Optional, Set, Tuple

import torch

from .geometry_core import (
    FUZZY_TOLERANCE, SUPER_TETRAHEDRON_SCALE, Cell, DegenerateInputError, Edge, Face, Point,
    as_points, deduplicate_points,
)
from .predicates import in_sphere_signs, orient3d_signs

logger = logging.getLogger(__name__)


def make_super_tetrahedron(points: List[Point], scale: float = SUPER_TETRAHEDRON_SCALE) -> Cell:
    """
    Builds a tetrahedron whose interior strictly contains every point in `points`.

    The axis-aligned bounding box is found in one pass. With `d = 2 * max(dx, dy, dz)`
    (1 when all points coincide) the corner `a` sits `margin = scale * d` below the box
    minimum on every axis, and the other three corners are offset from `a` along x, y
    and z by `3 * (margin + d)`. Every size is proportional to the data extent, so
    scaling the input by a power of two scales the construct exactly.

    A corner too close to the data falls inside the circumspheres of flat cells near
    the hull, and those cells are lost when corner cells are stripped. Raise `scale`
    for inputs with extremely flat hull cells.

    Args:
        points (List[Point]): Non-empty list of points.
        scale (float, optional): Corner distance in units of `d`, at least 1.
                                 Defaults to `SUPER_TETRAHEDRON_SCALE`.

    Returns:
        Cell: The bounding tetrahedron.

    Raises:
        ValueError: If `points` is empty or `scale` is below 1.
    """
    if not points:
        raise ValueError("Cannot build a bounding tetrahedron for an empty point set.")
    if scale < 1.0:
        raise ValueError(f"Super-tetrahedron scale must be at least 1, got {scale}.")

    x_min = x_max = points[0].x
    y_min = y_max = points[0].y
    z_min = z_max = points[0].z
    for p in points[1:]:
        if p.x < x_min: x_min = p.x
        elif p.x > x_max: x_max = p.x
        if p.y < y_min: y_min = p.y
        elif p.y > y_max: y_max = p.y
        if p.z < z_min: z_min = p.z
        elif p.z > z_max: z_max = p.z

    d_max = 2.0 * max(x_max - x_min, y_max - y_min, z_max - z_min)
    if d_max == 0.0:
        d_max = 1.0
    margin = scale * d_max
    # each point is between margin and margin + d_max / 2 from the corner along every
    # axis; the three offsets sum to less than the leg, so the points are strictly inside
    leg = 3.0 * (margin + d_max)

    x0, y0, z0 = x_min - margin, y_min - margin, z_min - margin
    return Cell(
        Point(x0, y0, z0),
        Point(x0 + leg, y0, z0),
        Point(x0, y0 + leg, z0),
        Point(x0, y0, z0 + leg),
    )


def extract_boundary_faces(faces: List[Face]) -> List[Face]:
    """
    Returns the faces that occur exactly once in `faces`.

    A face shared by two removed cells is interior to the cavity; both copies are
    marked discarded. A face is only ever matched against the other entries, never
    against itself.
    """
    counts = defaultdict(int)
    for face in faces:
        counts[face.key] += 1
    for face in faces:
        if counts[face.key] > 1:
            face.discarded = True
    return [face for face in faces if not face.discarded]


def _cell_coordinates(cells: List[Cell]) -> torch.Tensor:
    if not cells:
        return torch.empty((0, 4, 3), dtype=torch.float64)
    return torch.tensor([[p.as_tuple() for p in cell.points] for cell in cells], dtype=torch.float64)


def _bowyer_watson(points: List[Point], super_cell: Cell) -> List[Cell]:
    """Inserts `points` in order into the triangulation seeded by `super_cell`."""
    cells: List[Cell] = [super_cell]
    coords = _cell_coordinates(cells)

    for step, point in enumerate(points):
        inside = in_sphere_signs(coords, point) > 0

        faces: List[Face] = []
        for idx in torch.nonzero(inside).flatten().tolist():
            cells[idx].discarded = True
            faces.extend(cells[idx].faces())

        boundary = extract_boundary_faces(faces)
        new_cells = [Cell(f.a, f.b, f.c, point) for f in boundary]

        cells = [cell for cell in cells if not cell.discarded] + new_cells
        coords = torch.cat([coords[~inside], _cell_coordinates(new_cells)], dim=0)

        logger.debug("Step %d: removed %d cells, %d boundary faces, %d cells total.",
                     step, int(inside.sum()), len(boundary), len(cells))
    return cells


def corner_tolerance(super_cell: Cell, points: Iterable[Point]) -> float:
    """
    Squared-distance tolerance for recognising super-tetrahedron corners.

    `FUZZY_TOLERANCE`, capped at the squared distance from the nearest input point
    to any corner, so that no input point is ever mistaken for a corner. Independent
    of the merge tolerance passed by the caller.
    """
    nearest = min(corner.squared_distance(p) for corner in super_cell.points for p in points)
    return min(FUZZY_TOLERANCE, nearest)


def _without_super_vertices(cells: Iterable[Cell], super_cell: Cell, tol: float) -> List[Cell]:
    return [
        cell for cell in cells
        if not any(cell.contains_point(corner, tol) for corner in super_cell.points)
    ]


def extract_edges(cells: Iterable[Cell], super_cell: Cell, tol: float = FUZZY_TOLERANCE) -> Set[Edge]:
    """
    Flattens the cells that do not touch a super-tetrahedron corner into an edge set.

    Args:
        cells (Iterable[Cell]): Final cells of the construction.
        super_cell (Cell): The bounding tetrahedron the construction was seeded with.
        tol (float, optional): Squared-distance tolerance for corner detection, see
                               `corner_tolerance`.

    Returns:
        Set[Edge]: The six edges of every remaining cell, deduplicated.
    """
    edges: Set[Edge] = set()
    for cell in _without_super_vertices(cells, super_cell, tol):
        edges.update(cell.edges())
    return edges


def _construct(points, tol: float, scale: float) -> Optional[Tuple[List[Cell], Cell, float]]:
    """Validates input and runs the construction; (cells, super_cell, corner tolerance) or None."""
    pts = as_points(points)
    if not pts:
        return None

    unique = deduplicate_points(pts, tol)
    if len(unique) == 1 and len(pts) > 1:
        raise DegenerateInputError(
            f"All {len(pts)} input points lie within tolerance {tol} of {unique[0]}.")

    super_cell = make_super_tetrahedron(unique, scale)
    cells = _bowyer_watson(unique, super_cell)
    logger.debug("Inserted %d points into %d cells.", len(unique), len(cells))
    return cells, super_cell, corner_tolerance(super_cell, unique)


def tetrahedralize(points, tol: float = FUZZY_TOLERANCE,
                   scale: float = SUPER_TETRAHEDRON_SCALE) -> Optional[Set[Edge]]:
    """
    Computes the edge skeleton of the 3D Delaunay tetrahedralization of `points`.

    Args:
        points: Sequence of `Point` (or 3-sequences of numbers). Insertion follows
                this order.
        tol (float, optional): Squared-distance tolerance. Input points closer than
                               this to an earlier point are merged into it.
                               Defaults to `FUZZY_TOLERANCE`.
        scale (float, optional): Super-tetrahedron corner distance in data extents,
                                 see `make_super_tetrahedron`. Defaults to
                                 `SUPER_TETRAHEDRON_SCALE`.

    Returns:
        Optional[Set[Edge]]: None for empty input. Otherwise the set of undirected
                             edges of all Delaunay cells; endpoints are always input
                             points. A single point, or coplanar input, gives an
                             empty set.

    Raises:
        InvalidPointError: If a coordinate is not a finite number.
        DegenerateInputError: If two or more points are given and all of them merge
                              into one.
    """
    result = _construct(points, tol, scale)
    if result is None:
        return None
    cells, super_cell, corner_tol = result
    return extract_edges(cells, super_cell, corner_tol)


def delaunay_tetrahedra(points, tol: float = FUZZY_TOLERANCE,
                        scale: float = SUPER_TETRAHEDRON_SCALE) -> List[Cell]:
    """
    Computes the cells of the 3D Delaunay tetrahedralization of `points`.

    Same input handling as `tetrahedralize`; returns an empty list for empty input.
    """
    result = _construct(points, tol, scale)
    if result is None:
        return []
    cells, super_cell, corner_tol = result
    return _without_super_vertices(cells, super_cell, corner_tol)


# --- Tensor interface ---
def _points_from_tensor(points: torch.Tensor) -> List[Point]:
    if not isinstance(points, torch.Tensor):
        raise ValueError("Input points must be a PyTorch tensor.")
    if points.ndim != 2 or points.shape[1] != 3:
        raise ValueError("Input points must be a tensor of shape (N, 3).")
    return [Point(*row) for row in points.detach().to(torch.float64).cpu().tolist()]


def _index_of(points: List[Point]) -> dict:
    index = {}
    for i, p in enumerate(points):
        index.setdefault(p, i)
    return index


def delaunay_triangulation_3d(points: torch.Tensor, tol: float = FUZZY_TOLERANCE) -> torch.Tensor:
    """
    Computes the 3D Delaunay tetrahedralization of an (N, 3) point tensor.

    Args:
        points (torch.Tensor): Tensor of shape (N, 3).
        tol (float, optional): Squared-distance merge tolerance, see `tetrahedralize`.

    Returns:
        torch.Tensor: Long tensor of shape (M, 4). Each row holds the indices of the
                      four vertices of one tetrahedron, ordered so that
                      det[p1-p0, p2-p0, p3-p0] > 0. Duplicate points resolve to
                      their first index. Empty `(0, 4)` when N < 4.

    Raises:
        ValueError: If `points` is not an (N, 3) tensor.
    """
    pts = _points_from_tensor(points)
    if len(pts) < 4:
        return torch.empty((0, 4), dtype=torch.long, device=points.device)

    cells = delaunay_tetrahedra(pts, tol)
    if not cells:
        return torch.empty((0, 4), dtype=torch.long, device=points.device)

    index = _index_of(pts)
    tets = [[index[p] for p in cell.points] for cell in cells]
    orientations = orient3d_signs(_cell_coordinates(cells)).tolist()
    for tet, orientation in zip(tets, orientations):
        if orientation < 0:
            tet[1], tet[2] = tet[2], tet[1]
    return torch.tensor(tets, dtype=torch.long, device=points.device)


def delaunay_edges_3d(points: torch.Tensor, tol: float = FUZZY_TOLERANCE) -> torch.Tensor:
    """
    Computes the Delaunay edge skeleton of an (N, 3) point tensor as index pairs.

    Returns:
        torch.Tensor: Long tensor of shape (E, 2), each row `(i, j)` with `i < j`,
                      rows in lexicographic order. Empty `(0, 2)` for fewer than two
                      points.
    """
    pts = _points_from_tensor(points)
    edges = tetrahedralize(pts, tol) if pts else None
    if not edges:
        return torch.empty((0, 2), dtype=torch.long, device=points.device)

    index = _index_of(pts)
    pairs = sorted(tuple(sorted((index[e.a], index[e.b]))) for e in edges)
    return torch.tensor(pairs, dtype=torch.long, device=points.device)
