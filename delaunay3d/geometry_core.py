"""
Core geometric entities for 3D Delaunay tetrahedralization.

This module provides the value types the incremental construction works on:
- Tolerance constants used for fuzzy point matching and the bounding construct.
- `Point`, a hashable 3D coordinate with a separate fuzzy comparator.
- `Edge`, an undirected segment whose endpoints are stored in canonical order.
- `Face` and `Cell`, the triangle and tetrahedron used during construction.
- Input coercion and validation helpers shared by the public entry points.

Structural equality (exact coordinates) is what keys sets and dicts. Fuzzy
equality (`Point.almost_equal`) is a distance test under `FUZZY_TOLERANCE`
and is only used for deduplication and bounding-corner detection; it is not
transitive and never stands in for `==`.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple

logger = logging.getLogger(__name__)

FUZZY_TOLERANCE = 0.01 # Squared-distance threshold for "almost equal" points.
SUPER_TETRAHEDRON_SCALE = 100.0 # Corner distance of the bounding tetrahedron, in data extents.


class Delaunay3DError(ValueError):
    """Base class for errors raised on invalid tetrahedralization input."""


class InvalidPointError(Delaunay3DError):
    """Raised for NaN, infinite or malformed point coordinates."""


class DegenerateInputError(Delaunay3DError):
    """Raised when several input points collapse onto a single location."""


@dataclass(frozen=True)
class Point:
    """
    A point in 3D space.

    Equality and hashing are exact over the three coordinates, so points can be
    used as set members and dict keys. Coordinates must be finite; `-0.0` is
    stored as `0.0` so that equal points always hash alike.
    """
    x: float
    y: float
    z: float

    def __post_init__(self):
        for name in ("x", "y", "z"):
            try:
                value = float(getattr(self, name))
            except (TypeError, ValueError) as e:
                raise InvalidPointError(f"Coordinate {name}={getattr(self, name)!r} is not a number.") from e
            if not math.isfinite(value):
                raise InvalidPointError(f"Coordinate {name}={value} is not finite.")
            object.__setattr__(self, name, value + 0.0) # -0.0 + 0.0 == +0.0

    def __iter__(self):
        yield self.x; yield self.y; yield self.z

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def squared_distance(self, other: "Point") -> float:
        dx = self.x - other.x
        dy = self.y - other.y
        dz = self.z - other.z
        return dx*dx + dy*dy + dz*dz

    def almost_equal(self, other: "Point", tol: float = FUZZY_TOLERANCE) -> bool:
        """True if the squared distance to `other` is strictly below `tol`."""
        return self.squared_distance(other) < tol


@dataclass(frozen=True)
class Edge:
    """
    An undirected edge of the triangulation.

    Endpoints are reordered on construction so that `a` precedes `b`
    lexicographically; `Edge(p, q)` and `Edge(q, p)` are therefore equal and
    hash alike.
    """
    a: Point
    b: Point

    def __post_init__(self):
        if self.b.as_tuple() < self.a.as_tuple():
            a, b = self.b, self.a
            object.__setattr__(self, "a", a)
            object.__setattr__(self, "b", b)

    def __iter__(self):
        yield self.a; yield self.b

    def length(self) -> float:
        return math.sqrt(self.a.squared_distance(self.b))


FaceKey = Tuple[Tuple[float, float, float], Tuple[float, float, float], Tuple[float, float, float]]


@dataclass
class Face:
    """A triangular face collected while carving out one insertion cavity."""
    a: Point
    b: Point
    c: Point
    discarded: bool = field(default=False, compare=False)

    @property
    def key(self) -> FaceKey:
        # sorted vertex triple: the same face reached from two cells gets one key
        return tuple(sorted((self.a.as_tuple(), self.b.as_tuple(), self.c.as_tuple())))


@dataclass
class Cell:
    """
    A tetrahedron of the evolving triangulation.

    `discarded` marks a cell whose circumsphere has been violated by the point
    currently being inserted; such cells are dropped at the end of the step.
    """
    a: Point
    b: Point
    c: Point
    d: Point
    discarded: bool = field(default=False, compare=False)

    @property
    def points(self) -> Tuple[Point, Point, Point, Point]:
        return (self.a, self.b, self.c, self.d)

    def faces(self) -> List[Face]:
        """The four triangular faces, (a,b,c), (a,b,d), (a,c,d) and (b,c,d)."""
        return [
            Face(self.a, self.b, self.c),
            Face(self.a, self.b, self.d),
            Face(self.a, self.c, self.d),
            Face(self.b, self.c, self.d),
        ]

    def edges(self) -> List[Edge]:
        return [
            Edge(self.a, self.b),
            Edge(self.b, self.c),
            Edge(self.c, self.a),
            Edge(self.d, self.a),
            Edge(self.d, self.b),
            Edge(self.d, self.c),
        ]

    def contains_point(self, point: Point, tol: float = FUZZY_TOLERANCE) -> bool:
        """True if `point` is fuzzy-equal to one of the four vertices."""
        return any(point.almost_equal(v, tol) for v in self.points)

    def volume(self) -> float:
        """Unsigned volume, |det(b-a, c-a, d-a)| / 6, in floating point."""
        ux, uy, uz = self.b.x - self.a.x, self.b.y - self.a.y, self.b.z - self.a.z
        vx, vy, vz = self.c.x - self.a.x, self.c.y - self.a.y, self.c.z - self.a.z
        wx, wy, wz = self.d.x - self.a.x, self.d.y - self.a.y, self.d.z - self.a.z
        det = ux * (vy*wz - vz*wy) - uy * (vx*wz - vz*wx) + uz * (vx*wy - vy*wx)
        return abs(det) / 6.0


def as_point(value) -> Point:
    """Coerces a `Point` or any 3-element sequence of numbers into a `Point`."""
    if isinstance(value, Point):
        return value
    try:
        coords = tuple(value)
    except TypeError as e:
        raise InvalidPointError(f"Cannot interpret {value!r} as a 3D point.") from e
    if len(coords) != 3:
        raise InvalidPointError(f"Expected 3 coordinates, got {len(coords)}: {value!r}.")
    return Point(*coords)


def as_points(values: Iterable) -> List[Point]:
    return [as_point(v) for v in values]


def deduplicate_points(points: Sequence[Point], tol: float = FUZZY_TOLERANCE) -> List[Point]:
    """
    Drops every point that is fuzzy-equal to an earlier kept point.

    The first occurrence wins, so the result is an order-preserving subset of
    `points` in which no two points are within `tol` (squared distance) of each
    other. `tol <= 0` keeps every structurally distinct point.

    Args:
        points (Sequence[Point]): Input points in insertion order.
        tol (float, optional): Squared-distance merge threshold. Defaults to
                               `FUZZY_TOLERANCE`.

    Returns:
        List[Point]: The kept points.
    """
    kept: List[Point] = []
    seen = set()
    for p in points:
        if p in seen:
            continue
        if any(p.almost_equal(q, tol) for q in kept):
            continue
        seen.add(p)
        kept.append(p)

    n_near = len(set(points)) - len(kept)
    if n_near:
        logger.warning("Merged %d near-coincident input point(s) within tolerance %g.", n_near, tol)
    return kept
