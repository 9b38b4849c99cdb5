"""
delaunay3d: Bowyer-Watson 3D Delaunay tetrahedralization with exact predicates.

The main entry point is `tetrahedralize`, which returns the set of undirected
Delaunay edges of a point set. Cells and index-tensor variants are available
through `delaunay_tetrahedra`, `delaunay_triangulation_3d` and `delaunay_edges_3d`.
"""

__version__ = "0.1.0"

from .geometry_core import (
    FUZZY_TOLERANCE, SUPER_TETRAHEDRON_SCALE,
    Point, Edge, Face, Cell,
    Delaunay3DError, InvalidPointError, DegenerateInputError,
    as_point, deduplicate_points,
)
from .predicates import orient3d, in_sphere_sign, orient3d_signs, in_sphere_signs
from .delaunay_3d import (
    tetrahedralize, delaunay_tetrahedra, delaunay_triangulation_3d, delaunay_edges_3d,
    make_super_tetrahedron, extract_boundary_faces, extract_edges, corner_tolerance,
)

__all__ = [
    "FUZZY_TOLERANCE", "SUPER_TETRAHEDRON_SCALE",
    "Point", "Edge", "Face", "Cell",
    "Delaunay3DError", "InvalidPointError", "DegenerateInputError",
    "as_point", "deduplicate_points",
    "orient3d", "in_sphere_sign", "orient3d_signs", "in_sphere_signs",
    "tetrahedralize", "delaunay_tetrahedra", "delaunay_triangulation_3d", "delaunay_edges_3d",
    "make_super_tetrahedron", "extract_boundary_faces", "extract_edges", "corner_tolerance",
    "__version__",
]
