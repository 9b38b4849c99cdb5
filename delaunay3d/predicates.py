"""
Exact orientation and in-sphere predicates for 3D Delaunay construction.

Both predicates are evaluated in two stages. The determinant is first computed
in float64 with PyTorch, batched over any number of tetrahedra, together with
a forward error bound (Shewchuk's static "A" bounds for the same evaluation
order). Every entry whose magnitude does not clear its bound is then
re-evaluated exactly with `fractions.Fraction`, which represents the float64
inputs without rounding. The returned signs are therefore exact for all
finite inputs, including ties (cospherical or coplanar points).

Sign conventions:
- `orient3d(a, b, c, d)` is the sign of det[b-a, c-a, d-a]; positive when
  (a, b, c) is counter-clockwise seen from d.
- `in_sphere_sign(a, b, c, d, query)` is positive iff `query` lies strictly
  inside the circumsphere of (a, b, c, d), independent of vertex order; zero
  when `query` is on the sphere or when (a, b, c, d) is flat.
"""
import logging
from fractions import Fraction

import torch

from .geometry_core import Point

logger = logging.getLogger(__name__)

_EPS = 2.0 ** -53 # Unit roundoff for float64.
_O3D_ERRBOUND = (7.0 + 56.0 * _EPS) * _EPS
_ISP_ERRBOUND = (16.0 + 224.0 * _EPS) * _EPS


def _sign(value) -> int:
    return (value > 0) - (value < 0)


# --- Exact fallbacks (rational arithmetic) ---
def _orient3d_exact(a, b, c, d) -> int:
    """Sign of det[a-d, b-d, c-d] over exact rationals; inputs are (x, y, z) float tuples."""
    a, b, c, d = ([Fraction(v) for v in p] for p in (a, b, c, d))
    adx, ady, adz = a[0] - d[0], a[1] - d[1], a[2] - d[2]
    bdx, bdy, bdz = b[0] - d[0], b[1] - d[1], b[2] - d[2]
    cdx, cdy, cdz = c[0] - d[0], c[1] - d[1], c[2] - d[2]
    det = (adz * (bdx*cdy - cdx*bdy)
           + bdz * (cdx*ady - adx*cdy)
           + cdz * (adx*bdy - bdx*ady))
    return _sign(det)


def _insphere_exact(a, b, c, d, e) -> int:
    """Sign of the lifted 4x4 determinant with rows (p-e, |p-e|^2), over exact rationals."""
    rows = []
    for p in (a, b, c, d):
        dx, dy, dz = (Fraction(p[i]) - Fraction(e[i]) for i in range(3))
        rows.append((dx, dy, dz, dx*dx + dy*dy + dz*dz))
    (aex, aey, aez, alift), (bex, bey, bez, blift), (cex, cey, cez, clift), (dex, dey, dez, dlift) = rows

    ab = aex*bey - bex*aey
    bc = bex*cey - cex*bey
    cd = cex*dey - dex*cey
    da = dex*aey - aex*dey
    ac = aex*cey - cex*aey
    bd = bex*dey - dex*bey

    abc = aez*bc - bez*ac + cez*ab
    bcd = bez*cd - cez*bd + dez*bc
    cda = cez*da + dez*ac + aez*cd
    dab = dez*ab + aez*bd + bez*da

    det = (dlift*abc - clift*dab) + (blift*cda - alift*bcd)
    return _sign(det)


# --- Floating-point filters (batched) ---
def _orient3d_filtered(coords: torch.Tensor):
    """
    Float64 orientation determinant det[a-d, b-d, c-d] and its error bound.

    Args:
        coords (torch.Tensor): Tensor of shape (M, 4, 3), vertices a, b, c, d per row.

    Returns:
        Tuple[torch.Tensor, torch.Tensor]: determinants and error bounds, both shape (M,).
    """
    a, b, c, d = coords[:, 0], coords[:, 1], coords[:, 2], coords[:, 3]
    ad, bd, cd = a - d, b - d, c - d
    adx, ady, adz = ad[:, 0], ad[:, 1], ad[:, 2]
    bdx, bdy, bdz = bd[:, 0], bd[:, 1], bd[:, 2]
    cdx, cdy, cdz = cd[:, 0], cd[:, 1], cd[:, 2]

    bdxcdy, cdxbdy = bdx * cdy, cdx * bdy
    cdxady, adxcdy = cdx * ady, adx * cdy
    adxbdy, bdxady = adx * bdy, bdx * ady

    det = adz * (bdxcdy - cdxbdy) + bdz * (cdxady - adxcdy) + cdz * (adxbdy - bdxady)
    permanent = ((bdxcdy.abs() + cdxbdy.abs()) * adz.abs()
                 + (cdxady.abs() + adxcdy.abs()) * bdz.abs()
                 + (adxbdy.abs() + bdxady.abs()) * cdz.abs())
    return det, _O3D_ERRBOUND * permanent


def _insphere_filtered(coords: torch.Tensor, query: torch.Tensor):
    """
    Float64 in-sphere determinant for each tetrahedron against one query point.

    Args:
        coords (torch.Tensor): Tensor of shape (M, 4, 3).
        query (torch.Tensor): Tensor of shape (3,).

    Returns:
        Tuple[torch.Tensor, torch.Tensor]: determinants and error bounds, both shape (M,).
    """
    rel = coords - query.unsqueeze(0).unsqueeze(0) # (M, 4, 3)
    lift = rel[:, :, 0] * rel[:, :, 0] + rel[:, :, 1] * rel[:, :, 1] + rel[:, :, 2] * rel[:, :, 2] # (M, 4)
    aex, aey, aez = rel[:, 0, 0], rel[:, 0, 1], rel[:, 0, 2]
    bex, bey, bez = rel[:, 1, 0], rel[:, 1, 1], rel[:, 1, 2]
    cex, cey, cez = rel[:, 2, 0], rel[:, 2, 1], rel[:, 2, 2]
    dex, dey, dez = rel[:, 3, 0], rel[:, 3, 1], rel[:, 3, 2]
    alift, blift, clift, dlift = lift[:, 0], lift[:, 1], lift[:, 2], lift[:, 3]

    aexbey, bexaey = aex * bey, bex * aey
    bexcey, cexbey = bex * cey, cex * bey
    cexdey, dexcey = cex * dey, dex * cey
    dexaey, aexdey = dex * aey, aex * dey
    aexcey, cexaey = aex * cey, cex * aey
    bexdey, dexbey = bex * dey, dex * bey

    ab = aexbey - bexaey
    bc = bexcey - cexbey
    cd = cexdey - dexcey
    da = dexaey - aexdey
    ac = aexcey - cexaey
    bd = bexdey - dexbey

    abc = aez * bc - bez * ac + cez * ab
    bcd = bez * cd - cez * bd + dez * bc
    cda = cez * da + dez * ac + aez * cd
    dab = dez * ab + aez * bd + bez * da
    det = (dlift * abc - clift * dab) + (blift * cda - alift * bcd)

    ab_p = aexbey.abs() + bexaey.abs()
    bc_p = bexcey.abs() + cexbey.abs()
    cd_p = cexdey.abs() + dexcey.abs()
    da_p = dexaey.abs() + aexdey.abs()
    ac_p = aexcey.abs() + cexaey.abs()
    bd_p = bexdey.abs() + dexbey.abs()
    permanent = ((cd_p * bez.abs() + bd_p * cez.abs() + bc_p * dez.abs()) * alift
                 + (da_p * cez.abs() + ac_p * dez.abs() + cd_p * aez.abs()) * blift
                 + (ab_p * dez.abs() + bd_p * aez.abs() + da_p * bez.abs()) * clift
                 + (bc_p * aez.abs() + ac_p * bez.abs() + ab_p * cez.abs()) * dlift)
    return det, _ISP_ERRBOUND * permanent


def _as_cell_tensor(coords) -> torch.Tensor:
    coords = torch.as_tensor(coords, dtype=torch.float64)
    if coords.ndim != 3 or coords.shape[1:] != (4, 3):
        raise ValueError(f"Cell coordinates must have shape (M, 4, 3), got {tuple(coords.shape)}.")
    return coords


# --- Public predicates ---
def orient3d_signs(coords: torch.Tensor) -> torch.Tensor:
    """
    Exact orientation signs for a batch of tetrahedra.

    Args:
        coords (torch.Tensor): Tensor of shape (M, 4, 3); row i holds vertices
                               (a, b, c, d) of tetrahedron i.

    Returns:
        torch.Tensor: int64 tensor of shape (M,) with entries in {-1, 0, 1}, the
                      sign of det[b-a, c-a, d-a].
    """
    coords = _as_cell_tensor(coords)
    det, errbound = _orient3d_filtered(coords)
    # det[a-d, b-d, c-d] == -det[b-a, c-a, d-a]
    signs = -torch.sign(det).to(torch.int64)
    uncertain = torch.nonzero(det.abs() <= errbound).flatten().tolist()
    for i in uncertain:
        signs[i] = -_orient3d_exact(*coords[i].tolist())
    if uncertain:
        logger.debug("orient3d: %d of %d signs resolved exactly.", len(uncertain), coords.shape[0])
    return signs


def in_sphere_signs(coords: torch.Tensor, query) -> torch.Tensor:
    """
    Exact, orientation-independent in-sphere signs for a batch of tetrahedra.

    Args:
        coords (torch.Tensor): Tensor of shape (M, 4, 3) of tetrahedron vertices.
        query: The query point, a `Point` or anything convertible to a tensor of shape (3,).

    Returns:
        torch.Tensor: int64 tensor of shape (M,). Entry i is 1 if `query` lies
                      strictly inside the circumsphere of tetrahedron i, -1 if
                      strictly outside, and 0 if on the sphere or if the
                      tetrahedron is flat.
    """
    coords = _as_cell_tensor(coords)
    if isinstance(query, Point):
        query = query.as_tuple()
    query = torch.as_tensor(query, dtype=torch.float64).reshape(3)
    if coords.shape[0] == 0:
        return torch.zeros(0, dtype=torch.int64)

    det, errbound = _insphere_filtered(coords, query)
    raw = torch.sign(det).to(torch.int64)
    uncertain = torch.nonzero(det.abs() <= errbound).flatten().tolist()
    if uncertain:
        query_tuple = tuple(query.tolist())
        for i in uncertain:
            raw[i] = _insphere_exact(*coords[i].tolist(), query_tuple)
        logger.debug("insphere: %d of %d signs resolved exactly.", len(uncertain), coords.shape[0])

    # raw > 0 means inside when det[a-d, b-d, c-d] > 0, i.e. when orient3d < 0
    return -orient3d_signs(coords) * raw


def orient3d(a: Point, b: Point, c: Point, d: Point) -> int:
    """Exact sign of det[b-a, c-a, d-a] for four points."""
    coords = torch.tensor([[a.as_tuple(), b.as_tuple(), c.as_tuple(), d.as_tuple()]], dtype=torch.float64)
    return int(orient3d_signs(coords)[0])


def in_sphere_sign(a: Point, b: Point, c: Point, d: Point, query: Point) -> int:
    """
    Exact in-sphere test of `query` against the circumsphere of (a, b, c, d).

    Returns:
        int: 1 if strictly inside, -1 if strictly outside, 0 if on the sphere
             or if a, b, c, d are coplanar.
    """
    coords = torch.tensor([[a.as_tuple(), b.as_tuple(), c.as_tuple(), d.as_tuple()]], dtype=torch.float64)
    return int(in_sphere_signs(coords, query)[0])
