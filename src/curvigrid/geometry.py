"""
geometry.py

Polygon helpers used by the cell indexes: a small vertex-loop container, a
crossing-number containment test, exact vertex lookup, compaction, and the
tracing of a grid's outer boundary from its node arrays.

Public functions:
- `point_in_polygon(poly, x, y)` -> bool
- `vertex_index_of_point(poly, x, y)` -> Optional[int]
- `extent(poly)` -> (xmin, xmax, ymin, ymax)
- `compact(poly, eps)` -> None (in place)
- `valid_cell_mask(gx)` -> (nce2, nce1) bool array
- `cell_polygon(gx, gy, i, j)` -> Optional[Polygon]
- `boundary_indices(valid)` -> list of (i, j) node indices
- `boundary_polygon(nce1, nce2, gx, gy)` -> Polygon

Node validity follows the grid node files: a node is invalid when its x
coordinate is NaN, and a cell is valid when all four corners are valid.
"""
from typing import List, Optional, Sequence, Tuple
import logging
import numpy as np
from shapely.geometry import LinearRing

from curvigrid.errors import GridStructureError

logger = logging.getLogger(__name__)

# (di, dj) for east, north, west, south; +1 in the index is a left turn
_DIRECTIONS = ((1, 0), (0, 1), (-1, 0), (0, -1))


class Polygon:
    """Ordered 2-D vertex loop with a cached extent.

    The loop is implicitly closed: the last vertex connects back to the first
    without being repeated. Each instance owns its coordinate arrays.
    """

    def __init__(self, xs: Sequence[float] = (), ys: Sequence[float] = ()):
        self.x = np.array(xs, dtype=float)
        self.y = np.array(ys, dtype=float)
        if self.x.shape != self.y.shape or self.x.ndim != 1:
            raise ValueError('polygon x and y must be 1-D arrays of equal length')
        self._extent = None

    @classmethod
    def from_points(cls, points) -> 'Polygon':
        pts = np.asarray(points, dtype=float).reshape(-1, 2)
        return cls(pts[:, 0], pts[:, 1])

    def __len__(self) -> int:
        return int(self.x.size)

    def __repr__(self) -> str:
        return f'Polygon(n={len(self)})'

    @property
    def n(self) -> int:
        return len(self)

    def points(self) -> np.ndarray:
        return np.column_stack((self.x, self.y))

    def extent(self) -> Tuple[float, float, float, float]:
        if self._extent is None:
            if len(self) == 0:
                self._extent = (np.nan, np.nan, np.nan, np.nan)
            else:
                self._extent = (float(np.nanmin(self.x)), float(np.nanmax(self.x)),
                                float(np.nanmin(self.y)), float(np.nanmax(self.y)))
        return self._extent

    def contains(self, x: float, y: float) -> bool:
        return point_in_polygon(self, x, y)

    def find_index(self, x: float, y: float) -> Optional[int]:
        return vertex_index_of_point(self, x, y)

    def is_closed(self, eps: float) -> bool:
        """True when the last vertex repeats the first one within ``eps``."""
        if len(self) < 2:
            return False
        return bool(abs(self.x[0] - self.x[-1]) <= eps and abs(self.y[0] - self.y[-1]) <= eps)

    def compact(self, eps: float) -> None:
        compact(self, eps)

    def _set(self, xs, ys) -> None:
        self.x = np.array(xs, dtype=float)
        self.y = np.array(ys, dtype=float)
        self._extent = None


def point_in_polygon(poly: Polygon, x: float, y: float) -> bool:
    """Crossing-number (PNPOLY) containment test.

    Edges are half-open in y, so a point on an edge shared by two adjacent
    polygons is reported inside exactly one of them. Non-finite points are
    never inside.
    """
    if len(poly) < 3:
        return False
    xmin, xmax, ymin, ymax = poly.extent()
    if not (xmin <= x <= xmax and ymin <= y <= ymax):
        return False
    xi = poly.x
    yi = poly.y
    xj = np.roll(xi, 1)
    yj = np.roll(yi, 1)
    straddle = (yi > y) != (yj > y)
    with np.errstate(divide='ignore', invalid='ignore'):
        xcross = (xj - xi) * (y - yi) / (yj - yi) + xi
    crossings = np.count_nonzero(straddle & (x < xcross))
    return bool(crossings % 2)


def vertex_index_of_point(poly: Polygon, x: float, y: float) -> Optional[int]:
    """Index of the first vertex exactly equal to (x, y), or None."""
    hits = np.flatnonzero((poly.x == x) & (poly.y == y))
    if hits.size == 0:
        return None
    return int(hits[0])


def extent(poly: Polygon) -> Tuple[float, float, float, float]:
    return poly.extent()


def _straight(ax, ay, bx, by, cx, cy, eps) -> bool:
    # b continues the line a->c in the same direction
    ux, uy = bx - ax, by - ay
    vx, vy = cx - bx, cy - by
    lu = np.hypot(ux, uy)
    lv = np.hypot(vx, vy)
    if lu == 0.0 or lv == 0.0:
        return True
    cross = ux * vy - uy * vx
    dot = ux * vx + uy * vy
    return abs(cross) <= eps * lu * lv and dot > 0.0


def compact(poly: Polygon, eps: float) -> None:
    """Merge near-duplicate consecutive vertices and straight-run vertices.

    Works in place and preserves the enclosed region.
    """
    n = len(poly)
    if n < 3:
        return
    out: List[Tuple[float, float]] = []
    for px, py in zip(poly.x.tolist(), poly.y.tolist()):
        if out and abs(out[-1][0] - px) <= eps and abs(out[-1][1] - py) <= eps:
            continue
        while len(out) >= 2 and _straight(out[-2][0], out[-2][1], out[-1][0], out[-1][1], px, py, eps):
            out.pop()
        out.append((px, py))

    # wrap-around
    while len(out) > 1 and abs(out[-1][0] - out[0][0]) <= eps and abs(out[-1][1] - out[0][1]) <= eps:
        out.pop()
    while len(out) >= 3 and _straight(out[-2][0], out[-2][1], out[-1][0], out[-1][1], out[0][0], out[0][1], eps):
        out.pop()
    while len(out) >= 3 and _straight(out[-1][0], out[-1][1], out[0][0], out[0][1], out[1][0], out[1][1], eps):
        out.pop(0)

    if len(out) != n:
        poly._set([p[0] for p in out], [p[1] for p in out])


def valid_cell_mask(gx: np.ndarray) -> np.ndarray:
    """Boolean (nce2, nce1) mask of cells whose four corners are valid."""
    ok = ~np.isnan(np.asarray(gx, dtype=float))
    return ok[:-1, :-1] & ok[:-1, 1:] & ok[1:, :-1] & ok[1:, 1:]


def cell_polygon(gx: np.ndarray, gy: np.ndarray, i: int, j: int) -> Optional[Polygon]:
    """Quadrilateral of cell (i, j), or None if a corner is not finite."""
    xs = (gx[j, i], gx[j, i + 1], gx[j + 1, i + 1], gx[j + 1, i])
    ys = (gy[j, i], gy[j, i + 1], gy[j + 1, i + 1], gy[j + 1, i])
    if not (np.all(np.isfinite(xs)) and np.all(np.isfinite(ys))):
        return None
    return Polygon(xs, ys)


def _cell_valid(valid: np.ndarray, i: int, j: int) -> bool:
    nce2, nce1 = valid.shape
    return 0 <= i < nce1 and 0 <= j < nce2 and bool(valid[j, i])


def _is_boundary_edge(valid: np.ndarray, i: int, j: int, d: int) -> bool:
    # valid cell on the left of the edge leaving (i, j) along d, none on the right
    if d == 0:
        left, right = (i, j), (i, j - 1)
    elif d == 1:
        left, right = (i - 1, j), (i, j)
    elif d == 2:
        left, right = (i - 1, j - 1), (i - 1, j)
    else:
        left, right = (i, j - 1), (i - 1, j - 1)
    return _cell_valid(valid, *left) and not _cell_valid(valid, *right)


def boundary_indices(valid: np.ndarray) -> List[Tuple[int, int]]:
    """Trace the outline of the first valid cell's component in index space.

    Returns the (i, j) node indices visited counter-clockwise, starting at the
    lower-left corner of the first valid cell in row-major order. Every node
    along the outline is listed, so consecutive entries are index neighbours.
    At a pinch node the right-most turn is taken, which keeps cells touching
    only at a corner inside one loop.
    """
    cells = np.argwhere(valid)
    if cells.size == 0:
        raise GridStructureError('the grid has no valid cells')
    j0, i0 = (int(v) for v in cells[0])

    nce2, nce1 = valid.shape
    max_steps = 4 * (nce1 + 1) * (nce2 + 1) + 4
    verts = [(i0, j0)]
    i, j, d = i0, j0, 0
    for _ in range(max_steps):
        di, dj = _DIRECTIONS[d]
        i += di
        j += dj
        for turn in (3, 0, 1, 2):  # right, straight, left, back
            nd = (d + turn) % 4
            if _is_boundary_edge(valid, i, j, nd):
                break
        else:
            raise GridStructureError(f'grid outline is broken at node ({i}, {j})')
        if (i, j) == (i0, j0) and nd == 0:
            return verts
        verts.append((i, j))
        d = nd
    raise GridStructureError('grid outline does not close')


def boundary_polygon(nce1: int, nce2: int, gx: np.ndarray, gy: np.ndarray) -> Polygon:
    """Outer boundary of the valid cells as a polygon in physical space."""
    gx = np.asarray(gx, dtype=float)
    gy = np.asarray(gy, dtype=float)
    if gx.shape != (nce2 + 1, nce1 + 1) or gy.shape != gx.shape:
        raise ValueError(f'node arrays must have shape {(nce2 + 1, nce1 + 1)}, got {gx.shape} and {gy.shape}')
    idx = np.asarray(boundary_indices(valid_cell_mask(gx)), dtype=int)
    poly = Polygon(gx[idx[:, 1], idx[:, 0]], gy[idx[:, 1], idx[:, 0]])
    logger.debug('grid outline: %d vertices', len(poly))
    _check_simple(poly)
    return poly


def _check_simple(poly: Polygon) -> None:
    if len(poly) < 3 or not np.all(np.isfinite(poly.points())):
        return
    ring = LinearRing(poly.points())
    if not ring.is_simple:
        logger.warning('grid outline is not a simple ring (%d vertices); cells touching at a corner '
                       'or a multiply-connected grid may be mapped incorrectly by the binary tree', len(poly))
