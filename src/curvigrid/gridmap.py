"""
gridmap.py

Transformations between physical (x, y) space and fractional index (fi, fj)
space of a curvilinear grid.

A `GridMap` owns one cell index (binary partition tree or kd-tree of nodes)
and evaluates the bilinear map of the located cell:

    x = a*u*v + b*u + c*v + d
    y = e*u*v + f*u + g*v + h

with (u, v) in [0, 1]^2 the position inside cell (i, j). Inverting it means
solving A*u^2 + B*u + C = 0, whose two roots differ by the sign in front of
the square root. The sign depends on the handedness of the grid and is
resolved once per map from the first point that needs it.

Public API:
- `GridMap(nce1, nce2, gx, gy, map_type='binary', rng=None)`
- `GridMap.xy2ij(x, y)` -> (i, j) or None
- `GridMap.fij2xy(fi, fj)` -> (x, y, in_range)
- `GridMap.xy2fij(x, y)` -> (fi, fj) or None
- `GridMap.resolve_branch(x, y)` -> 1, -1, or 0 on failure
- `locate(index, x, y)` -> (i, j) or None
"""
from typing import Optional, Tuple
import logging
import math
import threading
import numpy as np

from curvigrid.bmap import BinaryCellIndex
from curvigrid.config import GRIDMAP
from curvigrid.kmap import KdCellIndex

logger = logging.getLogger(__name__)


def locate(index, x: float, y: float) -> Optional[Tuple[int, int]]:
    """Cell (i, j) containing (x, y) according to ``index``, or None."""
    return index.locate(x, y)


def build_index(map_type: str, nce1: int, nce2: int, gx, gy, rng=None):
    """Build the cell index named by ``map_type`` ('binary' or 'kdtree')."""
    if map_type == 'binary':
        return BinaryCellIndex(nce1, nce2, gx, gy)
    if map_type == 'kdtree':
        return KdCellIndex(nce1, nce2, gx, gy, rng=rng)
    raise ValueError(f'grid map type {map_type!r}: unknown type, expected one of {GRIDMAP["types"]}')


class GridMap:
    """Physical <-> index space conversions for a curvilinear grid.

    Parameters:
    - nce1, nce2: number of cells in the i and j directions
    - gx, gy: node coordinates, shape (nce2 + 1, nce1 + 1), indexed [j, i];
      NaN marks an invalid node. The arrays are referenced, not copied, and
      must not change while the map is in use.
    - map_type: 'binary' (default) or 'kdtree'
    - rng: optional numpy Generator for the kd-tree insertion order

    The only state touched by queries is the inverse-mapping branch sign. It
    is written once, under a lock, by `resolve_branch()`; callers sharing a
    map between threads may call it up front with any interior point.
    """

    def __init__(self, nce1: int, nce2: int, gx, gy, map_type: Optional[str] = None, rng=None):
        gx = np.asarray(gx, dtype=float)
        gy = np.asarray(gy, dtype=float)
        if gx.shape != (nce2 + 1, nce1 + 1) or gy.shape != gx.shape:
            raise ValueError(f'node arrays must have shape {(nce2 + 1, nce1 + 1)}, got {gx.shape} and {gy.shape}')
        self.map_type = map_type or GRIDMAP['default_type']
        self.gx = gx
        self.gy = gy
        self.index = build_index(self.map_type, int(nce1), int(nce2), gx, gy, rng=rng)
        self.sign = 0
        self._lock = threading.Lock()
        self.eps = GRIDMAP['eps']
        self.eps_zero = GRIDMAP['eps_zero']

    @classmethod
    def from_nodes(cls, nodes, map_type: Optional[str] = None, rng=None) -> 'GridMap':
        """Build from a `curvigrid.nodes.GridNodes` (converted to corner nodes)."""
        cor = nodes.to_corners()
        return cls(cor.nce1, cor.nce2, cor.gx, cor.gy, map_type=map_type, rng=rng)

    def __repr__(self) -> str:
        return f'GridMap({self.nce1} x {self.nce2}, map_type={self.map_type!r}, branch={self.sign})'

    @property
    def nce1(self) -> int:
        return self.index.nce1

    @property
    def nce2(self) -> int:
        return self.index.nce2

    @property
    def branch(self) -> int:
        return self.sign

    @property
    def extent(self) -> Tuple[float, float, float, float]:
        return self.index.extent

    def xy2ij(self, x: float, y: float) -> Optional[Tuple[int, int]]:
        if not (math.isfinite(x) and math.isfinite(y)):
            return None
        return self.index.locate(x, y)

    def _coefficients(self, i: int, j: int):
        gx = self.gx
        gy = self.gy
        a = gx[j, i] - gx[j, i + 1] - gx[j + 1, i] + gx[j + 1, i + 1]
        b = gx[j, i + 1] - gx[j, i]
        c = gx[j + 1, i] - gx[j, i]
        d = gx[j, i]
        e = gy[j, i] - gy[j, i + 1] - gy[j + 1, i] + gy[j + 1, i + 1]
        f = gy[j, i + 1] - gy[j, i]
        g = gy[j + 1, i] - gy[j, i]
        h = gy[j, i]
        return a, b, c, d, e, f, g, h

    def fij2xy(self, fi: float, fj: float) -> Tuple[float, float, bool]:
        """Physical coordinates of fractional indices (fi, fj).

        Indices outside [0, nce1] x [0, nce2] are clamped into range and the
        third return value is False. Uses the forward tetragonal bilinear map
        of the cell.
        """
        if not (math.isfinite(fi) and math.isfinite(fj)):
            return math.nan, math.nan, False

        in_range = True
        if fi < 0:
            fi = 0.0
            in_range = False
        if fi > self.nce1:
            fi = self.nce1 - self.eps
            in_range = False
        if fj < 0:
            fj = 0.0
            in_range = False
        if fj > self.nce2:
            fj = self.nce2 - self.eps
            in_range = False

        i = int(fi)
        j = int(fj)
        u = fi - i
        v = fj - j
        gx = self.gx
        gy = self.gy

        if u == 0.0 and v == 0.0:
            x = gx[j, i]
            y = gy[j, i]
        elif u == 0.0:
            x = gx[j + 1, i] * v + gx[j, i] * (1.0 - v)
            y = gy[j + 1, i] * v + gy[j, i] * (1.0 - v)
        elif v == 0.0:
            x = gx[j, i + 1] * u + gx[j, i] * (1.0 - u)
            y = gy[j, i + 1] * u + gy[j, i] * (1.0 - u)
        else:
            a, b, c, d, e, f, g, h = self._coefficients(i, j)
            x = a * u * v + b * u + c * v + d
            y = e * u * v + f * u + g * v + h

        return float(x), float(y), in_range

    def _calc_branch(self, x: float, y: float) -> int:
        """Pick the root sign whose (u, v) falls closer to the unit square."""
        ij = self.xy2ij(x, y)
        if ij is None:
            return 0
        a, b, c, d, e, f, g, h = self._coefficients(*ij)

        A = a * f - b * e
        if abs(A) < self.eps_zero or not math.isfinite(A):
            return 0
        B = e * x - a * y + a * h - d * e + c * f - b * g
        C = g * x - c * y + c * h - d * g
        root = math.sqrt(max(B * B - 4.0 * A * C, 0.0))

        errors = []
        for sign in (1, -1):
            u = (-B + sign * root) / (2.0 * A)
            v_denom = a * u + c
            if abs(v_denom) < self.eps_zero:
                w = e * u + g
                v = (y - f * u - h) / w if w != 0.0 else math.inf
            else:
                v = (x - b * u - d) / v_denom
            err = 0.0
            if u < 0.0:
                err -= u
            elif u > 1.0:
                err += u - 1.0
            if v < 0.0:
                err -= v
            elif v > 1.0:
                err += v - 1.0
            errors.append(err)

        return 1 if errors[0] < errors[1] else -1

    def resolve_branch(self, x: float, y: float) -> int:
        """Resolve and cache the square-root branch from point (x, y).

        Idempotent: once resolved, the cached sign is returned and (x, y) is
        ignored. Returns 0 (and caches nothing) when (x, y) cannot be located
        or its cell is locally affine.
        """
        with self._lock:
            if self.sign == 0:
                self.sign = self._calc_branch(x, y)
                if self.sign != 0:
                    logger.debug('xy2fij branch resolved to %+d at (%.15g, %.15g)', self.sign, x, y)
            return self.sign

    def xy2fij(self, x: float, y: float) -> Optional[Tuple[float, float]]:
        """Fractional indices of physical point (x, y), or None.

        Uses the inverse tetragonal bilinear map of the containing cell. All
        cells of one grid are assumed to share the same root branch.
        """
        ij = self.xy2ij(x, y)
        if ij is None:
            return None
        i, j = ij
        a, b, c, d, e, f, g, h = self._coefficients(i, j)

        A = a * f - b * e
        B = e * x - a * y + a * h - d * e + c * f - b * g
        C = g * x - c * y + c * h - d * g

        if abs(A) < self.eps_zero:
            if B == 0.0:
                return None
            u = -C / B * (1.0 + A * C / B / B)
        else:
            if self.sign == 0 and self.resolve_branch(x, y) == 0:
                return None
            u = (-B + self.sign * math.sqrt(max(B * B - 4.0 * A * C, 0.0))) / (2.0 * A)

        d1 = a * u + c
        d2 = e * u + g
        if abs(d2) > abs(d1):
            v = (y - f * u - h) / d2
        elif d1 != 0.0:
            v = (x - b * u - d) / d1
        else:
            return None

        if not (math.isfinite(u) and math.isfinite(v)):
            return None

        if u < 0.0:
            u = 0.0
        elif u >= 1.0:
            u = 1.0 - self.eps
        if v < 0.0:
            v = 0.0
        elif v >= 1.0:
            v = 1.0 - self.eps

        return i + u, j + v

    def xy2fij_array(self, xs, ys) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Vectorised `xy2fij`; failed points get NaN and ok=False."""
        xs_a, ys_a = np.broadcast_arrays(np.asarray(xs, dtype=float), np.asarray(ys, dtype=float))
        fi = np.full(xs_a.shape, np.nan)
        fj = np.full(xs_a.shape, np.nan)
        ok = np.zeros(xs_a.shape, dtype=bool)
        it = np.nditer(xs_a, flags=['multi_index', 'refs_ok'])
        while not it.finished:
            k = it.multi_index
            res = self.xy2fij(float(xs_a[k]), float(ys_a[k]))
            if res is not None:
                fi[k], fj[k] = res
                ok[k] = True
            it.iternext()
        return fi, fj, ok

    def fij2xy_array(self, fi, fj) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Vectorised `fij2xy`; ok is False where indices were clamped."""
        fi_a, fj_a = np.broadcast_arrays(np.asarray(fi, dtype=float), np.asarray(fj, dtype=float))
        xs = np.empty(fi_a.shape, dtype=float)
        ys = np.empty(fi_a.shape, dtype=float)
        ok = np.empty(fi_a.shape, dtype=bool)
        it = np.nditer(fi_a, flags=['multi_index', 'refs_ok'])
        while not it.finished:
            k = it.multi_index
            xs[k], ys[k], ok[k] = self.fij2xy(float(fi_a[k]), float(fj_a[k]))
            it.iternext()
        return xs, ys, ok


def grid_map_new(nce1: int, nce2: int, gx, gy, map_type: Optional[str] = None, rng=None) -> GridMap:
    return GridMap(nce1, nce2, gx, gy, map_type=map_type, rng=rng)
