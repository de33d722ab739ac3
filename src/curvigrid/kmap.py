"""Nearest-node cell locator.

All valid grid nodes go into a scipy cKDTree. A query finds the node nearest
to the point and then checks the cells sharing that node, so grids with
several disconnected or multiply-connected wet regions can still be mapped.
"""

from typing import Optional, Tuple
import logging
import math
import numpy as np

from curvigrid.config import KDTREE
from curvigrid.geometry import Polygon, cell_polygon, point_in_polygon
from curvigrid.utils import safe_build_kdtree, shuffled_ids

logger = logging.getLogger(__name__)


class KdCellIndex:
    """Cell locator backed by a kd-tree of grid nodes.

    Nodes are inserted in a shuffled order drawn from ``rng`` (a
    `numpy.random.Generator`); without one a generator seeded with
    ``KDTREE['shuffle_seed']`` is used so builds are reproducible.

    cKDTree is built in bulk and balances itself, so the shuffle does not
    change the tree shape. It only fixes which of several equidistant nodes
    ``nearest_node`` reports, and keeps that choice the same as the
    incremental tree this locator replaces (seed 5555).
    """

    def __init__(self, nce1: int, nce2: int, gx, gy, rng: Optional[np.random.Generator] = None):
        self.nce1 = int(nce1)
        self.nce2 = int(nce2)
        self.gx = np.asarray(gx, dtype=float)
        self.gy = np.asarray(gy, dtype=float)
        if self.gx.shape != (self.nce2 + 1, self.nce1 + 1) or self.gy.shape != self.gx.shape:
            raise ValueError(f'node arrays must have shape {(self.nce2 + 1, self.nce1 + 1)}, '
                             f'got {self.gx.shape} and {self.gy.shape}')

        stride = self.nce1 + 1
        ids = shuffled_ids(stride * (self.nce2 + 1), rng=rng, seed=KDTREE['shuffle_seed'])
        px = self.gx[ids // stride, ids % stride]
        py = self.gy[ids // stride, ids % stride]
        ok = np.isfinite(px) & np.isfinite(py)

        self.ids = ids[ok]
        points = np.column_stack((px[ok], py[ok]))
        self.tree = safe_build_kdtree(points, name='grid nodes', leafsize=KDTREE['leafsize'])
        if self.tree is None:
            logger.warning('kd-tree map: the grid has no valid nodes; every query will miss')
            self._extent = (np.nan, np.nan, np.nan, np.nan)
        else:
            self._extent = (float(points[:, 0].min()), float(points[:, 0].max()),
                            float(points[:, 1].min()), float(points[:, 1].max()))
            logger.debug('kd-tree map built: %d x %d cells, %d nodes', self.nce1, self.nce2, self.ids.size)

    @property
    def extent(self) -> Tuple[float, float, float, float]:
        return self._extent

    def nearest_node(self, x: float, y: float) -> Optional[Tuple[int, int]]:
        """(i, j) of the valid node nearest to (x, y)."""
        if self.tree is None:
            return None
        _, k = self.tree.query((x, y))
        node_id = int(self.ids[int(k)])
        return node_id % (self.nce1 + 1), node_id // (self.nce1 + 1)

    def cell_polygon(self, i: int, j: int) -> Optional[Polygon]:
        """Quadrilateral of cell (i, j), or None if a corner is not finite."""
        return cell_polygon(self.gx, self.gy, i, j)

    def locate(self, x: float, y: float) -> Optional[Tuple[int, int]]:
        """Return (i, j) of the cell containing (x, y), or None."""
        if not (math.isfinite(x) and math.isfinite(y)):
            return None
        xmin, xmax, ymin, ymax = self._extent
        if not (xmin <= x <= xmax and ymin <= y <= ymax):
            return None

        i, j = self.nearest_node(x, y)
        i1 = i - 1 if i > 0 else i
        i2 = i + 1 if i < self.nce1 else i
        j1 = j - 1 if j > 0 else j
        j2 = j + 1 if j < self.nce2 else j

        # cells sharing the nearest node, row by row
        for jj in range(j1, j2):
            for ii in range(i1, i2):
                quad = self.cell_polygon(ii, jj)
                if quad is not None and point_in_polygon(quad, x, y):
                    return ii, jj
        return None


def build_kd_index(nce1: int, nce2: int, gx, gy, rng: Optional[np.random.Generator] = None) -> KdCellIndex:
    return KdCellIndex(nce1, nce2, gx, gy, rng=rng)
