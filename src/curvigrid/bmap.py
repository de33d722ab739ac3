"""Binary partition tree over a grid's boundary polygon.

The grid outline is cut in two along the grid line through the middle of its
index box, and each half is cut again until every leaf covers a single cell.
Locating a point is then a walk down the tree, testing containment against
one child polygon per level. The leaf's cell is confirmed against its
quadrilateral; when cells touch only at a corner the walk can end in the wrong
leaf, and the cells of the whole box are scanned instead.

Boundary vertices are matched to grid nodes by exact floating point equality.
Grids whose coordinates were perturbed after the outline was formed will fail
to build rather than produce a wrong tree.
"""

from dataclasses import dataclass
from typing import Iterator, Optional, Tuple
import logging
import math
import numpy as np

from curvigrid.config import BINARY_TREE
from curvigrid.errors import GridStructureError
from curvigrid.geometry import Polygon, boundary_polygon, cell_polygon

logger = logging.getLogger(__name__)


@dataclass
class Subgrid:
    """Tree node: a boundary polygon and the index box it spans.

    ``half1``/``half2`` are both set on internal nodes and both ``None`` on
    leaves.
    """
    bound: Polygon
    mini: int
    maxi: int
    minj: int
    maxj: int
    half1: Optional['Subgrid'] = None
    half2: Optional['Subgrid'] = None

    @property
    def is_leaf(self) -> bool:
        return self.half1 is None

    @property
    def box(self) -> Tuple[int, int, int, int]:
        return self.mini, self.maxi, self.minj, self.maxj

    def spans_single_cell(self) -> bool:
        return self.maxi <= self.mini + 1 and self.maxj <= self.minj + 1

    def leaves(self) -> Iterator['Subgrid']:
        stack = [self]
        while stack:
            sg = stack.pop()
            if sg.is_leaf:
                yield sg
            else:
                stack.append(sg.half2)
                stack.append(sg.half1)

    def depth(self) -> int:
        if self.is_leaf:
            return 0
        return 1 + max(self.half1.depth(), self.half2.depth())


def subgrid_create(gx: np.ndarray, gy: np.ndarray, bound: Polygon,
                   i1: int, i2: int, j1: int, j2: int) -> Subgrid:
    """Snap ``bound`` onto the nodes of box [i1, i2] x [j1, j2].

    The first vertex is searched for anywhere in the box; each following
    vertex must be the node itself or one of its four index neighbours. The
    resulting subgrid's box is the tight index span of the walk.
    """
    n = len(bound)
    if n == 0:
        raise GridStructureError('subgrid_create(): empty boundary polygon')

    x = bound.x[0]
    y = bound.y[0]
    hits = np.argwhere((gx[j1:j2 + 1, i1:i2 + 1] == x) & (gy[j1:j2 + 1, i1:i2 + 1] == y))
    if hits.size == 0:
        logger.error('boundary vertex (%r, %r) not in the grid box %s', x, y, (i1, i2, j1, j2))
        raise GridStructureError(f'subgrid_create(): boundary vertex ({x!r}, {y!r}) not in the grid')
    j = j1 + int(hits[0][0])
    i = i1 + int(hits[0][1])

    mini = maxi = i
    minj = maxj = j
    xs = bound.x.tolist()
    ys = bound.y.tolist()
    for ii in range(1, n):
        x = xs[ii]
        y = ys[ii]
        if i > i1 and x == gx[j, i - 1] and y == gy[j, i - 1]:
            i -= 1
        elif i < i2 and x == gx[j, i + 1] and y == gy[j, i + 1]:
            i += 1
        elif j > j1 and x == gx[j - 1, i] and y == gy[j - 1, i]:
            j -= 1
        elif j < j2 and x == gx[j + 1, i] and y == gy[j + 1, i]:
            j += 1
        elif x == gx[j, i] and y == gy[j, i]:
            continue
        else:
            logger.error('boundary vertex %d (%r, %r) is not a neighbour of node (%d, %d)', ii, x, y, i, j)
            raise GridStructureError(f'subgrid_create(): boundary vertex ({x!r}, {y!r}) not in the grid')

        mini = min(mini, i)
        maxi = max(maxi, i)
        minj = min(minj, j)
        maxj = max(maxj, j)

    return Subgrid(bound, mini, maxi, minj, maxj)


def cut_boundary(bound: Polygon, gx: np.ndarray, gy: np.ndarray, horizontal: bool,
                 index: int, start: int, end: int) -> Optional[Tuple[Polygon, Polygon]]:
    """Cut ``bound`` in two along a grid line.

    A horizontal cut follows nodes ``[index, start..end]`` (fixed j), a
    vertical one nodes ``[start..end, index]`` (fixed i). The first two
    crossings of that line with the polygon are used; a crossing is a boundary
    vertex whose next node along the line is either strictly inside the
    polygon or a non-adjacent boundary vertex. Returns ``None`` when no such
    pair exists.
    """
    if horizontal:
        lx = gx[index, :]
        ly = gy[index, :]
    else:
        lx = gx[:, index]
        ly = gy[:, index]

    n = len(bound)
    if bound.is_closed(BINARY_TREE['closed_eps']):
        n -= 1

    k1 = None
    ii1 = None
    for k in range(start, end):
        ii1 = bound.find_index(lx[k], ly[k])
        if ii1 is None:
            continue
        nxt = bound.find_index(lx[k + 1], ly[k + 1])
        if nxt is None:
            if bound.contains(lx[k + 1], ly[k + 1]):
                k1 = k
                break
        elif 1 < abs(nxt - ii1) < n - 1:
            k1 = k
            break
    if k1 is None:
        return None

    k2 = None
    ii2 = None
    for k in range(k1 + 1, end + 1):
        ii2 = bound.find_index(lx[k], ly[k])
        if ii2 is not None:
            k2 = k
            break
    if k2 is None:
        return None

    xs = bound.x
    ys = bound.y

    # perimeter arc ii1 -> ii2, then the cutting section back from k2
    x1, y1 = [], []
    ii = ii1
    while ii != ii2:
        x1.append(xs[ii])
        y1.append(ys[ii])
        ii = (ii + 1) % n
    for k in range(k2, k1, -1):
        x1.append(lx[k])
        y1.append(ly[k])

    # complementary arc ii2 -> ii1, then the cutting section forward from k1
    x2, y2 = [], []
    ii = ii2
    while ii != ii1:
        x2.append(xs[ii])
        y2.append(ys[ii])
        ii = (ii + 1) % n
    for k in range(k1, k2):
        x2.append(lx[k])
        y2.append(ly[k])

    return Polygon(x1, y1), Polygon(x2, y2)


class BinaryCellIndex:
    """Cell locator backed by a binary partition tree of the grid outline.

    Parameters:
    - nce1, nce2: number of cells in the i and j directions
    - gx, gy: node coordinates, shape (nce2 + 1, nce1 + 1), held by reference

    Raises `GridStructureError` when the outline cannot be traced onto the
    node arrays or a subgrid spanning several cells in both directions cannot
    be cut.
    """

    def __init__(self, nce1: int, nce2: int, gx, gy):
        self.nce1 = int(nce1)
        self.nce2 = int(nce2)
        self.gx = np.asarray(gx, dtype=float)
        self.gy = np.asarray(gy, dtype=float)
        self.eps_compact = BINARY_TREE['eps_compact']
        self.nleaves = 1

        bound = boundary_polygon(self.nce1, self.nce2, self.gx, self.gy)
        self.trunk = subgrid_create(self.gx, self.gy, bound, 0, self.nce1, 0, self.nce2)
        self._subdivide(self.trunk)
        logger.debug('binary tree built: %d x %d cells, %d leaves, depth %d',
                     self.nce1, self.nce2, self.nleaves, self.trunk.depth())

    @property
    def bound(self) -> Polygon:
        return self.trunk.bound

    @property
    def extent(self) -> Tuple[float, float, float, float]:
        return self.trunk.bound.extent()

    def _divide(self, sg: Subgrid) -> Optional[Tuple[Subgrid, Subgrid]]:
        if sg.spans_single_cell():
            return None

        if sg.maxi - sg.mini > sg.maxj - sg.minj:
            index = (sg.mini + sg.maxi) // 2
            halves = cut_boundary(sg.bound, self.gx, self.gy, False, index, sg.minj, sg.maxj)
        else:
            index = (sg.minj + sg.maxj) // 2
            halves = cut_boundary(sg.bound, self.gx, self.gy, True, index, sg.mini, sg.maxi)

        if halves is None:
            if sg.maxi - sg.mini > 1 and sg.maxj - sg.minj > 1:
                logger.error('could not cut the boundary of subgrid %s', sg.box)
                raise GridStructureError(f'could not cut the boundary of subgrid {sg.box}')
            logger.warning('could not cut the boundary of subgrid %s; keeping it as a single leaf', sg.box)
            return None

        pl1, pl2 = halves
        sg1 = subgrid_create(self.gx, self.gy, pl1, sg.mini, sg.maxi, sg.minj, sg.maxj)
        sg2 = subgrid_create(self.gx, self.gy, pl2, sg.mini, sg.maxi, sg.minj, sg.maxj)
        return sg1, sg2

    def _subdivide(self, sg: Subgrid) -> None:
        halves = self._divide(sg)
        if halves is not None:
            sg.half1, sg.half2 = halves
            self.nleaves += 1
            self._subdivide(sg.half1)
            self._subdivide(sg.half2)
        sg.bound.compact(self.eps_compact)

    def leaves(self) -> Iterator[Subgrid]:
        return self.trunk.leaves()

    def locate(self, x: float, y: float) -> Optional[Tuple[int, int]]:
        """Return (i, j) of the cell containing (x, y), or None."""
        if not (math.isfinite(x) and math.isfinite(y)):
            return None
        sg = self.trunk
        if not sg.bound.contains(x, y):
            return None

        # test the child with fewer vertices; the halves partition the parent
        while not sg.is_leaf:
            if len(sg.half1.bound) <= len(sg.half2.bound):
                sg = sg.half1 if sg.half1.bound.contains(x, y) else sg.half2
            else:
                sg = sg.half2 if sg.half2.bound.contains(x, y) else sg.half1

        ij = self._scan(x, y, sg.mini, sg.maxi, sg.minj, sg.maxj)
        if ij is None:
            # cells touching only at a corner leave zero-area subgrids that
            # can take the walk to a leaf not holding the point
            t = self.trunk
            ij = self._scan(x, y, t.mini, t.maxi, t.minj, t.maxj)
            if ij is not None:
                logger.debug('(%.15g, %.15g) missed leaf %s, found in cell %s', x, y, sg.box, ij)
        return ij

    def _scan(self, x: float, y: float, mini: int, maxi: int, minj: int, maxj: int) -> Optional[Tuple[int, int]]:
        """First cell of the box, row by row, whose quadrilateral holds (x, y)."""
        for j in range(minj, min(max(maxj, minj + 1), self.nce2)):
            for i in range(mini, min(max(maxi, mini + 1), self.nce1)):
                quad = cell_polygon(self.gx, self.gy, i, j)
                if quad is not None and quad.contains(x, y):
                    return i, j
        return None


def build_binary_index(nce1: int, nce2: int, gx, gy) -> BinaryCellIndex:
    return BinaryCellIndex(nce1, nce2, gx, gy)
