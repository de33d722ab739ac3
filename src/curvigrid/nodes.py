"""Grid node containers and the plain-text node file reader.

Node files start with a ``## <nx> x <ny>`` header followed by ``nx * ny``
lines of ``x y``, i running fastest. A line that does not hold two numbers
(empty, commented) is an invalid node and becomes NaN.

Two node layouts are understood:
- ``CO``: cell corner nodes, ``nx = nce1 + 1``
- ``DD``: double density nodes (corners, edge midpoints and centres),
  ``nx = 2 * nce1 + 1``; corners sit at even indices
"""

from typing import Optional, TextIO
import logging
import re
import sys
import numpy as np

from curvigrid.config import NODE_IO
from curvigrid.errors import GridFileError
from curvigrid.geometry import valid_cell_mask

logger = logging.getLogger(__name__)

_HEADER = re.compile(r'^\s*##\s*(\d+)\s*x\s*(\d+)')


def _parse_node(line: str):
    parts = line.split()
    if len(parts) < 2:
        return np.nan, np.nan
    try:
        return float(parts[0]), float(parts[1])
    except ValueError:
        return np.nan, np.nan


class GridNodes:
    """Node coordinate arrays ``gx[j, i]``, ``gy[j, i]`` of a given node type."""

    def __init__(self, gx, gy, node_type: str = 'CO'):
        node_type = str(node_type).upper()
        if node_type not in NODE_IO['node_types']:
            raise GridFileError(f'node type {node_type!r} is not supported (expected one of {NODE_IO["node_types"]})')
        self.gx = np.array(gx, dtype=float)
        self.gy = np.array(gy, dtype=float)
        if self.gx.ndim != 2 or self.gx.shape != self.gy.shape:
            raise GridFileError(f'node arrays must be 2-D and of equal shape, got {self.gx.shape} and {self.gy.shape}')
        self.node_type = node_type
        if node_type == 'DD' and (self.nx % 2 == 0 or self.ny % 2 == 0):
            raise GridFileError(f'nx = {self.nx}, ny = {self.ny}: both must be odd for double density grid nodes')
        self.validated = False

    def __repr__(self) -> str:
        return f'GridNodes({self.nx} x {self.ny}, {self.node_type})'

    @property
    def nx(self) -> int:
        return int(self.gx.shape[1])

    @property
    def ny(self) -> int:
        return int(self.gx.shape[0])

    @property
    def nce1(self) -> int:
        return (self.nx - 1) // 2 if self.node_type == 'DD' else self.nx - 1

    @property
    def nce2(self) -> int:
        return (self.ny - 1) // 2 if self.node_type == 'DD' else self.ny - 1

    @classmethod
    def read(cls, path, node_type: Optional[str] = None) -> 'GridNodes':
        """Read a node file; ``path`` may be 'stdin' or '-'."""
        node_type = (node_type or NODE_IO['default_node_type']).upper()
        if str(path) in NODE_IO['stdin_aliases']:
            return cls._read_stream(sys.stdin, '<stdin>', node_type)
        with open(path, 'r') as fh:
            return cls._read_stream(fh, str(path), node_type)

    @classmethod
    def _read_stream(cls, fh: TextIO, name: str, node_type: str) -> 'GridNodes':
        header = fh.readline()
        if header == '':
            raise GridFileError(f'{name}: empty file')
        m = _HEADER.match(header)
        if m is None:
            raise GridFileError(f'{name}: could not read grid size: expected header in "## <nx> x <ny>" format')
        nx, ny = int(m.group(1)), int(m.group(2))
        if nx < 1 or ny < 1:
            raise GridFileError(f'{name}: {nx} x {ny}: invalid grid size')
        logger.info('grid input: %s, %d x %d %s nodes', name, nx, ny, node_type)

        n = nx * ny
        xs = np.full(n, np.nan)
        ys = np.full(n, np.nan)
        for k in range(n):
            line = fh.readline()
            if line == '':
                raise GridFileError(f'{name}: could not read {k + 1}-th point ({nx} x {ny} points expected)')
            xs[k], ys[k] = _parse_node(line)

        logger.info('%s: %d non-empty grid nodes (%.1f%%)', name, np.count_nonzero(~np.isnan(xs)),
                    100.0 * np.count_nonzero(~np.isnan(xs)) / n)
        return cls(xs.reshape(ny, nx), ys.reshape(ny, nx), node_type)

    def validate(self) -> 'GridNodes':
        """Invalidate corner nodes that belong to no valid cell (in place)."""
        if self.node_type == 'DD':
            corners = self.gx[::2, ::2]
        else:
            corners = self.gx
        valid = valid_cell_mask(corners)
        used = np.zeros(corners.shape, dtype=bool)
        used[:-1, :-1] |= valid
        used[:-1, 1:] |= valid
        used[1:, :-1] |= valid
        used[1:, 1:] |= valid
        drop = ~used & ~np.isnan(corners)

        if self.node_type == 'DD':
            self.gx[::2, ::2][drop] = np.nan
            self.gy[::2, ::2][drop] = np.nan
        else:
            self.gx[drop] = np.nan
            self.gy[drop] = np.nan

        self.validated = True
        logger.info('grid validation: %d nodes marked invalid, %d valid cells (%.1f%%)',
                    int(np.count_nonzero(drop)), int(np.count_nonzero(valid)),
                    100.0 * np.count_nonzero(valid) / max(1, valid.size))
        return self

    def to_corners(self) -> 'GridNodes':
        """Validated corner-node copy of this grid."""
        if self.node_type == 'DD':
            cor = GridNodes(self.gx[::2, ::2], self.gy[::2, ::2], 'CO')
        else:
            cor = GridNodes(self.gx, self.gy, 'CO')
        return cor.validate()

    def count_valid_cells(self) -> int:
        corners = self.gx[::2, ::2] if self.node_type == 'DD' else self.gx
        return int(np.count_nonzero(valid_cell_mask(corners)))
