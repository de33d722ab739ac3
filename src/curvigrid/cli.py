"""
Convert point coordinates between physical (X,Y) and index (I,J) space of a
numerical grid.

usage:
    curvigrid-xy2ij -g grid.txt -o points.txt            # (x, y) -> (fi, fj)
    curvigrid-xy2ij -i CO -k -g grid.txt -o points.txt   # corner nodes, kd-tree
    curvigrid-xy2ij -r -g grid.txt -o - < ij.txt         # (fi, fj) -> (x, y)

The grid file holds a ``## <nx> x <ny>`` header followed by one ``x y`` line
per node (see `curvigrid.nodes`). Every line of the point file whose first two
tokens are numbers is converted and written to standard output as
``<a> <b> <rest of line>``; other lines are copied through unchanged.
"""

import argparse
import math
import logging
import sys

from curvigrid.config import NODE_IO
from curvigrid.errors import CurvigridError
from curvigrid.gridmap import GridMap
from curvigrid.nodes import GridNodes
from curvigrid.utils import safe_log_exception

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='curvigrid-xy2ij',
                                     description='Convert points between physical and index space of a numerical grid')
    parser.add_argument('-g', dest='grid', required=True, help='grid node file ("stdin" or "-" for standard input)')
    parser.add_argument('-o', dest='points', required=True, help='point file ("stdin" or "-" for standard input)')
    parser.add_argument('-i', dest='node_type', type=str.upper, choices=NODE_IO['node_types'],
                        default=NODE_IO['default_node_type'], help='input node type: DD double density, CO cell corners')
    parser.add_argument('-f', dest='force', action='store_true',
                        help='write "NaN NaN" for points that cannot be converted instead of failing')
    parser.add_argument('-k', dest='kdtree', action='store_true', help='use a kd-tree for mapping')
    parser.add_argument('-r', dest='reverse', action='store_true', help='convert from index to physical space')
    parser.add_argument('-v', dest='verbose', action='store_true', help='enable verbose logging')
    return parser


def _split_point(line: str):
    parts = line.split(None, 2)
    if len(parts) < 2:
        return None
    try:
        a, b = float(parts[0]), float(parts[1])
    except ValueError:
        return None
    rest = parts[2].rstrip('\n') if len(parts) == 3 else ''
    return a, b, rest


def map_points(gmap: GridMap, lines, out, reverse: bool = False, force: bool = False):
    """Convert each point line from ``lines`` and write it to ``out``.

    Returns (count, count_success). Raises `CurvigridError` on the first
    failed conversion unless ``force`` is set.
    """
    fmt = NODE_IO['number_format']
    count = 0
    count_success = 0
    for line in lines:
        parsed = _split_point(line)
        if parsed is None:
            out.write(line if line.endswith('\n') else line + '\n')
            continue
        a, b, rest = parsed
        if reverse:
            x, y, in_range = gmap.fij2xy(a, b)
            # clamped indices count as failed conversions
            res = (x, y) if in_range else None
        else:
            res = gmap.xy2fij(a, b)
        count += 1
        if res is None:
            if not force:
                src, dst = ('index', 'physical') if reverse else ('physical', 'index')
                raise CurvigridError(f'could not convert ({a:.15g}, {b:.15g}) from {src} to {dst} space')
            out.write(f'NaN NaN {rest}\n')
            continue
        if math.isnan(res[0]):
            out.write(f'NaN NaN {rest}\n')
            continue
        count_success += 1
        out.write(f'{fmt % res[0]} {fmt % res[1]} {rest}\n')
    return count, count_success


def main(argv=None):
    args = build_parser().parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING,
                        format='## %(levelname)s %(name)s: %(message)s', stream=sys.stderr)

    map_type = 'kdtree' if args.kdtree else 'binary'
    try:
        nodes = GridNodes.read(args.grid, args.node_type)
        log.info('parsing the grid into %s', 'kd-tree' if args.kdtree else 'binary tree')
        gmap = GridMap.from_nodes(nodes, map_type=map_type)

        if args.points in NODE_IO['stdin_aliases']:
            count, count_success = map_points(gmap, sys.stdin, sys.stdout, args.reverse, args.force)
        else:
            with open(args.points, 'r') as fh:
                count, count_success = map_points(gmap, fh, sys.stdout, args.reverse, args.force)
    except (CurvigridError, OSError) as exc:
        safe_log_exception('xy2ij failed', exc, grid=args.grid, points=args.points)
        return 1

    log.info('total mappings: %d', count)
    log.info('  successful: %d', count_success)
    log.info('  unsuccessful: %d', count - count_success)
    return 0


if __name__ == '__main__':
    sys.exit(main())
