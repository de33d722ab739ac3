import io
import numpy as np
import pytest

from curvigrid.cli import build_parser, main, map_points
from curvigrid.errors import CurvigridError
from curvigrid.gridmap import GridMap
from curvigrid.tests.fixtures.grids import (
    double_density,
    l_shaped_grid,
    regular_grid,
    warped_grid,
    write_grid_file,
)


def test_parser_defaults():
    args = build_parser().parse_args(['-g', 'grid.txt', '-o', 'pts.txt'])
    assert args.node_type == 'DD'
    assert not (args.force or args.kdtree or args.reverse or args.verbose)
    args = build_parser().parse_args(['-g', 'g', '-o', 'p', '-i', 'co', '-k', '-r', '-f', '-v'])
    assert args.node_type == 'CO'
    assert args.force and args.kdtree and args.reverse and args.verbose


def test_parser_requires_grid_and_points():
    with pytest.raises(SystemExit):
        build_parser().parse_args(['-g', 'grid.txt'])


def test_map_points_forward_keeps_rest_of_line():
    gx, gy = regular_grid(2, 2)
    gmap = GridMap(2, 2, gx, gy)
    out = io.StringIO()
    lines = ['# header\n', '0.5 1.5 station A\n', '1.25 0.75\n']
    count, ok = map_points(gmap, lines, out)
    assert (count, ok) == (2, 2)
    assert out.getvalue().splitlines() == ['# header', '0.5 1.5 station A', '1.25 0.75 ']


def test_map_points_reverse():
    gx, gy = regular_grid(2, 2, dx=2.0)
    gmap = GridMap(2, 2, gx, gy)
    out = io.StringIO()
    count, ok = map_points(gmap, ['0.5 1.5 p\n'], out, reverse=True)
    assert (count, ok) == (1, 1)
    assert out.getvalue() == '1 1.5 p\n'


def test_map_points_failure_raises():
    gx, gy = l_shaped_grid(4)
    gmap = GridMap(4, 4, gx, gy)
    with pytest.raises(CurvigridError):
        map_points(gmap, ['3.5 3.5\n'], io.StringIO())


def test_map_points_force_writes_nan():
    gx, gy = l_shaped_grid(4)
    gmap = GridMap(4, 4, gx, gy)
    out = io.StringIO()
    count, ok = map_points(gmap, ['3.5 3.5 dry\n', '0.5 0.5 wet\n'], out, force=True)
    assert (count, ok) == (2, 1)
    assert out.getvalue().splitlines() == ['NaN NaN dry', '0.5 0.5 wet']


def test_main_forward(tmp_path, capsys):
    gx, gy = warped_grid(3, 3)
    dx, dy = double_density(gx, gy)
    grid = write_grid_file(tmp_path / 'grid.txt', dx, dy)
    x = 1.25 + 0.1 * 1.25 * 2.5
    y = 2.5 + 0.1 * 1.25 * 2.5
    pts = tmp_path / 'pts.txt'
    pts.write_text(f'{x!r} {y!r} one\n')
    assert main(['-g', str(grid), '-o', str(pts)]) == 0
    fi, fj, rest = capsys.readouterr().out.split()
    assert (float(fi), float(fj)) == pytest.approx((1.25, 2.5))
    assert rest == 'one'


@pytest.mark.parametrize('extra', [[], ['-k']])
def test_main_reverse_corner_nodes(tmp_path, capsys, monkeypatch, extra):
    gx, gy = regular_grid(3, 2, dx=10.0)
    grid = write_grid_file(tmp_path / 'grid.txt', gx, gy)
    monkeypatch.setattr('sys.stdin', io.StringIO('2.5 1.5\n'))
    assert main(['-i', 'CO', '-r', '-g', str(grid), '-o', '-'] + extra) == 0
    assert capsys.readouterr().out == '25 1.5 \n'


def test_main_failure_exit_code(tmp_path, capsys):
    gx, gy = l_shaped_grid(4)
    grid = write_grid_file(tmp_path / 'grid.txt', gx, gy)
    pts = tmp_path / 'pts.txt'
    pts.write_text('3.5 3.5\n')
    assert main(['-i', 'CO', '-g', str(grid), '-o', str(pts)]) == 1
    assert main(['-i', 'CO', '-f', '-g', str(grid), '-o', str(pts)]) == 0
    assert capsys.readouterr().out.endswith('NaN NaN \n')


def test_main_missing_grid(tmp_path):
    assert main(['-g', str(tmp_path / 'missing.txt'), '-o', '-']) == 1


def test_main_bad_grid_header(tmp_path):
    grid = tmp_path / 'grid.txt'
    grid.write_text('nx=3 ny=3\n')
    assert main(['-g', str(grid), '-o', '-']) == 1


def test_map_points_reverse_out_of_range_raises():
    gx, gy = regular_grid(2, 2)
    gmap = GridMap(2, 2, gx, gy)
    out = io.StringIO()
    with pytest.raises(CurvigridError, match='from index to physical space'):
        map_points(gmap, ['5 5\n'], out, reverse=True)
    assert out.getvalue() == ''


def test_map_points_reverse_out_of_range_force():
    gx, gy = regular_grid(2, 2)
    gmap = GridMap(2, 2, gx, gy)
    out = io.StringIO()
    count, ok = map_points(gmap, ['5 5 far\n', '1.5 0.5 near\n'], out, reverse=True, force=True)
    assert (count, ok) == (2, 1)
    assert out.getvalue().splitlines() == ['NaN NaN far', '1.5 0.5 near']


def test_main_reverse_out_of_range(tmp_path, capsys):
    gx, gy = regular_grid(2, 2)
    grid = write_grid_file(tmp_path / 'grid.txt', gx, gy)
    pts = tmp_path / 'ij.txt'
    pts.write_text('5 5\n')
    assert main(['-i', 'CO', '-r', '-g', str(grid), '-o', str(pts)]) == 1
    assert capsys.readouterr().out == ''
    assert main(['-i', 'CO', '-r', '-f', '-g', str(grid), '-o', str(pts)]) == 0
    assert capsys.readouterr().out == 'NaN NaN \n'
