import logging
import numpy as np
import pytest

from curvigrid.bmap import BinaryCellIndex, build_binary_index, cut_boundary, subgrid_create
from curvigrid.errors import GridStructureError
from curvigrid.geometry import Polygon, boundary_polygon
from curvigrid.tests.fixtures.grids import (
    corner_chain_grid,
    l_shaped_grid,
    pinched_grid,
    polar_grid,
    regular_grid,
    warped_grid,
)


def test_subgrid_create_spans_whole_grid():
    gx, gy = regular_grid(3, 2)
    bound = boundary_polygon(3, 2, gx, gy)
    sg = subgrid_create(gx, gy, bound, 0, 3, 0, 2)
    assert sg.box == (0, 3, 0, 2)
    assert sg.is_leaf


def test_subgrid_create_rejects_foreign_vertex():
    gx, gy = regular_grid(2, 2)
    bogus = Polygon([0.0, 0.5, 0.5], [0.0, 0.0, 0.5])
    with pytest.raises(GridStructureError):
        subgrid_create(gx, gy, bogus, 0, 2, 0, 2)


def test_subgrid_create_rejects_empty_polygon():
    gx, gy = regular_grid(2, 2)
    with pytest.raises(GridStructureError):
        subgrid_create(gx, gy, Polygon(), 0, 2, 0, 2)


def test_cut_boundary_horizontal():
    gx, gy = regular_grid(2, 2)
    bound = boundary_polygon(2, 2, gx, gy)
    halves = cut_boundary(bound, gx, gy, True, 1, 0, 2)
    assert halves is not None
    pl1, pl2 = halves
    ys = sorted([pl1.extent()[2:], pl2.extent()[2:]])
    assert ys == [(0.0, 1.0), (1.0, 2.0)]


def test_cut_boundary_no_crossing():
    gx, gy = regular_grid(2, 2)
    sq = Polygon([0.0, 1.0, 1.0, 0.0], [0.0, 0.0, 1.0, 1.0])
    # the line j = 2 never touches the lower-left cell
    assert cut_boundary(sq, gx, gy, True, 2, 0, 2) is None


def test_tree_has_one_leaf_per_cell():
    gx, gy = regular_grid(5, 3)
    index = BinaryCellIndex(5, 3, gx, gy)
    leaves = list(index.leaves())
    assert len(leaves) == 15
    assert index.nleaves == 15
    assert sorted((sg.mini, sg.minj) for sg in leaves) == [(i, j) for i in range(5) for j in range(3)]
    assert all(sg.spans_single_cell() for sg in leaves)


def test_children_partition_parent():
    gx, gy = warped_grid(4, 4)
    index = build_binary_index(4, 4, gx, gy)
    rng = np.random.default_rng(7)
    pts = rng.uniform(0.05, 0.95, size=(50, 2)) * 4
    x = pts[:, 0] + 0.1 * pts[:, 0] * pts[:, 1]
    y = pts[:, 1] + 0.1 * pts[:, 0] * pts[:, 1]
    stack = [index.trunk]
    while stack:
        sg = stack.pop()
        if sg.is_leaf:
            continue
        for px, py in zip(x, y):
            if sg.bound.contains(px, py):
                assert sg.half1.bound.contains(px, py) != sg.half2.bound.contains(px, py)
        stack.extend((sg.half1, sg.half2))


def test_locate_regular_grid():
    gx, gy = regular_grid(2, 2)
    index = BinaryCellIndex(2, 2, gx, gy)
    assert index.locate(0.5, 0.5) == (0, 0)
    assert index.locate(1.5, 0.5) == (1, 0)
    assert index.locate(0.5, 1.5) == (0, 1)
    assert index.locate(1.5, 1.5) == (1, 1)


def test_locate_outside_and_non_finite():
    gx, gy = regular_grid(2, 2)
    index = BinaryCellIndex(2, 2, gx, gy)
    assert index.locate(-0.5, 0.5) is None
    assert index.locate(2.5, 1.0) is None
    assert index.locate(np.nan, 1.0) is None
    assert index.locate(1.0, np.inf) is None


def test_locate_polar_grid():
    gx, gy = polar_grid(6, 4)
    index = BinaryCellIndex(6, 4, gx, gy)
    for i, j in ((0, 0), (2, 1), (5, 3), (3, 2)):
        x = 0.25 * (gx[j, i] + gx[j, i + 1] + gx[j + 1, i] + gx[j + 1, i + 1])
        y = 0.25 * (gy[j, i] + gy[j, i + 1] + gy[j + 1, i] + gy[j + 1, i + 1])
        assert index.locate(x, y) == (i, j)
    # inside the inner radius
    assert index.locate(0.1, 0.1) is None


def test_l_shaped_grid():
    gx, gy = l_shaped_grid(4)
    index = BinaryCellIndex(4, 4, gx, gy)
    assert index.nleaves == 12
    assert index.locate(3.5, 3.5) is None
    assert index.locate(3.5, 1.5) == (3, 1)
    assert index.locate(1.5, 3.5) == (1, 3)


def test_pinched_grid(caplog):
    gx, gy = pinched_grid()
    with caplog.at_level(logging.WARNING):
        index = BinaryCellIndex(2, 2, gx, gy)
    assert index.locate(0.5, 0.5) == (0, 0)
    assert index.locate(1.5, 1.5) == (1, 1)
    assert index.locate(0.5, 1.5) is None


def test_perturbed_node_fails_to_build():
    gx, gy = regular_grid(3, 3)
    # y invalid but x finite: the outline keeps the node, the walk cannot match it
    gy[0, 1] = np.nan
    with pytest.raises(GridStructureError):
        BinaryCellIndex(3, 3, gx, gy)


def test_extent_and_bound():
    gx, gy = regular_grid(3, 2, dx=2.0, x0=10.0)
    index = BinaryCellIndex(3, 2, gx, gy)
    assert index.extent == (10.0, 16.0, 0.0, 2.0)
    # compacted to the four corners
    assert len(index.bound) == 4


def test_corner_chain_returns_containing_cell():
    gx, gy = corner_chain_grid()
    index = BinaryCellIndex(5, 3, gx, gy)
    for i, j in ((0, 2), (1, 1), (2, 1), (3, 2), (4, 2)):
        assert index.locate(i + 0.5, j + 0.5) == (i, j)
        assert index.locate(i + 0.2, j + 0.7) == (i, j)
    # invalid cells, including the ones between the corner joints
    for x, y in ((0.5, 1.5), (2.5, 2.5), (1.5, 2.5), (3.5, 1.5)):
        assert index.locate(x, y) is None
