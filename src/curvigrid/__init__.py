"""curvigrid: physical <-> index space mapping for curvilinear numerical grids."""

from curvigrid.bmap import BinaryCellIndex, build_binary_index
from curvigrid.errors import CurvigridError, GridFileError, GridStructureError
from curvigrid.gridmap import GridMap, build_index, grid_map_new, locate
from curvigrid.kmap import KdCellIndex, build_kd_index
from curvigrid.nodes import GridNodes

__version__ = "0.1.0"

__all__ = [
    "BinaryCellIndex",
    "KdCellIndex",
    "GridMap",
    "GridNodes",
    "CurvigridError",
    "GridFileError",
    "GridStructureError",
    "build_binary_index",
    "build_kd_index",
    "build_index",
    "grid_map_new",
    "locate",
]
