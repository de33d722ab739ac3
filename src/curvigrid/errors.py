"""Exception types raised by curvigrid.

Construction problems are fatal and raised; query misses are reported as
``None`` results and never raise.
"""


class CurvigridError(Exception):
    """Base class for curvigrid errors."""


class GridStructureError(CurvigridError, ValueError):
    """The node array cannot be rendered into a cell index.

    Raised when a boundary vertex does not coincide with a grid node, when the
    grid has no valid cells, or when a subgrid spanning several cells in both
    index directions cannot be cut in two.
    """


class GridFileError(CurvigridError, ValueError):
    """A grid node file is malformed or of an unsupported node type."""
