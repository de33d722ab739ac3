# -*- coding: utf-8 -*-

"""
config.py

This module centralizes the tunable constants of the curvigrid coordinate
mapping engine. Keeping tolerances, seeds and defaults in one place ensures the
binary tree, the kd-tree index, the bilinear mapping and the command line tool
all agree on the same numbers.

Contents:
---------
1. GRIDMAP:
   - Default index strategy and the closed set of strategies accepted by
     `GridMap`.
   - Tolerances used by the forward and inverse bilinear mapping.

2. BINARY_TREE:
   - Tolerances used while cutting and compacting subgrid boundary polygons.

3. KDTREE:
   - Seed for the shuffled insertion order and the cKDTree leaf size.

4. NODE_IO:
   - Node file conventions shared by `curvigrid.nodes` and `curvigrid.cli`.

Usage:
------
    from curvigrid.config import GRIDMAP, BINARY_TREE

Callers override values per call (e.g. `GridMap(..., map_type="kdtree")`)
rather than mutating these dictionaries.
"""

# ───────────────────────────────────────────────────────────────────────────────
# 1) GRID MAP (facade and bilinear mapping)
# ───────────────────────────────────────────────────────────────────────────────
GRIDMAP = {
    # Strategy used when the caller does not name one
    "default_type": "binary",
    # Accepted strategies: binary partition tree, nearest-node kd-tree
    "types": ("binary", "kdtree"),
    # Pull-back applied when a clamped fractional index would hit the upper
    # edge of the index range (fi -> nce1 - eps, u -> 1 - eps)
    "eps": 1.0e-8,
    # |A| below this value treats the cell as locally affine in xy2fij()
    "eps_zero": 1.0e-5,
}

# ───────────────────────────────────────────────────────────────────────────────
# 2) BINARY TREE
# ───────────────────────────────────────────────────────────────────────────────
BINARY_TREE = {
    # Vertices closer than this (or turning by less than this sine) are merged
    # when a subgrid boundary is compacted
    "eps_compact": 1.0e-10,
    # A polygon whose last vertex is within this distance of the first one is
    # considered explicitly closed while cutting
    "closed_eps": 1.0e-15,
}

# ───────────────────────────────────────────────────────────────────────────────
# 3) KD-TREE
# ───────────────────────────────────────────────────────────────────────────────
KDTREE = {
    # Fixed seed for the shuffled node order; builds are reproducible
    "shuffle_seed": 5555,
    # scipy cKDTree leaf size
    "leafsize": 16,
}

# ───────────────────────────────────────────────────────────────────────────────
# 4) NODE FILES AND COMMAND LINE
# ───────────────────────────────────────────────────────────────────────────────
NODE_IO = {
    # "DD" double density nodes, "CO" cell corner nodes
    "default_node_type": "DD",
    "node_types": ("DD", "CO"),
    # File names meaning standard input
    "stdin_aliases": ("stdin", "-"),
    # Output format for converted coordinates
    "number_format": "%.15g",
}
