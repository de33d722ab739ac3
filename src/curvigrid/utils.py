"""
utils.py

Small helpers shared by the cell indexes and the command line tool.

The public helpers:
- `safe_log_exception(msg, exc, **ctx)` : logs exceptions robustly
- `safe_build_kdtree(points, name='KDTree', leafsize=16)` : returns a cKDTree or None
- `shuffled_ids(n, rng)` : node ids in a reproducible shuffled order

"""

from typing import Any, Optional
import sys
import logging
import numpy as np

logger = logging.getLogger(__name__)


def safe_log_exception(msg: str, exc: Exception, **ctx: Any) -> None:
	"""Log an exception robustly.

	Attempts to call `logger.exception`. If logging fails for any reason,
	falls back to writing a compact message to `sys.stderr`.
	"""
	try:
		if ctx:
			ctx_s = ' | '.join(f"{k}={v!r}" for k, v in ctx.items())
			logger.exception('%s | %s | %s', msg, exc, ctx_s)
		else:
			logger.exception('%s | %s', msg, exc)
	except Exception:
		try:
			sys.stderr.write(f'LOGGING FAILURE: {msg} {exc}\n')
		except Exception:
			pass


def safe_build_kdtree(points: Any, name: str = 'KDTree', leafsize: int = 16) -> Optional[object]:
	"""Build a `scipy.spatial.cKDTree` over ``points`` (an (N, 2) array).

	Returns ``None`` when there is nothing to index (``None`` or empty input).
	Malformed input (wrong shape, non-finite coordinates) is logged and
	re-raised as ``ValueError``.
	"""
	if points is None:
		logger.debug('%s: points is None, not building tree', name)
		return None
	pts = np.asarray(points, dtype=float)
	if pts.size == 0:
		logger.debug('%s: points empty, not building tree', name)
		return None
	if pts.ndim != 2:
		logger.error('%s: expected an (N, k) array, got shape %s', name, pts.shape)
		raise ValueError(f'{name}: expected an (N, k) array, got shape {pts.shape}')
	if not np.all(np.isfinite(pts)):
		logger.error('%s: refusing to index non-finite coordinates', name)
		raise ValueError(f'{name}: non-finite coordinates')

	from scipy.spatial import cKDTree

	tree = cKDTree(pts, leafsize=leafsize)
	logger.debug('%s: built cKDTree over %d points', name, pts.shape[0])
	return tree


def shuffled_ids(n: int, rng: Optional[np.random.Generator] = None, seed: int = 5555) -> np.ndarray:
	"""Return ``0..n-1`` in a shuffled order.

	``rng`` is used when given; otherwise a generator seeded with ``seed`` is
	created so that repeated builds see the same order.
	"""
	if rng is None:
		rng = np.random.default_rng(seed)
	ids = np.arange(int(n), dtype=np.int64)
	rng.shuffle(ids)
	return ids
