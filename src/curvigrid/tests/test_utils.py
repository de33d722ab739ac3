import numpy as np
import pytest

from curvigrid import utils
from curvigrid.utils import safe_build_kdtree, shuffled_ids


def test_safe_build_kdtree_none():
    assert safe_build_kdtree(None) is None


def test_safe_build_kdtree_empty():
    assert safe_build_kdtree(np.empty((0, 2))) is None


def test_safe_build_kdtree_valid():
    pts = np.array([[0.0, 0.0], [1.0, 1.0], [2.0, 2.0]])
    tree = safe_build_kdtree(pts, name='nodes', leafsize=4)
    assert tree is not None
    d, idx = tree.query([0.1, 0.1])
    assert idx == 0


def test_safe_build_kdtree_rejects_non_finite():
    with pytest.raises(ValueError):
        safe_build_kdtree(np.array([[0.0, 0.0], [np.nan, 1.0]]))


def test_safe_build_kdtree_rejects_flat_input():
    with pytest.raises(ValueError):
        safe_build_kdtree(np.array([0.0, 1.0, 2.0]))


def test_shuffled_ids_is_a_permutation():
    ids = shuffled_ids(20)
    assert sorted(ids.tolist()) == list(range(20))
    assert np.array_equal(ids, shuffled_ids(20))
    assert np.array_equal(shuffled_ids(20, rng=np.random.default_rng(3)),
                          shuffled_ids(20, seed=3))


def test_safe_log_exception_fallback(capfd):
    # Force logger.exception to raise by setting logger to a dummy that raises
    class BadLogger:
        def exception(self, *args, **kwargs):
            raise RuntimeError('logger failed')

    old_logger = utils.logger
    try:
        utils.logger = BadLogger()
        try:
            raise ValueError('boom')
        except Exception as e:
            utils.safe_log_exception('test message', e, key='value')
        captured = capfd.readouterr()
        assert 'LOGGING FAILURE' in captured.err
    finally:
        utils.logger = old_logger


def test_safe_log_exception_logs(caplog):
    try:
        raise ValueError('boom')
    except ValueError as e:
        utils.safe_log_exception('grid read failed', e, path='grid.txt')
    assert 'grid read failed' in caplog.text
    assert "path='grid.txt'" in caplog.text
