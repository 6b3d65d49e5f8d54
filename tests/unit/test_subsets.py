import numpy as np
import pytest

from modelearn.algorithms.subsets import (
    find_linear_subset,
    kernel_weights,
    split_data,
)
from modelearn.params import MAX_WEIGHT, NEW_MODE_THRESH
from modelearn.timers import TimerSet


def _line_and_noise(rng, contiguous=False):
    x_line = rng.uniform(0.0, 10.0, 300)
    X = np.concatenate([x_line, rng.uniform(0.0, 10.0, 300)]).reshape(-1, 1)
    Y = np.concatenate([2.0 * x_line + 1.0, rng.uniform(-20.0, 40.0, 300)])
    order = np.arange(600) if contiguous else rng.permutation(600)
    line_rows = set(np.flatnonzero(order < 300).tolist())
    return X[order], Y[order], line_rows


@pytest.mark.unit
def test_finds_line_hidden_in_noise() -> None:
    rng = np.random.default_rng(0)
    X, Y, line_rows = _line_and_noise(rng)
    size, subset = find_linear_subset(X, Y, rng)
    assert size >= NEW_MODE_THRESH
    assert size == len(subset)
    assert set(subset) <= line_rows


@pytest.mark.unit
def test_block_seeding_finds_contiguous_line() -> None:
    rng = np.random.default_rng(1)
    X, Y, line_rows = _line_and_noise(rng, contiguous=True)
    timers = TimerSet()
    size, subset = find_linear_subset(X, Y, rng, method='block', timers=timers)
    assert size >= NEW_MODE_THRESH
    assert set(subset) <= line_rows
    assert timers.stats['block_subset'].calls >= 1
    assert timers.stats['find_seed'].calls == 1


@pytest.mark.unit
def test_pure_noise_has_no_large_subset() -> None:
    rng = np.random.default_rng(2)
    X = rng.uniform(0.0, 10.0, size=(400, 2))
    Y = rng.uniform(-20.0, 40.0, 400)
    size, subset = find_linear_subset(X, Y, rng)
    assert size < NEW_MODE_THRESH
    assert len(subset) == size


@pytest.mark.unit
def test_empty_input_returns_nothing() -> None:
    assert find_linear_subset(np.zeros((0, 2)), np.zeros(0), np.random.default_rng(0)) == (0, [])


@pytest.mark.unit
def test_unknown_method_is_rejected() -> None:
    with pytest.raises(ValueError):
        find_linear_subset(np.ones((3, 1)), np.ones(3), np.random.default_rng(0), method='nope')


@pytest.mark.unit
def test_kernel_weights_are_capped() -> None:
    w = kernel_weights(np.array([0.0, 0.1, 1e-6, 2.0]))
    assert w[0] == MAX_WEIGHT
    assert w[1] == pytest.approx(1000.0)
    assert w[2] == MAX_WEIGHT
    assert w[3] == pytest.approx(0.125)


@pytest.mark.unit
def test_split_data_partitions_rows() -> None:
    X = np.arange(20, dtype=float).reshape(10, 2)
    Y = np.arange(10, dtype=float)
    use = [1, 3, 5, 7, 9]
    Xtrain, Xtest, Ytrain, Ytest = split_data(X, Y, use, 2, np.random.default_rng(0))
    assert len(Ytest) == 2 and len(Ytrain) == 3
    assert sorted(np.concatenate([Ytrain, Ytest]).tolist()) == [1.0, 3.0, 5.0, 7.0, 9.0]
    assert np.all(Xtrain[:, 0] == 2 * Ytrain)
