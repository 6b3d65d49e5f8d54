import numpy as np
import pytest

from modelearn.algorithms.linear import (
    FORWARD,
    OLS,
    RIDGE,
    augment_ones,
    clean_lr_data,
    forward,
    linreg_clean,
    linreg_d,
)


@pytest.mark.unit
def test_forward_leaves_unused_columns_at_zero() -> None:
    rng = np.random.default_rng(0)
    X = rng.uniform(-1.0, 1.0, size=(40, 3))
    y = 3.0 * X[:, 0] - 2.0 * X[:, 2]
    coefs = forward(X, y)
    assert coefs[1] == 0.0
    assert np.allclose(coefs, [3.0, 0.0, -2.0], atol=1e-9)


@pytest.mark.unit
def test_linreg_d_recovers_intercept() -> None:
    rng = np.random.default_rng(1)
    X = np.column_stack([rng.uniform(-5.0, 5.0, 30), np.full(30, 4.0)])
    y = 2.0 * X[:, 0] + 5.0
    for alg in (OLS, RIDGE, FORWARD):
        coefs, inter = linreg_d(alg, X, y)
        assert coefs[0] == pytest.approx(2.0, abs=1e-6)
        assert coefs[1] == 0.0
        assert inter == pytest.approx(5.0, abs=1e-6)


@pytest.mark.unit
def test_linreg_d_constant_data_is_intercept_only() -> None:
    X = np.ones((5, 2))
    coefs, inter = linreg_d(FORWARD, X, np.full(5, 3.5))
    assert np.all(coefs == 0.0)
    assert inter == 3.5


@pytest.mark.unit
def test_linreg_clean_handles_degenerate_input() -> None:
    assert linreg_clean(OLS, np.zeros((0, 2)), np.zeros(0)) is None
    assert linreg_clean(OLS, np.ones((3, 2)), np.zeros(4)) is None
    coefs = linreg_clean(OLS, np.zeros((3, 2)), np.ones(3))
    assert np.all(coefs == 0.0)


@pytest.mark.unit
def test_linreg_clean_fits_without_intercept() -> None:
    X = augment_ones(np.array([[0.0], [1.0], [2.0], [3.0]]))
    coefs = linreg_clean(OLS, X, np.array([1.0, 3.0, 5.0, 7.0]))
    assert np.allclose(coefs, [2.0, 1.0])


@pytest.mark.unit
def test_clean_lr_data_drops_constant_columns() -> None:
    X = np.array([[1.0, 2.0, 3.0], [1.0, 5.0, 3.0]])
    Xc, used = clean_lr_data(X)
    assert used == [1]
    assert Xc.shape == (2, 1)
