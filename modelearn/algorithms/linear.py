"""Linear regression solvers used by the mode learner.

Outputs are always scalar, so ``y`` is a 1-D array and coefficient vectors
are 1-D as well. Solvers never raise on degenerate input: columns that carry
no information are removed before fitting and get a zero coefficient.
"""
import numpy as np
from typing import List, Optional, Tuple

from ..params import MODEL_ERROR_THRESH, REFIT_MUL_THRESH, RIDGE_LAMBDA

OLS = 'ols'
RIDGE = 'ridge'
FORWARD = 'forward'


def constant_columns(X: np.ndarray) -> np.ndarray:
    """Boolean mask of columns holding a single value across all rows."""
    if X.shape[0] == 0:
        return np.ones(X.shape[1], dtype=bool)
    return np.all(X == X[0], axis=0)


def clean_lr_data(X: np.ndarray) -> Tuple[np.ndarray, List[int]]:
    """Drop constant columns. Returns the reduced matrix and kept column indexes."""
    used = np.flatnonzero(~constant_columns(X))
    return X[:, used], [int(c) for c in used]


def augment_ones(X: np.ndarray) -> np.ndarray:
    return np.hstack([X, np.ones((X.shape[0], 1))])


def mean_abs_error(X: np.ndarray, y: np.ndarray, coefs: np.ndarray, inter: float = 0.0) -> float:
    if len(y) == 0:
        return 0.0
    return float(np.mean(np.abs(y - (X @ coefs + inter))))


def ols(X: np.ndarray, y: np.ndarray) -> np.ndarray:
    return np.linalg.lstsq(X, y, rcond=None)[0]


def ridge(X: np.ndarray, y: np.ndarray, lam: float = RIDGE_LAMBDA) -> np.ndarray:
    A = X.T @ X + lam * np.eye(X.shape[1])
    return np.linalg.solve(A, X.T @ y)


def forward(X: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Forward stepwise selection.

    Greedily adds the column that most reduces the mean absolute residual.
    Stops when the residual is within MODEL_ERROR_THRESH or the best
    candidate improves the residual by less than REFIT_MUL_THRESH. Columns
    never selected keep an exact zero coefficient, which is what lets callers
    read off which objects a model depends on.
    """
    n, p = X.shape
    coefs = np.zeros(p)
    selected: List[int] = []
    err = float(np.mean(np.abs(y))) if n else 0.0

    while err > MODEL_ERROR_THRESH and len(selected) < min(p, n):
        best_err, best_col, best_b = None, -1, None
        for j in range(p):
            if j in selected:
                continue
            cols = selected + [j]
            b = ols(X[:, cols], y)
            e = mean_abs_error(X[:, cols], y, b)
            if best_err is None or e < best_err:
                best_err, best_col, best_b = e, j, b

        if best_err is None or best_err * REFIT_MUL_THRESH > err:
            break
        selected.append(best_col)
        err = best_err
        coefs[:] = 0.0
        coefs[selected] = best_b

    return coefs


SOLVERS = {
    OLS: ols,
    RIDGE: ridge,
    FORWARD: forward,
}


def solve(alg: str, X: np.ndarray, y: np.ndarray) -> np.ndarray:
    try:
        solver = SOLVERS[alg]
    except KeyError:
        raise ValueError(f"unknown regression algorithm: {alg}") from None
    return solver(X, y)


def linreg_clean(alg: str, X: np.ndarray, y: np.ndarray) -> Optional[np.ndarray]:
    """Fit ``y ~ X`` without intercept after dropping all-zero columns.

    Returns full-width coefficients, or None when no fit is possible.
    """
    X = np.atleast_2d(np.asarray(X, dtype=float))
    y = np.asarray(y, dtype=float).reshape(-1)
    if X.shape[0] == 0 or X.shape[0] != len(y):
        return None

    coefs = np.zeros(X.shape[1])
    used = np.flatnonzero(~np.all(X == 0.0, axis=0))
    if len(used) == 0:
        return coefs
    try:
        b = solve(alg, X[:, used], y)
    except np.linalg.LinAlgError:
        return None
    if not np.all(np.isfinite(b)):
        return None
    coefs[used] = b
    return coefs


def linreg_d(alg: str, X: np.ndarray, y: np.ndarray) -> Optional[Tuple[np.ndarray, float]]:
    """Fit ``y ~ X + intercept`` on centred data, ignoring constant columns.

    Returns ``(coefs, intercept)`` or None when no fit is possible.
    """
    X = np.atleast_2d(np.asarray(X, dtype=float))
    y = np.asarray(y, dtype=float).reshape(-1)
    n, p = X.shape
    if n == 0 or n != len(y):
        return None

    coefs = np.zeros(p)
    used = np.flatnonzero(~constant_columns(X))
    y_mean = float(np.mean(y))
    if len(used) == 0:
        return coefs, y_mean

    Xu = X[:, used]
    x_mean = Xu.mean(axis=0)
    try:
        b = solve(alg, Xu - x_mean, y - y_mean)
    except np.linalg.LinAlgError:
        return None
    if not np.all(np.isfinite(b)):
        return None
    coefs[used] = b
    return coefs, float(y_mean - x_mean @ b)
