"""Discovery of large groups of rows that share one linear function.

New modes are seeded from the noise data with these routines. Two seeding
strategies exist: ``block`` assumes the rows of one function arrive in
contiguous runs; ``em`` runs a small robust-regression loop from random seed
rows and works when the rows are interleaved.
"""
import logging
from typing import List, Optional, Tuple

import numpy as np

from ..params import (
    KERNEL_POWER,
    LINEAR_SUBSET_MAX_ITERS,
    LINEAR_SUBSET_TEST_RATIO,
    MAX_WEIGHT,
    MINI_EM_MAX_ITERS,
    MODEL_ERROR_THRESH,
    NEW_MODE_THRESH,
    SAME_THRESH,
)
from ..timers import TimerSet
from .linear import FORWARD, OLS, augment_ones, clean_lr_data, linreg_clean

logger = logging.getLogger(__name__)

EM_METHOD = 'em'
BLOCK_METHOD = 'block'


def kernel_weights(errors: np.ndarray, power: float = KERNEL_POWER) -> np.ndarray:
    """Weight ``e ** power`` per residual, capped at MAX_WEIGHT (also for zero residuals)."""
    w = np.full(len(errors), MAX_WEIGHT)
    nz = errors > 0.0
    with np.errstate(over='ignore'):
        w[nz] = np.minimum(MAX_WEIGHT, errors[nz] ** power)
    return w


def split_data(X: np.ndarray, Y: np.ndarray, use: List[int], ntest: int,
               rng: np.random.Generator) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Random split of rows ``use`` into ``(Xtrain, Xtest, Ytrain, Ytest)`` with ``ntest`` test rows."""
    use = np.asarray(use, dtype=int)
    test_mask = np.zeros(len(use), dtype=bool)
    test_mask[rng.choice(len(use), size=ntest, replace=False)] = True
    train_rows, test_rows = use[~test_mask], use[test_mask]
    return X[train_rows], X[test_rows], Y[train_rows], Y[test_rows]


def find_linear_subset_block(X: np.ndarray, Y: np.ndarray, rng: np.random.Generator,
                             timers: Optional[TimerSet] = None) -> List[int]:
    """Fit a random contiguous block of rows exactly and return every row on that fit."""
    timers = timers if timers is not None else TimerSet()
    with timers.timed('block_subset'):
        ndata, xcols = X.shape
        rank = xcols + 1
        if ndata <= rank:
            return []
        start = int(rng.integers(0, ndata - rank))
        coefs = linreg_clean(FORWARD, X[start:start + rank], Y[start:start + rank])
        if coefs is None:
            return []
        errors = np.abs(Y - X @ coefs)
        return [int(i) for i in np.flatnonzero(errors < MODEL_ERROR_THRESH)]


def find_linear_subset_em(X: np.ndarray, Y: np.ndarray, rng: np.random.Generator,
                          timers: Optional[TimerSet] = None) -> List[int]:
    """Mini EM: iteratively reweighted least squares from ``cols + 1`` random seed rows.

    Rows are reweighted by ``kernel_weights`` of their residual after every
    fit, so rows close to the current line dominate the next fit.
    """
    timers = timers if timers is not None else TimerSet()
    with timers.timed('em_block'):
        ndata, xcols = X.shape
        rank = xcols + 1
        if ndata < rank:
            return []

        w = np.zeros(ndata)
        w[rng.choice(ndata, size=rank, replace=False)] = 1.0
        error: Optional[np.ndarray] = None

        for it in range(MINI_EM_MAX_ITERS):
            coefs = linreg_clean(OLS, X * w[:, None], Y * w)
            if coefs is None:
                return []
            old_error = error
            error = np.abs(Y - X @ coefs)
            if old_error is not None and np.linalg.norm(error - old_error) / ndata < SAME_THRESH:
                break
            w = kernel_weights(error)

        return [int(i) for i in np.flatnonzero(error < MODEL_ERROR_THRESH)]


SEEDERS = {
    EM_METHOD: find_linear_subset_em,
    BLOCK_METHOD: find_linear_subset_block,
}


def find_linear_subset(X: np.ndarray, Y: np.ndarray, rng: np.random.Generator,
                       method: str = EM_METHOD, timers: Optional[TimerSet] = None) -> Tuple[int, List[int]]:
    """Largest validated linear subset of the rows of ``(X, Y)``.

    Each outer iteration seeds a candidate on the rows not yet grouped. A
    candidate is valid when a forward fit on half of it predicts the other
    half within MODEL_ERROR_THRESH. Valid candidates are taken out of the
    pool. Returns ``(size, row_indexes)``; ``(0, [])`` when nothing fits.
    """
    try:
        seeder = SEEDERS[method]
    except KeyError:
        raise ValueError(f"unknown seeding method: {method}") from None
    timers = timers if timers is not None else TimerSet()

    with timers.timed('find_seed'):
        X = np.atleast_2d(np.asarray(X, dtype=float))
        Y = np.asarray(Y, dtype=float).reshape(-1)
        if X.shape[0] == 0:
            return 0, []
        Xc, _ = clean_lr_data(X)
        Xa = augment_ones(Xc)
        xcols = Xa.shape[1]

        pool = np.arange(Xa.shape[0])
        largest, subset = 0, []
        for it in range(LINEAR_SUBSET_MAX_ITERS):
            local = seeder(Xa[pool], Y[pool], rng, timers)
            if len(local) < 2 * xcols:
                continue

            ntest = int(len(local) * LINEAR_SUBSET_TEST_RATIO)
            Xtrain, Xtest, Ytrain, Ytest = split_data(Xa[pool], Y[pool], local, ntest, rng)
            coefs = linreg_clean(FORWARD, Xtrain, Ytrain)
            if coefs is None:
                continue
            test_error = np.abs(Ytest - Xtest @ coefs)
            if ntest > 0 and np.linalg.norm(test_error) / ntest > MODEL_ERROR_THRESH:
                continue

            if len(local) > largest:
                largest = len(local)
                subset = [int(pool[i]) for i in local]
                logger.debug("linear subset of size %d after %d iterations", largest, it + 1)
                if largest >= NEW_MODE_THRESH:
                    return largest, subset

            # Rows of a valid group are assumed not to belong to any other group
            pool = np.delete(pool, local)
            if len(pool) < NEW_MODE_THRESH:
                break

        return largest, subset
