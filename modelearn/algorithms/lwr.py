"""Locally weighted regression over the k nearest stored points.

Used as the fallback predictor when no mode claims an input.
"""
import numpy as np
import torch
from typing import List, Optional

from ..params import LWR_K
from .linear import OLS, augment_ones, linreg_clean


class LWR:
    """k-nearest-neighbour weighted linear regression."""

    def __init__(self, k: int = LWR_K):
        self.k = k
        self._xs: List[np.ndarray] = []
        self._ys: List[float] = []
        self._X: Optional[torch.Tensor] = None

    def __len__(self) -> int:
        return len(self._ys)

    def learn(self, x: np.ndarray, y: float):
        if self._xs and len(x) != len(self._xs[0]):
            raise ValueError(f"LWR expects {len(self._xs[0])} inputs, got {len(x)}")
        self._xs.append(np.asarray(x, dtype=float))
        self._ys.append(float(y))
        self._X = None

    def _points(self) -> torch.Tensor:
        # Rebuilt lazily so learn() stays O(1)
        if self._X is None:
            self._X = torch.tensor(np.stack(self._xs), dtype=torch.float64)
        return self._X

    def neighbors(self, x: np.ndarray):
        """Indexes and distances of the nearest stored points, closest first."""
        X = self._points()
        q = torch.tensor(np.asarray(x, dtype=float), dtype=torch.float64).unsqueeze(0)
        dists = torch.cdist(q, X).squeeze(0)
        k = min(self.k, X.shape[0])
        d, idx = torch.topk(dists, k, largest=False, sorted=True)
        return idx.numpy(), d.numpy()

    def predict(self, x: np.ndarray) -> Optional[float]:
        """Predict y for ``x``; None when nothing has been learned."""
        if not self._ys:
            return None

        idx, d = self.neighbors(x)
        ys = np.array([self._ys[i] for i in idx])
        if d[0] == 0.0:
            return float(ys[0])

        w = np.exp(-d / d.max())
        Xn = np.stack([self._xs[i] for i in idx])
        Xa = augment_ones(Xn)

        # A local linear fit needs more neighbours than parameters
        if len(idx) > Xa.shape[1]:
            sw = np.sqrt(w)
            coefs = linreg_clean(OLS, Xa * sw[:, None], ys * sw)
            if coefs is not None:
                return float(np.append(np.asarray(x, dtype=float), 1.0) @ coefs)

        return float(np.sum(w * ys) / np.sum(w))
