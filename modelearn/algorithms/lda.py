"""Two-class Fisher linear discriminant."""
import numpy as np
from typing import Dict, List, Sequence

from ..params import RIDGE_LAMBDA
from .linear import constant_columns


class LDA:
    """Fisher discriminant separating class 1 from class 0.

    Constant columns are ignored; the pooled within-class scatter is ridge
    regularised so that degenerate training sets still give a direction.
    """

    def __init__(self):
        self.used_cols: List[int] = []
        self.w = np.zeros(0)
        self.threshold = 0.0
        self.const_class = -1

    def learn(self, X: np.ndarray, classes: Sequence[int]):
        X = np.atleast_2d(np.asarray(X, dtype=float))
        classes = np.asarray(classes, dtype=int)
        if len(classes) != X.shape[0]:
            raise ValueError("need one class label per row")

        present = set(classes.tolist())
        if len(present) < 2:
            # Nothing to discriminate, always answer the only class seen
            self.const_class = present.pop() if present else 0
            self.used_cols, self.w, self.threshold = [], np.zeros(0), 0.0
            return
        self.const_class = -1

        self.used_cols = [int(c) for c in np.flatnonzero(~constant_columns(X))]
        Xu = X[:, self.used_cols]
        X1, X0 = Xu[classes == 1], Xu[classes == 0]
        m1, m0 = X1.mean(axis=0), X0.mean(axis=0)

        d = Xu.shape[1]
        Sw = np.zeros((d, d))
        for Xc, m in ((X1, m1), (X0, m0)):
            centered = Xc - m
            Sw += centered.T @ centered
        Sw += RIDGE_LAMBDA * np.eye(d)

        self.w = np.linalg.solve(Sw, m1 - m0) if d else np.zeros(0)
        self.threshold = float(self.w @ (m1 + m0) / 2.0) if d else 0.0

    def project(self, x: np.ndarray) -> float:
        x = np.asarray(x, dtype=float)
        return float(x[self.used_cols] @ self.w)

    def classify(self, x: np.ndarray) -> int:
        if self.const_class >= 0:
            return self.const_class
        return 1 if self.project(x) > self.threshold else 0

    def inspect(self) -> str:
        if self.const_class >= 0:
            return f"constant class {self.const_class}"
        terms = ' + '.join(f"{w:.6g}*x[{c}]" for c, w in zip(self.used_cols, self.w))
        return f"class 1 if {terms or '0'} > {self.threshold:.6g}"

    def to_dict(self) -> Dict:
        return {
            'used_cols': list(self.used_cols),
            'w': [float(v) for v in self.w],
            'threshold': float(self.threshold),
            'const_class': int(self.const_class),
        }

    @classmethod
    def from_dict(cls, payload: Dict) -> 'LDA':
        lda = cls()
        lda.used_cols = [int(c) for c in payload['used_cols']]
        lda.w = np.array(payload['w'], dtype=float)
        lda.threshold = float(payload['threshold'])
        lda.const_class = int(payload['const_class'])
        return lda
