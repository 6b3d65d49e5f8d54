import numpy as np
import pytest

from modelearn.algorithms.lda import LDA


def _clusters(rng):
    X1 = rng.normal(3.0, 0.5, size=(30, 2))
    X0 = rng.normal(-3.0, 0.5, size=(30, 2))
    return np.vstack([X1, X0]), [1] * 30 + [0] * 30


@pytest.mark.unit
def test_separates_two_clusters() -> None:
    X, classes = _clusters(np.random.default_rng(0))
    lda = LDA()
    lda.learn(X, classes)
    assert lda.classify(np.array([3.0, 3.0])) == 1
    assert lda.classify(np.array([-3.0, -3.0])) == 0


@pytest.mark.unit
def test_single_class_is_constant() -> None:
    lda = LDA()
    lda.learn(np.ones((4, 2)), [0, 0, 0, 0])
    assert lda.const_class == 0
    assert lda.classify(np.array([100.0, 100.0])) == 0
    assert 'constant' in lda.inspect()


@pytest.mark.unit
def test_ignores_constant_columns() -> None:
    rng = np.random.default_rng(1)
    X, classes = _clusters(rng)
    X = np.column_stack([X, np.full(len(X), 9.0)])
    lda = LDA()
    lda.learn(X, classes)
    assert lda.used_cols == [0, 1]
    assert lda.classify(np.array([3.0, 3.0, -50.0])) == 1


@pytest.mark.unit
def test_dict_round_trip_keeps_decisions() -> None:
    rng = np.random.default_rng(2)
    X, classes = _clusters(rng)
    lda = LDA()
    lda.learn(X, classes)
    restored = LDA.from_dict(lda.to_dict())
    for x in rng.uniform(-4.0, 4.0, size=(20, 2)):
        assert restored.classify(x) == lda.classify(x)
