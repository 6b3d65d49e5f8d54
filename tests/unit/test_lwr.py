import numpy as np
import pytest

from modelearn.algorithms.lwr import LWR


@pytest.mark.unit
def test_empty_model_predicts_nothing() -> None:
    assert LWR().predict(np.array([1.0])) is None


@pytest.mark.unit
def test_exact_match_returns_stored_output() -> None:
    lwr = LWR()
    lwr.learn(np.array([1.0, 2.0]), 7.0)
    lwr.learn(np.array([3.0, 4.0]), -1.0)
    assert lwr.predict(np.array([3.0, 4.0])) == -1.0


@pytest.mark.unit
def test_local_fit_interpolates_linear_data() -> None:
    lwr = LWR()
    for x in np.linspace(-5.0, 5.0, 50):
        lwr.learn(np.array([x]), 2.0 * x + 1.0)
    assert lwr.predict(np.array([0.37])) == pytest.approx(1.74, abs=1e-6)


@pytest.mark.unit
def test_few_neighbours_use_weighted_mean() -> None:
    lwr = LWR()
    lwr.learn(np.array([0.0]), 1.0)
    lwr.learn(np.array([2.0]), 3.0)
    y = lwr.predict(np.array([1.0]))
    assert y == pytest.approx(2.0)


@pytest.mark.unit
def test_rejects_mismatched_width() -> None:
    lwr = LWR()
    lwr.learn(np.array([0.0]), 1.0)
    with pytest.raises(ValueError):
        lwr.learn(np.array([0.0, 1.0]), 1.0)
