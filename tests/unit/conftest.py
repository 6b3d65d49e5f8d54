from typing import Dict, List, Tuple

import numpy as np
import pytest

from modelearn import EM, Relation, SceneSig


def one_block_sig() -> SceneSig:
    sig = SceneSig()
    sig.add(1, 'block', 'b1', ['x'])
    return sig


def two_block_sig() -> SceneSig:
    sig = SceneSig()
    sig.add(1, 'block', 'b1', ['x'])
    sig.add(2, 'block', 'b2', ['x'])
    return sig


def touching_scene(x: np.ndarray, touching: bool) -> Tuple[SceneSig, Dict[str, Relation], np.ndarray, float]:
    """Two blocks; touching scenes follow y = 2*b1 + 1, the others y = b1 - 3*b2."""
    rels = {'touching': Relation(3), 'block': Relation(2)}
    rels['block'].add(0, (1,))
    rels['block'].add(0, (2,))
    if touching:
        rels['touching'].add(0, (1, 2))
        rels['touching'].add(0, (2, 1))
        y = 2.0 * x[0] + 1.0
    else:
        y = x[0] - 3.0 * x[1]
    return two_block_sig(), rels, x, float(y)


def learn_line(em: EM, rng: np.random.Generator, n: int, slope: float, inter: float):
    sig = one_block_sig()
    for x in rng.uniform(-10.0, 10.0, size=n):
        em.learn(0, sig, {}, [x], slope * x + inter)


def learn_touching(em: EM, rng: np.random.Generator, n: int, touching: bool):
    for _ in range(n):
        sig, rels, x, y = touching_scene(rng.uniform(-5.0, 5.0, size=2), touching)
        em.learn(0, sig, rels, x, y)


@pytest.fixture
def two_line_em() -> EM:
    """Learner that has converged on y = 2x + 1 and y = -3x + 5."""
    em = EM(seed=0)
    rng = np.random.default_rng(1)
    learn_line(em, rng, 300, 2.0, 1.0)
    assert em.run(50)
    learn_line(em, rng, 300, -3.0, 5.0)
    assert em.run(50)
    return em


@pytest.fixture
def touching_em() -> EM:
    """Learner whose mode 1 holds touching scenes and mode 2 the larger set of apart scenes."""
    em = EM(seed=0)
    rng = np.random.default_rng(2)
    learn_touching(em, rng, 250, True)
    assert em.run(50)
    learn_touching(em, rng, 400, False)
    assert em.run(50)
    return em


def check_partition(em: EM) -> List[int]:
    sizes = [len(m) for m in em.modes]
    assert sum(sizes) == em.ndata
    for i, d in enumerate(em.data):
        assert i in em.modes[d.map_mode].members
        assert len(d.mode_prob) == em.nmodes
        assert len(d.prob_stale) == em.nmodes
    return sizes
