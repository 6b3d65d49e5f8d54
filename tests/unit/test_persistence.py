import json

import numpy as np
import pytest

from conftest import touching_scene
from modelearn import EM, LoadError, dumps_em, load_em, loads_em, save_em
from modelearn.persistence import em_to_dict


def _predictions(em: EM, seed: int):
    rng = np.random.default_rng(seed)
    out = []
    for t in rng.integers(0, 2, size=20):
        sig, rels, x, _ = touching_scene(rng.uniform(-5.0, 5.0, size=2), bool(t))
        pred = em.predict(0, sig, rels, x)
        out.append((pred.success, pred.mode, pred.y))
    return out


@pytest.mark.unit
def test_dump_load_dump_is_stable(touching_em) -> None:
    text = dumps_em(touching_em)
    assert dumps_em(loads_em(text)) == text


@pytest.mark.unit
def test_loaded_learner_predicts_identically(touching_em) -> None:
    restored = loads_em(dumps_em(touching_em))
    assert restored.nmodes == touching_em.nmodes
    assert restored.noise_by_sig == touching_em.noise_by_sig
    assert _predictions(restored, 11) == _predictions(touching_em, 11)


@pytest.mark.unit
def test_loaded_learner_keeps_learning(two_line_em) -> None:
    restored = loads_em(dumps_em(two_line_em))
    for em in (two_line_em, restored):
        sig = em.sigs[0].sig
        for x in np.linspace(-4.0, 4.0, 250):
            em.learn(0, sig, {}, [x], 0.5 * x - 7.0)
        assert em.run(50)
    assert restored.nmodes == two_line_em.nmodes == 4
    assert dumps_em(restored) == dumps_em(two_line_em)


@pytest.mark.unit
def test_save_and_load_through_a_file(tmp_path, touching_em) -> None:
    path = tmp_path / 'em.json'
    with open(path, 'w', encoding='utf-8') as f:
        save_em(touching_em, f)
    with open(path, 'r', encoding='utf-8') as f:
        restored = load_em(f)
    assert restored.ndata == touching_em.ndata
    assert [len(m) for m in restored.modes] == [len(m) for m in touching_em.modes]


@pytest.mark.unit
def test_toggles_survive_a_round_trip() -> None:
    em = EM(seed=3)
    em.use_foil = False
    em.use_lda = False
    restored = loads_em(dumps_em(em))
    assert restored.use_em and not restored.use_foil and not restored.use_lda
    assert restored.ndata == 0
    assert restored.nmodes == 1
    assert restored.rng.integers(0, 1 << 30) == em.rng.integers(0, 1 << 30)


@pytest.mark.unit
@pytest.mark.parametrize('text', ['', '{"version": 1', 'not json', '[]', 'null'])
def test_malformed_text_raises_load_error(text) -> None:
    with pytest.raises(LoadError):
        loads_em(text)


@pytest.mark.unit
def test_truncated_checkpoint_raises_load_error(two_line_em) -> None:
    text = dumps_em(two_line_em)
    with pytest.raises(LoadError):
        loads_em(text[:len(text) // 2])


@pytest.mark.unit
def test_wrong_version_raises_load_error(two_line_em) -> None:
    payload = em_to_dict(two_line_em)
    payload['version'] = 99
    with pytest.raises(LoadError, match='version'):
        loads_em(json.dumps(payload))


@pytest.mark.unit
@pytest.mark.parametrize('key', ['data', 'modes', 'rng_state', 'relations', 'obj_maps'])
def test_missing_section_raises_load_error(two_line_em, key) -> None:
    payload = em_to_dict(two_line_em)
    del payload[key]
    with pytest.raises(LoadError):
        loads_em(json.dumps(payload))


@pytest.mark.unit
def test_inconsistent_posterior_raises_load_error(two_line_em) -> None:
    payload = em_to_dict(two_line_em)
    payload['data'][0]['mode_prob'] = payload['data'][0]['mode_prob'][:-1]
    with pytest.raises(LoadError, match='posterior'):
        loads_em(json.dumps(payload))


@pytest.mark.unit
def test_broken_membership_raises_load_error(two_line_em) -> None:
    payload = em_to_dict(two_line_em)
    i = payload['data'][0]['map_mode']
    payload['modes'][i]['members'] = payload['modes'][i]['members'][1:]
    with pytest.raises(LoadError):
        loads_em(json.dumps(payload))
