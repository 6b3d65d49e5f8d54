"""JSON checkpoints of a learner.

A checkpoint holds everything needed to resume learning and to reproduce
predictions exactly: observations, signature buckets, modes with their
classifiers, remembered assignments, the relation table, toggles and the
random generator state. LWR models are rebuilt from the bucket members.
"""
import json
import logging
from typing import Dict, IO

import numpy as np

from .em import EM
from .errors import InvariantViolation, LoadError
from .mode import ModeInfo
from .models import SceneSig, SigInfo, TrainData
from .params import PERSIST_SCHEMA_VERSION
from .relation import RelationTable

logger = logging.getLogger(__name__)


def em_to_dict(em: EM) -> Dict:
    return {
        'version': PERSIST_SCHEMA_VERSION,
        'check_after': em.check_after,
        'use_em': em.use_em,
        'use_foil': em.use_foil,
        'use_lda': em.use_lda,
        'subset_method': em.subset_method,
        'rng_state': em.rng.bit_generator.state,
        'data': [d.to_dict() for d in em.data],
        'sigs': [{'sig': s.sig.to_dict(), 'members': list(s.members)} for s in em.sigs],
        'modes': [m.to_dict() for m in em.modes],
        'obj_maps': [[m, i, list(a)] for (m, i), a in sorted(em.obj_maps.items())],
        'relations': em.rel_tbl.to_dict(),
    }


def _check_consistency(em: EM):
    nmodes = em.nmodes
    if nmodes < 1 or not em.modes[0].noise or any(m.noise for m in em.modes[1:]):
        raise LoadError("mode 0 must be the only noise mode")
    for i, d in enumerate(em.data):
        if len(d.mode_prob) != nmodes or len(d.prob_stale) != nmodes:
            raise LoadError(f"observation {i} has a posterior of the wrong size")
        if not 0 <= d.sig_index < len(em.sigs):
            raise LoadError(f"observation {i} refers to unknown signature {d.sig_index}")
        if not 0 <= d.map_mode < nmodes or i not in em.modes[d.map_mode].members:
            raise LoadError(f"observation {i} is not a member of its MAP mode")
        if len(d.x) != em.sigs[d.sig_index].sig.dim():
            raise LoadError(f"observation {i} does not match its signature width")
    if sum(len(m) for m in em.modes) != em.ndata:
        raise LoadError("mode memberships do not partition the observations")
    for m in em.modes:
        if len(m.classifiers) != nmodes:
            raise LoadError("classifier row has the wrong size")


def em_from_dict(payload: Dict) -> EM:
    """Rebuild a learner; any structural problem raises LoadError."""
    if not isinstance(payload, dict):
        raise LoadError("checkpoint must be a JSON object")
    version = payload.get('version')
    if version != PERSIST_SCHEMA_VERSION:
        raise LoadError(f"unsupported checkpoint version {version!r}")

    em = EM()
    try:
        em.check_after = int(payload['check_after'])
        em.use_em = bool(payload['use_em'])
        em.use_foil = bool(payload['use_foil'])
        em.use_lda = bool(payload['use_lda'])
        em.subset_method = str(payload['subset_method'])
        rng = np.random.default_rng()
        rng.bit_generator.state = payload['rng_state']
        em.rng = rng

        em.data.extend(TrainData.from_dict(d) for d in payload['data'])
        for body in payload['sigs']:
            info = SigInfo(sig=SceneSig.from_dict(body['sig']), members=[int(i) for i in body['members']])
            for i in info.members:
                info.lwr.learn(em.data[i].x, em.data[i].y)
            em.sigs.append(info)

        em.modes[:] = [ModeInfo.from_dict(m, em.data, em.sigs) for m in payload['modes']]
        em.obj_maps = {(int(m), int(i)): [int(o) for o in a] for m, i, a in payload['obj_maps']}
        em.rel_tbl = RelationTable.from_dict(payload['relations'])
    except (KeyError, IndexError, TypeError, ValueError, AttributeError, InvariantViolation) as e:
        raise LoadError(f"malformed checkpoint: {e}") from e

    _check_consistency(em)
    for i in em.modes[0].members:
        d = em.data[i]
        em.noise_by_sig.setdefault((d.sig_index, d.target), set()).add(i)
    return em


def dumps_em(em: EM) -> str:
    return json.dumps(em_to_dict(em))


def loads_em(text: str) -> EM:
    try:
        payload = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise LoadError(f"checkpoint is not valid JSON: {e}") from e
    return em_from_dict(payload)


def save_em(em: EM, fp: IO[str]):
    json.dump(em_to_dict(em), fp)
    logger.info("saved learner with %d observations and %d modes", em.ndata, em.nmodes)


def load_em(fp: IO[str]) -> EM:
    em = loads_em(fp.read())
    logger.info("loaded learner with %d observations and %d modes", em.ndata, em.nmodes)
    return em
