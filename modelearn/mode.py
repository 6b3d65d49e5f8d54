"""Per-mode state: membership, linear model, object clauses and classifier row."""
import bisect
import logging
import math
from collections import OrderedDict
from typing import Dict, List, Optional, Sequence, Set, Tuple

import numpy as np

from .algorithms.foil import FOIL, ClauseVec, clause_vec_from_list, clause_vec_to_list
from .algorithms.linear import FORWARD, linreg_d
from .combinations import CombinationGenerator
from .errors import InvariantViolation
from .models import Classifier, SceneSig, SigInfo, TrainData
from .params import EPSILON, MEASURE_VAR, MODEL_ERROR_THRESH, PNOISE
from .relation import Relation

logger = logging.getLogger(__name__)

REGRESSION_ALG = FORWARD


def gausspdf(y: float, mean: float, var: float) -> float:
    return math.exp(-((y - mean) ** 2) / (2.0 * var)) / math.sqrt(2.0 * math.pi * var)


class ModeInfo:
    """One mode of the mixture.

    Mode 0 is the noise mode: it has no model and keeps its members sorted
    by y so runs of identical outputs can be found quickly. Every other mode
    is a linear function over a reduced signature whose slot 0 is the target
    object; ``obj_map`` of a member tells which scene object fills each slot.

    ``data`` and ``sigs`` are the owning learner's tables; a mode refers to
    observations by index only.
    """

    def __init__(self, noise: bool, data: List[TrainData], sigs: List[SigInfo]):
        self.noise = noise
        self.data = data
        self.sigs = sigs

        self.members: Set[int] = set()
        self.member_rel = Relation(2)
        self.sorted_ys: List[Tuple[float, int]] = []

        self.sig = SceneSig()
        self.lin_coefs = np.zeros(0)
        self.lin_inter = 0.0
        self.obj_clauses: List[ClauseVec] = []

        self.stale = False
        self.new_fit = False
        self.classifier_stale = False
        self.classifiers: List[Optional[Classifier]] = []

    def __len__(self) -> int:
        return len(self.members)

    def scene_sig(self, i: int) -> SceneSig:
        return self.sigs[self.data[i].sig_index].sig

    # ------------------------------------------------------------------
    # membership

    def add_example(self, i: int):
        d = self.data[i]
        dsig = self.scene_sig(i)
        self.members.add(i)
        self.classifier_stale = True
        self.member_rel.add(i, (dsig[d.target].id,))
        if self.noise:
            bisect.insort(self.sorted_ys, (d.y, i))
        elif len(d.obj_map) != len(self.sig) or abs(self.predict(dsig, d.x, d.obj_map) - d.y) > MODEL_ERROR_THRESH:
            self.stale = True

    def del_example(self, i: int):
        d = self.data[i]
        dsig = self.scene_sig(i)
        self.members.discard(i)
        self.classifier_stale = True
        self.member_rel.delete(i, (dsig[d.target].id,))
        if self.noise:
            k = bisect.bisect_left(self.sorted_ys, (d.y, i))
            if k < len(self.sorted_ys) and self.sorted_ys[k] == (d.y, i):
                del self.sorted_ys[k]
        else:
            self.stale = True

    def uniform_sig(self, sig_index: int, target: int) -> bool:
        """True when every member was observed under ``sig_index`` with ``target``."""
        return all(self.data[i].sig_index == sig_index and self.data[i].target == target
                   for i in self.members)

    def largest_const_subset(self) -> List[int]:
        """Largest group of members with identical y, one signature and one target."""
        groups: Dict[Tuple[float, int, int], List[int]] = OrderedDict()
        for y, i in self.sorted_ys:
            d = self.data[i]
            groups.setdefault((y, d.sig_index, d.target), []).append(i)
        best: List[int] = []
        for inds in groups.values():
            if len(inds) > len(best):
                best = inds
        return sorted(best)

    # ------------------------------------------------------------------
    # model

    def fits_slot(self, dsig: SceneSig, obj: int, slot: int) -> bool:
        """Whether scene object ``obj`` can fill ``slot``: same type and property count."""
        e, s = dsig[obj], self.sig[slot]
        return e.type == s.type and len(e.props) == len(s.props)

    def gather(self, dsig: SceneSig, x: np.ndarray, assign: Sequence[int]) -> np.ndarray:
        """Rearrange the property blocks of ``x`` into this mode's slot layout."""
        parts = []
        for slot, obj in enumerate(assign):
            e = dsig[obj]
            if len(e.props) != len(self.sig[slot].props):
                raise InvariantViolation(
                    f"object {e.name} has {len(e.props)} properties, "
                    f"slot {slot} expects {len(self.sig[slot].props)}"
                )
            parts.append(x[e.start:e.start + len(e.props)])
        return np.concatenate(parts) if parts else np.zeros(0)

    def predict(self, dsig: SceneSig, x: np.ndarray, obj_map: Sequence[int]) -> float:
        if len(self.sig) == 0:
            return float(self.lin_inter)
        if len(obj_map) != len(self.sig):
            raise InvariantViolation(f"object map has {len(obj_map)} slots, mode needs {len(self.sig)}")
        return float(self.gather(dsig, x, obj_map) @ self.lin_coefs + self.lin_inter)

    def calc_prob(self, target: int, xsig: SceneSig, x: np.ndarray, y: float) -> Tuple[float, List[int], float]:
        """Best ``(probability, assignment, residual)`` over injective object assignments."""
        if self.noise:
            return PNOISE, [], math.nan

        if len(self.sig) == 0:
            error = y - self.lin_inter
            return (1.0 - EPSILON) * gausspdf(y, self.lin_inter, MEASURE_VAR), [], error

        if not self.fits_slot(xsig, target, 0):
            return 0.0, [], math.nan

        possibles: List[List[int]] = [[target]]
        for slot in range(1, len(self.sig)):
            possibles.append([j for j in range(len(xsig)) if j != target and self.fits_slot(xsig, j, slot)])

        best_prob, best_assign, best_error = 0.0, [], math.nan
        found = False
        for assign in CombinationGenerator(possibles):
            py = float(self.gather(xsig, x, assign) @ self.lin_coefs + self.lin_inter)
            p = (1.0 - EPSILON) * gausspdf(y, py, MEASURE_VAR)
            if not found or p > best_prob:
                best_prob, best_assign, best_error = p, assign, y - py
                found = True
        return best_prob, best_assign, best_error

    def _set_model(self, dsig: SceneSig, objs: List[int], coefs: np.ndarray, inter: float):
        """Install a model over objects ``objs`` of ``dsig``; ``coefs`` spans ``dsig``'s layout."""
        self.sig = SceneSig()
        blocks = []
        for o in objs:
            e = dsig[o]
            self.sig.add(e.id, e.type, e.name, e.props)
            blocks.append(coefs[e.start:e.start + len(e.props)])
        self.lin_coefs = np.concatenate(blocks) if blocks else np.zeros(0)
        self.lin_inter = float(inter)
        self.obj_clauses = [[] for _ in range(len(self.sig))]
        self.new_fit = True
        self.classifier_stale = True

    def init_fit(self, inds: Sequence[int]):
        """Fit the model to observations ``inds``, which share one signature and target.

        The reduced signature keeps the target plus every object the forward
        regression gave a non-zero coefficient. A fit with no non-zero
        coefficient is a constant model with an empty signature.
        """
        inds = list(inds)
        if not inds:
            raise InvariantViolation("cannot fit a mode to no data")
        d0 = self.data[inds[0]]
        for i in inds:
            if self.data[i].sig_index != d0.sig_index or self.data[i].target != d0.target:
                raise InvariantViolation("init_fit data must share signature and target")
        dsig = self.sigs[d0.sig_index].sig

        X = np.stack([self.data[i].x for i in inds])
        Y = np.array([self.data[i].y for i in inds])
        fit = linreg_d(REGRESSION_ALG, X, Y)
        if fit is None:
            coefs, inter = np.zeros(X.shape[1]), float(np.mean(Y))
        else:
            coefs, inter = fit

        relevant = [
            k for k, e in enumerate(dsig)
            if k != d0.target and np.any(coefs[e.start:e.start + len(e.props)] != 0.0)
        ]
        if relevant or np.any(coefs != 0.0):
            objs = [d0.target] + relevant
        else:
            objs = []
        self._set_model(dsig, objs, coefs, inter)
        self.stale = False
        self._remap_members()
        logger.debug("fit mode over %d points, %d objects", len(inds), len(self.sig))

    def _remap_members(self):
        for i in self.members:
            d = self.data[i]
            _, assign, _ = self.calc_prob(d.target, self.scene_sig(i), d.x, d.y)
            d.obj_map = assign

    def update_fits(self) -> bool:
        """Refit a stale mode to its members. Returns whether a refit happened."""
        if not self.stale:
            return False
        if not self.members:
            self.stale = False
            return False

        inds = sorted(self.members)
        d0 = self.data[inds[0]]
        if self.uniform_sig(d0.sig_index, d0.target):
            self.init_fit(inds)
            return True

        rows, ys = [], []
        for i in inds:
            d = self.data[i]
            if len(d.obj_map) != len(self.sig):
                raise InvariantViolation(f"member {i} has no valid object map")
            rows.append(self.gather(self.scene_sig(i), d.x, d.obj_map))
            ys.append(d.y)
        X = np.stack(rows) if rows and len(self.sig) else np.zeros((len(inds), 0))
        fit = linreg_d(REGRESSION_ALG, X, np.array(ys))
        if fit is None:
            coefs, inter = np.zeros(X.shape[1]), float(np.mean(ys))
        else:
            coefs, inter = fit

        keep = [0] + [
            k for k in range(1, len(self.sig))
            if np.any(coefs[self.sig[k].start:self.sig[k].start + len(self.sig[k].props)] != 0.0)
        ]
        if len(self.sig) == 0 or (len(keep) == 1 and not np.any(coefs != 0.0)):
            keep = []

        old_sig = self.sig
        self._set_model(old_sig, keep, coefs, inter)
        for i in inds:
            d = self.data[i]
            d.obj_map = [d.obj_map[k] for k in keep]
        self.stale = False
        return True

    # ------------------------------------------------------------------
    # classification support

    def learn_obj_clauses(self, rels: Dict[str, Relation], rng: np.random.Generator):
        """Learn, for each non-target slot, clauses picking the right object among same-type candidates."""
        self.obj_clauses = [[] for _ in range(len(self.sig))]
        for slot in range(1, len(self.sig)):
            stype = self.sig[slot].type
            pos, neg = Relation(3), Relation(3)
            for i in sorted(self.members):
                d = self.data[i]
                if len(d.obj_map) != len(self.sig):
                    continue
                dsig = self.scene_sig(i)
                tid = dsig[d.target].id
                o = d.obj_map[slot]
                pos.add(i, (tid, dsig[o].id))
                for k, e in enumerate(dsig):
                    if e.type == stype and k != d.target and k != o:
                        neg.add(i, (tid, e.id))
            if pos.empty() or neg.empty():
                continue
            clauses, _ = FOIL(pos, neg, rels, rng).learn()
            self.obj_clauses[slot] = clauses

    def to_dict(self) -> Dict:
        return {
            'noise': self.noise,
            'members': sorted(self.members),
            'member_rel': self.member_rel.to_list(),
            'sorted_ys': [[float(y), i] for y, i in self.sorted_ys],
            'sig': self.sig.to_dict(),
            'lin_coefs': [float(c) for c in self.lin_coefs],
            'lin_inter': float(self.lin_inter),
            'obj_clauses': [clause_vec_to_list(c) for c in self.obj_clauses],
            'stale': self.stale,
            'new_fit': self.new_fit,
            'classifier_stale': self.classifier_stale,
            'classifiers': [c.to_dict() if c is not None else None for c in self.classifiers],
        }

    @classmethod
    def from_dict(cls, payload: Dict, data: List[TrainData], sigs: List[SigInfo]) -> 'ModeInfo':
        mode = cls(bool(payload['noise']), data, sigs)
        mode.members = {int(i) for i in payload['members']}
        mode.member_rel = Relation.from_list(2, payload['member_rel'])
        mode.sorted_ys = [(float(y), int(i)) for y, i in payload['sorted_ys']]
        mode.sig = SceneSig.from_dict(payload['sig'])
        mode.lin_coefs = np.array(payload['lin_coefs'], dtype=float)
        mode.lin_inter = float(payload['lin_inter'])
        mode.obj_clauses = [clause_vec_from_list(c) for c in payload['obj_clauses']]
        mode.stale = bool(payload['stale'])
        mode.new_fit = bool(payload['new_fit'])
        mode.classifier_stale = bool(payload['classifier_stale'])
        mode.classifiers = [Classifier.from_dict(c) if c is not None else None for c in payload['classifiers']]
        return mode
