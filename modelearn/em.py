"""Online mixture of linear modes learned with a partial EM loop.

Observations arrive one at a time through ``EM.learn`` and start in the
noise mode. ``EM.run`` alternates E-steps (recompute the posteriors that may
have changed, reassign observations to their MAP mode) and M-steps (refit
stale modes), removes modes that lost their support and seeds new modes from
large linear groups found in the noise. ``EM.predict`` picks a mode with the
pairwise classifiers and evaluates its linear model.
"""
import logging
import math
from typing import Dict, List, Optional, Sequence, Set, Tuple

import numpy as np

from .algorithms import foil
from .algorithms.foil import FOIL
from .algorithms.lda import LDA
from .algorithms.subsets import EM_METHOD, find_linear_subset
from .errors import InvariantViolation
from .mode import ModeInfo
from .models import Classifier, Prediction, SceneSig, SigInfo, TrainData, VoteDecision
from .params import EM_LDA_TRAIN_RATIO, MIN_MODE_SIZE, NEW_MODE_THRESH, PNOISE, UNIFY_KEEP_RATIO
from .relation import Relation, RelationTable
from .timers import TimerSet

logger = logging.getLogger(__name__)

NoiseKey = Tuple[int, int]


def argmax(values: Sequence[float]) -> int:
    """Index of the largest value; the lowest index wins ties."""
    return int(np.argmax(np.asarray(values, dtype=float)))


class EM:
    """Mixture-of-modes learner.

    ``data``, ``sigs`` and ``modes`` are index-addressed tables owned here;
    modes and classifiers refer to observations and to each other by index.
    """

    def __init__(self, seed: Optional[int] = None):
        self.data: List[TrainData] = []
        self.sigs: List[SigInfo] = []
        self.modes: List[ModeInfo] = [ModeInfo(True, self.data, self.sigs)]
        self.modes[0].classifiers = [None]
        self.rel_tbl = RelationTable()

        # noise members grouped by (signature bucket, target)
        self.noise_by_sig: Dict[NoiseKey, Set[int]] = {}
        # best assignment remembered per (mode, observation)
        self.obj_maps: Dict[Tuple[int, int], List[int]] = {}

        self.check_after = NEW_MODE_THRESH
        self.use_em = True
        self.use_foil = True
        self.use_lda = True
        self.subset_method = EM_METHOD

        self.rng = np.random.default_rng(seed)
        self.timers = TimerSet()

    @property
    def ndata(self) -> int:
        return len(self.data)

    @property
    def nmodes(self) -> int:
        return len(self.modes)

    # ------------------------------------------------------------------
    # data intake

    def find_sig(self, sig: SceneSig) -> int:
        for k, info in enumerate(self.sigs):
            if info.sig == sig:
                return k
        return -1

    def _check_input(self, target: int, sig: SceneSig, x: np.ndarray):
        sig.validate()
        if len(x) != sig.dim():
            raise InvariantViolation(f"input has {len(x)} values, signature describes {sig.dim()}")
        if not 0 <= target < len(sig):
            raise InvariantViolation(f"target {target} outside signature of {len(sig)} objects")

    def _check_relations(self, rels: Dict[str, Relation]):
        for name, rel in rels.items():
            known = self.rel_tbl.get(name)
            if known is not None and known.arity != rel.arity:
                raise InvariantViolation(f"relation {name} has arity {rel.arity}, expected {known.arity}")

    def learn(self, target: int, sig: SceneSig, rels: Dict[str, Relation], x, y: float):
        """Record one observation. It joins the noise mode; no fitting happens here.

        Everything is validated before any table changes, so a rejected
        observation leaves the learner as it was.
        """
        x = np.asarray(x, dtype=float).reshape(-1)
        self._check_input(target, sig, x)
        if not math.isfinite(y):
            raise InvariantViolation(f"output must be finite, got {y}")
        self._check_relations(rels)

        sig_index = self.find_sig(sig)
        if sig_index < 0:
            sig_index = len(self.sigs)
            self.sigs.append(SigInfo(sig=SceneSig.from_dict(sig.to_dict())))

        i = self.ndata
        d = TrainData(
            x=x.copy(),
            y=float(y),
            target=int(target),
            sig_index=sig_index,
            mode_prob=[PNOISE] + [0.0] * (self.nmodes - 1),
            prob_stale=[False] + [True] * (self.nmodes - 1),
        )
        self.data.append(d)
        self.sigs[sig_index].members.append(i)
        self.sigs[sig_index].lwr.learn(d.x, d.y)

        self.modes[0].add_example(i)
        self._add_noise(i)
        self.rel_tbl.extend(rels, i)

    # ------------------------------------------------------------------
    # EM loop

    def calc_prob(self, mode: int, target: int, sig: SceneSig, x, y: float):
        return self.modes[mode].calc_prob(target, sig, np.asarray(x, dtype=float), float(y))

    def _add_noise(self, i: int):
        d = self.data[i]
        self.noise_by_sig.setdefault((d.sig_index, d.target), set()).add(i)

    def _discard_noise(self, i: int):
        d = self.data[i]
        key = (d.sig_index, d.target)
        bucket = self.noise_by_sig.get(key)
        if bucket is None:
            return
        bucket.discard(i)
        if not bucket:
            del self.noise_by_sig[key]

    def _reassign(self, i: int, prev: int, now: int):
        d = self.data[i]
        d.map_mode = now
        self.modes[prev].del_example(i)
        if prev == 0:
            self._discard_noise(i)
        d.obj_map = list(self.obj_maps.get((now, i), []))
        self.modes[now].add_example(i)
        if now == 0:
            self._add_noise(i)

    def estep(self):
        """Recompute dirty posteriors and move observations whose MAP mode changed."""
        with self.timers.timed('e-step'):
            for i, d in enumerate(self.data):
                dsig = self.sigs[d.sig_index].sig
                stale = False
                for j in range(1, self.nmodes):
                    mode = self.modes[j]
                    if not d.prob_stale[j] and not mode.new_fit:
                        continue
                    prev = d.mode_prob[d.map_mode]
                    now, assign, _ = mode.calc_prob(d.target, dsig, d.x, d.y)
                    self.obj_maps[(j, i)] = assign
                    # a tie with a lower mode index also moves the MAP mode
                    if (d.map_mode == j and now < prev) or (d.map_mode != j and now >= prev):
                        stale = True
                    d.mode_prob[j] = now
                    d.prob_stale[j] = False
                    if d.map_mode == j:
                        d.obj_map = list(assign)
                if stale:
                    prev, now = d.map_mode, argmax(d.mode_prob)
                    if now != prev:
                        self._reassign(i, prev, now)

            for mode in self.modes[1:]:
                mode.new_fit = False

    def mstep(self) -> bool:
        """Refit every stale mode. Returns whether any mode was refit."""
        with self.timers.timed('m-step'):
            changed = False
            for mode in self.modes[1:]:
                if mode.update_fits():
                    changed = True
            return changed

    def run(self, max_iterations: int) -> bool:
        """Iterate to quiescence. Returns False when the budget runs out or EM is disabled."""
        if not self.use_em:
            return False
        for it in range(max_iterations):
            self.estep()
            changed = self.mstep()
            if not changed and not self.remove_modes() and not self.unify_or_add_mode():
                logger.debug("quiescent after %d iterations with %d modes", it + 1, self.nmodes)
                return True
        logger.warning("EM did not converge within %d iterations", max_iterations)
        return False

    # ------------------------------------------------------------------
    # mode lifecycle

    def fill_xy(self, rows: Sequence[int]) -> Tuple[np.ndarray, np.ndarray]:
        X = np.stack([self.data[i].x for i in rows])
        Y = np.array([self.data[i].y for i in rows])
        return X, Y

    def find_new_mode_inds(self, key: NoiseKey) -> List[int]:
        """Largest linear subset of one noise bucket, as observation indexes."""
        inds = sorted(self.noise_by_sig.get(key, ()))
        if len(inds) < self.check_after:
            return []
        X, Y = self.fill_xy(inds)
        size, subset = find_linear_subset(X, Y, self.rng, self.subset_method, self.timers)
        return [inds[k] for k in subset]

    def unify_or_add_mode(self) -> bool:
        """Turn a large linear group of noise into a mode, merging it into an existing one if possible."""
        with self.timers.timed('new'):
            if len(self.modes[0]) < self.check_after:
                return False

            seed = self.modes[0].largest_const_subset()
            if len(seed) < NEW_MODE_THRESH:
                for key in sorted(self.noise_by_sig):
                    candidate = self.find_new_mode_inds(key)
                    if len(candidate) > len(seed):
                        seed = candidate
                    if len(seed) >= NEW_MODE_THRESH:
                        break

            if len(seed) < NEW_MODE_THRESH:
                self.check_after += NEW_MODE_THRESH - len(seed)
                logger.debug("no new mode in noise, next check at %d points", self.check_after)
                return False

            # The seed leaves the noise either way
            self.check_after = NEW_MODE_THRESH
            seed_sig = self.data[seed[0]].sig_index
            seed_target = self.data[seed[0]].target

            for j in range(1, self.nmodes):
                mode = self.modes[j]
                if not mode.uniform_sig(seed_sig, seed_target):
                    continue
                combined = sorted(mode.members) + list(seed)
                X, Y = self.fill_xy(combined)
                size, subset = find_linear_subset(X, Y, self.rng, self.subset_method, self.timers)
                if size >= UNIFY_KEEP_RATIO * len(combined):
                    mode.init_fit([combined[k] for k in subset])
                    logger.info("unified %d noise points into mode %d", len(seed), j)
                    return True

            self._add_mode(seed)
            return True

    def _add_mode(self, seed: List[int]):
        mode = ModeInfo(False, self.data, self.sigs)
        mode.init_fit(seed)
        self.modes.append(mode)
        for d in self.data:
            d.mode_prob.append(0.0)
            d.prob_stale.append(True)
        for m in self.modes:
            m.classifiers.extend([None] * (self.nmodes - len(m.classifiers)))
        logger.info("created mode %d from %d noise points", self.nmodes - 1, len(seed))

    def remove_modes(self) -> bool:
        """Drop modes with at most MIN_MODE_SIZE members; their members go to their next best mode."""
        if self.nmodes == 1:
            return False
        removed = [j for j in range(1, self.nmodes) if len(self.modes[j]) <= MIN_MODE_SIZE]
        if not removed:
            return False

        kept = [j for j in range(self.nmodes) if j not in removed]
        index_map = {old: new for new, old in enumerate(kept)}
        orphans = sorted(i for j in removed for i in self.modes[j].members)

        self.modes[:] = [self.modes[j] for j in kept]
        for mode in self.modes:
            mode.classifiers = [mode.classifiers[j] for j in kept]
        for d in self.data:
            d.mode_prob = [d.mode_prob[j] for j in kept]
            d.prob_stale = [d.prob_stale[j] for j in kept]
            if d.map_mode in index_map:
                d.map_mode = index_map[d.map_mode]
        self.obj_maps = {
            (index_map[m], i): assign for (m, i), assign in self.obj_maps.items() if m in index_map
        }

        # Remembered assignments may predate the last refit, so orphans are rescored
        for i in orphans:
            d = self.data[i]
            dsig = self.sigs[d.sig_index].sig
            for j in range(1, self.nmodes):
                p, assign, _ = self.modes[j].calc_prob(d.target, dsig, d.x, d.y)
                d.mode_prob[j] = p
                d.prob_stale[j] = False
                self.obj_maps[(j, i)] = assign
            now = argmax(d.mode_prob)
            d.map_mode = now
            d.obj_map = list(self.obj_maps.get((now, i), []))
            self.modes[now].add_example(i)
            if now == 0:
                self._add_noise(i)
            else:
                self.modes[now].stale = True

        logger.info("removed modes %s, %d modes left", removed, self.nmodes)
        return True

    def best_mode(self, target: int, sig: SceneSig, x, y: float) -> Tuple[int, float]:
        """Mode with the highest likelihood for ``(x, y)`` and its residual."""
        x = np.asarray(x, dtype=float)
        best, best_prob, best_error = -1, 0.0, math.nan
        for j, mode in enumerate(self.modes):
            p, _, error = mode.calc_prob(target, sig, x, float(y))
            if best == -1 or p > best_prob:
                best, best_prob, best_error = j, p, error
        return best, best_error

    # ------------------------------------------------------------------
    # classification

    def learn_numeric_classifier(self, pos: Relation, neg: Relation) -> Optional[LDA]:
        """LDA telling ``pos`` observations (class 1) from ``neg`` ones.

        Kept only when it beats the majority-class rate on held-out data.
        """
        if not self.use_lda or pos.empty() or neg.empty():
            return None

        pi = sorted(pos.at_pos(0))
        ni = sorted(neg.at_pos(0))
        pi = [pi[k] for k in self.rng.permutation(len(pi))]
        ni = [ni[k] for k in self.rng.permutation(len(ni))]

        # Only rows of one layout can share a discriminant
        sig_index = self.data[pi[0]].sig_index
        pi = [i for i in pi if self.data[i].sig_index == sig_index]
        ni = [i for i in ni if self.data[i].sig_index == sig_index]

        pos_train = int(EM_LDA_TRAIN_RATIO * len(pi))
        if pos_train == len(pi):
            pos_train -= 1
        neg_train = int(EM_LDA_TRAIN_RATIO * len(ni))
        if neg_train == len(ni):
            neg_train -= 1
        if pos_train < 2 or neg_train < 2:
            return None

        train = pi[:pos_train] + ni[:neg_train]
        X = np.stack([self.data[i].x for i in train])
        classes = [1] * pos_train + [0] * neg_train
        lda = LDA()
        lda.learn(X, classes)

        correct = sum(1 for i in pi[pos_train:] if lda.classify(self.data[i].x) == 1)
        correct += sum(1 for i in ni[neg_train:] if lda.classify(self.data[i].x) == 0)
        ntest = len(pi) - pos_train + len(ni) - neg_train
        success = correct / ntest
        baseline = max(len(pi), len(ni)) / (len(pi) + len(ni))
        return lda if success > baseline else None

    def update_pair(self, i: int, j: int):
        """Relearn the classifier between modes i < j."""
        with self.timers.timed('updt_clsfr'):
            mem_i = self.modes[i].member_rel
            mem_j = self.modes[j].member_rel
            c = Classifier(const_vote=0 if len(mem_i) > len(mem_j) else 1)
            self.modes[i].classifiers[j] = c
            if mem_i.empty() or mem_j.empty():
                return

            if self.use_foil:
                c.clauses, c.residuals = FOIL(mem_i.copy(), mem_j.copy(), self.rel_tbl, self.rng).learn()
            else:
                c.residuals = [mem_i.copy()]

            for k, r in enumerate(c.residuals):
                if r.empty():
                    c.ldas.append(None)
                elif k < len(c.clauses):
                    # members of j matched by clause k
                    c.ldas.append(self.learn_numeric_classifier(mem_i, r))
                else:
                    # members of i no clause matched
                    c.ldas.append(self.learn_numeric_classifier(r, mem_j))

    def update_classifier(self):
        needs_update = [mode.classifier_stale for mode in self.modes]
        for mode in self.modes:
            mode.classifier_stale = False

        for i, mode in enumerate(self.modes):
            if needs_update[i] and not mode.noise:
                mode.learn_obj_clauses(self.rel_tbl, self.rng)
            for j in range(i + 1, self.nmodes):
                if needs_update[i] or needs_update[j]:
                    self.update_pair(i, j)

    def map_objs(self, mode: int, target: int, sig: SceneSig, rels: Dict[str, Relation]) -> Optional[List[int]]:
        """Scene object for each slot of ``mode``, or None when some slot cannot be filled."""
        minfo = self.modes[mode]
        if len(minfo.sig) == 0:
            return []
        if not minfo.fits_slot(sig, target, 0):
            return None
        used = {target}
        mapping = [target]
        for slot in range(1, len(minfo.sig)):
            cands = [k for k in range(len(sig)) if k not in used and minfo.fits_slot(sig, k, slot)]
            if not cands:
                return None
            clauses = minfo.obj_clauses[slot] if slot < len(minfo.obj_clauses) else []
            if len(cands) == 1 or not clauses:
                pick = cands[0]
            else:
                domains = {0: {0}, 1: {sig[target].id}, 2: {sig[k].id for k in cands}}
                if foil.test_clause_vec(clauses, rels, domains) < 0:
                    return None
                pick = min(sig.find_id(o) for o in domains[2])
            mapping.append(pick)
            used.add(pick)
        return mapping

    def vote_pair(self, i: int, j: int, target: int, sig: SceneSig,
                  rels: Dict[str, Relation], x: np.ndarray) -> Tuple[int, VoteDecision]:
        """0 votes for mode i, 1 for mode j."""
        c = self.modes[i].classifiers[j]
        if c is None:
            return (0 if len(self.modes[i]) > len(self.modes[j]) else 1), VoteDecision.DEFAULT
        domains = {0: {0}, 1: {sig[target].id}}
        matched = foil.test_clause_vec(c.clauses, rels, domains)
        return c.vote(matched, x)

    def classify(self, target: int, sig: SceneSig, rels: Dict[str, Relation], x) -> Tuple[int, List[int]]:
        """Most likely mode for a new input and the object mapping to evaluate it with."""
        x = np.asarray(x, dtype=float).reshape(-1)
        self.update_classifier()

        # Relations passed in describe the current time step only
        snapshot = RelationTable()
        snapshot.extend(rels, 0)

        possible = [0]
        mappings: Dict[int, List[int]] = {0: []}
        for j in range(1, self.nmodes):
            if len(self.modes[j].sig) > len(sig):
                continue
            mapping = self.map_objs(j, target, sig, snapshot)
            if mapping is None:
                logger.debug("mapping failed for mode %d", j)
                continue
            possible.append(j)
            mappings[j] = mapping

        if len(possible) == 1:
            return possible[0], mappings[possible[0]]

        votes = {m: 0 for m in possible}
        for a_idx, a in enumerate(possible[:-1]):
            for b in possible[a_idx + 1:]:
                winner, decision = self.vote_pair(a, b, target, sig, snapshot, x)
                votes[a if winner == 0 else b] += 1
                logger.debug("%d/%d: %d wins (%s)", a, b, a if winner == 0 else b, decision.value)

        best = max(possible, key=lambda m: (votes[m], -m))
        logger.debug("votes %s, best mode %d", votes, best)
        return best, mappings[best]

    def predict(self, target: int, sig: SceneSig, rels: Dict[str, Relation], x) -> Prediction:
        if not self.data:
            return Prediction(False, 0)
        x = np.asarray(x, dtype=float).reshape(-1)
        self._check_input(target, sig, x)

        mode, obj_map = self.classify(target, sig, rels, x)
        if mode == 0:
            k = self.find_sig(sig)
            if k >= 0:
                y = self.sigs[k].lwr.predict(x)
                if y is not None:
                    return Prediction(True, 0, y)
            return Prediction(False, 0)
        return Prediction(True, mode, self.modes[mode].predict(sig, x, obj_map))
