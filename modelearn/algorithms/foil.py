"""FOIL: greedy induction of Horn-clause disjunctions over a relation table.

Learns a clause vector that covers the tuples of a positive relation while
excluding the tuples of a negative relation. Variable 0 of every clause is
the time column; variables ``1 .. arity-1`` are the head variables of the
example tuples, and higher ids are existential variables introduced by
body literals.

Covering loop and grow/prune split follow the usual sequential-covering
rule learners: grow a clause on the grow set, prune it on the held-out set,
remove the positives it covers and repeat.
"""
import itertools
import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

import numpy as np

from ..params import FOIL_GROW_RATIO, FOIL_MAX_CLAUSE_LEN, FOIL_MIN_SUCCESS_RATE
from ..relation import Relation

logger = logging.getLogger(__name__)

Binding = Tuple[int, ...]
_NEW = -1
# Grow/prune split is only worth it with a few examples of each class
MIN_SPLIT_EXAMPLES = 4


@dataclass(frozen=True)
class Literal:
    """``name(args)`` or its negation; ``args`` are variable ids."""
    name: str
    args: Tuple[int, ...]
    negated: bool = False

    def max_var(self) -> int:
        return max(self.args) if self.args else -1

    def __str__(self) -> str:
        body = f"{self.name}({','.join(f'V{a}' for a in self.args)})"
        return f"~{body}" if self.negated else body

    def to_dict(self) -> Dict:
        return {'name': self.name, 'args': list(self.args), 'negated': self.negated}

    @classmethod
    def from_dict(cls, payload: Dict) -> 'Literal':
        return cls(
            name=str(payload['name']),
            args=tuple(int(a) for a in payload['args']),
            negated=bool(payload['negated']),
        )


Clause = List[Literal]
ClauseVec = List[Clause]


def clause_str(clause: Clause) -> str:
    return ' & '.join(str(l) for l in clause) if clause else 'true'


def clause_vec_to_list(clauses: ClauseVec) -> List[List[Dict]]:
    return [[l.to_dict() for l in c] for c in clauses]


def clause_vec_from_list(payload: Iterable[Iterable[Dict]]) -> ClauseVec:
    return [[Literal.from_dict(l) for l in c] for c in payload]


def extend_bindings(bindings: Iterable[Binding], lit: Literal, rels: Dict[str, Relation]) -> List[Binding]:
    """Extend each binding with every way of satisfying ``lit``.

    New variables of a literal are numbered consecutively after the
    variables already bound, in argument order.
    """
    rel = rels.get(lit.name)
    out: List[Binding] = []
    for b in bindings:
        nvars = len(b)
        if lit.negated:
            if rel is None or tuple(b[a] for a in lit.args) not in rel:
                out.append(b)
            continue
        if rel is None:
            continue
        bound = {pos: b[a] for pos, a in enumerate(lit.args) if a < nvars}
        new_pos = [pos for pos, a in enumerate(lit.args) if a >= nvars]
        for t in rel.lookup(bound):
            out.append(b + tuple(t[pos] for pos in new_pos))
    return out


def _origins(bindings: Iterable[Binding], head: int) -> Set[Binding]:
    return {b[:head] for b in bindings}


def covered(clause: Clause, examples: Iterable[Binding], rels: Dict[str, Relation]) -> Set[Binding]:
    """Examples for which the clause body is satisfiable."""
    examples = [tuple(e) for e in examples]
    if not examples:
        return set()
    head = len(examples[0])
    bindings = examples
    for lit in clause:
        bindings = extend_bindings(bindings, lit, rels)
        if not bindings:
            return set()
    return _origins(bindings, head)


def test_clause(clause: Clause, rels: Dict[str, Relation], domains: Dict[int, Set[int]]) -> bool:
    """Check whether the clause holds for some assignment drawn from ``domains``.

    ``domains`` maps each head variable to its allowed values. On success it
    is narrowed to the values taking part in at least one satisfying binding.
    """
    head_vars = sorted(domains)
    if head_vars != list(range(len(head_vars))):
        raise ValueError("clause domains must cover variables 0..n-1")
    bindings: List[Binding] = list(itertools.product(*(sorted(domains[v]) for v in head_vars)))
    for lit in clause:
        if not bindings:
            break
        bindings = extend_bindings(bindings, lit, rels)
    if not bindings:
        return False
    for v in head_vars:
        domains[v] = {b[v] for b in bindings}
    return True


def test_clause_vec(clauses: ClauseVec, rels: Dict[str, Relation], domains: Dict[int, Set[int]]) -> int:
    """Index of the first satisfied clause, or -1. Narrows ``domains`` on a match."""
    for i, clause in enumerate(clauses):
        trial = {v: set(vals) for v, vals in domains.items()}
        if test_clause(clause, rels, trial):
            domains.update(trial)
            return i
    return -1


def _success_rate(p: int, n: int) -> float:
    return p / (p + n) if p + n > 0 else 0.0


class FOIL:
    """Learns a clause vector separating ``pos`` tuples from ``neg`` tuples."""

    def __init__(self, pos: Relation, neg: Relation, rels: Dict[str, Relation],
                 rng: Optional[np.random.Generator] = None):
        if pos.arity != neg.arity:
            raise ValueError("positive and negative relations must share an arity")
        self.pos = pos
        self.neg = neg
        self.rels = rels
        self.head = pos.arity
        self.rng = rng if rng is not None else np.random.default_rng(0)

        pos_all = sorted(pos.tuples)
        neg_all = sorted(neg.tuples)
        if len(pos_all) >= MIN_SPLIT_EXAMPLES and len(neg_all) >= MIN_SPLIT_EXAMPLES:
            self.pos_grow, self.pos_test = self._split(pos_all)
            self.neg_grow, self.neg_test = self._split(neg_all)
        else:
            self.pos_grow, self.pos_test = pos_all, []
            self.neg_grow, self.neg_test = neg_all, []

    def _split(self, examples: List[Binding]) -> Tuple[List[Binding], List[Binding]]:
        order = self.rng.permutation(len(examples))
        ngrow = max(1, int(math.ceil(FOIL_GROW_RATIO * len(examples))))
        grow = sorted(examples[i] for i in order[:ngrow])
        test = sorted(examples[i] for i in order[ngrow:])
        return grow, test

    def learn(self) -> Tuple[ClauseVec, List[Relation]]:
        """Returns ``(clauses, residuals)``.

        ``residuals[k]`` holds the negatives clause k wrongly covers; the
        trailing residual holds the positives no clause covers.
        """
        clauses: ClauseVec = []
        residuals: List[Relation] = []
        uncovered = set(self.pos.tuples)
        pos_left = list(self.pos_grow)
        all_neg = sorted(self.neg.tuples)

        while pos_left and uncovered:
            clause = self.choose_clause(pos_left, self.neg_grow)
            if not clause:
                break
            if self.pos_test:
                clause = self.prune_clause(clause)

            pos_cov = covered(clause, sorted(self.pos.tuples), self.rels)
            neg_cov = covered(clause, all_neg, self.rels)
            if not (pos_cov & uncovered):
                break
            rate = _success_rate(len(pos_cov), len(neg_cov))
            if rate < FOIL_MIN_SUCCESS_RATE:
                logger.debug("rejecting clause %s, success rate %.3f", clause_str(clause), rate)
                break

            clauses.append(clause)
            residuals.append(Relation(self.neg.arity, neg_cov))
            uncovered -= pos_cov
            pos_left = [e for e in pos_left if e not in pos_cov]

        residuals.append(Relation(self.pos.arity, uncovered))
        return clauses, residuals

    def candidate_literals(self, nvars: int) -> List[Literal]:
        """All literals over the table that bind time to V0 and reuse at least one object variable."""
        lits: List[Literal] = []
        old_objs = list(range(1, nvars))
        for name in sorted(self.rels):
            nobj = self.rels[name].arity - 1
            for combo in itertools.product(old_objs + [_NEW], repeat=nobj):
                if nobj > 0 and old_objs and all(a == _NEW for a in combo):
                    continue
                args, next_var = [0], nvars
                for a in combo:
                    if a == _NEW:
                        args.append(next_var)
                        next_var += 1
                    else:
                        args.append(a)
                lits.append(Literal(name, tuple(args)))
                if next_var == nvars:
                    lits.append(Literal(name, tuple(args), negated=True))
        return lits

    def choose_literal(self, pos_b: List[Binding], neg_b: List[Binding], nvars: int):
        """Literal with the highest FOIL gain, with its extended binding sets."""
        p0, n0 = len(pos_b), len(neg_b)
        base = math.log2(p0 / (p0 + n0))
        best = None
        best_gain = 0.0
        for lit in self.candidate_literals(nvars):
            new_pos = extend_bindings(pos_b, lit, self.rels)
            if not new_pos:
                continue
            new_neg = extend_bindings(neg_b, lit, self.rels)
            p1, n1 = len(new_pos), len(new_neg)
            t = len(_origins(new_pos, self.head))
            gain = t * (math.log2(p1 / (p1 + n1)) - base)
            if gain > best_gain + 1e-12:
                best, best_gain = (lit, new_pos, new_neg), gain
        return best, best_gain

    def choose_clause(self, pos_ex: List[Binding], neg_ex: List[Binding]) -> Clause:
        clause: Clause = []
        pos_b, neg_b = list(pos_ex), list(neg_ex)
        nvars = self.head
        while neg_b and len(clause) < FOIL_MAX_CLAUSE_LEN:
            best, gain = self.choose_literal(pos_b, neg_b, nvars)
            if best is None:
                break
            lit, pos_b, neg_b = best
            clause.append(lit)
            nvars = max(nvars, lit.max_var() + 1)
            logger.debug("added literal %s (gain %.3f)", lit, gain)
        return clause

    def clause_success_rate(self, clause: Clause, pos: List[Binding], neg: List[Binding]) -> float:
        return _success_rate(len(covered(clause, pos, self.rels)), len(covered(clause, neg, self.rels)))

    def prune_clause(self, clause: Clause) -> Clause:
        """Drop trailing literals while the held-out success rate does not decrease."""
        best = clause
        best_rate = self.clause_success_rate(clause, self.pos_test, self.neg_test)
        for k in range(len(clause) - 1, 0, -1):
            shorter = clause[:k]
            rate = self.clause_success_rate(shorter, self.pos_test, self.neg_test)
            if rate >= best_rate:
                best, best_rate = shorter, rate
        return best
