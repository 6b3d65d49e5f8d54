import numpy as np
import pytest

from modelearn.algorithms import foil
from modelearn.algorithms.foil import FOIL, Literal
from modelearn.relation import Relation


def _on_heavy_world(ntimes: int):
    """At every time block 1 sits on heavy block 2, block 3 sits on light block 4, block 5 is alone."""
    rels = {'on': Relation(3), 'heavy': Relation(2)}
    pos, neg = Relation(2), Relation(2)
    for t in range(ntimes):
        rels['on'].add(t, (1, 2))
        rels['on'].add(t, (3, 4))
        rels['heavy'].add(t, (2,))
        pos.add(t, (1,))
        neg.add(t, (3,))
        neg.add(t, (5,))
    return pos, neg, rels


def _covered_by_any(clauses, examples, rels):
    covered = set()
    for clause in clauses:
        covered |= foil.covered(clause, sorted(examples.tuples), rels)
    return covered


@pytest.mark.unit
def test_single_literal_separation_is_sound() -> None:
    rels = {'red': Relation(2, [(t, 1) for t in range(20)])}
    pos = Relation(2, [(t, 1) for t in range(20)])
    neg = Relation(2, [(t, 2) for t in range(20)])
    clauses, residuals = FOIL(pos, neg, rels, np.random.default_rng(0)).learn()

    assert clauses == [[Literal('red', (0, 1))]]
    assert _covered_by_any(clauses, pos, rels) == pos.tuples
    assert not _covered_by_any(clauses, neg, rels)
    assert len(residuals) == len(clauses) + 1
    assert all(r.empty() for r in residuals)


@pytest.mark.unit
def test_existential_variable_clause_is_sound() -> None:
    pos, neg, rels = _on_heavy_world(40)
    clauses, residuals = FOIL(pos, neg, rels, np.random.default_rng(3)).learn()

    assert clauses
    assert _covered_by_any(clauses, pos, rels) == pos.tuples
    assert not _covered_by_any(clauses, neg, rels)
    assert residuals[-1].empty()


@pytest.mark.unit
def test_inseparable_examples_leave_positives_uncovered() -> None:
    rels = {'red': Relation(2, [(t, o) for t in range(6) for o in (1, 2)])}
    pos = Relation(2, [(t, 1) for t in range(6)])
    neg = Relation(2, [(t, 2) for t in range(6)])
    clauses, residuals = FOIL(pos, neg, rels, np.random.default_rng(0)).learn()
    assert clauses == []
    assert residuals[-1] == pos


@pytest.mark.unit
def test_clause_test_narrows_domains() -> None:
    rels = {'on': Relation(3, [(0, 1, 2), (0, 1, 3)]), 'heavy': Relation(2, [(0, 3)])}
    clause = [Literal('on', (0, 1, 2)), Literal('heavy', (0, 2))]

    domains = {0: {0}, 1: {1}, 2: {2, 3}}
    assert foil.test_clause(clause, rels, domains)
    assert domains[2] == {3}

    domains = {0: {0}, 1: {1}, 2: {2}}
    assert not foil.test_clause(clause, rels, domains)
    assert domains[2] == {2}


@pytest.mark.unit
def test_clause_vector_returns_first_match() -> None:
    rels = {'red': Relation(2, [(0, 1)]), 'blue': Relation(2, [(0, 2)])}
    clauses = [[Literal('blue', (0, 1))], [Literal('red', (0, 1))], [Literal('red', (0, 1), negated=True)]]
    assert foil.test_clause_vec(clauses, rels, {0: {0}, 1: {1}}) == 1
    assert foil.test_clause_vec(clauses, rels, {0: {0}, 1: {2}}) == 0
    assert foil.test_clause_vec(clauses[:2], rels, {0: {0}, 1: {3}}) == -1


@pytest.mark.unit
def test_negated_literal_over_missing_relation_holds() -> None:
    clause = [Literal('missing', (0, 1), negated=True)]
    assert foil.test_clause(clause, {}, {0: {0}, 1: {4}})
    assert not foil.test_clause([Literal('missing', (0, 1))], {}, {0: {0}, 1: {4}})


@pytest.mark.unit
def test_literal_dict_round_trip() -> None:
    clauses = [[Literal('on', (0, 1, 2)), Literal('heavy', (0, 2), negated=True)]]
    assert foil.clause_vec_from_list(foil.clause_vec_to_list(clauses)) == clauses
    assert foil.clause_str(clauses[0]) == 'on(V0,V1,V2) & ~heavy(V0,V2)'
