import pytest

from modelearn.relation import Relation, RelationTable


@pytest.mark.unit
def test_add_delete_and_membership() -> None:
    rel = Relation(3)
    rel.add(0, (1, 2))
    rel.add(0, (1, 2))
    rel.add(1, (2, 3))
    assert len(rel) == 2
    assert (0, 1, 2) in rel
    rel.delete(0, (1, 2))
    assert (0, 1, 2) not in rel
    assert list(rel) == [(1, 2, 3)]


@pytest.mark.unit
def test_wrong_arity_is_rejected() -> None:
    rel = Relation(2)
    with pytest.raises(ValueError):
        rel.add(0, (1, 2))


@pytest.mark.unit
def test_match_uses_wildcards() -> None:
    rel = Relation(3, [(0, 1, 2), (0, 1, 3), (1, 4, 2)])
    assert rel.match([None, 1]).tuples == {(0, 1, 2), (0, 1, 3)}
    assert rel.match([-1, -1, 2]).tuples == {(0, 1, 2), (1, 4, 2)}
    assert len(rel.match([])) == 3
    with pytest.raises(ValueError):
        rel.match([0, 0, 0, 0])


@pytest.mark.unit
def test_lookup_index_follows_mutation() -> None:
    rel = Relation(2, [(0, 1), (1, 1)])
    assert sorted(rel.lookup({1: 1})) == [(0, 1), (1, 1)]
    rel.add(2, (1,))
    assert len(rel.lookup({1: 1})) == 3
    rel.delete(0, (1,))
    assert sorted(rel.lookup({1: 1})) == [(1, 1), (2, 1)]


@pytest.mark.unit
def test_projections() -> None:
    rel = Relation(3, [(0, 1, 2), (5, 1, 3)])
    assert rel.drop_first() == {(1, 2), (1, 3)}
    assert rel.at_pos(0) == {0, 5}
    assert rel.filter(2, [3]).tuples == {(5, 1, 3)}


@pytest.mark.unit
def test_table_extend_restamps_time() -> None:
    table = RelationTable()
    snapshot = {'on': Relation(3, [(0, 1, 2)]), 'red': Relation(2, [(9, 4)])}
    table.extend(snapshot, 7)
    table.extend({'on': Relation(3, [(0, 2, 1)])}, 8)
    assert table['on'].tuples == {(7, 1, 2), (8, 2, 1)}
    assert table['red'].tuples == {(7, 4)}
    with pytest.raises(ValueError):
        table.extend({'on': Relation(2, [(0, 1)])}, 9)


@pytest.mark.unit
def test_table_dict_round_trip() -> None:
    table = RelationTable({'on': Relation(3, [(0, 1, 2)]), 'empty': Relation(2)})
    restored = RelationTable.from_dict(table.to_dict())
    assert restored == table
    assert restored['empty'].arity == 2
