"""Relational store: named n-ary relations over time-stamped object ids."""
from collections import defaultdict
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

RelTuple = Tuple[int, ...]


class Relation:
    """A set of integer tuples ``(time, obj_1, ..., obj_k)`` of fixed arity.

    Column indexes used for pattern lookups are built lazily and dropped
    whenever the relation changes.
    """

    def __init__(self, arity: int, tuples: Iterable[Sequence[int]] = ()):
        if arity < 1:
            raise ValueError(f"relation arity must be positive, got {arity}")
        self.arity = arity
        self.tuples: Set[RelTuple] = set()
        self._index: Dict[int, Dict[int, List[RelTuple]]] = {}
        for t in tuples:
            self.add_tuple(t)

    def add(self, time: int, objs: Sequence[int]):
        self.add_tuple((time,) + tuple(objs))

    def add_tuple(self, t: Sequence[int]):
        t = tuple(int(v) for v in t)
        if len(t) != self.arity:
            raise ValueError(f"tuple {t} does not have arity {self.arity}")
        if t not in self.tuples:
            self.tuples.add(t)
            self._index.clear()

    def delete(self, time: int, objs: Sequence[int]):
        t = (int(time),) + tuple(int(v) for v in objs)
        if t in self.tuples:
            self.tuples.discard(t)
            self._index.clear()

    def has(self, t: Sequence[int]) -> bool:
        return tuple(t) in self.tuples

    def __contains__(self, t) -> bool:
        return self.has(t)

    def __len__(self) -> int:
        return len(self.tuples)

    def __iter__(self) -> Iterator[RelTuple]:
        return iter(sorted(self.tuples))

    def __eq__(self, other) -> bool:
        if not isinstance(other, Relation):
            return NotImplemented
        return self.arity == other.arity and self.tuples == other.tuples

    def empty(self) -> bool:
        return not self.tuples

    def copy(self) -> 'Relation':
        return Relation(self.arity, self.tuples)

    def match(self, pattern: Sequence[Optional[int]]) -> 'Relation':
        """Return tuples agreeing with ``pattern``; ``None`` and -1 are wildcards.

        The pattern may be shorter than the arity, trailing columns are free.
        """
        if len(pattern) > self.arity:
            raise ValueError("pattern larger than relation arity")
        bound = {i: v for i, v in enumerate(pattern) if v is not None and v != -1}
        return Relation(self.arity, self.lookup(bound))

    def lookup(self, bound: Dict[int, int]) -> List[RelTuple]:
        """All tuples whose column ``i`` equals ``bound[i]`` for every key."""
        if not bound:
            return list(self.tuples)
        pos = min(bound)
        candidates = self._column_index(pos).get(bound[pos], [])
        if len(bound) == 1:
            return list(candidates)
        return [t for t in candidates if all(t[i] == v for i, v in bound.items())]

    def _column_index(self, pos: int) -> Dict[int, List[RelTuple]]:
        idx = self._index.get(pos)
        if idx is None:
            idx = defaultdict(list)
            for t in self.tuples:
                idx[t[pos]].append(t)
            idx = dict(idx)
            self._index[pos] = idx
        return idx

    def drop_first(self) -> Set[RelTuple]:
        """Project out the time column."""
        return {t[1:] for t in self.tuples}

    def at_pos(self, pos: int) -> Set[int]:
        return {t[pos] for t in self.tuples}

    def filter(self, pos: int, values: Iterable[int]) -> 'Relation':
        """Tuples whose column ``pos`` is one of ``values``."""
        keep = set(values)
        return Relation(self.arity, (t for t in self.tuples if t[pos] in keep))

    def to_list(self) -> List[List[int]]:
        return [list(t) for t in sorted(self.tuples)]

    @classmethod
    def from_list(cls, arity: int, rows: Iterable[Sequence[int]]) -> 'Relation':
        return cls(arity, rows)

    def __str__(self) -> str:
        return '\n'.join(' '.join(str(v) for v in t) for t in sorted(self.tuples))

    def __repr__(self) -> str:
        return f"Relation(arity={self.arity}, size={len(self.tuples)})"


class RelationTable(dict):
    """Mapping from predicate name to :class:`Relation`."""

    def extend(self, snapshot: Dict[str, Relation], time: int):
        """Merge a single-time-step snapshot, re-stamping every tuple with ``time``.

        All tuples of a snapshot are assumed to share one time value, so only
        the object columns are kept.
        """
        for name in sorted(snapshot):
            rel = snapshot[name]
            target = self.get(name)
            if target is None:
                target = Relation(rel.arity)
                self[name] = target
            elif target.arity != rel.arity:
                raise ValueError(
                    f"relation {name} has arity {rel.arity}, expected {target.arity}"
                )
            for objs in rel.drop_first():
                target.add(time, objs)

    def copy(self) -> 'RelationTable':
        return RelationTable({name: rel.copy() for name, rel in self.items()})

    def to_dict(self) -> Dict:
        return {
            name: {'arity': rel.arity, 'tuples': rel.to_list()}
            for name, rel in sorted(self.items())
        }

    @classmethod
    def from_dict(cls, payload: Dict) -> 'RelationTable':
        return cls({
            name: Relation.from_list(int(body['arity']), body['tuples'])
            for name, body in payload.items()
        })

    def __str__(self) -> str:
        parts = []
        for name in sorted(self):
            parts.append(f"{name} ({len(self[name])} tuples)")
            body = str(self[name])
            if body:
                parts.append(body)
        return '\n'.join(parts)
