"""Data models for the mode learner."""
import enum
import math
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence

import numpy as np

from .algorithms.foil import ClauseVec, clause_str, clause_vec_from_list, clause_vec_to_list
from .algorithms.lda import LDA
from .algorithms.lwr import LWR
from .errors import InvariantViolation
from .relation import Relation


@dataclass
class SigEntry:
    """One object of a scene signature."""
    id: int = field(compare=False)
    type: str
    name: str
    props: List[str]
    start: int = field(default=0, compare=False)

    def to_dict(self) -> Dict:
        return {'id': self.id, 'type': self.type, 'name': self.name,
                'props': list(self.props), 'start': self.start}


class SceneSig:
    """Ordered object schema of a property vector.

    Entries are laid out back to back: entry ``k`` owns the slice
    ``x[start:start + len(props)]``. Equality ignores ids and offsets.
    """

    def __init__(self, entries: Sequence[SigEntry] = ()):
        self.entries: List[SigEntry] = []
        for e in entries:
            self.add(e.id, e.type, e.name, e.props)

    def add(self, id: int, type: str, name: str, props: Sequence[str]) -> SigEntry:
        entry = SigEntry(id=int(id), type=str(type), name=str(name), props=list(props), start=self.dim())
        self.entries.append(entry)
        return entry

    def dim(self) -> int:
        if not self.entries:
            return 0
        last = self.entries[-1]
        return last.start + len(last.props)

    def find_id(self, id: int) -> int:
        for i, e in enumerate(self.entries):
            if e.id == id:
                return i
        return -1

    def validate(self):
        start = 0
        seen = set()
        for e in self.entries:
            if e.start != start:
                raise InvariantViolation(f"object {e.name} starts at {e.start}, expected {start}")
            if e.id in seen:
                raise InvariantViolation(f"duplicate object id {e.id} in signature")
            seen.add(e.id)
            start += len(e.props)

    def key(self):
        return tuple((e.type, e.name, tuple(e.props)) for e in self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __getitem__(self, i: int) -> SigEntry:
        return self.entries[i]

    def __iter__(self) -> Iterator[SigEntry]:
        return iter(self.entries)

    def __eq__(self, other) -> bool:
        if not isinstance(other, SceneSig):
            return NotImplemented
        return self.key() == other.key()

    def __hash__(self) -> int:
        return hash(self.key())

    def __str__(self) -> str:
        return ' '.join(f"{e.name}:{e.type}({','.join(e.props)})" for e in self.entries)

    def to_dict(self) -> List[Dict]:
        return [e.to_dict() for e in self.entries]

    @classmethod
    def from_dict(cls, payload: Sequence[Dict]) -> 'SceneSig':
        sig = cls()
        for body in payload:
            sig.entries.append(SigEntry(
                id=int(body['id']), type=str(body['type']), name=str(body['name']),
                props=[str(p) for p in body['props']], start=int(body['start']),
            ))
        sig.validate()
        return sig


@dataclass(eq=False)
class TrainData:
    """One observation and its current posterior over modes."""
    x: np.ndarray
    y: float
    target: int
    sig_index: int
    mode_prob: List[float]
    prob_stale: List[bool]
    map_mode: int = 0
    obj_map: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'x': [float(v) for v in self.x],
            'y': float(self.y),
            'target': self.target,
            'sig_index': self.sig_index,
            'mode_prob': [float(p) for p in self.mode_prob],
            'prob_stale': [bool(s) for s in self.prob_stale],
            'map_mode': self.map_mode,
            'obj_map': list(self.obj_map),
        }

    @classmethod
    def from_dict(cls, payload: Dict) -> 'TrainData':
        return cls(
            x=np.array(payload['x'], dtype=float),
            y=float(payload['y']),
            target=int(payload['target']),
            sig_index=int(payload['sig_index']),
            mode_prob=[float(p) for p in payload['mode_prob']],
            prob_stale=[bool(s) for s in payload['prob_stale']],
            map_mode=int(payload['map_mode']),
            obj_map=[int(o) for o in payload['obj_map']],
        )


@dataclass
class SigInfo:
    """Observations sharing one scene signature, with their fallback regressor."""
    sig: SceneSig
    members: List[int] = field(default_factory=list)
    lwr: LWR = field(default_factory=LWR, repr=False)


class VoteDecision(enum.Enum):
    """Which row of the pairwise decision table produced a vote."""
    CLAUSE_MATCHED = 'clause_matched'
    CATCH_ALL = 'catch_all'
    DEFAULT = 'default'


@dataclass
class Classifier:
    """Pairwise classifier between modes i < j.

    Votes are 0 for mode i and 1 for mode j. ``residuals[k]`` holds the
    members of j wrongly matched by clause k; the trailing residual holds the
    members of i no clause matches. ``ldas`` parallels ``residuals``.
    """
    const_vote: int = 0
    clauses: ClauseVec = field(default_factory=list)
    residuals: List[Relation] = field(default_factory=list)
    ldas: List[Optional[LDA]] = field(default_factory=list)

    def vote(self, matched_clause: int, x: np.ndarray):
        """Returns ``(vote, decision)`` for a clause-match result and input vector."""
        if matched_clause >= 0:
            lda = self.ldas[matched_clause] if matched_clause < len(self.ldas) else None
            if lda is None:
                return 0, VoteDecision.CLAUSE_MATCHED
            return (0 if lda.classify(x) == 1 else 1), VoteDecision.CLAUSE_MATCHED
        if len(self.ldas) > len(self.clauses) and self.ldas[-1] is not None:
            return (0 if self.ldas[-1].classify(x) == 1 else 1), VoteDecision.CATCH_ALL
        return self.const_vote, VoteDecision.DEFAULT

    def inspect(self) -> str:
        has_catch_all = bool(self.ldas) and self.ldas[-1] is not None and len(self.ldas) > len(self.clauses)
        if not self.clauses and not has_catch_all:
            return f"Constant Vote: {self.const_vote}"
        lines = []
        if not self.clauses:
            lines.append("No clauses")
        for k, clause in enumerate(self.clauses):
            lines.append(f"clause {k}: {clause_str(clause)}")
            lda = self.ldas[k] if k < len(self.ldas) else None
            if lda is not None:
                lines.append(f"  false positives: {lda.inspect()}")
        if has_catch_all:
            lines.append(f"false negatives: {self.ldas[-1].inspect()}")
        return '\n'.join(lines)

    def to_dict(self) -> Dict:
        return {
            'const_vote': self.const_vote,
            'clauses': clause_vec_to_list(self.clauses),
            'residuals': [{'arity': r.arity, 'tuples': r.to_list()} for r in self.residuals],
            'ldas': [lda.to_dict() if lda is not None else None for lda in self.ldas],
        }

    @classmethod
    def from_dict(cls, payload: Dict) -> 'Classifier':
        return cls(
            const_vote=int(payload['const_vote']),
            clauses=clause_vec_from_list(payload['clauses']),
            residuals=[Relation.from_list(int(r['arity']), r['tuples']) for r in payload['residuals']],
            ldas=[LDA.from_dict(l) if l is not None else None for l in payload['ldas']],
        )


@dataclass
class Prediction:
    """Result of ``EM.predict``; ``y`` is nan when ``success`` is False."""
    success: bool
    mode: int
    y: float = math.nan
