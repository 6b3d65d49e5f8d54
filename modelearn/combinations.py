"""Odometer over per-slot candidate lists yielding only injective assignments."""
from typing import Iterator, List, Optional, Sequence


class CombinationGenerator:
    """Iterates the Cartesian product of ``slots`` skipping tuples with repeated values.

    The last slot turns fastest. An empty slot list, or any slot without
    candidates, yields nothing.
    """

    def __init__(self, slots: Sequence[Sequence[int]]):
        self.slots: List[List[int]] = [list(s) for s in slots]
        self.reset()

    def reset(self):
        self._pos = [0] * len(self.slots)
        self._done = not self.slots or any(not s for s in self.slots)

    def _current(self) -> List[int]:
        return [s[p] for s, p in zip(self.slots, self._pos)]

    def _advance(self):
        i = len(self._pos) - 1
        while i >= 0:
            self._pos[i] += 1
            if self._pos[i] < len(self.slots[i]):
                return
            self._pos[i] = 0
            i -= 1
        self._done = True

    def next(self) -> Optional[List[int]]:
        """Next injective assignment, or None once exhausted."""
        while not self._done:
            combo = self._current()
            self._advance()
            if len(set(combo)) == len(combo):
                return combo
        return None

    def __iter__(self) -> Iterator[List[int]]:
        while True:
            combo = self.next()
            if combo is None:
                return
            yield combo
