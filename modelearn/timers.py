"""Named wall-clock timers for the expensive learner sections."""
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, List


@dataclass
class TimerStats:
    """Accumulated timing for one named section."""
    calls: int = 0
    total: float = 0.0
    last: float = 0.0

    def record(self, elapsed: float):
        self.calls += 1
        self.total += elapsed
        self.last = elapsed

    @property
    def mean(self) -> float:
        return self.total / self.calls if self.calls else 0.0


@dataclass
class TimerSet:
    stats: Dict[str, TimerStats] = field(default_factory=dict)

    def get_or_add(self, name: str) -> TimerStats:
        if name not in self.stats:
            self.stats[name] = TimerStats()
        return self.stats[name]

    @contextmanager
    def timed(self, name: str):
        entry = self.get_or_add(name)
        start = time.perf_counter()
        try:
            yield entry
        finally:
            entry.record(time.perf_counter() - start)

    def reset(self):
        self.stats.clear()

    def summary(self) -> Dict[str, Dict[str, float]]:
        return {
            name: {'calls': s.calls, 'total': s.total, 'mean': s.mean, 'last': s.last}
            for name, s in sorted(self.stats.items())
        }

    def report(self) -> str:
        if not self.stats:
            return "no timings recorded"
        lines: List[str] = [f"{'name':<14}{'calls':>8}{'total(s)':>12}{'mean(s)':>12}{'last(s)':>12}"]
        for name, s in sorted(self.stats.items()):
            lines.append(f"{name:<14}{s.calls:>8}{s.total:>12.6f}{s.mean:>12.6f}{s.last:>12.6f}")
        return '\n'.join(lines)
