"""Class hierarchy graph for inheritance-depth queries."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from .models import ClassMetric


@dataclass
class ClassHierarchy:
    """Superclass links keyed by class name.

    Built once per scan from every ClassMetric seen; depth() follows links
    until a class with no known superclass, counting each link. A superclass
    that was never declared still counts as one level. Cyclic links (two
    files declaring classes that extend each other) stop at the first repeat.
    """
    parents: Dict[str, Optional[str]] = field(default_factory=dict)
    _depths: Dict[str, int] = field(default_factory=dict, repr=False)

    def add(self, name: str, superclass: Optional[str]) -> None:
        # a later declaration with a superclass wins over one without
        if superclass or name not in self.parents:
            self.parents[name] = superclass
        self._depths.clear()

    @classmethod
    def from_metrics(cls, metrics: Iterable[ClassMetric]) -> "ClassHierarchy":
        hierarchy = cls()
        for metric in metrics:
            hierarchy.add(metric.name, metric.superclass)
        return hierarchy

    def depth(self, name: str) -> int:
        if name in self._depths:
            return self._depths[name]
        chain = []
        seen = set()
        current: Optional[str] = name
        top = 0  # depth of chain[-1]
        while current is not None:
            if current in self._depths:
                top = self._depths[current] + 1
                break
            if current in seen:
                break
            seen.add(current)
            chain.append(current)
            current = self.parents.get(current)
        for offset, cls_name in enumerate(reversed(chain)):
            self._depths[cls_name] = top + offset
        return self._depths[name]
