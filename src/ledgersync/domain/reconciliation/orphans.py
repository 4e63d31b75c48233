"""In-batch holding area for transitions that arrived before their target."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ledgersync.domain.model import LedgerFact, TargetRef


@dataclass(slots=True)
class PendingTransitions:
    """Bounded set of waiting transitions, keyed by target and kept in source order."""

    capacity: int
    _by_target: dict[TargetRef, list[LedgerFact]] = field(default_factory=dict)
    _size: int = 0

    def __len__(self) -> int:
        return self._size

    @property
    def full(self) -> bool:
        return self._size >= self.capacity

    def add(self, target: TargetRef, fact: LedgerFact) -> bool:
        """Hold ``fact`` until ``target`` exists; ``False`` when at capacity."""

        if self.full:
            return False
        self._by_target.setdefault(target, []).append(fact)
        self._size += 1
        return True

    def pop(self, target: TargetRef) -> list[LedgerFact]:
        facts = self._by_target.pop(target, [])
        self._size -= len(facts)
        return facts

    def drain(self) -> list[tuple[TargetRef, LedgerFact]]:
        drained = [(target, fact) for target, facts in self._by_target.items() for fact in facts]
        self._by_target.clear()
        self._size = 0
        return drained
