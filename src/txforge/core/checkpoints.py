from typing import FrozenSet, Set


class CheckpointTracker:
    """Records which builder operations the caller has invoked.

    The set only grows. A visited name means the caller supplied that field,
    even if the value it supplied is empty.
    """

    def __init__(self):
        self._visits: Set[str] = set()

    def mark(self, name: str) -> None:
        self._visits.add(name)

    def is_visited(self, name: str) -> bool:
        return name in self._visits

    def not_visited(self, name: str) -> bool:
        return name not in self._visits

    @property
    def visits(self) -> FrozenSet[str]:
        return frozenset(self._visits)

    def __contains__(self, name: str) -> bool:
        return self.is_visited(name)

    def __len__(self) -> int:
        return len(self._visits)
