"""
Bounded key-to-entry store that evicts the lowest-scored entries.
"""

from typing import Callable, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

T = TypeVar('T')

ScoreFn = Callable[[T], float]


class ScoredStore(Generic[T]):
    """Insertion-ordered store with score-driven eviction.

    Re-putting an existing id replaces the entry but keeps its original
    position, so eviction ties still go to the oldest insert.
    """

    def __init__(self):
        self._entries: Dict[str, T] = {}

    def put(self, entry_id: str, entry: T) -> None:
        self._entries[entry_id] = entry

    def get(self, entry_id: str) -> Optional[T]:
        return self._entries.get(entry_id)

    def delete(self, entry_id: str) -> bool:
        return self._entries.pop(entry_id, None) is not None

    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entry_id: str) -> bool:
        return entry_id in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def ids(self) -> List[str]:
        return list(self._entries)

    def values(self) -> List[T]:
        return list(self._entries.values())

    def items(self) -> List[Tuple[str, T]]:
        return list(self._entries.items())

    def clear(self) -> None:
        self._entries.clear()

    def evict_to_capacity(self, capacity: int, score_fn: ScoreFn) -> List[Tuple[str, T]]:
        """Remove lowest-scored entries until at most `capacity` remain.

        Args:
            capacity: Maximum number of entries to keep
            score_fn: Pure function giving a score for every stored entry

        Returns:
            The evicted (id, entry) pairs, in eviction order
        """
        excess = len(self._entries) - max(0, capacity)
        if excess <= 0:
            return []

        # sorted() is stable, so equal scores keep insertion order.
        ranked = sorted(self._entries.items(), key=lambda item: score_fn(item[1]))
        evicted = ranked[:excess]
        for entry_id, _ in evicted:
            del self._entries[entry_id]
        return evicted
