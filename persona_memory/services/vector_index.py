"""
Vector index over entry embeddings with cosine-similarity queries.

Brute-force scan over unit vectors held in memory. Store sizes stay in the
low thousands, where a linear scan is cheaper than maintaining an ANN
structure. Callers only see ids and similarities, so the storage can be
replaced without touching them.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..errors import DegenerateVector, DimensionMismatch

Match = Tuple[str, float]


def _as_vector(embedding: Sequence[float]) -> np.ndarray:
    vector = np.asarray(embedding, dtype=np.float64)
    if vector.ndim != 1 or vector.size == 0:
        raise DimensionMismatch(f'Embedding must be a non-empty flat vector, got shape {vector.shape}')
    return vector


def _unit(vector: np.ndarray) -> np.ndarray:
    norm = float(np.linalg.norm(vector))
    if norm == 0.0 or not np.isfinite(norm):
        raise DegenerateVector('Cannot compare a zero-norm embedding')
    return vector / norm


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Dot product of `a` and `b` over the product of their L2 norms.

    Raises:
        DimensionMismatch: If the vectors are empty or differ in length
        DegenerateVector: If either vector has zero norm
    """
    va, vb = _as_vector(a), _as_vector(b)
    if va.size != vb.size:
        raise DimensionMismatch(f'Cannot compare vectors of length {va.size} and {vb.size}')
    similarity = float(np.dot(_unit(va), _unit(vb)))
    return max(-1.0, min(1.0, similarity))


class VectorIndex:
    """Maps entry ids to fixed-dimension embeddings.

    The dimension comes from the constructor or, when omitted, from the first
    inserted vector. Malformed vectors are rejected before the index changes.
    """

    def __init__(self, dimension: Optional[int] = None):
        self.dimension = dimension
        self._vectors: Dict[str, np.ndarray] = {}

    def __len__(self) -> int:
        return len(self._vectors)

    def __contains__(self, entry_id: str) -> bool:
        return entry_id in self._vectors

    def ids(self) -> List[str]:
        return list(self._vectors)

    def _check(self, embedding: Sequence[float]) -> np.ndarray:
        vector = _as_vector(embedding)
        if self.dimension is not None and vector.size != self.dimension:
            raise DimensionMismatch(f'Index holds {self.dimension}-dimensional vectors, got {vector.size}')
        return _unit(vector)

    def insert(self, entry_id: str, embedding: Sequence[float]) -> None:
        """Add or replace the vector stored for `entry_id`."""
        unit = self._check(embedding)
        if self.dimension is None:
            self.dimension = unit.size
        self._vectors[entry_id] = unit

    def get(self, entry_id: str) -> Optional[List[float]]:
        """Stored unit vector for `entry_id`, or None."""
        vector = self._vectors.get(entry_id)
        return None if vector is None else vector.tolist()

    def remove(self, entry_id: str) -> bool:
        return self._vectors.pop(entry_id, None) is not None

    def clear(self) -> None:
        self._vectors.clear()

    def similarities(self, query: Sequence[float], exclude: Iterable[str] = ()) -> Dict[str, float]:
        """Cosine similarity of `query` against every indexed vector."""
        if not self._vectors:
            return {}
        unit = self._check(query)
        skip = set(exclude)
        return {
            entry_id: max(-1.0, min(1.0, float(np.dot(unit, vector))))
            for entry_id, vector in self._vectors.items()
            if entry_id not in skip
        }

    def nearest(self, query: Sequence[float], exclude: Iterable[str] = ()) -> Optional[Match]:
        """Best match for `query`; equal similarities resolve to the lowest id."""
        scores = self.similarities(query, exclude)
        if not scores:
            return None
        return min(scores.items(), key=lambda item: (-item[1], item[0]))

    def all_above(self, query: Sequence[float], threshold: float, exclude: Iterable[str] = ()) -> List[Match]:
        """Every match with similarity >= `threshold`, best first then by id."""
        scores = self.similarities(query, exclude)
        matches = [(entry_id, score) for entry_id, score in scores.items() if score >= threshold]
        return sorted(matches, key=lambda item: (-item[1], item[0]))
