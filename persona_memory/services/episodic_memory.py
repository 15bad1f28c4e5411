"""
Episodic memory store: experiences that fade with age and repeated recall,
linked to each other by embedding similarity.
"""

import math
import threading
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..errors import EmbeddingUnavailable, NotFound
from ..models.core import EpisodeKind, EpisodicMemoryEntry, embedding_text_for
from ..utils.config import EpisodicConfig
from ..utils.config import config as app_config
from ..utils.embedding import EmbeddingService
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import Clock, age_days, now_seconds
from .scored_store import ScoredStore
from .snapshot_restore import restore_entries
from .vector_index import VectorIndex

logger = get_logger(__name__)

PATCHABLE_FIELDS = ('kind', 'context', 'participants', 'emotions', 'importance')

Recollection = Tuple[EpisodicMemoryEntry, float]


class EpisodicMemoryStore:
    """Bounded store of episodic memories.

    Importance is kept as a base value. Decay is recomputed from the entry's
    age and access count whenever it is needed, so repeated reads never
    compound it.
    """

    def __init__(self, embedder: EmbeddingService, config: Optional[EpisodicConfig] = None, clock: Clock = now_seconds):
        """
        Initialize the episodic memory store.

        Args:
            embedder: Embedding service used for contents and queries
            config: EpisodicConfig instance, uses default if None
            clock: Source of the current time in Unix seconds
        """
        self.embedder = embedder
        self.config = config or app_config.episodic
        self.clock = clock
        self.index = VectorIndex()
        self.store: ScoredStore[EpisodicMemoryEntry] = ScoredStore()
        self._lock = threading.RLock()

        logger.info(f'Initialized EpisodicMemoryStore (max_memories={self.config.max_memories})')

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def decay_factor(self, entry: EpisodicMemoryEntry, now: Optional[float] = None) -> float:
        """exp(-decay_rate * age_days) * exp(-access_decay * access_count)."""
        if now is None:
            now = self.clock()
        time_factor = math.exp(-self.config.decay_rate * age_days(entry.created_at, now))
        access_factor = math.exp(-self.config.access_decay * entry.access_count)
        return time_factor * access_factor

    def effective_importance(self, entry: EpisodicMemoryEntry, now: Optional[float] = None) -> float:
        return entry.importance * self.decay_factor(entry, now)

    def decay(self, entry_id: str) -> float:
        """Recompute an entry's decay factor and return its effective importance.

        Args:
            entry_id: Memory ID

        Returns:
            importance * decay_factor at the current time

        Raises:
            NotFound: If the memory does not exist
        """
        with self._lock:
            entry = self._require(entry_id)
            entry.decay_factor = self.decay_factor(entry)
            return entry.importance * entry.decay_factor

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create(self,
               kind: str,
               context: str,
               participants: Iterable[str] = (),
               emotions: Iterable[str] = (),
               importance: Optional[float] = None) -> EpisodicMemoryEntry:
        """Record a new memory, link it to similar ones and enforce capacity.

        Args:
            kind: conversation, action, observation or summary
            context: What happened
            participants: Identifiers of those involved
            emotions: Emotion labels attached to the experience
            importance: Base importance on a 0-10 scale (default from config)

        Returns:
            The stored EpisodicMemoryEntry

        Raises:
            EmbeddingUnavailable: If the embedding service fails
            ValueError: If kind or importance is invalid
        """
        episode_kind = EpisodeKind(kind)
        participants = set(participants)
        emotions = set(emotions)
        importance = self.config.default_importance if importance is None else _check_importance(importance)

        embedding = self._embed(embedding_text_for(episode_kind, context, participants))

        now = self.clock()
        entry = EpisodicMemoryEntry(id=str(uuid.uuid4()),
                                    created_at=now,
                                    embedding=embedding,
                                    kind=episode_kind,
                                    context=context,
                                    participants=participants,
                                    emotions=emotions,
                                    importance=importance,
                                    last_accessed_at=now)

        with self._lock:
            self.index.insert(entry.id, embedding)
            self.store.put(entry.id, entry)
            linked = self._link(entry)
            self._enforce_capacity(now)

        logger.debug(f'Created episodic memory {entry.id} ({episode_kind.value}) linked to {linked} memories')
        return entry

    def retrieve(self, context_text: str, limit: int = 10) -> List[Recollection]:
        """Return the memories most relevant to a context, marking them accessed.

        Relevance is similarity * importance * decay_factor. Only the returned
        memories have their access count and last-access time updated.

        Args:
            context_text: Text describing the current situation
            limit: Maximum number of memories to return

        Returns:
            List of (entry, relevance) tuples, most relevant first
        """
        if not context_text or not context_text.strip() or limit <= 0:
            logger.warning('Empty context or non-positive limit provided for memory retrieval')
            return []

        query = self._embed(context_text)

        with self._lock:
            now = self.clock()
            similarities = self.index.similarities(query)
            scored = []
            for entry in self.store.values():
                factor = self.decay_factor(entry, now)
                entry.decay_factor = factor
                scored.append((entry, similarities[entry.id] * entry.importance * factor))

            scored.sort(key=lambda item: (-item[1], item[0].id))
            results = scored[:limit]

            for entry, _ in results:
                entry.access_count += 1
                entry.last_accessed_at = now

        logger.debug(f'Retrieved {len(results)} episodic memories')
        return results

    def update(self, entry_id: str, **patch: Any) -> EpisodicMemoryEntry:
        """Merge field changes into a memory, re-embed it and relink it.

        The new embedding is obtained before anything changes, so a failed
        embedding leaves the memory untouched. Links are recomputed: links that
        no longer meet the threshold are dropped on both sides.

        Args:
            entry_id: Memory ID
            **patch: Any of kind, context, participants, emotions, importance

        Returns:
            The updated EpisodicMemoryEntry

        Raises:
            NotFound: If the memory does not exist
            EmbeddingUnavailable: If the embedding service fails
            ValueError: If the patch names unknown fields or invalid values
        """
        unknown = set(patch) - set(PATCHABLE_FIELDS)
        if unknown:
            raise ValueError(f'Cannot update episodic memory fields: {sorted(unknown)}')

        with self._lock:
            current = self._require(entry_id)
            kind = EpisodeKind(patch.get('kind', current.kind))
            context = patch.get('context', current.context)
            participants = set(patch.get('participants', current.participants))
            emotions = set(patch.get('emotions', current.emotions))
            importance = _check_importance(patch.get('importance', current.importance))

        embedding = self._embed(embedding_text_for(kind, context, participants))

        with self._lock:
            entry = self._require(entry_id)
            self.index.insert(entry_id, embedding)

            entry.kind = kind
            entry.context = context
            entry.participants = participants
            entry.emotions = emotions
            entry.importance = importance
            entry.embedding = embedding

            self._unlink(entry)
            linked = self._link(entry)

        logger.debug(f'Updated episodic memory {entry_id}, now linked to {linked} memories')
        return entry

    def delete(self, entry_id: str) -> None:
        """Remove a memory and every relation that points at it.

        Raises:
            NotFound: If the memory does not exist
        """
        with self._lock:
            entry = self._require(entry_id)
            self._unlink(entry)
            self.store.delete(entry_id)
            self.index.remove(entry_id)

        logger.debug(f'Deleted episodic memory: {entry_id}')

    def get(self, entry_id: str) -> Optional[EpisodicMemoryEntry]:
        return self.store.get(entry_id)

    def related(self, entry_id: str) -> List[EpisodicMemoryEntry]:
        """Memories linked to `entry_id`, ordered by id."""
        with self._lock:
            entry = self._require(entry_id)
            return [self.store.get(rid) for rid in sorted(entry.related_ids) if rid in self.store]

    def recent(self, window_seconds: float) -> List[EpisodicMemoryEntry]:
        """Memories created within the last `window_seconds`, newest first."""
        cutoff = self.clock() - window_seconds
        with self._lock:
            entries = [entry for entry in self.store.values() if entry.created_at > cutoff]
        return sorted(entries, key=lambda entry: (-entry.created_at, entry.id))

    def size(self) -> int:
        return self.store.size()

    # ------------------------------------------------------------------
    # Integrity and snapshots
    # ------------------------------------------------------------------

    def verify_integrity(self) -> List[str]:
        """Check every memory for missing fields, bad vectors, bad timestamps and broken links.

        Returns:
            Human readable problem descriptions; empty when the store is sound
        """
        problems = []
        now = self.clock()
        with self._lock:
            for entry_id, entry in self.store.items():
                if not entry.id or not entry.context or not entry.embedding:
                    problems.append(f'{entry_id}: missing required fields')
                if entry_id not in self.index:
                    problems.append(f'{entry_id}: not present in vector index')
                elif self.index.dimension is not None and len(entry.embedding) != self.index.dimension:
                    problems.append(f'{entry_id}: embedding has {len(entry.embedding)} dimensions, expected {self.index.dimension}')
                if not 0 < entry.created_at <= now:
                    problems.append(f'{entry_id}: invalid timestamp {entry.created_at}')
                for related_id in sorted(entry.related_ids):
                    other = self.store.get(related_id)
                    if other is None:
                        problems.append(f'{entry_id}: dangling relation to {related_id}')
                    elif entry_id not in other.related_ids:
                        problems.append(f'{entry_id}: relation to {related_id} is not symmetric')

        if problems:
            logger.warning(f'Episodic memory integrity check found {len(problems)} problems')
        return problems

    def to_snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {'entries': [entry.to_dict() for entry in self.store.values()]}

    def load_snapshot(self, data: Dict[str, Any]) -> int:
        """Replace the store contents with a snapshot and rebuild the index.

        Invalid memories are skipped with a warning. Relations pointing at
        memories missing from the snapshot are dropped.

        Returns:
            Number of memories loaded
        """
        entries, index = restore_entries(data.get('entries', []), EpisodicMemoryEntry.from_dict, ('id', 'context', 'embedding'),
                                         self.clock(), 'episodic')

        with self._lock:
            self.index = index
            self.store.clear()
            for entry in entries:
                self.store.put(entry.id, entry)
            for entry in entries:
                entry.related_ids &= set(self.store.ids())
                for related_id in entry.related_ids:
                    self.store.get(related_id).related_ids.add(entry.id)
            self._enforce_capacity(self.clock())

        logger.info(f'Loaded {len(entries)} episodic memories from snapshot')
        return len(entries)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _embed(self, text: str) -> List[float]:
        try:
            return self.embedder.embed(text)
        except EmbeddingUnavailable as e:
            logger.error(f'Embedding failed for episodic memory: {e}')
            raise

    def _require(self, entry_id: str) -> EpisodicMemoryEntry:
        entry = self.store.get(entry_id)
        if entry is None:
            raise NotFound(f'Episodic memory not found: {entry_id}')
        return entry

    def _link(self, entry: EpisodicMemoryEntry) -> int:
        matches = self.index.all_above(entry.embedding, self.config.link_threshold, exclude=(entry.id,))
        for related_id, _ in matches:
            entry.related_ids.add(related_id)
            self.store.get(related_id).related_ids.add(entry.id)
        return len(matches)

    def _unlink(self, entry: EpisodicMemoryEntry) -> None:
        for related_id in entry.related_ids:
            other = self.store.get(related_id)
            if other is not None:
                other.related_ids.discard(entry.id)
        entry.related_ids.clear()

    def _enforce_capacity(self, now: float) -> None:
        evicted = self.store.evict_to_capacity(self.config.max_memories,
                                               lambda entry: entry.importance * self.decay_factor(entry, now))
        for entry_id, entry in evicted:
            self.index.remove(entry_id)
            self._unlink(entry)
        if evicted:
            logger.debug(f'Evicted {len(evicted)} episodic memories to stay within {self.config.max_memories}')


def _check_importance(importance: float) -> float:
    importance = float(importance)
    if not 0.0 <= importance <= 10.0:
        raise ValueError(f'Importance must be between 0 and 10, got {importance}')
    return importance
