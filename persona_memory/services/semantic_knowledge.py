"""
Semantic knowledge store: facts, beliefs and rules held with a certainty,
with detection and manual resolution of conflicting high-certainty entries.
"""

import math
import threading
import uuid
from typing import Any, Dict, List, Optional, Set, Tuple

from ..errors import AlreadyResolved, EmbeddingUnavailable, NotFound
from ..models.core import (Conflict, ConflictResolution, Decision, KnowledgeKind, SemanticKnowledgeEntry,
                           conflict_id_for)
from ..utils.config import SemanticConfig
from ..utils.config import config as app_config
from ..utils.embedding import EmbeddingService
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import SECONDS_PER_DAY, Clock, age_seconds, now_seconds
from .scored_store import ScoredStore
from .snapshot_restore import restore_entries
from .vector_index import VectorIndex

logger = get_logger(__name__)

PATCHABLE_FIELDS = ('kind', 'content', 'category', 'certainty', 'source')

# Certainty assigned to knowledge distilled from a single interaction.
EXTRACTED_CERTAINTY = 80.0

KnowledgeMatch = Tuple[SemanticKnowledgeEntry, float]


class SemanticKnowledgeStore:
    """Bounded store of semantic knowledge with conflict tracking."""

    def __init__(self, embedder: EmbeddingService, config: Optional[SemanticConfig] = None, clock: Clock = now_seconds):
        """
        Initialize the semantic knowledge store.

        Args:
            embedder: Embedding service used for contents and queries
            config: SemanticConfig instance, uses default if None
            clock: Source of the current time in Unix seconds
        """
        self.embedder = embedder
        self.config = config or app_config.semantic
        self.clock = clock
        self.index = VectorIndex()
        self.store: ScoredStore[SemanticKnowledgeEntry] = ScoredStore()
        self._categories: Set[str] = set()
        self._conflicts: Dict[str, Conflict] = {}
        self._lock = threading.RLock()

        logger.info(f'Initialized SemanticKnowledgeStore (max_entries={self.config.max_entries})')

    @property
    def categories(self) -> Set[str]:
        return set(self._categories)

    def create(self,
               kind: str,
               content: str,
               category: str,
               certainty: Optional[float] = None,
               source: Optional[Dict[str, Any]] = None) -> SemanticKnowledgeEntry:
        """Store a piece of knowledge and record conflicts it raises.

        A conflict is recorded against every existing entry whose similarity
        reaches the conflict threshold when both entries are held with more
        than the conflict certainty.

        Args:
            kind: fact, belief or rule
            content: The knowledge itself
            category: Category label
            certainty: Certainty between 0 and 100 (default from config)
            source: Where the knowledge came from

        Returns:
            The stored SemanticKnowledgeEntry

        Raises:
            EmbeddingUnavailable: If the embedding service fails
            ValueError: If kind or certainty is invalid
        """
        knowledge_kind = KnowledgeKind(kind)
        certainty = self.config.default_certainty if certainty is None else _check_certainty(certainty)

        embedding = self._embed(content)

        now = self.clock()
        entry = SemanticKnowledgeEntry(id=str(uuid.uuid4()),
                                       created_at=now,
                                       embedding=embedding,
                                       kind=knowledge_kind,
                                       content=content,
                                       category=category,
                                       certainty=certainty,
                                       source=source,
                                       last_updated_at=now)

        with self._lock:
            self.index.insert(entry.id, embedding)
            self.store.put(entry.id, entry)
            self._categories.add(category)
            conflicts = self._detect_conflicts(entry, now)
            self._enforce_capacity()

        if conflicts:
            logger.info(f'Knowledge {entry.id} conflicts with {len(conflicts)} existing entries')
        logger.debug(f'Created semantic knowledge {entry.id} in category {category}')
        return entry

    def extract_knowledge(self, summary: str, interaction_id: str, timestamp: Optional[float] = None) -> SemanticKnowledgeEntry:
        """Record the summary of an interaction as a general fact."""
        source = {'type': 'interaction', 'id': interaction_id, 'timestamp': timestamp if timestamp is not None else self.clock()}
        return self.create(KnowledgeKind.FACT.value, summary, 'general', certainty=EXTRACTED_CERTAINTY, source=source)

    def resolve_conflict(self, conflict_id: str, decision: str, explanation: str = '') -> Conflict:
        """Settle a conflict by halving the certainty of the losing entry.

        Args:
            conflict_id: Conflict ID
            decision: 'keep1' keeps the first entry, 'keep2' keeps the second
            explanation: Why the decision was taken

        Returns:
            The resolved Conflict

        Raises:
            NotFound: If the conflict or the losing entry does not exist
            AlreadyResolved: If the conflict was resolved before
            ValueError: If the decision is not keep1 or keep2
        """
        with self._lock:
            conflict = self.get_conflict(conflict_id)
            if conflict.resolved:
                raise AlreadyResolved(f'Conflict already resolved: {conflict_id}')

            choice = Decision(decision)
            loser_id = conflict.second_id if choice is Decision.KEEP_FIRST else conflict.first_id
            loser = self._require(loser_id)

            now = self.clock()
            loser.certainty *= 0.5
            loser.last_updated_at = now
            conflict.resolution = ConflictResolution(decision=choice, explanation=explanation, timestamp=now)

        logger.info(f'Resolved conflict {conflict_id} with {choice.value}; certainty of {loser_id} halved')
        return conflict

    def update(self, entry_id: str, **patch: Any) -> SemanticKnowledgeEntry:
        """Merge field changes into an entry and recompute its certainty.

        A content change is re-embedded before anything is modified. Each
        update increments the update count and then sets
        certainty = min(100, certainty * exp(-update_decay * update_count)
        * exp(-age_seconds / horizon_seconds)).

        Args:
            entry_id: Knowledge ID
            **patch: Any of kind, content, category, certainty, source

        Returns:
            The updated SemanticKnowledgeEntry

        Raises:
            NotFound: If the entry does not exist
            EmbeddingUnavailable: If the embedding service fails
            ValueError: If the patch names unknown fields or invalid values
        """
        unknown = set(patch) - set(PATCHABLE_FIELDS)
        if unknown:
            raise ValueError(f'Cannot update semantic knowledge fields: {sorted(unknown)}')

        with self._lock:
            current = self._require(entry_id)
            kind = KnowledgeKind(patch.get('kind', current.kind))
            if 'certainty' in patch:
                _check_certainty(patch['certainty'])
            content_changed = 'content' in patch and patch['content'] != current.content

        embedding = self._embed(patch['content']) if content_changed else None

        with self._lock:
            entry = self._require(entry_id)
            if embedding is not None:
                self.index.insert(entry_id, embedding)
                entry.embedding = embedding
                entry.content = patch['content']

            entry.kind = kind
            if 'category' in patch:
                entry.category = patch['category']
                self._categories.add(entry.category)
            if 'source' in patch:
                entry.source = patch['source']

            now = self.clock()
            base = float(patch['certainty']) if 'certainty' in patch else entry.certainty
            entry.update_count += 1
            entry.certainty = self._decayed_certainty(base, entry, now)
            entry.last_updated_at = now

        logger.debug(f'Updated semantic knowledge {entry_id}; certainty now {entry.certainty:.2f}')
        return entry

    def delete(self, entry_id: str) -> None:
        """Remove an entry together with the conflicts that reference it.

        Raises:
            NotFound: If the entry does not exist
        """
        with self._lock:
            self._require(entry_id)
            self._remove(entry_id)

        logger.debug(f'Deleted semantic knowledge: {entry_id}')

    def search_by_category(self, category: str, limit: int = 10) -> List[SemanticKnowledgeEntry]:
        """Entries in `category`, most certain first."""
        with self._lock:
            entries = [entry for entry in self.store.values() if entry.category == category]
        entries.sort(key=lambda entry: -entry.certainty)
        return entries[:max(0, limit)]

    def semantic_search(self, query_text: str, limit: int = 10) -> List[KnowledgeMatch]:
        """Rank entries by similarity * certainty / 100.

        Args:
            query_text: Natural language query
            limit: Maximum number of results to return

        Returns:
            List of (entry, relevance) tuples, most relevant first
        """
        if not query_text or not query_text.strip() or limit <= 0:
            logger.warning('Empty query or non-positive limit provided for semantic search')
            return []

        query = self._embed(query_text)

        with self._lock:
            similarities = self.index.similarities(query)
            ranked = [(entry, similarities[entry.id] * (entry.certainty / 100.0)) for entry in self.store.values()]

        ranked.sort(key=lambda item: (-item[1], item[0].id))
        return ranked[:limit]

    def get(self, entry_id: str) -> Optional[SemanticKnowledgeEntry]:
        return self.store.get(entry_id)

    def get_conflict(self, conflict_id: str) -> Conflict:
        conflict = self._conflicts.get(conflict_id)
        if conflict is None:
            raise NotFound(f'Conflict not found: {conflict_id}')
        return conflict

    def conflicts(self, unresolved_only: bool = False) -> List[Conflict]:
        with self._lock:
            found = [c for c in self._conflicts.values() if not (unresolved_only and c.resolved)]
        return sorted(found, key=lambda c: (c.created_at, c.id))

    def size(self) -> int:
        return self.store.size()

    def to_snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'entries': [entry.to_dict() for entry in self.store.values()],
                'categories': sorted(self._categories),
                'conflicts': [conflict.to_dict() for conflict in self._conflicts.values()]
            }

    def load_snapshot(self, data: Dict[str, Any]) -> int:
        """Replace the store contents with a snapshot and rebuild the index.

        Invalid entries are skipped, as are conflicts that reference them.

        Returns:
            Number of entries loaded
        """
        entries, index = restore_entries(data.get('entries', []), SemanticKnowledgeEntry.from_dict, ('id', 'content', 'embedding'),
                                         self.clock(), 'semantic')
        known_ids = {entry.id for entry in entries}
        conflicts = []
        for item in data.get('conflicts', []):
            try:
                conflicts.append(Conflict.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f'Skipping unreadable conflict in snapshot: {e}')

        with self._lock:
            self.index = index
            self.store.clear()
            for entry in entries:
                self.store.put(entry.id, entry)
            self._categories = set(data.get('categories', [])) | {entry.category for entry in entries}
            self._conflicts = {c.id: c for c in conflicts if c.first_id in known_ids and c.second_id in known_ids}
            self._enforce_capacity()

        logger.info(f'Loaded {len(entries)} semantic knowledge entries from snapshot')
        return len(entries)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _embed(self, text: str) -> List[float]:
        try:
            return self.embedder.embed(text)
        except EmbeddingUnavailable as e:
            logger.error(f'Embedding failed for semantic knowledge: {e}')
            raise

    def _require(self, entry_id: str) -> SemanticKnowledgeEntry:
        entry = self.store.get(entry_id)
        if entry is None:
            raise NotFound(f'Semantic knowledge not found: {entry_id}')
        return entry

    def _decayed_certainty(self, certainty: float, entry: SemanticKnowledgeEntry, now: float) -> float:
        update_factor = math.exp(-self.config.update_decay * entry.update_count)
        horizon = self.config.certainty_horizon_days * SECONDS_PER_DAY
        time_factor = math.exp(-age_seconds(entry.created_at, now) / horizon)
        return min(100.0, certainty * update_factor * time_factor)

    def _detect_conflicts(self, entry: SemanticKnowledgeEntry, now: float) -> List[Conflict]:
        if entry.certainty <= self.config.conflict_certainty:
            return []

        found = []
        for other_id, similarity in self.index.all_above(entry.embedding, self.config.conflict_similarity, exclude=(entry.id,)):
            other = self.store.get(other_id)
            if other.certainty <= self.config.conflict_certainty:
                continue
            conflict_id = conflict_id_for(entry.id, other_id)
            if conflict_id in self._conflicts:
                continue
            conflict = Conflict(id=conflict_id, first_id=entry.id, second_id=other_id, similarity=similarity, created_at=now)
            self._conflicts[conflict_id] = conflict
            found.append(conflict)
        return found

    def _remove(self, entry_id: str) -> None:
        self.store.delete(entry_id)
        self._forget(entry_id)

    def _forget(self, entry_id: str) -> None:
        self.index.remove(entry_id)
        for conflict_id in [c.id for c in self._conflicts.values() if c.involves(entry_id)]:
            del self._conflicts[conflict_id]

    def _enforce_capacity(self) -> None:
        evicted = self.store.evict_to_capacity(self.config.max_entries, lambda entry: entry.certainty)
        for entry_id, _ in evicted:
            self._forget(entry_id)
        if evicted:
            logger.debug(f'Evicted {len(evicted)} knowledge entries to stay within {self.config.max_entries}')


def _check_certainty(certainty: float) -> float:
    certainty = float(certainty)
    if not 0.0 <= certainty <= 100.0:
        raise ValueError(f'Certainty must be between 0 and 100, got {certainty}')
    return certainty
