"""
Core data models for the memory stores.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from ..utils.timestamp_utils import to_iso


class EpisodeKind(str, Enum):
    CONVERSATION = 'conversation'
    ACTION = 'action'
    OBSERVATION = 'observation'
    SUMMARY = 'summary'


class KnowledgeKind(str, Enum):
    FACT = 'fact'
    BELIEF = 'belief'
    RULE = 'rule'


class Decision(str, Enum):
    KEEP_FIRST = 'keep1'
    KEEP_SECOND = 'keep2'


@dataclass
class Entry:
    """Fields shared by every stored entry."""
    id: str
    created_at: float  # Unix seconds, immutable
    embedding: List[float]


@dataclass
class EpisodicMemoryEntry(Entry):
    """A remembered experience.

    `importance` is the base value on a 0-10 scale. The effective value is
    `importance * decay_factor`, recomputed from age and access count.
    """
    kind: EpisodeKind = EpisodeKind.CONVERSATION
    context: str = ''
    participants: Set[str] = field(default_factory=set)
    emotions: Set[str] = field(default_factory=set)
    importance: float = 5.0
    related_ids: Set[str] = field(default_factory=set)
    access_count: int = 0
    last_accessed_at: float = 0.0
    decay_factor: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at,
            'created_at_iso': to_iso(self.created_at),
            'embedding': list(self.embedding),
            'kind': self.kind.value,
            'context': self.context,
            'participants': sorted(self.participants),
            'emotions': sorted(self.emotions),
            'importance': self.importance,
            'related_ids': sorted(self.related_ids),
            'access_count': self.access_count,
            'last_accessed_at': self.last_accessed_at,
            'decay_factor': self.decay_factor
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'EpisodicMemoryEntry':
        return cls(id=d['id'],
                   created_at=float(d['created_at']),
                   embedding=[float(v) for v in d['embedding']],
                   kind=EpisodeKind(d['kind']),
                   context=d.get('context', ''),
                   participants=set(d.get('participants', [])),
                   emotions=set(d.get('emotions', [])),
                   importance=float(d.get('importance', 5.0)),
                   related_ids=set(d.get('related_ids', [])),
                   access_count=int(d.get('access_count', 0)),
                   last_accessed_at=float(d.get('last_accessed_at', d['created_at'])),
                   decay_factor=float(d.get('decay_factor', 1.0)))


def embedding_text_for(kind: EpisodeKind, context: str, participants) -> str:
    """Text an episodic memory is embedded from: kind, context, participants."""
    parts = [kind.value, context] + sorted(participants)
    return ' '.join(part for part in parts if part)


@dataclass
class SemanticKnowledgeEntry(Entry):
    """A fact, belief or rule held with a certainty between 0 and 100."""
    kind: KnowledgeKind = KnowledgeKind.FACT
    content: str = ''
    category: str = 'general'
    certainty: float = 100.0
    source: Optional[Dict[str, Any]] = None
    update_count: int = 0
    last_updated_at: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at,
            'created_at_iso': to_iso(self.created_at),
            'embedding': list(self.embedding),
            'kind': self.kind.value,
            'content': self.content,
            'category': self.category,
            'certainty': self.certainty,
            'source': self.source,
            'update_count': self.update_count,
            'last_updated_at': self.last_updated_at
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'SemanticKnowledgeEntry':
        return cls(id=d['id'],
                   created_at=float(d['created_at']),
                   embedding=[float(v) for v in d['embedding']],
                   kind=KnowledgeKind(d['kind']),
                   content=d.get('content', ''),
                   category=d.get('category', 'general'),
                   certainty=float(d.get('certainty', 100.0)),
                   source=d.get('source'),
                   update_count=int(d.get('update_count', 0)),
                   last_updated_at=float(d.get('last_updated_at', d['created_at'])))


@dataclass
class ConflictResolution:
    decision: Decision
    explanation: str
    timestamp: float


@dataclass
class Conflict:
    """Two highly similar entries that are both held with high certainty.

    `first_id` is the entry whose creation detected the conflict and
    `second_id` the entry that already existed; `keep1` keeps the first.
    """
    id: str
    first_id: str
    second_id: str
    similarity: float
    created_at: float
    resolution: Optional[ConflictResolution] = None

    @property
    def resolved(self) -> bool:
        return self.resolution is not None

    def involves(self, entry_id: str) -> bool:
        return entry_id in (self.first_id, self.second_id)

    def to_dict(self) -> Dict[str, Any]:
        resolution = None
        if self.resolution is not None:
            resolution = {
                'decision': self.resolution.decision.value,
                'explanation': self.resolution.explanation,
                'timestamp': self.resolution.timestamp
            }
        return {
            'id': self.id,
            'first_id': self.first_id,
            'second_id': self.second_id,
            'similarity': self.similarity,
            'created_at': self.created_at,
            'resolution': resolution
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'Conflict':
        resolution = None
        if d.get('resolution'):
            r = d['resolution']
            resolution = ConflictResolution(decision=Decision(r['decision']),
                                            explanation=r.get('explanation', ''),
                                            timestamp=float(r['timestamp']))
        return cls(id=d['id'],
                   first_id=d['first_id'],
                   second_id=d['second_id'],
                   similarity=float(d['similarity']),
                   created_at=float(d['created_at']),
                   resolution=resolution)


def conflict_id_for(a: str, b: str) -> str:
    """Identifier of the unordered pair {a, b}."""
    low, high = sorted((a, b))
    return f'{low}:{high}'


@dataclass
class CacheEntry(Entry):
    """A cached LLM response. `id` is the exact key derived from the query."""
    query: str = ''
    response: Any = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    ttl: float = 24 * 60 * 60
    usage_count: int = 0
    semantic_key: str = ''

    def is_valid(self, now: float) -> bool:
        return now - self.created_at < self.ttl

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at,
            'embedding': list(self.embedding),
            'query': self.query,
            'response': self.response,
            'metadata': dict(self.metadata),
            'ttl': self.ttl,
            'usage_count': self.usage_count,
            'semantic_key': self.semantic_key
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> 'CacheEntry':
        return cls(id=d['id'],
                   created_at=float(d['created_at']),
                   embedding=[float(v) for v in d['embedding']],
                   query=d.get('query', ''),
                   response=d.get('response'),
                   metadata=dict(d.get('metadata', {})),
                   ttl=float(d.get('ttl', 24 * 60 * 60)),
                   usage_count=int(d.get('usage_count', 0)),
                   semantic_key=d.get('semantic_key', ''))
