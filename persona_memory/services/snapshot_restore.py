"""
Validation of snapshot entries while a store is being restored.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from ..errors import DegenerateVector, DimensionMismatch
from ..utils.logging_config import get_logger
from .vector_index import VectorIndex

logger = get_logger(__name__)

E = TypeVar('E')


def restore_entries(items: Iterable[Dict[str, Any]],
                    parse: Callable[[Dict[str, Any]], E],
                    required: Sequence[str],
                    now: float,
                    label: str,
                    index_key: Optional[Callable[[E], str]] = None) -> Tuple[List[E], VectorIndex]:
    """Parse snapshot items into entries and index their embeddings.

    Items that cannot be parsed, lack a required field, carry a timestamp
    that is not positive or lies in the future, repeat an earlier id, or hold
    an embedding the index rejects are skipped with a warning. The remaining
    entries are returned in snapshot order.

    Args:
        items: Serialized entries
        parse: Builds an entry from one item (usually `from_dict`)
        required: Entry attributes that must be truthy
        now: Reference time for the timestamp check
        label: Store name used in log messages
        index_key: Key the embedding is indexed under (default: entry id)

    Returns:
        Tuple of (valid entries, VectorIndex holding their embeddings)
    """
    index = VectorIndex()
    entries = []
    seen = set()

    for position, item in enumerate(items):
        try:
            entry = parse(item)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f'Skipping unreadable {label} snapshot entry #{position}: {e}')
            continue

        missing = [name for name in required if not getattr(entry, name, None)]
        if missing:
            logger.warning(f'Skipping {label} snapshot entry #{position}: missing {", ".join(missing)}')
            continue
        if not 0 < entry.created_at <= now:
            logger.warning(f'Skipping {label} snapshot entry {entry.id}: invalid timestamp {entry.created_at}')
            continue
        if entry.id in seen:
            logger.warning(f'Skipping {label} snapshot entry {entry.id}: duplicate id')
            continue

        try:
            index.insert(index_key(entry) if index_key else entry.id, entry.embedding)
        except (DimensionMismatch, DegenerateVector) as e:
            logger.warning(f'Skipping {label} snapshot entry {entry.id}: {e}')
            continue

        seen.add(entry.id)
        entries.append(entry)

    return entries, index
