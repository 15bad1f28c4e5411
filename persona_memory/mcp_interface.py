"""
MCP Interface Layer using fastmcp to expose the memory engine to agents.
"""
from typing import Any, Dict, List, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

from .errors import MemoryEngineError
from .services.memory_engine import MemoryEngine
from .utils.config import config
from .utils.health_check import get_health_status
from .utils.logging_config import get_logger

logger = get_logger(__name__)


def _fail(action: str, error: Exception) -> ToolError:
    logger.error(f'Memory engine error in MCP {action}: {error}')
    return ToolError(f'{action} failed: {error}')


class MemoryTools:
    """Tool handlers bound to one MemoryEngine. Every handler returns plain data."""

    def __init__(self, engine: MemoryEngine):
        self.engine = engine

    def remember_episode(self,
                         kind: str,
                         context: str,
                         participants: Optional[List[str]] = None,
                         emotions: Optional[List[str]] = None,
                         importance: Optional[float] = None) -> Dict[str, Any]:
        """Record an experience (conversation, action, observation or summary).

        Args:
            kind: Episode kind
            context: What happened
            participants: Identifiers of those involved
            emotions: Emotion labels
            importance: Importance on a 0-10 scale

        Returns:
            The stored memory without its embedding
        """
        try:
            entry = self.engine.episodic.create(kind, context, participants or (), emotions or (), importance)
            return _public(entry.to_dict())
        except (MemoryEngineError, ValueError) as e:
            raise _fail('Remember episode', e)

    def recall_episodes(self, context: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Recall the memories most relevant to a context.

        Args:
            context: Description of the current situation
            limit: Maximum number of memories to return (default: 10)

        Returns:
            List of memories with their relevance score
        """
        try:
            results = self.engine.episodic.retrieve(context, limit)
            return [{**_public(entry.to_dict()), 'relevance': relevance} for entry, relevance in results]
        except MemoryEngineError as e:
            raise _fail('Recall episodes', e)

    def update_episode(self, memory_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Change fields of a memory (kind, context, participants, emotions, importance)."""
        try:
            return _public(self.engine.episodic.update(memory_id, **changes).to_dict())
        except (MemoryEngineError, ValueError, TypeError) as e:
            raise _fail('Update episode', e)

    def forget_episode(self, memory_id: str) -> bool:
        """Delete a memory and its links."""
        try:
            self.engine.episodic.delete(memory_id)
            return True
        except MemoryEngineError as e:
            raise _fail('Forget episode', e)

    def add_knowledge(self,
                      kind: str,
                      content: str,
                      category: str,
                      certainty: Optional[float] = None,
                      source: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Store a fact, belief or rule; conflicts with existing knowledge are recorded."""
        try:
            return _public(self.engine.semantic.create(kind, content, category, certainty, source).to_dict())
        except (MemoryEngineError, ValueError) as e:
            raise _fail('Add knowledge', e)

    def update_knowledge(self, knowledge_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Change fields of a knowledge entry (kind, content, category, certainty, source)."""
        try:
            return _public(self.engine.semantic.update(knowledge_id, **changes).to_dict())
        except (MemoryEngineError, ValueError, TypeError) as e:
            raise _fail('Update knowledge', e)

    def search_knowledge(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Search knowledge by meaning, weighted by certainty."""
        try:
            results = self.engine.semantic.semantic_search(query, limit)
            return [{**_public(entry.to_dict()), 'relevance': relevance} for entry, relevance in results]
        except MemoryEngineError as e:
            raise _fail('Search knowledge', e)

    def knowledge_by_category(self, category: str, limit: int = 10) -> List[Dict[str, Any]]:
        """List the most certain knowledge in a category."""
        return [_public(entry.to_dict()) for entry in self.engine.semantic.search_by_category(category, limit)]

    def list_conflicts(self, unresolved_only: bool = True) -> List[Dict[str, Any]]:
        """List recorded knowledge conflicts."""
        return [conflict.to_dict() for conflict in self.engine.semantic.conflicts(unresolved_only)]

    def resolve_conflict(self, conflict_id: str, decision: str, explanation: str = '') -> Dict[str, Any]:
        """Resolve a conflict: 'keep1' keeps the first entry, 'keep2' the second."""
        try:
            return self.engine.semantic.resolve_conflict(conflict_id, decision, explanation).to_dict()
        except (MemoryEngineError, ValueError) as e:
            raise _fail('Resolve conflict', e)

    def cache_response(self, query: str, response: Any, ttl: Optional[float] = None) -> str:
        """Cache a response for a query; returns the cache key."""
        try:
            return self.engine.cache.cache(query, response, ttl=ttl)
        except (MemoryEngineError, ValueError) as e:
            raise _fail('Cache response', e)

    def lookup_response(self, query: str) -> Optional[Any]:
        """Return a cached response for the query or a similar one, or None."""
        try:
            return self.engine.cache.lookup(query)
        except MemoryEngineError as e:
            raise _fail('Lookup response', e)

    def cache_stats(self) -> Dict[str, Any]:
        """Response cache statistics."""
        return self.engine.cache.stats()

    def health(self) -> Dict[str, Any]:
        """Health status of the embedding service and the stores."""
        return get_health_status(self.engine)


TOOL_NAMES = ('remember_episode', 'recall_episodes', 'update_episode', 'forget_episode', 'add_knowledge',
              'update_knowledge', 'search_knowledge', 'knowledge_by_category', 'list_conflicts', 'resolve_conflict',
              'cache_response', 'lookup_response', 'cache_stats', 'health')


def _public(data: Dict[str, Any]) -> Dict[str, Any]:
    data.pop('embedding', None)
    return data


def create_server(engine: MemoryEngine, name: str = 'Persona Memory') -> FastMCP:
    """Create a FastMCP application whose tools operate on `engine`."""
    mcp = FastMCP(name)
    tools = MemoryTools(engine)
    for tool_name in TOOL_NAMES:
        mcp.tool()(getattr(tools, tool_name))
    logger.info(f'Registered {len(TOOL_NAMES)} MCP tools')
    return mcp


if __name__ == '__main__':
    memory_engine = MemoryEngine.from_config(config)
    if config.snapshot_path:
        try:
            memory_engine.load_snapshot(config.snapshot_path)
        except FileNotFoundError:
            logger.info(f'No snapshot at {config.snapshot_path}; starting empty')
    elif config.backup_dir:
        try:
            memory_engine.recover_from_backup(config.backup_dir)
        except FileNotFoundError as e:
            logger.info(f'{e}; starting empty')
    create_server(memory_engine).run(transport=config.mcp.transport, host=config.mcp.host, port=config.mcp.port)
