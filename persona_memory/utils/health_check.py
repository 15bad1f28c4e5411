"""
Health check utilities for the memory engine.
"""

from typing import TYPE_CHECKING, Any, Dict

from .logging_config import get_logger

if TYPE_CHECKING:
    from ..services.memory_engine import MemoryEngine

logger = get_logger(__name__)


def _embed_model(engine: 'MemoryEngine') -> str:
    """Model id of the engine's embedding service, looking through a single-flight wrapper."""
    service = getattr(engine.embedder, 'service', engine.embedder)
    return getattr(service, 'model_id', type(service).__name__)


def check_health(engine: 'MemoryEngine') -> bool:
    """Check the health of the engine's components.

    Returns:
        True if all components are healthy, False otherwise
    """
    health_status = get_health_status(engine)
    all_healthy = all(status.get('healthy', False) for status in health_status.values())

    if all_healthy:
        logger.info('All memory engine components are healthy')
    else:
        logger.warning('Some memory engine components are unhealthy')

    return all_healthy


def get_health_status(engine: 'MemoryEngine') -> Dict[str, Any]:
    """Get detailed health status of each component.

    Returns:
        Dictionary with health status of each component
    """
    health_status = {}

    check = getattr(engine.embedder, 'health_check', None)
    try:
        embed_healthy = bool(check()) if callable(check) else True
        health_status['embedding'] = {
            'healthy': embed_healthy,
            'service': 'Embedding Service',
            'model': _embed_model(engine)
        }
    except Exception as e:
        logger.error(f'Embedding health check failed: {e}')
        health_status['embedding'] = {'healthy': False, 'service': 'Embedding Service', 'error': str(e)}

    problems = engine.episodic.verify_integrity()
    health_status['episodic'] = {
        'healthy': not problems,
        'entries': engine.episodic.size(),
        'max_entries': engine.episodic.config.max_memories,
        'problems': problems
    }

    health_status['semantic'] = {
        'healthy': engine.semantic.size() <= engine.semantic.config.max_entries,
        'entries': engine.semantic.size(),
        'max_entries': engine.semantic.config.max_entries,
        'unresolved_conflicts': len(engine.semantic.conflicts(unresolved_only=True))
    }

    cache_stats = engine.cache.stats()
    health_status['cache'] = {
        'healthy': cache_stats['total_entries'] <= engine.cache.config.max_size,
        **cache_stats
    }

    return health_status


def get_system_info(engine: 'MemoryEngine') -> Dict[str, Any]:
    """Get system information and configuration.

    Returns:
        Dictionary with system information
    """
    return {
        'service_name': 'persona-memory',
        'version': '1.0.0',
        'configuration': {
            'embed_model': _embed_model(engine),
            'episodic_max_memories': engine.episodic.config.max_memories,
            'semantic_max_entries': engine.semantic.config.max_entries,
            'cache_max_size': engine.cache.config.max_size,
            'cache_ttl_seconds': engine.cache.config.default_ttl_seconds
        },
        'health_status': get_health_status(engine)
    }
