"""
Container wiring the three memory stores to one embedding service.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..utils.bedrock_embed import BedrockEmbed
from ..utils.config import AppConfig
from ..utils.config import config as default_config
from ..utils.embedding import EmbeddingService, SingleFlightEmbedder
from ..utils.json_utils import latest_backup, read_snapshot, write_backup, write_snapshot
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import Clock, now_seconds
from .episodic_memory import EpisodicMemoryStore
from .response_cache import ResponseCache
from .semantic_knowledge import SemanticKnowledgeStore

logger = get_logger(__name__)


@dataclass
class MemoryEngine:
    """The stores owned by one persona or simulation."""
    embedder: EmbeddingService
    episodic: EpisodicMemoryStore
    semantic: SemanticKnowledgeStore
    cache: ResponseCache
    backup_keep: int = 5

    @classmethod
    def from_config(cls,
                    app_config: Optional[AppConfig] = None,
                    embedder: Optional[EmbeddingService] = None,
                    clock: Clock = now_seconds) -> 'MemoryEngine':
        """
        Build the stores from configuration.

        Args:
            app_config: AppConfig instance, uses default if None
            embedder: Embedding service; a single-flight Bedrock client if None
            clock: Source of the current time shared by all stores

        Returns:
            A MemoryEngine with empty stores
        """
        app_config = app_config or default_config
        if embedder is None:
            embedder = SingleFlightEmbedder(BedrockEmbed(app_config.bedrock_embed))

        engine = cls(embedder=embedder,
                     episodic=EpisodicMemoryStore(embedder, app_config.episodic, clock),
                     semantic=SemanticKnowledgeStore(embedder, app_config.semantic, clock),
                     cache=ResponseCache(embedder, app_config.cache, clock),
                     backup_keep=app_config.backup_keep)

        logger.info('Initialized MemoryEngine')
        return engine

    def save_snapshot(self, path: Union[str, Path]) -> Path:
        """Write all three stores, embeddings included, to a JSON file."""
        path = write_snapshot(path, self._payload())
        logger.info(f'Saved memory snapshot to {path}')
        return path

    def load_snapshot(self, path: Union[str, Path]) -> None:
        """Replace all three stores with the contents of a snapshot file."""
        document = read_snapshot(path)
        self._restore(document)
        logger.info(f'Loaded memory snapshot from {path}')

    def save_backup(self, directory: Union[str, Path]) -> Path:
        """Write a timestamped backup into `directory`, keeping the newest `backup_keep` files."""
        path = write_backup(directory, self._payload(), keep=self.backup_keep)
        logger.info(f'Saved memory backup to {path}')
        return path

    def recover_from_backup(self, directory: Union[str, Path]) -> Path:
        """Load the most recent backup in `directory`.

        Entries that fail validation are skipped by each store; the rest are
        restored.

        Returns:
            Path of the backup that was loaded

        Raises:
            FileNotFoundError: If the directory holds no backup
        """
        path = latest_backup(directory)
        if path is None:
            raise FileNotFoundError(f'No memory backup found in {directory}')

        self._restore(read_snapshot(path))
        logger.info(f'Recovered memory from backup {path}')
        return path

    def _payload(self) -> Dict[str, Any]:
        return {
            'episodic': self.episodic.to_snapshot(),
            'semantic': self.semantic.to_snapshot(),
            'cache': self.cache.to_snapshot()
        }

    def _restore(self, document: Dict[str, Any]) -> None:
        self.episodic.load_snapshot(document.get('episodic', {}))
        self.semantic.load_snapshot(document.get('semantic', {}))
        self.cache.load_snapshot(document.get('cache', {}))
