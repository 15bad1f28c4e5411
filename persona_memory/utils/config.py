"""
Configuration management for the embedding service and the memory stores.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass
class BedrockEmbedConfig:
    """Configuration for Amazon Bedrock Embed service."""
    region: str
    model_id: str
    dimension: int
    retry_attempts: int
    retry_delay: float


@dataclass
class EpisodicConfig:
    """Configuration for the episodic memory store."""
    max_memories: int = 1000
    decay_rate: float = 0.1
    access_decay: float = 0.1
    link_threshold: float = 0.7
    default_importance: float = 5.0


@dataclass
class SemanticConfig:
    """Configuration for the semantic knowledge store."""
    max_entries: int = 1000
    conflict_similarity: float = 0.8
    conflict_certainty: float = 80.0
    default_certainty: float = 100.0
    update_decay: float = 0.1
    certainty_horizon_days: float = 30.0


@dataclass
class CacheConfig:
    """Configuration for the response cache."""
    max_size: int = 1000
    default_ttl_seconds: float = 24 * 60 * 60
    similarity_threshold: float = 0.8
    usage_decay: float = 0.1


@dataclass
class MCPConfig:
    """Configuration for MCP interface."""
    transport: str
    host: str
    port: int


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: str
    log_level: str
    bedrock_embed: BedrockEmbedConfig
    episodic: EpisodicConfig
    semantic: SemanticConfig
    cache: CacheConfig
    mcp: MCPConfig
    snapshot_path: str = ''
    backup_dir: str = ''
    backup_keep: int = 5


def load_config() -> AppConfig:
    """Load configuration from environment variables with defaults."""
    environment = os.getenv('ENVIRONMENT', 'development')

    # Bedrock Embed configuration
    bedrock_embed_config = BedrockEmbedConfig(region=os.getenv('BEDROCK_EMBED_AWS_REGION', 'us-east-1'),
                                              model_id=os.getenv('BEDROCK_EMBED_MODEL_ID', 'amazon.titan-embed-text-v2:0'),
                                              dimension=int(os.getenv('BEDROCK_EMBED_DIMENSION', '1024')),
                                              retry_attempts=int(os.getenv('BEDROCK_EMBED_RETRY_ATTEMPTS', '3')),
                                              retry_delay=float(os.getenv('BEDROCK_EMBED_RETRY_DELAY', '1.0')))

    # Episodic memory configuration
    episodic_config = EpisodicConfig(max_memories=int(os.getenv('EPISODIC_MAX_MEMORIES', '1000')),
                                     decay_rate=float(os.getenv('EPISODIC_DECAY_RATE', '0.1')),
                                     access_decay=float(os.getenv('EPISODIC_ACCESS_DECAY', '0.1')),
                                     link_threshold=float(os.getenv('EPISODIC_LINK_THRESHOLD', '0.7')),
                                     default_importance=float(os.getenv('EPISODIC_DEFAULT_IMPORTANCE', '5')))

    # Semantic knowledge configuration
    semantic_config = SemanticConfig(max_entries=int(os.getenv('SEMANTIC_MAX_ENTRIES', '1000')),
                                     conflict_similarity=float(os.getenv('SEMANTIC_CONFLICT_SIMILARITY', '0.8')),
                                     conflict_certainty=float(os.getenv('SEMANTIC_CONFLICT_CERTAINTY', '80')),
                                     default_certainty=float(os.getenv('SEMANTIC_DEFAULT_CERTAINTY', '100')),
                                     update_decay=float(os.getenv('SEMANTIC_UPDATE_DECAY', '0.1')),
                                     certainty_horizon_days=float(os.getenv('SEMANTIC_CERTAINTY_HORIZON_DAYS', '30')))

    # Response cache configuration
    cache_config = CacheConfig(max_size=int(os.getenv('CACHE_MAX_SIZE', '1000')),
                               default_ttl_seconds=float(os.getenv('CACHE_DEFAULT_TTL_SECONDS', '86400')),
                               similarity_threshold=float(os.getenv('CACHE_SIMILARITY_THRESHOLD', '0.8')),
                               usage_decay=float(os.getenv('CACHE_USAGE_DECAY', '0.1')))

    # MCP configuration
    mcp_config = MCPConfig(transport=os.getenv('MCP_TRANSPORT', 'sse'),
                           host=os.getenv('MCP_HOST', '127.0.0.1'),
                           port=int(os.getenv('MCP_PORT', '8000')))

    return AppConfig(environment=environment,
                     log_level=os.getenv('LOG_LEVEL', 'INFO'),
                     bedrock_embed=bedrock_embed_config,
                     episodic=episodic_config,
                     semantic=semantic_config,
                     cache=cache_config,
                     mcp=mcp_config,
                     snapshot_path=os.getenv('MEMORY_SNAPSHOT_PATH', ''),
                     backup_dir=os.getenv('MEMORY_BACKUP_DIR', ''),
                     backup_keep=int(os.getenv('MEMORY_BACKUP_KEEP', '5')))


# Global configuration instance
config = load_config()
