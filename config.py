"""
Marginalia - Configuration

Centralized configuration for a study session.
Uses environment variables with sensible defaults.

Components never read this module's singleton themselves: a Config value is
built once (by the CLI or the embedding application) and handed to each
component explicitly, so independent sessions and tests never share state.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional
from enum import Enum
import logging

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Environment(Enum):
    """Deployment environments."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class OverlapPolicy(str, Enum):
    """What happens when a new annotation overlaps one of the same kind on the same layer."""
    REJECT = "reject"
    MERGE = "merge"


class LayerDeletionPolicy(str, Enum):
    """What happens to the annotations of a deleted layer."""
    REASSIGN = "reassign"  # move them to the default layer
    CASCADE = "cascade"    # delete them, only with explicit confirmation


# The one place the layer deletion behaviour is decided.
LAYER_DELETION_POLICY = LayerDeletionPolicy.REASSIGN

DEFAULT_LAYER_ID = "default"


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    json_format: bool = field(default_factory=lambda: os.getenv("LOG_FORMAT", "console").lower() == "json")
    log_to_file: bool = field(default_factory=lambda: os.getenv("LOG_TO_FILE", "false").lower() == "true")
    log_file_path: Path = field(default_factory=lambda: Path(os.getenv("LOG_FILE", "./logs/marginalia.log")))
    max_file_size: int = field(default_factory=lambda: int(os.getenv("LOG_MAX_SIZE", "10485760")))  # 10MB
    backup_count: int = field(default_factory=lambda: int(os.getenv("LOG_BACKUP_COUNT", "5")))


@dataclass
class CorpusConfig:
    """Corpus (translation) configuration."""
    active_translation: str = field(default_factory=lambda: os.getenv("MARGINALIA_TRANSLATION", "KJV"))
    corpus_path: Optional[Path] = field(
        default_factory=lambda: Path(os.environ["MARGINALIA_CORPUS"]) if os.getenv("MARGINALIA_CORPUS") else None
    )


@dataclass
class AnnotationConfig:
    """Annotation store configuration."""
    default_layer_id: str = field(default_factory=lambda: os.getenv("MARGINALIA_DEFAULT_LAYER", DEFAULT_LAYER_ID))
    default_layer_name: str = field(default_factory=lambda: os.getenv("MARGINALIA_DEFAULT_LAYER_NAME", "Default"))
    default_layer_color: str = field(default_factory=lambda: os.getenv("MARGINALIA_DEFAULT_LAYER_COLOR", "yellow"))
    overlap_policy: OverlapPolicy = field(
        default_factory=lambda: OverlapPolicy(os.getenv("MARGINALIA_OVERLAP_POLICY", OverlapPolicy.REJECT.value))
    )
    layer_deletion_policy: LayerDeletionPolicy = LAYER_DELETION_POLICY


@dataclass
class SearchConfig:
    """Search engine configuration."""
    max_query_length: int = field(default_factory=lambda: int(os.getenv("SEARCH_MAX_QUERY_LENGTH", "256")))
    default_limit: Optional[int] = field(
        default_factory=lambda: int(os.environ["SEARCH_DEFAULT_LIMIT"]) if os.getenv("SEARCH_DEFAULT_LIMIT") else None
    )
    case_sensitive: bool = field(default_factory=lambda: os.getenv("SEARCH_CASE_SENSITIVE", "false").lower() == "true")


@dataclass
class PersistenceConfig:
    """Persistence (save queue) configuration."""
    state_path: Path = field(default_factory=lambda: Path(os.getenv("MARGINALIA_STATE", "./marginalia-state.json")))
    save_debounce_seconds: float = field(default_factory=lambda: float(os.getenv("SAVE_DEBOUNCE_SECONDS", "0.5")))


@dataclass
class Config:
    """Main configuration class combining all sub-configs."""
    env: Environment = field(default_factory=lambda: Environment(os.getenv("ENVIRONMENT", "development")))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    corpus: CorpusConfig = field(default_factory=CorpusConfig)
    annotations: AnnotationConfig = field(default_factory=AnnotationConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.env == Environment.PRODUCTION

    def setup_logging(self) -> None:
        """Setup structured logging based on configuration."""
        from observability.logging import setup_logging

        setup_logging(self.logging, environment=self.env.value)
        if self.debug:
            logging.getLogger().setLevel(logging.DEBUG)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "env": self.env.value,
            "debug": self.debug,
            "corpus": {
                "active_translation": self.corpus.active_translation,
                "corpus_path": str(self.corpus.corpus_path) if self.corpus.corpus_path else None,
            },
            "annotations": {
                "default_layer_id": self.annotations.default_layer_id,
                "overlap_policy": self.annotations.overlap_policy.value,
                "layer_deletion_policy": self.annotations.layer_deletion_policy.value,
            },
            "search": {
                "max_query_length": self.search.max_query_length,
                "default_limit": self.search.default_limit,
                "case_sensitive": self.search.case_sensitive,
            },
            "persistence": {
                "state_path": str(self.persistence.state_path),
                "save_debounce_seconds": self.persistence.save_debounce_seconds,
            },
        }


# Singleton configuration instance (CLI entry point only)
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create configuration singleton."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reload_config() -> Config:
    """Reload configuration from environment."""
    global _config
    load_dotenv(override=True)
    _config = Config()
    return _config
