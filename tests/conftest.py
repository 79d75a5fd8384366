"""
Marginalia - Test Configuration

Pytest fixtures and configuration for all tests.
"""
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator

import pytest

from annotations.store import AnnotationStore
from config import AnnotationConfig, Config, LoggingConfig, OverlapPolicy, SearchConfig
from corpus.index import CorpusIndex
from library.manager import CollectionManager
from observability.logging import setup_logging
from references.parser import ReferenceParser
from search.engine import SearchEngine
from tests.sample_corpus import build_sample_corpus, sample_document


@pytest.fixture(scope="session", autouse=True)
def _logging() -> None:
    """Route structlog through stdlib logging so pytest captures it."""
    setup_logging(LoggingConfig(level="WARNING", json_format=False), environment="testing")


class StepClock:
    """Deterministic clock: every call is one second after the previous."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


def sequential_ids(prefix: str = "id") -> Callable[[], str]:
    counter = iter(range(1, 1_000_000))
    return lambda: f"{prefix}-{next(counter)}"


@pytest.fixture(scope="session")
def corpus() -> CorpusIndex:
    """Small immutable KJV excerpt."""
    return build_sample_corpus()


@pytest.fixture
def corpus_document() -> Dict[str, Any]:
    return sample_document()


@pytest.fixture
def corpus_file(tmp_path: Path, corpus_document: Dict[str, Any]) -> Path:
    path = tmp_path / "kjv.json"
    path.write_text(json.dumps(corpus_document), encoding="utf-8")
    return path


@pytest.fixture
def parser(corpus: CorpusIndex) -> ReferenceParser:
    return ReferenceParser(corpus)


@pytest.fixture
def annotation_config() -> AnnotationConfig:
    return AnnotationConfig(
        default_layer_id="default",
        default_layer_name="Default",
        default_layer_color="yellow",
        overlap_policy=OverlapPolicy.REJECT,
    )


@pytest.fixture
def store(annotation_config: AnnotationConfig, corpus: CorpusIndex) -> AnnotationStore:
    return AnnotationStore(
        annotation_config,
        corpus=corpus,
        clock=StepClock(),
        id_factory=sequential_ids("ann"),
    )


@pytest.fixture
def merge_store(annotation_config: AnnotationConfig, corpus: CorpusIndex) -> AnnotationStore:
    annotation_config.overlap_policy = OverlapPolicy.MERGE
    return AnnotationStore(
        annotation_config,
        corpus=corpus,
        clock=StepClock(),
        id_factory=sequential_ids("ann"),
    )


@pytest.fixture
def manager(parser: ReferenceParser) -> CollectionManager:
    return CollectionManager(parser, id_factory=sequential_ids("col"))


@pytest.fixture
def search_config() -> SearchConfig:
    return SearchConfig(max_query_length=64, default_limit=None, case_sensitive=False)


@pytest.fixture
def engine(corpus: CorpusIndex, search_config: SearchConfig) -> SearchEngine:
    return SearchEngine(corpus, search_config)


@pytest.fixture
def config(tmp_path: Path, corpus_file: Path) -> Iterator[Config]:
    """Session configuration isolated in a temporary directory."""
    config = Config()
    config.corpus.corpus_path = corpus_file
    config.corpus.active_translation = "KJV"
    config.persistence.state_path = tmp_path / "state.json"
    config.persistence.save_debounce_seconds = 0.0
    config.annotations.overlap_policy = OverlapPolicy.REJECT
    config.search.max_query_length = 256
    config.search.default_limit = None
    config.search.case_sensitive = False
    yield config
