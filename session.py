"""
Marginalia - Study Session

One explicit context per open document: the configuration value, the corpus,
and every component built from them. Nothing here reads global state, so two
sessions (or two tests) never see each other's layers or collections.

Usage:
    config = Config()
    async with StudySession(config, load_corpus(path)) as session:
        session.highlight("John 3:16", color="green")
        session.note("John 3:16-17", "The heart of the gospel")
        for match in session.search("so loved"):
            ...
    # state was flushed on exit
"""
from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional

from annotations.commands import CreateAnnotationCommand
from annotations.store import AnnotationStore
from config import Config
from core.commands import CommandResult
from core.errors import CorpusLoadError, ErrorContext, MarginaliaError, PersistenceError
from corpus.index import CorpusIndex
from corpus.loader import load_corpus
from domain.entities import (
    AddressRange,
    Annotation,
    BookmarkPayload,
    HighlightPayload,
    NoteMatch,
    NotePayload,
    Payload,
    SearchMatch,
)
from library.manager import CollectionManager, ImportReport
from observability.logging import LogContext, get_logger
from persistence.backends import JsonFileBackend, StorageBackend
from persistence.save_queue import SaveCoalescer
from persistence.state import SessionState
from references.parser import ReferenceParser
from search.engine import SearchEngine, SearchScope

logger = get_logger(__name__)


class StudySession:
    """
    Wires config, corpus, parser, annotation store, collection manager,
    search engine and save queue for one document.

    Every committed edit in the store or the collection manager requests a
    save; requests are coalesced so at most one write is in flight and the
    last committed state is always the last one written.
    """

    def __init__(
        self,
        config: Config,
        corpus: CorpusIndex,
        backend: Optional[StorageBackend] = None,
    ):
        self.config = config
        self.corpus = corpus
        self.parser = ReferenceParser(corpus)
        self.store = AnnotationStore(config.annotations, corpus)
        self.collections = CollectionManager(self.parser)
        self.search_engine = SearchEngine(corpus, config.search)
        self.backend = backend or JsonFileBackend(config.persistence.state_path)
        self.saver = SaveCoalescer(
            self.backend,
            source=self.state_document,
            debounce_seconds=config.persistence.save_debounce_seconds,
        )
        self._unsubscribers = [
            self.store.subscribe(lambda result, snapshot: self.saver.request()),
            self.collections.subscribe(lambda result, state: self.saver.request()),
        ]
        self._closed = False

    @classmethod
    def from_config(cls, config: Config, backend: Optional[StorageBackend] = None) -> "StudySession":
        """
        Build a session from the corpus file named in the configuration.

        Raises:
            CorpusLoadError: no corpus path configured, or the file is invalid
        """
        path = config.corpus.corpus_path
        if path is None:
            raise CorpusLoadError(
                "No corpus file configured",
                suggestions=["set MARGINALIA_CORPUS to a translation JSON file"],
            )
        corpus = load_corpus(path)
        if corpus.translation != config.corpus.active_translation:
            logger.warning(
                "Corpus translation differs from configured translation",
                corpus=corpus.translation,
                configured=config.corpus.active_translation,
            )
        return cls(config, corpus, backend)

    async def __aenter__(self) -> "StudySession":
        await self.load()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def state(self) -> SessionState:
        return SessionState(
            translation=self.corpus.translation,
            annotations=self.store.snapshot(),
            collections=self.collections.snapshot(),
        )

    def state_document(self) -> Dict[str, Any]:
        """The current committed state as a JSON-ready document."""
        return self.state().to_document()

    async def load(self) -> bool:
        """
        Restore saved state from the backend.

        Returns:
            False when the backend holds nothing yet

        Raises:
            PersistenceError: the saved document is unreadable or does not
                fit the loaded corpus
        """
        with LogContext(translation=self.corpus.translation):
            return await self._load()

    async def _load(self) -> bool:
        document = await self.backend.read()
        if document is None:
            logger.info("No saved session state")
            return False

        state = SessionState.from_document(document)
        if state.translation != self.corpus.translation:
            logger.warning(
                "Saved session was made with another translation",
                saved=state.translation,
                active=self.corpus.translation,
            )
        try:
            self.store.restore(state.annotations)
        except MarginaliaError as e:
            raise PersistenceError(
                f"Saved annotations do not fit the {self.corpus.translation} corpus: {e.message}",
                context=ErrorContext.from_current_span("restore", "session", metadata={"saved": state.translation}),
                cause=e,
                suggestions=["load the translation the session was saved with"],
            ) from e
        self.collections.restore(state.collections)
        logger.info(
            "Session loaded",
            annotations=len(self.store),
            collections=len(self.collections),
        )
        return True

    async def save(self) -> None:
        """Request a save of the current state and wait until it is written."""
        self.saver.request()
        await self.saver.flush()

    async def close(self) -> None:
        """Write anything pending and detach from the components."""
        if self._closed:
            return
        try:
            await self.saver.flush()
        finally:
            for unsubscribe in self._unsubscribers:
                unsubscribe()
            self._closed = True
            logger.info("Session closed", writes=self.saver.writes, requests=self.saver.requests)

    # -------------------------------------------------------------------------
    # Annotations
    # -------------------------------------------------------------------------

    def _annotate(self, reference: str, payload: Payload, layer_id: Optional[str]) -> CommandResult:
        return self.store.execute(CreateAnnotationCommand(
            range=self.parser.parse_one(reference),
            payload=payload,
            layer_id=layer_id,
        ))

    def highlight(self, reference: str, color: str = "yellow", layer_id: Optional[str] = None) -> CommandResult:
        """Highlight a single reference, e.g. ``"John 3:16-18"``."""
        return self._annotate(reference, HighlightPayload(color=color), layer_id)

    def note(self, reference: str, text: str, layer_id: Optional[str] = None) -> CommandResult:
        return self._annotate(reference, NotePayload(text=text), layer_id)

    def bookmark(self, reference: str, layer_id: Optional[str] = None) -> CommandResult:
        return self._annotate(reference, BookmarkPayload(), layer_id)

    def annotations_at(self, reference: str, visible_only: bool = False) -> List[Annotation]:
        """Annotations overlapping any range of ``reference``, in store order."""
        snapshot = self.store.snapshot()
        seen: Dict[str, Annotation] = {}
        for parsed in self.parser.parse(reference):
            if visible_only:
                found = snapshot.visible_annotations_overlapping(parsed)
            else:
                found = snapshot.annotations_overlapping(parsed)
            for annotation in found:
                seen.setdefault(annotation.id, annotation)
        return list(seen.values())

    # -------------------------------------------------------------------------
    # Search and collections
    # -------------------------------------------------------------------------

    def scope(self, reference: Optional[str]) -> SearchScope:
        """A search scope from a reference string; None means the whole corpus."""
        if reference is None or not reference.strip():
            return SearchScope.corpus()
        ranges: List[AddressRange] = self.parser.parse(reference)
        return SearchScope.ranges(ranges)

    def search(self, query: str, within: Optional[str] = None, **options) -> Iterator[SearchMatch]:
        return self.search_engine.search(query, self.scope(within), **options)

    def search_notes(self, query: str, within: Optional[str] = None, **options) -> List[NoteMatch]:
        scope = self.scope(within) if within else None
        return self.search_engine.search_notes(query, self.store.snapshot(), scope, **options)

    def import_collection(self, data: Any) -> ImportReport:
        with LogContext(translation=self.corpus.translation):
            return self.collections.import_collection(data)
