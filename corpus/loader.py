"""
Marginalia - Corpus Loader

Turns a translation document into a CorpusIndex. Downloading and parsing
translations is done elsewhere; this module only accepts the normalized
JSON form:

    {
        "translation": "KJV",
        "books": [
            {"id": "JHN", "aliases": ["Jhn"], "chapters": {"3": {"16": "For God so loved ..."}}}
        ]
    }
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.errors import CorpusLoadError
from corpus.index import CorpusIndex, VerseRow
from domain.canon import BookId
from observability.logging import get_logger

logger = get_logger(__name__)


class CorpusBook(BaseModel):
    """One book of a translation document."""

    model_config = ConfigDict(extra="forbid")

    id: BookId = Field(..., description="Book code (e.g., GEN, JHN, 1JN)")
    aliases: List[str] = Field(default_factory=list)
    chapters: Dict[int, Dict[int, str]] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def normalize_code(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("chapters")
    @classmethod
    def positive_numbers(cls, v: Dict[int, Dict[int, str]]) -> Dict[int, Dict[int, str]]:
        for chapter, verses in v.items():
            if chapter < 1:
                raise ValueError(f"chapter numbers start at 1, got {chapter}")
            for verse in verses:
                if verse < 1:
                    raise ValueError(f"verse numbers start at 1, got {chapter}:{verse}")
        return v


class CorpusDocument(BaseModel):
    """A complete translation document."""

    model_config = ConfigDict(extra="allow")

    translation: str = Field(..., min_length=1)
    books: List[CorpusBook] = Field(default_factory=list)

    def rows(self) -> Iterator[VerseRow]:
        for book in self.books:
            for chapter, verses in book.chapters.items():
                for verse, text in verses.items():
                    yield book.id, chapter, verse, text

    def aliases(self) -> Dict[BookId, List[str]]:
        return {book.id: list(book.aliases) for book in self.books if book.aliases}


def _problems(error: ValidationError) -> List[str]:
    return [
        f"{'.'.join(str(part) for part in item['loc']) or '<root>'}: {item['msg']}"
        for item in error.errors()
    ]


def corpus_from_document(data: Mapping[str, Any]) -> CorpusIndex:
    """
    Validate a parsed translation document and build its index.

    Raises:
        CorpusLoadError: the document does not match the expected shape
    """
    try:
        document = CorpusDocument.model_validate(data)
    except ValidationError as e:
        raise CorpusLoadError(
            "Corpus document is invalid",
            problems=_problems(e),
            cause=e,
        ) from e
    return CorpusIndex.from_rows(document.translation, document.rows(), document.aliases())


def load_corpus(path: Union[str, Path]) -> CorpusIndex:
    """
    Load a translation document from disk.

    Raises:
        CorpusLoadError: unreadable file, invalid JSON or invalid document
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise CorpusLoadError(f"Cannot read corpus file {path}", path=str(path), cause=e) from e
    except json.JSONDecodeError as e:
        raise CorpusLoadError(
            f"Corpus file {path} is not valid JSON",
            path=str(path),
            problems=[f"line {e.lineno} column {e.colno}: {e.msg}"],
            cause=e,
        ) from e

    try:
        index = corpus_from_document(data)
    except CorpusLoadError as e:
        e.path = str(path)
        raise

    logger.info(
        "Corpus loaded",
        path=str(path),
        translation=index.translation,
        books=len(index.books),
        verses=len(index),
    )
    return index
