"""
Marginalia - Corpus Index

Immutable verse table of one translation with its book alias index.
"""
from corpus.index import CorpusIndex, merge_ranges
from corpus.loader import corpus_from_document, load_corpus

__all__ = ["CorpusIndex", "merge_ranges", "corpus_from_document", "load_corpus"]
