"""
Marginalia - Search

Literal, escaped matching over verse and note text. Results are spans; the
renderer in search.highlight escapes text before adding markup.
"""
from search.engine import CompiledQuery, SearchEngine, SearchMode, SearchScope
from search.highlight import normalize_spans, render_highlighted, segments

__all__ = [
    "SearchEngine",
    "SearchMode",
    "SearchScope",
    "CompiledQuery",
    "normalize_spans",
    "segments",
    "render_highlighted",
]
