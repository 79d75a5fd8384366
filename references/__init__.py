"""
Marginalia - Reference Parsing and Formatting
"""
from references.formatting import display, format_range, format_ranges
from references.parser import ReferenceParser

__all__ = ["ReferenceParser", "display", "format_range", "format_ranges"]
