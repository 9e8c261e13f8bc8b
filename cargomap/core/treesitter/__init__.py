"""
Tree-sitter integration for cargomap.

Provides the Rust grammar, a cached parser and the item extraction adapter.
"""

from .parser import SourceParseFailure, get_parser, parse_items, parse_source
from .languages import get_rust_language

__all__ = [
    "SourceParseFailure",
    "parse_source",
    "parse_items",
    "get_parser",
    "get_rust_language",
]
