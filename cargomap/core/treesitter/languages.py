"""
Tree-sitter language loaders.

Returns the Tree-sitter Language object for the Rust grammar.
"""

from functools import lru_cache

from tree_sitter import Language

from tree_sitter_rust import language as rust_language


@lru_cache(maxsize=1)
def get_rust_language() -> Language:
    return Language(rust_language())
