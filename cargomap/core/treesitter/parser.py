"""
Tree-sitter parser facade with a cached parser instance.

Tree-sitter is error tolerant and never raises on malformed input; callers that
need a strict parse use `parse_items`, which turns a tree containing ERROR or
MISSING nodes into a `SourceParseFailure`.
"""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from tree_sitter import Node, Parser, Tree

from ..models import ParsedItem
from .languages import get_rust_language
from .rust_adapter import extract_items


class SourceParseFailure(Exception):
    """Raised when a unit of source text is not syntactically valid Rust."""

    def __init__(self, message: str, line: int = 0, column: int = 0, expected: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column
        self.expected = expected

    def relocated(self, line_offset: int, first_line_indent: int = 0) -> "SourceParseFailure":
        """Move the failure location by `line_offset` lines; columns on line 1 lose `first_line_indent`."""
        if self.line == 0:
            return self
        column = max(self.column - first_line_indent, 0) if self.line == 1 else self.column
        line = self.line + line_offset
        return SourceParseFailure(describe_failure(line, column, self.expected), line, column, self.expected)


def describe_failure(line: int, column: int, expected: Optional[str] = None) -> str:
    if expected:
        return f"expected `{expected}` at line {line}, column {column}"
    return f"unexpected syntax at line {line}, column {column}"


@lru_cache(maxsize=1)
def get_parser(language_id: str = "rust") -> Parser:
    if language_id != "rust":
        raise ValueError(f"Unsupported language: {language_id}")
    parser = Parser()
    parser.language = get_rust_language()
    return parser


def parse_source(source: str, language_id: str = "rust") -> Tree:
    parser = get_parser(language_id)
    return parser.parse(bytes(source, "utf-8"))


def first_error_node(node: Node) -> Optional[Node]:
    """Return the first ERROR or MISSING node in document order, if any."""
    stack = [node]
    while stack:
        current = stack.pop()
        if current.is_error or current.is_missing:
            return current
        if current.has_error:
            stack.extend(reversed(current.children))
    return None


def check_tree(tree: Tree) -> None:
    root = tree.root_node
    if not root.has_error:
        return
    bad = first_error_node(root)
    if bad is None:
        raise SourceParseFailure("syntax error")
    line, column = bad.start_point[0] + 1, bad.start_point[1]
    expected = bad.type if bad.is_missing else None
    raise SourceParseFailure(describe_failure(line, column, expected), line=line, column=column, expected=expected)


def parse_items(source: str, file_path: Path) -> List[ParsedItem]:
    """Parse a whole unit of source strictly and extract its items."""
    tree = parse_source(source)
    check_tree(tree)
    return extract_items(tree, source, file_path)
