"""
Resilient per-file parsing.

A file is first parsed as a whole. When that fails, the raw text is carved into
candidate item chunks with a brace/string/char aware scan, each chunk is parsed
on its own inside a synthetic module, and chunks that still fail are kept as
`UnknownKind` items next to a `ParseError` so nothing silently disappears.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from .models import ParsedFile, ParsedItem, ParseError, Span, UnknownKind
from .treesitter import SourceParseFailure, parse_items
from .treesitter.rust_adapter import WRAPPER_MODULE

ITEM_PREFIXES = (
    "fn ",
    "pub ",
    "struct ",
    "enum ",
    "impl ",
    "mod ",
    "trait ",
    "type ",
    "const ",
    "static ",
    "use ",
    "macro_rules!",
    "#[",
    "async ",
    "unsafe ",
)

UNKNOWN_NAME = "<unknown>"
ERROR_TEXT_LIMIT = 200
UNKNOWN_TEXT_LIMIT = 500

_ITEM_NAME_RE = re.compile(r"(?:fn|struct|enum|impl|mod|trait|type|const|static|macro_rules!)\s+(\w+)")
_WRAPPER_PREFIX = f"mod {WRAPPER_MODULE} {{ "
_ROOT_FILES = {"lib.rs", "main.rs", "mod.rs"}


@dataclass
class Chunk:
    text: str
    start_line: int  # newlines before the chunk's first character


def parse_file(path: Union[str, Path], root: Optional[Path] = None) -> ParsedFile:
    """
    Parse one Rust file into a ParsedFile.

    Only reading the file can raise; syntax problems are recovered per chunk.
    """
    path = Path(path)
    content = path.read_text(encoding="utf-8")
    return parse_text(content, path, root)


def parse_text(content: str, path: Path, root: Optional[Path] = None) -> ParsedFile:
    parsed = ParsedFile(path=path, module_path=derive_module_path(path, root))
    try:
        parsed.items = parse_items(content, path)
        return parsed
    except SourceParseFailure as e:
        logging.info(f"Whole-file parse failed for {path} ({e.message}); recovering by chunks")

    chunks = split_into_items(content)
    for chunk in chunks:
        _parse_chunk(chunk, path, parsed)
    logging.info(
        f"Recovered {len(parsed.items)} items and {len(parsed.parse_errors)} errors "
        f"from {len(chunks)} chunks in {path}"
    )
    return parsed


def _parse_chunk(chunk: Chunk, path: Path, parsed: ParsedFile) -> None:
    wrapped = f"{_WRAPPER_PREFIX}{chunk.text}\n}}"
    try:
        items = parse_items(wrapped, path)
    except SourceParseFailure as failure:
        error = failure.relocated(chunk.start_line, _prefix_width())
        line_count = len(chunk.text.splitlines())
        span = Span(start_line=chunk.start_line, end_line=chunk.start_line + line_count)
        parsed.parse_errors.append(
            ParseError(message=error.message, span=span, raw_text=chunk.text[:ERROR_TEXT_LIMIT])
        )
        parsed.items.append(
            ParsedItem(
                kind=UnknownKind(raw_text=chunk.text[:UNKNOWN_TEXT_LIMIT], error=error.message),
                name=guess_item_name(chunk.text),
                file_path=path,
                span=span,
            )
        )
        return

    for item in items:
        item.span = _unwrap_span(item.span).shifted(chunk.start_line)
        parsed.items.append(item)


def _prefix_width() -> int:
    return len(_WRAPPER_PREFIX.encode("utf-8"))


def _unwrap_span(span: Span) -> Span:
    prefix_width = _prefix_width()
    start_col = span.start_col - prefix_width if span.start_line == 1 else span.start_col
    end_col = span.end_col - prefix_width if span.end_line == 1 else span.end_col
    return Span(span.start_line, max(start_col, 0), span.end_line, max(end_col, 0))


def split_into_items(content: str) -> List[Chunk]:
    """
    Carve source text into candidate item chunks.

    A chunk closes when a `}` brings the brace depth back to zero, or at a
    depth-zero `;` when the pending text looks like an item. A `;` that does
    not close an item still moves the cut point, dropping that text.
    """
    chunks: List[Chunk] = []
    depth = 0
    in_string = False
    in_char = False
    escape_next = False
    cut = 0
    i = 0
    length = len(content)

    while i < length:
        ch = content[i]
        if escape_next:
            escape_next = False
        elif ch == "\\":
            escape_next = True
        elif ch == '"' and not in_char:
            in_string = not in_string
        elif ch == "'" and not in_string:
            if in_char or _opens_char_literal(content, i):
                in_char = not in_char
        elif not in_string and not in_char:
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    chunks.append(Chunk(text=content[cut:i + 1], start_line=content.count("\n", 0, cut)))
                    cut = i + 1
            elif ch == ";" and depth == 0:
                text = content[cut:i + 1]
                if looks_like_item(text):
                    chunks.append(Chunk(text=text, start_line=content.count("\n", 0, cut)))
                cut = i + 1
        i += 1

    remainder = content[cut:]
    if remainder.strip() and looks_like_item(remainder):
        chunks.append(Chunk(text=remainder, start_line=content.count("\n", 0, cut)))
    return chunks


def _opens_char_literal(content: str, i: int) -> bool:
    # 'x' or '\n'; lifetimes and labels ('a, 'static) never close on the next char
    if i + 1 < len(content) and content[i + 1] == "\\":
        return True
    return i + 2 < len(content) and content[i + 2] == "'"


def looks_like_item(text: str) -> bool:
    return text.lstrip().startswith(ITEM_PREFIXES)


def guess_item_name(text: str) -> str:
    match = _ITEM_NAME_RE.search(text)
    return match.group(1) if match else UNKNOWN_NAME


def derive_module_path(path: Path, root: Optional[Path] = None) -> List[str]:
    """
    Module path segments for a file: `src/net/tcp.rs` -> ["net", "tcp"].

    `src` segments and crate/module root file names are dropped.
    """
    path = Path(path)
    if root is not None:
        try:
            path = path.relative_to(root)
        except ValueError:
            pass
    segments: List[str] = []
    for part in path.parts:
        if part in ("src", path.anchor) or part in _ROOT_FILES:
            continue
        if part.endswith(".rs"):
            part = part[: -len(".rs")]
        segments.append(part)
    return segments
