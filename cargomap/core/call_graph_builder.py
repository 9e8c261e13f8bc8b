"""
Builds a call graph and an external reference map from Rust source lines.

Both builders are line oriented and deliberately approximate: a function
context starts at any line containing `fn <name>` and lasts until the next one,
and names are matched with regular expressions rather than resolved.
"""

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .models import CallGraph, CallSite, ExternalReference, ParsedFile, ReferenceMap

RUST_KEYWORDS = frozenset({
    "if", "else", "match", "for", "while", "loop", "return", "break", "continue",
    "let", "mut", "ref", "fn", "struct", "enum", "impl", "trait", "type", "where",
    "use", "mod", "pub", "const", "static", "unsafe", "async", "await", "move",
    "dyn", "Some", "None", "Ok", "Err", "Self", "self", "super", "crate", "as",
    "in", "true", "false",
})

PRELUDE_METHODS = frozenset({
    # Iterator
    "iter", "into_iter", "map", "filter", "collect", "fold", "find", "any", "all",
    "take", "skip", "enumerate", "zip", "chain", "flatten", "flat_map", "cloned", "copied",
    # Option / Result
    "unwrap", "unwrap_or", "unwrap_or_else", "unwrap_or_default", "expect", "ok", "err",
    "is_some", "is_none", "is_ok", "is_err", "map_err", "and_then", "or_else",
    "ok_or", "ok_or_else",
    # Common traits and collections
    "clone", "to_string", "to_owned", "into", "from", "default", "new", "len",
    "is_empty", "push", "pop", "get", "get_mut", "insert", "remove", "contains",
    "clear", "extend", "as_ref", "as_mut", "borrow", "borrow_mut", "deref", "deref_mut",
    # Strings
    "trim", "split", "starts_with", "ends_with", "replace", "to_lowercase",
    "to_uppercase", "chars", "bytes", "lines",
    # Formatting
    "fmt", "write", "writeln", "format", "print", "println", "eprint", "eprintln",
    # Comparison
    "eq", "ne", "cmp", "partial_cmp", "lt", "le", "gt", "ge", "min", "max",
    # Memory
    "drop", "swap", "mem",
})

EXTERNAL_CRATES = frozenset({
    "std", "core", "alloc", "tokio", "async_std", "serde", "regex", "syn", "quote",
    "proc_macro", "proc_macro2", "thiserror", "anyhow", "log", "tracing", "futures",
    "hyper", "reqwest", "actix", "axum", "rocket", "diesel", "sqlx", "chrono", "rand",
    "clap", "structopt", "env_logger", "parking_lot", "crossbeam", "rayon",
    "itertools", "bytes", "http", "url", "walkdir", "cargo_metadata", "indexmap",
    "hashbrown",
})

MODULE_SCOPE = "<module>"
LOCAL_PREFIXES = ("crate::", "self::")

_CALL_RE = re.compile(r"(\w+)\s*\(")
_METHOD_CALL_RE = re.compile(r"\.(\w+)\s*\(")
_FN_RE = re.compile(r"fn\s+(\w+)")
_QUALIFIED_PATH_RE = re.compile(r"(\w+(?:::\w+)+)")


def is_prelude_method(name: str) -> bool:
    return name in PRELUDE_METHODS


def is_noise(name: str) -> bool:
    return name in RUST_KEYWORDS or name in PRELUDE_METHODS


def is_external_path(path: str) -> bool:
    """Heuristic: does a qualified path look like it points into another crate?"""
    if path.startswith(LOCAL_PREFIXES):
        return False
    first = path.split("::", 1)[0]
    if first in EXTERNAL_CRATES:
        return True
    return first[:1].islower() and first not in RUST_KEYWORDS and len(first) > 2


def line_complexity(line: str, depth: int) -> int:
    return (
        depth
        + line.count("<")
        + line.count("where") * 2
        + line.count("impl")
        + line.count("dyn")
        + line.count("async")
        + line.count("await")
        + line.count("unsafe") * 2
    )


def function_context(line: str) -> Optional[str]:
    if "fn " not in line:
        return None
    match = _FN_RE.search(line)
    return match.group(1) if match else None


def read_sources(files: Iterable[ParsedFile]) -> Dict[Path, str]:
    """Read each parsed file's text once; unreadable files are left out."""
    sources: Dict[Path, str] = {}
    for parsed in files:
        try:
            sources[parsed.path] = parsed.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logging.warning(f"   Warning: Could not read {parsed.path} for call analysis: {e}")
    return sources


class CallGraphBuilder:
    """Collects call sites keyed by callee name and callee lists keyed by caller."""

    def __init__(self):
        self.graph = CallGraph()

    def build(self, sources: Dict[Path, str]) -> CallGraph:
        logging.info(f"Building call graph from {len(sources)} files...")
        for path, content in sources.items():
            self.add_file(path, content)
        logging.info(
            f"   Found {sum(len(sites) for sites in self.graph.callers.values())} call sites "
            f"to {len(self.graph.callers)} names"
        )
        return self.graph

    def add_file(self, path: Path, content: str) -> None:
        current: Optional[str] = None
        for line_idx, line in enumerate(content.splitlines()):
            line_num = line_idx + 1
            context = function_context(line)
            if context is not None:
                current = context
            if current is None:
                continue

            for match in _CALL_RE.finditer(line):
                callee = match.group(1)
                if is_noise(callee):
                    continue
                self._add_caller(callee, CallSite(caller=current, file=path, line=line_num))
                self.graph.callees.setdefault(current, []).append(callee)

            for match in _METHOD_CALL_RE.finditer(line):
                method = match.group(1)
                if is_noise(method):
                    continue
                self._add_caller(method, CallSite(caller=current, file=path, line=line_num))

    def _add_caller(self, callee: str, site: CallSite) -> None:
        self.graph.callers.setdefault(callee, []).append(site)


class ReferenceMapBuilder:
    """Collects qualified paths that look like references into other crates."""

    def __init__(self):
        self.reference_map = ReferenceMap()

    def build(self, sources: Dict[Path, str]) -> ReferenceMap:
        logging.info(f"Building external reference map from {len(sources)} files...")
        for path, content in sources.items():
            self.add_file(path, content)
        logging.info(f"   Found {len(self.reference_map.references)} distinct external paths")
        return self.reference_map

    def add_file(self, path: Path, content: str) -> None:
        context = MODULE_SCOPE
        depth = 0
        for line_idx, line in enumerate(content.splitlines()):
            fn_name = function_context(line)
            if fn_name is not None:
                context = fn_name
                depth = 0
            depth += line.count("{")
            depth = max(0, depth - line.count("}"))

            for match in _QUALIFIED_PATH_RE.finditer(line):
                qualified = match.group(1)
                if not is_external_path(qualified):
                    continue
                self.reference_map.references.setdefault(qualified, []).append(
                    ExternalReference(
                        external_path=qualified,
                        file=path,
                        line=line_idx + 1,
                        caller_context=context,
                        complexity=line_complexity(line, depth),
                    )
                )


def complexity_label(complexity: int) -> str:
    if complexity <= 2:
        return "simple"
    if complexity <= 5:
        return "moderate"
    return "complex"
