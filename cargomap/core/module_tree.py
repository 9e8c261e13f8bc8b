"""
Module hierarchy and entry-point distances.

The tree is flat: every `mod` declaration found anywhere in the project becomes a
direct child of the crate root. Distances come from a depth-first walk over
module declarations starting at the entry file, so a file reachable along
several routes keeps the distance of whichever route reached it first.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

from .models import ModKind, ModuleNode, ModuleTree, ParsedFile

ROOT_MODULE = "crate"
DEFAULT_ENTRY_POINTS = ("src/lib.rs", "src/main.rs")


def find_entry_file(root: Path, entry_points: Sequence[str] = DEFAULT_ENTRY_POINTS) -> Path:
    """First existing entry point under root, else the last candidate."""
    candidates = [root / entry for entry in entry_points]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return candidates[-1]


def resolve_mod_path(declaring_file: Path, name: str) -> Path:
    """`mod name;` resolves next to the declaring file: name.rs, else name/mod.rs."""
    parent_dir = declaring_file.parent
    direct = parent_dir / f"{name}.rs"
    if direct.exists():
        return direct
    nested = parent_dir / name / "mod.rs"
    if nested.exists():
        return nested
    return direct


def file_module_name(parsed: ParsedFile) -> str:
    if not parsed.module_path:
        return ROOT_MODULE
    return f"{ROOT_MODULE}::" + "::".join(parsed.module_path)


def build_file_to_module(files: Iterable[ParsedFile]) -> Dict[Path, str]:
    return {parsed.path: file_module_name(parsed) for parsed in files}


def build_module_tree(files: Iterable[ParsedFile], entry_file: Path) -> ModuleTree:
    root = ModuleNode(name=ROOT_MODULE, path=entry_file, depth=0)
    for parsed in files:
        for item in parsed.items:
            if not isinstance(item.kind, ModKind):
                continue
            path = parsed.path if item.kind.inline else resolve_mod_path(parsed.path, item.name)
            root.children.append(
                ModuleNode(name=item.name, path=path, depth=len(parsed.module_path) + 1)
            )
    return ModuleTree(root=root)


def compute_distances(files: Iterable[ParsedFile], entry_file: Path) -> Dict[Path, int]:
    """
    Depth-first discovery distance of every file from the entry file.

    Files never reached get one more than the largest recorded distance.
    """
    files_by_path: Dict[Path, ParsedFile] = {parsed.path: parsed for parsed in files}
    distances: Dict[Path, int] = {}
    stack: List[tuple] = [(entry_file, 0)]

    while stack:
        path, distance = stack.pop()
        if path in distances:
            continue
        distances[path] = distance
        parsed = files_by_path.get(path)
        if parsed is None:
            continue
        for item in parsed.items:
            if isinstance(item.kind, ModKind):
                stack.append((resolve_mod_path(path, item.name), distance + 1))

    fallback = max(distances.values(), default=0) + 1
    unreachable = [path for path in files_by_path if path not in distances]
    for path in unreachable:
        distances[path] = fallback
    if unreachable:
        logging.info(f"{len(unreachable)} files are unreachable from {entry_file}; distance {fallback}")
    return distances
