"""
Shared helpers: .gitignore matching for the project walk and conversion of
analysis dataclasses into JSON-friendly structures.
"""

import dataclasses
import fnmatch
from enum import Enum
from pathlib import Path
from typing import Any, List, Tuple


def get_gitignore_patterns(directory: Path) -> List[Tuple[str, Path]]:
    """
    Collect .gitignore patterns from the directory and its parents, along with
    the directory each .gitignore file was found in.

    Args:
        directory: Directory to start searching from

    Returns:
        List of (pattern, gitignore_directory) tuples
    """
    patterns_with_dirs: List[Tuple[str, Path]] = []
    current_dir = directory
    while current_dir != current_dir.parent:
        gitignore_path = current_dir / ".gitignore"
        if gitignore_path.is_file():
            with open(gitignore_path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith("#") and not line.startswith("!"):
                        patterns_with_dirs.append((line, current_dir))
        current_dir = current_dir.parent
    return patterns_with_dirs


def _normalize_gitignore_path(path_str: str) -> str:
    normalized = path_str.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def match_file_against_pattern(file_path: Path, pattern: str, gitignore_dir: Path, root_directory: Path) -> bool:
    """
    Match a file path against one gitignore pattern.

    Patterns are interpreted relative to the directory holding the .gitignore;
    a leading `/` anchors them to the analysis root, a trailing `/` makes them
    match directory segments only.

    Returns:
        True if the file should be ignored.
    """
    pattern = pattern.strip().replace("\\", "/")
    if not pattern:
        return False

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    try:
        rel_gitignore = _normalize_gitignore_path(file_path.relative_to(gitignore_dir).as_posix())
    except ValueError:
        return False
    try:
        rel_root = _normalize_gitignore_path(file_path.relative_to(root_directory).as_posix())
    except ValueError:
        rel_root = rel_gitignore

    if pattern.endswith("/"):
        dir_pattern = pattern[:-1]
        if not dir_pattern:
            return False
        if anchored:
            return rel_root.startswith(dir_pattern + "/")
        # directories only: the file name itself never matches
        dir_parts = rel_gitignore.split("/")[:-1]
        if "/" not in dir_pattern:
            return any(fnmatch.fnmatch(part, dir_pattern) for part in dir_parts)
        return rel_gitignore.startswith(dir_pattern + "/")

    if anchored:
        if fnmatch.fnmatch(rel_root, pattern):
            return True
        return "/" not in pattern and rel_root.startswith(pattern + "/")

    if fnmatch.fnmatch(rel_gitignore, pattern):
        return True
    if "/" not in pattern:
        return any(fnmatch.fnmatch(part, pattern) for part in rel_gitignore.split("/"))
    return fnmatch.fnmatch(rel_root, pattern)


def is_ignored(file_path: Path, patterns: List[Tuple[str, Path]], root_directory: Path) -> bool:
    return any(
        match_file_against_pattern(file_path, pattern, gitignore_dir, root_directory)
        for pattern, gitignore_dir in patterns
    )


def to_jsonable(value: Any) -> Any:
    """Recursively convert dataclasses, enums and paths into plain JSON values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        result = {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
        tag = getattr(value, "tag", None)
        if isinstance(tag, str):
            result["tag"] = tag
        return result
    if isinstance(value, tuple) and hasattr(value, "_asdict"):
        return {k: to_jsonable(v) for k, v in value._asdict().items()}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    return value
