"""
Project scanner: walks a Rust project and parses every source file it finds.

Failures are isolated per file. Only an untraversable root aborts the scan.
"""

import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from .models import ParsedFile
from .partial_parser import parse_file
from .utils import get_gitignore_patterns, is_ignored

DEFAULT_EXTENSIONS = (".rs",)
DEFAULT_EXCLUDED_DIRS = ("target", ".git")


class ScanError(Exception):
    """The project root cannot be traversed at all."""


class ProjectScanner:
    def __init__(
        self,
        extensions: Sequence[str] = DEFAULT_EXTENSIONS,
        excluded_dirs: Iterable[str] = DEFAULT_EXCLUDED_DIRS,
        respect_gitignore: bool = True,
    ):
        self.extensions = tuple(extensions)
        self.excluded_dirs = set(excluded_dirs)
        self.respect_gitignore = respect_gitignore

    def find_source_files(self, root: Path) -> List[Path]:
        root = Path(root)
        if not root.exists():
            raise ScanError(f"Project root does not exist: {root}")
        if not root.is_dir():
            raise ScanError(f"Project root is not a directory: {root}")

        patterns = get_gitignore_patterns(root) if self.respect_gitignore else []
        files: List[Path] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in self.excluded_dirs)
            for filename in sorted(filenames):
                if not filename.endswith(self.extensions):
                    continue
                file_path = Path(dirpath) / filename
                if patterns and is_ignored(file_path, patterns, root):
                    continue
                files.append(file_path)
        return files

    def parse_project(self, root: Union[str, Path]) -> List[ParsedFile]:
        root = Path(root)
        source_files = self.find_source_files(root)
        logging.info(f"Found {len(source_files)} Rust files to analyze under {root}")

        parsed_files: List[ParsedFile] = []
        for file_path in source_files:
            try:
                parsed_files.append(parse_file(file_path, root))
            except Exception as e:
                logging.warning(f"Skipping {file_path}: {e}")
        return parsed_files


def parse_project(root: Union[str, Path], scanner: Optional[ProjectScanner] = None) -> List[ParsedFile]:
    return (scanner or ProjectScanner()).parse_project(root)
