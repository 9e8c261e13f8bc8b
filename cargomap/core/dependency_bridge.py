"""
Bridge from a project's Cargo.lock to dependency sources in the local cargo
registry.

Registry crates live at `<registry>/<index-dir>/<name>-<version>/`. Public APIs
are extracted with the same partial parser used for project files and cached
per crate name for the lifetime of the bridge.
"""

import logging
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from .models import ItemKind, ParsedItem, Span, Visibility
from .partial_parser import parse_file
from .scanner import ProjectScanner, ScanError


class DependencyError(Exception):
    """Cargo.lock cannot be read or a crate is not a known registry dependency."""


@dataclass
class CrateDependency:
    name: str
    version: str
    source: Optional[str] = None
    registry_path: Optional[Path] = None
    public_api: Optional[List[ParsedItem]] = None


@dataclass
class ResolvedPath:
    crate_name: str
    item_name: str
    file_path: Path
    span: Span
    kind: ItemKind
    registry_path: Path

    def __str__(self) -> str:
        return f"{self.crate_name}::{self.item_name} at {self.file_path}:{self.span.start_line}"


def find_registry_path() -> Path:
    cargo_home = os.environ.get("CARGO_HOME")
    if cargo_home:
        return Path(cargo_home) / "registry" / "src"
    return Path.home() / ".cargo" / "registry" / "src"


class DependencyBridge:
    def __init__(self, project_root: Union[str, Path], registry_path: Optional[Path] = None):
        self.project_root = Path(project_root)
        self.registry_path = Path(registry_path) if registry_path else find_registry_path()
        self.dependencies: Dict[str, CrateDependency] = {}
        self._loaded = False

    def load_dependencies(self) -> Dict[str, CrateDependency]:
        """Read registry packages from Cargo.lock; a missing lock file yields nothing."""
        lock_path = self.project_root / "Cargo.lock"
        self._loaded = True
        if not lock_path.is_file():
            logging.info(f"No Cargo.lock at {lock_path}; no dependencies loaded")
            return self.dependencies

        try:
            with open(lock_path, "rb") as f:
                lock = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise DependencyError(f"Cannot read {lock_path}: {e}") from e

        packages = lock.get("package", [])
        if not isinstance(packages, list):
            raise DependencyError(f"Malformed {lock_path}: 'package' is not an array")
        for pkg in packages:
            name, version = pkg.get("name"), pkg.get("version")
            if not name or not version:
                raise DependencyError(f"Malformed {lock_path}: package without name or version")
            if not pkg.get("source"):
                continue
            self.dependencies[name] = CrateDependency(
                name=name,
                version=version,
                source=pkg["source"],
                registry_path=self.find_crate_in_registry(name, version),
            )
        logging.info(f"Loaded {len(self.dependencies)} registry dependencies from {lock_path}")
        return self.dependencies

    def find_crate_in_registry(self, name: str, version: str) -> Optional[Path]:
        if not self.registry_path.is_dir():
            return None
        for index_dir in sorted(self.registry_path.iterdir()):
            if not index_dir.is_dir():
                continue
            crate_dir = index_dir / f"{name}-{version}"
            if crate_dir.exists():
                return crate_dir
        return None

    def get_dependencies(self) -> Dict[str, CrateDependency]:
        return self.dependencies

    def get_dependency(self, crate_name: str) -> Optional[CrateDependency]:
        """Look a crate up by name; `async_std` also finds `async-std`."""
        if not self._loaded:
            self.load_dependencies()
        return self.dependencies.get(crate_name) or self.dependencies.get(crate_name.replace("_", "-"))

    def _require_source(self, crate_name: str) -> CrateDependency:
        dep = self.get_dependency(crate_name)
        if dep is None or dep.registry_path is None:
            raise DependencyError(f"Crate not found in registry: {crate_name}")
        return dep

    def extract_public_api(self, crate_name: str) -> List[ParsedItem]:
        """Public items of a crate's entry file, cached per crate."""
        dep = self._require_source(crate_name)
        if dep.public_api is not None:
            return dep.public_api

        entry_point = dep.registry_path / "src" / "lib.rs"
        if not entry_point.exists():
            entry_point = dep.registry_path / "src" / "main.rs"
        if not entry_point.exists():
            dep.public_api = []
            return dep.public_api

        try:
            parsed = parse_file(entry_point, dep.registry_path)
        except (OSError, UnicodeDecodeError) as e:
            raise DependencyError(f"Cannot read {entry_point}: {e}") from e
        dep.public_api = [item for item in parsed.items if item.visibility == Visibility.PUBLIC]
        return dep.public_api

    def extract_full_public_api(self, crate_name: str) -> List[ParsedItem]:
        """Public items of every source file under the crate's src directory."""
        dep = self._require_source(crate_name)
        src_path = dep.registry_path / "src"
        if not src_path.is_dir():
            return []
        try:
            parsed_files = ProjectScanner(respect_gitignore=False).parse_project(src_path)
        except ScanError as e:
            raise DependencyError(str(e)) from e
        return [
            item
            for parsed in parsed_files
            for item in parsed.items
            if item.visibility == Visibility.PUBLIC
        ]

    def resolve_path(self, path: str) -> Optional[ResolvedPath]:
        """Resolve `tokio::spawn` to the public item named `spawn` in the tokio crate."""
        parts = [part for part in path.split("::") if part]
        if not parts:
            return None
        crate_name, item_name = parts[0], parts[-1]

        dep = self.get_dependency(crate_name)
        if dep is None or dep.registry_path is None:
            return None
        try:
            public_api = self.extract_public_api(crate_name)
        except DependencyError as e:
            logging.warning(f"Could not extract public API of {crate_name}: {e}")
            return None

        for item in public_api:
            if item.name == item_name:
                return ResolvedPath(
                    crate_name=crate_name,
                    item_name=item_name,
                    file_path=item.file_path,
                    span=item.span,
                    kind=item.kind,
                    registry_path=dep.registry_path,
                )
        return None
