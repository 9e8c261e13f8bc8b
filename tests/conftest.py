"""
Pytest configuration and fixtures: throwaway Rust projects on disk.
"""

import pytest
from pathlib import Path
import tempfile
import shutil
from typing import Dict, Generator


LIB_RS = """//! Crate root.

pub mod alpha;
pub mod beta;

/// Entry point helper.
pub fn root_fn() {}
"""

ALPHA_RS = """/// Shared helper used across modules.
pub fn shared() -> u32 {
    1
}

pub fn alpha_user() -> u32 {
    shared()
}

pub struct Widget<T> {
    pub inner: Vec<Option<T>>,
}

impl<T> Widget<T> {
    pub fn new() -> Self {
        Widget { inner: Vec::new() }
    }
}

impl<T> Default for Widget<T> {
    fn default() -> Self {
        Self::new()
    }
}
"""

BETA_RS = """use crate::alpha::shared;

pub fn beta_user() -> u32 {
    let size = std::mem::size_of::<u64>();
    shared() + size as u32
}
"""

ORPHAN_RS = """pub fn lonely() {}

#[test]
fn test_lonely() {
    lonely();
}
"""


def write_files(root: Path, files: Dict[str, str]) -> Path:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    temp_path = Path(tempfile.mkdtemp()).resolve()

    yield temp_path

    shutil.rmtree(temp_path)


@pytest.fixture
def make_files():
    """Expose write_files to tests: make_files(root, {"src/lib.rs": "..."})."""
    return write_files


@pytest.fixture
def sample_project(temp_dir: Path) -> Path:
    """
    A small crate: lib.rs declares `alpha` and `beta`; `orphan.rs` is never declared.

    `alpha::shared` is called from alpha itself and from beta.
    """
    project = temp_dir / "demo"
    return write_files(project, {
        "Cargo.toml": '[package]\nname = "demo"\nversion = "0.1.0"\n',
        "src/lib.rs": LIB_RS,
        "src/alpha.rs": ALPHA_RS,
        "src/beta.rs": BETA_RS,
        "src/orphan.rs": ORPHAN_RS,
    })


@pytest.fixture
def fake_registry(temp_dir: Path) -> Path:
    """A cargo registry holding tokio 1.0.0 under one index directory."""
    registry = temp_dir / "registry"
    write_files(registry / "index.crates.io-6f17d22bba15001f" / "tokio-1.0.0", {
        "Cargo.toml": '[package]\nname = "tokio"\nversion = "1.0.0"\n',
        "src/lib.rs": (
            "pub mod task;\n\n"
            "/// Spawns a new asynchronous task.\n"
            "pub fn spawn() {}\n\n"
            "fn private_helper() {}\n\n"
            "pub struct Runtime;\n"
        ),
        "src/task.rs": "pub fn yield_now() {}\n",
    })
    return registry
