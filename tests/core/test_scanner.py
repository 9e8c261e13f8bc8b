import pytest
from pathlib import Path
from unittest.mock import patch

from cargomap.core.scanner import ProjectScanner, ScanError, parse_project


class TestFindSourceFiles:
    def test_finds_rust_files_sorted(self, sample_project):
        files = ProjectScanner().find_source_files(sample_project)

        assert [f.relative_to(sample_project).as_posix() for f in files] == [
            "src/alpha.rs",
            "src/beta.rs",
            "src/lib.rs",
            "src/orphan.rs",
        ]

    def test_skips_target_and_non_rust_files(self, temp_dir, make_files):
        make_files(temp_dir, {
            "src/lib.rs": "fn a() {}\n",
            "target/debug/build/out.rs": "fn generated() {}\n",
            "README.md": "# readme\n",
            "build.rs": "fn main() {}\n",
        })

        files = ProjectScanner().find_source_files(temp_dir)

        assert sorted(f.name for f in files) == ["build.rs", "lib.rs"]

    def test_custom_excluded_dirs(self, temp_dir, make_files):
        make_files(temp_dir, {
            "src/lib.rs": "fn a() {}\n",
            "examples/demo.rs": "fn main() {}\n",
        })

        files = ProjectScanner(excluded_dirs=["examples"]).find_source_files(temp_dir)

        assert [f.name for f in files] == ["lib.rs"]

    def test_respects_gitignore(self, temp_dir, make_files):
        make_files(temp_dir, {
            ".gitignore": "# generated\ngenerated/\n*.bak.rs\n",
            "src/lib.rs": "fn a() {}\n",
            "src/old.bak.rs": "fn b() {}\n",
            "generated/bindings.rs": "fn c() {}\n",
        })

        files = ProjectScanner().find_source_files(temp_dir)

        assert [f.relative_to(temp_dir).as_posix() for f in files] == ["src/lib.rs"]

    def test_gitignore_can_be_disabled(self, temp_dir, make_files):
        make_files(temp_dir, {
            ".gitignore": "generated/\n",
            "src/lib.rs": "fn a() {}\n",
            "generated/bindings.rs": "fn c() {}\n",
        })

        files = ProjectScanner(respect_gitignore=False).find_source_files(temp_dir)

        assert len(files) == 2

    def test_missing_root_raises(self, temp_dir):
        with pytest.raises(ScanError):
            ProjectScanner().find_source_files(temp_dir / "nope")

    def test_file_root_raises(self, temp_dir):
        path = temp_dir / "lib.rs"
        path.write_text("fn a() {}\n", encoding="utf-8")

        with pytest.raises(ScanError):
            ProjectScanner().find_source_files(path)


class TestParseProject:
    def test_parses_every_file(self, sample_project):
        files = parse_project(sample_project)

        assert len(files) == 4
        by_name = {f.path.name: f for f in files}
        assert by_name["alpha.rs"].module_path == ["alpha"]
        assert by_name["lib.rs"].module_path == []
        assert all(not f.parse_errors for f in files)

    def test_broken_file_is_recovered_not_skipped(self, temp_dir, make_files):
        make_files(temp_dir, {
            "src/lib.rs": "pub fn ok() {}\n\nfn broken(x: ) {\n}\n",
        })

        files = parse_project(temp_dir)

        assert len(files) == 1
        assert len(files[0].parse_errors) == 1
        assert "ok" in [item.name for item in files[0].items]

    def test_unreadable_file_is_skipped(self, temp_dir, make_files, caplog):
        make_files(temp_dir, {
            "src/lib.rs": "pub fn ok() {}\n",
            "src/bad.rs": "pub fn bad() {}\n",
        })
        (temp_dir / "src" / "bad.rs").write_bytes(b"pub fn bad() { \xff\xfe }\n")

        files = parse_project(temp_dir)

        assert [f.path.name for f in files] == ["lib.rs"]
        assert "Skipping" in caplog.text

    def test_parser_exception_is_isolated(self, sample_project):
        from cargomap.core import scanner as scanner_module

        real_parse_file = scanner_module.parse_file

        def flaky(path, root=None):
            if Path(path).name == "beta.rs":
                raise RuntimeError("boom")
            return real_parse_file(path, root)

        with patch.object(scanner_module, "parse_file", side_effect=flaky):
            files = ProjectScanner().parse_project(sample_project)

        assert sorted(f.path.name for f in files) == ["alpha.rs", "lib.rs", "orphan.rs"]
