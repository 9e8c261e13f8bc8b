import re

import pytest
from pathlib import Path

from cargomap.core.models import FunctionKind, StructKind, UnknownKind
from cargomap.core.partial_parser import (
    UNKNOWN_NAME,
    derive_module_path,
    guess_item_name,
    looks_like_item,
    parse_file,
    parse_text,
    split_into_items,
)

GOOD_THEN_BROKEN = """pub fn good(x: u32) -> u32 {
    x + 1
}

fn broken(x: ) {
    let y = 1;
}
"""

GOOD_BROKEN_GOOD = GOOD_THEN_BROKEN + """
struct After {
    a: u32,
}
"""


class TestSplitIntoItems:
    def test_splits_on_top_level_braces(self):
        chunks = split_into_items(GOOD_BROKEN_GOOD)

        assert len(chunks) == 3
        assert chunks[0].text.startswith("pub fn good")
        assert chunks[1].text.strip().startswith("fn broken")
        assert chunks[2].text.strip().startswith("struct After")

    def test_chunk_start_line_counts_newlines_before_cut(self):
        chunks = split_into_items(GOOD_BROKEN_GOOD)

        assert [c.start_line for c in chunks] == [0, 2, 6]

    def test_brace_in_char_literal_is_ignored(self):
        chunks = split_into_items("fn a() -> char { '{' }\nfn b() {}\n")

        assert len(chunks) == 2

    def test_escaped_quote_char_literal(self):
        chunks = split_into_items("fn q() -> char { '\\'' }\nfn r() {}\n")

        assert len(chunks) == 2

    def test_lifetimes_do_not_open_char_literals(self):
        chunks = split_into_items("fn g<'a>(x: &'a str) -> &'a str { x }\nfn h() {}\n")

        assert len(chunks) == 2

    def test_brace_in_string_is_ignored(self):
        chunks = split_into_items('fn s() -> &\'static str { "}" }\nfn t() {}\n')

        assert len(chunks) == 2
        assert chunks[0].text.endswith('"}" }')

    def test_item_semicolon_closes_chunk(self):
        chunks = split_into_items("use std::io;\nconst X: u32 = 1;\n")

        assert [c.text.strip() for c in chunks] == ["use std::io;", "const X: u32 = 1;"]

    def test_non_item_semicolon_discards_text(self):
        chunks = split_into_items("let x = 1;\nfn a() {}\n")

        assert len(chunks) == 1
        assert chunks[0].text.strip() == "fn a() {}"

    def test_item_looking_remainder_becomes_chunk(self):
        chunks = split_into_items("fn a() {}\nfn incomplete(")

        assert len(chunks) == 2
        assert chunks[1].text.strip() == "fn incomplete("
        assert chunks[1].start_line == 0

    def test_non_item_remainder_is_dropped(self):
        chunks = split_into_items("fn a() {}\n// trailing comment")

        assert len(chunks) == 1


def test_looks_like_item():
    assert looks_like_item("   pub fn x() {}")
    assert looks_like_item("#[derive(Debug)] struct A;")
    assert looks_like_item("macro_rules! m { () => {} }")
    assert not looks_like_item("let x = 1;")
    assert not looks_like_item("x + 1")


def test_guess_item_name():
    assert guess_item_name("pub struct Foo {") == "Foo"
    assert guess_item_name("#[inline]\npub(crate) fn helper(") == "helper"
    assert guess_item_name("let x = 1") == UNKNOWN_NAME


class TestParseText:
    def test_valid_file_has_no_errors(self):
        parsed = parse_text("pub fn ok() {}\nstruct S;\n", Path("src/lib.rs"))

        assert parsed.parse_errors == []
        assert [item.name for item in parsed.items] == ["ok", "S"]

    def test_one_good_one_broken_item(self):
        parsed = parse_text(GOOD_THEN_BROKEN, Path("src/lib.rs"))

        assert len(split_into_items(GOOD_THEN_BROKEN)) >= 2
        recovered = [i for i in parsed.items if not isinstance(i.kind, UnknownKind)]
        unknown = [i for i in parsed.items if isinstance(i.kind, UnknownKind)]
        assert len(recovered) == 1
        assert len(unknown) == 1
        assert recovered[0].name == "good"
        assert unknown[0].name == "broken"
        assert unknown[0].kind.error
        assert len(parsed.parse_errors) == 1
        assert parsed.parse_errors[0].message == unknown[0].kind.error

    def test_recovered_spans_use_file_coordinates(self):
        parsed = parse_text(GOOD_BROKEN_GOOD, Path("src/lib.rs"))
        by_name = {item.name: item for item in parsed.items}

        good = by_name["good"]
        assert isinstance(good.kind, FunctionKind)
        assert good.span.start_line == 1
        assert good.span.start_col == 0
        assert good.span.end_line == 3

        after = by_name["After"]
        assert isinstance(after.kind, StructKind)
        assert after.span.start_line == 9
        assert after.span.end_line == 11

    def test_error_span_and_raw_text(self):
        parsed = parse_text(GOOD_BROKEN_GOOD, Path("src/lib.rs"))
        error = parsed.parse_errors[0]

        assert error.span.start_line == 2
        assert error.span.end_line == 2 + 5
        assert "fn broken" in error.raw_text
        assert len(error.raw_text) <= 200

    def test_wrapper_module_is_never_reported(self):
        parsed = parse_text(GOOD_BROKEN_GOOD, Path("src/lib.rs"))

        assert all("__cargomap_chunk__" not in item.name for item in parsed.items)

    def test_error_message_reports_file_line(self):
        parsed = parse_text(GOOD_BROKEN_GOOD, Path("src/lib.rs"))
        error = parsed.parse_errors[0]

        assert "at line 5," in error.message
        unknown = [i for i in parsed.items if isinstance(i.kind, UnknownKind)]
        assert unknown[0].kind.error == error.message

    def test_error_inside_body_reports_file_line(self):
        source = "fn first() {}\n\nfn second() {}\n\nfn broken_function() {\n    let x = ;\n}\n"
        parsed = parse_text(source, Path("src/lib.rs"))

        assert len(parsed.parse_errors) == 1
        assert "at line 6," in parsed.parse_errors[0].message

    def test_error_on_first_line_reports_file_column(self):
        source = "fn broken(x: ) {}\n"
        parsed = parse_text(source, Path("src/lib.rs"))

        match = re.search(r"at line (\d+), column (\d+)", parsed.parse_errors[0].message)
        assert match is not None
        assert int(match.group(1)) == 1
        assert int(match.group(2)) <= len(source.rstrip())

    def test_module_path_is_set_on_fallback(self, temp_dir):
        path = temp_dir / "src" / "net" / "tcp.rs"
        parsed = parse_text(GOOD_THEN_BROKEN, path, temp_dir)

        assert parsed.module_path == ["net", "tcp"]


def test_parse_file_reads_from_disk(temp_dir):
    path = temp_dir / "src" / "lib.rs"
    path.parent.mkdir(parents=True)
    path.write_text("pub fn on_disk() {}\n", encoding="utf-8")

    parsed = parse_file(path, temp_dir)

    assert parsed.path == path
    assert [item.name for item in parsed.items] == ["on_disk"]
    assert parsed.items[0].file_path == path


def test_parse_file_propagates_read_errors(temp_dir):
    with pytest.raises(OSError):
        parse_file(temp_dir / "missing.rs")


@pytest.mark.parametrize("relative, expected", [
    ("src/lib.rs", []),
    ("src/main.rs", []),
    ("src/net/mod.rs", ["net"]),
    ("src/net/tcp.rs", ["net", "tcp"]),
    ("src/parser.rs", ["parser"]),
    ("tests/integration.rs", ["tests", "integration"]),
])
def test_derive_module_path(relative, expected):
    root = Path("/project")
    assert derive_module_path(root / relative, root) == expected
