"""
Command-line front end: analyze a Rust project and print its architecture summary.
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from cargomap.core.call_graph_builder import complexity_label
from cargomap.core.config import load_config
from cargomap.core.dependency_bridge import DependencyBridge, DependencyError
from cargomap.core.gravity import SemanticGravity
from cargomap.core.scanner import ScanError
from cargomap.core.utils import to_jsonable

MAX_LISTED = 10
MAX_USAGES_LISTED = 5


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="cargomap: Rust architecture analysis with semantic gravity ranking.",
        epilog="Examples: cargomap . | cargomap . parse | cargomap . spawn tokio::spawn",
    )
    parser.add_argument("project", nargs="?", default=None,
                        help="Rust project root (default: configured project_root or current directory).")
    parser.add_argument("query", nargs="?", default=None,
                        help="Search items by name or doc comment.")
    parser.add_argument("external_path", nargs="?", default=None,
                        help="External path (e.g. tokio::spawn) to show local usages and registry source for.")
    parser.add_argument("--config", help="Path to configuration YAML file (default: cargomap.config.yaml)")
    parser.add_argument("--json", action="store_true", help="Print a JSON report instead of text.")
    parser.add_argument("--verbose", action="store_true", help="Log analysis progress to stderr.")
    return parser


def _print_dependencies(bridge: DependencyBridge) -> None:
    print("\nPhase 2: Resolving dependencies...")
    try:
        deps = bridge.load_dependencies()
    except DependencyError as e:
        print(f"  Warning: Could not load dependencies: {e}", file=sys.stderr)
        return
    print(f"  Found {len(deps)} external dependencies")
    for name, dep in list(deps.items())[:MAX_LISTED]:
        status = "+" if dep.registry_path else "?"
        print(f"    {status} {name} v{dep.version}")
    if len(deps) > MAX_LISTED:
        print(f"    ... and {len(deps) - MAX_LISTED} more")


def _print_search(gravity: SemanticGravity, query: str, limit: int) -> None:
    print(f"\n=== Search Results for '{query}' ===")
    for i, result in enumerate(gravity.search(query)[:limit], 1):
        factors = result.factors
        test_marker = " [TEST]" if factors.is_test else ""
        print(f"{i}. {result.item.name}{test_marker} (score: {result.score:.1f})")
        print(f"   File: {result.item.file_path}:{result.item.span.start_line}")
        print(
            f"   Factors: x-mod={factors.cross_module_count}, generics={factors.generic_depth}, "
            f"calls={factors.call_count}, site={str(factors.is_site).lower()}"
        )
        if factors.impl_count > 0:
            print(f"   Impls: {factors.impl_count} ({', '.join(factors.trait_impls)})")
        print()


def _print_external(gravity: SemanticGravity, bridge: DependencyBridge, path: str) -> None:
    print(f"\n=== Call-Site Teleportation for '{path}' ===")
    usages = sorted(gravity.get_external_usages(path), key=lambda u: u.complexity, reverse=True)
    if usages:
        print(f"\nLocal usages in your project ({len(usages)} sites):")
        for i, usage in enumerate(usages[:MAX_USAGES_LISTED], 1):
            print(f"  {i}. {usage.file}:{usage.line} in {usage.caller_context}() [{complexity_label(usage.complexity)}]")
        most_complex = gravity.get_most_complex_usage(path)
        if most_complex:
            print(f"\n  Most complex usage: {most_complex.file}:{most_complex.line} in {most_complex.caller_context}()")
    else:
        print(f"  No local usages found for '{path}'")

    try:
        resolved = bridge.resolve_path(path)
    except DependencyError as e:
        print(f"  Warning: {e}", file=sys.stderr)
        resolved = None
    if resolved:
        print("\nRegistry source:")
        print(f"  {resolved}")
        print(f"  Path: {resolved.registry_path}")
    else:
        print("\n  Could not resolve in registry")


def _json_report(gravity: SemanticGravity, query: Optional[str], external_path: Optional[str], limit: int) -> Dict[str, Any]:
    summary = gravity.summarize()
    report: Dict[str, Any] = {
        "project_root": str(gravity.project_root),
        "summary": to_jsonable(summary),
        "external_symbols": [{"path": p, "usages": n} for p, n in gravity.get_all_external_symbols()],
    }
    if query:
        report["search"] = to_jsonable(gravity.search(query)[:limit])
    if external_path:
        report["external_usages"] = to_jsonable(gravity.get_external_usages(external_path))
    return report


def run(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    cli_args = {"project_root": args.project}
    config = load_config(config_path=args.config, cli_args=cli_args)
    logging.basicConfig(level=config.log_level.upper() if args.verbose else logging.WARNING, stream=sys.stderr)

    gravity = SemanticGravity(config)
    root = config.root_path()

    if args.json:
        try:
            gravity.analyze_project(root)
        except ScanError as e:
            print(f"Error analyzing project: {e}", file=sys.stderr)
            return 1
        print(json.dumps(_json_report(gravity, args.query, args.external_path, config.search_limit), indent=2))
        return 0

    print("cargomap - Rust Architecture Analyzer")
    print("=====================================\n")
    print(f"Analyzing: {root}\n")

    print("Phase 1: Parsing project files...")
    try:
        gravity.analyze_project(root)
    except ScanError as e:
        print(f"Error analyzing project: {e}", file=sys.stderr)
        return 1
    files = gravity.get_files()
    recovered = sum(1 for f in files if f.parse_errors)
    print(f"  Parsed {len(files)} files ({recovered} with partial recovery)")

    bridge = DependencyBridge(root, config.registry_path())
    _print_dependencies(bridge)

    print("\nPhase 3: Computing semantic gravity...")
    print(f"\n{gravity.summarize()}")

    symbols = gravity.get_all_external_symbols()
    if symbols:
        print("=== External Symbol Usage ===")
        for path, count in symbols[:MAX_LISTED]:
            print(f"  {path} ({count} usages)")
        if len(symbols) > MAX_LISTED:
            print(f"  ... and {len(symbols) - MAX_LISTED} more")

    if args.query:
        _print_search(gravity, args.query, config.search_limit)

    if args.external_path and "::" in args.external_path:
        _print_external(gravity, bridge, args.external_path)

    print("\n=== Analysis Complete ===")
    return 0


def main():
    """Main entry point for the command-line tool."""
    sys.exit(run())


if __name__ == "__main__":
    main()
