from mcp.server.fastmcp import FastMCP
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pydantic import BaseModel, Field
from typing import List, Optional

from cargomap.core.call_graph_builder import complexity_label
from cargomap.core.config import CargoMapConfig
from cargomap.core.dependency_bridge import DependencyBridge, DependencyError, ResolvedPath
from cargomap.core.gravity import SemanticGravity
from cargomap.core.models import EnumKind, ModuleNode, StructKind, WorkSiteScore
from cargomap.core.scanner import ScanError
from cargomap.core.utils import to_jsonable

FORMATS = ("markdown", "json")
MAX_USAGES_SHOWN = 10
MAX_STRUCTS_SHOWN = 3
MAX_SUGGESTIONS = 5

KIND_LABELS = {
    "function": "fn",
    "struct": "struct",
    "enum": "enum",
    "trait": "trait",
    "impl": "impl",
}


class MCPError(Exception):
    """Custom MCP error with code and hint."""

    def __init__(self, code: int, message: str, hint: str = ""):
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = {"hint": hint} if hint else {}


class PingResponse(BaseModel):
    status: str
    echoed: str
    project_root: Optional[str] = None


class SearchResponse(BaseModel):
    results: list[dict] | str
    total: int


class ReportResponse(BaseModel):
    report: dict | str


class CallersResponse(BaseModel):
    call_sites: list[dict] | str
    total: int


class CalleesResponse(BaseModel):
    callees: list[str] | str
    total: int


class ExternalUsagesResponse(BaseModel):
    usages: list[dict] | str
    total: int
    resolved: Optional[str] = None


class ImplsResponse(BaseModel):
    impls: list[dict] | str
    total: int


# Global logger for MCP
logger = logging.getLogger("mcp")
logger.addHandler(logging.StreamHandler(sys.stderr))
logger.setLevel(logging.INFO)


@dataclass
class AppContext:
    config: Optional[CargoMapConfig] = None


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    config = getattr(server, "config", None)
    if config:
        logger.info(f"Server started for project {config.project_root}")
    else:
        logger.warning("No config provided to server, using defaults")
    try:
        yield AppContext(config=config)
    finally:
        logger.info("Server shutdown")


server = FastMCP("CargoMapMCP", lifespan=lifespan)
server.config = None


def _get_config() -> CargoMapConfig:
    return getattr(server, "config", None) or CargoMapConfig()


def _check_format(format: str) -> None:
    if format not in FORMATS:
        raise MCPError(4001, "Invalid parameters", f"format must be one of: {', '.join(FORMATS)}")


async def _analyze(project_path: Optional[str]) -> SemanticGravity:
    """Run a fresh analysis; nothing is cached between tool calls."""
    config = _get_config()
    root = project_path or config.project_root
    gravity = SemanticGravity(config)
    try:
        await asyncio.to_thread(gravity.analyze_project, root)
    except ScanError as e:
        raise MCPError(4001, "Project not found", str(e)) from e
    except Exception as e:
        logger.error(f"Analysis of {root} failed: {e}")
        raise MCPError(5001, "Analysis failed", str(e)) from e
    return gravity


def _score_to_dict(gravity: SemanticGravity, result: WorkSiteScore) -> dict:
    return {
        "name": result.item.name,
        "kind": result.item.tag,
        "module": gravity.get_module_name(result.item.file_path),
        "file_path": str(result.item.file_path),
        "line": result.item.span.start_line,
        "score": result.score,
        "factors": to_jsonable(result.factors),
    }


# Tool functions with decorators
@server.tool(name="ping")
async def ping_tool(message: str = Field(description="Message to echo")) -> PingResponse:
    """
    Simple ping tool to echo a message and report the configured project.
    """
    return PingResponse(status="ok", echoed=message, project_root=_get_config().project_root)


def format_search_results_as_markdown(gravity: SemanticGravity, query: str, results: List[WorkSiteScore], limit: int) -> str:
    if not results:
        return f"No results found for '{query}'."
    markdown = f"# Search Results for '{query}'\n\n"
    markdown += f"Found {len(results)} results (showing top {min(limit, len(results))}):\n\n"
    for i, result in enumerate(results[:limit], 1):
        kind = KIND_LABELS.get(result.item.tag, "item")
        test_marker = " [TEST]" if result.factors.is_test else ""
        markdown += f"{i}. **{kind}** `{result.item.name}`{test_marker}\n"
        markdown += f"   - Path: {gravity.get_module_name(result.item.file_path)}\n"
        markdown += f"   - File: {result.item.file_path}:{result.item.span.start_line}\n"
        markdown += (
            f"   - Score: {result.score:.1f} (x-mod: {result.factors.cross_module_count}, "
            f"generics: {result.factors.generic_depth})\n\n"
        )
    return markdown


@server.tool(name="search_code")
async def search_code(query: str = Field(description="Search query (matches item names and doc comments)"),
                      project_path: Optional[str] = Field(default=None, description="Project root; defaults to the configured project"),
                      limit: int = Field(default=10, description="Maximum number of results to return"),
                      format: str = Field(default="markdown", description="Output format: 'markdown' or 'json'")
                      ) -> SearchResponse:
    """
    Search functions, structs, enums, traits and other items by name, ranked by semantic gravity.
    """
    _check_format(format)
    if limit < 1:
        raise MCPError(4001, "Invalid parameters", "limit must be positive")
    gravity = await _analyze(project_path)
    results = gravity.search(query)
    if format == "markdown":
        return SearchResponse(results=format_search_results_as_markdown(gravity, query, results, limit), total=len(results))
    return SearchResponse(results=[_score_to_dict(gravity, r) for r in results[:limit]], total=len(results))


def format_struct_analysis_as_markdown(gravity: SemanticGravity, name: str, results: List[WorkSiteScore]) -> str:
    if not results:
        return f"No struct or enum named '{name}' found in the project."
    markdown = ""
    for result in results[:MAX_STRUCTS_SHOWN]:
        item = result.item
        markdown += f"## {item.name}\n\n"
        markdown += f"**File:** {item.file_path}:{item.span.start_line}\n"
        markdown += f"**Path:** {gravity.get_module_name(item.file_path)}\n"
        markdown += f"**Score:** {result.score:.1f}\n\n"
        if item.doc_comment:
            markdown += f"{item.doc_comment}\n\n"
        if isinstance(item.kind, StructKind) and item.kind.fields:
            markdown += "### Fields\n"
            for field in item.kind.fields:
                markdown += f"- `{field.name or '_'}`: `{field.ty}`\n"
            markdown += "\n"
        if isinstance(item.kind, EnumKind) and item.kind.variants:
            markdown += "### Variants\n"
            for variant in item.kind.variants:
                markdown += f"- `{variant.name}`\n"
            markdown += "\n"
        if result.factors.impl_count > 0:
            markdown += "### Implementations\n"
            markdown += f"- {result.factors.impl_count} impl block(s)\n"
            if result.factors.trait_impls:
                markdown += f"- Traits: {', '.join(result.factors.trait_impls)}\n"
            markdown += "\n"
        markdown += "### Usage Stats\n"
        markdown += f"- Cross-module usage: {result.factors.cross_module_count}\n"
        markdown += f"- Call count: {result.factors.call_count}\n"
        markdown += f"- Generic depth: {result.factors.generic_depth}\n\n"
    return markdown


@server.tool(name="analyze_struct")
async def analyze_struct(struct_name: str = Field(description="Name of the struct or enum to analyze"),
                         project_path: Optional[str] = Field(default=None, description="Project root; defaults to the configured project"),
                         format: str = Field(default="markdown", description="Output format: 'markdown' or 'json'")
                         ) -> ReportResponse:
    """
    Describe a struct or enum: fields, impl blocks, implemented traits and usage.
    """
    _check_format(format)
    gravity = await _analyze(project_path)
    results = [r for r in gravity.search(struct_name) if isinstance(r.item.kind, (StructKind, EnumKind))]
    if format == "markdown":
        return ReportResponse(report=format_struct_analysis_as_markdown(gravity, struct_name, results))
    return ReportResponse(report={
        "query": struct_name,
        "matches": [
            dict(_score_to_dict(gravity, r), item=to_jsonable(r.item.kind))
            for r in results[:MAX_STRUCTS_SHOWN]
        ],
    })


def format_summary_as_markdown(gravity: SemanticGravity) -> str:
    summary = gravity.summarize()
    markdown = f"# Project Summary: {gravity.project_root}\n\n"
    markdown += "## Statistics\n\n"
    markdown += "| Metric | Count |\n"
    markdown += "|--------|-------|\n"
    markdown += f"| Files | {summary.total_files} |\n"
    markdown += f"| Functions | {summary.total_functions} |\n"
    markdown += f"| Structs | {summary.total_structs} |\n"
    markdown += f"| Enums | {summary.total_enums} |\n"
    markdown += f"| Traits | {summary.total_traits} |\n"
    markdown += f"| Impl blocks | {summary.total_impls} |\n"
    markdown += f"| Modules | {summary.total_modules} |\n"
    markdown += f"| Parse errors | {summary.total_parse_errors} |\n"
    markdown += f"| External symbols | {summary.external_usage_count} |\n\n"
    if summary.hotspots:
        markdown += "## Top Work Sites\n\n"
        markdown += "Items with highest semantic gravity scores:\n\n"
        for i, hs in enumerate(summary.hotspots[:5], 1):
            markdown += (
                f"{i}. **{hs.item.name}** (score: {hs.score:.1f}, "
                f"x-mod: {hs.factors.cross_module_count}, generics: {hs.factors.generic_depth})\n"
            )
        markdown += "\n"
    if summary.hub_functions:
        markdown += "## Hub Functions\n\n"
        markdown += "Functions called from multiple modules:\n\n"
        for hub in summary.hub_functions[:5]:
            markdown += f"- **{hub.name}**: {hub.total_calls} calls from {hub.cross_module_count} modules\n"
    return markdown


@server.tool(name="get_summary")
async def get_summary(project_path: Optional[str] = Field(default=None, description="Project root; defaults to the configured project"),
                      format: str = Field(default="markdown", description="Output format: 'markdown' or 'json'")
                      ) -> ReportResponse:
    """
    Overview of the project: item counts, parse errors, top work sites and hub functions.
    """
    _check_format(format)
    gravity = await _analyze(project_path)
    if format == "markdown":
        return ReportResponse(report=format_summary_as_markdown(gravity))
    summary = gravity.summarize()
    report = to_jsonable(summary)
    report["hotspots"] = [_score_to_dict(gravity, hs) for hs in summary.hotspots]
    return ReportResponse(report=report)


@server.tool(name="find_callers")
async def find_callers(function_name: str = Field(description="Name of the function to find callers for"),
                       project_path: Optional[str] = Field(default=None, description="Project root; defaults to the configured project"),
                       format: str = Field(default="markdown", description="Output format: 'markdown' or 'json'")
                       ) -> CallersResponse:
    """
    Find every location where a function or method is called.
    """
    _check_format(format)
    gravity = await _analyze(project_path)
    sites = gravity.find_call_sites(function_name)
    if format == "json":
        return CallersResponse(call_sites=to_jsonable(sites), total=len(sites))
    if not sites:
        return CallersResponse(call_sites=f"No callers found for function '{function_name}'.", total=0)
    markdown = f"# Callers of `{function_name}`\n\n"
    markdown += f"Found {len(sites)} call site(s):\n\n"
    for i, site in enumerate(sites, 1):
        markdown += f"{i}. In `{site.caller}()` at {site.file}:{site.line}\n"
    return CallersResponse(call_sites=markdown, total=len(sites))


@server.tool(name="find_callees")
async def find_callees(function_name: str = Field(description="Name of the calling function"),
                       project_path: Optional[str] = Field(default=None, description="Project root; defaults to the configured project"),
                       format: str = Field(default="markdown", description="Output format: 'markdown' or 'json'")
                       ) -> CalleesResponse:
    """
    List the functions called from within a function (method calls are not included).
    """
    _check_format(format)
    gravity = await _analyze(project_path)
    callees = gravity.find_callees(function_name)
    if format == "json":
        return CalleesResponse(callees=callees, total=len(callees))
    if not callees:
        return CalleesResponse(callees=f"No callees found for function '{function_name}'.", total=0)
    markdown = f"# Functions called by `{function_name}`\n\n"
    for name in callees:
        markdown += f"- `{name}`\n"
    return CalleesResponse(callees=markdown, total=len(callees))


def _resolve_external(gravity: SemanticGravity, external_path: str) -> Optional[ResolvedPath]:
    bridge = DependencyBridge(gravity.project_root, _get_config().registry_path())
    try:
        return bridge.resolve_path(external_path)
    except DependencyError as e:
        logger.warning(f"Could not resolve {external_path}: {e}")
        return None


@server.tool(name="get_external_usages")
async def get_external_usages(external_path: str = Field(description="External path to look up, e.g. 'tokio::spawn'"),
                              project_path: Optional[str] = Field(default=None, description="Project root; defaults to the configured project"),
                              format: str = Field(default="markdown", description="Output format: 'markdown' or 'json'")
                              ) -> ExternalUsagesResponse:
    """
    Find where an external crate symbol is used, most complex usages first.
    """
    _check_format(format)
    gravity = await _analyze(project_path)
    usages = sorted(gravity.get_external_usages(external_path), key=lambda u: u.complexity, reverse=True)
    resolved = await asyncio.to_thread(_resolve_external, gravity, external_path)
    resolved_text = str(resolved) if resolved else None

    if format == "json":
        return ExternalUsagesResponse(usages=to_jsonable(usages), total=len(usages), resolved=resolved_text)

    if not usages:
        markdown = f"No usages found for '{external_path}'.\n\n"
        suggestions = [
            (path, count)
            for path, count in gravity.get_all_external_symbols()
            if external_path in path or path in external_path
        ][:MAX_SUGGESTIONS]
        if suggestions:
            markdown += "Did you mean one of these?\n"
            for path, count in suggestions:
                markdown += f"- {path} ({count} usages)\n"
        return ExternalUsagesResponse(usages=markdown, total=0, resolved=resolved_text)

    markdown = f"# Usages of `{external_path}`\n\n"
    if resolved:
        markdown += f"Defined in {resolved}\n\n"
    markdown += f"Found {len(usages)} usage(s):\n\n"
    for i, usage in enumerate(usages[:MAX_USAGES_SHOWN], 1):
        markdown += (
            f"{i}. In `{usage.caller_context}()` at {usage.file}:{usage.line} "
            f"[{complexity_label(usage.complexity)}]\n"
        )
    if len(usages) > MAX_USAGES_SHOWN:
        markdown += f"\n... and {len(usages) - MAX_USAGES_SHOWN} more usages\n"
    return ExternalUsagesResponse(usages=markdown, total=len(usages), resolved=resolved_text)


def _module_tree_lines(node: ModuleNode, indent: int = 0) -> List[str]:
    lines = [f"{'  ' * indent}- `{node.name}` ({node.path}, depth {node.depth})"]
    for child in node.children:
        lines.extend(_module_tree_lines(child, indent + 1))
    return lines


@server.tool(name="get_module_tree")
async def get_module_tree(project_path: Optional[str] = Field(default=None, description="Project root; defaults to the configured project"),
                          format: str = Field(default="markdown", description="Output format: 'markdown' or 'json'")
                          ) -> ReportResponse:
    """
    Module declarations of the project, attached under the crate root.
    """
    _check_format(format)
    gravity = await _analyze(project_path)
    tree = gravity.get_module_tree()
    if format == "json":
        return ReportResponse(report=to_jsonable(tree.root))
    return ReportResponse(report="# Module Tree\n\n" + "\n".join(_module_tree_lines(tree.root)) + "\n")


@server.tool(name="get_impls_for_type")
async def get_impls_for_type(type_name: str = Field(description="Type name, e.g. 'Parser'"),
                             project_path: Optional[str] = Field(default=None, description="Project root; defaults to the configured project"),
                             format: str = Field(default="markdown", description="Output format: 'markdown' or 'json'")
                             ) -> ImplsResponse:
    """
    List impl blocks for a type, inherent and trait impls alike.
    """
    _check_format(format)
    gravity = await _analyze(project_path)
    impls = gravity.get_impls_for_type(type_name)
    if format == "json":
        return ImplsResponse(impls=[to_jsonable(item) for item in impls], total=len(impls))
    if not impls:
        return ImplsResponse(impls=f"No impl blocks found for '{type_name}'.", total=0)
    markdown = f"# Impl blocks for `{type_name}`\n\n"
    for item in impls:
        trait = f"{item.kind.trait_name} for " if item.kind.trait_name else ""
        methods = ", ".join(item.kind.methods) or "no methods"
        markdown += f"- `impl {trait}{item.kind.self_type}` at {item.file_path}:{item.span.start_line} ({methods})\n"
    return ImplsResponse(impls=markdown, total=len(impls))
