import logging

import pytest

import cargomap.mcp_server.server as server_module
from cargomap.core.config import CargoMapConfig
from cargomap.mcp_server.server import (
    MCPError,
    PingResponse,
    analyze_struct,
    find_callees,
    find_callers,
    get_external_usages,
    get_impls_for_type,
    get_module_tree,
    get_summary,
    lifespan,
    ping_tool,
    search_code,
)

CARGO_LOCK = """version = 3

[[package]]
name = "tokio"
version = "1.0.0"
source = "registry+https://github.com/rust-lang/crates.io-index"
"""


@pytest.fixture
def configured(monkeypatch, sample_project, fake_registry):
    """Point the server at the sample project and the fake registry."""
    config = CargoMapConfig(project_root=str(sample_project), cargo_registry_path=str(fake_registry))
    monkeypatch.setattr(server_module.server, "config", config)
    return config


@pytest.fixture
def tokio_project(sample_project, make_files):
    make_files(sample_project, {
        "Cargo.lock": CARGO_LOCK,
        "src/rt.rs": "pub fn start() {\n    tokio::spawn(work());\n}\n",
    })
    return sample_project


def test_server_initialization():
    assert server_module.server is not None
    assert server_module.server.name == "CargoMapMCP"
    assert hasattr(server_module.server, "list_tools")
    assert callable(server_module.server.run_stdio_async)


@pytest.mark.asyncio
async def test_tools_are_registered():
    names = {tool.name for tool in await server_module.server.list_tools()}

    assert names == {
        "ping",
        "search_code",
        "analyze_struct",
        "get_summary",
        "find_callers",
        "find_callees",
        "get_external_usages",
        "get_module_tree",
        "get_impls_for_type",
    }


@pytest.mark.asyncio
async def test_lifespan_logs_start_and_shutdown(caplog, configured):
    caplog.set_level(logging.INFO)

    async with lifespan(server_module.server) as context:
        assert context.config is configured

    assert "Server started" in caplog.text
    assert "Server shutdown" in caplog.text


@pytest.mark.asyncio
async def test_ping_tool(configured):
    response = await ping_tool(message="hi")

    assert isinstance(response, PingResponse)
    assert response.status == "ok"
    assert response.echoed == "hi"
    assert response.project_root == configured.project_root


@pytest.mark.asyncio
async def test_search_code_json(configured):
    response = await search_code(query="shared", project_path=None, limit=1, format="json")

    assert response.total == 2
    assert len(response.results) == 1
    top = response.results[0]
    assert top["name"] == "shared"
    assert top["kind"] == "function"
    assert top["module"] == "crate::alpha"
    assert top["line"] == 2
    assert top["score"] == 195.0
    assert top["factors"]["cross_module_count"] == 1


@pytest.mark.asyncio
async def test_search_code_markdown(configured):
    response = await search_code(query="shared", project_path=None, limit=10, format="markdown")

    assert "# Search Results for 'shared'" in response.results
    assert "**fn** `shared`" in response.results
    assert "Path: crate::alpha" in response.results


@pytest.mark.asyncio
async def test_search_code_no_results(configured):
    response = await search_code(query="zzz", project_path=None, limit=10, format="markdown")

    assert response.total == 0
    assert response.results == "No results found for 'zzz'."


@pytest.mark.asyncio
async def test_search_code_explicit_project_path(monkeypatch, sample_project):
    monkeypatch.setattr(server_module.server, "config", None)

    response = await search_code(query="lonely", project_path=str(sample_project), limit=10, format="json")

    assert [r["name"] for r in response.results] == ["lonely", "test_lonely"]


@pytest.mark.asyncio
async def test_invalid_parameters(configured):
    with pytest.raises(MCPError) as exc_info:
        await search_code(query="x", project_path=None, limit=0, format="json")
    assert exc_info.value.code == 4001

    with pytest.raises(MCPError) as exc_info:
        await get_summary(project_path=None, format="yaml")
    assert exc_info.value.code == 4001
    assert "markdown" in exc_info.value.data["hint"]


@pytest.mark.asyncio
async def test_missing_project(configured, temp_dir):
    with pytest.raises(MCPError) as exc_info:
        await get_summary(project_path=str(temp_dir / "missing"), format="json")

    assert exc_info.value.code == 4001
    assert exc_info.value.message == "Project not found"


@pytest.mark.asyncio
async def test_analyze_struct_markdown(configured):
    response = await analyze_struct(struct_name="Widget", project_path=None, format="markdown")

    report = response.report
    assert "## Widget" in report
    assert "- `inner`: `Vec<Option<T>>`" in report
    assert "- 2 impl block(s)" in report
    assert "- Traits: Default" in report


@pytest.mark.asyncio
async def test_analyze_struct_json(configured):
    response = await analyze_struct(struct_name="Widget", project_path=None, format="json")

    match = response.report["matches"][0]
    assert match["name"] == "Widget"
    assert match["item"]["tag"] == "struct"
    assert match["item"]["fields"][0]["name"] == "inner"


@pytest.mark.asyncio
async def test_analyze_struct_not_found(configured):
    response = await analyze_struct(struct_name="shared", project_path=None, format="markdown")

    assert response.report == "No struct or enum named 'shared' found in the project."


@pytest.mark.asyncio
async def test_get_summary_markdown(configured):
    response = await get_summary(project_path=None, format="markdown")

    assert "| Files | 4 |" in response.report
    assert "| Functions | 6 |" in response.report
    assert "1. **shared** (score: 195.0" in response.report
    assert "- **shared**: 3 calls from 1 modules" in response.report


@pytest.mark.asyncio
async def test_get_summary_json(configured):
    response = await get_summary(project_path=None, format="json")

    report = response.report
    assert report["total_files"] == 4
    assert report["total_parse_errors"] == 0
    assert report["hotspots"][0]["name"] == "shared"
    assert report["hub_functions"] == [{"name": "shared", "total_calls": 3, "cross_module_count": 1}]


@pytest.mark.asyncio
async def test_find_callers(configured):
    response = await find_callers(function_name="shared", project_path=None, format="json")

    assert response.total == 3
    assert [site["caller"] for site in response.call_sites] == ["shared", "alpha_user", "beta_user"]

    response = await find_callers(function_name="shared", project_path=None, format="markdown")
    assert "In `beta_user()`" in response.call_sites

    response = await find_callers(function_name="nobody", project_path=None, format="markdown")
    assert response.total == 0
    assert response.call_sites == "No callers found for function 'nobody'."


@pytest.mark.asyncio
async def test_find_callees(configured):
    response = await find_callees(function_name="beta_user", project_path=None, format="json")

    assert response.callees == ["beta_user", "shared"]
    assert response.total == 2


@pytest.mark.asyncio
async def test_get_external_usages_resolves_registry_source(configured, tokio_project):
    response = await get_external_usages(external_path="tokio::spawn", project_path=None, format="markdown")

    assert response.total == 1
    assert response.resolved is not None
    assert response.resolved.startswith("tokio::spawn at ")
    assert response.resolved.endswith("lib.rs:4")
    assert "Defined in tokio::spawn at" in response.usages
    assert "In `start()`" in response.usages
    assert "[simple]" in response.usages


@pytest.mark.asyncio
async def test_get_external_usages_resolves_off_the_event_loop(monkeypatch, configured, tokio_project):
    dispatched = []
    real_to_thread = server_module.asyncio.to_thread

    async def recording_to_thread(func, *args, **kwargs):
        dispatched.append(func)
        return await real_to_thread(func, *args, **kwargs)

    monkeypatch.setattr(server_module.asyncio, "to_thread", recording_to_thread)

    response = await get_external_usages(external_path="tokio::spawn", project_path=None, format="json")

    assert server_module._resolve_external in dispatched
    assert response.resolved is not None


@pytest.mark.asyncio
async def test_get_external_usages_json(configured, tokio_project):
    response = await get_external_usages(external_path="tokio::spawn", project_path=None, format="json")

    assert response.usages[0]["caller_context"] == "start"
    assert response.usages[0]["line"] == 2


@pytest.mark.asyncio
async def test_get_external_usages_suggests_similar_paths(configured):
    response = await get_external_usages(external_path="std::mem", project_path=None, format="markdown")

    assert response.total == 0
    assert response.resolved is None
    assert "No usages found for 'std::mem'." in response.usages
    assert "- std::mem::size_of (1 usages)" in response.usages


@pytest.mark.asyncio
async def test_get_module_tree(configured):
    response = await get_module_tree(project_path=None, format="json")

    assert response.report["name"] == "crate"
    assert [child["name"] for child in response.report["children"]] == ["alpha", "beta"]

    response = await get_module_tree(project_path=None, format="markdown")
    assert "- `crate`" in response.report
    assert "  - `alpha`" in response.report


@pytest.mark.asyncio
async def test_get_impls_for_type(configured):
    response = await get_impls_for_type(type_name="Widget", project_path=None, format="markdown")

    assert response.total == 2
    assert "`impl Widget<T>`" in response.impls
    assert "`impl Default for Widget<T>`" in response.impls
    assert "(new)" in response.impls

    response = await get_impls_for_type(type_name="Widget", project_path=None, format="json")
    assert [impl["kind"]["trait_name"] for impl in response.impls] == [None, "Default"]

    response = await get_impls_for_type(type_name="Gadget", project_path=None, format="markdown")
    assert response.impls == "No impl blocks found for 'Gadget'."
