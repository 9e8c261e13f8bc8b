"""
Semantic gravity engine.

`SemanticGravity.analyze_project` scans a project and rebuilds every derived
structure from scratch: parsed files, module tree, impl index, call graph,
external reference map and entry distances. The query methods then rank items
by how architecturally central they look.
"""

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple, Union

from .call_graph_builder import CallGraphBuilder, ReferenceMapBuilder, is_prelude_method, read_sources
from .config import CargoMapConfig
from .impl_index import ImplIndex
from .models import (
    CallGraph,
    CallSite,
    EnumKind,
    ExternalReference,
    FunctionKind,
    Hub,
    ImplKind,
    ModKind,
    ModuleTree,
    ParsedFile,
    ParsedItem,
    ReferenceMap,
    ScoreFactors,
    StructKind,
    TraitKind,
    UnknownKind,
    UseKind,
    WorkSiteScore,
)
from .module_tree import (
    ROOT_MODULE,
    build_file_to_module,
    build_module_tree,
    compute_distances,
    find_entry_file,
)
from .scanner import ProjectScanner
from .scoring import ScoringWeights, compute_score, is_site, is_test_item, item_generic_depth

UNREACHABLE_DISTANCE = sys.maxsize
HOTSPOT_KINDS = (FunctionKind, StructKind, EnumKind, TraitKind)


@dataclass
class ProjectSummary:
    total_files: int = 0
    total_functions: int = 0
    total_structs: int = 0
    total_enums: int = 0
    total_traits: int = 0
    total_impls: int = 0
    total_modules: int = 0
    total_parse_errors: int = 0
    hotspots: List[WorkSiteScore] = field(default_factory=list)
    hub_functions: List[Hub] = field(default_factory=list)
    external_usage_count: int = 0

    def render(self) -> str:
        lines = [
            "=== Project Summary ===",
            f"Files: {self.total_files}",
            f"Functions: {self.total_functions}",
            f"Structs: {self.total_structs}",
            f"Enums: {self.total_enums}",
            f"Traits: {self.total_traits}",
            f"Impl blocks: {self.total_impls}",
            f"Modules: {self.total_modules}",
            f"Parse errors: {self.total_parse_errors}",
            f"External symbols tracked: {self.external_usage_count}",
        ]
        if self.hotspots:
            lines.append("\n=== Top Work Sites (non-test) ===")
            for i, hs in enumerate(self.hotspots[:5], start=1):
                lines.append(
                    f"{i}. {hs.item.name} (score: {hs.score:.1f}, "
                    f"x-mod: {hs.factors.cross_module_count}, generics: {hs.factors.generic_depth})"
                )
        if self.hub_functions:
            lines.append("\n=== Significant Hubs (cross-module) ===")
            for hub in self.hub_functions[:5]:
                lines.append(f"  {hub.name} ({hub.total_calls} calls, {hub.cross_module_count} modules)")
        return "\n".join(lines) + "\n"

    def __str__(self) -> str:
        return self.render()


class SemanticGravity:
    """
    Ranks the items of one analyzed project.

    An instance holds the results of its last `analyze_project` call only; use
    separate instances for concurrent analyses.
    """

    def __init__(self, config: Optional[CargoMapConfig] = None, weights: Optional[ScoringWeights] = None):
        self.config = config or CargoMapConfig()
        self.weights = weights or self.config.weights()
        self.scanner = ProjectScanner(
            extensions=self.config.source_extensions,
            excluded_dirs=self.config.excluded_dirs,
            respect_gitignore=self.config.respect_gitignore,
        )
        self._reset()

    def _reset(self) -> None:
        self.project_root: Optional[Path] = None
        self.entry_file: Optional[Path] = None
        self.files: List[ParsedFile] = []
        self.call_graph = CallGraph()
        self.reference_map = ReferenceMap()
        self.module_tree = ModuleTree()
        self.impl_index = ImplIndex()
        self.file_to_module: Dict[Path, str] = {}
        self.distances: Dict[Path, int] = {}
        self._defining_modules: Dict[str, Set[str]] = {}

    def analyze_project(self, root: Union[str, Path, None] = None) -> None:
        """
        Scan, parse and index a project. Raises ScanError if the root cannot be walked.
        """
        self._reset()
        root_path = Path(root if root is not None else self.config.project_root).resolve()
        self.project_root = root_path
        self.entry_file = find_entry_file(root_path, self.config.entry_points)

        logging.info(f"Step 1: Scanning {root_path}...")
        self.files = self.scanner.parse_project(root_path)
        logging.info(
            f"   Parsed {len(self.files)} files, "
            f"{sum(len(f.parse_errors) for f in self.files)} recovered parse errors"
        )

        logging.info("Step 2: Building module tree...")
        self.module_tree = build_module_tree(self.files, self.entry_file)
        self.file_to_module = build_file_to_module(self.files)

        logging.info("Step 3: Indexing impl blocks...")
        self.impl_index = ImplIndex().build(self.files)

        sources = read_sources(self.files)
        logging.info("Step 4: Building call graph...")
        self.call_graph = CallGraphBuilder().build(sources)

        logging.info("Step 5: Building external reference map...")
        self.reference_map = ReferenceMapBuilder().build(sources)

        logging.info("Step 6: Computing entry distances...")
        self.distances = compute_distances(self.files, self.entry_file)

        for parsed in self.files:
            module = self.file_to_module[parsed.path]
            for item in parsed.items:
                if not isinstance(item.kind, (UseKind, UnknownKind)):
                    self._defining_modules.setdefault(item.name, set()).add(module)

    # --- Accessors ---

    def get_files(self) -> List[ParsedFile]:
        return self.files

    def get_call_graph(self) -> CallGraph:
        return self.call_graph

    def get_reference_map(self) -> ReferenceMap:
        return self.reference_map

    def get_module_tree(self) -> ModuleTree:
        return self.module_tree

    def get_entry_distance(self, path: Union[str, Path]) -> int:
        return self.distances.get(Path(path), UNREACHABLE_DISTANCE)

    def get_module_name(self, path: Union[str, Path]) -> str:
        return self.file_to_module.get(Path(path), ROOT_MODULE)

    def all_items(self) -> List[ParsedItem]:
        return [item for parsed in self.files for item in parsed.items]

    # --- Scoring ---

    def _calling_modules(self, sites: List[CallSite]) -> Set[str]:
        return {self.file_to_module[site.file] for site in sites if site.file in self.file_to_module}

    def compute_factors(self, item: ParsedItem) -> ScoreFactors:
        sites = self.call_graph.callers.get(item.name, [])
        own_module = self.file_to_module.get(item.file_path)
        cross_modules = self._calling_modules(sites) - {own_module}
        impl_count, trait_impls = self.impl_index.lookup(item.name)
        return ScoreFactors(
            entry_distance=self.get_entry_distance(item.file_path),
            call_count=len(sites),
            is_site=is_site(len(sites)),
            impl_count=impl_count,
            trait_impls=trait_impls,
            cross_module_count=len(cross_modules),
            generic_depth=item_generic_depth(item),
            is_test=is_test_item(item, self.project_root),
        )

    def score_item(self, item: ParsedItem) -> WorkSiteScore:
        factors = self.compute_factors(item)
        return WorkSiteScore(item=item, score=compute_score(factors, item.visibility, self.weights), factors=factors)

    # --- Queries ---

    def search(self, query: str) -> List[WorkSiteScore]:
        needle = query.lower()
        matches = [
            self.score_item(item)
            for item in self.all_items()
            if needle in item.name.lower() or (item.doc_comment and needle in item.doc_comment.lower())
        ]
        matches.sort(key=lambda s: s.score, reverse=True)
        return matches

    def hotspots(self, n: int) -> List[WorkSiteScore]:
        scored = []
        for item in self.all_items():
            if not isinstance(item.kind, HOTSPOT_KINDS):
                continue
            score = self.score_item(item)
            if not score.factors.is_test:
                scored.append(score)
        scored.sort(key=lambda s: s.score, reverse=True)
        return scored[:n]

    def significant_hubs(self, n: int) -> List[Hub]:
        hubs: List[Hub] = []
        for name, sites in self.call_graph.callers.items():
            if is_prelude_method(name):
                continue
            cross = len(self._calling_modules(sites) - self._defining_modules.get(name, set()))
            if cross > 0:
                hubs.append(Hub(name=name, total_calls=len(sites), cross_module_count=cross))
        hubs.sort(key=lambda h: (h.cross_module_count, h.total_calls), reverse=True)
        return hubs[:n]

    def summarize(self) -> ProjectSummary:
        summary = ProjectSummary(total_files=len(self.files))
        for parsed in self.files:
            summary.total_parse_errors += len(parsed.parse_errors)
            for item in parsed.items:
                kind = item.kind
                if isinstance(kind, FunctionKind):
                    summary.total_functions += 1
                elif isinstance(kind, StructKind):
                    summary.total_structs += 1
                elif isinstance(kind, EnumKind):
                    summary.total_enums += 1
                elif isinstance(kind, TraitKind):
                    summary.total_traits += 1
                elif isinstance(kind, ImplKind):
                    summary.total_impls += 1
                elif isinstance(kind, ModKind):
                    summary.total_modules += 1
        summary.hotspots = self.hotspots(self.config.hotspot_limit)
        summary.hub_functions = self.significant_hubs(self.config.hub_limit)
        summary.external_usage_count = len(self.reference_map.references)
        return summary

    def find_call_sites(self, name: str) -> List[CallSite]:
        return list(self.call_graph.callers.get(name, []))

    def find_callees(self, name: str) -> List[str]:
        return list(self.call_graph.callees.get(name, []))

    def get_external_usages(self, path: str) -> List[ExternalReference]:
        return list(self.reference_map.references.get(path, []))

    def get_most_complex_usage(self, path: str) -> Optional[ExternalReference]:
        best: Optional[ExternalReference] = None
        for ref in self.reference_map.references.get(path, []):
            if best is None or ref.complexity >= best.complexity:
                best = ref
        return best

    def get_all_external_symbols(self) -> List[Tuple[str, int]]:
        symbols = [(path, len(refs)) for path, refs in self.reference_map.references.items()]
        symbols.sort(key=lambda s: s[1], reverse=True)
        return symbols

    def get_impls_for_type(self, type_name: str) -> List[ParsedItem]:
        return self.impl_index.get(type_name)
