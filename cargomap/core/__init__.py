"""
Core analysis API: partial parsing, project scanning and semantic gravity ranking.
"""

from .models import (
    CallGraph,
    CallSite,
    ExternalReference,
    ModuleNode,
    ModuleTree,
    ParsedFile,
    ParsedItem,
    ParseError,
    ReferenceMap,
    ScoreFactors,
    Span,
    Visibility,
    WorkSiteScore,
)
from .partial_parser import parse_file, split_into_items
from .scanner import ProjectScanner, ScanError, parse_project
from .impl_index import ImplIndex, normalize_type_name
from .scoring import ScoringWeights, compute_score
from .gravity import ProjectSummary, SemanticGravity
from .dependency_bridge import DependencyBridge, DependencyError, ResolvedPath

__all__ = [
    "CallGraph",
    "CallSite",
    "ExternalReference",
    "ModuleNode",
    "ModuleTree",
    "ParsedFile",
    "ParsedItem",
    "ParseError",
    "ReferenceMap",
    "ScoreFactors",
    "Span",
    "Visibility",
    "WorkSiteScore",
    "parse_file",
    "split_into_items",
    "ProjectScanner",
    "ScanError",
    "parse_project",
    "ImplIndex",
    "normalize_type_name",
    "ScoringWeights",
    "compute_score",
    "ProjectSummary",
    "SemanticGravity",
    "DependencyBridge",
    "DependencyError",
    "ResolvedPath",
]
