"""
Semantic gravity score: a pure function of an item's derived factors.

Weights are immutable and injected, so the formula can be exercised without
analyzing a project.
"""

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Optional

from .models import FunctionKind, ImplKind, ParsedItem, ScoreFactors, StructKind, Visibility

BASE_SCORE = 100.0
SITE_MAX_CALLS = 3
UTILITY_MIN_CALLS = 10


@dataclass(frozen=True)
class ScoringWeights:
    cross_module_usage: float = 50
    pub_visibility: float = 20
    generic_depth: float = 15
    is_test_penalty: float = -80
    site_bonus: float = 30
    utility_penalty: float = -20
    entry_distance_penalty: float = -5
    impl_richness: float = 5
    trait_impl: float = 3

    def with_overrides(self, overrides: Optional[Dict[str, float]]) -> "ScoringWeights":
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown scoring weight(s): {', '.join(unknown)}")
        return replace(self, **overrides)


DEFAULT_WEIGHTS = ScoringWeights()


def compute_score(
    factors: ScoreFactors,
    visibility: Visibility,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> float:
    score = BASE_SCORE
    score += factors.cross_module_count * weights.cross_module_usage
    if visibility == Visibility.PUBLIC:
        score += weights.pub_visibility
    score += factors.generic_depth * weights.generic_depth
    if factors.is_test:
        score += weights.is_test_penalty
    score += factors.entry_distance * weights.entry_distance_penalty
    if factors.is_site:
        score += weights.site_bonus
    elif factors.call_count > UTILITY_MIN_CALLS:
        score += weights.utility_penalty
    score += factors.impl_count * weights.impl_richness
    score += len(factors.trait_impls) * weights.trait_impl
    return max(0.0, score)


def is_site(call_count: int) -> bool:
    return 0 < call_count <= SITE_MAX_CALLS


def generic_nesting_depth(type_text: str) -> int:
    """Deepest `<...>` nesting: `Vec<HashMap<K, V>>` -> 2."""
    depth = 0
    deepest = 0
    for ch in type_text:
        if ch == "<":
            depth += 1
            deepest = max(deepest, depth)
        elif ch == ">":
            depth = max(0, depth - 1)
    return deepest


def item_generic_depth(item: ParsedItem) -> int:
    kind = item.kind
    if isinstance(kind, FunctionKind):
        text = " ".join(param.ty for param in kind.parameters)
        if kind.return_type:
            text += kind.return_type
        return generic_nesting_depth(text)
    if isinstance(kind, StructKind):
        return generic_nesting_depth(" ".join(f.ty for f in kind.fields))
    if isinstance(kind, ImplKind):
        return generic_nesting_depth(kind.self_type)
    return 0


def is_test_item(item: ParsedItem, root: Optional[Path] = None) -> bool:
    """Test attributes, a `tests/` directory below `root`, or a `test_` name prefix."""
    if any("test" in attr for attr in item.attributes):
        return True
    path = item.file_path
    if root is not None:
        try:
            path = path.relative_to(root)
        except ValueError:
            pass
    if "/tests/" in "/" + path.as_posix():
        return True
    return item.name.startswith("test_")
