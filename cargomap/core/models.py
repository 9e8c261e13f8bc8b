"""
Core data models for items extracted from Rust source and the structures
derived from them during analysis.

This module contains pure data structures without analysis behavior. Item
kinds form a closed set of variant records; every consumer dispatches on the
variant class (or its ``tag``).
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import ClassVar, Dict, List, NamedTuple, Optional, Union


class Visibility(Enum):
    PUBLIC = "pub"
    CRATE = "pub(crate)"
    SUPER = "pub(super)"
    RESTRICTED = "restricted"
    PRIVATE = "private"


@dataclass
class Span:
    """Source span; lines are 1-based, columns 0-based."""
    start_line: int = 0
    start_col: int = 0
    end_line: int = 0
    end_col: int = 0

    def shifted(self, line_offset: int) -> "Span":
        return Span(
            start_line=self.start_line + line_offset,
            start_col=self.start_col,
            end_line=self.end_line + line_offset,
            end_col=self.end_col,
        )


@dataclass
class Parameter:
    name: str
    ty: str
    is_self: bool = False


@dataclass
class StructField:
    ty: str
    name: Optional[str] = None
    visibility: Visibility = Visibility.PRIVATE


@dataclass
class EnumVariant:
    name: str
    fields: List[StructField] = field(default_factory=list)


# --- Item kinds ---

@dataclass
class FunctionKind:
    tag: ClassVar[str] = "function"
    is_async: bool = False
    parameters: List[Parameter] = field(default_factory=list)
    return_type: Optional[str] = None


@dataclass
class StructKind:
    tag: ClassVar[str] = "struct"
    fields: List[StructField] = field(default_factory=list)
    is_tuple: bool = False


@dataclass
class EnumKind:
    tag: ClassVar[str] = "enum"
    variants: List[EnumVariant] = field(default_factory=list)


@dataclass
class TraitKind:
    tag: ClassVar[str] = "trait"
    methods: List[str] = field(default_factory=list)
    supertraits: List[str] = field(default_factory=list)


@dataclass
class ImplKind:
    tag: ClassVar[str] = "impl"
    self_type: str = ""
    trait_name: Optional[str] = None
    methods: List[str] = field(default_factory=list)


@dataclass
class ModKind:
    tag: ClassVar[str] = "mod"
    inline: bool = False


@dataclass
class UseKind:
    tag: ClassVar[str] = "use"
    path: str = ""


@dataclass
class ConstKind:
    tag: ClassVar[str] = "const"
    ty: str = ""


@dataclass
class StaticKind:
    tag: ClassVar[str] = "static"
    ty: str = ""
    is_mut: bool = False


@dataclass
class TypeAliasKind:
    tag: ClassVar[str] = "type_alias"
    ty: str = ""


@dataclass
class MacroKind:
    tag: ClassVar[str] = "macro"
    is_declarative: bool = True


@dataclass
class UnknownKind:
    """Placeholder for a chunk of text that could not be parsed."""
    tag: ClassVar[str] = "unknown"
    raw_text: str = ""
    error: str = ""


ItemKind = Union[
    FunctionKind,
    StructKind,
    EnumKind,
    TraitKind,
    ImplKind,
    ModKind,
    UseKind,
    ConstKind,
    StaticKind,
    TypeAliasKind,
    MacroKind,
    UnknownKind,
]


@dataclass
class ParsedItem:
    """A single top-level or nested item recognized in a source file."""
    kind: ItemKind
    name: str
    file_path: Path
    visibility: Visibility = Visibility.PRIVATE
    span: Span = field(default_factory=Span)
    attributes: List[str] = field(default_factory=list)
    doc_comment: Optional[str] = None

    @property
    def tag(self) -> str:
        return self.kind.tag


@dataclass
class ParseError:
    message: str
    span: Optional[Span] = None
    raw_text: str = ""


@dataclass
class ParsedFile:
    """Result of parsing one file: recovered items plus non-fatal errors."""
    path: Path
    items: List[ParsedItem] = field(default_factory=list)
    parse_errors: List[ParseError] = field(default_factory=list)
    module_path: List[str] = field(default_factory=list)


# --- Derived structures ---

@dataclass
class CallSite:
    caller: str
    file: Path
    line: int


@dataclass
class CallGraph:
    callers: Dict[str, List[CallSite]] = field(default_factory=dict)  # callee -> call sites
    callees: Dict[str, List[str]] = field(default_factory=dict)  # caller -> callee names


@dataclass
class ExternalReference:
    external_path: str  # e.g. "tokio::spawn"
    file: Path
    line: int
    caller_context: str
    complexity: int


@dataclass
class ReferenceMap:
    references: Dict[str, List[ExternalReference]] = field(default_factory=dict)


@dataclass
class ModuleNode:
    name: str = ""
    path: Path = field(default_factory=Path)
    children: List["ModuleNode"] = field(default_factory=list)
    depth: int = 0


@dataclass
class ModuleTree:
    root: ModuleNode = field(default_factory=ModuleNode)


@dataclass
class ScoreFactors:
    entry_distance: int = 0
    call_count: int = 0
    is_site: bool = False  # called from 1-3 places
    impl_count: int = 0
    trait_impls: List[str] = field(default_factory=list)
    cross_module_count: int = 0
    generic_depth: int = 0  # Vec<HashMap<K, V>> = 2
    is_test: bool = False


@dataclass
class WorkSiteScore:
    item: ParsedItem
    score: float
    factors: ScoreFactors


class Hub(NamedTuple):
    name: str
    total_calls: int
    cross_module_count: int
