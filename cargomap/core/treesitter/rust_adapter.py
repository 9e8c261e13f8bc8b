"""
Tree-sitter adapter for Rust source.

Produces ParsedItem objects from a Tree-sitter tree. Every item-introducing node
is recorded in pre-order, including items nested inside function bodies and
inline modules. Functions declared directly in an impl or trait body are methods
of that block and only contribute their names to it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from tree_sitter import Node, Tree

from ..models import (
    ConstKind,
    EnumKind,
    EnumVariant,
    FunctionKind,
    ImplKind,
    ItemKind,
    MacroKind,
    ModKind,
    Parameter,
    ParsedItem,
    Span,
    StaticKind,
    StructField,
    StructKind,
    TraitKind,
    TypeAliasKind,
    UseKind,
    Visibility,
)

# Synthetic module used to make a lone chunk parseable; never reported.
WRAPPER_MODULE = "__cargomap_chunk__"

ANONYMOUS = "<anonymous>"

_METHOD_CONTAINERS = {"impl_item", "trait_item"}
_MACRO_ITEM_PARENTS = {"source_file"}
_DECORATION_NODES = {"attribute_item", "line_comment", "block_comment"}


def extract_items(tree: Tree, source: str, file_path: Path) -> List[ParsedItem]:
    source_bytes = source.encode("utf-8")
    items: List[ParsedItem] = []
    for node in _walk(tree.root_node):
        if _is_method_member(node):
            continue
        builder = _ITEM_BUILDERS.get(node.type)
        if builder is None:
            continue
        built = builder(node, source_bytes)
        if built is None:
            continue
        kind, name = built
        attributes, doc_comment = _extract_decorations(node, source_bytes)
        items.append(
            ParsedItem(
                kind=kind,
                name=name,
                file_path=file_path,
                visibility=_visibility(node, source_bytes),
                span=_span(node),
                attributes=attributes,
                doc_comment=doc_comment,
            )
        )
    return items


# --- Item builders ---

def _build_function(node: Node, src: bytes) -> Tuple[ItemKind, str]:
    kind = FunctionKind(
        is_async=_is_async(node),
        parameters=_extract_parameters(node, src),
        return_type=_field_text(node, "return_type", src) or None,
    )
    return kind, _name(node, src)


def _build_struct(node: Node, src: bytes) -> Tuple[ItemKind, str]:
    body = node.child_by_field_name("body")
    fields = _extract_fields(body, src) if body is not None else []
    is_tuple = body is not None and body.type == "ordered_field_declaration_list"
    return StructKind(fields=fields, is_tuple=is_tuple), _name(node, src)


def _build_enum(node: Node, src: bytes) -> Tuple[ItemKind, str]:
    variants: List[EnumVariant] = []
    body = node.child_by_field_name("body")
    if body is not None:
        for child in body.named_children:
            if child.type != "enum_variant":
                continue
            variant_body = child.child_by_field_name("body")
            variants.append(
                EnumVariant(
                    name=_name(child, src),
                    fields=_extract_fields(variant_body, src) if variant_body is not None else [],
                )
            )
    return EnumKind(variants=variants), _name(node, src)


def _build_trait(node: Node, src: bytes) -> Tuple[ItemKind, str]:
    supertraits: List[str] = []
    bounds = node.child_by_field_name("bounds")
    if bounds is not None:
        for child in bounds.named_children:
            if child.type == "lifetime":
                continue
            supertraits.append(_strip_generics(_node_text(src, child)))
    kind = TraitKind(
        methods=_member_function_names(node, src, include_signatures=True),
        supertraits=supertraits,
    )
    return kind, _name(node, src)


def _build_impl(node: Node, src: bytes) -> Tuple[ItemKind, str]:
    self_type = _field_text(node, "type", src)
    trait_node = node.child_by_field_name("trait")
    trait_name = _strip_generics(_node_text(src, trait_node)) if trait_node is not None else None
    kind = ImplKind(
        self_type=self_type,
        trait_name=trait_name,
        methods=_member_function_names(node, src, include_signatures=False),
    )
    return kind, f"impl {self_type}"


def _build_mod(node: Node, src: bytes) -> Optional[Tuple[ItemKind, str]]:
    name = _name(node, src)
    if name == WRAPPER_MODULE:
        return None
    return ModKind(inline=node.child_by_field_name("body") is not None), name


def _build_use(node: Node, src: bytes) -> Tuple[ItemKind, str]:
    path = _field_text(node, "argument", src)
    return UseKind(path=path), path


def _build_const(node: Node, src: bytes) -> Tuple[ItemKind, str]:
    return ConstKind(ty=_field_text(node, "type", src)), _name(node, src)


def _build_static(node: Node, src: bytes) -> Tuple[ItemKind, str]:
    is_mut = any(child.type == "mutable_specifier" for child in node.children)
    return StaticKind(ty=_field_text(node, "type", src), is_mut=is_mut), _name(node, src)


def _build_type_alias(node: Node, src: bytes) -> Tuple[ItemKind, str]:
    return TypeAliasKind(ty=_field_text(node, "type", src)), _name(node, src)


def _build_macro_definition(node: Node, src: bytes) -> Tuple[ItemKind, str]:
    return MacroKind(is_declarative=True), _name(node, src)


def _build_macro_invocation(node: Node, src: bytes) -> Optional[Tuple[ItemKind, str]]:
    if not _in_item_position(node):
        return None
    return MacroKind(is_declarative=False), ANONYMOUS


_ITEM_BUILDERS: Dict[str, Callable[[Node, bytes], Optional[Tuple[ItemKind, str]]]] = {
    "function_item": _build_function,
    "struct_item": _build_struct,
    "enum_item": _build_enum,
    "trait_item": _build_trait,
    "impl_item": _build_impl,
    "mod_item": _build_mod,
    "use_declaration": _build_use,
    "const_item": _build_const,
    "static_item": _build_static,
    "type_item": _build_type_alias,
    "macro_definition": _build_macro_definition,
    "macro_invocation": _build_macro_invocation,
}


# --- Helpers ---

def _is_method_member(node: Node) -> bool:
    parent = node.parent
    if parent is None or parent.type != "declaration_list":
        return False
    owner = parent.parent
    return owner is not None and owner.type in _METHOD_CONTAINERS


def _in_item_position(node: Node) -> bool:
    parent = node.parent
    if parent is not None and parent.type == "expression_statement":
        parent = parent.parent
    if parent is None:
        return False
    if parent.type in _MACRO_ITEM_PARENTS:
        return True
    return (
        parent.type == "declaration_list"
        and parent.parent is not None
        and parent.parent.type == "mod_item"
    )


def _member_function_names(node: Node, src: bytes, include_signatures: bool) -> List[str]:
    body = node.child_by_field_name("body")
    if body is None:
        return []
    wanted = {"function_item", "function_signature_item"} if include_signatures else {"function_item"}
    return [_name(child, src) for child in body.named_children if child.type in wanted]


def _extract_parameters(node: Node, src: bytes) -> List[Parameter]:
    params_node = node.child_by_field_name("parameters")
    if params_node is None:
        return []
    params: List[Parameter] = []
    for child in params_node.named_children:
        if child.type == "self_parameter":
            params.append(Parameter(name="self", ty=_node_text(src, child), is_self=True))
        elif child.type == "parameter":
            pattern = child.child_by_field_name("pattern")
            name = _node_text(src, pattern) if pattern is not None and pattern.type == "identifier" else "_"
            params.append(Parameter(name=name, ty=_field_text(child, "type", src)))
    return params


def _extract_fields(body: Node, src: bytes) -> List[StructField]:
    fields: List[StructField] = []
    if body.type == "field_declaration_list":
        for child in body.named_children:
            if child.type != "field_declaration":
                continue
            fields.append(
                StructField(
                    ty=_field_text(child, "type", src),
                    name=_field_text(child, "name", src) or None,
                    visibility=_visibility(child, src),
                )
            )
    elif body.type == "ordered_field_declaration_list":
        pending = Visibility.PRIVATE
        for child in body.named_children:
            if child.type == "attribute_item":
                continue
            if child.type == "visibility_modifier":
                pending = _parse_visibility(_node_text(src, child))
                continue
            fields.append(StructField(ty=_node_text(src, child), visibility=pending))
            pending = Visibility.PRIVATE
    return fields


def _extract_decorations(node: Node, src: bytes) -> Tuple[List[str], Optional[str]]:
    attributes: List[str] = []
    doc_lines: List[str] = []
    sibling = node.prev_sibling
    while sibling is not None and sibling.type in _DECORATION_NODES:
        text = _node_text(src, sibling).strip()
        if sibling.type == "attribute_item":
            path = _attribute_path(sibling, src)
            if path and path != "doc":
                attributes.append(f"#[{path}]")
        elif text.startswith("///") and not text.startswith("////"):
            doc_lines.append(text[3:].strip())
        elif text.startswith("/**") and not text.startswith("/***"):
            body = text[3:-2] if text.endswith("*/") else text[3:]
            doc_lines.append("\n".join(line.strip().lstrip("*").strip() for line in body.strip().splitlines()))
        sibling = sibling.prev_sibling
    attributes.reverse()
    doc_lines.reverse()
    return attributes, ("\n".join(doc_lines) if doc_lines else None)


def _attribute_path(node: Node, src: bytes) -> str:
    for child in node.named_children:
        if child.type == "attribute":
            if child.named_child_count == 0:
                return _node_text(src, child)
            return _node_text(src, child.named_children[0])
    return ""


def _visibility(node: Node, src: bytes) -> Visibility:
    for child in node.children:
        if child.type == "visibility_modifier":
            return _parse_visibility(_node_text(src, child))
    return Visibility.PRIVATE


def _parse_visibility(text: str) -> Visibility:
    compact = "".join(text.split())
    if compact == "pub":
        return Visibility.PUBLIC
    if compact in ("pub(crate)", "crate"):
        return Visibility.CRATE
    if compact == "pub(super)":
        return Visibility.SUPER
    return Visibility.RESTRICTED


def _is_async(node: Node) -> bool:
    for child in node.children:
        if child.type == "function_modifiers":
            return any(modifier.type == "async" for modifier in child.children)
        if child.type == "async":
            return True
    return False


def _strip_generics(text: str) -> str:
    return "".join(text.split("<", 1)[0].split())


def _name(node: Node, src: bytes) -> str:
    return _field_text(node, "name", src) or ANONYMOUS


def _field_text(node: Node, field: str, src: bytes) -> str:
    child = node.child_by_field_name(field)
    return _node_text(src, child) if child is not None else ""


def _span(node: Node) -> Span:
    return Span(
        start_line=node.start_point[0] + 1,
        start_col=node.start_point[1],
        end_line=node.end_point[0] + 1,
        end_col=node.end_point[1],
    )


def _node_text(src: bytes, node: Optional[Node]) -> str:
    if node is None:
        return ""
    return src[node.start_byte:node.end_byte].decode("utf-8")


def _walk(node: Node):
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))
