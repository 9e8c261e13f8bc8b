"""
Index of impl blocks by the normalized name of the type they implement.
"""

from typing import Dict, Iterable, List, Tuple

from .models import ImplKind, ParsedFile, ParsedItem


def normalize_type_name(type_text: str) -> str:
    """
    `&mut Vec<T>` -> `Vec`, `&MyStruct` -> `MyStruct`.

    Idempotent: normalizing a normalized name returns it unchanged.
    """
    name = type_text.strip()
    while True:
        previous = name
        name = name.lstrip("&").strip()
        if name.startswith("mut "):
            name = name[len("mut "):].strip()
        name = name.split("<", 1)[0].strip()
        if name == previous:
            return name


class ImplIndex:
    def __init__(self):
        self.impls: Dict[str, List[ParsedItem]] = {}

    def build(self, files: Iterable[ParsedFile]) -> "ImplIndex":
        for parsed in files:
            for item in parsed.items:
                if isinstance(item.kind, ImplKind):
                    self.add(item)
        return self

    def add(self, item: ParsedItem) -> None:
        key = normalize_type_name(item.kind.self_type)
        self.impls.setdefault(key, []).append(item)

    def get(self, type_name: str) -> List[ParsedItem]:
        return list(self.impls.get(type_name, []))

    def lookup(self, type_name: str) -> Tuple[int, List[str]]:
        """Impl count for the type and the traits it implements (inherent impls excluded)."""
        impls = self.impls.get(type_name, [])
        traits = [item.kind.trait_name for item in impls if item.kind.trait_name]
        return len(impls), traits
