from __future__ import annotations
from typing import Dict, Iterable, List, Optional


HALT = 0
HALT_NAME = "<H>"

BLANK = 0
DEFAULT_BLANK_NAME = "_"


class Interner:
    """Bidirectional name <-> id table.

    Ids are handed out sequentially in first-seen order and are never
    reused or removed, so an id stays valid for the lifetime of the table.
    """

    def __init__(self, reserved: Iterable[str] = ()) -> None:
        self._ids: Dict[str, int] = {}
        self._names: List[str] = []
        for name in reserved:
            self.intern(name)

    def intern(self, name: str) -> int:
        existing = self._ids.get(name)
        if existing is not None:
            return existing
        ident = len(self._names)
        self._ids[name] = ident
        self._names.append(name)
        return ident

    def resolve(self, ident: int) -> str:
        if ident < 0 or ident >= len(self._names):
            raise KeyError(ident)
        return self._names[ident]

    def describe(self, ident: int) -> str:
        """Name for display; ids never handed out render as the bare number."""
        if 0 <= ident < len(self._names):
            return self._names[ident]
        return str(ident)

    def lookup(self, name: str) -> Optional[int]:
        return self._ids.get(name)

    def names(self) -> List[str]:
        return list(self._names)

    def snapshot(self) -> Dict[str, int]:
        return dict(self._ids)

    def __contains__(self, name: object) -> bool:
        return name in self._ids

    def __len__(self) -> int:
        return len(self._names)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._names!r})"


class StateInterner(Interner):
    """State table whose id 0 is always the halting state ``<H>``."""

    def __init__(self) -> None:
        super().__init__(reserved=(HALT_NAME,))


class SymbolInterner(Interner):
    """Symbol table whose id 0 is always the blank symbol."""

    def __init__(self, blank_name: str = DEFAULT_BLANK_NAME) -> None:
        super().__init__(reserved=(blank_name,))
        self.blank_name = blank_name
