from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from interner import BLANK


DEFAULT_CHUNK_SIZE = 1024
CELL_DTYPE = np.int64


@dataclass(frozen=True)
class TapeConfig:
    chunk_size: int = DEFAULT_CHUNK_SIZE
    blank: int = BLANK

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")


class Tape:
    """Unbounded tape indexed by signed integers.

    Cells are grouped into fixed-size chunks keyed by ``pos // chunk_size``.
    Floor division sends negative positions to negative chunk ids, so the
    tape grows left exactly the way it grows right. Chunks are allocated on
    first write only; reading an untouched chunk returns the blank value.
    """

    def __init__(self, initial: Sequence[int] = (), config: Optional[TapeConfig] = None) -> None:
        self.config = config or TapeConfig()
        self.chunk_size = self.config.chunk_size
        self.blank = self.config.blank
        self._chunks: Dict[int, NDArray[np.int64]] = {}
        size = self.chunk_size
        for start in range(0, len(initial), size):
            chunk = self._allocate(start // size)
            values = initial[start:start + size]
            chunk[: len(values)] = values

    def _allocate(self, chunk_id: int) -> NDArray[np.int64]:
        chunk = np.full(self.chunk_size, self.blank, dtype=CELL_DTYPE)
        self._chunks[chunk_id] = chunk
        return chunk

    def read(self, pos: int) -> int:
        chunk = self._chunks.get(pos // self.chunk_size)
        if chunk is None:
            return self.blank
        return int(chunk[pos % self.chunk_size])

    def write(self, pos: int, symbol: int) -> None:
        chunk_id = pos // self.chunk_size
        chunk = self._chunks.get(chunk_id)
        if chunk is None:
            chunk = self._allocate(chunk_id)
        chunk[pos % self.chunk_size] = symbol

    def __getitem__(self, pos: int) -> int:
        return self.read(pos)

    def __setitem__(self, pos: int, symbol: int) -> None:
        self.write(pos, symbol)

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    def cells(self) -> Iterator[Tuple[int, int]]:
        """Yield (position, symbol) for every non-blank cell, left to right."""
        size = self.chunk_size
        for chunk_id in sorted(self._chunks):
            chunk = self._chunks[chunk_id]
            base = chunk_id * size
            for offset in np.flatnonzero(chunk != self.blank):
                yield base + int(offset), int(chunk[offset])

    def bounds(self) -> Optional[Tuple[int, int]]:
        positions = [pos for pos, _ in self.cells()]
        if not positions:
            return None
        return positions[0], positions[-1]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Tape):
            return NotImplemented
        return self.blank == other.blank and list(self.cells()) == list(other.cells())

    def __repr__(self) -> str:
        return f"Tape(chunk_size={self.chunk_size}, chunks={self.chunk_count}, bounds={self.bounds()})"
