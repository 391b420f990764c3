"""Chunk planning shared by the import loop and the export artifact writer."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

DEFAULT_CHUNK_SIZE = 1000
# Row 0 of an export artifact holds the column headers.
HEADER_ROWS = 1


@dataclass(frozen=True)
class Chunk:
    index: int
    start: int
    stop: int

    def __len__(self) -> int:
        return self.stop - self.start


@dataclass(frozen=True)
class ChunkPlan:
    """Partition of ``[0, total_rows)`` into fixed-size chunks.

    Every chunk but the last holds exactly ``chunk_size`` rows; the last one
    may be partial. Zero rows produce zero chunks.
    """

    total_rows: int
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self) -> None:
        if self.total_rows < 0:
            raise ValueError(f"total_rows must be >= 0, got {self.total_rows}")
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be > 0, got {self.chunk_size}")

    @property
    def total_chunks(self) -> int:
        return -(-self.total_rows // self.chunk_size)

    def chunk(self, index: int) -> Chunk:
        if not 0 <= index < self.total_chunks:
            raise IndexError(f"chunk index {index} out of range (0..{self.total_chunks - 1})")
        start = index * self.chunk_size
        return Chunk(index=index, start=start, stop=min(start + self.chunk_size, self.total_rows))

    def __iter__(self) -> Iterator[Chunk]:
        for index in range(self.total_chunks):
            yield self.chunk(index)

    def rows_attempted(self, chunks_done: int) -> int:
        """Rows covered by the first ``chunks_done`` chunks."""
        return min(chunks_done * self.chunk_size, self.total_rows)


def output_cursor(batch_index: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """0-based artifact row where export batch ``batch_index`` starts."""
    if batch_index < 0:
        raise ValueError(f"batch_index must be >= 0, got {batch_index}")
    return HEADER_ROWS + batch_index * chunk_size


def percent(done: int, total: int) -> int:
    """Whole percentage, rounded half up and clamped to 0..100."""
    if total <= 0:
        return 0
    value = (200 * done + total) // (2 * total)
    return max(0, min(100, value))

