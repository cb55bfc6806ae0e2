"""Upload chunk geometry for kwclient.

This module provides:
- Chunk size bounds imposed by the kiteworks upload endpoint
- Clamping of a configured chunk size into those bounds
- Derivation of an evenly dividing chunk size and chunk count
"""

from __future__ import annotations

from dataclasses import dataclass

# Chunk size configuration (in bytes)
MIN_CHUNK_SIZE = 1 * 1024 * 1024  # 1 MiB
MAX_CHUNK_SIZE = 65 * 1024 * 1024  # 68,157,440 bytes


@dataclass(frozen=True)
class ChunkGeometry:
    """How an upload of a given size is split into chunks."""

    total_size: int
    chunk_size: int
    total_chunks: int

    @property
    def last_chunk_size(self) -> int:
        """Return the size of the final chunk in bytes."""
        if self.total_chunks <= 1:
            return self.total_size
        return self.total_size - self.chunk_size * (self.total_chunks - 1)


def clamp_chunk_size(chunk_size: int | None) -> int:
    """Clamp a configured chunk size into [MIN_CHUNK_SIZE, MAX_CHUNK_SIZE].

    A missing or zero size selects the maximum.

    Args:
        chunk_size: Configured maximum chunk size in bytes.

    Returns:
        Chunk size bound to use.
    """
    if not chunk_size or chunk_size > MAX_CHUNK_SIZE:
        return MAX_CHUNK_SIZE
    if chunk_size <= MIN_CHUNK_SIZE:
        return MIN_CHUNK_SIZE
    return chunk_size


def chunk_geometry(total_size: int, max_chunk_size: int | None = None) -> ChunkGeometry:
    """Split an upload into evenly sized chunks.

    Picks the largest chunk size not above the bound that divides the total
    evenly, which is the size reached by decrementing the bound until the
    remainder is zero. Searching chunk counts upward from the minimum keeps
    this cheap for large files. When no divisor lies between MIN_CHUNK_SIZE
    and the bound, the smallest chunk count that respects the bound is used
    and the final chunk carries the remainder.

    Args:
        total_size: Size of the upload in bytes.
        max_chunk_size: Configured chunk size bound (clamped).

    Returns:
        ChunkGeometry for the upload.

    Raises:
        ValueError: If total_size is negative.
    """
    if total_size < 0:
        raise ValueError(f"Upload size cannot be negative: {total_size}")

    bound = clamp_chunk_size(max_chunk_size)

    if total_size <= bound:
        return ChunkGeometry(total_size=total_size, chunk_size=total_size, total_chunks=1)

    min_chunks = -(-total_size // bound)
    max_chunks = total_size // MIN_CHUNK_SIZE

    for count in range(min_chunks, max_chunks + 1):
        if total_size % count == 0:
            return ChunkGeometry(
                total_size=total_size,
                chunk_size=total_size // count,
                total_chunks=count,
            )

    return ChunkGeometry(
        total_size=total_size,
        chunk_size=total_size // min_chunks,
        total_chunks=min_chunks,
    )


def total_chunks(total_size: int, max_chunk_size: int | None = None) -> int:
    """Return the number of chunks an upload of total_size is split into."""
    return chunk_geometry(total_size, max_chunk_size).total_chunks
