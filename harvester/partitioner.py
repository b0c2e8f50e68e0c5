from __future__ import annotations

import math
from typing import List, Sequence

from .errors import SetupError
from .models import Chunk, WorkItem


def partition(items: Sequence[WorkItem], workers: int) -> List[Chunk]:
    """Split items into at most `workers` contiguous, non-empty chunks.

    Chunk size is ceil(len(items) / workers); the trailing chunk may be
    smaller. Concatenating the chunks in order gives back the input.
    """
    if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
        raise SetupError(f"worker count must be an integer >= 1, got {workers!r}")
    if not items:
        return []

    size = math.ceil(len(items) / workers)
    chunks: List[Chunk] = []
    for start in range(0, len(items), size):
        chunks.append(Chunk(index=len(chunks), items=tuple(items[start:start + size])))
    return chunks
