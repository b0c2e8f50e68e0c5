from __future__ import annotations

import json
import os
from abc import ABC, abstractmethod
from typing import Any, BinaryIO, Dict, Iterator, Optional, Sequence

from .errors import SinkError
from .log import get_logger

logger = get_logger("storage")


class StorageBase(ABC):
    """Abstract base class for result sinks.

    A sink is written by exactly one thread (the pool manager), so
    implementations need no locking.
    """

    @abstractmethod
    def append(self, records: Sequence[Dict[str, Any]]) -> int:
        """Persist a batch of records; all of them or none. Return the count written."""

    @abstractmethod
    def close(self) -> None:
        """Flush pending writes and release resources."""

    def __enter__(self) -> "StorageBase":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class JsonlSink(StorageBase):
    """Stores records as JSON Lines (.jsonl), one object per line.

    Every batch is serialized up front, written through an unbuffered handle
    and fsynced, so a crash can at worst leave one partial trailing line. If
    the write fails the file is truncated back to the last committed size so
    the batch is not half-present, and nothing of it is left in a buffer to
    be flushed by a later append.
    """

    def __init__(self, path: str, append: bool = False) -> None:
        self._path = path
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._file: Optional[BinaryIO] = open(path, "ab" if append else "wb", buffering=0)
        self._size = self._file.seek(0, os.SEEK_END)

    @property
    def path(self) -> str:
        return self._path

    def append(self, records: Sequence[Dict[str, Any]]) -> int:
        if self._file is None:
            raise SinkError(f"sink {self._path} is closed")
        if not records:
            return 0
        try:
            chunk = "".join(json.dumps(r, ensure_ascii=False) + "\n" for r in records)
        except (TypeError, ValueError) as exc:
            raise SinkError(f"record is not JSON serializable: {exc}") from exc

        data = memoryview(chunk.encode("utf-8"))
        try:
            written = 0
            while written < len(data):
                written += self._file.write(data[written:])
            os.fsync(self._file.fileno())
        except OSError as exc:
            self._rollback()
            raise SinkError(f"append to {self._path} failed: {exc}") from exc
        self._size += len(data)
        return len(records)

    def _rollback(self) -> None:
        try:
            self._file.truncate(self._size)
            self._file.seek(self._size)
        except OSError:
            logger.error("Could not roll back partial write in %s", self._path, exc_info=True)

    def close(self) -> None:
        f, self._file = self._file, None
        if f is not None:
            f.close()


def read_jsonl(path: str) -> Iterator[Dict[str, Any]]:
    """Yield the JSON objects of a JSONL file, skipping blank and malformed lines.

    A malformed line is typically the partial last line of a run that was
    killed mid-write; it is logged and skipped rather than aborting the read.
    """
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            text = line.strip()
            if not text:
                continue
            try:
                obj = json.loads(text)
            except json.JSONDecodeError as exc:
                logger.warning("Skipping malformed JSONL line %d in %s: %s", lineno, path, exc)
                continue
            if not isinstance(obj, dict):
                logger.warning("Skipping non-object JSONL line %d in %s", lineno, path)
                continue
            yield obj
