from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class WorkItem:
    item_id: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return str(self.payload.get("Organization Name") or self.item_id)


@dataclass(frozen=True)
class Chunk:
    index: int
    items: Tuple[WorkItem, ...]

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class AttemptRecord:
    item_id: str
    attempt: int
    success: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class RetryOutcome:
    """Final result of running one item through the retry policy."""

    success: bool
    value: Any
    attempts: Tuple[AttemptRecord, ...]
    reason: Optional[str] = None

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)


class MessageKind(str, enum.Enum):
    DATA = "data"
    ERROR = "error"
    DONE = "done"


@dataclass(frozen=True)
class UnitMessage:
    kind: MessageKind
    unit_id: int
    item_id: Optional[str] = None
    records: Tuple[Dict[str, Any], ...] = ()
    reason: Optional[str] = None
    attempt: Optional[int] = None


@dataclass(frozen=True)
class UnitExit:
    """Lifecycle signal posted when a unit's thread settles."""

    unit_id: int
    exit_code: Optional[int]
    error: Optional[str] = None


class UnitState(str, enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    CRASHED = "crashed"
    EXITED_NONZERO = "exited_nonzero"


@dataclass(frozen=True)
class UnitStatus:
    unit_id: int
    state: UnitState
    reason: Optional[str] = None
    unprocessed: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PipelineStatus:
    units: Dict[int, UnitStatus]
    success: bool
    items_succeeded: int
    items_failed: int
    records_written: int
    sink_failures: int
    failed_item_ids: List[str] = field(default_factory=list)
    unprocessed_item_ids: List[str] = field(default_factory=list)
