from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .models import PipelineStatus, UnitState, UnitStatus


class CompletionAggregator:
    """Collects per-unit settlement and fault counters for one run.

    Owned and updated by the manager thread only. The run succeeds iff no
    unit crashed or exited nonzero, no item or sink fault was recorded and
    every assigned item was reported by its unit.
    """

    def __init__(self, unit_ids: Iterable[int]) -> None:
        self._units: Dict[int, UnitStatus] = {
            uid: UnitStatus(unit_id=uid, state=UnitState.RUNNING) for uid in unit_ids
        }
        self._done_signalled: set[int] = set()
        self._assigned: Dict[int, List[str]] = {}
        self._reported: set[str] = set()
        self.items_succeeded = 0
        self.items_failed = 0
        self.unit_errors = 0
        self.records_written = 0
        self.sink_failures = 0
        self.failed_item_ids: List[str] = []
        self.unprocessed_item_ids: List[str] = []

    @property
    def pending(self) -> int:
        return sum(1 for s in self._units.values() if s.state is UnitState.RUNNING)

    def assign(self, unit_id: int, item_ids: Iterable[str]) -> None:
        """Remember which items a unit owns, so unreported ones can be named."""
        self._assigned[unit_id] = list(item_ids)

    def record_data(self, records_written: int, item_id: Optional[str] = None) -> None:
        self.items_succeeded += 1
        self.records_written += records_written
        if item_id is not None:
            self._reported.add(item_id)

    def record_sink_failure(self) -> None:
        self.sink_failures += 1

    def record_error(self, item_id: Optional[str]) -> None:
        if item_id is None:
            self.unit_errors += 1
            return
        self.items_failed += 1
        self.failed_item_ids.append(item_id)
        self._reported.add(item_id)

    def record_done(self, unit_id: int) -> None:
        self._done_signalled.add(unit_id)

    def settle(self, unit_id: int, exit_code: Optional[int], error: Optional[str] = None) -> UnitStatus:
        """Record a unit's terminal state from its lifecycle signal."""
        unprocessed = tuple(i for i in self._assigned.get(unit_id, ()) if i not in self._reported)
        if error is not None:
            status = UnitStatus(unit_id, UnitState.CRASHED, error, unprocessed)
        elif exit_code != 0:
            status = UnitStatus(unit_id, UnitState.EXITED_NONZERO, f"exit code {exit_code}", unprocessed)
        elif unit_id not in self._done_signalled:
            status = UnitStatus(unit_id, UnitState.EXITED_NONZERO, "exited without done signal", unprocessed)
        else:
            status = UnitStatus(unit_id, UnitState.COMPLETED, None, unprocessed)
        self._units[unit_id] = status
        self.unprocessed_item_ids.extend(unprocessed)
        return status

    def finalize(self) -> PipelineStatus:
        if self.pending:
            raise RuntimeError(f"{self.pending} units have not settled")
        unit_ok = all(s.state is UnitState.COMPLETED for s in self._units.values())
        success = (
            unit_ok
            and self.items_failed == 0
            and self.unit_errors == 0
            and self.sink_failures == 0
            and not self.unprocessed_item_ids
        )
        return PipelineStatus(
            units=dict(self._units),
            success=success,
            items_succeeded=self.items_succeeded,
            items_failed=self.items_failed,
            records_written=self.records_written,
            sink_failures=self.sink_failures,
            failed_item_ids=list(self.failed_item_ids),
            unprocessed_item_ids=list(self.unprocessed_item_ids),
        )
