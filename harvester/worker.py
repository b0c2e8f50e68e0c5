from __future__ import annotations

import time
from typing import Any, Callable, Dict, List

from .base import BaseScraper
from .config import ScrapeOptions
from .errors import SessionError
from .log import get_unit_logger
from .models import AttemptRecord, Chunk, MessageKind, UnitMessage, WorkItem
from .retry import describe, retry_call
from .session import SessionBase, SessionFactory

EXIT_OK = 0
EXIT_SESSION_FAILED = 1

Emit = Callable[[UnitMessage], None]


class ExecutionUnit:
    """Processes one chunk of work items sequentially inside one session.

    All results leave the unit as messages through `emit`; nothing is raised
    across the unit boundary except a genuine crash, which the manager sees
    through the unit's lifecycle signal. Items are handled strictly one at a
    time in chunk order.
    """

    def __init__(
        self,
        unit_id: int,
        chunk: Chunk,
        scraper: BaseScraper,
        session_factory: SessionFactory,
        options: ScrapeOptions,
        emit: Emit,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.unit_id = unit_id
        self._chunk = chunk
        self._scraper = scraper
        self._session_factory = session_factory
        self._options = options
        self._policy = options.retry_policy()
        self._emit = emit
        self._sleep = sleep
        self._log = get_unit_logger("worker", unit_id)

    def run(self) -> int:
        """Process the whole chunk and return an exit code."""
        self._log.info(
            "Received %d items. Options: pause=%dms timeout=%dms retries=%d retry_delay=%dms",
            len(self._chunk),
            self._options.pause_between_items_ms,
            self._options.per_item_timeout_ms,
            self._options.max_retries_per_item,
            self._options.retry_delay_ms,
        )

        try:
            session = self._session_factory()
        except Exception as exc:  # noqa: BLE001
            return self._setup_failed(exc)
        try:
            session.open()
        except Exception as exc:  # noqa: BLE001
            self._release(session)
            return self._setup_failed(exc)
        self._log.info("Session established.")

        try:
            self._process_chunk(session)
        finally:
            self._release(session)

        self._log.info("Finished processing all assigned items.")
        self._send(MessageKind.DONE)
        return EXIT_OK

    def _setup_failed(self, exc: Exception) -> int:
        reason = f"session setup failed: {describe(exc)}"
        self._log.error(reason)
        self._send(MessageKind.ERROR, reason=reason)
        return EXIT_SESSION_FAILED

    def _process_chunk(self, session: SessionBase) -> None:
        items = self._chunk.items
        for position, item in enumerate(items):
            self._log.info(
                "Processing item %d/%d: %s", position + 1, len(items), item.name, extra={"item_id": item.item_id}
            )
            try:
                outcome = retry_call(
                    lambda attempt: self._attempt(session, item, attempt),
                    self._policy,
                    item_id=item.item_id,
                    retry_on=self._scraper.transient_errors,
                    on_failure=self._log_attempt_failure,
                    sleep=self._sleep,
                )
            except SessionError as exc:
                rest = [i.item_id for i in items[position + 1:]]
                reason = f"session lost: {describe(exc)}; {len(rest)} items unprocessed: {', '.join(rest) or '-'}"
                self._log.error(reason, extra={"item_id": item.item_id})
                self._send(MessageKind.ERROR, item_id=item.item_id, reason=reason)
                return

            last_attempt = outcome.attempt_count - 1
            if outcome.success:
                self._log.info(
                    "Successfully processed %s on attempt %d (%d records).",
                    item.name,
                    outcome.attempt_count,
                    len(outcome.value),
                    extra={"item_id": item.item_id, "attempt": last_attempt},
                )
                self._send(MessageKind.DATA, item_id=item.item_id, records=tuple(outcome.value), attempt=last_attempt)
            else:
                reason = f"Max retries reached: {outcome.reason}"
                self._log.error(
                    "Giving up on %s after %d attempts: %s",
                    item.name,
                    outcome.attempt_count,
                    outcome.reason,
                    extra={"item_id": item.item_id, "attempt": last_attempt},
                )
                self._send(MessageKind.ERROR, item_id=item.item_id, reason=reason, attempt=last_attempt)

            if position < len(items) - 1:
                self._log.info("Pausing for %.1f seconds...", self._options.pause_seconds)
                self._sleep(self._options.pause_seconds)

    def _attempt(self, session: SessionBase, item: WorkItem, attempt: int) -> List[Dict[str, Any]]:
        self._log.info(
            "Attempt %d/%d for %s",
            attempt + 1,
            self._policy.max_attempts,
            item.name,
            extra={"item_id": item.item_id, "attempt": attempt},
        )
        return self._scraper.process(session, item, self._options.timeout_seconds)

    def _log_attempt_failure(self, record: AttemptRecord) -> None:
        self._log.warning(
            "Attempt %d/%d failed: %s",
            record.attempt + 1,
            self._policy.max_attempts,
            record.reason,
            extra={"item_id": record.item_id, "attempt": record.attempt},
        )

    def _release(self, session: SessionBase) -> None:
        try:
            session.close()
        except Exception:  # noqa: BLE001
            self._log.warning("Error while closing session.", exc_info=True)
        else:
            self._log.info("Session closed.")

    def _send(self, kind: MessageKind, **fields: Any) -> None:
        self._emit(UnitMessage(kind=kind, unit_id=self.unit_id, **fields))
