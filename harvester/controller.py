from __future__ import annotations

import functools
import queue
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Sequence, Union

from .aggregator import CompletionAggregator
from .base import BaseScraper
from .config import ScrapeOptions
from .errors import SetupError, SinkError
from .log import get_logger
from .models import MessageKind, PipelineStatus, UnitExit, UnitMessage, WorkItem
from .partitioner import partition
from .retry import describe
from .session import SessionFactory
from .storage import StorageBase
from .worker import ExecutionUnit

logger = get_logger("controller")

Mail = Union[UnitMessage, UnitExit]


class WorkerPoolManager:
    """Runs one execution unit per chunk and multiplexes their messages.

    Units run on their own threads and talk to the manager only through a
    mailbox queue. The manager is the single writer of the sink, and it
    always waits for every launched unit to settle; a failing or slow unit
    never cancels its siblings and its items are not handed to anyone else.
    """

    def __init__(
        self,
        scraper_factory: Callable[[], BaseScraper],
        session_factory: SessionFactory,
        sink: StorageBase,
        options: ScrapeOptions,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._scraper_factory = scraper_factory
        self._session_factory = session_factory
        self._sink = sink
        self._options = options
        self._sleep = sleep

    def run(self, items: Sequence[WorkItem]) -> PipelineStatus:
        """Process all items and return the final status once every unit has settled."""
        for item in items:
            if not isinstance(item, WorkItem):
                raise SetupError(f"expected WorkItem, got {type(item).__name__}")
        chunks = partition(items, self._options.number_of_workers)

        aggregator = CompletionAggregator(chunk.index + 1 for chunk in chunks)
        if not chunks:
            logger.info("No items to process.")
            return aggregator.finalize()

        logger.info(
            "Processing %d items with %d units (chunk size %d).",
            len(items),
            len(chunks),
            len(chunks[0]),
        )

        mailbox: "queue.Queue[Mail]" = queue.Queue()
        executor = ThreadPoolExecutor(max_workers=len(chunks), thread_name_prefix="unit")
        try:
            for chunk in chunks:
                unit = ExecutionUnit(
                    unit_id=chunk.index + 1,
                    chunk=chunk,
                    scraper=self._scraper_factory(),
                    session_factory=self._session_factory,
                    options=self._options,
                    emit=mailbox.put,
                    sleep=self._sleep,
                )
                aggregator.assign(unit.unit_id, (item.item_id for item in chunk.items))
                future = executor.submit(unit.run)
                future.add_done_callback(functools.partial(_post_exit, mailbox, unit.unit_id))
                logger.info("Launched unit with %d items.", len(chunk), extra={"unit_id": unit.unit_id})

            while aggregator.pending:
                self._dispatch(mailbox.get(), aggregator)
        finally:
            executor.shutdown(wait=True)

        status = aggregator.finalize()
        self._log_summary(status)
        return status

    def _dispatch(self, mail: Mail, aggregator: CompletionAggregator) -> None:
        if isinstance(mail, UnitExit):
            settled = aggregator.settle(mail.unit_id, mail.exit_code, mail.error)
            if settled.reason:
                logger.error("Unit settled as %s: %s", settled.state.value, settled.reason, extra={"unit_id": mail.unit_id})
            else:
                logger.info("Unit completed.", extra={"unit_id": mail.unit_id})
            if settled.unprocessed:
                logger.error(
                    "Unit left %d items unprocessed: %s",
                    len(settled.unprocessed),
                    ", ".join(settled.unprocessed),
                    extra={"unit_id": mail.unit_id},
                )
            return

        extra = {"unit_id": mail.unit_id, "item_id": mail.item_id, "attempt": mail.attempt}
        if mail.kind is MessageKind.DATA:
            self._write(mail, aggregator, extra)
        elif mail.kind is MessageKind.ERROR:
            logger.error("Unit reported error: %s", mail.reason, extra=extra)
            aggregator.record_error(mail.item_id)
        elif mail.kind is MessageKind.DONE:
            aggregator.record_done(mail.unit_id)

    def _write(self, mail: UnitMessage, aggregator: CompletionAggregator, extra: dict) -> None:
        try:
            written = self._sink.append(mail.records)
        except SinkError as exc:
            logger.error("Dropping %d records: %s", len(mail.records), exc, extra=extra)
            aggregator.record_data(0, mail.item_id)
            aggregator.record_sink_failure()
            return
        aggregator.record_data(written, mail.item_id)
        logger.debug("Appended %d records.", written, extra=extra)

    @staticmethod
    def _log_summary(status: PipelineStatus) -> None:
        logger.info(
            "Run finished: success=%s items_ok=%d items_failed=%d unprocessed=%d records=%d sink_failures=%d",
            status.success,
            status.items_succeeded,
            status.items_failed,
            len(status.unprocessed_item_ids),
            status.records_written,
            status.sink_failures,
        )
        if status.failed_item_ids:
            logger.error("Failed items: %s", ", ".join(status.failed_item_ids))
        if status.unprocessed_item_ids:
            logger.error("Unprocessed items: %s", ", ".join(status.unprocessed_item_ids))


def _post_exit(mailbox: "queue.Queue[Mail]", unit_id: int, future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        mailbox.put(UnitExit(unit_id=unit_id, exit_code=None, error=describe(exc)))
    else:
        mailbox.put(UnitExit(unit_id=unit_id, exit_code=future.result()))
