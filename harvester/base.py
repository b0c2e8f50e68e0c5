from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Tuple, Type

from .errors import ItemError, ItemTimeoutError
from .models import WorkItem
from .session import SessionBase, close_response


class BaseScraper(ABC):
    """Abstract base class defining the per-item scraping pipeline.

    One call to process() is one attempt: validate -> fetch -> parse. Any
    failure is raised so the retry policy can count it; the response is
    always released before process() returns or raises.

    - Any 2xx status is a success; other statuses raise ItemError.
    - An attempt that outlives `timeout` is discarded with ItemTimeoutError,
      even if the transport eventually answered.
    """

    # Exceptions that count as a failed attempt. Anything else crashes the unit.
    transient_errors: Tuple[Type[BaseException], ...] = (Exception,)

    def process(self, session: SessionBase, item: WorkItem, timeout: float) -> List[Dict[str, Any]]:
        self.validate(item)
        start = time.monotonic()
        response = self.fetch(session, item, timeout)
        try:
            status_code = getattr(response, "status_code", None)
            if status_code is not None and not 200 <= int(status_code) < 300:
                raise ItemError(f"HTTP_{status_code}")
            records = self.parse(response, item)
        finally:
            close_response(response)

        elapsed = time.monotonic() - start
        if elapsed > timeout:
            raise ItemTimeoutError(f"attempt took {elapsed:.1f}s, limit is {timeout:.1f}s")
        return records

    def validate(self, item: WorkItem) -> None:
        if not item.item_id:
            raise ValueError("item.item_id is required")

    @abstractmethod
    def fetch(self, session: SessionBase, item: WorkItem, timeout: float) -> Any:
        ...

    @abstractmethod
    def parse(self, response: Any, item: WorkItem) -> List[Dict[str, Any]]:
        ...
