from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import quote as _quote, urljoin as _urljoin

from bs4 import BeautifulSoup

from .base import BaseScraper
from .errors import ItemError
from .models import WorkItem
from .session import SessionBase

BASE_URL = "https://www.crunchbase.com"
ROUNDS_TABLE_SELECTOR = "#funding_rounds > section > div > tile-table > div > table"

PERMALINK_FIELD = "Organization Permalink"
NAME_FIELD = "Organization Name"
EMPTY_CELL = "—"


class FinancialDetailsScraper(BaseScraper):
    """Scrapes the funding-rounds table of one organization's financial details page.

    Each table row becomes one payload, tagged with the organization's
    permalink and name so that records stay attributable regardless of
    which unit produced them.
    """

    def __init__(self, base_url: str = BASE_URL) -> None:
        self._base_url = base_url.rstrip("/")

    def url_for(self, item: WorkItem) -> str:
        return f"{self._base_url}/organization/{_quote(item.item_id, safe='')}/financial_details"

    def fetch(self, session: SessionBase, item: WorkItem, timeout: float) -> Any:
        return session.get(self.url_for(item), timeout=timeout)

    def parse(self, response: Any, item: WorkItem) -> List[Dict[str, Any]]:
        html = getattr(response, "text", "") or ""
        rounds = parse_rounds_table(html, base_url=self._base_url)
        if rounds is None:
            raise ItemError(f"funding rounds table not found for {item.item_id}")
        return [
            {PERMALINK_FIELD: item.item_id, NAME_FIELD: item.payload.get(NAME_FIELD), **r}
            for r in rounds
        ]


def parse_rounds_table(html: str, base_url: str = BASE_URL) -> Optional[List[Dict[str, Any]]]:
    """Extract funding rounds from a financial details page.

    Returns None when the table is absent (page not loaded, blocked, or
    login wall) and an empty list when the table has no usable rows.
    """
    soup = BeautifulSoup(html, "html.parser")
    table = soup.select_one(ROUNDS_TABLE_SELECTOR)
    if table is None:
        return None

    rounds: List[Dict[str, Any]] = []
    for row in table.select("tbody tr"):
        cells = row.find_all("td")
        if len(cells) < 5:
            continue

        date_el = cells[0].select_one("span.field-type-date")
        link_el = cells[1].select_one("a.component--field-formatter")
        investors_el = cells[2].select_one("a.field-type-integer")
        leads = [_text(a) for a in cells[4].select("identifier-multi-formatter a")]

        rounds.append({
            "Announced Date": (date_el.get("title") or _text(date_el)) if date_el else None,
            "Transaction Name": _text(link_el),
            "Transaction Link": _urljoin(base_url + "/", link_el["href"]) if link_el and link_el.get("href") else None,
            "Number of Investors": _text(investors_el),
            "Money Raised": _money(cells[3]),
            "Lead Investors": ", ".join(name for name in leads if name),
        })
    return rounds


def _text(element: Any) -> Optional[str]:
    if element is None:
        return None
    return element.get_text(" ", strip=True)


def _money(cell: Any) -> Optional[str]:
    money_el = cell.select_one("span.field-type-money")
    if money_el is not None:
        value = money_el.get("title") or _text(money_el)
    else:
        value = _text(cell)
    if not value or value == EMPTY_CELL:
        return None
    return value
