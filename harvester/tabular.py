"""Reshape scraped funding rounds into tabular artifacts.

merge_long  -- one row per (company, round), company fields prefixed
pivot_wide  -- one row per company, rounds spread into numbered columns
write_csv   -- CSV export of a list of flat rows

The run_* functions wrap these with file I/O and return True/False like the
other pipeline steps.
"""

from __future__ import annotations

import csv
import datetime as _dt
import json
import os
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional

from .inputs import DEFAULT_ID_FIELD
from .log import get_logger
from .storage import read_jsonl

logger = get_logger("tabular")

COMPANY_PREFIX = "Company: "
DATE_FIELD = "Announced Date"
PIVOT_FIELDS = (
    ("Date", "Announced Date"),
    ("Name", "Transaction Name"),
    ("InvestorsCount", "Number of Investors"),
    ("Sum", "Money Raised"),
    ("LeadInvestors", "Lead Investors"),
)
_DATE_FORMATS = ("%Y-%m-%d", "%b %d, %Y", "%B %d, %Y", "%d %b %Y", "%d %B %Y", "%Y-%m", "%Y")


def parse_date(value: Any) -> Optional[_dt.datetime]:
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    for fmt in _DATE_FORMATS:
        try:
            return _dt.datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def group_rounds(rounds: Iterable[Dict[str, Any]], id_field: str = DEFAULT_ID_FIELD) -> "OrderedDict[str, List[Dict[str, Any]]]":
    grouped: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()
    for r in rounds:
        key = r.get(id_field)
        if not key:
            logger.warning("Scraped round missing '%s'. Skipping.", id_field)
            continue
        grouped.setdefault(key, []).append(r)
    return grouped


def merge_long(
    companies: List[Dict[str, Any]],
    rounds: Iterable[Dict[str, Any]],
    id_field: str = DEFAULT_ID_FIELD,
) -> List[Dict[str, Any]]:
    """Join rounds onto companies, preserving company order, newest round first."""
    grouped = group_rounds(rounds, id_field)
    merged: List[Dict[str, Any]] = []
    for company in companies:
        company_rounds = grouped.get(company.get(id_field), [])
        if not company_rounds:
            logger.info("Company %s has no matching scraped funding rounds.", company.get(id_field))
            continue
        prefixed = {COMPANY_PREFIX + k: v for k, v in company.items()}
        # Unparseable dates sort as the oldest.
        ordered = sorted(
            company_rounds,
            key=lambda r: parse_date(r.get(DATE_FIELD)) or _dt.datetime.min,
            reverse=True,
        )
        for r in ordered:
            merged.append({**prefixed, **r})
    return merged


def pivot_wide(
    companies: List[Dict[str, Any]],
    rounds: Iterable[Dict[str, Any]],
    id_field: str = DEFAULT_ID_FIELD,
) -> List[Dict[str, Any]]:
    """One row per company with `Round <n>_<field>` columns, oldest round first."""
    grouped = group_rounds(rounds, id_field)
    max_rounds = max((len(v) for v in grouped.values()), default=0)

    wide: List[Dict[str, Any]] = []
    for company in companies:
        row: Dict[str, Any] = dict(company)
        company_rounds = sorted(
            grouped.get(company.get(id_field), []),
            key=lambda r: parse_date(r.get(DATE_FIELD)) or _dt.datetime.max,
        )
        for i in range(max_rounds):
            r = company_rounds[i] if i < len(company_rounds) else None
            for suffix, source in PIVOT_FIELDS:
                row[f"Round {i + 1}_{suffix}"] = r.get(source) if r else None
        wide.append(row)
    return wide


def write_csv(rows: List[Dict[str, Any]], path: str) -> int:
    """Write rows as CSV with the first row's keys as header. Returns rows written."""
    if not rows or not rows[0]:
        return 0
    header = list(rows[0].keys())
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=header, extrasaction="ignore", restval="")
        writer.writeheader()
        for row in rows:
            writer.writerow(row)
    return len(rows)


def run_merging(companies_path: str, scraped_path: str, output_path: str) -> bool:
    logger.info("Merging %s and %s into %s (long format).", companies_path, scraped_path, output_path)
    try:
        companies = _read_array(companies_path)
        merged = merge_long(companies, read_jsonl(scraped_path))
        _write_json(merged, output_path)
    except (OSError, ValueError) as exc:
        logger.error("Merging failed: %s", exc)
        return False
    logger.info("Saved %d merged rows.", len(merged))
    return True


def run_pivoting(companies_path: str, scraped_path: str, output_path: str) -> bool:
    logger.info("Pivoting %s and %s into %s (wide format).", companies_path, scraped_path, output_path)
    try:
        companies = _read_array(companies_path)
        wide = pivot_wide(companies, read_jsonl(scraped_path))
        _write_json(wide, output_path)
    except (OSError, ValueError) as exc:
        logger.error("Pivoting failed: %s", exc)
        return False
    logger.info("Saved %d wide rows.", len(wide))
    return True


def run_conversion(input_path: str, csv_path: str) -> bool:
    logger.info("Converting %s to CSV %s.", input_path, csv_path)
    try:
        rows = _read_array(input_path)
        written = write_csv(rows, csv_path)
    except (OSError, ValueError) as exc:
        logger.error("CSV conversion failed: %s", exc)
        return False
    if not written:
        logger.warning("No data found in %s. Skipping CSV output.", input_path)
    else:
        logger.info("Saved %d CSV rows.", written)
    return True


def _read_array(path: str) -> List[Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a JSON array")
    return data


def _write_json(data: Any, path: str) -> None:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
