from __future__ import annotations

import json
import shlex as _shlex
from typing import Any, Dict, List

from .errors import SetupError
from .log import get_logger
from .models import WorkItem

logger = get_logger("inputs")

DEFAULT_ID_FIELD = "Organization Permalink"


def load_items(path: str, id_field: str = DEFAULT_ID_FIELD) -> List[WorkItem]:
    """Read the work-item snapshot: a JSON array of objects keyed by `id_field`."""
    data = _read_json(path, "items")
    if not isinstance(data, list):
        raise SetupError(f"{path}: items must be a JSON array")

    items: List[WorkItem] = []
    seen: set[str] = set()
    for index, entry in enumerate(data):
        item_id = entry.get(id_field) if isinstance(entry, dict) else None
        if not item_id:
            logger.warning("Skipping item #%d in %s: no '%s'.", index + 1, path, id_field)
            continue
        item_id = str(item_id)
        if item_id in seen:
            raise SetupError(f"{path}: duplicate item '{item_id}'")
        seen.add(item_id)
        items.append(WorkItem(item_id=item_id, payload=dict(entry)))

    logger.info("Loaded %d items from %s.", len(items), path)
    return items


def load_cookies(path: str) -> Dict[str, str]:
    """Load the credentials bundle.

    Accepts either a JSON array of {"name", "value"} objects (a browser
    cookie export) or a file holding a copied `curl` command, whose cookie
    header and -b arguments are used.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = f.read().strip()
    except OSError as exc:
        raise SetupError(f"could not read credentials {path}: {exc}") from exc

    if raw.startswith("curl"):
        cookies = cookies_from_curl(raw)
    else:
        try:
            cookies = cookies_from_json(json.loads(raw))
        except json.JSONDecodeError as exc:
            raise SetupError(f"{path}: credentials are not valid JSON: {exc}") from exc

    if not cookies:
        raise SetupError(f"{path}: no cookies found")
    logger.info("Loaded %d cookies from %s.", len(cookies), path)
    return cookies


def cookies_from_json(data: Any) -> Dict[str, str]:
    if not isinstance(data, list):
        raise SetupError("credentials must be a JSON array of {name, value} objects")
    cookies: Dict[str, str] = {}
    for entry in data:
        if not isinstance(entry, dict) or "name" not in entry or "value" not in entry:
            raise SetupError(f"invalid cookie entry: {entry!r}")
        cookies[str(entry["name"])] = str(entry["value"])
    return cookies


def cookies_from_curl(curl_cmd: str) -> Dict[str, str]:
    tokens = _shlex.split(curl_cmd, posix=True)
    if not tokens or tokens[0] != "curl":
        raise SetupError("curl credentials must start with 'curl'.")

    cookies: Dict[str, str] = {}
    i = 1
    while i < len(tokens) - 1:
        t = tokens[i]
        if t in ("-H", "--header"):
            k, sep, v = tokens[i + 1].partition(":")
            if sep and k.strip().lower() == "cookie":
                cookies.update(_parse_cookie_str(v.strip()))
            i += 2
            continue
        if t in ("-b", "--cookie"):
            cookies.update(_parse_cookie_str(tokens[i + 1].strip()))
            i += 2
            continue
        i += 1
    return cookies


def _parse_cookie_str(raw: str) -> Dict[str, str]:
    cookies: Dict[str, str] = {}
    for pair in raw.split(";"):
        part = pair.strip()
        if not part or "=" not in part:
            continue
        k, v = part.split("=", 1)
        cookies[k.strip()] = v.strip()
    return cookies


def _read_json(path: str, what: str) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except OSError as exc:
        raise SetupError(f"could not read {what} {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise SetupError(f"{path}: {what} file is not valid JSON: {exc}") from exc
