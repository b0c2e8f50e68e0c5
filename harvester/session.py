from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

import requests
from curl_cffi import requests as curl_requests

from .errors import SessionError

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class SessionBase(ABC):
    """One isolated, authenticated context owned by a single execution unit.

    Sessions are not shared between units; a unit opens exactly one and must
    close it on every exit path."""

    @abstractmethod
    def open(self) -> None:
        """Establish the session. Raise SessionError if that is not possible."""

    @abstractmethod
    def get(self, url: str, timeout: float) -> Any:
        """Perform one request inside the session and return the response."""

    @abstractmethod
    def close(self) -> None:
        """Release all resources held by the session."""

    def __enter__(self) -> "SessionBase":
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class HttpSession(SessionBase):
    """Cookie-authenticated HTTP session.

    With an `impersonate` profile the session is a curl_cffi session that
    mimics a real browser's TLS fingerprint; without one it is a plain
    requests.Session.
    """

    def __init__(
        self,
        cookies: Dict[str, str],
        impersonate: Optional[str] = "chrome120",
        headers: Optional[Dict[str, str]] = None,
        probe_url: Optional[str] = None,
        probe_timeout: float = 30.0,
    ) -> None:
        self._cookies = dict(cookies)
        self._impersonate = impersonate
        self._headers = {"User-Agent": DEFAULT_USER_AGENT, **(headers or {})}
        self._probe_url = probe_url
        self._probe_timeout = probe_timeout
        self._session: Any = None

    @property
    def is_open(self) -> bool:
        return self._session is not None

    def open(self) -> None:
        if self._session is not None:
            return
        try:
            if self._impersonate:
                self._session = curl_requests.Session(impersonate=self._impersonate)
            else:
                self._session = requests.Session()
            self._session.headers.update(self._headers)
        except Exception as exc:  # noqa: BLE001
            self._session = None
            raise SessionError(f"could not create HTTP session: {exc}") from exc

        if self._probe_url:
            self._probe()

    def _probe(self) -> None:
        try:
            response = self.get(self._probe_url, timeout=self._probe_timeout)
        except Exception as exc:  # noqa: BLE001
            self.close()
            raise SessionError(f"session probe failed: {type(exc).__name__}: {exc}") from exc
        status_code = getattr(response, "status_code", None)
        close_response(response)
        if status_code is None or not 200 <= int(status_code) < 300:
            self.close()
            raise SessionError(f"session probe returned HTTP {status_code}")

    def get(self, url: str, timeout: float) -> Any:
        if self._session is None:
            raise SessionError("session is not open")
        return self._session.request(
            method="GET",
            url=url,
            cookies=self._cookies or None,
            timeout=timeout,
        )

    def close(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            session.close()


SessionFactory = Callable[[], SessionBase]


def http_session_factory(
    cookies: Dict[str, str],
    impersonate: Optional[str] = "chrome120",
    probe_url: Optional[str] = None,
) -> SessionFactory:
    """Return a factory producing one fresh HttpSession per call."""

    def _create() -> SessionBase:
        return HttpSession(cookies=cookies, impersonate=impersonate, probe_url=probe_url)

    return _create


def close_response(response: Any) -> None:
    close = getattr(response, "close", None)
    if callable(close):
        close()
