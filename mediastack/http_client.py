from mediastack.global_logger import logger
from typing import Callable, Optional
import requests


CONNECT_TIMEOUT = 5
READ_TIMEOUT = 30
DEFAULT_TIMEOUT = (CONNECT_TIMEOUT, READ_TIMEOUT)

_MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def join(host: str, path: str) -> str:
    if not path:
        return host
    return f"{host.rstrip('/')}/{path.lstrip('/')}"


class ApiClient:
    """Thin JSON client bound to one service base URL.

    Every call goes through a shared ``requests.Session`` so cookie based
    logins (qBittorrent, Jellyseerr) carry over between requests. Calls that
    change remote state are reported to ``on_mutation`` so a run can account
    for what it touched.
    """

    def __init__(
        self,
        base_url: str,
        headers: Optional[dict] = None,
        session: Optional[requests.Session] = None,
        timeout=DEFAULT_TIMEOUT,
        on_mutation: Optional[Callable[[str, str], None]] = None,
    ):
        self.base_url = base_url
        self.session = session or requests.Session()
        self.headers = {"Accept": "application/json"}
        self.headers.update(headers or {})
        self.timeout = timeout
        self.on_mutation = on_mutation

    def url(self, path: str) -> str:
        return join(self.base_url, path)

    def request(
        self,
        method: str,
        path: str,
        data=None,
        params: Optional[dict] = None,
        form: Optional[dict] = None,
        headers: Optional[dict] = None,
        timeout=None,
        mutating: Optional[bool] = None,
    ):
        method = method.upper()
        url = self.url(path)
        merged_headers = dict(self.headers)
        merged_headers.update(headers or {})
        if mutating is None:
            mutating = method in _MUTATING_METHODS
        if mutating and self.on_mutation:
            self.on_mutation(method, url)

        resp = self.session.request(
            method,
            url,
            json=data,
            params=params,
            data=form,
            headers=merged_headers,
            timeout=timeout or self.timeout,
        )
        if resp.status_code >= 400:
            logger.debug(
                "%s %s returned %s: %s", method, url, resp.status_code, resp.text[:300]
            )
        resp.raise_for_status()
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError:
            return resp.text

    def get(self, path: str, **kwargs):
        return self.request("GET", path, **kwargs)

    def post(self, path: str, data=None, **kwargs):
        return self.request("POST", path, data=data, **kwargs)

    def put(self, path: str, data=None, **kwargs):
        return self.request("PUT", path, data=data, **kwargs)

    def delete(self, path: str, **kwargs):
        return self.request("DELETE", path, **kwargs)


def probe_status(
    url: str,
    timeout: float = 2.0,
    session: Optional[requests.Session] = None,
) -> int:
    """Return the HTTP status for ``url`` or 0 when nothing answered."""
    getter = session.get if session is not None else requests.get
    try:
        resp = getter(url, timeout=timeout, allow_redirects=False)
    except requests.RequestException as e:
        logger.debug("No response from %s: %s", url, e)
        return 0
    return resp.status_code
