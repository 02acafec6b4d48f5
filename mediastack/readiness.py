from mediastack.global_logger import logger, ok, section, warn
from mediastack.http_client import probe_status
from mediastack.results import ErrorKind
from mediastack.service_registry import SETUP_SERVICES
from dataclasses import dataclass
from typing import Callable, Iterable
import time


MAX_ATTEMPTS = 90
INTERVAL_S = 1.0
CONNECT_TIMEOUT_S = 2.0


@dataclass
class ReadinessResult:
    name: str
    ok: bool
    attempts: int
    status_code: int = 0

    @property
    def error_kind(self):
        return None if self.ok else ErrorKind.READINESS_TIMEOUT


def wait_for(
    name: str,
    url: str,
    max_attempts: int = MAX_ATTEMPTS,
    interval: float = INTERVAL_S,
    connect_timeout: float = CONNECT_TIMEOUT_S,
    sleep: Callable[[float], None] = time.sleep,
    session=None,
) -> ReadinessResult:
    """Poll ``url`` until any HTTP status comes back.

    A 401 or 500 still proves the listener is up; only the absence of a
    response counts against the attempt budget. Timeouts are returned, not
    raised.
    """
    attempts = 0
    while attempts < max(1, max_attempts):
        attempts += 1
        status = probe_status(url, timeout=connect_timeout, session=session)
        if status:
            logger.debug("%s answered %s after %s attempt(s)", name, status, attempts)
            return ReadinessResult(name, True, attempts, status)
        if attempts < max_attempts:
            sleep(interval)
    return ReadinessResult(name, False, attempts, 0)


def wait_for_services(ctx, names: Iterable[str] = SETUP_SERVICES) -> dict:
    section("Waiting for all services...")
    results = {}
    for name in names:
        descriptor = ctx.registry.get(name)
        result = wait_for(
            descriptor.display_name,
            descriptor.health_url,
            max_attempts=ctx.max_wait_attempts,
            sleep=ctx.sleep,
            session=ctx.session,
        )
        results[name] = result
        if result.ok:
            ctx.ready.add(name)
            ok("%s is up", descriptor.display_name)
        else:
            warn(
                "%s did not respond after %s attempts; its configuration will be skipped",
                descriptor.display_name,
                result.attempts,
            )
    return results
