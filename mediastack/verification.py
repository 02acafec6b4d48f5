from mediastack.global_logger import fail, logger, ok, section, skip
from mediastack.http_client import probe_status
from mediastack.results import CheckResult, CheckStatus, ErrorKind, RunReport, SkipCheck
from mediastack.service_registry import CONTAINERS
from dataclasses import dataclass
from typing import Callable, Iterable, List, Tuple
import re, requests


GROUP_ORDER = (
    "Service health",
    "Download clients",
    "Root folders",
    "Prowlarr",
    "Jellyfin",
    "Jellyfin sync",
    "Jellyseerr",
    "Quality profiles",
    "Authentication",
    "Health checks",
    "Landing page",
    "Docker containers",
)

REACHABILITY_BACKOFF_S = 5.0

PROXY_ENDPOINTS = (
    ("Landing page → qBittorrent proxy", "/api/qbt/torrents/info"),
    ("Proxy → Sonarr calendar", "/api/sonarr/calendar"),
    ("Proxy → Sonarr Anime calendar", "/api/sonarr-anime/calendar"),
    ("Proxy → Radarr calendar", "/api/radarr/calendar"),
    (
        "Proxy → Jellyfin latest",
        "/api/jellyfin/Items?SortBy=DateCreated&SortOrder=Descending&Limit=3"
        "&Recursive=true&IncludeItemTypes=Movie,Series",
    ),
    ("Proxy → Jellyseerr requests", "/api/jellyseerr/request"),
    ("Proxy → SABnzbd queue", "/api/sabnzbd/?mode=queue&output=json"),
)


@dataclass
class VerificationCheck:
    """A read-only probe.

    ``probe`` returns a bool, a ``CheckStatus``, or a ``(result, detail)``
    pair and may raise ``SkipCheck``. Names in ``requires`` must have a
    resolved credential, otherwise the check is skipped without probing.
    """

    description: str
    probe: Callable
    requires: Tuple[str, ...] = ()
    group: str = "Service health"


def _classify(outcome) -> Tuple[CheckStatus, str]:
    detail = ""
    if isinstance(outcome, tuple):
        outcome, detail = outcome
    if isinstance(outcome, CheckStatus):
        return outcome, str(detail or "")
    return (CheckStatus.PASS if outcome else CheckStatus.FAIL), str(detail or "")


def run_check(ctx, check: VerificationCheck) -> CheckResult:
    for name in check.requires:
        if ctx.credentials.get(name) is None:
            label = ctx.registry.get(name).display_name if name in ctx.registry else name
            return CheckResult(
                description=check.description,
                status=CheckStatus.SKIP,
                detail=f"{label} credential not found",
            )
    try:
        status, detail = _classify(check.probe())
    except SkipCheck as e:
        status, detail = CheckStatus.SKIP, str(e)
    except Exception as e:
        logger.debug("Check %r raised: %s", check.description, e)
        status, detail = CheckStatus.FAIL, str(e)
    kind = ErrorKind.VERIFICATION_FAILED if status == CheckStatus.FAIL else None
    return CheckResult(description=check.description, status=status, detail=detail, error_kind=kind)


def _log_result(result: CheckResult) -> None:
    text = result.description
    if result.detail and result.status != CheckStatus.PASS:
        text = f"{text}: {result.detail}"
    if result.status == CheckStatus.PASS:
        ok("%s", text)
    elif result.status == CheckStatus.SKIP:
        skip("%s", text)
    else:
        fail("%s", text)


def _ordered(checks: Iterable[VerificationCheck]) -> List[VerificationCheck]:
    rank = {g: i for i, g in enumerate(GROUP_ORDER)}
    return sorted(checks, key=lambda c: rank.get(c.group, len(GROUP_ORDER)))


def run_checks(ctx, checks: Iterable[VerificationCheck]) -> RunReport:
    report = RunReport()
    current_group = None
    for check in _ordered(checks):
        if check.group != current_group:
            current_group = check.group
            section("%s...", current_group)
        result = run_check(ctx, check)
        _log_result(result)
        report.add(result)
    return report


def reachability_probe(ctx, url: str) -> Callable:
    def probe():
        status = probe_status(url, timeout=5.0, session=ctx.session)
        if not status:
            ctx.sleep(REACHABILITY_BACKOFF_S)
            status = probe_status(url, timeout=5.0, session=ctx.session)
        return bool(status), f"HTTP {status}" if status else "no response"

    return probe


def health_checks(ctx) -> List[VerificationCheck]:
    checks = []
    for display, url in ctx.registry.health_endpoints():
        checks.append(
            VerificationCheck(f"{display} responds", reachability_probe(ctx, url))
        )
    return checks


def _fetch(ctx, url: str) -> requests.Response:
    return ctx.session.get(url, timeout=(5, 30))


def _is_json(ctx, url: str) -> bool:
    resp = _fetch(ctx, url)
    if resp.status_code >= 400:
        return False
    try:
        resp.json()
    except ValueError:
        return False
    return True


def landing_checks(ctx) -> List[VerificationCheck]:
    base = ctx.registry.get("landing").external_url
    page = {}

    def landing():
        if "resp" not in page:
            page["resp"] = _fetch(ctx, base)
        return page["resp"]

    def contains(needle):
        return lambda: landing().status_code < 400 and needle in landing().text

    def serves_html():
        return landing().status_code < 400 and re.search(r"Media.*Server", landing().text) is not None

    def content_type():
        return "text/html" in landing().headers.get("Content-Type", "").lower()

    checks = [
        VerificationCheck("Landing page → serves HTML", serves_html, group="Landing page"),
        VerificationCheck(
            "Landing page → Content-Type text/html", content_type, group="Landing page"
        ),
        VerificationCheck("Landing page → service grid", contains("Jellyfin"), group="Landing page"),
        VerificationCheck(
            "Landing page → downloads widget", contains("qbt/torrents"), group="Landing page"
        ),
    ]
    for description, path in PROXY_ENDPOINTS:
        url = f"{base.rstrip('/')}{path}"
        checks.append(
            VerificationCheck(description, lambda url=url: _is_json(ctx, url), group="Landing page")
        )
    return checks


def container_checks(ctx) -> List[VerificationCheck]:
    runtime_ok = ctx.runtime.available()

    def probe(container):
        def _probe():
            if not runtime_ok:
                raise SkipCheck("container runtime not available")
            status = ctx.runtime.status(container)
            return status == "running", status

        return _probe

    return [
        VerificationCheck(f"Container: {c}", probe(c), group="Docker containers")
        for c in CONTAINERS
    ]


def print_summary(report: RunReport) -> None:
    if report.failed == 0:
        ok("%s", report.summary())
    else:
        fail("%s", report.summary())
