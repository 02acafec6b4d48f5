from mediastack.arr_settings import ArrIntegration
from mediastack.bazarr_settings import BazarrIntegration
from mediastack.global_logger import logger, ok, section, warn
from mediastack.jellyfin_settings import JellyfinIntegration
from mediastack.prowlarr_settings import ProwlarrIntegration
from mediastack.qbittorrent_settings import QBittorrentIntegration
from mediastack.readiness import wait_for_services
from mediastack.results import ActionResult, ActionStatus, PreconditionError, RunReport
from mediastack.run_context import RunContext
from mediastack.sabnzbd_settings import SABnzbdIntegration
from mediastack.seerr_settings import JellyseerrIntegration
from mediastack.template_renderer import render_artifacts
from mediastack.verification import (
    container_checks,
    health_checks,
    landing_checks,
    print_summary,
    run_checks,
)
from dataclasses import dataclass, field
from typing import List, Optional


# Downloaders before the *arr apps that reference them, Jellyfin before the
# notifications that need its key, *arr apps before Prowlarr/Bazarr/Jellyseerr.
INTEGRATION_ORDER = (
    "qbittorrent",
    "sabnzbd",
    "jellyfin",
    "sonarr",
    "sonarr-anime",
    "radarr",
    "prowlarr",
    "bazarr",
    "jellyseerr",
)

_FACTORIES = {
    "qbittorrent": QBittorrentIntegration,
    "sabnzbd": SABnzbdIntegration,
    "jellyfin": JellyfinIntegration,
    "sonarr": lambda ctx: ArrIntegration(ctx, "sonarr"),
    "sonarr-anime": lambda ctx: ArrIntegration(ctx, "sonarr-anime"),
    "radarr": lambda ctx: ArrIntegration(ctx, "radarr"),
    "prowlarr": ProwlarrIntegration,
    "bazarr": BazarrIntegration,
    "jellyseerr": JellyseerrIntegration,
}

KEY_FILE_SERVICES = ("sonarr", "sonarr-anime", "radarr", "prowlarr", "bazarr", "sabnzbd", "jellyseerr")


@dataclass
class SetupOutcome:
    actions: List[ActionResult] = field(default_factory=list)
    report: RunReport = field(default_factory=RunReport)

    def count(self, status: ActionStatus) -> int:
        return len([a for a in self.actions if a.status == status])

    @property
    def exit_code(self) -> int:
        return self.report.exit_code


def build_integrations(ctx: RunContext, names=INTEGRATION_ORDER) -> list:
    return [_FACTORIES[name](ctx) for name in names]


def log_credentials(ctx: RunContext) -> None:
    section("Reading API keys...")
    for name in KEY_FILE_SERVICES:
        display = ctx.registry.get(name).display_name
        if ctx.credentials.get(name) is not None:
            ok("%s key found", display)
        else:
            warn("%s key not found", display)


def configure_all(ctx: RunContext, integrations: list) -> List[ActionResult]:
    results: List[ActionResult] = []
    for integration in integrations:
        results.extend(integration.configure())
    return results


def collect_checks(ctx: RunContext, integrations: list) -> list:
    checks = health_checks(ctx)
    for integration in integrations:
        checks.extend(integration.verification_checks())
    checks.extend(landing_checks(ctx))
    checks.extend(container_checks(ctx))
    return checks


def run_verification(ctx: RunContext, integrations: Optional[list] = None) -> RunReport:
    section("Verifying the stack...")
    if integrations is None:
        integrations = build_integrations(ctx)
    report = run_checks(ctx, collect_checks(ctx, integrations))
    print_summary(report)
    return report


def require_runtime(ctx: RunContext) -> None:
    if not ctx.runtime.available():
        raise PreconditionError("Docker is not installed")
    if not ctx.runtime.daemon_running():
        raise PreconditionError("Docker is not running")


def run_setup(ctx: RunContext, verify: bool = True) -> SetupOutcome:
    """Wait, configure every service in order, render configs, then verify."""
    require_runtime(ctx)
    outcome = SetupOutcome()
    wait_for_services(ctx)
    log_credentials(ctx)

    integrations = build_integrations(ctx)
    outcome.actions.extend(configure_all(ctx, integrations))
    outcome.actions.extend(render_artifacts(ctx))

    logger.info(
        "Configuration finished: %s changed, %s unchanged, %s skipped, %s failed",
        outcome.count(ActionStatus.CHANGED),
        outcome.count(ActionStatus.UNCHANGED),
        outcome.count(ActionStatus.SKIPPED),
        outcome.count(ActionStatus.FAILED),
    )
    if verify:
        outcome.report = run_verification(ctx, integrations)
    return outcome
