from mediastack.actions import ConfigurationAction, run_actions
from mediastack.credentials import ServiceCredential
from mediastack.global_logger import section, skip, warn
from mediastack.results import ActionResult, ActionStatus, ErrorKind
from typing import List, Optional


class ServiceIntegration:
    """Base class for the per-service configurators.

    Subclasses set ``name`` and override ``configuration_actions`` and
    ``verification_checks``. ``needs_credential`` gates every action on a
    key read from disk; integrations that authenticate over REST instead
    leave it False and raise ``SkipAction`` themselves.
    """

    name: str = ""
    needs_credential: bool = True

    def __init__(self, ctx):
        self.ctx = ctx

    @property
    def descriptor(self):
        return self.ctx.registry.get(self.name)

    @property
    def display_name(self) -> str:
        return self.descriptor.display_name

    def resolve_credential(self) -> Optional[ServiceCredential]:
        return self.ctx.credentials.get(self.name)

    def configuration_actions(self) -> List[ConfigurationAction]:
        return []

    def verification_checks(self) -> list:
        return []

    def _skipped(self, kind: ErrorKind, message: str) -> List[ActionResult]:
        return [
            ActionResult(self.name, action.description, ActionStatus.SKIPPED, kind, message)
            for action in self.configuration_actions()
        ] or [ActionResult(self.name, self.display_name, ActionStatus.SKIPPED, kind, message)]

    def configure(self) -> List[ActionResult]:
        section("Configuring %s...", self.display_name)
        if self.name not in self.ctx.ready:
            skip("%s is not reachable", self.display_name)
            return self._skipped(ErrorKind.READINESS_TIMEOUT, "service not ready")
        if self.needs_credential and self.resolve_credential() is None:
            warn("%s credentials not found; skipping its configuration", self.display_name)
            return self._skipped(ErrorKind.MISSING_CREDENTIAL, "credential not found")
        return run_actions(self.configuration_actions())
