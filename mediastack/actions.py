from mediastack.global_logger import logger, ok, skip, warn
from mediastack.results import ActionResult, ActionStatus, ErrorKind
from dataclasses import dataclass
from typing import Callable, Iterable, List


class SkipAction(Exception):
    """Raised by check/apply when a prerequisite only known at run time is absent."""

    def __init__(self, reason: str, kind: ErrorKind = ErrorKind.MISSING_CREDENTIAL):
        super().__init__(reason)
        self.kind = kind


@dataclass
class ConfigurationAction:
    """One idempotent unit of work against a single service.

    ``check`` returns True when the remote state already matches; ``apply``
    is only called when it does not.
    """

    target_service: str
    description: str
    check: Callable[[], bool]
    apply: Callable[[], None]
    recheck: bool = True


def run_action(action: ConfigurationAction) -> ActionResult:
    def result(status, kind=None, message=""):
        return ActionResult(action.target_service, action.description, status, kind, message)

    try:
        if action.check():
            ok("%s: already configured", action.description)
            return result(ActionStatus.UNCHANGED)
    except SkipAction as e:
        skip("%s: %s", action.description, e)
        return result(ActionStatus.SKIPPED, e.kind, str(e))
    except Exception as e:
        warn("%s: could not read current state: %s", action.description, e)
        return result(ActionStatus.FAILED, ErrorKind.ACTION_FAILED, str(e))

    try:
        action.apply()
    except SkipAction as e:
        skip("%s: %s", action.description, e)
        return result(ActionStatus.SKIPPED, e.kind, str(e))
    except Exception as e:
        warn("%s: failed: %s", action.description, e)
        return result(ActionStatus.FAILED, ErrorKind.ACTION_FAILED, str(e))

    if action.recheck:
        try:
            converged = action.check()
        except Exception as e:
            logger.debug("Re-check of %s failed: %s", action.description, e)
            converged = False
        if not converged:
            warn("%s: applied, but the change is not visible yet", action.description)
            return result(ActionStatus.CHANGED, message="not confirmed")
    ok("%s", action.description)
    return result(ActionStatus.CHANGED)


def run_actions(actions: Iterable[ConfigurationAction]) -> List[ActionResult]:
    return [run_action(action) for action in actions]
