from dataclasses import dataclass
from enum import Enum
from pydantic import BaseModel
from typing import List, Optional


class ErrorKind(str, Enum):
    PRECONDITION = "precondition"
    READINESS_TIMEOUT = "readiness_timeout"
    MISSING_CREDENTIAL = "missing_credential"
    ACTION_FAILED = "action_failed"
    VERIFICATION_FAILED = "verification_failed"


class ActionStatus(str, Enum):
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    SKIPPED = "skipped"
    FAILED = "failed"


class CheckStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"


class PreconditionError(Exception):
    """A local prerequisite is missing; nothing has been mutated yet."""

    kind = ErrorKind.PRECONDITION


class SkipCheck(Exception):
    """Raised from a probe when a prerequisite for the check is absent."""


@dataclass
class ActionResult:
    service: str
    description: str
    status: ActionStatus
    error_kind: Optional[ErrorKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status != ActionStatus.FAILED


class CheckResult(BaseModel):
    description: str
    status: CheckStatus
    detail: str = ""
    error_kind: Optional[ErrorKind] = None


class RunReport(BaseModel):
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[CheckResult] = []

    def add(self, result: CheckResult) -> None:
        self.results.append(result)
        if result.status == CheckStatus.PASS:
            self.passed += 1
        elif result.status == CheckStatus.FAIL:
            self.failed += 1
        else:
            self.skipped += 1

    @property
    def total(self) -> int:
        return self.passed + self.failed

    @property
    def exit_code(self) -> int:
        return min(self.failed, 255)

    def summary(self) -> str:
        if self.failed == 0:
            line = f"All {self.total} checks passed!"
        else:
            line = f"{self.failed}/{self.total} checks failed"
        if self.skipped:
            line += f" ({self.skipped} skipped)"
        return line
