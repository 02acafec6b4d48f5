from mediastack.global_logger import logger
from typing import Optional, Tuple
import shlex, shutil, subprocess


class ContainerRuntime:
    """Docker CLI adapter; every call shells out and never raises on failure."""

    def __init__(self, binary: str = "docker", compose_file: Optional[str] = None):
        self.binary = binary
        self.compose_file = compose_file

    def available(self) -> bool:
        return shutil.which(self.binary) is not None

    def _run(self, args: list, timeout: int = 60) -> subprocess.CompletedProcess:
        cmd = [self.binary, *args]
        logger.debug("Running %s", shlex.join(cmd))
        return subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
        )

    def _run_checked(self, args: list, timeout: int = 60) -> Tuple[bool, Optional[str]]:
        try:
            result = self._run(args, timeout=timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            return False, str(e)
        if result.returncode != 0:
            return False, (result.stdout or "").strip()[-500:] or f"exit {result.returncode}"
        return True, None

    def daemon_running(self) -> bool:
        ok, _ = self._run_checked(["info"], timeout=30)
        return ok

    def logs(self, container: str) -> str:
        try:
            return self._run(["logs", container], timeout=20).stdout or ""
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug("Could not read logs from %s: %s", container, e)
            return ""

    def restart(self, container: str) -> Tuple[bool, Optional[str]]:
        return self._run_checked(["restart", container], timeout=60)

    def exec(self, container: str, *command: str) -> Tuple[bool, Optional[str]]:
        return self._run_checked(["exec", container, *command], timeout=30)

    def status(self, container: str) -> str:
        try:
            result = self._run(
                ["inspect", "-f", "{{.State.Status}}", container], timeout=15
            )
        except (OSError, subprocess.TimeoutExpired):
            return "missing"
        if result.returncode != 0:
            return "missing"
        return (result.stdout or "").strip() or "missing"

    def compose(self, *args: str, timeout: int = 600) -> Tuple[bool, Optional[str]]:
        base = ["compose"]
        if self.compose_file:
            base += ["-f", self.compose_file]
        return self._run_checked([*base, *args], timeout=timeout)

    def prune_images(self) -> Tuple[bool, Optional[str]]:
        return self._run_checked(["image", "prune", "-f"], timeout=300)
