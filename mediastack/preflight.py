from mediastack.config_loader import ConfigManager
from mediastack.containers import ContainerRuntime
from mediastack.global_logger import fail, ok, section, warn
from typing import Optional
import os, psutil


LOW_DISK_BYTES = 10 * 1024**3


def _existing_parent(path: str) -> Optional[str]:
    path = os.path.abspath(os.path.expanduser(path))
    while path and not os.path.exists(path):
        parent = os.path.dirname(path)
        if parent == path:
            return None
        path = parent
    return path or None


def check_disk_space(path: str, threshold: int = LOW_DISK_BYTES) -> bool:
    """Report free space on the volume holding ``path``. Never fails preflight."""
    target = _existing_parent(path)
    if not target:
        warn("cannot determine free space for %s", path)
        return False
    usage = psutil.disk_usage(target)
    free_gb = usage.free / 1024**3
    if usage.free < threshold:
        warn("only %.1f GiB free on the downloads volume (%s)", free_gb, target)
        return False
    ok("%.1f GiB free on the downloads volume (%s)", free_gb, target)
    return True


def check_config_file(config: ConfigManager) -> bool:
    passed = True
    loaded, error = config.load()
    if not loaded:
        fail("%s", error)
        return False
    ok("%s parses", os.path.basename(config.file_path))

    for error in config.validate():
        fail("config invalid: %s", error)
        passed = False
    for field in config.missing_required():
        fail("required config missing: %s", field)
        passed = False
    if passed:
        ok("required config present")
    return passed


def run_preflight(config: ConfigManager, runtime: Optional[ContainerRuntime] = None) -> int:
    """Check local prerequisites without touching any service. Returns 0 or 1."""
    section("Preflight checks for media-stack")
    runtime = runtime or ContainerRuntime(compose_file=config.compose_file)
    failed = False

    docker_ok = runtime.available()
    if docker_ok:
        ok("docker installed")
        docker_ok = runtime.daemon_running()
        if docker_ok:
            ok("docker daemon is running")
        else:
            fail("docker is installed but daemon is not running")
            failed = True
    else:
        fail("docker is missing")
        failed = True

    if not check_config_file(config):
        failed = True

    compose_file = config.compose_file
    runtime.compose_file = compose_file
    if os.path.exists(compose_file):
        ok("%s exists", os.path.basename(compose_file))
        if docker_ok:
            valid, error = runtime.compose("config", "-q", timeout=60)
            if valid:
                ok("docker compose config is valid")
            else:
                fail("docker compose config is invalid: %s", error)
                failed = True
        else:
            warn("skipping docker compose validation (docker unavailable)")
    else:
        fail("%s is missing", compose_file)
        failed = True

    downloads = config.get("downloads.complete")
    if downloads:
        check_disk_space(downloads)

    if failed:
        fail("preflight failed")
        return 1
    ok("preflight passed")
    return 0


def run_check_config(config: ConfigManager) -> int:
    section("Checking configuration")
    if not check_config_file(config):
        return 1
    ok("configuration is valid")
    return 0
