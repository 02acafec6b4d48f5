from mediastack.config_loader import ConfigManager
from mediastack.containers import ContainerRuntime
from mediastack.global_logger import fail, logger, ok, section, warn
from mediastack.results import PreconditionError
from datetime import datetime
from typing import Callable, List, Optional
import glob, os, tarfile


BACKUP_PREFIX = "media-server_"
MAX_BACKUPS = 10


def backup_dir(config: ConfigManager) -> str:
    return os.path.join(config.media_dir, "backups")


def list_backups(directory: str) -> List[str]:
    """Backups in ``directory``, newest first."""
    files = glob.glob(os.path.join(directory, f"{BACKUP_PREFIX}*.tar.gz"))
    return sorted(files, key=lambda p: (os.path.getmtime(p), p), reverse=True)


def prune_backups(directory: str, keep: int = MAX_BACKUPS) -> List[str]:
    removed = []
    for old in list_backups(directory)[keep:]:
        os.remove(old)
        removed.append(old)
        ok("Pruned: %s", os.path.basename(old))
    return removed


def create_backup(config: ConfigManager, now: Optional[datetime] = None) -> str:
    config_dir = config.config_dir
    if not os.path.isdir(config_dir):
        raise PreconditionError(f"Config directory not found: {config_dir}")

    section("Backing up service configs...")
    services = sorted(
        d for d in os.listdir(config_dir) if os.path.isdir(os.path.join(config_dir, d))
    )
    ok("Services: %s", " ".join(services) or "(none)")

    target_dir = backup_dir(config)
    os.makedirs(target_dir, exist_ok=True)
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    path = os.path.join(target_dir, f"{BACKUP_PREFIX}{stamp}.tar.gz")

    # stored relative to the media dir so a restore extracts back in place
    with tarfile.open(path, "w:gz") as tar:
        tar.add(config_dir, arcname=os.path.basename(config_dir.rstrip(os.sep)))
    size_mb = os.path.getsize(path) / 1024**2
    ok("Created: %s (%.1f MB)", path, size_mb)

    prune_backups(target_dir)
    logger.info("Restore with: media-stack --restore %s", path)
    return path


def _safe_members(tar: tarfile.TarFile, dest: str):
    root = os.path.realpath(dest)
    for member in tar.getmembers():
        target = os.path.realpath(os.path.join(dest, member.name))
        if target != root and not target.startswith(root + os.sep):
            raise PreconditionError(f"Refusing to extract {member.name} outside {dest}")
        yield member


def restore_backup(
    config: ConfigManager,
    archive: str,
    runtime: Optional[ContainerRuntime] = None,
    confirm: Optional[Callable[[str], bool]] = None,
) -> int:
    if not os.path.isfile(archive):
        raise PreconditionError(f"Backup file not found: {archive}")

    section("Restoring from %s...", archive)
    if confirm is not None and not confirm(f"This will overwrite current configs in {config.config_dir}"):
        warn("Aborted.")
        return 0

    runtime = runtime or ContainerRuntime(compose_file=config.compose_file)
    section("Stopping containers...")
    stopped, error = runtime.compose("down")
    if not stopped:
        warn("docker compose down failed: %s", error)

    section("Extracting backup...")
    media_dir = config.media_dir
    os.makedirs(media_dir, exist_ok=True)
    with tarfile.open(archive, "r:gz") as tar:
        tar.extractall(media_dir, members=list(_safe_members(tar, media_dir)))
    ok("Configs restored")

    section("Starting containers...")
    started, error = runtime.compose("up", "-d")
    if not started:
        fail("docker compose up failed: %s", error)
        return 1
    ok("All containers started")
    return 0


def update_stack(config: ConfigManager, runtime: Optional[ContainerRuntime] = None) -> int:
    runtime = runtime or ContainerRuntime(compose_file=config.compose_file)
    if not os.path.exists(config.compose_file):
        raise PreconditionError(f"{config.compose_file} not found")
    if not runtime.daemon_running():
        raise PreconditionError("Docker is not running")

    section("Creating pre-update backup...")
    if os.path.isdir(config.config_dir):
        create_backup(config)
    else:
        warn("no config directory yet; skipping backup")

    section("Pulling latest images...")
    pulled, error = runtime.compose("pull")
    if not pulled:
        fail("docker compose pull failed: %s", error)
        return 1

    section("Restarting containers with new images...")
    started, error = runtime.compose("up", "-d")
    if not started:
        fail("docker compose up failed: %s", error)
        return 1

    pruned, error = runtime.prune_images()
    if pruned:
        ok("Old images removed")
    else:
        warn("image prune failed: %s", error)
    return 0
