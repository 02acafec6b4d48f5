from conftest import FakeRuntime
from mediastack.backup import (
    BACKUP_PREFIX,
    MAX_BACKUPS,
    backup_dir,
    create_backup,
    list_backups,
    prune_backups,
    restore_backup,
    update_stack,
)
from mediastack.results import PreconditionError
from datetime import datetime
import io, os, pytest, tarfile


def _seed_configs(config):
    path = os.path.join(config.config_dir, "sonarr", "config.xml")
    os.makedirs(os.path.dirname(path))
    with open(path, "w") as f:
        f.write("<Config><ApiKey>abc</ApiKey></Config>")
    return path


def test_backup_requires_config_dir(config):
    with pytest.raises(PreconditionError):
        create_backup(config)


def test_backup_archives_config_dir(config):
    _seed_configs(config)
    path = create_backup(config, now=datetime(2024, 5, 1, 12, 30, 0))

    assert os.path.basename(path) == f"{BACKUP_PREFIX}20240501_123000.tar.gz"
    with tarfile.open(path) as tar:
        assert "config/sonarr/config.xml" in tar.getnames()


def test_prune_keeps_newest(tmp_path):
    for i in range(MAX_BACKUPS + 3):
        path = tmp_path / f"{BACKUP_PREFIX}2024010{i:02d}.tar.gz"
        path.write_bytes(b"")
        os.utime(path, (1_700_000_000 + i, 1_700_000_000 + i))

    removed = prune_backups(str(tmp_path))
    remaining = list_backups(str(tmp_path))
    assert len(removed) == 3
    assert len(remaining) == MAX_BACKUPS
    assert remaining[0].endswith(f"{MAX_BACKUPS + 2:02d}.tar.gz")


def test_restore_round_trip(config):
    original = _seed_configs(config)
    archive = create_backup(config)
    with open(original, "w") as f:
        f.write("clobbered")

    runtime = FakeRuntime()
    assert restore_backup(config, archive, runtime=runtime) == 0
    with open(original) as f:
        assert "ApiKey" in f.read()
    assert runtime.calls == [("compose", "down"), ("compose", "up", "-d")]


def test_restore_declined_touches_nothing(config):
    _seed_configs(config)
    archive = create_backup(config)
    runtime = FakeRuntime()
    assert restore_backup(config, archive, runtime=runtime, confirm=lambda message: False) == 0
    assert runtime.calls == []


def test_restore_refuses_paths_outside_media_dir(config, tmp_path):
    archive = tmp_path / "evil.tar.gz"
    with tarfile.open(archive, "w:gz") as tar:
        info = tarfile.TarInfo("../escaped.txt")
        info.size = 2
        tar.addfile(info, io.BytesIO(b"hi"))
    with pytest.raises(PreconditionError):
        restore_backup(config, str(archive), runtime=FakeRuntime())
    assert not (tmp_path / "escaped.txt").exists()


def test_update_backs_up_then_pulls(config, tmp_path):
    _seed_configs(config)
    with open(config.compose_file, "w") as f:
        f.write("services: {}\n")
    runtime = FakeRuntime()

    assert update_stack(config, runtime=runtime) == 0
    assert runtime.calls == [("compose", "pull"), ("compose", "up", "-d"), ("prune",)]
    assert len(list_backups(backup_dir(config))) == 1
