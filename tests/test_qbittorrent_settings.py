from conftest import FakeRuntime
from fake_services import FakeQbit
from mediastack.qbittorrent_settings import QBittorrentIntegration
from mediastack.results import ActionStatus
import pytest


LOG = (
    "WebUI will be started shortly after internal preparations. Please wait...\n"
    "The WebUI administrator username is: admin\n"
    "The WebUI administrator password was not set. "
    "A temporary password is provided for this session: OldTemp1\n"
    "A temporary password is provided for this session: Xy7Temp9\n"
)


@pytest.fixture
def qbit_ctx(make_ctx):
    ctx = make_ctx(runtime=FakeRuntime(logs=LOG))
    ctx.ready.add("qbittorrent")
    return ctx


def test_candidates_prefer_declared_then_latest_temp(qbit_ctx):
    assert QBittorrentIntegration(qbit_ctx).candidate_passwords() == ["qb-secret", "Xy7Temp9"]


def test_candidates_fall_back_to_default_without_logs(make_ctx):
    ctx = make_ctx(runtime=FakeRuntime(logs="nothing useful"))
    assert QBittorrentIntegration(ctx).candidate_passwords() == ["qb-secret", "adminadmin"]


def test_fresh_container_is_configured_with_temp_password(qbit_ctx, mocked):
    fake = FakeQbit("Xy7Temp9").register(mocked)
    results = QBittorrentIntegration(qbit_ctx).configure()

    assert fake.logins[:2] == ["qb-secret", "Xy7Temp9"]
    assert not any(r.status == ActionStatus.FAILED for r in results)
    assert fake.password == "qb-secret"
    assert fake.preferences["save_path"] == "/downloads/complete"
    assert fake.preferences["temp_path"] == "/downloads/incomplete"
    assert fake.preferences["max_ratio"] == 2.0
    assert fake.preferences["max_seeding_time"] == 10080
    assert set(fake.categories) == {"sonarr", "sonarr-anime", "radarr", "prowlarr"}
    assert fake.categories["radarr"]["savePath"] == "/downloads/complete/radarr"
    assert qbit_ctx.credentials.key("qbittorrent") == "qb-secret"


def test_configured_container_is_left_alone(qbit_ctx, make_ctx, mocked):
    fake = FakeQbit("Xy7Temp9").register(mocked)
    QBittorrentIntegration(qbit_ctx).configure()

    ctx = make_ctx(runtime=FakeRuntime(logs=LOG))
    ctx.ready.add("qbittorrent")
    results = QBittorrentIntegration(ctx).configure()
    assert ctx.mutations == []
    assert all(r.status == ActionStatus.UNCHANGED for r in results)
    assert fake.logins[-1] == "qb-secret"


def test_category_with_wrong_path_is_edited(qbit_ctx, mocked):
    fake = FakeQbit(
        "qb-secret", categories={"sonarr": {"name": "sonarr", "savePath": "/somewhere/else"}}
    ).register(mocked)
    QBittorrentIntegration(qbit_ctx).configure()
    assert fake.categories["sonarr"]["savePath"] == "/downloads/complete/sonarr"
    assert ("POST", "http://localhost:8081/api/v2/torrents/editCategory") in qbit_ctx.mutations


def test_no_working_password_skips(qbit_ctx, mocked):
    FakeQbit("something-else").register(mocked)
    results = QBittorrentIntegration(qbit_ctx).configure()
    assert all(r.status == ActionStatus.SKIPPED for r in results)
    assert qbit_ctx.mutations == []
