from conftest import write_key_files
from fake_services import FakeArr
from mediastack.arr_settings import ArrIntegration, build_fields_from_schema, fields_match
from mediastack.results import ActionStatus, ErrorKind
import pytest


@pytest.fixture
def sonarr(mocked):
    return FakeArr(
        "http://localhost:8989", "sonarr-key", root_folders=[{"id": 1, "path": "/downloads"}]
    ).register(mocked)


@pytest.fixture
def ready_ctx(make_ctx):
    def _make():
        ctx = make_ctx()
        write_key_files(ctx.config_dir, names=("sonarr",))
        ctx.ready.update({"sonarr", "qbittorrent"})
        return ctx

    return _make


def _by_description(results):
    return {r.description: r for r in results}


def test_build_fields_overrides_case_insensitively_and_adds_missing():
    schema = {"fields": [{"name": "Host", "value": "x"}, {"name": "port", "value": 1}]}
    fields = build_fields_from_schema(schema, {"host": "sonarr", "apiKey": "k"})
    assert fields == [
        {"name": "Host", "value": "sonarr"},
        {"name": "port", "value": 1},
        {"name": "apiKey", "value": "k"},
    ]


def test_fields_match_ignores_masked_secrets():
    existing = {"fields": [{"name": "host", "value": "qbittorrent"}, {"name": "password", "value": "********"}]}
    assert fields_match(existing, {"host": "qbittorrent", "password": "real"})
    assert not fields_match(existing, {"host": "other"})


def test_stale_root_folder_is_replaced(sonarr, ready_ctx):
    ctx = ready_ctx()
    results = _by_description(ArrIntegration(ctx, "sonarr").configure())

    assert results["Sonarr root folder: /media/tv"].status == ActionStatus.CHANGED
    assert [f["path"] for f in sonarr.root_folders.items] == ["/media/tv"]
    deletes = [i for i, m in enumerate(ctx.mutations) if m == ("DELETE", "http://localhost:8989/api/v3/rootfolder/1")]
    creates = [i for i, m in enumerate(ctx.mutations) if m == ("POST", "http://localhost:8989/api/v3/rootfolder")]
    assert deletes and creates and deletes[0] < creates[0]


def test_download_client_unknown_quality_and_auth(sonarr, ready_ctx):
    ctx = ready_ctx()
    results = _by_description(ArrIntegration(ctx, "sonarr").configure())

    assert results["Sonarr → qBittorrent (category: sonarr)"].status == ActionStatus.CHANGED
    client = sonarr.download_clients.items[0]
    fields = {f["name"]: f["value"] for f in client["fields"]}
    assert client["enable"] is True
    assert fields["host"] == "qbittorrent"
    assert fields["port"] == 8081
    assert fields["tvCategory"] == "sonarr"
    assert fields["password"] == "qb-secret"

    assert sonarr.profile["items"][0]["allowed"] is True
    assert sonarr.host["authenticationMethod"] == "forms"
    assert sonarr.host["username"] == "admin"
    assert sonarr.host["passwordConfirmation"] == "jf-secret"


def test_links_without_prerequisites_are_skipped(sonarr, ready_ctx):
    results = _by_description(ArrIntegration(ready_ctx(), "sonarr").configure())

    sab = results["Sonarr → SABnzbd (category: sonarr)"]
    assert sab.status == ActionStatus.SKIPPED
    assert sab.error_kind == ErrorKind.READINESS_TIMEOUT
    notification = results["Sonarr → Jellyfin notification"]
    assert notification.status == ActionStatus.SKIPPED
    assert notification.error_kind == ErrorKind.MISSING_CREDENTIAL
    assert not any(r.status == ActionStatus.FAILED for r in results.values())


def test_second_run_makes_no_changes(sonarr, ready_ctx):
    ArrIntegration(ready_ctx(), "sonarr").configure()

    ctx = ready_ctx()
    results = ArrIntegration(ctx, "sonarr").configure()
    assert ctx.mutations == []
    assert {r.status for r in results} <= {ActionStatus.UNCHANGED, ActionStatus.SKIPPED}
    assert len(sonarr.root_folders.items) == 1
    assert len(sonarr.download_clients.items) == 1


def test_jellyfin_notification_once_key_is_known(sonarr, ready_ctx):
    ctx = ready_ctx()
    ctx.credentials.store("jellyfin", "jf-api-key")
    results = _by_description(ArrIntegration(ctx, "sonarr").configure())

    assert results["Sonarr → Jellyfin notification"].status == ActionStatus.CHANGED
    notification = sonarr.notifications.items[0]
    fields = {f["name"]: f["value"] for f in notification["fields"]}
    assert notification["implementation"] == "MediaBrowser"
    assert fields["host"] == "jellyfin"
    assert fields["port"] == 8096
    assert fields["apiKey"] == "jf-api-key"


def test_missing_key_skips_every_action(make_ctx, mocked):
    ctx = make_ctx()
    ctx.ready.add("sonarr")
    results = ArrIntegration(ctx, "sonarr").configure()
    assert results
    assert all(r.status == ActionStatus.SKIPPED for r in results)
    assert all(r.error_kind == ErrorKind.MISSING_CREDENTIAL for r in results)
    assert len(mocked.calls) == 0


def test_unready_service_is_skipped(make_ctx, mocked):
    ctx = make_ctx()
    write_key_files(ctx.config_dir, names=("radarr",))
    results = ArrIntegration(ctx, "radarr").configure()
    assert all(r.error_kind == ErrorKind.READINESS_TIMEOUT for r in results)
    assert len(mocked.calls) == 0
