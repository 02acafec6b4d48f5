from conftest import FakeRuntime, write_key_files
from fake_services import FakeArr, FakeJellyfin, FakeQbit
from mediastack.pipeline import INTEGRATION_ORDER, build_integrations, configure_all, run_setup
from mediastack.results import ActionStatus, PreconditionError
import os, pytest


QBIT = "http://localhost:8081"
SONARR = "http://localhost:8989"
JELLYFIN = "http://localhost:8096"


def test_downloaders_precede_arr_apps_which_precede_consumers():
    order = {name: i for i, name in enumerate(INTEGRATION_ORDER)}
    for arr in ("sonarr", "sonarr-anime", "radarr"):
        assert order["qbittorrent"] < order[arr]
        assert order["sabnzbd"] < order[arr]
        assert order["jellyfin"] < order[arr]
        for consumer in ("prowlarr", "bazarr", "jellyseerr"):
            assert order[arr] < order[consumer]


def test_build_integrations_follows_order(ctx):
    assert [i.name for i in build_integrations(ctx)] == list(INTEGRATION_ORDER)


def test_setup_with_nothing_running_skips_everything(ctx, mocked):
    outcome = run_setup(ctx, verify=False)

    service_actions = [a for a in outcome.actions if a.service != "templates"]
    assert service_actions
    assert outcome.count(ActionStatus.FAILED) == 0
    assert all(a.status == ActionStatus.SKIPPED for a in service_actions)
    assert ctx.mutations == []


@pytest.mark.parametrize("docker", [FakeRuntime(available=False), FakeRuntime(daemon=False)])
def test_setup_requires_docker(make_ctx, mocked, docker):
    ctx = make_ctx(runtime=docker)
    with pytest.raises(PreconditionError):
        run_setup(ctx)
    assert len(mocked.calls) == 0
    assert not os.path.exists(ctx.config_dir)


@pytest.fixture
def stack(mocked):
    """qBittorrent, Jellyfin and Sonarr doubles sharing one mock."""
    return {
        "qbittorrent": FakeQbit("qb-secret").register(mocked),
        "jellyfin": FakeJellyfin().register(mocked),
        "sonarr": FakeArr(SONARR, "sonarr-key", root_folders=[{"id": 1, "path": "/downloads"}]).register(mocked),
    }


@pytest.fixture
def stack_ctx(make_ctx):
    def _make():
        ctx = make_ctx()
        write_key_files(ctx.config_dir, names=("sonarr",))
        ctx.ready.update({"qbittorrent", "jellyfin", "sonarr"})
        return ctx

    return _make


def _configure(ctx):
    return configure_all(ctx, build_integrations(ctx, names=("qbittorrent", "jellyfin", "sonarr")))


def test_dependencies_are_written_before_their_consumers(stack, stack_ctx):
    ctx = stack_ctx()
    results = _configure(ctx)
    assert not any(r.status == ActionStatus.FAILED for r in results)

    def first(method, url):
        return ctx.mutations.index((method, url))

    def last_for(base):
        return max(i for i, (_, url) in enumerate(ctx.mutations) if url.startswith(base))

    client_created = first("POST", f"{SONARR}/api/v3/downloadclient")
    assert last_for(QBIT) < client_created
    assert first("POST", f"{QBIT}/api/v2/torrents/createCategory") < client_created
    assert first("POST", f"{JELLYFIN}/Auth/Keys") < first("POST", f"{SONARR}/api/v3/notification")
    assert first("DELETE", f"{SONARR}/api/v3/rootfolder/1") < first("POST", f"{SONARR}/api/v3/rootfolder")


def test_second_pass_over_the_stack_makes_no_calls_that_mutate(stack, stack_ctx):
    _configure(stack_ctx())

    ctx = stack_ctx()
    results = _configure(ctx)
    assert ctx.mutations == []
    assert {r.status for r in results} <= {ActionStatus.UNCHANGED, ActionStatus.SKIPPED}
    assert len(stack["sonarr"].root_folders.items) == 1
    assert len(stack["sonarr"].download_clients.items) == 1
    assert len(stack["sonarr"].notifications.items) == 1
