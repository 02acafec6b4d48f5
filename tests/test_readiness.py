from mediastack.readiness import wait_for, wait_for_services
from mediastack.results import ErrorKind
import requests, responses


def test_unauthorized_still_counts_as_up(mocked):
    mocked.add(responses.GET, "http://localhost:8096/health", status=401)
    result = wait_for("Jellyfin", "http://localhost:8096/health", sleep=lambda s: None)
    assert result.ok
    assert result.attempts == 1
    assert result.status_code == 401


def test_server_error_counts_as_up(mocked):
    mocked.add(responses.GET, "http://localhost:8989/ping", status=500)
    assert wait_for("Sonarr", "http://localhost:8989/ping", sleep=lambda s: None).ok


def test_times_out_after_attempt_budget(mocked):
    sleeps = []
    result = wait_for("Radarr", "http://localhost:7878/ping", max_attempts=3, sleep=sleeps.append)
    assert not result.ok
    assert result.attempts == 3
    assert result.error_kind == ErrorKind.READINESS_TIMEOUT
    assert sleeps == [1.0, 1.0]


def test_comes_up_on_later_attempt(mocked):
    url = "http://localhost:9696/ping"
    mocked.add(responses.GET, url, body=requests.ConnectionError("refused"))
    mocked.add(responses.GET, url, status=200)
    result = wait_for("Prowlarr", url, max_attempts=5, sleep=lambda s: None)
    assert result.ok
    assert result.attempts == 2


def test_wait_for_services_marks_ready(ctx, mocked):
    mocked.add(responses.GET, "http://localhost:8096/health", status=200)
    results = wait_for_services(ctx, names=("jellyfin", "sonarr"))
    assert results["jellyfin"].ok
    assert not results["sonarr"].ok
    assert ctx.ready == {"jellyfin"}
