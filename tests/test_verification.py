from conftest import FakeRuntime, write_key_files
from mediastack.arr_settings import ArrIntegration
from mediastack.pipeline import build_integrations, collect_checks
from mediastack.prowlarr_settings import ProwlarrIntegration
from mediastack.results import CheckResult, CheckStatus, ErrorKind, RunReport, SkipCheck
from mediastack.verification import (
    VerificationCheck,
    container_checks,
    reachability_probe,
    run_check,
    run_checks,
)
import requests, responses


def _result(status):
    return CheckResult(description="x", status=status)


def test_summary_lines():
    report = RunReport()
    for status in (CheckStatus.PASS, CheckStatus.PASS, CheckStatus.SKIP):
        report.add(_result(status))
    assert report.summary() == "All 2 checks passed! (1 skipped)"
    assert report.exit_code == 0

    report.add(_result(CheckStatus.FAIL))
    assert report.summary() == "1/3 checks failed (1 skipped)"
    assert report.exit_code == 1


def test_exit_code_is_capped():
    report = RunReport(failed=300)
    assert report.exit_code == 255


def test_probe_outcomes(ctx):
    def boom():
        raise requests.ConnectionError("refused")

    def absent():
        raise SkipCheck("no indexers")

    assert run_check(ctx, VerificationCheck("a", lambda: True)).status == CheckStatus.PASS
    assert run_check(ctx, VerificationCheck("b", lambda: (False, "nope"))).detail == "nope"
    assert run_check(ctx, VerificationCheck("c", boom)).status == CheckStatus.FAIL
    assert run_check(ctx, VerificationCheck("d", absent)).status == CheckStatus.SKIP
    assert run_check(ctx, VerificationCheck("e", lambda: CheckStatus.SKIP)).status == CheckStatus.SKIP


def test_missing_credential_skips_without_probing(ctx):
    probed = []
    check = VerificationCheck("Sonarr → qBittorrent", lambda: probed.append(1), requires=("sonarr",))
    result = run_check(ctx, check)
    assert result.status == CheckStatus.SKIP
    assert "Sonarr credential not found" in result.detail
    assert probed == []


def test_checks_run_in_group_order(ctx):
    seen = []

    def probe(name):
        return lambda: seen.append(name) or True

    checks = [
        VerificationCheck("auth", probe("auth"), group="Authentication"),
        VerificationCheck("health", probe("health"), group="Service health"),
        VerificationCheck("root", probe("root"), group="Root folders"),
        VerificationCheck("health2", probe("health2"), group="Service health"),
    ]
    report = run_checks(ctx, checks)
    assert seen == ["health", "health2", "root", "auth"]
    assert report.passed == 4


def test_no_credentials_means_no_credential_failures(ctx, mocked):
    checks = [c for c in collect_checks(ctx, build_integrations(ctx)) if c.requires]
    assert checks
    report = run_checks(ctx, checks)
    assert report.failed == 0
    assert report.skipped == len(checks)
    assert len(mocked.calls) == 0


def test_reachability_retries_once_after_backoff(ctx, mocked):
    sleeps = []
    ctx.sleep = sleeps.append
    url = "http://localhost:8096/health"
    mocked.add(responses.GET, url, body=requests.ConnectionError("down"))
    mocked.add(responses.GET, url, status=200)
    passed, detail = reachability_probe(ctx, url)()
    assert passed
    assert detail == "HTTP 200"
    assert sleeps == [5.0]


def test_container_checks_skip_without_runtime(make_ctx):
    ctx = make_ctx(runtime=FakeRuntime(available=False))
    report = run_checks(ctx, container_checks(ctx))
    assert report.failed == 0
    assert report.skipped == len(report.results)


def test_container_checks_report_status(make_ctx):
    ctx = make_ctx(runtime=FakeRuntime(status="exited"))
    report = run_checks(ctx, container_checks(ctx))
    assert report.passed == 0
    assert report.failed == len(report.results)
    assert report.results[0].detail == "exited"


def _search_check(ctx):
    checks = ProwlarrIntegration(ctx).verification_checks()
    return next(c for c in checks if c.description == "Prowlarr → search works")


def _prowlarr(mocked, indexers, results):
    mocked.add(responses.GET, "http://localhost:9696/api/v1/indexer", json=indexers)
    mocked.add(responses.GET, "http://localhost:9696/api/v1/search", json=results)


def test_search_passes_with_results(ctx, mocked):
    write_key_files(ctx.config_dir, names=("prowlarr",))
    _prowlarr(mocked, [{"name": "1337x", "enable": True}], [{"title": "a"}])
    assert run_check(ctx, _search_check(ctx)).status == CheckStatus.PASS


def test_search_skips_when_indexers_exist_but_return_nothing(ctx, mocked):
    write_key_files(ctx.config_dir, names=("prowlarr",))
    _prowlarr(mocked, [{"name": "1337x", "enable": True}], [])
    assert run_check(ctx, _search_check(ctx)).status == CheckStatus.SKIP


def test_search_fails_without_indexers(ctx, mocked):
    write_key_files(ctx.config_dir, names=("prowlarr",))
    _prowlarr(mocked, [], [])
    assert run_check(ctx, _search_check(ctx)).status == CheckStatus.FAIL


def test_html_body_where_json_expected_is_a_failure(ctx, mocked):
    write_key_files(ctx.config_dir, names=("sonarr",))
    mocked.add(
        responses.GET,
        "http://localhost:8989/api/v3/config/host",
        body="<html>Sonarr</html>",
        content_type="text/html",
    )
    checks = ArrIntegration(ctx, "sonarr").verification_checks()
    auth = [c for c in checks if c.description == "Sonarr → auth configured"]
    report = run_checks(ctx, auth)
    assert report.failed == 1
    assert report.exit_code == 1
    assert report.results[0].error_kind == ErrorKind.VERIFICATION_FAILED
    assert "object has no attribute" in report.results[0].detail
