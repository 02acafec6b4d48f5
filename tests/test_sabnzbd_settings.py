from conftest import write_key_files
from mediastack.sabnzbd_settings import SABnzbdIntegration, merge_host_whitelist
import os


def test_appends_host_preserving_entries():
    text = "[misc]\nhost_whitelist = abc123, localhost\napi_key = k\n"
    merged = merge_host_whitelist(text, "sabnzbd")
    assert "host_whitelist = abc123, localhost, sabnzbd" in merged
    assert "api_key = k" in merged


def test_already_listed_is_unchanged():
    assert merge_host_whitelist("[misc]\nhost_whitelist = sabnzbd,foo\n", "sabnzbd") is None


def test_missing_whitelist_is_unchanged():
    assert merge_host_whitelist("[misc]\napi_key = k\n", "sabnzbd") is None


def test_only_misc_section_is_considered():
    text = "[servers]\nhost_whitelist = nope\n[misc]\nhost_whitelist = a\n"
    merged = merge_host_whitelist(text, "sabnzbd")
    assert "host_whitelist = nope" in merged
    assert "host_whitelist = a, sabnzbd" in merged


def test_whitelist_action_restarts_only_when_changed(ctx, runtime, mocked):
    write_key_files(ctx.config_dir, names=("sabnzbd",))
    mocked.add("GET", "http://localhost:8080", status=200)
    action = SABnzbdIntegration(ctx)._whitelist_action()

    assert not action.check()
    action.apply()
    assert action.check()
    assert runtime.calls == [("restart", "sabnzbd")]

    ini = os.path.join(ctx.config_dir, "sabnzbd", "sabnzbd.ini")
    with open(ini) as f:
        assert "host_whitelist = abc123, localhost, sabnzbd" in f.read()
