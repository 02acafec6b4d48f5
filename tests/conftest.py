from mediastack.config_loader import ConfigManager
from mediastack.run_context import RunContext
import json, os, pytest, responses


BASE_CONFIG = {
    "timezone": "Europe/London",
    "jellyfin": {"username": "admin", "password": "jf-secret"},
    "qbittorrent": {"username": "admin", "password": "qb-secret"},
    "downloads": {"complete": "/downloads/complete", "incomplete": "/downloads/incomplete"},
    "quality": {
        "sonarr_profile": "WEB-1080p",
        "sonarr_anime_profile": "Remux-1080p - Anime",
        "radarr_profile": "HD Bluray + WEB",
    },
}

KEYS = {
    "sonarr": "sonarr-key",
    "sonarr-anime": "anime-key",
    "radarr": "radarr-key",
    "prowlarr": "prowlarr-key",
    "sabnzbd": "sab-key",
    "bazarr": "bazarr-key",
    "jellyseerr": "seerr-key",
}


class FakeRuntime:
    """Stands in for the docker CLI; records what it was asked to do."""

    def __init__(self, available=True, logs="", status="running", daemon=True):
        self._available = available
        self._daemon = daemon
        self._logs = logs
        self._status = status
        self.calls = []
        self.compose_file = None

    def available(self):
        return self._available

    def daemon_running(self):
        return self._available and self._daemon

    def logs(self, container):
        self.calls.append(("logs", container))
        return self._logs

    def restart(self, container):
        self.calls.append(("restart", container))
        return True, None

    def exec(self, container, *command):
        self.calls.append(("exec", container, *command))
        return True, None

    def status(self, container):
        return self._status

    def compose(self, *args, timeout=600):
        self.calls.append(("compose", *args))
        return True, None

    def prune_images(self):
        self.calls.append(("prune",))
        return True, None


def write_key_files(config_dir, names=KEYS):
    """Lay out the on-disk files each service keeps its API key in."""
    for name in names:
        key = KEYS[name]
        if name in ("sonarr", "sonarr-anime", "radarr", "prowlarr"):
            path = os.path.join(config_dir, name, "config.xml")
            content = f"<Config>\n  <Port>8989</Port>\n  <ApiKey>{key}</ApiKey>\n</Config>\n"
        elif name == "sabnzbd":
            path = os.path.join(config_dir, "sabnzbd", "sabnzbd.ini")
            content = f"[misc]\napi_key = {key}\nhost_whitelist = abc123, localhost\n"
        elif name == "bazarr":
            path = os.path.join(config_dir, "bazarr", "config", "config", "config.yaml")
            content = (
                "---\n"
                "auth:\n"
                f"  apikey: {key}\n"
                "  password: ''\n"
                "  type: null\n"
                "  username: ''\n"
                "general:\n"
                "  # keep me\n"
                "  use_radarr: false\n"
                "  use_sonarr: false\n"
                "radarr:\n"
                "  apikey: ''\n"
                "  ip: 127.0.0.1\n"
                "sonarr:\n"
                "  apikey: ''\n"
                "  ip: 127.0.0.1\n"
            )
        else:
            path = os.path.join(config_dir, "jellyseerr", "settings.json")
            content = json.dumps({"main": {"apiKey": key}, "public": {"initialized": False}})
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)


@pytest.fixture
def config(tmp_path):
    data = json.loads(json.dumps(BASE_CONFIG))
    data["paths"] = {"media_dir": str(tmp_path / "media")}
    return ConfigManager.from_dict(data, file_path=str(tmp_path / "config.toml"))


@pytest.fixture
def runtime():
    return FakeRuntime()


@pytest.fixture
def make_ctx(config, runtime):
    def _make(**kwargs):
        kwargs.setdefault("runtime", runtime)
        kwargs.setdefault("sleep", lambda seconds: None)
        kwargs.setdefault("max_wait_attempts", 2)
        return RunContext(config, **kwargs)

    return _make


@pytest.fixture
def ctx(make_ctx):
    return make_ctx()


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps
