from conftest import BASE_CONFIG
from mediastack.config_loader import ConfigManager
import json, os


TOML = """
timezone = "UTC"

[jellyfin]
username = "admin"
password = "pw"

[qbittorrent]
username = "admin"
password = "pw"

[downloads]
complete = "/downloads/complete"
incomplete = "/downloads/incomplete"

[quality]
sonarr_profile = "A"
sonarr_anime_profile = "B"
radarr_profile = "C"
"""


def test_loads_toml_and_applies_defaults(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(TOML)
    config = ConfigManager(str(path))
    assert config.load() == (True, None)
    assert config.validate() == []
    assert config.missing_required() == []
    assert config.get("downloads.seeding_ratio") == 2.0
    assert config.get("downloads.seeding_time_minutes") == 10080
    assert config.get("jellyseerr.email") == "admin@media.local"
    assert config.get("nope.nothing", "fallback") == "fallback"
    assert config.compose_file == str(tmp_path / "docker-compose.yml")


def test_loads_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(BASE_CONFIG))
    config = ConfigManager(str(path))
    assert config.load()[0]
    assert config.get("quality.radarr_profile") == "HD Bluray + WEB"


def test_missing_file(tmp_path):
    ok, error = ConfigManager(str(tmp_path / "absent.toml")).load()
    assert not ok
    assert "not found" in error


def test_unparseable_file(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("this is = = not toml")
    ok, error = ConfigManager(str(path)).load()
    assert not ok
    assert "could not be parsed" in error


def test_validation_collects_every_error():
    data = json.loads(json.dumps(BASE_CONFIG))
    data["downloads"]["complete"] = "relative/path"
    del data["quality"]
    config = ConfigManager.from_dict(data)
    errors = config.validate()
    assert any(e.startswith("downloads.complete:") for e in errors)
    assert any("'quality' is a required property" in e for e in errors)
    assert "quality.radarr_profile" in config.missing_required()


def test_blank_required_value_is_missing():
    data = json.loads(json.dumps(BASE_CONFIG))
    data["jellyfin"]["password"] = "   "
    assert ConfigManager.from_dict(data).missing_required() == ["jellyfin.password"]


def test_auth_defaults_to_jellyfin_credentials():
    config = ConfigManager.from_dict(BASE_CONFIG)
    assert config.auth_credentials() == ("admin", "jf-secret")
    data = dict(BASE_CONFIG, auth={"username": "ops", "password": "x"})
    assert ConfigManager.from_dict(data).auth_credentials() == ("ops", "x")


def test_media_and_config_dirs(tmp_path):
    data = dict(BASE_CONFIG, paths={"media_dir": str(tmp_path)})
    config = ConfigManager.from_dict(data)
    assert config.media_dir == str(tmp_path)
    assert config.config_dir == os.path.join(str(tmp_path), "config")
