from mediastack.config_schema import CONFIG_SCHEMA, REQUIRED_FIELDS
from mediastack.global_logger import logger
from jsonschema import Draft7Validator
from typing import Any, Optional, Tuple
import copy, json, os, tomllib


DEFAULT_CONFIG_FILE = "config.toml"

DEFAULTS = {
    "downloads": {"seeding_ratio": 2.0, "seeding_time_minutes": 10080},
    "subtitles": {"languages": ["en"], "providers": []},
    "indexers": [],
    "usenet_providers": [],
    "auth": {},
    "jellyseerr": {"email": "admin@media.local"},
    "paths": {"media_dir": "~/media"},
    "logging": {"level": "INFO"},
}

_MISSING = object()


def _deep_merge(base: dict, overrides: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _lookup(data: dict, dotted: str, default=_MISSING):
    node: Any = data
    for part in dotted.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


class ConfigManager:
    """Loads, validates and serves the declared stack configuration."""

    def __init__(self, file_path: Optional[str] = None):
        self.file_path = file_path or os.environ.get(
            "MEDIA_STACK_CONFIG", DEFAULT_CONFIG_FILE
        )
        self.raw: dict = {}
        self.config: dict = copy.deepcopy(DEFAULTS)
        self.loaded = False

    @classmethod
    def from_dict(cls, data: dict, file_path: Optional[str] = None) -> "ConfigManager":
        manager = cls(file_path)
        manager.raw = copy.deepcopy(data)
        manager.config = _deep_merge(DEFAULTS, data)
        manager.loaded = True
        return manager

    def load(self, file_path: Optional[str] = None) -> Tuple[bool, Optional[str]]:
        if file_path:
            self.file_path = file_path
        path = os.path.abspath(os.path.expanduser(self.file_path))
        if not os.path.exists(path):
            return False, f"Config file not found: {path}"
        try:
            if path.endswith(".toml"):
                with open(path, "rb") as f:
                    data = tomllib.load(f)
            else:
                with open(path, "r", encoding="utf-8") as f:
                    data = json.load(f)
        except (tomllib.TOMLDecodeError, json.JSONDecodeError) as e:
            return False, f"Config file {path} could not be parsed: {e}"
        except OSError as e:
            return False, f"Config file {path} could not be read: {e}"
        if not isinstance(data, dict):
            return False, f"Config file {path} must contain a table at the top level"

        self.file_path = path
        self.raw = data
        self.config = _deep_merge(DEFAULTS, data)
        self.loaded = True
        logger.debug("Loaded configuration from %s", path)
        return True, None

    def validate(self) -> list[str]:
        validator = Draft7Validator(CONFIG_SCHEMA)
        errors = []
        for error in sorted(validator.iter_errors(self.raw), key=lambda e: list(e.path)):
            location = ".".join(str(p) for p in error.path) or "<root>"
            errors.append(f"{location}: {error.message}")
        return errors

    def missing_required(self) -> list[str]:
        missing = []
        for field in REQUIRED_FIELDS:
            value = _lookup(self.raw, field, None)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(field)
        return missing

    def get(self, key: str, default=None):
        value = _lookup(self.config, key)
        return default if value is _MISSING else value

    @property
    def media_dir(self) -> str:
        return os.path.abspath(os.path.expanduser(self.get("paths.media_dir") or "~/media"))

    @property
    def config_dir(self) -> str:
        configured = self.get("paths.config_dir")
        if configured:
            return os.path.abspath(os.path.expanduser(configured))
        return os.path.join(self.media_dir, "config")

    @property
    def compose_file(self) -> str:
        configured = self.get("paths.compose_file")
        if configured:
            return os.path.abspath(os.path.expanduser(configured))
        base = os.path.dirname(os.path.abspath(os.path.expanduser(self.file_path)))
        return os.path.join(base, "docker-compose.yml")

    def auth_credentials(self) -> Tuple[str, str]:
        username = self.get("auth.username") or self.get("jellyfin.username") or ""
        password = self.get("auth.password") or self.get("jellyfin.password") or ""
        return username, password
