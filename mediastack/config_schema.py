_NON_EMPTY = {"type": "string", "minLength": 1}
_ABSOLUTE_PATH = {"type": "string", "pattern": "^/"}

_CREDENTIALS = {
    "type": "object",
    "required": ["username", "password"],
    "properties": {"username": _NON_EMPTY, "password": _NON_EMPTY},
}

INDEXER_SCHEMA = {
    "type": "object",
    "required": ["name", "definitionName"],
    "properties": {
        "name": _NON_EMPTY,
        "definitionName": _NON_EMPTY,
        "enable": {"type": "boolean"},
        "flaresolverr": {"type": "boolean"},
        "fields": {"type": "object"},
    },
}

USENET_PROVIDER_SCHEMA = {
    "type": "object",
    "required": ["name", "host"],
    "properties": {
        "name": _NON_EMPTY,
        "host": _NON_EMPTY,
        "port": {"type": "integer", "minimum": 1, "maximum": 65535},
        "ssl": {"type": "boolean"},
        "username": {"type": "string"},
        "password": {"type": "string"},
        "connections": {"type": "integer", "minimum": 1},
        "enable": {"type": "boolean"},
    },
}

CONFIG_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["jellyfin", "qbittorrent", "downloads", "quality", "timezone"],
    "properties": {
        "timezone": _NON_EMPTY,
        "jellyfin": _CREDENTIALS,
        "qbittorrent": _CREDENTIALS,
        "downloads": {
            "type": "object",
            "required": ["complete", "incomplete"],
            "properties": {
                "complete": _ABSOLUTE_PATH,
                "incomplete": _ABSOLUTE_PATH,
                "seeding_ratio": {"type": "number"},
                "seeding_time_minutes": {"type": "integer"},
            },
        },
        "quality": {
            "type": "object",
            "required": ["sonarr_profile", "sonarr_anime_profile", "radarr_profile"],
            "properties": {
                "sonarr_profile": _NON_EMPTY,
                "sonarr_anime_profile": _NON_EMPTY,
                "radarr_profile": _NON_EMPTY,
            },
        },
        "subtitles": {
            "type": "object",
            "properties": {
                "languages": {"type": "array", "items": {"type": "string"}},
                "providers": {"type": "array", "items": {"type": "string"}},
            },
        },
        "indexers": {"type": "array", "items": INDEXER_SCHEMA},
        "usenet_providers": {"type": "array", "items": USENET_PROVIDER_SCHEMA},
        "auth": {
            "type": "object",
            "properties": {"username": {"type": "string"}, "password": {"type": "string"}},
        },
        "jellyseerr": {
            "type": "object",
            "properties": {"email": {"type": "string"}},
        },
        "paths": {
            "type": "object",
            "properties": {
                "media_dir": {"type": "string"},
                "config_dir": {"type": "string"},
                "compose_file": {"type": "string"},
            },
        },
        "logging": {
            "type": "object",
            "properties": {
                "level": {
                    "type": "string",
                    "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "debug", "info", "warning", "error"],
                },
                "file": {"type": "string"},
            },
        },
    },
}

REQUIRED_FIELDS = (
    "jellyfin.username",
    "jellyfin.password",
    "qbittorrent.username",
    "qbittorrent.password",
    "downloads.complete",
    "downloads.incomplete",
    "quality.sonarr_profile",
    "quality.sonarr_anime_profile",
    "quality.radarr_profile",
    "timezone",
)
