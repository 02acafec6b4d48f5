from dataclasses import dataclass
from typing import Iterator, Optional, Tuple


@dataclass(frozen=True)
class CredentialSource:
    """Where a service keeps its generated API key on disk.

    ``paths`` are relative to the stack config directory and are tried in
    order; ``key`` is an element name (xml), option name (ini) or dotted
    path (json/yaml).
    """

    kind: str
    paths: Tuple[str, ...]
    key: str


@dataclass(frozen=True)
class ServiceDescriptor:
    name: str
    display_name: str
    external_url: str
    internal_url: str = ""
    health_path: str = ""
    api_key_source: Optional[CredentialSource] = None
    container: str = ""

    @property
    def health_url(self) -> str:
        return f"{self.external_url.rstrip('/')}{self.health_path}"

    @property
    def internal_host(self) -> str:
        return self.internal_url.split("://", 1)[-1].split(":", 1)[0]

    @property
    def internal_port(self) -> Optional[int]:
        tail = self.internal_url.split("://", 1)[-1]
        if ":" not in tail:
            return None
        return int(tail.split(":", 1)[1].split("/", 1)[0])


def _arr_key(name: str) -> CredentialSource:
    return CredentialSource("xml", (f"{name}/config.xml",), "ApiKey")


# name, display name, host port, internal url, health path, key source
_SERVICE_TABLE = (
    ("qbittorrent", "qBittorrent", 8081, "http://qbittorrent:8081", "", None),
    ("jellyfin", "Jellyfin", 8096, "http://jellyfin:8096", "/health", None),
    ("sonarr", "Sonarr", 8989, "http://sonarr:8989", "/ping", _arr_key("sonarr")),
    (
        "sonarr-anime",
        "Sonarr Anime",
        8990,
        "http://sonarr-anime:8989",
        "/ping",
        _arr_key("sonarr-anime"),
    ),
    ("radarr", "Radarr", 7878, "http://radarr:7878", "/ping", _arr_key("radarr")),
    ("prowlarr", "Prowlarr", 9696, "http://prowlarr:9696", "/ping", _arr_key("prowlarr")),
    (
        "bazarr",
        "Bazarr",
        6767,
        "http://bazarr:6767",
        "",
        CredentialSource(
            "yaml",
            ("bazarr/config/config/config.yaml", "bazarr/config/config.yaml"),
            "auth.apikey",
        ),
    ),
    (
        "sabnzbd",
        "SABnzbd",
        8080,
        "http://sabnzbd:8080",
        "",
        CredentialSource("ini", ("sabnzbd/sabnzbd.ini",), "api_key"),
    ),
    (
        "jellyseerr",
        "Jellyseerr",
        5055,
        "http://jellyseerr:5055",
        "",
        CredentialSource("json", ("jellyseerr/settings.json",), "main.apiKey"),
    ),
    ("lidarr", "Lidarr", 8686, "http://lidarr:8686", "/ping", _arr_key("lidarr")),
    ("lazylibrarian", "LazyLibrarian", 5299, "", "", None),
    ("navidrome", "Navidrome", 4533, "", "/ping", None),
    ("kavita", "Kavita", 5001, "", "", None),
    ("immich", "Immich", 2283, "", "/api/server/ping", None),
    ("tubearchivist", "TubeArchivist", 8000, "", "/api/ping", None),
    ("tdarr", "Tdarr", 8265, "", "", None),
    ("autobrr", "Autobrr", 7474, "", "/api/healthz/liveness", None),
    ("scrutiny", "Scrutiny", 9091, "", "/api/health", None),
    ("gitea", "Gitea", 3000, "", "/api/v1/version", None),
    ("uptime-kuma", "Uptime Kuma", 3001, "", "", None),
    ("open-webui", "Open WebUI", 3100, "", "", None),
    ("dozzle", "Dozzle", 9999, "", "", None),
    ("beszel", "Beszel", 8090, "", "/api/health", None),
    ("crowdsec", "CrowdSec", 8180, "", "/health", None),
    ("homepage", "Homepage", 3002, "", "", None),
    ("flaresolverr", "FlareSolverr", 8191, "http://flaresolverr:8191", "", None),
    ("landing", "Landing page", 80, "", "", None),
)

# Services whose health endpoint is polled in the verification pass, in order.
HEALTH_CHECKED = (
    "jellyfin",
    "sonarr",
    "sonarr-anime",
    "radarr",
    "prowlarr",
    "bazarr",
    "sabnzbd",
    "qbittorrent",
    "jellyseerr",
    "lidarr",
    "lazylibrarian",
    "navidrome",
    "kavita",
    "immich",
    "tubearchivist",
    "tdarr",
    "autobrr",
    "scrutiny",
    "gitea",
    "uptime-kuma",
    "open-webui",
    "dozzle",
    "beszel",
    "crowdsec",
    "homepage",
)

# Services the configurator needs up before it starts, in wait order.
SETUP_SERVICES = (
    "jellyfin",
    "sonarr",
    "sonarr-anime",
    "radarr",
    "prowlarr",
    "bazarr",
    "sabnzbd",
    "qbittorrent",
    "jellyseerr",
)

CONTAINERS = (
    "jellyfin",
    "sonarr",
    "sonarr-anime",
    "radarr",
    "lidarr",
    "lazylibrarian",
    "prowlarr",
    "bazarr",
    "sabnzbd",
    "qbittorrent",
    "jellyseerr",
    "flaresolverr",
    "media-nginx",
    "recyclarr",
    "unpackerr",
    "autobrr",
    "tubearchivist",
    "archivist-es",
    "archivist-redis",
    "tdarr",
    "janitorr",
    "ollama",
    "open-webui",
    "watchtower",
    "dozzle",
    "crowdsec",
    "beszel",
    "navidrome",
    "kavita",
    "immich",
    "immich-machine-learning",
    "immich-redis",
    "immich-postgres",
    "scrutiny",
    "gitea",
    "uptime-kuma",
    "homepage",
)


def _build_descriptors(host: str) -> list[ServiceDescriptor]:
    descriptors = []
    for name, display, port, internal, health, source in _SERVICE_TABLE:
        external = f"http://{host}" if port == 80 else f"http://{host}:{port}"
        descriptors.append(
            ServiceDescriptor(
                name=name,
                display_name=display,
                external_url=external,
                internal_url=internal,
                health_path=health,
                api_key_source=source,
                container=name if name != "landing" else "media-nginx",
            )
        )
    return descriptors


class ServiceRegistry:
    """Static lookup table of every service in the stack."""

    def __init__(self, host: str = "localhost"):
        self.host = host
        self._services = {d.name: d for d in _build_descriptors(host)}

    def get(self, name: str) -> ServiceDescriptor:
        try:
            return self._services[name]
        except KeyError:
            raise KeyError(f"Unknown service: {name}") from None

    def __contains__(self, name: str) -> bool:
        return name in self._services

    def __iter__(self) -> Iterator[ServiceDescriptor]:
        return iter(self._services.values())

    def health_endpoints(self) -> list[Tuple[str, str]]:
        return [(self.get(n).display_name, self.get(n).health_url) for n in HEALTH_CHECKED]


REGISTRY = ServiceRegistry()
