from dataclasses import dataclass, field
from typing import Iterable, List, Optional


DOWNLOAD_CLIENT = "downloadClient"
NOTIFICATION = "notification"
APPLICATION = "application"
INDEXER_PROXY = "indexerProxy"
MEDIA_SERVER = "mediaServer"
ARR_SERVER = "arrServer"

SONARR_SYNC_CATEGORIES = [5000, 5010, 5020, 5030, 5040, 5045, 5050, 5090]
RADARR_SYNC_CATEGORIES = [2000, 2010, 2020, 2030, 2040, 2045, 2050, 2060, 2070, 2080, 2090]

# service -> (display name, root folder, download client category field, kind)
ARR_APPS = {
    "sonarr": ("Sonarr", "/media/tv", "tvCategory", "Sonarr"),
    "sonarr-anime": ("Sonarr Anime", "/media/anime", "tvCategory", "Sonarr"),
    "radarr": ("Radarr", "/media/movies", "movieCategory", "Radarr"),
}


@dataclass(frozen=True)
class DesiredLink:
    source: str
    kind: str
    target: str
    fields: dict = field(default_factory=dict, hash=False, compare=True)


def desired_links(config, registry) -> List[DesiredLink]:
    """Compile the cross-service edges the configurator maintains."""
    qbit = registry.get("qbittorrent")
    sab = registry.get("sabnzbd")
    jellyfin = registry.get("jellyfin")
    qbit_user = config.get("qbittorrent.username") or "admin"
    qbit_pass = config.get("qbittorrent.password") or ""

    links: List[DesiredLink] = []
    for name, (display, root, category_field, _impl) in ARR_APPS.items():
        links.append(
            DesiredLink(
                name,
                DOWNLOAD_CLIENT,
                "qbittorrent",
                {
                    "name": "qBittorrent",
                    "implementation": "QBittorrent",
                    "configContract": "QBittorrentSettings",
                    "protocol": "torrent",
                    "priority": 1,
                    "host": qbit.internal_host,
                    "port": qbit.internal_port,
                    "username": qbit_user,
                    "password": qbit_pass,
                    "category_field": category_field,
                    "category": name,
                },
            )
        )
        links.append(
            DesiredLink(
                name,
                DOWNLOAD_CLIENT,
                "sabnzbd",
                {
                    "name": "SABnzbd",
                    "implementation": "Sabnzbd",
                    "configContract": "SabnzbdSettings",
                    "protocol": "usenet",
                    "priority": 2,
                    "host": sab.internal_host,
                    "port": sab.internal_port,
                    "category_field": category_field,
                    "category": name,
                },
            )
        )
        links.append(
            DesiredLink(
                name,
                NOTIFICATION,
                "jellyfin",
                {
                    "name": "Jellyfin",
                    "implementation": "MediaBrowser",
                    "configContract": "MediaBrowserSettings",
                    "host": jellyfin.internal_host,
                    "port": jellyfin.internal_port,
                },
            )
        )

    for name, (display, root, _field, impl) in ARR_APPS.items():
        links.append(
            DesiredLink(
                "prowlarr",
                APPLICATION,
                name,
                {
                    "name": display,
                    "implementation": impl,
                    "configContract": f"{impl}Settings",
                    "prowlarrUrl": registry.get("prowlarr").internal_url,
                    "baseUrl": registry.get(name).internal_url,
                    "syncCategories": (
                        RADARR_SYNC_CATEGORIES if impl == "Radarr" else SONARR_SYNC_CATEGORIES
                    ),
                },
            )
        )
    links.append(
        DesiredLink(
            "prowlarr",
            INDEXER_PROXY,
            "flaresolverr",
            {
                "name": "FlareSolverr",
                "implementation": "FlareSolverr",
                "configContract": "FlareSolverrSettings",
                "host": registry.get("flaresolverr").internal_url,
                "requestTimeout": 60,
                "tag": "flaresolverr",
            },
        )
    )
    links.append(
        DesiredLink(
            "prowlarr",
            DOWNLOAD_CLIENT,
            "qbittorrent",
            {
                "name": "qBittorrent",
                "implementation": "QBittorrent",
                "configContract": "QBittorrentSettings",
                "protocol": "torrent",
                "priority": 1,
                "host": qbit.internal_host,
                "port": qbit.internal_port,
                "username": qbit_user,
                "password": qbit_pass,
                "category_field": "category",
                "category": "prowlarr",
            },
        )
    )

    for name in ("sonarr", "radarr"):
        target = registry.get(name)
        links.append(
            DesiredLink(
                "bazarr",
                ARR_SERVER,
                name,
                {"ip": target.internal_host, "port": target.internal_port, "base_url": "/", "ssl": False},
            )
        )

    links.append(
        DesiredLink(
            "jellyseerr",
            MEDIA_SERVER,
            "jellyfin",
            {"ip": jellyfin.internal_host, "port": jellyfin.internal_port, "useSsl": False, "name": "Jellyfin"},
        )
    )
    for name, (display, root, _field, impl) in ARR_APPS.items():
        target = registry.get(name)
        fields = {
            "name": display,
            "hostname": target.internal_host,
            "port": target.internal_port,
            "useSsl": False,
            "baseUrl": "",
            "activeDirectory": root,
            "is4k": False,
            "isDefault": name != "sonarr-anime",
            "externalUrl": target.external_url,
            "enableSearch": True,
        }
        if impl == "Sonarr":
            fields["enableSeasonFolders"] = True
        if name == "sonarr-anime":
            fields["seriesType"] = "anime"
            fields["animeSeriesType"] = "anime"
        if impl == "Radarr":
            fields["minimumAvailability"] = "released"
        links.append(DesiredLink("jellyseerr", ARR_SERVER, name, fields))

    return links


def links_from(
    links: Iterable[DesiredLink], source: str, kind: Optional[str] = None
) -> List[DesiredLink]:
    return [l for l in links if l.source == source and (kind is None or l.kind == kind)]
