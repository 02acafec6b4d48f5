from mediastack.actions import ConfigurationAction, SkipAction
from mediastack.global_logger import logger
from mediastack.integration import ServiceIntegration
from mediastack.links import ARR_APPS, DOWNLOAD_CLIENT, NOTIFICATION, links_from
from mediastack.results import ErrorKind, SkipCheck
from mediastack.verification import VerificationCheck
from typing import Optional
import requests


MASKED_FIELDS = {"password", "apikey"}
UNKNOWN_QUALITY_ID = 0
DEFAULT_QUALITY_PROFILE_ID = 1


def find_schema(schemas: list, implementation: str) -> Optional[dict]:
    target = (implementation or "").lower()
    for item in schemas or []:
        if (item.get("implementation") or "").lower() == target:
            return item
    return None


def build_fields_from_schema(schema: Optional[dict], overrides: dict) -> list:
    fields = {}
    for f in (schema or {}).get("fields") or []:
        n = f.get("name")
        if not n:
            continue
        fields[n] = f.get("value")

    for key, value in (overrides or {}).items():
        for existing in list(fields.keys()):
            if existing.lower() == key.lower():
                fields[existing] = value
                break
        else:
            fields[key] = value

    return [{"name": k, "value": v} for k, v in fields.items()]


def fields_match(existing: dict, overrides: dict) -> bool:
    """True when every non-secret override already holds on ``existing``."""
    have = {
        (f.get("name") or "").lower(): f.get("value")
        for f in (existing.get("fields") or [])
    }
    for key, value in overrides.items():
        if key.lower() in MASKED_FIELDS:
            continue
        if have.get(key.lower()) != value:
            return False
    return True


def build_payload(schema: Optional[dict], name: str, overrides: dict, **extra) -> dict:
    payload = {
        k: v for k, v in (schema or {}).items() if k not in ("id", "presets", "fields")
    }
    payload.update(extra)
    payload["name"] = name
    payload["fields"] = build_fields_from_schema(schema, overrides)
    payload.setdefault("tags", [])
    return payload


def apply_resource(client, path: str, desired: dict, match: Optional[dict]):
    """PUT over an existing entry (keeping its id) or POST a new one."""
    if match:
        body = desired.copy()
        body["id"] = match.get("id")
        return client.put(f"{path}/{match.get('id')}", body)
    return client.post(path, desired)


def find_by_name(items: list, name: str) -> Optional[dict]:
    target = (name or "").lower()
    return next((i for i in items or [] if (i.get("name") or "").lower() == target), None)


def host_auth_action(ctx, service: str, client, api_version: str = "v3") -> ConfigurationAction:
    """Forms authentication on an *arr style ``/config/host`` endpoint."""
    username, password = ctx.config.auth_credentials()
    path = f"/api/{api_version}/config/host"
    display = ctx.registry.get(service).display_name

    def check():
        if not (username and password):
            raise SkipAction("no username/password configured", ErrorKind.PRECONDITION)
        host = client.get(path) or {}
        return (
            host.get("username") == username
            and (host.get("authenticationMethod") or "").lower() == "forms"
        )

    def apply():
        host = dict(client.get(path) or {})
        host["authenticationMethod"] = "forms"
        host["authenticationRequired"] = "enabled"
        host["username"] = username
        host["password"] = password
        host["passwordConfirmation"] = password
        client.put(path, host)

    return ConfigurationAction(service, f"{display} authentication", check, apply)


def host_auth_check(ctx, service: str, client, api_version: str = "v3") -> VerificationCheck:
    display = ctx.registry.get(service).display_name

    def probe():
        try:
            host = client.get(f"/api/{api_version}/config/host") or {}
        except requests.RequestException as e:
            raise SkipCheck(f"host config unavailable: {e}")
        return bool(host.get("username"))

    return VerificationCheck(
        f"{display} → auth configured", probe, requires=(service,), group="Authentication"
    )


class ArrIntegration(ServiceIntegration):
    """Sonarr, Sonarr Anime and Radarr share one API surface (v3)."""

    def __init__(self, ctx, name: str):
        super().__init__(ctx)
        self.name = name
        _display, self.root_folder, self.category_field, self.kind = ARR_APPS[name]

    def client(self):
        return self.ctx.api_client(self.name)

    def _root_folder_action(self) -> ConfigurationAction:
        def folders():
            return self.client().get("/api/v3/rootfolder") or []

        def check():
            return [f.get("path") for f in folders()] == [self.root_folder]

        def apply():
            existing = folders()
            for folder in existing:
                if folder.get("path") != self.root_folder:
                    logger.info(
                        "%s: removing stale root folder %s", self.display_name, folder.get("path")
                    )
                    self.client().delete(f"/api/v3/rootfolder/{folder.get('id')}")
            if not any(f.get("path") == self.root_folder for f in existing):
                self.client().post("/api/v3/rootfolder", {"path": self.root_folder})

        return ConfigurationAction(
            self.name, f"{self.display_name} root folder: {self.root_folder}", check, apply
        )

    def _download_client_overrides(self, link) -> dict:
        fields = link.fields
        overrides = {"host": fields["host"], "port": fields["port"], fields["category_field"]: fields["category"]}
        if link.target == "qbittorrent":
            overrides["username"] = fields["username"]
            overrides["password"] = fields["password"]
        else:
            key = self.ctx.credentials.key("sabnzbd")
            if not key:
                raise SkipAction("SABnzbd API key not found")
            overrides["apiKey"] = key
        return overrides

    def _download_client_action(self, link) -> ConfigurationAction:
        label = link.fields["name"]

        def current() -> Optional[dict]:
            return find_by_name(self.client().get("/api/v3/downloadclient") or [], label)

        def check():
            if link.target not in self.ctx.ready:
                raise SkipAction(f"{label} is not reachable", ErrorKind.READINESS_TIMEOUT)
            overrides = self._download_client_overrides(link)
            match = current()
            return bool(match) and match.get("enable") is True and fields_match(match, overrides)

        def apply():
            overrides = self._download_client_overrides(link)
            schemas = self.client().get("/api/v3/downloadclient/schema") or []
            schema = find_schema(schemas, link.fields["implementation"]) or {
                "implementation": link.fields["implementation"],
                "configContract": link.fields["configContract"],
            }
            desired = build_payload(
                schema,
                label,
                overrides,
                enable=True,
                protocol=link.fields["protocol"],
                priority=link.fields["priority"],
            )
            apply_resource(self.client(), "/api/v3/downloadclient", desired, current())

        return ConfigurationAction(
            self.name,
            f"{self.display_name} → {label} (category: {link.fields['category']})",
            check,
            apply,
        )

    def _notification_action(self, link) -> ConfigurationAction:
        label = link.fields["name"]

        def overrides() -> dict:
            key = self.ctx.credentials.key("jellyfin")
            if not key:
                raise SkipAction("Jellyfin API key not known yet")
            return {
                "host": link.fields["host"],
                "port": link.fields["port"],
                "useSsl": False,
                "apiKey": key,
                "notify": True,
                "updateLibrary": True,
            }

        def current() -> Optional[dict]:
            return find_by_name(self.client().get("/api/v3/notification") or [], label)

        def check():
            wanted = overrides()
            match = current()
            return bool(match) and fields_match(match, wanted)

        def apply():
            schemas = self.client().get("/api/v3/notification/schema") or []
            schema = find_schema(schemas, link.fields["implementation"]) or {
                "implementation": link.fields["implementation"],
                "configContract": link.fields["configContract"],
            }
            triggers = {
                k: True for k in ("onDownload", "onUpgrade", "onRename", "onSeriesDelete",
                                  "onEpisodeFileDelete", "onMovieDelete", "onMovieFileDelete")
                if k in schema or k in ("onDownload", "onUpgrade", "onRename")
            }
            desired = build_payload(schema, label, overrides(), **triggers)
            apply_resource(self.client(), "/api/v3/notification", desired, current())

        return ConfigurationAction(self.name, f"{self.display_name} → {label} notification", check, apply)

    def _unknown_quality_action(self) -> ConfigurationAction:
        path = f"/api/v3/qualityprofile/{DEFAULT_QUALITY_PROFILE_ID}"

        def unknown_item(profile: dict) -> Optional[dict]:
            for item in profile.get("items") or []:
                if (item.get("quality") or {}).get("id") == UNKNOWN_QUALITY_ID:
                    return item
            return None

        def check():
            try:
                profile = self.client().get(path) or {}
            except requests.HTTPError as e:
                raise SkipAction(f"quality profile {DEFAULT_QUALITY_PROFILE_ID} unavailable: {e}")
            item = unknown_item(profile)
            if item is None:
                raise SkipAction("profile has no Unknown quality entry")
            return item.get("allowed") is True

        def apply():
            profile = self.client().get(path) or {}
            unknown_item(profile)["allowed"] = True
            self.client().put(path, profile)

        return ConfigurationAction(
            self.name, f"{self.display_name} Unknown quality allowed", check, apply
        )

    def configuration_actions(self):
        actions = [self._root_folder_action()]
        for link in links_from(self.ctx.links, self.name, DOWNLOAD_CLIENT):
            actions.append(self._download_client_action(link))
        for link in links_from(self.ctx.links, self.name, NOTIFICATION):
            actions.append(self._notification_action(link))
        if self.kind == "Sonarr":
            actions.append(self._unknown_quality_action())
        actions.append(host_auth_action(self.ctx, self.name, self.client()))
        return actions

    def verification_checks(self):
        name = self.display_name
        requires = (self.name,)

        def get(path):
            return self.client().get(path) or []

        def qbit_connected():
            return any(
                c.get("name") == "qBittorrent" and c.get("enable") is True
                for c in get("/api/v3/downloadclient")
            )

        def root_folder():
            return any(f.get("path") == self.root_folder for f in get("/api/v3/rootfolder"))

        def no_stale_root_folders():
            return all(f.get("path") == self.root_folder for f in get("/api/v3/rootfolder"))

        def jellyfin_notification():
            return any(n.get("name") == "Jellyfin" for n in get("/api/v3/notification"))

        def unknown_quality():
            try:
                profile = self.client().get(f"/api/v3/qualityprofile/{DEFAULT_QUALITY_PROFILE_ID}") or {}
            except requests.RequestException as e:
                raise SkipCheck(f"quality profile unavailable: {e}")
            for item in profile.get("items") or []:
                if (item.get("quality") or {}).get("id") == UNKNOWN_QUALITY_ID:
                    return item.get("allowed") is True
            return False

        def no_health_errors():
            errors = [h for h in get("/api/v3/health") if h.get("type") == "error"]
            return not errors, "; ".join(h.get("message") or "" for h in errors)

        checks = [
            VerificationCheck(f"{name} → qBittorrent", qbit_connected, requires, "Download clients"),
            VerificationCheck(f"{name} → {self.root_folder}", root_folder, requires, "Root folders"),
        ]
        if self.kind == "Radarr":
            checks.append(
                VerificationCheck(
                    f"{name} → no stale root folders", no_stale_root_folders, requires, "Root folders"
                )
            )
        checks.append(
            VerificationCheck(
                f"{name} → Jellyfin notification", jellyfin_notification, requires, "Jellyfin sync"
            )
        )
        if self.kind == "Sonarr":
            checks.append(
                VerificationCheck(
                    f"{name} → Unknown quality allowed", unknown_quality, requires, "Quality profiles"
                )
            )
        checks.append(host_auth_check(self.ctx, self.name, self.client()))
        checks.append(
            VerificationCheck(f"{name} → no health errors", no_health_errors, requires, "Health checks")
        )
        return checks
