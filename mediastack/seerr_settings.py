from mediastack.actions import ConfigurationAction, SkipAction
from mediastack.credentials import find_source_file
from mediastack.global_logger import logger, warn
from mediastack.http_client import ApiClient
from mediastack.integration import ServiceIntegration
from mediastack.links import ARR_APPS, ARR_SERVER, MEDIA_SERVER, links_from
from mediastack.readiness import wait_for
from mediastack.results import ErrorKind
from mediastack.template_renderer import write_if_changed
from mediastack.verification import VerificationCheck
from typing import Optional
import json, requests


JELLYFIN_SERVER_TYPE = 2
RESTART_SETTLE_S = 8.0


def seed_settings(settings: dict, media_server: dict, api_key: str, server_id: str) -> dict:
    """Return ``settings`` with the Jellyfin connection filled in and marked initialized."""
    seeded = json.loads(json.dumps(settings))
    jellyfin = seeded.setdefault("jellyfin", {})
    jellyfin.update(
        {
            "ip": media_server["ip"],
            "port": media_server["port"],
            "useSsl": media_server["useSsl"],
            "apiKey": api_key,
            "serverId": server_id,
            "name": media_server["name"],
        }
    )
    seeded.setdefault("main", {})["mediaServerType"] = JELLYFIN_SERVER_TYPE
    seeded.setdefault("public", {})["initialized"] = True
    return seeded


class JellyseerrIntegration(ServiceIntegration):
    """
    Jellyseerr is driven through a cookie session obtained by logging in with
    the Jellyfin admin account. Before its own wizard has run it does not know
    where Jellyfin is, so the connection is written into settings.json first.
    """

    name = "jellyseerr"
    needs_credential = False

    def __init__(self, ctx):
        super().__init__(ctx)
        self.session = requests.Session()
        self._logged_in = False

    def client(self) -> ApiClient:
        return self.ctx.client(self.name, session=self.session)

    def _public(self) -> dict:
        return self.client().get("/api/v1/settings/public") or {}

    def initialized(self) -> bool:
        return self._public().get("initialized") is True

    def login(self) -> bool:
        username = self.ctx.config.get("jellyfin.username") or ""
        password = self.ctx.config.get("jellyfin.password") or ""
        email = self.ctx.config.get("jellyseerr.email")
        base = {"username": username, "password": password, "email": email}
        for body in (dict(base, serverType=JELLYFIN_SERVER_TYPE), base):
            try:
                self.client().post("/api/v1/auth/jellyfin", body, mutating=False)
            except requests.RequestException as e:
                logger.debug("Jellyseerr login attempt failed: %s", e)
                continue
            if self.session.cookies.get("connect.sid"):
                return True
        return False

    def _require_session(self) -> None:
        if not self._logged_in:
            self._logged_in = self.login()
        if not self._logged_in:
            raise SkipAction(
                "could not authenticate with Jellyfin credentials", ErrorKind.MISSING_CREDENTIAL
            )

    def _preseed_action(self, link) -> ConfigurationAction:
        def settings_path() -> str:
            path = find_source_file(self.descriptor.api_key_source, self.ctx.config_dir)
            if not path:
                raise SkipAction("Jellyseerr settings.json not found")
            return path

        def apply():
            path = settings_path()
            api_key = self.ctx.credentials.key("jellyfin")
            if not api_key:
                raise SkipAction("Jellyfin API key not known yet")
            info = self.ctx.client("jellyfin").get("/System/Info/Public") or {}
            with open(path, "r", encoding="utf-8") as f:
                settings = json.load(f)
            seeded = seed_settings(settings, link.fields, api_key, info.get("Id") or "")
            if not write_if_changed(path, json.dumps(seeded, indent=1)):
                return
            ok_restart, error = self.ctx.runtime.restart(self.descriptor.container)
            if not ok_restart:
                warn("Jellyseerr restart failed: %s", error)
                return
            self.ctx.sleep(RESTART_SETTLE_S)
            result = wait_for(
                self.display_name,
                self.descriptor.health_url,
                max_attempts=self.ctx.max_wait_attempts,
                sleep=self.ctx.sleep,
                session=self.ctx.session,
            )
            if not result.ok:
                warn("Jellyseerr did not come back after restart")

        return ConfigurationAction(
            self.name, "Jellyseerr → Jellyfin server pre-configured", self.initialized, apply
        )

    def _libraries_action(self) -> ConfigurationAction:
        def libraries() -> list:
            self._require_session()
            return self.client().get("/api/v1/settings/jellyfin/library") or []

        def check():
            libs = libraries()
            if not libs:
                raise SkipAction("Jellyseerr sees no Jellyfin libraries yet", ErrorKind.PRECONDITION)
            return all(lib.get("enabled") is True for lib in libs)

        def apply():
            enabled = [dict(lib, enabled=True) for lib in libraries()]
            self.client().post("/api/v1/settings/jellyfin/library", enabled)

        return ConfigurationAction(self.name, "Jellyseerr libraries enabled", check, apply)

    def _first_profile(self, target: str) -> dict:
        profiles = self.ctx.api_client(target).get("/api/v3/qualityprofile") or []
        if profiles:
            return profiles[0]
        return {"id": 1, "name": "Any"}

    def _server_action(self, link) -> ConfigurationAction:
        label = link.fields["name"]
        kind = ARR_APPS[link.target][3].lower()
        path = f"/api/v1/settings/{kind}"

        def desired() -> dict:
            key = self.ctx.credentials.key(link.target)
            if not key:
                raise SkipAction(f"{label} API key not found")
            return dict(link.fields, apiKey=key)

        def current() -> Optional[dict]:
            servers = self.client().get(path) or []
            return next((s for s in servers if s.get("name") == label), None)

        def check():
            wanted = desired()
            self._require_session()
            match = current()
            return bool(match) and all(match.get(k) == v for k, v in wanted.items())

        def apply():
            body = desired()
            profile = self._first_profile(link.target)
            body["activeProfileId"] = profile.get("id", 1)
            body["activeProfileName"] = profile.get("name", "Any")
            match = current()
            if match:
                self.client().put(f"{path}/{match.get('id')}", dict(match, **body))
            else:
                self.client().post(path, body)

        return ConfigurationAction(self.name, f"Jellyseerr → {label}", check, apply)

    def _initialize_action(self) -> ConfigurationAction:
        def apply():
            self._require_session()
            self.client().post("/api/v1/settings/initialize")

        return ConfigurationAction(self.name, "Jellyseerr setup finalized", self.initialized, apply)

    def configuration_actions(self):
        actions = [
            self._preseed_action(link)
            for link in links_from(self.ctx.links, self.name, MEDIA_SERVER)
        ]
        actions.append(self._libraries_action())
        actions += [
            self._server_action(link) for link in links_from(self.ctx.links, self.name, ARR_SERVER)
        ]
        actions.append(self._initialize_action())
        return actions

    def verification_checks(self):
        requires = (self.name,)

        def api():
            return self.ctx.api_client(self.name)

        def servers(kind: str) -> list:
            return api().get(f"/api/v1/settings/{kind}") or []

        def connected(kind: str):
            def probe():
                count = len(servers(kind))
                return count > 0, f"{count} connection(s)"

            return probe

        def search_enabled(kind: str):
            return lambda: all(s.get("enableSearch") is True for s in servers(kind))

        def libraries_enabled():
            libs = (api().get("/api/v1/settings/jellyfin") or {}).get("libraries") or []
            enabled = len([lib for lib in libs if lib.get("enabled") is True])
            return enabled > 0, f"{enabled}/{len(libs)}"

        return [
            VerificationCheck("Jellyseerr → initialized", self.initialized, group="Jellyseerr"),
            VerificationCheck("Jellyseerr → Sonarr connections", connected("sonarr"), requires, "Jellyseerr"),
            VerificationCheck("Jellyseerr → Sonarr enableSearch", search_enabled("sonarr"), requires, "Jellyseerr"),
            VerificationCheck("Jellyseerr → Radarr connections", connected("radarr"), requires, "Jellyseerr"),
            VerificationCheck("Jellyseerr → Radarr enableSearch", search_enabled("radarr"), requires, "Jellyseerr"),
            VerificationCheck("Jellyseerr → libraries enabled", libraries_enabled, requires, "Jellyseerr"),
        ]
