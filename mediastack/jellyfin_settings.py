from mediastack.actions import ConfigurationAction, SkipAction
from mediastack.global_logger import logger
from mediastack.http_client import ApiClient
from mediastack.integration import ServiceIntegration
from mediastack.results import ErrorKind, SkipCheck
from mediastack.verification import VerificationCheck
from typing import Optional
import requests


CLIENT_AUTH = (
    'MediaBrowser Client="media-stack", Device="script", '
    'DeviceId="media-stack-setup", Version="1.0"'
)

# name, path inside the container, collection type
LIBRARIES = (
    ("Movies", "/media/movies", "movies"),
    ("TV Shows", "/media/tv", "tvshows"),
    ("Anime", "/media/anime", "tvshows"),
)

LIBRARY_OPTIONS = {"EnableRealtimeMonitor": True, "AutomaticRefreshIntervalDays": 1}

API_KEY_APP = "MediaServer"


def _options_current(folder: dict) -> bool:
    options = folder.get("LibraryOptions") or {}
    return all(options.get(k) == v for k, v in LIBRARY_OPTIONS.items())


class JellyfinIntegration(ServiceIntegration):
    name = "jellyfin"
    needs_credential = False

    def __init__(self, ctx):
        super().__init__(ctx)
        self._token: Optional[str] = None

    @property
    def username(self) -> str:
        return self.ctx.config.get("jellyfin.username") or ""

    @property
    def password(self) -> str:
        return self.ctx.config.get("jellyfin.password") or ""

    def client(self, token: Optional[str] = None) -> ApiClient:
        headers = {"X-Emby-Authorization": CLIENT_AUTH}
        if token:
            headers["X-Emby-Token"] = token
        return self.ctx.client(self.name, headers=headers)

    def authenticate(self) -> Optional[str]:
        try:
            data = self.client().post(
                "/Users/AuthenticateByName",
                {"Username": self.username, "Pw": self.password},
                mutating=False,
            )
        except requests.RequestException as e:
            logger.debug("Jellyfin authentication failed: %s", e)
            return None
        if not isinstance(data, dict):
            return None
        return data.get("AccessToken") or None

    def _require_token(self) -> str:
        if not self._token:
            self._token = self.authenticate()
            if self._token:
                self.ctx.secrets["jellyfin_token"] = self._token
        if not self._token:
            raise SkipAction("could not authenticate with Jellyfin", ErrorKind.MISSING_CREDENTIAL)
        return self._token

    def _virtual_folders(self, token: str) -> list:
        return self.client(token).get("/Library/VirtualFolders") or []

    def _wizard_action(self) -> ConfigurationAction:
        def check():
            try:
                data = self.client().get("/Startup/Configuration")
            except requests.HTTPError:
                return True
            return not (isinstance(data, dict) and "UICulture" in data)

        def apply():
            client = self.client()
            client.post(
                "/Startup/Configuration",
                {"UICulture": "en-US", "MetadataCountryCode": "US", "PreferredMetadataLanguage": "en"},
            )
            client.get("/Startup/User")
            client.post("/Startup/User", {"Name": self.username, "Password": self.password})
            client.post("/Startup/Complete")

        return ConfigurationAction(
            self.name, f"Jellyfin admin user '{self.username}'", check, apply
        )

    def _library_action(self, name: str, path: str, collection: str) -> ConfigurationAction:
        def check():
            token = self._require_token()
            return any(f.get("Name") == name for f in self._virtual_folders(token))

        def apply():
            token = self._require_token()
            self.client(token).post(
                "/Library/VirtualFolders",
                {"LibraryOptions": dict(LIBRARY_OPTIONS), "PathInfos": [{"Path": path}]},
                params={"name": name, "collectionType": collection, "refreshLibrary": "true"},
            )

        return ConfigurationAction(self.name, f"Jellyfin library: {name}", check, apply)

    def _library_options_action(self) -> ConfigurationAction:
        def check():
            token = self._require_token()
            return all(_options_current(f) for f in self._virtual_folders(token))

        def apply():
            token = self._require_token()
            for folder in self._virtual_folders(token):
                if _options_current(folder):
                    continue
                options = dict(folder.get("LibraryOptions") or {})
                options.update(LIBRARY_OPTIONS)
                self.client(token).post(
                    "/Library/VirtualFolders/LibraryOptions",
                    {"Id": folder.get("ItemId"), "LibraryOptions": options},
                )

        return ConfigurationAction(
            self.name, "Jellyfin real-time monitoring + daily scan", check, apply
        )

    def _api_key_action(self) -> ConfigurationAction:
        def check():
            token = self._require_token()
            items = (self.client(token).get("/Auth/Keys") or {}).get("Items") or []
            ours = [i for i in items if i.get("AppName") == API_KEY_APP]
            if not ours:
                return False
            self.ctx.credentials.store(self.name, ours[-1].get("AccessToken") or "")
            return self.ctx.credentials.get(self.name) is not None

        def apply():
            token = self._require_token()
            self.client(token).post("/Auth/Keys", params={"app": API_KEY_APP})

        return ConfigurationAction(self.name, "Jellyfin API key", check, apply)

    def configuration_actions(self):
        actions = [self._wizard_action()]
        actions += [self._library_action(*lib) for lib in LIBRARIES]
        actions += [self._library_options_action(), self._api_key_action()]
        return actions

    def verification_checks(self):
        state: dict = {}

        def token() -> Optional[str]:
            if "token" not in state:
                state["token"] = self.authenticate()
            return state["token"]

        def folders() -> list:
            if not token():
                raise SkipCheck("Jellyfin login failed")
            if "folders" not in state:
                state["folders"] = self._virtual_folders(token())
            return state["folders"]

        def library(name: str, path: str):
            def probe():
                return any(
                    f.get("Name") == name and path in (f.get("Locations") or [])
                    for f in folders()
                )

            return probe

        checks = [VerificationCheck("Jellyfin → login", lambda: bool(token()), group="Jellyfin")]
        for name, path, _ in LIBRARIES:
            checks.append(
                VerificationCheck(f"Jellyfin → library: {name}", library(name, path), group="Jellyfin")
            )
        checks.append(
            VerificationCheck(
                "Jellyfin → real-time monitoring",
                lambda: all(
                    (f.get("LibraryOptions") or {}).get("EnableRealtimeMonitor") is True
                    for f in folders()
                ),
                group="Jellyfin",
            )
        )
        checks.append(
            VerificationCheck(
                "Jellyfin → daily scan",
                lambda: all(
                    (f.get("LibraryOptions") or {}).get("AutomaticRefreshIntervalDays") == 1
                    for f in folders()
                ),
                group="Jellyfin",
            )
        )
        return checks
