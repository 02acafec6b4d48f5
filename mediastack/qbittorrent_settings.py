from mediastack.actions import ConfigurationAction
from mediastack.global_logger import logger
from mediastack.http_client import ApiClient
from mediastack.integration import ServiceIntegration
from mediastack.results import SkipCheck
from mediastack.verification import VerificationCheck
import json, re, requests


TEMP_PASSWORD_RE = re.compile(
    r"A temporary password is provided for this session:\s*(\S+)", re.IGNORECASE
)
DEFAULT_PASSWORD = "adminadmin"
WEB_UI_PORT = 8081
CATEGORIES = ("sonarr", "sonarr-anime", "radarr", "prowlarr")


def _temp_password_from_logs(runtime, container: str) -> str:
    if runtime is None or not runtime.available():
        return ""
    matches = TEMP_PASSWORD_RE.findall(runtime.logs(container))
    return matches[-1] if matches else ""


def _login(session: requests.Session, base: str, username: str, password: str) -> bool:
    try:
        resp = session.post(
            f"{base}/api/v2/auth/login",
            data={"username": username, "password": password},
            headers={"Referer": f"{base}/", "Origin": base},
            timeout=10,
        )
    except requests.RequestException as e:
        logger.debug("qBittorrent login request failed: %s", e)
        return False
    return resp.status_code == 200 and resp.text.strip().lower() == "ok."


class QBittorrentIntegration(ServiceIntegration):
    """
    qBittorrent is configured over its cookie-authenticated Web API.

    The password that is currently valid is not observable up front: a fresh
    container accepts only the temporary password printed to its log, a
    configured one accepts the declared password. Both are tried, declared
    first. If the container restarts between reading the log and logging in
    the temporary password is stale and the login fails; the next run picks
    up the new one.
    """

    name = "qbittorrent"

    def __init__(self, ctx):
        super().__init__(ctx)
        self.session = requests.Session()
        self.base = self.descriptor.external_url.rstrip("/")

    @property
    def username(self) -> str:
        return self.ctx.config.get("qbittorrent.username") or "admin"

    @property
    def password(self) -> str:
        return self.ctx.config.get("qbittorrent.password") or ""

    def candidate_passwords(self) -> list[str]:
        temp = _temp_password_from_logs(self.ctx.runtime, self.descriptor.container)
        candidates = [self.password, temp or DEFAULT_PASSWORD]
        return [p for i, p in enumerate(candidates) if p and p not in candidates[:i]]

    def resolve_credential(self):
        cached = self.ctx.credentials.get(self.name)
        if cached is not None:
            return cached
        for password in self.candidate_passwords():
            if _login(self.session, self.base, self.username, password):
                logger.debug("qBittorrent accepted %s password", "declared" if password == self.password else "fallback")
                return self.ctx.credentials.store(self.name, password)
        return None

    def client(self) -> ApiClient:
        return ApiClient(
            self.base,
            headers={"Referer": f"{self.base}/", "Origin": self.base},
            session=self.session,
            on_mutation=self.ctx.record_mutation,
        )

    def desired_preferences(self) -> dict:
        return {
            "web_ui_username": self.username,
            "web_ui_password": self.password,
            "save_path": self.ctx.config.get("downloads.complete"),
            "temp_path": self.ctx.config.get("downloads.incomplete"),
            "temp_path_enabled": True,
            "web_ui_port": WEB_UI_PORT,
            "max_ratio": self.ctx.config.get("downloads.seeding_ratio"),
            "max_seeding_time": self.ctx.config.get("downloads.seeding_time_minutes"),
        }

    def _preferences_current(self) -> bool:
        current = self.client().get("/api/v2/app/preferences") or {}
        desired = self.desired_preferences()
        for key, value in desired.items():
            if key == "web_ui_password":
                continue
            have = current.get(key)
            if isinstance(value, float) or isinstance(have, float):
                try:
                    if abs(float(have) - float(value)) > 1e-6:
                        return False
                except (TypeError, ValueError):
                    return False
            elif have != value:
                return False
        credential = self.ctx.credentials.get(self.name)
        return credential is not None and credential.api_key_or_token == self.password

    def _apply_preferences(self) -> None:
        self.client().post(
            "/api/v2/app/setPreferences",
            form={"json": json.dumps(self.desired_preferences())},
        )
        self.ctx.credentials.store(self.name, self.password)

    def _category_path(self, category: str) -> str:
        return f"{self.ctx.config.get('downloads.complete').rstrip('/')}/{category}"

    def _category_action(self, category: str) -> ConfigurationAction:
        def check():
            categories = self.client().get("/api/v2/torrents/categories") or {}
            entry = categories.get(category)
            if not entry:
                return False
            return (entry.get("savePath") or "").rstrip("/") == self._category_path(category)

        def apply():
            form = {"category": category, "savePath": self._category_path(category)}
            categories = self.client().get("/api/v2/torrents/categories") or {}
            if category in categories:
                self.client().post("/api/v2/torrents/editCategory", form=form)
            else:
                self.client().post("/api/v2/torrents/createCategory", form=form)

        return ConfigurationAction(self.name, f"qBittorrent category: {category}", check, apply)

    def configuration_actions(self):
        actions = [
            ConfigurationAction(
                self.name,
                "qBittorrent preferences + credentials",
                self._preferences_current,
                self._apply_preferences,
            )
        ]
        actions += [self._category_action(c) for c in CATEGORIES]
        return actions

    def verification_checks(self):
        session = requests.Session()
        state: dict = {}

        def logged_in() -> bool:
            if "ok" not in state:
                state["ok"] = _login(session, self.base, self.username, self.password)
            return state["ok"]

        def has_category(category: str):
            def probe():
                if not logged_in():
                    raise SkipCheck("qBittorrent login failed")
                resp = session.get(f"{self.base}/api/v2/torrents/categories", timeout=10)
                resp.raise_for_status()
                return category in (resp.json() or {})

            return probe

        return [
            VerificationCheck("qBittorrent login", logged_in, group="Download clients"),
            VerificationCheck(
                "qBittorrent category: sonarr", has_category("sonarr"), group="Download clients"
            ),
            VerificationCheck(
                "qBittorrent category: radarr", has_category("radarr"), group="Download clients"
            ),
        ]
