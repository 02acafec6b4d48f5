from mediastack.actions import ConfigurationAction, SkipAction
from mediastack.credentials import find_source_file
from mediastack.global_logger import logger, warn
from mediastack.integration import ServiceIntegration
from mediastack.readiness import wait_for
from mediastack.results import ErrorKind
from mediastack.template_renderer import write_if_changed
from mediastack.verification import VerificationCheck
from typing import Optional
import re


INTERNAL_HOSTNAME = "sabnzbd"
COMPLETE_DIR = "/downloads/usenet/complete"
DOWNLOAD_DIR = "/downloads/usenet/incomplete"
CATEGORIES = ("sonarr", "sonarr-anime", "radarr")

_WHITELIST_RE = re.compile(r"^\s*host_whitelist\s*=\s*(.*)$", re.IGNORECASE)


def _split_hosts(value: str) -> list[str]:
    return [h for h in re.split(r"[,\s]+", value.strip()) if h]


def merge_host_whitelist(text: str, wanted: str) -> Optional[str]:
    """Return ``text`` with ``wanted`` appended to ``[misc] host_whitelist``.

    Returns None when nothing needs to change: the host is already listed,
    or there is no whitelist line at all (no restriction to widen).
    """
    lines = text.splitlines()
    in_misc = False
    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped.startswith("[") and stripped.endswith("]"):
            in_misc = stripped.lower() == "[misc]"
            continue
        if not in_misc:
            continue
        match = _WHITELIST_RE.match(line)
        if not match:
            continue
        hosts = _split_hosts(match.group(1))
        if wanted in hosts:
            return None
        lines[i] = f"host_whitelist = {', '.join(hosts + [wanted])}"
        return "\n".join(lines) + "\n"
    return None


class SABnzbdIntegration(ServiceIntegration):
    name = "sabnzbd"

    def _api(self, params: dict, mutating: bool = False, form: Optional[dict] = None):
        query = {"apikey": self.ctx.credentials.key(self.name), "output": "json"}
        query.update(params)
        client = self.ctx.client(self.name)
        if form is not None:
            form = dict(form, **query)
            return client.post("/api", form=form, mutating=True)
        return client.get("/api", params=query, mutating=mutating)

    def _misc(self) -> dict:
        data = self._api({"mode": "get_config", "section": "misc"}) or {}
        return (data.get("config") or {}).get("misc") or {}

    def _ini_path(self) -> Optional[str]:
        return find_source_file(self.descriptor.api_key_source, self.ctx.config_dir)

    def _whitelist_action(self) -> ConfigurationAction:
        def pending() -> Optional[str]:
            path = self._ini_path()
            if not path:
                raise SkipAction("sabnzbd.ini not found", ErrorKind.MISSING_CREDENTIAL)
            with open(path, "r", encoding="utf-8", errors="ignore") as f:
                return merge_host_whitelist(f.read(), INTERNAL_HOSTNAME)

        def apply():
            updated = pending()
            if updated is None:
                return
            write_if_changed(self._ini_path(), updated)
            ok_restart, error = self.ctx.runtime.restart(self.descriptor.container)
            if not ok_restart:
                warn("SABnzbd restart failed: %s", error)
                return
            result = wait_for(
                self.display_name,
                self.descriptor.health_url,
                max_attempts=self.ctx.max_wait_attempts,
                sleep=self.ctx.sleep,
                session=self.ctx.session,
            )
            if not result.ok:
                warn("SABnzbd did not come back after restart")

        return ConfigurationAction(
            self.name,
            f"SABnzbd host whitelist includes '{INTERNAL_HOSTNAME}'",
            lambda: pending() is None,
            apply,
        )

    def _directories_action(self) -> ConfigurationAction:
        def check():
            misc = self._misc()
            return (
                misc.get("complete_dir") == COMPLETE_DIR
                and misc.get("download_dir") == DOWNLOAD_DIR
            )

        def apply():
            for keyword, value in (("complete_dir", COMPLETE_DIR), ("download_dir", DOWNLOAD_DIR)):
                self._api(
                    {"mode": "set_config", "section": "misc", "keyword": keyword, "value": value},
                    mutating=True,
                )

        return ConfigurationAction(
            self.name, "SABnzbd directories: /downloads/usenet/{complete,incomplete}", check, apply
        )

    def _categories(self) -> list:
        data = self._api({"mode": "get_cats"}) or {}
        return data.get("categories") or []

    def _category_action(self, category: str) -> ConfigurationAction:
        def apply():
            self._api(
                {"mode": "set_config", "section": "categories", "keyword": category, "dir": category},
                mutating=True,
            )

        return ConfigurationAction(
            self.name,
            f"SABnzbd category: {category}",
            lambda: category in self._categories(),
            apply,
        )

    def _provider_action(self, provider: dict) -> ConfigurationAction:
        name = provider.get("name")
        desired = {
            "host": provider.get("host"),
            "port": int(provider.get("port") or 563),
            "ssl": 1 if provider.get("ssl", True) else 0,
            "username": provider.get("username") or "",
            "connections": int(provider.get("connections") or 8),
            "enable": 1,
        }

        def check():
            data = self._api({"mode": "get_config", "section": "servers"}) or {}
            servers = (data.get("config") or {}).get("servers") or []
            for server in servers:
                if server.get("name") != name and server.get("displayname") != name:
                    continue
                for key, value in desired.items():
                    have = server.get(key)
                    if isinstance(value, int):
                        try:
                            have = int(have)
                        except (TypeError, ValueError):
                            return False
                    if have != value:
                        return False
                return True
            return False

        def apply():
            form = {"mode": "config", "name": "set_server", "keyword": name}
            form.update({k: str(v) for k, v in desired.items()})
            form["password"] = provider.get("password") or ""
            self._api({}, form=form)

        return ConfigurationAction(
            self.name, f"SABnzbd provider: {name} ({desired['host']}:{desired['port']})", check, apply
        )

    def _auth_action(self) -> ConfigurationAction:
        username, password = self.ctx.config.auth_credentials()

        def check():
            if not (username and password):
                raise SkipAction("no username/password configured", ErrorKind.PRECONDITION)
            return self._misc().get("username") == username

        def apply():
            for keyword, value in (("username", username), ("password", password)):
                self._api(
                    {"mode": "set_config", "section": "misc", "keyword": keyword, "value": value},
                    mutating=True,
                )

        return ConfigurationAction(self.name, "SABnzbd authentication", check, apply)

    def configuration_actions(self):
        actions = [self._whitelist_action(), self._directories_action()]
        actions += [self._category_action(c) for c in CATEGORIES]
        for provider in self.ctx.config.get("usenet_providers") or []:
            if not provider.get("enable", False):
                logger.debug("Usenet provider %s is disabled", provider.get("name"))
                continue
            actions.append(self._provider_action(provider))
        actions.append(self._auth_action())
        return actions

    def verification_checks(self):
        return [
            VerificationCheck(
                "SABnzbd → auth configured",
                lambda: bool(self._misc().get("username")),
                requires=(self.name,),
                group="Authentication",
            )
        ]
