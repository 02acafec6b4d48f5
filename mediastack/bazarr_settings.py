from mediastack.actions import ConfigurationAction, SkipAction
from mediastack.credentials import find_source_file
from mediastack.global_logger import logger, warn
from mediastack.integration import ServiceIntegration
from mediastack.links import ARR_SERVER, links_from
from mediastack.readiness import wait_for
from mediastack.results import ErrorKind, SkipCheck
from mediastack.template_renderer import write_if_changed
from mediastack.verification import VerificationCheck
from ruamel.yaml import YAML
from typing import Optional
import hashlib, io


AUTH_TYPE = "form"


def _yaml() -> YAML:
    yaml = YAML(typ="rt")
    yaml.preserve_quotes = True
    yaml.width = 4096
    return yaml


def load_config(path: str):
    with open(path, "r", encoding="utf-8") as f:
        return _yaml().load(f) or {}


def dump_config(data) -> str:
    buf = io.StringIO()
    _yaml().dump(data, buf)
    return buf.getvalue()


def password_digest(password: str) -> str:
    # Bazarr compares against an md5 hex digest of the form password
    return hashlib.md5(password.encode("utf-8")).hexdigest()


class BazarrIntegration(ServiceIntegration):
    """Bazarr has no usable write API before auth, so its config.yaml is edited in place."""

    name = "bazarr"

    def __init__(self, ctx):
        super().__init__(ctx)
        self._changed = False

    def config_path(self) -> Optional[str]:
        return find_source_file(self.descriptor.api_key_source, self.ctx.config_dir)

    def _require_path(self) -> str:
        path = self.config_path()
        if not path:
            raise SkipAction("Bazarr config file not found", ErrorKind.MISSING_CREDENTIAL)
        return path

    def _edit(self, mutate) -> None:
        path = self._require_path()
        data = load_config(path)
        mutate(data)
        if write_if_changed(path, dump_config(data)):
            self._changed = True
            logger.debug("Updated %s", path)

    def _connection_desired(self, link) -> dict:
        key = self.ctx.credentials.key(link.target)
        if not key:
            raise SkipAction(f"{self.ctx.registry.get(link.target).display_name} API key not found")
        desired = dict(link.fields)
        desired["apikey"] = key
        return desired

    def _connection_action(self, link) -> ConfigurationAction:
        target = link.target
        flag = f"use_{target}"

        def check():
            desired = self._connection_desired(link)
            data = load_config(self._require_path())
            block = data.get(target) or {}
            if any(block.get(k) != v for k, v in desired.items()):
                return False
            return (data.get("general") or {}).get(flag) is True

        def apply():
            desired = self._connection_desired(link)

            def mutate(data):
                if data.get(target) is None:
                    data[target] = {}
                for k, v in desired.items():
                    data[target][k] = v
                if data.get("general") is None:
                    data["general"] = {}
                data["general"][flag] = True

            self._edit(mutate)

        display = self.ctx.registry.get(target).display_name
        return ConfigurationAction(self.name, f"Bazarr → {display}", check, apply)

    def _auth_action(self) -> ConfigurationAction:
        username, password = self.ctx.config.auth_credentials()

        def check():
            if not (username and password):
                raise SkipAction("no username/password configured", ErrorKind.PRECONDITION)
            auth = load_config(self._require_path()).get("auth") or {}
            return (
                auth.get("type") == AUTH_TYPE
                and auth.get("username") == username
                and auth.get("password") == password_digest(password)
            )

        def apply():
            def mutate(data):
                if data.get("auth") is None:
                    data["auth"] = {}
                data["auth"]["type"] = AUTH_TYPE
                data["auth"]["username"] = username
                data["auth"]["password"] = password_digest(password)

            self._edit(mutate)

        return ConfigurationAction(self.name, "Bazarr authentication", check, apply)

    def _restart_action(self) -> ConfigurationAction:
        def apply():
            self._changed = False
            ok_restart, error = self.ctx.runtime.restart(self.descriptor.container)
            if not ok_restart:
                warn("Bazarr restart failed: %s", error)
                return
            result = wait_for(
                self.display_name,
                self.descriptor.health_url,
                max_attempts=self.ctx.max_wait_attempts,
                sleep=self.ctx.sleep,
                session=self.ctx.session,
            )
            if not result.ok:
                warn("Bazarr did not come back after restart")

        return ConfigurationAction(
            self.name, "Bazarr restart after config change", lambda: not self._changed, apply
        )

    def configuration_actions(self):
        actions = [
            self._connection_action(link)
            for link in links_from(self.ctx.links, self.name, ARR_SERVER)
        ]
        actions += [self._auth_action(), self._restart_action()]
        return actions

    def verification_checks(self):
        def auth_configured():
            path = self.config_path()
            if not path:
                raise SkipCheck("Bazarr config file not found")
            auth = load_config(path).get("auth") or {}
            return bool(auth.get("username")) and bool(auth.get("type"))

        return [
            VerificationCheck(
                "Bazarr → auth configured",
                auth_configured,
                requires=(self.name,),
                group="Authentication",
            )
        ]
