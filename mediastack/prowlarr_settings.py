from mediastack.actions import ConfigurationAction, SkipAction
from mediastack.arr_settings import (
    apply_resource,
    build_payload,
    fields_match,
    find_by_name,
    find_schema,
    host_auth_action,
    host_auth_check,
)
from mediastack.global_logger import logger
from mediastack.integration import ServiceIntegration
from mediastack.links import APPLICATION, DOWNLOAD_CLIENT, INDEXER_PROXY, links_from
from mediastack.results import CheckStatus, ErrorKind, SkipCheck
from mediastack.verification import VerificationCheck
from typing import Optional


FLARESOLVERR_TAG = "flaresolverr"
DEFAULT_APP_PROFILE_ID = 1
SEARCH_TIMEOUT = (5, 30)


def _apply_user_fields(schema: dict, user_fields: dict) -> list:
    """Overlay configured values onto the fields an indexer definition declares."""
    fields = []
    for f in schema.get("fields") or []:
        f = dict(f)
        if f.get("name") in (user_fields or {}):
            f["value"] = user_fields[f["name"]]
        fields.append(f)
    return fields


class ProwlarrIntegration(ServiceIntegration):
    name = "prowlarr"

    def __init__(self, ctx):
        super().__init__(ctx)
        self._indexer_schemas: Optional[list] = None

    def client(self):
        return self.ctx.api_client(self.name)

    def _tag_id(self) -> Optional[int]:
        for tag in self.client().get("/api/v1/tag") or []:
            if tag.get("label") == FLARESOLVERR_TAG:
                return tag.get("id")
        return None

    def _application_action(self, link) -> ConfigurationAction:
        label = link.fields["name"]

        def overrides() -> dict:
            key = self.ctx.credentials.key(link.target)
            if not key:
                raise SkipAction(f"{label} API key not found")
            return {
                "prowlarrUrl": link.fields["prowlarrUrl"],
                "baseUrl": link.fields["baseUrl"],
                "apiKey": key,
                "syncCategories": link.fields["syncCategories"],
            }

        def current():
            return find_by_name(self.client().get("/api/v1/applications") or [], label)

        def check():
            wanted = overrides()
            match = current()
            return bool(match) and fields_match(match, wanted)

        def apply():
            schemas = self.client().get("/api/v1/applications/schema") or []
            schema = find_schema(schemas, link.fields["implementation"]) or {
                "implementation": link.fields["implementation"],
                "configContract": link.fields["configContract"],
            }
            desired = build_payload(schema, label, overrides(), enable=True, syncLevel="fullSync")
            apply_resource(self.client(), "/api/v1/applications", desired, current())

        return ConfigurationAction(self.name, f"Prowlarr → {label}", check, apply)

    def _tag_action(self) -> ConfigurationAction:
        return ConfigurationAction(
            self.name,
            f"Prowlarr tag: {FLARESOLVERR_TAG}",
            lambda: self._tag_id() is not None,
            lambda: self.client().post("/api/v1/tag", {"label": FLARESOLVERR_TAG}),
        )

    def _proxy_action(self, link) -> ConfigurationAction:
        label = link.fields["name"]
        overrides = {"host": link.fields["host"], "requestTimeout": link.fields["requestTimeout"]}

        def current():
            return find_by_name(self.client().get("/api/v1/indexerProxy") or [], label)

        def check():
            match = current()
            if not match or not fields_match(match, overrides):
                return False
            tag_id = self._tag_id()
            return tag_id is None or tag_id in (match.get("tags") or [])

        def apply():
            match = current()
            tag_id = self._tag_id()
            tags = list((match or {}).get("tags") or [])
            if tag_id is not None and tag_id not in tags:
                tags.append(tag_id)
            schemas = self.client().get("/api/v1/indexerProxy/schema") or []
            schema = find_schema(schemas, link.fields["implementation"]) or {
                "implementation": link.fields["implementation"],
                "configContract": link.fields["configContract"],
            }
            desired = build_payload(schema, label, overrides, tags=tags)
            apply_resource(self.client(), "/api/v1/indexerProxy", desired, match)

        return ConfigurationAction(self.name, f"Prowlarr → {label} proxy", check, apply)

    def _download_client_action(self, link) -> ConfigurationAction:
        label = link.fields["name"]
        overrides = {
            "host": link.fields["host"],
            "port": link.fields["port"],
            "username": link.fields["username"],
            "password": link.fields["password"],
            link.fields["category_field"]: link.fields["category"],
        }

        def current():
            return find_by_name(self.client().get("/api/v1/downloadclient") or [], label)

        def check():
            if link.target not in self.ctx.ready:
                raise SkipAction(f"{label} is not reachable", ErrorKind.READINESS_TIMEOUT)
            match = current()
            return bool(match) and fields_match(match, overrides)

        def apply():
            schemas = self.client().get("/api/v1/downloadclient/schema") or []
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
            apply_resource(self.client(), "/api/v1/downloadclient", desired, current())

        return ConfigurationAction(
            self.name, f"Prowlarr → {label} (category: {link.fields['category']})", check, apply
        )

    def _schemas(self) -> list:
        if self._indexer_schemas is None:
            self._indexer_schemas = self.client().get("/api/v1/indexer/schema") or []
        return self._indexer_schemas

    def _indexer_action(self, indexer: dict) -> ConfigurationAction:
        name = indexer.get("name")
        definition = indexer.get("definitionName")

        def check():
            return find_by_name(self.client().get("/api/v1/indexer") or [], name) is not None

        def apply():
            schema = next(
                (s for s in self._schemas() if s.get("definitionName") == definition), None
            )
            if schema is None:
                raise ValueError(f"indexer '{definition}' not found in Prowlarr schemas")
            payload = {k: v for k, v in schema.items() if k != "id"}
            payload["fields"] = _apply_user_fields(schema, indexer.get("fields") or {})
            payload["name"] = name
            payload["enable"] = True
            payload["appProfileId"] = DEFAULT_APP_PROFILE_ID
            if indexer.get("flaresolverr"):
                tag_id = self._tag_id()
                if tag_id is not None:
                    payload["tags"] = [tag_id]
            self.client().post("/api/v1/indexer", payload)

        return ConfigurationAction(self.name, f"Prowlarr indexer: {name}", check, apply)

    def configuration_actions(self):
        actions = [
            self._application_action(link)
            for link in links_from(self.ctx.links, self.name, APPLICATION)
        ]
        actions.append(self._tag_action())
        actions += [
            self._proxy_action(link) for link in links_from(self.ctx.links, self.name, INDEXER_PROXY)
        ]
        actions += [
            self._download_client_action(link)
            for link in links_from(self.ctx.links, self.name, DOWNLOAD_CLIENT)
        ]
        for indexer in self.ctx.config.get("indexers") or []:
            if not indexer.get("enable", False):
                logger.debug("Indexer %s is disabled in config", indexer.get("name"))
                continue
            actions.append(self._indexer_action(indexer))
        actions.append(host_auth_action(self.ctx, self.name, self.client(), api_version="v1"))
        return actions

    def verification_checks(self):
        requires = (self.name,)
        state: dict = {}

        def enabled_indexers() -> int:
            if "indexers" not in state:
                indexers = self.client().get("/api/v1/indexer") or []
                state["indexers"] = len([i for i in indexers if i.get("enable") is True])
            return state["indexers"]

        def app(display: str):
            def probe():
                apps = self.client().get("/api/v1/applications") or []
                return any(a.get("name") == display for a in apps)

            return probe

        def indexers_enabled():
            count = enabled_indexers()
            return count > 0, f"{count} enabled"

        def search_works():
            results = self.client().get(
                "/api/v1/search",
                params={"query": "test", "type": "movie", "limit": 3},
                timeout=SEARCH_TIMEOUT,
            ) or []
            if len(results) > 0:
                return CheckStatus.PASS, f"{len(results)} results"
            if enabled_indexers() > 0:
                raise SkipCheck("no results; indexers may be rate-limited")
            return CheckStatus.FAIL, "no indexers enabled"

        checks = [
            VerificationCheck(f"Prowlarr → {link.fields['name']}", app(link.fields["name"]), requires, "Prowlarr")
            for link in links_from(self.ctx.links, self.name, APPLICATION)
        ]
        checks.append(
            VerificationCheck("Prowlarr → indexers enabled", indexers_enabled, requires, "Prowlarr")
        )
        checks.append(VerificationCheck("Prowlarr → search works", search_works, requires, "Prowlarr"))
        checks.append(host_auth_check(self.ctx, self.name, self.client(), api_version="v1"))
        return checks
