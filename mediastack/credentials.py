from mediastack.global_logger import logger
from mediastack.service_registry import CredentialSource, ServiceDescriptor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import xml.etree.ElementTree as ET
import json, os, re, yaml


@dataclass(frozen=True)
class ServiceCredential:
    service_name: str
    api_key_or_token: str
    discovered_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def _parse_xml_key(path: str, key: str) -> str:
    tree = ET.parse(path)
    node = tree.getroot().find(f".//{key}")
    if node is not None and (node.text or "").strip():
        return node.text.strip()
    return ""


def _parse_ini_key(path: str, key: str) -> str:
    # sabnzbd.ini is configobj flavoured, not strict INI; scan lines instead
    pattern = re.compile(rf"^\s*{re.escape(key)}\s*=\s*(.*?)\s*$", re.IGNORECASE)
    with open(path, "r", encoding="utf-8", errors="ignore") as f:
        for line in f:
            match = pattern.match(line)
            if match:
                return match.group(1).strip().strip("\"'")
    return ""


def _dig(data, dotted: str):
    node = data
    for part in dotted.split("."):
        if not isinstance(node, dict):
            return None
        node = node.get(part)
    return node


def _parse_json_key(path: str, key: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        value = _dig(json.load(f), key)
    return str(value).strip() if value else ""


def _parse_yaml_key(path: str, key: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        value = _dig(yaml.safe_load(f) or {}, key)
    return str(value).strip() if value else ""


_PARSERS = {
    "xml": _parse_xml_key,
    "ini": _parse_ini_key,
    "json": _parse_json_key,
    "yaml": _parse_yaml_key,
}


def find_source_file(source: CredentialSource, config_dir: str) -> Optional[str]:
    for rel in source.paths:
        candidate = os.path.join(config_dir, rel)
        if os.path.isfile(candidate):
            return candidate
    return None


def read_key(source: CredentialSource, config_dir: str) -> str:
    path = find_source_file(source, config_dir)
    if not path:
        return ""
    parser = _PARSERS[source.kind]
    try:
        return parser(path, source.key)
    except (ET.ParseError, json.JSONDecodeError, yaml.YAMLError, OSError) as e:
        logger.debug("Could not read %s from %s: %s", source.key, path, e)
        return ""


def resolve(descriptor: ServiceDescriptor, config_dir: str) -> Optional[ServiceCredential]:
    """Read a service's API key from its config artifact, or None if not there yet."""
    if descriptor.api_key_source is None:
        return None
    token = read_key(descriptor.api_key_source, config_dir)
    if not token:
        return None
    return ServiceCredential(descriptor.name, token)


class CredentialCache:
    """Per-run memo of discovered credentials.

    Only successful lookups are remembered; a key that is absent now is read
    again on the next request since the service may still be bootstrapping.
    """

    def __init__(self, registry, config_dir: str):
        self.registry = registry
        self.config_dir = config_dir
        self._credentials: dict[str, ServiceCredential] = {}

    def get(self, name: str) -> Optional[ServiceCredential]:
        if name in self._credentials:
            return self._credentials[name]
        credential = resolve(self.registry.get(name), self.config_dir)
        if credential:
            self._credentials[name] = credential
        return credential

    def key(self, name: str) -> str:
        credential = self.get(name)
        return credential.api_key_or_token if credential else ""

    def store(self, name: str, token: str) -> Optional[ServiceCredential]:
        if not token:
            return None
        credential = ServiceCredential(name, token)
        self._credentials[name] = credential
        return credential

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None
