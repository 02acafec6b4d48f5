from mediastack.config_loader import ConfigManager
from mediastack.containers import ContainerRuntime
from mediastack.credentials import CredentialCache
from mediastack.http_client import ApiClient
from mediastack.links import DesiredLink, desired_links
from mediastack.service_registry import REGISTRY, ServiceRegistry
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple
import requests, time


@dataclass
class RunContext:
    """Everything one invocation needs, passed explicitly to every stage."""

    config: ConfigManager
    registry: ServiceRegistry = REGISTRY
    runtime: Optional[ContainerRuntime] = None
    session: Optional[requests.Session] = None
    sleep: Callable[[float], None] = time.sleep
    max_wait_attempts: int = 90
    credentials: Optional[CredentialCache] = None
    links: List[DesiredLink] = field(default_factory=list)
    ready: set = field(default_factory=set)
    secrets: dict = field(default_factory=dict)
    mutations: List[Tuple[str, str]] = field(default_factory=list)

    def __post_init__(self):
        if self.runtime is None:
            self.runtime = ContainerRuntime(compose_file=self.config.compose_file)
        if self.session is None:
            self.session = requests.Session()
        if self.credentials is None:
            self.credentials = CredentialCache(self.registry, self.config.config_dir)
        if not self.links:
            self.links = desired_links(self.config, self.registry)

    @property
    def config_dir(self) -> str:
        return self.config.config_dir

    def record_mutation(self, method: str, url: str) -> None:
        self.mutations.append((method, url))

    def client(
        self,
        name: str,
        headers: Optional[dict] = None,
        session: Optional[requests.Session] = None,
    ) -> ApiClient:
        return ApiClient(
            self.registry.get(name).external_url,
            headers=headers,
            session=session or self.session,
            on_mutation=self.record_mutation,
        )

    def api_client(self, name: str, api_key: Optional[str] = None) -> ApiClient:
        key = api_key if api_key is not None else self.credentials.key(name)
        return self.client(name, headers={"X-Api-Key": key})
