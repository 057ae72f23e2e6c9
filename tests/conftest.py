"""Pytest configuration and fixtures for FleetSync tests."""

import json
import shlex
from collections.abc import Sequence
from typing import Any

import pytest

from fleetsync.common.config import CommandSettings, Settings
from fleetsync.common.exceptions import CommandFailedError
from fleetsync.common.process import CommandRunner
from fleetsync.discovery.registry import ProviderRegistry
from fleetsync.schemas.inventory import Project
from fleetsync.schemas.providers import (
    ClusterConfig,
    Provider,
    ResourceMapping,
    StateBackendConfig,
    StateBackendType,
)
from fleetsync.state.repository import InventoryRepository
from fleetsync.state.store import InMemoryStateStore

PRIVATE_REGISTRY = "registry.internal/"


class FakeRunner(CommandRunner):
    """Command runner answering from canned outputs.

    ``outputs`` maps a substring of the shell-joined command to either the
    output to return or an exception to raise. Unmatched commands fail.
    """

    def __init__(self, outputs: dict[str, Any] | None = None) -> None:
        super().__init__(CommandSettings())
        self.outputs = outputs or {}
        self.calls: list[list[str]] = []

    def run(self, args: Sequence[str]) -> str:
        argv = [str(arg) for arg in args]
        self.calls.append(argv)
        command = shlex.join(argv)
        for pattern, output in self.outputs.items():
            if pattern in command:
                if isinstance(output, Exception):
                    raise output
                if isinstance(output, (dict, list)):
                    return json.dumps(output)
                return output
        raise CommandFailedError(f"unexpected command: {command}")


class FakeClusterClient:
    """In-memory cluster client."""

    def __init__(
        self,
        nodes: list[dict[str, Any]] | None = None,
        namespaces: list[dict[str, Any]] | None = None,
        pods: list[dict[str, Any]] | None = None,
    ) -> None:
        self.nodes = nodes or []
        self.namespaces = namespaces or []
        self.pods = pods or []
        self.pod_requests: list[str | None] = []

    def list_nodes(self) -> list[dict[str, Any]]:
        return self.nodes

    def list_namespaces(self) -> list[dict[str, Any]]:
        return self.namespaces

    def list_pods(self, namespace: str | None = None) -> list[dict[str, Any]]:
        self.pod_requests.append(namespace)
        if namespace is None:
            return self.pods
        return [pod for pod in self.pods if pod["metadata"]["namespace"] == namespace]


def make_node(name: str, internal_ip: str | None = None, external_ip: str | None = None) -> dict[str, Any]:
    addresses = []
    if internal_ip:
        addresses.append({"type": "InternalIP", "address": internal_ip})
    if external_ip:
        addresses.append({"type": "ExternalIP", "address": external_ip})
    addresses.append({"type": "Hostname", "address": name})
    return {"metadata": {"name": name}, "status": {"addresses": addresses}}


def make_namespace(name: str) -> dict[str, Any]:
    return {"metadata": {"name": name}}


def make_pod(
    name: str,
    image: str,
    namespace: str = "prod",
    node: str | None = "node-1",
    phase: str = "Running",
    owner: tuple[str, str] | None = None,
    containers: bool = True,
) -> dict[str, Any]:
    metadata: dict[str, Any] = {"name": name, "namespace": namespace}
    if owner:
        metadata["ownerReferences"] = [{"kind": owner[0], "name": owner[1]}]
    spec: dict[str, Any] = {"containers": [{"name": "main", "image": image}] if containers else []}
    if node:
        spec["nodeName"] = node
    return {"metadata": metadata, "spec": spec, "status": {"phase": phase}}


def make_state_document(*resources: dict[str, Any]) -> dict[str, Any]:
    return {"version": 4, "terraform_version": "1.6.0", "serial": 7, "resources": list(resources)}


def make_resource(
    resource_type: str,
    name: str,
    attributes: dict[str, Any] | None = None,
    mode: str = "managed",
    index_key: Any = None,
) -> dict[str, Any]:
    instance: dict[str, Any] = {"attributes": attributes or {}}
    if index_key is not None:
        instance["index_key"] = index_key
    return {
        "mode": mode,
        "type": resource_type,
        "name": name,
        "provider": 'provider["registry.terraform.io/hashicorp/aws"]',
        "instances": [instance],
    }


@pytest.fixture
def settings() -> Settings:
    """Default settings, independent of the environment."""
    return Settings(_env_file=None)


@pytest.fixture
def store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def inventory(store: InMemoryStateStore) -> InventoryRepository:
    return InventoryRepository(store)


@pytest.fixture
def registry(store: InMemoryStateStore) -> ProviderRegistry:
    return ProviderRegistry(store)


@pytest.fixture
def project(inventory: InventoryRepository) -> Project:
    """A stored project with no instances or groups."""
    project = Project(name="shop", path="/srv/shop")
    inventory.save_project(project)
    return project


@pytest.fixture
def cluster_provider() -> Provider:
    return Provider(
        name="p1",
        project="shop",
        group="prod",
        config=ClusterConfig(context="kind-prod", private_registries=[PRIVATE_REGISTRY]),
    )


@pytest.fixture
def state_provider(tmp_path) -> Provider:
    return Provider(
        name="infra",
        project="shop",
        group="staging",
        config=StateBackendConfig(
            backend=StateBackendType.LOCAL,
            local_path=str(tmp_path / "terraform.tfstate"),
        ),
    )


@pytest.fixture
def mapped_state_provider(state_provider: Provider) -> Provider:
    return state_provider.model_copy(
        update={
            "resource_mappings": [
                ResourceMapping(resource_id="aws_db_instance.main", group="staging"),
            ]
        }
    )
