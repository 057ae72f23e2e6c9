"""Kubernetes cluster discovery integration.

Maps cluster objects into the inventory:

- Nodes -> Hosts (not directly connectable)
- Namespace -> the provider's Group
- Running pods with a private image -> Instances
- Running pods with any other image -> Services on the pod's node
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Protocol

from fleetsync.common.config import ClusterSettings, get_settings
from fleetsync.common.exceptions import CommandFailedError, ValidationError
from fleetsync.common.logging import get_logger
from fleetsync.common.process import CommandRunner
from fleetsync.discovery.base import SyncResult
from fleetsync.discovery.classifier import (
    EntityRole,
    classify_image,
    derive_deployment_name,
    derive_display_name,
    derive_process_name,
    image_tag,
)
from fleetsync.schemas.inventory import (
    ConnectionType,
    Group,
    Host,
    Instance,
    NodeConnection,
    Service,
    ServiceRef,
    WorkloadMetadata,
)
from fleetsync.schemas.providers import ClusterConfig, Provider

logger = get_logger(__name__)

INSTANCE_PATH_PREFIX = "/var/run/containers"


class ClusterClient(Protocol):
    """Read access to the cluster objects discovery needs."""

    def list_nodes(self) -> list[dict[str, Any]]: ...

    def list_namespaces(self) -> list[dict[str, Any]]: ...

    def list_pods(self, namespace: str | None = None) -> list[dict[str, Any]]: ...


def _kubectl_base(
    settings: ClusterSettings,
    kubeconfig_path: str | None,
) -> list[str]:
    args = [settings.kubectl_binary]
    if kubeconfig_path:
        args.append(f"--kubeconfig={kubeconfig_path}")
    return args


class KubectlClient:
    """Cluster client that shells out to kubectl."""

    def __init__(
        self,
        config: ClusterConfig,
        runner: CommandRunner | None = None,
        settings: ClusterSettings | None = None,
    ) -> None:
        self._config = config
        self._runner = runner or CommandRunner()
        self._settings = settings or get_settings().cluster

    def _get(self, *args: str) -> list[dict[str, Any]]:
        command = [
            *_kubectl_base(self._settings, self._config.kubeconfig_path),
            f"--context={self._config.context}",
            "get",
            *args,
            "-o",
            "json",
        ]
        data = self._runner.run_json(command)
        if not isinstance(data, dict):
            raise CommandFailedError(
                "kubectl returned an unexpected payload",
                details={"command": " ".join(command)},
            )
        return data.get("items") or []

    def list_nodes(self) -> list[dict[str, Any]]:
        return self._get("nodes")

    def list_namespaces(self) -> list[dict[str, Any]]:
        return self._get("namespaces")

    def list_pods(self, namespace: str | None = None) -> list[dict[str, Any]]:
        if namespace:
            return self._get("pods", "-n", namespace)
        return self._get("pods", "--all-namespaces")


def list_contexts(
    kubeconfig_path: str | None = None,
    runner: CommandRunner | None = None,
    settings: ClusterSettings | None = None,
) -> list[str]:
    """Contexts defined in the kubeconfig."""
    settings = settings or get_settings().cluster
    runner = runner or CommandRunner()
    output = runner.run([*_kubectl_base(settings, kubeconfig_path), "config", "get-contexts", "-o", "name"])
    return [line.strip() for line in output.splitlines() if line.strip()]


def current_context(
    kubeconfig_path: str | None = None,
    runner: CommandRunner | None = None,
    settings: ClusterSettings | None = None,
) -> str | None:
    """The kubeconfig's current context, or None when none is set."""
    settings = settings or get_settings().cluster
    runner = runner or CommandRunner()
    try:
        output = runner.run([*_kubectl_base(settings, kubeconfig_path), "config", "current-context"])
    except CommandFailedError as exc:
        # kubectl exits non-zero when current-context is unset
        logger.debug("No current kubectl context", error=exc.message)
        return None
    return output.strip() or None


@dataclass(frozen=True)
class NodeInfo:
    """A cluster node and its addresses."""

    name: str
    internal_ip: str | None
    external_ip: str | None = None


@dataclass
class NamespacePreview:
    """What a sync of one namespace would produce."""

    name: str
    instances: list[str] = field(default_factory=list)
    services: list[str] = field(default_factory=list)

    @property
    def instance_count(self) -> int:
        return len(self.instances)

    @property
    def service_count(self) -> int:
        return len(self.services)


@dataclass(frozen=True)
class ClusterDiscoveryResult:
    """Read-only preview of a cluster."""

    namespaces: list[NamespacePreview]
    nodes: list[NodeInfo]


def _node_address(node: dict[str, Any], address_type: str) -> str | None:
    for address in (node.get("status") or {}).get("addresses") or []:
        if address.get("type") == address_type and address.get("address"):
            return address["address"]
    return None


def _primary_image(pod: dict[str, Any]) -> str | None:
    containers = (pod.get("spec") or {}).get("containers") or []
    if not containers:
        return None
    return containers[0].get("image") or ""


@dataclass(frozen=True)
class ClusterSnapshot:
    """Snapshot of cluster objects relevant to discovery."""

    nodes: list[dict[str, Any]]
    namespaces: list[dict[str, Any]]
    pods: list[dict[str, Any]]
    running_phase: str = "Running"

    @property
    def namespace_names(self) -> list[str]:
        return [ns.get("metadata", {}).get("name", "") for ns in self.namespaces]

    def running_pods(self, namespace: str | None = None) -> Iterator[dict[str, Any]]:
        """Running pods with at least one container."""
        for pod in self.pods:
            metadata = pod.get("metadata") or {}
            if namespace is not None and metadata.get("namespace") != namespace:
                continue
            if (pod.get("status") or {}).get("phase") != self.running_phase:
                continue
            if _primary_image(pod) is None:
                continue
            yield pod

    def build_nodes(self) -> list[NodeInfo]:
        return [
            NodeInfo(
                name=node.get("metadata", {}).get("name", ""),
                internal_ip=_node_address(node, "InternalIP"),
                external_ip=_node_address(node, "ExternalIP"),
            )
            for node in self.nodes
        ]

    def build_namespace_previews(self, private_registries: list[str]) -> list[NamespacePreview]:
        """Instance and service names per namespace, deduplicated."""
        previews: list[NamespacePreview] = []
        for namespace in self.namespace_names:
            preview = NamespacePreview(name=namespace)
            for pod in self.running_pods(namespace):
                name = derive_display_name(pod)
                role = classify_image(_primary_image(pod) or "", private_registries)
                names = preview.instances if role == EntityRole.INSTANCE else preview.services
                if name not in names:
                    names.append(name)
            previews.append(preview)
        return previews

    def build_sync_result(self, provider: Provider) -> SyncResult:
        """Entities for the provider's namespace, tagged with its source."""
        config = provider.config
        if not isinstance(config, ClusterConfig):
            raise ValidationError(f"Provider {provider.name} is not a cluster provider")

        source = provider.source
        hosts = [
            Host(
                name=node.name,
                address=node.internal_ip,
                connection_type=ConnectionType.CLUSTER,
                connection=NodeConnection(context=config.context, node=node.name),
                source=source,
                connectable=False,
            )
            for node in self.build_nodes()
        ]

        instances: list[Instance] = []
        services: list[Service] = []
        refs: list[ServiceRef] = []
        seen_instances: set[str] = set()

        for pod in self.running_pods(provider.group):
            metadata = pod.get("metadata") or {}
            pod_name = metadata.get("name", "")
            node_name = (pod.get("spec") or {}).get("nodeName")
            image = _primary_image(pod) or ""
            deployment = derive_deployment_name(metadata.get("ownerReferences"))
            workload = WorkloadMetadata(
                namespace=metadata.get("namespace", provider.group),
                pod_name=pod_name,
                deployment=deployment,
                image=image,
                image_tag=image_tag(image),
            )

            if classify_image(image, config.private_registries) == EntityRole.INSTANCE:
                if pod_name in seen_instances:
                    continue
                seen_instances.add(pod_name)
                instances.append(
                    Instance(
                        name=pod_name,
                        path=f"{INSTANCE_PATH_PREFIX}/{pod_name}",
                        host=node_name,
                        source=source,
                        metadata=workload,
                    )
                )
                continue

            if not node_name:
                logger.debug("Skipping unscheduled service pod", pod=pod_name)
                continue
            ref = ServiceRef(host=node_name, service=deployment or pod_name)
            if ref in refs:
                continue
            refs.append(ref)
            services.append(
                Service(
                    name=ref.service,
                    process=derive_process_name(image),
                    host=node_name,
                    source=source,
                    metadata=workload,
                )
            )

        group = Group(
            name=provider.group,
            instances=[instance.name for instance in instances],
            services=refs,
        )
        return SyncResult(hosts=hosts, instances=instances, services=services, groups=[group])


class ClusterDiscoveryService:
    """Runs discovery and sync fetches for one cluster provider."""

    def __init__(
        self,
        provider: Provider,
        client: ClusterClient | None = None,
        runner: CommandRunner | None = None,
        settings: ClusterSettings | None = None,
    ) -> None:
        if not isinstance(provider.config, ClusterConfig):
            raise ValidationError(f"Provider {provider.name} is not a cluster provider")
        self._provider = provider
        self._config: ClusterConfig = provider.config
        self._settings = settings or get_settings().cluster
        self._client = client or KubectlClient(self._config, runner=runner, settings=self._settings)

    def fetch_snapshot(self, namespace: str | None = None) -> ClusterSnapshot:
        """Fetch nodes, namespaces and pods.

        With a namespace, only that namespace's pods are fetched; a namespace
        missing from the cluster yields no pods rather than an error.
        """
        namespaces = self._client.list_namespaces()
        nodes = self._client.list_nodes()
        names = {ns.get("metadata", {}).get("name") for ns in namespaces}

        if namespace is None:
            pods = self._client.list_pods()
        elif namespace in names:
            pods = self._client.list_pods(namespace)
        else:
            logger.warning(
                "Namespace not found on cluster, treating as empty",
                provider=self._provider.name,
                context=self._config.context,
                namespace=namespace,
            )
            pods = []

        return ClusterSnapshot(
            nodes=nodes,
            namespaces=namespaces,
            pods=pods,
            running_phase=self._settings.running_phase,
        )

    def discover(self) -> ClusterDiscoveryResult:
        """Preview every namespace without touching inventory state."""
        snapshot = self.fetch_snapshot()
        result = ClusterDiscoveryResult(
            namespaces=snapshot.build_namespace_previews(self._config.private_registries),
            nodes=snapshot.build_nodes(),
        )
        logger.info(
            "Cluster discovery completed",
            provider=self._provider.name,
            context=self._config.context,
            namespaces=len(result.namespaces),
            nodes=len(result.nodes),
        )
        return result

    def sync(self) -> SyncResult:
        """Fetch the provider's namespace and map it to inventory entities."""
        snapshot = self.fetch_snapshot(self._provider.group)
        result = snapshot.build_sync_result(self._provider)
        logger.info(
            "Cluster sync fetch completed",
            provider=self._provider.name,
            namespace=self._provider.group,
            hosts=len(result.hosts),
            instances=len(result.instances),
            services=len(result.services),
        )
        return result
