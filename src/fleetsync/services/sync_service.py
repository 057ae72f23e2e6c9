"""Provider sync orchestration.

Resolves a provider's adapter, runs discovery or a full sync through the
reconciler, and manages resource-to-group assignments for state-backend
providers.
"""

from collections.abc import Callable
from typing import Union

from fleetsync.common.config import Settings, get_settings
from fleetsync.common.exceptions import ValidationError
from fleetsync.common.logging import bind_context, clear_context, get_logger
from fleetsync.common.process import CommandRunner
from fleetsync.discovery.cluster import (
    ClusterClient,
    ClusterDiscoveryResult,
    ClusterDiscoveryService,
)
from fleetsync.discovery.registry import ProviderRegistry, provider_write
from fleetsync.discovery.state_backend import (
    StateBackendClient,
    StateBackendDiscoveryService,
    StateDiscoveryResult,
    StateResourceInfo,
)
from fleetsync.reconciliation.reconciler import ReconcileReport, Reconciler
from fleetsync.schemas.inventory import Group
from fleetsync.schemas.providers import ClusterConfig, Provider, ProviderKind, ResourceMapping
from fleetsync.state.repository import InventoryRepository, project_write
from fleetsync.state.store import StateStore

logger = get_logger(__name__)

DiscoveryResult = Union[ClusterDiscoveryResult, StateDiscoveryResult]
ClusterClientFactory = Callable[[ClusterConfig], ClusterClient]


class ProviderSyncService:
    """Runs discovery, sync and assignment operations for stored providers."""

    def __init__(
        self,
        store: StateStore,
        registry: ProviderRegistry | None = None,
        runner: CommandRunner | None = None,
        settings: Settings | None = None,
        cluster_client_factory: ClusterClientFactory | None = None,
        state_client: StateBackendClient | None = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.registry = registry or ProviderRegistry(store)
        self.inventory = InventoryRepository(store)
        self.reconciler = Reconciler(store, inventory=self.inventory)
        self.runner = runner or CommandRunner(self.settings.command)
        self.cluster_client_factory = cluster_client_factory
        self.state_client = state_client or StateBackendClient(
            runner=self.runner,
            settings=self.settings.state_backend,
        )

    def _cluster_service(self, provider: Provider) -> ClusterDiscoveryService:
        client = None
        if self.cluster_client_factory is not None:
            client = self.cluster_client_factory(provider.config)
        return ClusterDiscoveryService(
            provider,
            client=client,
            runner=self.runner,
            settings=self.settings.cluster,
        )

    def _state_service(self, provider: Provider) -> StateBackendDiscoveryService:
        return StateBackendDiscoveryService(
            provider,
            client=self.state_client,
            settings=self.settings.state_backend,
        )

    def _require_state_backend(self, provider: Provider) -> None:
        if provider.kind != ProviderKind.STATE_BACKEND:
            raise ValidationError(
                f"Provider {provider.name} does not support resource assignment",
                details={"provider": provider.name, "kind": provider.kind.value},
            )

    def discover(self, name: str) -> DiscoveryResult:
        """Preview what a provider's source holds. Never writes state.

        Args:
            name: Provider name

        Returns:
            Namespace previews for cluster providers, resources with group
            suggestions for state-backend providers
        """
        provider = self.registry.get(name)
        bind_context(provider=provider.name)
        try:
            if provider.kind == ProviderKind.CLUSTER:
                return self._cluster_service(provider).discover()

            project = self.inventory.get_project(provider.project)
            existing_groups = [group.name for group in project.groups]
            return self._state_service(provider).discover(existing_groups)
        finally:
            clear_context()

    def sync(self, name: str) -> ReconcileReport:
        """Fetch from a provider's source and reconcile into inventory.

        Nothing is written if the fetch fails.
        """
        provider = self.registry.get(name)
        bind_context(provider=provider.name)
        try:
            # Fail on a missing project before reaching out to the source
            self.inventory.get_project(provider.project)
            if provider.kind == ProviderKind.CLUSTER:
                result = self._cluster_service(provider).sync()
            else:
                result = self._state_service(provider).sync()
            return self.reconciler.reconcile(provider, result)
        finally:
            clear_context()

    def assign_resource_to_group(self, name: str, resource_id: str, group: str) -> Provider:
        """Assign a state resource to a group, creating the group if needed.

        The mapping and any new group are written together. The resource
        joins the inventory on the next sync of a provider managing that
        group.
        """
        if not resource_id or not group:
            raise ValidationError("Resource id and group are required")

        provider = self.registry.get(name)
        self._require_state_backend(provider)
        project = self.inventory.get_project(provider.project)

        updated = provider.with_mapping(resource_id, group)
        writes = [provider_write(updated)]
        if project.get_group(group) is None:
            project = project.model_copy(update={"groups": [*project.groups, Group(name=group)]})
            writes.append(project_write(project))
            logger.info("Created group for assignment", project=project.name, group=group)

        self.store.save_many(writes)
        logger.info(
            "Assigned resource to group",
            provider=name,
            resource_id=resource_id,
            group=group,
        )
        return updated

    def pending_assignments(self, name: str) -> list[StateResourceInfo]:
        """Resources with no group assignment yet."""
        provider = self.registry.get(name)
        self._require_state_backend(provider)
        result = self.discover(name)
        return result.unassigned

    def accept_suggestions(self, name: str) -> list[ResourceMapping]:
        """Record every suggested group for resources that have no assignment.

        Suggestions only ever name existing groups, so no group is created.
        """
        provider = self.registry.get(name)
        self._require_state_backend(provider)

        accepted: list[ResourceMapping] = []
        for resource in self.pending_assignments(name):
            if resource.suggested_group is None:
                continue
            provider = provider.with_mapping(resource.id, resource.suggested_group)
            accepted.append(ResourceMapping(resource_id=resource.id, group=resource.suggested_group))

        if accepted:
            self.registry.save(provider)
        logger.info("Accepted group suggestions", provider=name, accepted=len(accepted))
        return accepted
