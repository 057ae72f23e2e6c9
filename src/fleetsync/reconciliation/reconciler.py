"""Merge a provider's sync result into persisted inventory.

Ownership is decided by each entity's ``source``. A sync only ever adds,
replaces or prunes entities tagged with its own provider's source:

- Instances are pruned and replaced in place.
- Cluster services are added when missing and never pruned.
- State-backend services are replaced wholesale on hosts the provider owns.

The merge runs on copies; the reconciler commits hosts, project and
provider in a single batch, so a failure leaves stored state unchanged.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypeVar

from fleetsync.common.logging import get_logger
from fleetsync.discovery.base import SyncResult
from fleetsync.discovery.registry import provider_write
from fleetsync.schemas.inventory import Group, Host, Instance, Project, Service, ServiceRef
from fleetsync.schemas.providers import Provider, ProviderKind
from fleetsync.state.repository import InventoryRepository, host_write, project_write
from fleetsync.state.store import StateStore

logger = get_logger(__name__)

EntityT = TypeVar("EntityT", Instance, Service)


@dataclass
class ReconcileReport:
    """What one reconcile run changed."""

    provider: str
    project: str
    hosts_created: list[str] = field(default_factory=list)
    hosts_updated: list[str] = field(default_factory=list)
    instances_added: list[str] = field(default_factory=list)
    instances_updated: list[str] = field(default_factory=list)
    instances_removed: list[str] = field(default_factory=list)
    services_added: list[ServiceRef] = field(default_factory=list)
    services_updated: list[ServiceRef] = field(default_factory=list)
    services_removed: list[ServiceRef] = field(default_factory=list)
    groups_created: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)
    needs_assignment: list[str] = field(default_factory=list)
    synced_at: datetime | None = None

    @property
    def changed(self) -> bool:
        return any(
            (
                self.hosts_created,
                self.hosts_updated,
                self.instances_added,
                self.instances_updated,
                self.instances_removed,
                self.services_added,
                self.services_updated,
                self.services_removed,
                self.groups_created,
            )
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "project": self.project,
            "changed": self.changed,
            "hosts_created": self.hosts_created,
            "hosts_updated": self.hosts_updated,
            "instances_added": self.instances_added,
            "instances_updated": self.instances_updated,
            "instances_removed": self.instances_removed,
            "services_added": [ref.model_dump() for ref in self.services_added],
            "services_updated": [ref.model_dump() for ref in self.services_updated],
            "services_removed": [ref.model_dump() for ref in self.services_removed],
            "groups_created": self.groups_created,
            "conflicts": self.conflicts,
            "needs_assignment": self.needs_assignment,
            "synced_at": self.synced_at.isoformat() if self.synced_at else None,
        }


@dataclass
class MergeOutcome:
    """Merged copies ready to be written; ``hosts`` holds changed hosts only."""

    project: Project
    hosts: dict[str, Host]
    report: ReconcileReport


@dataclass
class _Replacement:
    merged: list
    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)


def _replace_owned(
    existing: Sequence[EntityT],
    discovered: Sequence[EntityT],
    source: str,
    prune: bool = True,
) -> _Replacement:
    """Replace entities owned by ``source`` by name, keeping list order.

    Owned entries are swapped in place for their rediscovered version, or
    dropped when ``prune`` is set and they were not rediscovered. Entries
    owned by anyone else are kept untouched, and a discovered entity with
    the same name is reported as a conflict instead. Newly discovered
    entities are appended.
    """
    pending: dict[str, EntityT] = {}
    for entity in discovered:
        pending.setdefault(entity.name, entity)

    result = _Replacement(merged=[])
    for current in existing:
        incoming = pending.pop(current.name, None)
        if current.source != source:
            if incoming is not None:
                result.conflicts.append(current.name)
            result.merged.append(current)
        elif incoming is not None:
            if incoming != current:
                result.updated.append(current.name)
            result.merged.append(incoming)
        elif prune:
            result.removed.append(current.name)
        else:
            result.merged.append(current)

    for entity in pending.values():
        result.added.append(entity.name)
        result.merged.append(entity)
    return result


def _owned_refs(hosts: dict[str, Host], source: str) -> set[ServiceRef]:
    return {
        ServiceRef(host=host.name, service=service.name)
        for host in hosts.values()
        for service in host.services
        if service.source == source
    }


def _merge_hosts(
    provider: Provider,
    hosts: dict[str, Host],
    discovered: Sequence[Host],
    report: ReconcileReport,
) -> None:
    source = provider.source
    for host in discovered:
        current = hosts.get(host.name)
        if current is None:
            hosts[host.name] = host.model_copy(update={"services": []})
            report.hosts_created.append(host.name)
            continue

        if provider.kind != ProviderKind.STATE_BACKEND:
            # Cluster nodes may already be curated by hand or by another cluster
            continue

        if current.source != source:
            report.conflicts.append(f"host:{host.name}")
            continue

        updates = {
            "address": host.address,
            "connectable": host.connectable,
            "connection_type": host.connection_type,
        }
        if any(getattr(current, name) != value for name, value in updates.items()):
            hosts[host.name] = current.model_copy(update=updates)
            report.hosts_updated.append(host.name)


def _merge_cluster_services(
    hosts: dict[str, Host],
    discovered: Sequence[Service],
    report: ReconcileReport,
) -> None:
    for service in discovered:
        host = hosts.get(service.host or "")
        if host is None:
            logger.debug("Service host not in inventory", service=service.name, host=service.host)
            continue
        if host.get_service(service.name) is not None:
            continue
        hosts[host.name] = host.model_copy(update={"services": [*host.services, service]})
        report.services_added.append(ServiceRef(host=host.name, service=service.name))


def _merge_owned_host_services(
    source: str,
    hosts: dict[str, Host],
    discovered: Sequence[Service],
    report: ReconcileReport,
) -> None:
    by_host: dict[str, list[Service]] = {}
    for service in discovered:
        host = hosts.get(service.host or "")
        if host is None or host.source != source:
            logger.debug("Skipping service on host not owned by provider", service=service.name, host=service.host)
            continue
        by_host.setdefault(host.name, []).append(service)

    for name, host in list(hosts.items()):
        if host.source != source:
            continue
        replacement = _replace_owned(host.services, by_host.get(name, []), source)
        report.services_added.extend(ServiceRef(host=name, service=s) for s in replacement.added)
        report.services_updated.extend(ServiceRef(host=name, service=s) for s in replacement.updated)
        report.services_removed.extend(ServiceRef(host=name, service=s) for s in replacement.removed)
        report.conflicts.extend(f"service:{name}/{s}" for s in replacement.conflicts)
        if replacement.merged != host.services:
            hosts[name] = host.model_copy(update={"services": replacement.merged})


def _merge_groups(
    groups: Sequence[Group],
    discovered: Sequence[Group],
    provider: Provider,
    hosts: dict[str, Host],
    removed_instances: set[str],
    stale_refs: set[ServiceRef],
    instance_names: set[str],
    report: ReconcileReport,
) -> list[Group]:
    merged: list[Group] = [
        Group(
            name=group.name,
            instances=[name for name in group.instances if name not in removed_instances],
            services=[ref for ref in group.services if ref not in stale_refs],
        )
        for group in groups
    ]

    wanted = list(discovered)
    if not any(group.name == provider.group for group in wanted):
        wanted.append(Group(name=provider.group))

    def ref_resolves(ref: ServiceRef) -> bool:
        host = hosts.get(ref.host)
        return host is not None and host.get_service(ref.service) is not None

    for incoming in wanted:
        index = next((i for i, group in enumerate(merged) if group.name == incoming.name), None)
        if index is None:
            merged.append(Group(name=incoming.name))
            index = len(merged) - 1
            report.groups_created.append(incoming.name)
        merged[index] = merged[index].merge(
            instances=[name for name in incoming.instances if name in instance_names],
            services=[ref for ref in incoming.services if ref_resolves(ref)],
        )
    return merged


def merge_sync_result(
    provider: Provider,
    project: Project,
    hosts: dict[str, Host],
    result: SyncResult,
) -> MergeOutcome:
    """Merge a sync result into copies of the project and hosts.

    Args:
        provider: The provider the result came from.
        project: The provider's project as currently stored.
        hosts: Every stored host, keyed by name.
        result: Entities discovered by the provider.

    Returns:
        The merged project, the hosts that changed, and a report.
    """
    source = provider.source
    report = ReconcileReport(
        provider=provider.name,
        project=project.name,
        needs_assignment=list(result.needs_assignment),
    )
    working = dict(hosts)
    owned_before = _owned_refs(working, source)

    _merge_hosts(provider, working, result.hosts, report)
    if provider.kind == ProviderKind.STATE_BACKEND:
        _merge_owned_host_services(source, working, result.services, report)
    else:
        _merge_cluster_services(working, result.services, report)

    instances = _replace_owned(project.instances, result.instances, source)
    report.instances_added = instances.added
    report.instances_updated = instances.updated
    report.instances_removed = instances.removed
    report.conflicts.extend(f"instance:{name}" for name in instances.conflicts)

    # Instances another owner already holds are not group members of this sync
    merged_names = {
        instance.name for instance in instances.merged if instance.source == source
    }
    discovered_refs = {
        ServiceRef(host=service.host, service=service.name)
        for service in result.services
        if service.host
    }
    groups = _merge_groups(
        project.groups,
        result.groups,
        provider,
        working,
        removed_instances=set(instances.removed),
        stale_refs=owned_before - discovered_refs,
        instance_names=merged_names,
        report=report,
    )

    merged_project = project.model_copy(update={"instances": instances.merged, "groups": groups})
    changed_hosts = {name: host for name, host in working.items() if hosts.get(name) != host}
    return MergeOutcome(project=merged_project, hosts=changed_hosts, report=report)


class Reconciler:
    """Applies sync results to stored inventory."""

    def __init__(
        self,
        store: StateStore,
        inventory: InventoryRepository | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._inventory = inventory or InventoryRepository(store)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def reconcile(self, provider: Provider, result: SyncResult) -> ReconcileReport:
        """Merge ``result`` and commit it together with the provider's last sync.

        Raises:
            ProjectNotFoundError: The provider's project does not exist.
            StateStoreError: The commit failed; nothing was written.
        """
        project = self._inventory.get_project(provider.project)
        outcome = merge_sync_result(provider, project, self._inventory.list_hosts(), result)

        synced_at = self._clock()
        outcome.report.synced_at = synced_at
        writes = [host_write(host) for host in outcome.hosts.values()]
        writes.append(project_write(outcome.project))
        writes.append(provider_write(provider.model_copy(update={"last_sync": synced_at})))
        self._store.save_many(writes)

        report = outcome.report
        logger.info(
            "Reconciled provider",
            provider=provider.name,
            project=project.name,
            changed=report.changed,
            hosts_created=len(report.hosts_created),
            instances_added=len(report.instances_added),
            instances_removed=len(report.instances_removed),
            services_added=len(report.services_added),
            services_removed=len(report.services_removed),
            conflicts=len(report.conflicts),
            needs_assignment=len(report.needs_assignment),
        )
        if report.conflicts:
            logger.warning("Sync skipped entities owned elsewhere", provider=provider.name, conflicts=report.conflicts)
        return report
