"""Persisted provider records.

Providers are created and edited by the operator. Syncs only ever touch
``last_sync``; resource-to-group assignments are upserted through
``add_resource_mapping``.
"""

from datetime import datetime, timezone

from fleetsync.common.exceptions import DuplicateProviderError, ProviderNotFoundError
from fleetsync.common.logging import get_logger
from fleetsync.schemas.providers import Provider
from fleetsync.state.store import StateKind, StateStore, StateWrite

logger = get_logger(__name__)


def provider_write(provider: Provider) -> StateWrite:
    return StateWrite(StateKind.PROVIDER, provider.name, provider.model_dump(mode="json"))


class ProviderRegistry:
    """Provider records keyed by name."""

    def __init__(self, store: StateStore) -> None:
        self._store = store

    def exists(self, name: str) -> bool:
        return self._store.load(StateKind.PROVIDER, name) is not None

    def get(self, name: str) -> Provider:
        payload = self._store.load(StateKind.PROVIDER, name)
        if payload is None:
            raise ProviderNotFoundError(f"Provider not found: {name}", details={"provider": name})
        return Provider.model_validate(payload)

    def list_providers(self, project: str | None = None) -> list[Provider]:
        providers = [
            Provider.model_validate(payload)
            for payload in self._store.load_all(StateKind.PROVIDER).values()
        ]
        if project is not None:
            providers = [p for p in providers if p.project == project]
        return providers

    def create(self, provider: Provider) -> Provider:
        if self.exists(provider.name):
            raise DuplicateProviderError(
                f"Provider already exists: {provider.name}",
                details={"provider": provider.name},
            )
        self._store.save_many([provider_write(provider)])
        logger.info(
            "Created provider",
            provider=provider.name,
            kind=provider.kind.value,
            project=provider.project,
            group=provider.group,
        )
        return provider

    def save(self, provider: Provider) -> Provider:
        self._store.save_many([provider_write(provider)])
        return provider

    def delete(self, name: str) -> bool:
        if not self.exists(name):
            return False
        self._store.delete(StateKind.PROVIDER, name)
        logger.info("Deleted provider", provider=name)
        return True

    def add_resource_mapping(self, name: str, resource_id: str, group: str) -> Provider:
        """Remember that a resource belongs to a group (last assignment wins)."""
        provider = self.get(name).with_mapping(resource_id, group)
        self._store.save_many([provider_write(provider)])
        logger.info(
            "Assigned resource to group",
            provider=name,
            resource_id=resource_id,
            group=group,
        )
        return provider

    def update_last_sync(self, name: str, at: datetime | None = None) -> Provider:
        provider = self.get(name).model_copy(
            update={"last_sync": at or datetime.now(timezone.utc)}
        )
        self._store.save_many([provider_write(provider)])
        return provider
