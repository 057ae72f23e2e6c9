"""Unit tests for the provider registry."""

from datetime import datetime, timezone

import pytest

from fleetsync.common.exceptions import DuplicateProviderError, ProviderNotFoundError
from fleetsync.schemas.providers import ProviderKind


@pytest.mark.unit
class TestProviderRegistry:
    """Test cases for ProviderRegistry."""

    def test_create_and_get(self, registry, cluster_provider):
        registry.create(cluster_provider)

        provider = registry.get("p1")

        assert provider == cluster_provider
        assert provider.kind == ProviderKind.CLUSTER
        assert provider.source == "provider:p1"

    def test_create_rejects_duplicates(self, registry, cluster_provider):
        registry.create(cluster_provider)

        with pytest.raises(DuplicateProviderError):
            registry.create(cluster_provider)

    def test_get_missing(self, registry):
        with pytest.raises(ProviderNotFoundError) as exc_info:
            registry.get("nope")
        assert exc_info.value.details == {"provider": "nope"}

    def test_list_by_project(self, registry, cluster_provider, state_provider):
        registry.create(cluster_provider)
        registry.create(state_provider.model_copy(update={"project": "billing"}))

        assert [p.name for p in registry.list_providers()] == ["infra", "p1"]
        assert [p.name for p in registry.list_providers(project="shop")] == ["p1"]
        assert registry.list_providers(project="none") == []

    def test_delete(self, registry, cluster_provider):
        registry.create(cluster_provider)

        assert registry.delete("p1") is True
        assert registry.delete("p1") is False
        assert registry.exists("p1") is False

    def test_resource_mapping_upsert(self, registry, state_provider):
        registry.create(state_provider)

        registry.add_resource_mapping("infra", "aws_db_instance.main", "production")
        provider = registry.add_resource_mapping("infra", "aws_db_instance.main", "staging")
        registry.add_resource_mapping("infra", "aws_instance.bastion", "staging")

        stored = registry.get("infra")
        assert provider.group_for("aws_db_instance.main") == "staging"
        assert [(m.resource_id, m.group) for m in stored.resource_mappings] == [
            ("aws_db_instance.main", "staging"),
            ("aws_instance.bastion", "staging"),
        ]

    def test_update_last_sync(self, registry, cluster_provider):
        registry.create(cluster_provider)
        at = datetime(2026, 3, 1, tzinfo=timezone.utc)

        registry.update_last_sync("p1", at)

        assert registry.get("p1").last_sync == at
        assert registry.update_last_sync("p1").last_sync > at
