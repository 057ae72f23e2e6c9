"""Schemas for sync providers and their connection configuration."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from fleetsync.common.exceptions import BackendConfigurationError
from fleetsync.schemas.inventory import provider_source


class ProviderKind(str, Enum):
    """Provider variant enumeration."""

    CLUSTER = "cluster"
    STATE_BACKEND = "state-backend"


class StateBackendType(str, Enum):
    """Where a state document lives."""

    LOCAL = "local"
    OBJECT_STORAGE = "object-storage"


# Type-specific configuration schemas


class ClusterConfig(BaseModel):
    """Kubernetes cluster connection configuration."""

    kind: Literal["cluster"] = "cluster"
    context: str = Field(..., min_length=1, description="kubectl context name")
    kubeconfig_path: str | None = Field(default=None, description="Defaults to kubectl's own lookup")
    private_registries: list[str] = Field(
        default_factory=list,
        description="Image prefixes whose pods are the operator's own application",
    )


class StateBackendConfig(BaseModel):
    """Terraform state location.

    Fields are optional at rest so that an incomplete record can still be
    loaded and edited; ``require_location`` is checked before any read.
    """

    kind: Literal["state-backend"] = "state-backend"
    backend: StateBackendType = StateBackendType.LOCAL
    local_path: str | None = None
    bucket: str | None = None
    key: str | None = None
    region: str | None = None

    def require_location(self) -> None:
        """Raise if the configured backend lacks its location fields."""
        if self.backend == StateBackendType.OBJECT_STORAGE:
            missing = [name for name in ("bucket", "key", "region") if not getattr(self, name)]
            if missing:
                raise BackendConfigurationError(
                    "Object storage backend requires bucket, key, and region",
                    details={"missing": missing},
                )
        elif not self.local_path:
            raise BackendConfigurationError(
                "Local backend requires local_path",
                details={"missing": ["local_path"]},
            )

    @property
    def object_url(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


ProviderConfig = Annotated[
    Union[ClusterConfig, StateBackendConfig],
    Field(discriminator="kind"),
]


class SyncSettings(BaseModel):
    """Scheduling hints; running syncs on a schedule is up to the caller."""

    auto_sync: bool = False
    interval_minutes: int | None = Field(default=None, ge=1, le=1440)


class ResourceMapping(BaseModel):
    """Remembered assignment of an external resource to a group."""

    resource_id: str = Field(..., min_length=1)
    group: str = Field(..., min_length=1)


class Provider(BaseModel):
    """A sync binding between one external source and one group."""

    name: str = Field(..., min_length=1, max_length=255, description="Unique provider name")
    project: str = Field(..., min_length=1)
    group: str = Field(..., min_length=1, description="The one group this provider manages")
    config: ProviderConfig
    sync_settings: SyncSettings = Field(default_factory=SyncSettings)
    resource_mappings: list[ResourceMapping] = Field(default_factory=list)
    last_sync: datetime | None = None

    @property
    def kind(self) -> ProviderKind:
        return ProviderKind(self.config.kind)

    @property
    def source(self) -> str:
        return provider_source(self.name)

    def group_for(self, resource_id: str) -> str | None:
        """Group a resource was assigned to, if any."""
        for mapping in self.resource_mappings:
            if mapping.resource_id == resource_id:
                return mapping.group
        return None

    def with_mapping(self, resource_id: str, group: str) -> "Provider":
        """Return a copy with the mapping upserted (last assignment wins)."""
        mappings = [m for m in self.resource_mappings if m.resource_id != resource_id]
        mappings.append(ResourceMapping(resource_id=resource_id, group=group))
        return self.model_copy(update={"resource_mappings": mappings})
