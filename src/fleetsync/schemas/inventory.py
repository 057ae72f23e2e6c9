"""Inventory entity schemas: hosts, services, instances, groups, projects."""

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

MANUAL_SOURCE = "manual"
PROVIDER_SOURCE_PREFIX = "provider:"


def provider_source(provider_name: str) -> str:
    """Ownership tag for entities created by a provider's sync."""
    return f"{PROVIDER_SOURCE_PREFIX}{provider_name}"


class ConnectionType(str, Enum):
    """How the operator reaches a host."""

    SSH = "ssh"
    CLUSTER = "cluster"
    STATE_BACKEND = "state-backend"


# Provider-specific metadata


class WorkloadMetadata(BaseModel):
    """Origin of an entity discovered from a cluster workload."""

    kind: Literal["cluster"] = "cluster"
    namespace: str
    pod_name: str
    deployment: str | None = None
    image: str
    image_tag: str | None = None


class ResourceMetadata(BaseModel):
    """Origin of an entity discovered from a state document resource."""

    kind: Literal["state-backend"] = "state-backend"
    resource_id: str
    resource_type: str
    resource_name: str


ProviderMetadata = Annotated[
    Union[WorkloadMetadata, ResourceMetadata],
    Field(discriminator="kind"),
]


class NodeConnection(BaseModel):
    """Cluster node a host corresponds to."""

    context: str
    node: str


# Entities


class Service(BaseModel):
    """A supporting process (database, cache, proxy, queue) on a host."""

    name: str = Field(..., min_length=1)
    process: str
    host: str | None = None
    source: str = MANUAL_SOURCE
    endpoint: str | None = None
    port: int | None = None
    metadata: ProviderMetadata | None = None


class Host(BaseModel):
    """A machine, VM or cluster node."""

    name: str = Field(..., min_length=1)
    address: str | None = None
    connection_type: ConnectionType = ConnectionType.SSH
    connection: NodeConnection | None = None
    source: str = MANUAL_SOURCE
    connectable: bool = True
    services: list[Service] = Field(default_factory=list)

    def get_service(self, name: str) -> Service | None:
        return next((service for service in self.services if service.name == name), None)

    @field_validator("services")
    @classmethod
    def validate_unique_services(cls, services: list[Service]) -> list[Service]:
        """Service names are unique per host."""
        seen: set[str] = set()
        for service in services:
            if service.name in seen:
                raise ValueError(f"duplicate service name: {service.name}")
            seen.add(service.name)
        return services


class Instance(BaseModel):
    """A deployed copy of the operator's own application."""

    name: str = Field(..., min_length=1)
    path: str
    host: str | None = None
    repository: str | None = None
    branch: str | None = None
    source: str = MANUAL_SOURCE
    metadata: ProviderMetadata | None = None

    @property
    def is_local(self) -> bool:
        return self.host is None


class ServiceRef(BaseModel):
    """Reference to a named service on a named host."""

    model_config = ConfigDict(frozen=True)

    host: str
    service: str


class Group(BaseModel):
    """Instances and service references that operate together."""

    name: str = Field(..., min_length=1)
    instances: list[str] = Field(default_factory=list)
    services: list[ServiceRef] = Field(default_factory=list)

    @field_validator("instances")
    @classmethod
    def dedupe_instances(cls, names: list[str]) -> list[str]:
        return list(dict.fromkeys(names))

    @field_validator("services")
    @classmethod
    def dedupe_services(cls, refs: list[ServiceRef]) -> list[ServiceRef]:
        return list(dict.fromkeys(refs))

    def merge(
        self,
        instances: list[str] | None = None,
        services: list[ServiceRef] | None = None,
    ) -> "Group":
        """Return a copy with the given members unioned in, order preserved."""
        return Group(
            name=self.name,
            instances=[*self.instances, *(instances or [])],
            services=[*self.services, *(services or [])],
        )


class Project(BaseModel):
    """A codebase with its deployed instances and groups."""

    name: str = Field(..., min_length=1)
    path: str
    summary: str | None = None
    instances: list[Instance] = Field(default_factory=list)
    groups: list[Group] = Field(default_factory=list)

    def get_instance(self, name: str) -> Instance | None:
        return next((instance for instance in self.instances if instance.name == name), None)

    def get_group(self, name: str) -> Group | None:
        return next((group for group in self.groups if group.name == name), None)

    @field_validator("instances")
    @classmethod
    def validate_unique_instances(cls, instances: list[Instance]) -> list[Instance]:
        """Instance names are unique per project."""
        seen: set[str] = set()
        for instance in instances:
            if instance.name in seen:
                raise ValueError(f"duplicate instance name: {instance.name}")
            seen.add(instance.name)
        return instances

    @field_validator("groups")
    @classmethod
    def validate_unique_groups(cls, groups: list[Group]) -> list[Group]:
        """Group names are unique per project."""
        seen: set[str] = set()
        for group in groups:
            if group.name in seen:
                raise ValueError(f"duplicate group name: {group.name}")
            seen.add(group.name)
        return groups
