"""Terraform state discovery integration.

Reads a state document from a local file or object storage and maps the
resources it knows about into the inventory:

- Service-role resources -> Services on one synthetic Host per provider
- Host-role resources -> Hosts, connectable when an address was found
- Resources mapped to the provider's group -> members of that Group
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from fleetsync.common.config import StateBackendSettings, get_settings
from fleetsync.common.exceptions import (
    ExternalServiceError,
    StateDocumentError,
    ValidationError,
)
from fleetsync.common.logging import get_logger
from fleetsync.common.process import CommandRunner
from fleetsync.discovery.base import SyncResult
from fleetsync.discovery.classifier import (
    EntityRole,
    get_resource_mapping,
    resource_display_name,
    service_label,
    suggest_group,
)
from fleetsync.schemas.inventory import (
    ConnectionType,
    Group,
    Host,
    ResourceMetadata,
    Service,
    ServiceRef,
)
from fleetsync.schemas.providers import Provider, StateBackendConfig, StateBackendType

logger = get_logger(__name__)

MANAGED_MODE = "managed"
STATE_FILE_SUFFIX = ".tfstate"
BACKUP_FILE_SUFFIX = ".tfstate.backup"


# State document


class StateResourceInstance(BaseModel):
    """One instance of a resource; ``index_key`` is set for count/for_each."""

    model_config = ConfigDict(extra="ignore")

    index_key: str | int | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)


class StateResource(BaseModel):
    model_config = ConfigDict(extra="ignore")

    mode: str = MANAGED_MODE
    type: str
    name: str
    provider: str | None = None
    instances: list[StateResourceInstance] = Field(default_factory=list)


class StateDocument(BaseModel):
    """The subset of a Terraform state document discovery reads."""

    model_config = ConfigDict(extra="ignore")

    version: int | None = None
    terraform_version: str | None = None
    serial: int | None = None
    resources: list[StateResource] = Field(default_factory=list)

    @classmethod
    def from_text(cls, text: str, origin: str) -> StateDocument:
        try:
            return cls.model_validate_json(text)
        except PydanticValidationError as exc:
            raise StateDocumentError(
                f"Invalid state document at {origin}",
                details={"location": origin, "errors": exc.error_count()},
                cause=exc,
            ) from exc


def resource_id(resource_type: str, name: str, index_key: str | int | None = None) -> str:
    """Stable resource address, e.g. ``aws_instance.web[0]``."""
    base = f"{resource_type}.{name}"
    if index_key is None:
        return base
    return f"{base}[{json.dumps(index_key)}]"


# Backend access


class StateBackendClient:
    """Reads state documents through the local filesystem or the aws CLI."""

    def __init__(
        self,
        runner: CommandRunner | None = None,
        settings: StateBackendSettings | None = None,
    ) -> None:
        self._runner = runner or CommandRunner()
        self._settings = settings or get_settings().state_backend

    def load(self, config: StateBackendConfig) -> StateDocument:
        """Load the configured state document read-only.

        Raises:
            BackendConfigurationError: The location fields are incomplete.
            StateDocumentError: The document is missing or malformed.
            ExternalServiceError: The object storage fetch failed.
        """
        config.require_location()
        if config.backend == StateBackendType.OBJECT_STORAGE:
            text = self._runner.run(
                [
                    self._settings.aws_binary,
                    "s3",
                    "cp",
                    config.object_url,
                    "-",
                    "--region",
                    config.region,
                ]
            )
            return StateDocument.from_text(text, config.object_url)

        path = Path(config.local_path).expanduser()
        if not path.is_file():
            raise StateDocumentError(
                f"State document not found: {path}",
                details={"location": str(path)},
            )
        return StateDocument.from_text(path.read_text(encoding="utf-8"), str(path))

    def test_access(self, bucket: str, key: str, region: str) -> bool:
        """Check that an object storage state document is readable."""
        try:
            self._runner.run(
                [self._settings.aws_binary, "s3", "ls", f"s3://{bucket}/{key}", "--region", region]
            )
        except ExternalServiceError as exc:
            logger.info("State document not accessible", bucket=bucket, key=key, error=exc.message)
            return False
        return True

    def list_state_documents(self, bucket: str, prefix: str, region: str) -> list[str]:
        """Keys of state documents under a prefix, backups excluded."""
        output = self._runner.run(
            [
                self._settings.aws_binary,
                "s3",
                "ls",
                f"s3://{bucket}/{prefix}",
                "--recursive",
                "--region",
                region,
            ]
        )
        keys = []
        for line in output.splitlines():
            parts = line.split()
            if not parts:
                continue
            key = parts[-1]
            if key.endswith(STATE_FILE_SUFFIX) and not key.endswith(BACKUP_FILE_SUFFIX):
                keys.append(key)
        return keys


# Mapping


@dataclass(frozen=True)
class StateResourceInfo:
    """A mappable resource found in a state document."""

    id: str
    type: str
    name: str
    display_name: str
    role: EntityRole
    service: str
    endpoint: str | None = None
    port: int | None = None
    suggested_group: str | None = None
    assigned_group: str | None = None

    @property
    def metadata(self) -> ResourceMetadata:
        return ResourceMetadata(resource_id=self.id, resource_type=self.type, resource_name=self.name)


@dataclass
class StateDiscoveryResult:
    """Read-only preview of a state document."""

    resources: list[StateResourceInfo] = field(default_factory=list)
    terraform_version: str | None = None

    @property
    def unassigned(self) -> list[StateResourceInfo]:
        return [resource for resource in self.resources if resource.assigned_group is None]


def map_resources(
    document: StateDocument,
    existing_groups: list[str] | None = None,
    provider: Provider | None = None,
) -> list[StateResourceInfo]:
    """Managed resources of known types, in document order.

    Data sources and unmapped resource types are skipped.
    """
    groups = existing_groups or []
    resources: list[StateResourceInfo] = []
    for resource in document.resources:
        if resource.mode != MANAGED_MODE:
            continue
        mapping = get_resource_mapping(resource.type)
        if mapping is None:
            continue

        for instance in resource.instances:
            attrs = instance.attributes
            rid = resource_id(resource.type, resource.name, instance.index_key)
            resources.append(
                StateResourceInfo(
                    id=rid,
                    type=resource.type,
                    name=resource.name,
                    display_name=resource_display_name(resource.name, attrs),
                    role=mapping.role,
                    service=service_label(resource.type, attrs),
                    endpoint=mapping.endpoint(attrs),
                    port=mapping.port(attrs),
                    suggested_group=suggest_group(resource.name, attrs, groups),
                    assigned_group=provider.group_for(rid) if provider else None,
                )
            )
    return resources


def synthetic_host_name(provider: Provider, prefix: str) -> str:
    return f"{prefix}-{provider.name}"


def build_sync_result(
    provider: Provider,
    resources: list[StateResourceInfo],
    synthetic_host_prefix: str,
) -> SyncResult:
    """Entities for the resources assigned to the provider's group.

    Resources without any assignment are listed in ``needs_assignment``;
    resources assigned to another group are left out.
    """
    source = provider.source
    host_name = synthetic_host_name(provider, synthetic_host_prefix)

    hosts: list[Host] = []
    services: list[Service] = []
    needs_assignment: list[str] = []

    for resource in resources:
        if resource.assigned_group is None:
            needs_assignment.append(resource.id)
            continue
        if resource.assigned_group != provider.group:
            continue

        if resource.role == EntityRole.HOST:
            if any(host.name == resource.display_name for host in hosts):
                logger.debug("Duplicate host name in state", resource_id=resource.id)
                continue
            hosts.append(
                Host(
                    name=resource.display_name,
                    address=resource.endpoint,
                    connection_type=ConnectionType.STATE_BACKEND,
                    source=source,
                    connectable=resource.endpoint is not None,
                )
            )
            continue

        if any(service.name == resource.display_name for service in services):
            logger.debug("Duplicate service name in state", resource_id=resource.id)
            continue
        services.append(
            Service(
                name=resource.display_name,
                process=resource.service,
                host=host_name,
                source=source,
                endpoint=resource.endpoint,
                port=resource.port,
                metadata=resource.metadata,
            )
        )

    if services:
        hosts.insert(
            0,
            Host(
                name=host_name,
                connection_type=ConnectionType.STATE_BACKEND,
                source=source,
                connectable=False,
            ),
        )

    group = Group(
        name=provider.group,
        services=[ServiceRef(host=host_name, service=service.name) for service in services],
    )
    return SyncResult(
        hosts=hosts,
        services=services,
        groups=[group],
        needs_assignment=needs_assignment,
    )


class StateBackendDiscoveryService:
    """Runs discovery and sync fetches for one state-backend provider."""

    def __init__(
        self,
        provider: Provider,
        client: StateBackendClient | None = None,
        runner: CommandRunner | None = None,
        settings: StateBackendSettings | None = None,
    ) -> None:
        if not isinstance(provider.config, StateBackendConfig):
            raise ValidationError(f"Provider {provider.name} is not a state-backend provider")
        self._provider = provider
        self._config: StateBackendConfig = provider.config
        self._settings = settings or get_settings().state_backend
        self._client = client or StateBackendClient(runner=runner, settings=self._settings)

    def discover(self, existing_groups: list[str] | None = None) -> StateDiscoveryResult:
        """Preview mappable resources with group suggestions."""
        document = self._client.load(self._config)
        result = StateDiscoveryResult(
            resources=map_resources(document, existing_groups, self._provider),
            terraform_version=document.terraform_version,
        )
        logger.info(
            "State discovery completed",
            provider=self._provider.name,
            backend=self._config.backend.value,
            resources=len(result.resources),
            unassigned=len(result.unassigned),
        )
        return result

    def sync(self) -> SyncResult:
        """Load the document and map resources assigned to the provider's group."""
        document = self._client.load(self._config)
        result = build_sync_result(
            self._provider,
            map_resources(document, provider=self._provider),
            self._settings.synthetic_host_prefix,
        )
        logger.info(
            "State sync fetch completed",
            provider=self._provider.name,
            group=self._provider.group,
            hosts=len(result.hosts),
            services=len(result.services),
            needs_assignment=len(result.needs_assignment),
        )
        return result
