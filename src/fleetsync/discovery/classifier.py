"""Classification rules shared by the discovery adapters.

Maps container images and Terraform resource types to inventory roles,
derives display and process names, and suggests groups for resources
that carry environment hints.
"""

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Final

Attributes = Mapping[str, Any]


class EntityRole(str, Enum):
    """Inventory role a discovered object maps to."""

    HOST = "host"
    INSTANCE = "instance"
    SERVICE = "service"


# Workloads


def is_private_image(image: str, private_registries: Sequence[str]) -> bool:
    """Check if an image comes from one of the operator's registries."""
    return any(registry and image.startswith(registry) for registry in private_registries)


def classify_image(image: str, private_registries: Sequence[str]) -> EntityRole:
    """Private images are the operator's application, everything else a service."""
    if is_private_image(image, private_registries):
        return EntityRole.INSTANCE
    return EntityRole.SERVICE


def _image_name(image: str) -> str:
    """Last path component of an image reference, digest removed."""
    return image.split("@", 1)[0].rsplit("/", 1)[-1]


def image_tag(image: str) -> str | None:
    """Tag of an image reference (``redis:7.2`` -> ``7.2``)."""
    name = _image_name(image)
    if ":" not in name:
        return None
    return name.rsplit(":", 1)[1] or None


def derive_process_name(image: str) -> str:
    """Service process name from an image.

    ``redis:7.2`` -> ``redis``,
    ``quay.io/prometheus/prometheus:v2.45`` -> ``prometheus``.
    """
    return _image_name(image).split(":", 1)[0]


def derive_deployment_name(owner_references: Iterable[Mapping[str, Any]] | None) -> str | None:
    """Logical controller name from a pod's owner references.

    ReplicaSets are named ``<deployment>-<hash>``; the hash is stripped.
    StatefulSets and DaemonSets own their pods directly under their own name.
    """
    for ref in owner_references or []:
        kind = ref.get("kind")
        name = ref.get("name") or ""
        if kind == "ReplicaSet":
            deployment, sep, _ = name.rpartition("-")
            if sep and deployment:
                return deployment
        elif kind in ("StatefulSet", "DaemonSet") and name:
            return name
    return None


def derive_display_name(pod: Mapping[str, Any]) -> str:
    """Display name for a pod: its controller's name, else its own name."""
    metadata = pod.get("metadata") or {}
    return derive_deployment_name(metadata.get("ownerReferences")) or metadata.get("name", "")


# Terraform resources


def _string_attr(name: str) -> Callable[[Attributes], str | None]:
    def extract(attrs: Attributes) -> str | None:
        value = attrs.get(name)
        return value if isinstance(value, str) and value else None

    return extract


def _int_attr(name: str) -> Callable[[Attributes], int | None]:
    def extract(attrs: Attributes) -> int | None:
        value = attrs.get(name)
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.isdigit():
            return int(value)
        return None

    return extract


def _fixed_port(port: int) -> Callable[[Attributes], int | None]:
    return lambda attrs: port


def _first_cache_node_address(attrs: Attributes) -> str | None:
    nodes = attrs.get("cache_nodes") or []
    if nodes and isinstance(nodes[0], Mapping):
        return _string_attr("address")(nodes[0])
    return None


def _first_broker_endpoint(attrs: Attributes) -> str | None:
    instances = attrs.get("instances") or []
    if instances and isinstance(instances[0], Mapping):
        endpoints = instances[0].get("endpoints") or []
        if endpoints and isinstance(endpoints[0], str):
            return endpoints[0]
    return None


def _instance_address(attrs: Attributes) -> str | None:
    return _string_attr("public_ip")(attrs) or _string_attr("private_ip")(attrs)


@dataclass(frozen=True)
class ResourceTypeMapping:
    """How one Terraform resource type maps into the inventory."""

    role: EntityRole
    service: str
    endpoint: Callable[[Attributes], str | None]
    port: Callable[[Attributes], int | None]


RESOURCE_TYPE_MAPPINGS: Final[dict[str, ResourceTypeMapping]] = {
    "aws_db_instance": ResourceTypeMapping(
        role=EntityRole.SERVICE,
        service="postgresql",  # Refined from the engine attribute
        endpoint=_string_attr("endpoint"),
        port=_int_attr("port"),
    ),
    "aws_rds_cluster": ResourceTypeMapping(
        role=EntityRole.SERVICE,
        service="aurora",
        endpoint=_string_attr("endpoint"),
        port=_int_attr("port"),
    ),
    "aws_elasticache_cluster": ResourceTypeMapping(
        role=EntityRole.SERVICE,
        service="redis",
        endpoint=_first_cache_node_address,
        port=_int_attr("port"),
    ),
    "aws_elasticache_replication_group": ResourceTypeMapping(
        role=EntityRole.SERVICE,
        service="redis",
        endpoint=_string_attr("primary_endpoint_address"),
        port=_int_attr("port"),
    ),
    "aws_mq_broker": ResourceTypeMapping(
        role=EntityRole.SERVICE,
        service="rabbitmq",
        endpoint=_first_broker_endpoint,
        port=_fixed_port(5672),
    ),
    "aws_opensearch_domain": ResourceTypeMapping(
        role=EntityRole.SERVICE,
        service="opensearch",
        endpoint=_string_attr("endpoint"),
        port=_fixed_port(443),
    ),
    "aws_elasticsearch_domain": ResourceTypeMapping(
        role=EntityRole.SERVICE,
        service="elasticsearch",
        endpoint=_string_attr("endpoint"),
        port=_fixed_port(443),
    ),
    "aws_instance": ResourceTypeMapping(
        role=EntityRole.HOST,
        service="ec2",
        endpoint=_instance_address,
        port=_fixed_port(22),
    ),
}

DATABASE_RESOURCE_TYPES: Final[frozenset[str]] = frozenset({"aws_db_instance"})


def get_resource_mapping(resource_type: str) -> ResourceTypeMapping | None:
    return RESOURCE_TYPE_MAPPINGS.get(resource_type)


def service_label(resource_type: str, attrs: Attributes) -> str:
    """Service label for a resource, refined by engine for databases."""
    mapping = RESOURCE_TYPE_MAPPINGS.get(resource_type)
    if mapping is None:
        return "unknown"

    if resource_type in DATABASE_RESOURCE_TYPES:
        engine = (_string_attr("engine")(attrs) or "").lower()
        if "mysql" in engine or "mariadb" in engine:
            return "mysql"
        if "postgres" in engine:
            return "postgresql"
        return engine or "database"

    return mapping.service


def _tags(attrs: Attributes) -> Mapping[str, Any]:
    tags = attrs.get("tags")
    return tags if isinstance(tags, Mapping) else {}


def resource_display_name(resource_name: str, attrs: Attributes) -> str:
    """Identifier attribute, else Name tag, else the Terraform resource name."""
    return (
        _string_attr("identifier")(attrs)
        or _string_attr("Name")(_tags(attrs))
        or resource_name
    )


# Group suggestion

ENVIRONMENT_KEYWORDS: Final[tuple[tuple[str, tuple[str, ...]], ...]] = (
    ("production", ("prod", "production")),
    ("staging", ("staging", "stage")),
    ("development", ("dev", "develop", "development")),
    ("testing", ("test", "testing")),
)

ENVIRONMENT_TAG_KEYS: Final[frozenset[str]] = frozenset({"environment", "env"})


def suggest_group(
    resource_name: str,
    attrs: Attributes,
    existing_groups: Sequence[str],
) -> str | None:
    """Suggest an existing group for a resource.

    Checked in order: an environment tag naming an existing group, then
    environment keywords in the resource name or identifier matched
    against existing group names. Returns None when nothing matches.
    """
    for key, value in _tags(attrs).items():
        if key.lower() in ENVIRONMENT_TAG_KEYS and isinstance(value, str):
            match = next((g for g in existing_groups if g.lower() == value.lower()), None)
            if match:
                return match

    # Substring matches, so "proddb" and "myapp-prod1" count as production
    text = f"{resource_name} {_string_attr('identifier')(attrs) or ''}".lower()
    for canonical, keywords in ENVIRONMENT_KEYWORDS:
        keyword = next((k for k in keywords if k in text), None)
        if keyword is None:
            continue
        # The first environment named wins, even when no group fits it
        return next(
            (g for g in existing_groups if keyword in g.lower() or g.lower() == canonical),
            None,
        )

    return None
