"""Discovery of inventory entities from external systems."""

from fleetsync.discovery.base import SyncResult
from fleetsync.discovery.cluster import (
    ClusterClient,
    ClusterDiscoveryResult,
    ClusterDiscoveryService,
    ClusterSnapshot,
    KubectlClient,
    NamespacePreview,
    NodeInfo,
    current_context,
    list_contexts,
)
from fleetsync.discovery.detection import DetectedStateEnvironment, detect_state_environments
from fleetsync.discovery.registry import ProviderRegistry
from fleetsync.discovery.state_backend import (
    StateBackendClient,
    StateBackendDiscoveryService,
    StateDiscoveryResult,
    StateDocument,
    StateResourceInfo,
)

__all__ = [
    "ClusterClient",
    "ClusterDiscoveryResult",
    "ClusterDiscoveryService",
    "ClusterSnapshot",
    "DetectedStateEnvironment",
    "KubectlClient",
    "NamespacePreview",
    "NodeInfo",
    "ProviderRegistry",
    "StateBackendClient",
    "StateBackendDiscoveryService",
    "StateDiscoveryResult",
    "StateDocument",
    "StateResourceInfo",
    "SyncResult",
    "current_context",
    "detect_state_environments",
    "list_contexts",
]
