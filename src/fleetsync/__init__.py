"""FleetSync - Infrastructure inventory reconciliation.

Discovers hosts, application instances and supporting services from
Kubernetes clusters and Terraform state, and merges them into persisted
project inventory without disturbing manually curated entries.
"""

__version__ = "0.1.0"
