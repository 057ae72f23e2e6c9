"""Result types shared by the discovery adapters."""

from dataclasses import dataclass, field

from fleetsync.schemas.inventory import Group, Host, Instance, Service


@dataclass
class SyncResult:
    """Entities one provider discovered in a single sync run.

    Services carry the name of the host they belong to in ``Service.host``.
    ``needs_assignment`` lists resources that were discovered but skipped
    because no group has been assigned to them yet.
    """

    hosts: list[Host] = field(default_factory=list)
    instances: list[Instance] = field(default_factory=list)
    services: list[Service] = field(default_factory=list)
    groups: list[Group] = field(default_factory=list)
    needs_assignment: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.hosts or self.instances or self.services)
