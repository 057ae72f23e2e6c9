"""Typed access to projects and hosts held in a state store."""

from fleetsync.common.exceptions import ProjectNotFoundError
from fleetsync.schemas.inventory import Host, Project
from fleetsync.state.store import StateKind, StateStore, StateWrite


def project_write(project: Project) -> StateWrite:
    return StateWrite(StateKind.PROJECT, project.name, project.model_dump(mode="json"))


def host_write(host: Host) -> StateWrite:
    return StateWrite(StateKind.HOST, host.name, host.model_dump(mode="json"))


class InventoryRepository:
    """Loads and saves projects and hosts."""

    def __init__(self, store: StateStore) -> None:
        self._store = store

    def get_project(self, name: str) -> Project:
        payload = self._store.load(StateKind.PROJECT, name)
        if payload is None:
            raise ProjectNotFoundError(f"Project not found: {name}", details={"project": name})
        return Project.model_validate(payload)

    def list_projects(self) -> list[Project]:
        return [
            Project.model_validate(payload)
            for payload in self._store.load_all(StateKind.PROJECT).values()
        ]

    def save_project(self, project: Project) -> None:
        self._store.save_many([project_write(project)])

    def get_host(self, name: str) -> Host | None:
        payload = self._store.load(StateKind.HOST, name)
        return Host.model_validate(payload) if payload is not None else None

    def list_hosts(self) -> dict[str, Host]:
        return {
            key: Host.model_validate(payload)
            for key, payload in self._store.load_all(StateKind.HOST).items()
        }

    def save_host(self, host: Host) -> None:
        self._store.save_many([host_write(host)])

    def delete_host(self, name: str) -> None:
        self._store.delete(StateKind.HOST, name)
