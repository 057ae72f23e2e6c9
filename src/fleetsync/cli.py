"""Command line interface for FleetSync.

Usage:
    fleetsync register inventory.json
    fleetsync discover prod-cluster
    fleetsync sync prod-cluster
    fleetsync assign infra aws_db_instance.main staging

Results are printed to stdout as JSON. Logs go to stderr.
"""

import argparse
import dataclasses
import json
import sys
from collections.abc import Sequence
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from fleetsync.common.config import get_settings
from fleetsync.common.database import create_engine
from fleetsync.common.exceptions import DuplicateProviderError, FleetSyncError, ValidationError
from fleetsync.common.logging import get_logger, setup_logging
from fleetsync.common.process import CommandRunner
from fleetsync.discovery.cluster import NamespacePreview, current_context, list_contexts
from fleetsync.discovery.detection import detect_state_environments
from fleetsync.discovery.registry import ProviderRegistry, provider_write
from fleetsync.schemas.inventory import Host, Project
from fleetsync.schemas.providers import Provider
from fleetsync.services.sync_service import ProviderSyncService
from fleetsync.state.repository import host_write, project_write
from fleetsync.state.store import SqlStateStore, StateStore

logger = get_logger(__name__)


def to_jsonable(value: Any) -> Any:
    """Convert command results into JSON-compatible data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, NamespacePreview):
        return {
            "name": value.name,
            "instance_count": value.instance_count,
            "service_count": value.service_count,
            "instances": value.instances,
            "services": value.services,
        }
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Path):
        return str(value)
    return value


def _load_inventory_file(path: str) -> dict[str, Any]:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise ValidationError(f"Cannot read {path}: {exc}", cause=exc) from exc
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Invalid JSON in {path}: {exc}", cause=exc) from exc
    if not isinstance(data, dict):
        raise ValidationError(f"{path} must contain a JSON object")
    # A bare provider record is accepted as shorthand
    if "config" in data:
        return {"providers": [data]}
    return data


def register(store: StateStore, path: str) -> dict[str, list[str]]:
    """Store projects, hosts and providers from an inventory file.

    Projects and hosts are upserted; providers must be new. All records are
    validated before anything is written.
    """
    data = _load_inventory_file(path)
    registry = ProviderRegistry(store)
    try:
        projects = [Project.model_validate(item) for item in data.get("projects", [])]
        hosts = [Host.model_validate(item) for item in data.get("hosts", [])]
        providers = [Provider.model_validate(item) for item in data.get("providers", [])]
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid inventory file {path}",
            details={"errors": exc.errors(include_url=False, include_context=False)},
            cause=exc,
        ) from exc

    for provider in providers:
        if registry.exists(provider.name):
            raise DuplicateProviderError(
                f"Provider already exists: {provider.name}",
                details={"provider": provider.name},
            )

    writes = [project_write(project) for project in projects]
    writes.extend(host_write(host) for host in hosts)
    writes.extend(provider_write(provider) for provider in providers)
    store.save_many(writes)
    logger.info(
        "Registered inventory",
        projects=len(projects),
        hosts=len(hosts),
        providers=len(providers),
    )
    return {
        "projects": [project.name for project in projects],
        "hosts": [host.name for host in hosts],
        "providers": [provider.name for provider in providers],
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fleetsync",
        description="Sync infrastructure inventory from clusters and Terraform state",
    )
    parser.add_argument(
        "--store-url",
        help="SQLAlchemy URL of the state store (default: STORE_URL or ~/.fleetsync/state.db)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    providers = commands.add_parser("providers", help="List providers")
    providers.add_argument("--project", help="Only providers of this project")

    reg = commands.add_parser("register", help="Store projects, hosts and providers from a JSON file")
    reg.add_argument("file", help="JSON inventory file or a single provider record")

    discover = commands.add_parser("discover", help="Preview a provider's source without writing")
    discover.add_argument("provider")

    sync = commands.add_parser("sync", help="Sync a provider into the inventory")
    sync.add_argument("provider")

    assign = commands.add_parser("assign", help="Assign a state resource to a group")
    assign.add_argument("provider")
    assign.add_argument("resource_id")
    assign.add_argument("group")

    accept = commands.add_parser("accept-suggestions", help="Accept suggested groups for unassigned resources")
    accept.add_argument("provider")

    contexts = commands.add_parser("contexts", help="List kubectl contexts")
    contexts.add_argument("--kubeconfig", help="Path to a kubeconfig file")

    detect = commands.add_parser("detect", help="Detect Terraform environments in a directory")
    detect.add_argument("directory", nargs="?", default=".")
    detect.add_argument("--max-depth", type=int, help="Directory levels to descend")

    return parser


def run_command(args: argparse.Namespace, store: StateStore | None = None) -> Any:
    """Execute a parsed command and return its result."""
    settings = get_settings()

    if args.command == "contexts":
        runner = CommandRunner(settings.command)
        return {
            "current": current_context(args.kubeconfig, runner=runner, settings=settings.cluster),
            "contexts": list_contexts(args.kubeconfig, runner=runner, settings=settings.cluster),
        }

    if args.command == "detect":
        max_depth = args.max_depth
        if max_depth is None:
            max_depth = settings.state_backend.detection_max_depth
        environments = detect_state_environments(args.directory, max_depth=max_depth)
        return [
            {**to_jsonable(env), "config": env.to_config().model_dump(mode="json")}
            for env in environments
        ]

    if store is None:
        store_settings = settings.store
        if args.store_url:
            store_settings = store_settings.model_copy(update={"url": args.store_url})
        store = SqlStateStore(create_engine(store_settings))

    if args.command == "register":
        return register(store, args.file)

    service = ProviderSyncService(store, settings=settings)
    if args.command == "providers":
        return service.registry.list_providers(project=args.project)
    if args.command == "discover":
        return service.discover(args.provider)
    if args.command == "sync":
        return service.sync(args.provider)
    if args.command == "assign":
        return service.assign_resource_to_group(args.provider, args.resource_id, args.group)
    if args.command == "accept-suggestions":
        return service.accept_suggestions(args.provider)
    raise ValidationError(f"Unknown command: {args.command}")


def main(argv: Sequence[str] | None = None, store: StateStore | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging()

    try:
        result = run_command(args, store=store)
    except FleetSyncError as exc:
        logger.error("Command failed", command=args.command, error=exc.error_code, message=exc.message)
        print(json.dumps(exc.to_dict(), indent=2, default=str), file=sys.stderr)
        return exc.exit_code

    print(json.dumps(to_jsonable(result), indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
