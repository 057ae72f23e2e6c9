"""Detect Terraform environments in a directory tree.

A directory holding ``*.tf`` files is an environment. Its backend comes from
the resolved ``.terraform/terraform.tfstate`` written by ``terraform init``
when present, otherwise from a ``backend "s3"`` or ``backend "local"`` block
in its configuration files.
"""

import json
import os
import re
from dataclasses import dataclass
from pathlib import Path

from fleetsync.common.exceptions import ValidationError
from fleetsync.common.logging import get_logger
from fleetsync.schemas.providers import StateBackendConfig, StateBackendType

logger = get_logger(__name__)

RESOLVED_BACKEND_PATH = Path(".terraform") / "terraform.tfstate"
SKIPPED_DIRECTORIES = frozenset({"node_modules"})

# Terraform backend names for each supported location type
BACKEND_TYPES = {
    "s3": StateBackendType.OBJECT_STORAGE,
    "local": StateBackendType.LOCAL,
}

_BACKEND_BLOCK = re.compile(r'backend\s+"(s3|local)"\s*\{([\s\S]*?)\n\s*\}')
_BACKEND_OPEN = re.compile(r'backend\s+"(s3|local)"\s*\{')


def _block_value(block: str, name: str) -> str | None:
    match = re.search(rf'\b{name}\s*=\s*"([^"]+)"', block)
    return match.group(1) if match else None


@dataclass(frozen=True)
class DetectedStateEnvironment:
    """A Terraform environment and whatever backend location was found."""

    id: str
    path: Path
    backend: StateBackendType
    bucket: str | None = None
    key: str | None = None
    region: str | None = None
    local_path: str | None = None

    def to_config(self) -> StateBackendConfig:
        """Backend config for a provider.

        A local backend without an explicit path uses Terraform's default
        ``terraform.tfstate`` in the environment directory. Object storage
        fields that were set through variables stay empty and must be filled
        in before a sync.
        """
        if self.backend == StateBackendType.LOCAL:
            local = Path(self.local_path) if self.local_path else Path("terraform.tfstate")
            if not local.is_absolute():
                local = self.path / local
            return StateBackendConfig(backend=self.backend, local_path=str(local))
        return StateBackendConfig(
            backend=self.backend,
            bucket=self.bucket,
            key=self.key,
            region=self.region,
        )


def find_configuration_dirs(base: Path, max_depth: int) -> list[Path]:
    """Directories under ``base`` containing ``*.tf`` files, hidden ones skipped."""
    results: list[Path] = []

    def scan(directory: Path, depth: int) -> None:
        if depth > max_depth:
            return
        try:
            entries = sorted(os.scandir(directory), key=lambda entry: entry.name)
        except OSError as exc:
            logger.debug("Skipping unreadable directory", path=str(directory), error=str(exc))
            return

        if any(entry.is_file() and entry.name.endswith(".tf") for entry in entries):
            results.append(directory)

        for entry in entries:
            if (
                entry.is_dir(follow_symlinks=False)
                and not entry.name.startswith(".")
                and entry.name not in SKIPPED_DIRECTORIES
            ):
                scan(Path(entry.path), depth + 1)

    scan(base, 0)
    return results


def parse_resolved_backend(directory: Path) -> dict[str, str | None] | None:
    """Backend recorded by ``terraform init``, if any."""
    path = directory / RESOLVED_BACKEND_PATH
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.debug("Unreadable resolved backend", path=str(path), error=str(exc))
        return None

    backend = data.get("backend") if isinstance(data, dict) else None
    if not isinstance(backend, dict) or backend.get("type") not in BACKEND_TYPES:
        return None
    config = backend.get("config") or {}
    if backend["type"] == "s3":
        return {
            "type": "s3",
            "bucket": config.get("bucket"),
            "key": config.get("key"),
            "region": config.get("region"),
        }
    return {"type": "local", "path": config.get("path")}


def parse_backend_blocks(directory: Path) -> dict[str, str | None] | None:
    """Backend declared in the directory's ``*.tf`` files.

    Values set through variables are not resolved and come back as None.
    """
    for tf_file in sorted(directory.glob("*.tf")):
        try:
            content = tf_file.read_text(encoding="utf-8")
        except OSError as exc:
            logger.debug("Unreadable configuration file", path=str(tf_file), error=str(exc))
            continue

        match = _BACKEND_BLOCK.search(content)
        if match:
            backend_type, block = match.groups()
            if backend_type == "s3":
                return {
                    "type": "s3",
                    "bucket": _block_value(block, "bucket"),
                    "key": _block_value(block, "key"),
                    "region": _block_value(block, "region"),
                }
            return {"type": "local", "path": _block_value(block, "path")}

        # Empty blocks configured from the environment or -backend-config
        match = _BACKEND_OPEN.search(content)
        if match:
            return {"type": match.group(1)}
    return None


def detect_state_environments(directory: str | Path, max_depth: int = 5) -> list[DetectedStateEnvironment]:
    """Detect Terraform environments below ``directory``.

    Raises:
        ValidationError: ``directory`` is not a directory.
    """
    base = Path(directory).expanduser().resolve()
    if not base.is_dir():
        raise ValidationError(f"Not a directory: {base}", details={"directory": str(base)})

    environments: list[DetectedStateEnvironment] = []
    for env_dir in find_configuration_dirs(base, max_depth):
        backend = parse_resolved_backend(env_dir) or parse_backend_blocks(env_dir)
        if backend is None:
            continue

        relative = env_dir.relative_to(base).as_posix()
        environments.append(
            DetectedStateEnvironment(
                id=relative,
                path=env_dir,
                backend=BACKEND_TYPES[backend["type"]],
                bucket=backend.get("bucket"),
                key=backend.get("key"),
                region=backend.get("region"),
                local_path=backend.get("path"),
            )
        )

    logger.info("Detected state environments", directory=str(base), count=len(environments))
    return environments
