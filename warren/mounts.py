"""Additional mount validation.

A group may ask for extra host directories to be visible to its agent.
The supervisor never trusts that list directly: it passes it through a
``MountValidator`` and only mounts (or symlinks) what comes back.

The default validator is allowlist based — a requested host path must
resolve inside one of the configured ``mount_allowlist`` roots.  Non-main
groups always get read-only mounts.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

EXTRA_MOUNT_ROOT = "/workspace/extra"

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


@dataclass
class AdditionalMount:
    """A mount as requested in a group's configuration."""

    host_path: str
    container_path: str | None = None
    readonly: bool = True


@dataclass
class ValidatedMount:
    host_path: str
    container_path: str
    readonly: bool

    @property
    def name(self) -> str:
        return Path(self.container_path).name


class MountValidator(Protocol):
    def __call__(
        self, mounts: list[AdditionalMount], group_name: str, is_main: bool,
    ) -> list[ValidatedMount]: ...


class AllowlistValidator:
    """Accept mounts whose host path resolves under an allowed root."""

    def __init__(self, roots: list[str | Path]) -> None:
        self.roots = [Path(r).expanduser().resolve() for r in roots]

    def _allowed(self, path: Path) -> bool:
        return any(path == root or path.is_relative_to(root) for root in self.roots)

    def __call__(
        self, mounts: list[AdditionalMount], group_name: str, is_main: bool,
    ) -> list[ValidatedMount]:
        validated: list[ValidatedMount] = []
        seen: set[str] = set()
        for m in mounts:
            host = Path(m.host_path).expanduser()
            if not host.exists():
                logger.warning("Mount rejected, path missing | group=%s | path=%s", group_name, host)
                continue
            host = host.resolve()
            if not self._allowed(host):
                logger.warning(
                    "Mount rejected, not in allowlist | group=%s | path=%s", group_name, host,
                )
                continue

            name = Path(m.container_path).name if m.container_path else host.name
            if not _NAME_RE.match(name) or name in seen:
                logger.warning(
                    "Mount rejected, bad or duplicate name | group=%s | name=%r", group_name, name,
                )
                continue
            seen.add(name)

            validated.append(ValidatedMount(
                host_path=str(host),
                container_path=f"{EXTRA_MOUNT_ROOT}/{name}",
                readonly=m.readonly or not is_main,
            ))
        return validated
