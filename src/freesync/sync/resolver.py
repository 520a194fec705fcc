"""Conflict resolution strategies for the sync engine.

A Conflict op means both sides hold the path with different digests.
Exactly one strategy is configured per engine and it is applied to every
Conflict op:

- ``LocalWinsResolver``: Upload local content, discarding the remote
  version.  This is the default and it is destructive.
- ``PreserveRemoteResolver``: Save the remote version next to the file
  as ``<path><suffix>`` (locally and remotely), then upload local.  An
  existing copy is never overwritten; the next free ``<path><suffix>.<n>``
  is used instead.
- ``RemoteWinsResolver``: Overwrite the local file with remote content.

The ``create_resolver()`` factory maps config strategy strings to resolver
instances.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, NamedTuple, Protocol

if TYPE_CHECKING:
    from .operations import TransferOps

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class Resolution(NamedTuple):
    """Outcome of one resolved conflict.

    Attributes:
        detail: Short description recorded in the report.
        stored: Digest of the content the store holds afterwards, for
            every key the resolver wrote or read.
    """

    detail: str | None
    stored: dict[str, str]


class ConflictResolver(Protocol):
    """Protocol that all conflict resolvers must satisfy."""

    async def resolve(self, path: str, ops: TransferOps) -> Resolution:
        """Resolve the conflict on *path* using *ops* for all I/O.

        The caller holds the lock of *path*; any other path touched must
        be locked through ``ops.locks``.
        """
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


class LocalWinsResolver:
    """Always resolve conflicts in favour of local content."""

    async def resolve(self, path: str, ops: TransferOps) -> Resolution:
        logger.warning(
            "Conflict on %s: keeping local version, remote version discarded",
            path,
        )
        digest = await ops.upload(path)
        return Resolution("local", {path: digest})


class PreserveRemoteResolver:
    """Keep the remote version as a sibling copy, then upload local.

    Args:
        suffix: Appended to the path to name the copy.
    """

    def __init__(self, suffix: str = ".remote") -> None:
        self.suffix = suffix

    def copy_name(self, path: str, attempt: int = 0) -> str:
        """Name of the copy; ``attempt`` > 0 adds a counter."""
        base = f"{path}{self.suffix}"
        return base if attempt == 0 else f"{base}.{attempt}"

    async def resolve(self, path: str, ops: TransferOps) -> Resolution:
        data = await ops.read_remote(path)
        remote_digest = await ops.digest(data)

        attempt = 0
        while True:
            copy_path = self.copy_name(path, attempt)
            # Always longer than *path*, so lock order cannot cycle
            async with ops.locks.hold(copy_path):
                if not await ops.local_exists(copy_path):
                    await ops.write_local(copy_path, data)
                    await ops.put_remote(copy_path, data)
                    break
            attempt += 1

        digest = await ops.upload(path)
        logger.warning(
            "Conflict on %s: remote version saved as %s", path, copy_path
        )
        return Resolution(
            f"local (remote kept as {copy_path})",
            {path: digest, copy_path: remote_digest},
        )


class RemoteWinsResolver:
    """Always resolve conflicts in favour of remote content."""

    async def resolve(self, path: str, ops: TransferOps) -> Resolution:
        logger.warning(
            "Conflict on %s: taking remote version, local version replaced",
            path,
        )
        digest = await ops.download(path)
        return Resolution("remote", {path: digest})


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[str, type] = {
    "local-wins": LocalWinsResolver,
    "preserve-remote": PreserveRemoteResolver,
    "remote-wins": RemoteWinsResolver,
}


def create_resolver(
    strategy: str, conflict_suffix: str = ".remote"
) -> ConflictResolver:
    """Create a conflict resolver for the given strategy string.

    Args:
        strategy: One of ``"local-wins"``, ``"preserve-remote"``,
            ``"remote-wins"``.
        conflict_suffix: Copy suffix for ``"preserve-remote"``.

    Returns:
        A ``ConflictResolver`` implementation instance.

    Raises:
        ValueError: If the strategy string is not recognised.
    """
    cls = _STRATEGY_MAP.get(strategy)
    if cls is None:
        raise ValueError(
            f"Unknown conflict strategy: '{strategy}'. Valid strategies: {sorted(_STRATEGY_MAP.keys())}"
        )
    if cls is PreserveRemoteResolver:
        return PreserveRemoteResolver(conflict_suffix)
    return cls()  # type: ignore[return-value]
