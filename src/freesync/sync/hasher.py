"""Content hashing.

Digests are SHA-256 over the raw bytes, hex-encoded.  Unlike text
normalising hashes, no line-ending or BOM canonicalisation happens here:
files are synced byte for byte, so two files are "unchanged" only when
their bytes are identical.
"""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING

from ..errors import HashError

if TYPE_CHECKING:
    from ..core.async_utils import ConcurrencyLimiter
    from ..tree import FileTree

logger = logging.getLogger(__name__)


class ContentHasher:
    """Deterministic digest of byte content."""

    algorithm = "sha256"

    def hash(self, data: bytes) -> str:
        """Return the hex digest of *data*."""
        return hashlib.new(self.algorithm, data).hexdigest()

    def read_and_hash(self, tree: FileTree, path: str) -> tuple[bytes, str]:
        """Read *path* completely, then digest it.

        Raises:
            HashError: If the read fails.  No digest is ever produced from
                a partial read because the content is read in one call.
        """
        try:
            data = tree.read(path)
        except (OSError, ValueError) as exc:
            raise HashError(path, exc) from exc
        return data, self.hash(data)

    async def hash_path(
        self,
        tree: FileTree,
        path: str,
        limiter: ConcurrencyLimiter,
    ) -> str:
        """Digest the file at *path* on a worker thread."""
        _, digest = await limiter.run_sync(self.read_and_hash, tree, path)
        return digest
