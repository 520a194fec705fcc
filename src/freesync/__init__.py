"""FreeSync: converge a local file tree and a remote blob store by content hash."""

__version__ = "0.1.0"
