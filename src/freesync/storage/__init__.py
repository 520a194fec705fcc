"""Remote blob store implementations."""

from .base import BlobStore
from .memory import InMemoryBlobStore
from .s3 import S3BlobStore, translate_client_error

__all__ = [
    "BlobStore",
    "InMemoryBlobStore",
    "S3BlobStore",
    "translate_client_error",
]
