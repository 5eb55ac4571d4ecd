"""Store contracts and their implementations."""

from fleetsync.stores.base import (
    BlobDeleteStatus,
    BlobStore,
    IdentityProvider,
    RelationalStore,
    StaticIdentity,
    raise_for_store_code,
)
from fleetsync.stores.memory import MemoryBlobStore, MemoryRelationalStore
from fleetsync.stores.rest import PostgrestStore, StorageBucket

__all__ = [
    "BlobDeleteStatus",
    "BlobStore",
    "IdentityProvider",
    "MemoryBlobStore",
    "MemoryRelationalStore",
    "PostgrestStore",
    "RelationalStore",
    "StaticIdentity",
    "StorageBucket",
    "raise_for_store_code",
]
