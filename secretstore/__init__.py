"""
Persistence for the primary device: credentials, groups, and the blob store
they are saved in. The secondary device reuses the blob store for its
snapshot cache.
"""

from secretstore.blob_store import BlobStore, JSONFileBlobStore, MemoryBlobStore
from secretstore.credential_store import (
    ChangeKind,
    CredentialNotFound,
    CredentialStore,
    GroupNotFound,
    StoreChange,
)

__all__ = [
    "BlobStore",
    "ChangeKind",
    "CredentialNotFound",
    "CredentialStore",
    "GroupNotFound",
    "JSONFileBlobStore",
    "MemoryBlobStore",
    "StoreChange",
]
