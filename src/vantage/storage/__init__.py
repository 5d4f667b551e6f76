"""
Persistence package.

- documents: SQLite document store for durable owners
- blobs: file-backed single-key blob store for the local device
- sessions: SessionStore and its durable/local backends
- users: user profiles and preferences
"""

from vantage.storage.blobs import LocalBlobStore
from vantage.storage.documents import SQLiteDocumentStore
from vantage.storage.sessions import (
    DurableSessionBackend,
    LocalSessionBackend,
    SessionStore,
    sanitize_document,
)
from vantage.storage.users import UserDirectory

__all__ = [
    "DurableSessionBackend",
    "LocalBlobStore",
    "LocalSessionBackend",
    "SQLiteDocumentStore",
    "SessionStore",
    "UserDirectory",
    "sanitize_document",
]
