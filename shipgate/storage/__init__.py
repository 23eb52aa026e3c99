"""Persisted document storage for shipgate."""

from .document_store import DocumentStore, FilesystemDocumentStore, InMemoryDocumentStore

__all__ = [
    "DocumentStore",
    "FilesystemDocumentStore",
    "InMemoryDocumentStore",
]
