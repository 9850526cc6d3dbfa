"""DocumentStore implementations."""

from billing_kernel.services.document_store import SqlAlchemyDocumentStore
from billing_kernel.services.memory_store import InMemoryDocumentStore

__all__ = ["InMemoryDocumentStore", "SqlAlchemyDocumentStore"]
