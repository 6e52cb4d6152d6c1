"""Document store layer.

The store is the only source of truth for members, rooms, devices, presence,
the privilege singleton and the panic singleton.  Components never keep their
own copy of durable state; they read, then write through compare-and-set or
atomic batches, and react to the store's change feed.
"""

from homegate.store.base import Document, DocumentStore, OpKind, Subscription, WriteOp
from homegate.store.events import ChangeEvent, ChangeKind
from homegate.store.memory import InMemoryDocumentStore

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "Document",
    "DocumentStore",
    "InMemoryDocumentStore",
    "OpKind",
    "Subscription",
    "WriteOp",
]
