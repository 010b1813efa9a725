"""Models exposed by the sync engine."""
from .operation import EntityType, OperationKind, OperationState, QueuedOperation
from .kv_entry import KeyValueEntry

__all__ = ["EntityType", "KeyValueEntry", "OperationKind", "OperationState", "QueuedOperation"]
