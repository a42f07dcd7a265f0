"""
The store module provides the resource store that tfout reconciles against.

- Uses NamedResource as the key for all objects.
- Stores values as dataclass instances from manifest.py for type safety.
- Tracks a resourceVersion per object so concurrent writers are detected.

This abstract interface allows for various implementations (in-memory, a real
API server client, etc.).
"""

from .store import Store, StoreEvent
from .in_memory import InMemoryStore
from .retry import update_with_retry
from .status import set_condition, get_condition, READY_CONDITION

__all__ = [
    "Store",
    "StoreEvent",
    "InMemoryStore",
    "update_with_retry",
    "set_condition",
    "get_condition",
    "READY_CONDITION",
]
