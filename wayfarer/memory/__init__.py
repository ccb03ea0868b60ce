from wayfarer.memory.slot_memory import ConsentState, SlotMemory, is_placeholder, merge_slots
from wayfarer.memory.store import InMemoryStore, SessionStore, SqlStore, create_store

__all__ = [
    "ConsentState",
    "SlotMemory",
    "SessionStore",
    "InMemoryStore",
    "SqlStore",
    "create_store",
    "is_placeholder",
    "merge_slots",
]
