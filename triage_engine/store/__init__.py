from .memory import MemoryStore, NotFoundError

__all__ = ["MemoryStore", "NotFoundError"]
