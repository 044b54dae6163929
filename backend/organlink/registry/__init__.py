from .base import Registry
from .memory import InMemoryRegistry
from .mongo import MongoRegistry

__all__ = ["Registry", "InMemoryRegistry", "MongoRegistry"]
