"""Storage layer for engine persistence."""

from process_engine.storage.memory import InMemoryRepository
from process_engine.storage.repository import Repository

__all__ = ["Repository", "InMemoryRepository"]
