"""
Checkpoint storage for multi-turn sessions.

Stores:
- InMemoryCheckpointStore: process-local, deep-copied states
- FileCheckpointStore: one JSON file per session
"""

from .checkpoint import BaseCheckpointStore, FileCheckpointStore, InMemoryCheckpointStore

__all__ = ["BaseCheckpointStore", "InMemoryCheckpointStore", "FileCheckpointStore"]
