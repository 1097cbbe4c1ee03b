"""
Storage layer for the gemini crawler.
"""

from .checkpoint import CheckpointStore, PersistenceError

__all__ = ['CheckpointStore', 'PersistenceError']
