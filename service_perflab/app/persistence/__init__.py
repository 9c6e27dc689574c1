"""
Persistence stand-in for the PerfLab service.
"""

from .memory_store import InMemoryDatabase

__all__ = ["InMemoryDatabase"]
