"""Concrete adapter implementations.

Only the dependency-free in-memory adapter is re-exported here; import
``chroma_query_service`` and ``fastembed_provider`` directly so chromadb
and fastembed load only when used.
"""

from .in_memory_query_service import InMemoryQueryService

__all__ = [
    "InMemoryQueryService",
]
