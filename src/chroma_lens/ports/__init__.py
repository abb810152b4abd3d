"""Port interfaces (Protocols).

Services depend only on these, never on concrete adapters.
No chromadb, fastembed, or other infrastructure imports allowed here.
"""

from .embedding import EmbeddingProvider
from .id_gen import FilterIdProvider, SequentialFilterIdProvider, UuidFilterIdProvider
from .query_service import CollectionQueryService, PageResponse, SearchResponse

__all__ = [
    "CollectionQueryService",
    "EmbeddingProvider",
    "FilterIdProvider",
    "PageResponse",
    "SearchResponse",
    "SequentialFilterIdProvider",
    "UuidFilterIdProvider",
]
