"""Services: records, catalog, result adaptation and the query orchestrator."""

from .metadata_catalog import MetadataFieldCatalog
from .query_orchestrator import QueryOrchestrator
from .records_service import BrowsePage, RecordsService
from .result_adapter import ResultAdapter, SearchResults

__all__ = [
    "BrowsePage",
    "MetadataFieldCatalog",
    "QueryOrchestrator",
    "RecordsService",
    "ResultAdapter",
    "SearchResults",
]
