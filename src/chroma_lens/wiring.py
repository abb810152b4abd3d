"""Composition root: the single place where adapters meet services.

Call ``build_records_service()`` or ``build_orchestrator()`` to get a
fully constructed object backed by ChromaDB. No ad-hoc construction
elsewhere.
"""

from __future__ import annotations

from .config.runtime import EmbeddingBackend, RuntimeSettings, get_settings
from .domain.filter_compiler import FilterCompiler
from .observability import get_logger
from .ports.embedding import EmbeddingProvider
from .ports.query_service import CollectionQueryService
from .services.metadata_catalog import MetadataFieldCatalog
from .services.query_orchestrator import QueryOrchestrator
from .services.records_service import RecordsService


def build_embedding_provider(settings: RuntimeSettings | None = None) -> EmbeddingProvider | None:
    """Return the configured provider, or None to let Chroma embed query text."""
    settings = settings or get_settings()
    if settings.embedding_provider == EmbeddingBackend.fastembed:
        from .adapters.fastembed_provider import FastEmbedProvider

        return FastEmbedProvider(model_id=settings.embedding_model_id)
    return None


def build_query_service(settings: RuntimeSettings | None = None) -> CollectionQueryService:
    """Construct the ChromaDB-backed query service."""
    from .adapters.chroma_query_service import ChromaQueryService

    settings = settings or get_settings()
    return ChromaQueryService(settings, embedding_provider=build_embedding_provider(settings))


def build_records_service(
    settings: RuntimeSettings | None = None,
    query_service: CollectionQueryService | None = None,
) -> RecordsService:
    settings = settings or get_settings()
    return RecordsService(
        query_service=query_service or build_query_service(settings),
        logger=get_logger(),
    )


def build_orchestrator(
    settings: RuntimeSettings | None = None,
    query_service: CollectionQueryService | None = None,
) -> QueryOrchestrator:
    """Construct a QueryOrchestrator; ``query_service`` overrides the Chroma adapter."""
    settings = settings or get_settings()
    query_service = query_service or build_query_service(settings)
    return QueryOrchestrator(
        build_records_service(settings, query_service),
        MetadataFieldCatalog(
            query_service,
            sample_size=settings.metadata_sample_size,
            max_sample_values=settings.metadata_sample_values,
            logger=get_logger(),
        ),
        settings=settings,
        compiler=FilterCompiler(),
        logger=get_logger(),
    )
