"""MetadataFieldCatalog: infer metadata fields by sampling a collection."""

from __future__ import annotations

from typing import Any

from ..domain.records import (
    MetadataField,
    ValueKind,
    canonical_value,
    normalize_metadata_value,
    value_kind,
)
from ..ports.query_service import CollectionQueryService

TYPE_SEPARATOR = " | "


class MetadataFieldCatalog:
    """Samples record metadata and reports field names, type tags and examples.

    The result is advisory: it only reflects the sampled records.
    """

    def __init__(
        self,
        query_service: CollectionQueryService,
        sample_size: int = 100,
        max_sample_values: int = 5,
        logger: Any = None,
    ) -> None:
        self._query = query_service
        self._sample_size = sample_size
        self._max_values = max_sample_values
        self._logger = logger

    async def refresh(self, collection: str) -> list[MetadataField]:
        samples = await self._query.sample_metadata(collection, self._sample_size)
        fields = self.infer(samples)
        if self._logger:
            self._logger.info(
                "catalog_refreshed",
                extra={"collection": collection, "samples": len(samples), "fields": len(fields)},
            )
        return fields

    def infer(self, samples: list[dict[str, Any] | None]) -> list[MetadataField]:
        """Pure inference over already fetched metadata samples."""
        present = [normalize_metadata_value(s) for s in samples if s]
        present = [s for s in present if isinstance(s, dict)]

        names: list[str] = []
        for sample in present:
            for key in sample:
                if key not in names:
                    names.append(key)

        fields = [self._describe(name, present) for name in names]
        return sorted(fields, key=lambda f: f.name)

    def _describe(self, name: str, samples: list[dict[str, Any]]) -> MetadataField:
        tags: list[str] = []
        values: list[Any] = []
        seen: set[Any] = set()

        for sample in samples:
            if name not in sample:
                tag = ValueKind.absent.value
            else:
                value = sample[name]
                tag = value_kind(value).value
                key = canonical_value(value)
                if key not in seen and len(values) < self._max_values:
                    seen.add(key)
                    values.append(value)
            if tag not in tags:
                tags.append(tag)

        return MetadataField(name=name, type=TYPE_SEPARATOR.join(tags), sample_values=values)
