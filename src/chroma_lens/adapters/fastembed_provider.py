"""Adapter: FastEmbed-based EmbeddingProvider."""

from __future__ import annotations

from fastembed import TextEmbedding


class FastEmbedProvider:
    """Implements ``EmbeddingProvider`` using local FastEmbed models.

    The model is loaded on first use; loading downloads weights, so callers
    on an event loop should embed through ``asyncio.to_thread``.
    """

    def __init__(self, model_id: str = "BAAI/bge-small-en-v1.5") -> None:
        self._model_id = model_id
        self._model: TextEmbedding | None = None

    @property
    def model_id(self) -> str:
        return self._model_id

    def _get_model(self) -> TextEmbedding:
        if self._model is None:
            self._model = TextEmbedding(model_name=self._model_id)
        return self._model

    def embed(self, text: str) -> list[float]:
        model = self._get_model()
        embedding = next(iter(model.embed([text])))
        return embedding.tolist()
