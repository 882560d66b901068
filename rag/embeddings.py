"""
Embeddings - Embedding providers for the knowledge index.

The RAG engine only needs ``encode(texts) -> np.ndarray`` (one float32 row
per text) and ``dimension``. SentenceTransformerEmbedder loads the model
lazily so importing the package never downloads anything.
"""

import logging
from typing import List, Protocol, runtime_checkable

import numpy as np

# Multilingual model by default (English, Spanish and 50+ languages)
DEFAULT_EMBEDDING_MODEL = "paraphrase-multilingual-MiniLM-L12-v2"

logger = logging.getLogger(__name__)


@runtime_checkable
class Embedder(Protocol):
    dimension: int

    def encode(self, texts: List[str]) -> np.ndarray: ...


def normalize(vectors: np.ndarray) -> np.ndarray:
    """Normalizes rows so inner product equals cosine similarity."""
    vectors = np.asarray(vectors, dtype=np.float32)
    if vectors.ndim == 1:
        vectors = vectors.reshape(1, -1)
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0] = 1
    return (vectors / norms).astype(np.float32)


class SentenceTransformerEmbedder:
    """sentence-transformers backed embedder."""

    def __init__(self, model_name: str = DEFAULT_EMBEDDING_MODEL, batch_size: int = 32):
        self.model_name = model_name
        self.batch_size = batch_size
        self._model = None

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            logger.info(f"Loading embedding model: {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
            logger.info(
                f"Model loaded (dimension: {self._model.get_sentence_embedding_dimension()})"
            )
        return self._model

    @property
    def dimension(self) -> int:
        return int(self.model.get_sentence_embedding_dimension())

    def encode(self, texts: List[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, self.dimension), dtype=np.float32)
        embeddings = self.model.encode(
            texts,
            convert_to_numpy=True,
            batch_size=self.batch_size,
            show_progress_bar=False,
        )
        return np.asarray(embeddings, dtype=np.float32)
