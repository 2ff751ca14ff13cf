"""Shared test doubles."""

import re
import zlib

import pytest

DIMENSIONS = 64


class FakeEmbedder:
    """Deterministic bag-of-words embeddings; texts sharing words point the same way."""

    def __init__(self):
        self.calls: list[list[str]] = []

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self._vector(t) for t in texts]

    def generate_embedding(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    @staticmethod
    def _vector(text: str) -> list[float]:
        vector = [0.0] * DIMENSIONS
        for word in re.findall(r"[a-z]+", text.lower()):
            vector[zlib.crc32(word.encode()) % DIMENSIONS] += 1.0
        return vector


class FailingEmbedder:
    """Embedding provider that is always down."""

    def __init__(self, error: Exception | None = None):
        self.error = error or RuntimeError("embedding provider unavailable")

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        raise self.error

    def generate_embedding(self, text: str) -> list[float]:
        raise self.error


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def failing_embedder() -> FailingEmbedder:
    return FailingEmbedder()
