"""OpenAI embeddings for the semantic splitter.

Texts are grouped into requests under a token limit counted with tiktoken.
Throttled (429) and server-side (5xx) failures are retried with exponential
backoff; a batch that still fails is reported per text instead of aborting
the remaining batches.
"""

import os
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterator, Protocol

import tiktoken
from openai import APIStatusError, OpenAI, RateLimitError

from ..errors import CollaboratorUnavailableError
from ..logger import logger

MODEL = "text-embedding-3-small"
MAX_TOKENS_PER_BATCH = 100_000
MAX_ATTEMPTS = 3
BACKOFF_BASE_SECONDS = 1
DEFAULT_TIMEOUT_SECONDS = 60


@lru_cache(maxsize=1)
def _encoding() -> tiktoken.Encoding:
    return tiktoken.get_encoding("cl100k_base")


def count_tokens(text: str) -> int:
    """Exact token count with the cl100k_base encoding used by the embedding models."""
    if not text:
        return 0
    return len(_encoding().encode(text))


def token_batches(texts: list[str], limit: int) -> Iterator[list[int]]:
    """Yield index groups whose token total stays within ``limit``.

    A text that alone reaches the limit is sent on its own.
    """
    pending: list[int] = []
    pending_tokens = 0
    for i, text in enumerate(texts):
        tokens = count_tokens(text)
        if pending and pending_tokens + tokens > limit:
            yield pending
            pending, pending_tokens = [], 0
        pending.append(i)
        pending_tokens += tokens
        if pending_tokens >= limit:
            yield pending
            pending, pending_tokens = [], 0
    if pending:
        yield pending


def _retryable(error: APIStatusError) -> bool:
    return isinstance(error, RateLimitError) or error.status_code >= 500


class Embedder(Protocol):
    """What the semantic splitter needs from an embedding provider."""

    def embed_batch(self, texts: list[str]) -> list[list[float]]: ...

    def generate_embedding(self, text: str) -> list[float]: ...


@dataclass
class EmbeddingResult:
    """Vectors in input order, ``None`` where a text could not be embedded."""

    vectors: list[list[float] | None] = field(default_factory=list)
    errors: dict[int, str] = field(default_factory=dict)

    @property
    def failed_indices(self) -> list[int]:
        return sorted(self.errors)

    @property
    def complete(self) -> bool:
        return not self.errors


class EmbeddingClient:
    """Embedding provider backed by the OpenAI API."""

    def __init__(
        self,
        api_key: str | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        model: str = MODEL,
    ):
        """Create the OpenAI client.

        Args:
            api_key: Falls back to the OPENAI_API_KEY environment variable.
            timeout_seconds: Per-request timeout.
            model: Embedding model name.

        Raises:
            CollaboratorUnavailableError: If no API key is configured.
        """
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise CollaboratorUnavailableError(
                "embeddings", "OpenAI API key required: pass api_key or set OPENAI_API_KEY"
            )
        self.model = model
        self._client = OpenAI(api_key=api_key, timeout=timeout_seconds)

    def generate_embedding(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """All-or-nothing embedding used by the splitter.

        Raises:
            CollaboratorUnavailableError: If any text could not be embedded.
        """
        result = self.generate_embeddings(texts)
        if not result.complete:
            failed = result.failed_indices
            raise CollaboratorUnavailableError(
                "embeddings",
                f"{len(failed)} of {len(texts)} texts failed: {result.errors[failed[0]]}",
            )
        return result.vectors

    def generate_embeddings(self, texts: list[str]) -> EmbeddingResult:
        """Embed ``texts`` batch by batch, keeping whatever succeeds."""
        result = EmbeddingResult(vectors=[None] * len(texts))
        batches = list(token_batches(texts, MAX_TOKENS_PER_BATCH))

        for n, indices in enumerate(batches, start=1):
            label = f"{n}/{len(batches)}"
            try:
                vectors = self._request([texts[i] for i in indices], label)
            except Exception as e:
                logger.error("embedding batch failed", batch=label, texts=len(indices), error=str(e))
                result.errors.update((i, str(e)) for i in indices)
                continue
            for i, vector in zip(indices, vectors):
                result.vectors[i] = vector

        return result

    def _request(self, batch: list[str], label: str) -> list[list[float]]:
        attempt = 1
        while True:
            started = time.perf_counter()
            try:
                response = self._client.embeddings.create(model=self.model, input=batch)
                break
            except APIStatusError as e:
                if not _retryable(e) or attempt >= MAX_ATTEMPTS:
                    raise
                delay = BACKOFF_BASE_SECONDS * 2 ** (attempt - 1)
                logger.warn(
                    "embedding request failed, backing off",
                    batch=label,
                    attempt=attempt,
                    status_code=e.status_code,
                    delay_seconds=delay,
                )
                time.sleep(delay)
                attempt += 1

        vectors: list[list[float]] = [[] for _ in batch]
        for item in response.data:
            vectors[item.index] = item.embedding
        logger.info(
            "embedding batch done",
            batch=label,
            texts=len(batch),
            model=self.model,
            attempts=attempt,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return vectors
