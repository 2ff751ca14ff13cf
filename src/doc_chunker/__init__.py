from .chunker import (
    Chunk,
    ChunkingPipeline,
    ChunkMetadata,
    extract_and_chunk,
    split_markdown,
    split_plain_text,
)
from .config import ChunkerOptions

__all__ = [
    "Chunk",
    "ChunkMetadata",
    "ChunkerOptions",
    "ChunkingPipeline",
    "extract_and_chunk",
    "split_markdown",
    "split_plain_text",
]
