from .chunking import ChunkingPipeline, extract_and_chunk
from .models import Chunk, ChunkMetadata
from .semantic_splitter import SemanticSplitter, split_markdown, split_plain_text

__all__ = [
    "Chunk",
    "ChunkMetadata",
    "ChunkingPipeline",
    "SemanticSplitter",
    "extract_and_chunk",
    "split_markdown",
    "split_plain_text",
]
