"""Chunking orchestrator: route a document by type, extract, then split."""

import csv
import io
import json
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

from langchain_text_splitters import (
    MarkdownTextSplitter,
    RecursiveCharacterTextSplitter,
    TokenTextSplitter,
)
from pydantic import BaseModel

from ..config import ChunkerOptions
from ..errors import UnsupportedFormatError
from ..logger import log_context, logger
from .docx_parser import DocxExtractor
from .embeddings import Embedder
from .fetch import fetch_bytes, is_url
from .models import Chunk, ChunkMetadata
from .ocr import OcrPipeline
from .pdf_parser import PdfExtractor, convert_to_markdown
from .pptx_parser import PptxExtractor
from .semantic_splitter import SemanticSplitter
from .xlsx_parser import XlsxExtractor

Source = bytes | str | Path

IMAGE_TYPES = {"png", "jpg", "jpeg", "gif", "bmp", "tif", "tiff", "webp"}
TEXT_TYPES = {"txt", "adoc"}
RECORD_TYPES = {"json", "jsonl", "csv"}
SUPPORTED_TYPES = {"pdf", "docx", "pptx", "xlsx", "md", *TEXT_TYPES, *RECORD_TYPES, *IMAGE_TYPES}

TYPE_ALIASES = {"presentation": "pptx", "spreadsheet": "xlsx", "markdown": "md", "text": "txt"}

MIME_TYPES = {
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": "pptx",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "text/markdown": "md",
    "text/x-markdown": "md",
    "text/plain": "txt",
    "text/asciidoc": "adoc",
    "application/json": "json",
    "application/jsonl": "jsonl",
    "application/x-ndjson": "jsonl",
    "text/csv": "csv",
}

# JSON pointers and CSV column holding the text of each record
JSON_TEXT_KEY = "texts"
JSONL_TEXT_KEY = "html"
CSV_TEXT_COLUMN = "text"


def resolve_file_type(file_type_or_mime: str) -> str:
    """Normalise an extension, file name or MIME type to a supported type.

    Raises:
        UnsupportedFormatError: If the type is not handled.
    """
    value = (file_type_or_mime or "").strip().lower()
    if "/" in value:
        mime = value.split(";", 1)[0].strip()
        if mime in MIME_TYPES:
            return MIME_TYPES[mime]
        if mime.startswith("image/") and mime.split("/", 1)[1] in IMAGE_TYPES:
            return mime.split("/", 1)[1]
        raise UnsupportedFormatError(file_type_or_mime)

    file_type = value.rsplit(".", 1)[-1]
    file_type = TYPE_ALIASES.get(file_type, file_type)
    if file_type not in SUPPORTED_TYPES:
        raise UnsupportedFormatError(file_type_or_mime)
    return file_type


def _source_name(source: Source) -> str | None:
    if isinstance(source, (bytes, bytearray)):
        return None
    if is_url(source):
        return PurePosixPath(urlparse(source).path).name or None
    return Path(source).name


def _describe(source: Source) -> str:
    if isinstance(source, (bytes, bytearray)):
        return f"<{len(source)} bytes>"
    return str(source)


def _read_bytes(source: Source) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return path.read_bytes()


def _decode(data: bytes) -> str:
    return data.decode("utf-8-sig", errors="replace")


def _record_text(value) -> str:
    return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)


def load_records(file_type: str, data: bytes) -> list[str]:
    """One text per record: JSON array items, JSONL lines or CSV rows.

    JSON documents are read from their ``texts`` key and JSONL lines from
    their ``html`` key; when the key is missing the whole value is used.
    CSV rows use the ``text`` column, else every column as ``name: value``.
    """
    text = _decode(data)
    if file_type == "json":
        document = json.loads(text)
        if isinstance(document, dict) and JSON_TEXT_KEY in document:
            document = document[JSON_TEXT_KEY]
        items = document if isinstance(document, list) else [document]
        return [_record_text(item) for item in items]

    if file_type == "jsonl":
        records = []
        for line in text.splitlines():
            if not line.strip():
                continue
            value = json.loads(line)
            if isinstance(value, dict) and JSONL_TEXT_KEY in value:
                value = value[JSONL_TEXT_KEY]
            records.append(_record_text(value))
        return records

    records = []
    for row in csv.DictReader(io.StringIO(text)):
        if CSV_TEXT_COLUMN in row:
            records.append(row[CSV_TEXT_COLUMN] or "")
        else:
            records.append("\n".join(f"{k}: {v}" for k, v in row.items() if k))
    return records


class ChunkingPipeline:
    """Routes documents to the matching extractor and splitter."""

    def __init__(
        self,
        options: ChunkerOptions | None = None,
        embedder: Embedder | None = None,
        pdf: PdfExtractor | None = None,
        ocr: OcrPipeline | None = None,
    ):
        """Initialize the pipeline.

        Args:
            options: Thresholds, OCR options and timeouts.
            embedder: Embedding provider for semantic splitting. Defaults to
                the OpenAI client, created on first use.
            pdf: PDF extractor, mainly for tests.
            ocr: OCR pipeline used for images and scanned PDFs.
        """
        self.options = options or ChunkerOptions()
        self.ocr = ocr or OcrPipeline(self.options)
        self.pdf = pdf or PdfExtractor(self.options, ocr=self.ocr)
        self.splitter = SemanticSplitter(
            embedder=embedder,
            settings=self.options.splitter,
            embedding_timeout_seconds=self.options.embedding_timeout_seconds,
        )
        self.docx = DocxExtractor()
        self.pptx = PptxExtractor()
        self.xlsx = XlsxExtractor(self.options.xlsx)

    def extract_and_chunk(
        self, file_type_or_mime: str, source: Source, file_name: str | None = None
    ) -> list[Chunk]:
        """Extract a document and split it into chunks.

        Args:
            file_type_or_mime: Extension ("pdf", ".docx"), file name or MIME type.
            source: Document bytes, a local path, or an http(s) URL.
            file_name: Name used for the markdown title when ``source`` is bytes.

        Returns:
            Non-empty chunks in document order.

        Raises:
            UnsupportedFormatError: If the type has no extractor.
            ExtractionFailedError: If every PDF extraction stage raised.
            CollaboratorUnavailableError: If a URL could not be fetched.
        """
        file_type = resolve_file_type(file_type_or_mime)
        name = file_name or _source_name(source)

        with log_context(file_type=file_type, source=_describe(source)):
            start = time.perf_counter()
            if is_url(source):
                source = fetch_bytes(source, timeout=self.options.fetch_timeout_seconds)

            chunks = self._route(file_type, source, name)
            chunks = [
                c.model_copy(update={"metadata": c.metadata.model_copy(update={"source_type": file_type})})
                for c in chunks
                if c.text.strip()
            ]

            logger.info(
                "document chunked",
                chunks=len(chunks),
                split_methods=sorted({c.metadata.split_method for c in chunks}),
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            return chunks

    def _route(self, file_type: str, source: Source, name: str | None) -> list[Chunk]:
        if file_type == "pdf":
            return self.chunk_pdf(source)
        if file_type == "docx":
            return self.chunk_docx(source)
        if file_type == "pptx":
            return self.chunk_pptx(source)
        if file_type == "xlsx":
            return self.chunk_xlsx(source)
        if file_type == "md":
            title = name.rsplit(".", 1)[0] if name and name.lower().endswith(".md") else name
            return self.chunk_markdown(_decode(_read_bytes(source)), title)
        if file_type in TEXT_TYPES:
            return self.splitter.split_plain_text(_decode(_read_bytes(source)))
        if file_type in RECORD_TYPES:
            return self.chunk_records(file_type, _read_bytes(source))
        return self.chunk_image(source)

    def chunk_markdown(
        self,
        markdown: str,
        title: str | None = None,
        fallback: RecursiveCharacterTextSplitter | None = None,
    ) -> list[Chunk]:
        """Semantic markdown split, or a plain character split when it yields nothing."""
        if not markdown.strip():
            return []
        try:
            chunks = self.splitter.split_markdown(markdown, title)
        except Exception as e:
            logger.error("semantic markdown splitting failed", stage="split", error=str(e))
            chunks = []
        if chunks:
            return chunks

        splitter = fallback or MarkdownTextSplitter(chunk_size=1500, chunk_overlap=200)
        logger.warn("using fallback splitter", stage="split", splitter=type(splitter).__name__)
        return _plain_chunks(splitter.split_text(markdown), "markdown_fallback")

    def chunk_pdf(self, source: Source) -> list[Chunk]:
        data = source if isinstance(source, (bytes, bytearray)) else _read_bytes(source)
        blocks = self.pdf.extract(data)
        return self.chunk_markdown(convert_to_markdown(blocks))

    def chunk_docx(self, source: Source) -> list[Chunk]:
        data = _read_bytes(source)
        try:
            markdown = self.docx.convert_to_markdown(data)
        except Exception as e:
            logger.warn("docx markdown conversion failed", stage="docx_markdown", error=str(e))
            markdown = ""
        if markdown.strip():
            return self.chunk_markdown(markdown)

        logger.info("docx has no markdown content, splitting plain text", stage="docx_text")
        splitter = RecursiveCharacterTextSplitter(chunk_size=500, chunk_overlap=20)
        return _plain_chunks(splitter.split_text(self.docx.plain_text(data)), "character_fallback")

    def chunk_pptx(self, source: Source) -> list[Chunk]:
        text = self.pptx.extract_text(_read_bytes(source))
        try:
            markdown = self.pptx.convert_to_markdown(text)
        except Exception as e:
            logger.warn("pptx markdown conversion failed", stage="pptx_markdown", error=str(e))
            markdown = ""
        if markdown.strip():
            return self.chunk_markdown(markdown)

        splitter = RecursiveCharacterTextSplitter(chunk_size=800, chunk_overlap=100)
        return _plain_chunks(splitter.split_text(text), "character_fallback")

    def chunk_xlsx(self, source: Source) -> list[Chunk]:
        """One chunk per rendered sheet table, numbered across the workbook."""
        sheets = self.xlsx.read_worksheets(_read_bytes(source))
        try:
            tables = [c.markdown for sheet in sheets for c in self.xlsx.chunk_worksheet(sheet)]
        except Exception as e:
            logger.warn("xlsx table rendering failed", stage="xlsx_markdown", error=str(e))
            text = "\n\n".join(
                "\n".join(" | ".join(row) for row in sheet.rows) for sheet in sheets
            )
            splitter = RecursiveCharacterTextSplitter(chunk_size=1000, chunk_overlap=100)
            return _plain_chunks(splitter.split_text(text), "character_fallback")

        return [
            Chunk(
                text=table,
                metadata=ChunkMetadata(
                    source_type="xlsx",
                    split_method="sheet_table",
                    chunk_index=index,
                    total_chunks=len(tables),
                ),
            )
            for index, table in enumerate(tables)
        ]

    def chunk_records(self, file_type: str, data: bytes) -> list[Chunk]:
        splitter = TokenTextSplitter(encoding_name="cl100k_base", chunk_size=1000, chunk_overlap=200)
        pieces = []
        for record in load_records(file_type, data):
            if record.strip():
                pieces.extend(splitter.split_text(record))
        return _plain_chunks(pieces, "token")

    def chunk_image(self, source: Source) -> list[Chunk]:
        """OCR the image and split the recognised text semantically."""
        text = self.ocr.ocr_image(_read_bytes(source))
        if not text.strip():
            logger.warn("image produced no text", stage="ocr")
            return []
        return self.splitter.split_plain_text(text)

    def chunk_batch(
        self, items: list[tuple[str, Source]], max_workers: int = 4
    ) -> list["BatchResult"]:
        """Chunk several documents concurrently.

        Args:
            items: (file type or MIME type, source) pairs.
            max_workers: Size of the worker pool.

        Returns:
            One BatchResult per item, in input order. A failing document
            records its error and does not affect the others.
        """
        total = len(items)
        logger.info("starting batch chunking", total_files=total, max_workers=max_workers)
        start = time.perf_counter()

        def run(item: tuple[str, Source]) -> BatchResult:
            file_type, source = item
            try:
                return BatchResult(
                    source=_describe(source), chunks=self.extract_and_chunk(file_type, source)
                )
            except Exception as e:
                logger.error(
                    "failed to chunk document",
                    file_type=file_type,
                    source=_describe(source),
                    error=str(e),
                )
                return BatchResult(source=_describe(source), error=str(e))

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            results = list(pool.map(run, items))

        logger.info(
            "batch chunking complete",
            total_files=total,
            failed=sum(1 for r in results if r.error),
            chunks=sum(len(r.chunks) for r in results),
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return results


class BatchResult(BaseModel):
    """Outcome of one document in a batch."""

    source: str
    chunks: list[Chunk] = []
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


def _plain_chunks(pieces: list[str], split_method: str) -> list[Chunk]:
    return [
        Chunk(text=p, metadata=ChunkMetadata(source_type="", split_method=split_method))
        for p in pieces
        if p.strip()
    ]


def extract_and_chunk(
    file_type_or_mime: str,
    source: Source,
    options: ChunkerOptions | None = None,
    embedder: Embedder | None = None,
    file_name: str | None = None,
) -> list[Chunk]:
    """Extract and chunk one document with a fresh pipeline."""
    return ChunkingPipeline(options, embedder).extract_and_chunk(file_type_or_mime, source, file_name)
