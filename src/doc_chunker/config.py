"""Thresholds and options for extraction, OCR and splitting.

Every heuristic constant used by the pipeline lives here with its default so
that tests and callers can probe boundary behaviour by overriding one field.
``ChunkerOptions.from_env()`` reads ``DOC_CHUNKER_*`` environment variables.
"""

import os

from pydantic import BaseModel, Field

ENV_PREFIX = "DOC_CHUNKER_"


class ScanThresholds(BaseModel):
    """Limits for deciding that natively extracted text is unusable."""

    min_length: int = 100
    min_words: int = 20
    min_density: float = 0.30  # non-whitespace chars / total chars
    max_garbled_ratio: float = 0.10  # garbled matches / word count
    min_avg_line_length: float = 20
    max_avg_line_length: float = 200
    long_word_length: int = 20
    caps_run_length: int = 10
    symbol_run_length: int = 3


class GarbageThresholds(BaseModel):
    """Limits for rejecting OCR output as noise."""

    min_length: int = 10
    max_special_ratio: float = 0.15
    min_letter_ratio: float = 0.60
    max_punctuation_ratio: float = 0.20
    max_gibberish_ratio: float = 0.30
    gibberish_special_ratio: float = 0.20  # per word
    min_word_length: int = 3  # words shorter than this are not scored


class ArtifactThresholds(BaseModel):
    """Limits for trimming trailing OCR artifacts line by line."""

    min_consecutive_lines: int = 5
    min_line_length: int = 5
    max_special_ratio: float = 0.30
    min_letter_ratio: float = 0.40
    max_brackets: int = 3


class ImageQualityThresholds(BaseModel):
    """When a rasterized page is clean enough to skip preprocessing."""

    high_resolution_dpi: int = 300
    high_resolution_width: int = 2000
    min_entropy: float = 6.5
    min_stddev: float = 40


class LayoutSettings(BaseModel):
    line_tolerance: float = 5
    reading_order_tolerance: float = 10
    column_gap: float = 20
    header_band: float = 0.15
    footer_band: float = 0.85


class TableSettings(BaseModel):
    min_elements: int = 4
    row_tolerance: float = 5
    column_tolerance: float = 10
    column_gap: float = 10
    row_gap: float = 5
    min_consistency: float = 0.6
    min_rows: int = 2
    min_columns: int = 2
    min_confidence: float = 0.5
    min_aspect_ratio: float = 0.1
    max_aspect_ratio: float = 10


class OcrOptions(BaseModel):
    """OCR configuration. ``enable_ocr`` may be switched on by scan detection."""

    enable_ocr: bool = False
    language: str = "eng"
    image_preprocessing: bool = False
    dpi: int = 300
    max_pages: int = 20
    engine_mode: int = 1  # tesseract --oem, LSTM only
    page_segmentation_mode: int = 3  # tesseract --psm, fully automatic
    timeout_seconds: float = 120


class SplitterSettings(BaseModel):
    """Semantic splitting parameters."""

    sentence_chunk_size: int = 200
    sentence_chunk_overlap: int = 20
    markdown_buffer_size: int = 3
    plain_buffer_size: int = 1
    markdown_percentile: float = 75
    plain_percentile: float = 95
    min_chunk_size: int = 1000
    merge_similarity: float = 0.7
    merge_max_size: int = 2000
    max_section_size: int = 1500
    min_section_size: int = 50
    fallback_chunk_size: int = 2000
    fallback_chunk_overlap: int = 200


class XlsxLimits(BaseModel):
    max_rows_per_chunk: int = 50
    max_cols_per_chunk: int = 20
    max_content_size: int = 5000
    sample_rows: int = 5


class ChunkerOptions(BaseModel):
    """Options for one ``extract_and_chunk`` call."""

    ocr: OcrOptions = Field(default_factory=OcrOptions)
    scan: ScanThresholds = Field(default_factory=ScanThresholds)
    garbage: GarbageThresholds = Field(default_factory=GarbageThresholds)
    artifacts: ArtifactThresholds = Field(default_factory=ArtifactThresholds)
    image_quality: ImageQualityThresholds = Field(default_factory=ImageQualityThresholds)
    layout: LayoutSettings = Field(default_factory=LayoutSettings)
    tables: TableSettings = Field(default_factory=TableSettings)
    splitter: SplitterSettings = Field(default_factory=SplitterSettings)
    xlsx: XlsxLimits = Field(default_factory=XlsxLimits)
    embedding_timeout_seconds: float = 60
    fetch_timeout_seconds: float = 30

    @classmethod
    def from_env(cls) -> "ChunkerOptions":
        """Build options from ``DOC_CHUNKER_*`` environment variables.

        Recognised: ``OCR_ENABLED``, ``OCR_LANGUAGE``, ``OCR_PREPROCESSING``,
        ``OCR_DPI``, ``OCR_MAX_PAGES``, ``OCR_TIMEOUT``, ``EMBEDDING_TIMEOUT``
        and ``FETCH_TIMEOUT``. Unset variables keep their defaults.
        """
        ocr = OcrOptions()
        ocr_overrides = {
            "enable_ocr": _env_bool("OCR_ENABLED", ocr.enable_ocr),
            "language": os.getenv(ENV_PREFIX + "OCR_LANGUAGE", ocr.language),
            "image_preprocessing": _env_bool("OCR_PREPROCESSING", ocr.image_preprocessing),
            "dpi": int(os.getenv(ENV_PREFIX + "OCR_DPI", ocr.dpi)),
            "max_pages": int(os.getenv(ENV_PREFIX + "OCR_MAX_PAGES", ocr.max_pages)),
            "timeout_seconds": float(os.getenv(ENV_PREFIX + "OCR_TIMEOUT", ocr.timeout_seconds)),
        }
        defaults = cls()
        return cls(
            ocr=ocr.model_copy(update=ocr_overrides),
            embedding_timeout_seconds=float(
                os.getenv(ENV_PREFIX + "EMBEDDING_TIMEOUT", defaults.embedding_timeout_seconds)
            ),
            fetch_timeout_seconds=float(
                os.getenv(ENV_PREFIX + "FETCH_TIMEOUT", defaults.fetch_timeout_seconds)
            ),
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(ENV_PREFIX + name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")
