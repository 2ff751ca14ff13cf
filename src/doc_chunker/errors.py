"""Exception types raised by the chunking pipeline."""


class ChunkerError(Exception):
    """Base class for all pipeline errors."""


class UnsupportedFormatError(ChunkerError, ValueError):
    """The file type or MIME type has no registered extractor."""

    def __init__(self, file_type: str):
        super().__init__(f"Unsupported file type: {file_type!r}")
        self.file_type = file_type


class ExtractionStageError(ChunkerError):
    """A single extraction stage failed; the next stage takes over."""

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage}: {message}")
        self.stage = stage


class QualityRejectedError(ChunkerError):
    """Extracted or recognised text failed a quality gate."""

    def __init__(self, check: str, message: str = ""):
        super().__init__(message or f"quality check failed: {check}")
        self.check = check


class CollaboratorUnavailableError(ChunkerError):
    """An external collaborator (OCR engine, embedding provider, fetch) is missing or failing."""

    def __init__(self, collaborator: str, message: str):
        super().__init__(f"{collaborator} unavailable: {message}")
        self.collaborator = collaborator


class ExtractionFailedError(ChunkerError):
    """Every extraction stage raised; no partial output could be produced."""

    def __init__(self, source: str, stage_errors: dict[str, str]):
        details = "; ".join(f"{stage}: {err}" for stage, err in stage_errors.items())
        super().__init__(f"All extraction stages failed for {source}: {details}")
        self.source = source
        self.stage_errors = stage_errors
