"""Command line entry point: chunk one document and print the chunks as JSON.

Usage:
    python -m doc_chunker <file_or_url> [--type T] [--ocr] [--language L]
"""

import argparse
import json
import sys
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

from .chunker import extract_and_chunk
from .config import ChunkerOptions
from .errors import ChunkerError, UnsupportedFormatError


def _guess_type(source: str) -> str:
    path = urlparse(source).path if source.startswith(("http://", "https://")) else source
    return PurePosixPath(path).suffix.lstrip(".")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Split a document into semantic chunks")
    parser.add_argument("source", help="Path or http(s) URL of the document")
    parser.add_argument(
        "--type",
        dest="file_type",
        default=None,
        help="File extension or MIME type (default: taken from the source name)",
    )
    parser.add_argument("--ocr", action="store_true", help="Enable OCR for PDFs")
    parser.add_argument("--language", default=None, help="Tesseract language code (default: eng)")
    parser.add_argument("--preprocess", action="store_true", help="Preprocess images before OCR")
    args = parser.parse_args(argv)

    options = ChunkerOptions.from_env()
    ocr_updates = {}
    if args.ocr:
        ocr_updates["enable_ocr"] = True
    if args.language:
        ocr_updates["language"] = args.language
    if args.preprocess:
        ocr_updates["image_preprocessing"] = True
    if ocr_updates:
        options = options.model_copy(update={"ocr": options.ocr.model_copy(update=ocr_updates)})

    file_type = args.file_type or _guess_type(args.source)
    if not file_type:
        print(f"Error: cannot tell the file type of {args.source}; pass --type", file=sys.stderr)
        return 2

    if not args.source.startswith(("http://", "https://")) and not Path(args.source).exists():
        print(f"Error: File not found: {args.source}", file=sys.stderr)
        return 1

    try:
        chunks = extract_and_chunk(file_type, args.source, options=options)
    except UnsupportedFormatError as e:
        print(f"Error: {e}; pass --type", file=sys.stderr)
        return 2
    except (ChunkerError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    json.dump([chunk.model_dump() for chunk in chunks], sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
