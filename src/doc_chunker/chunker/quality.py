"""Quality gates deciding whether extracted or recognised text can be trusted.

Both classifiers are pure functions of the text. Each check they evaluate is
logged with its measured value, threshold and verdict so a quality
regression can be diagnosed without the source document.
"""

import re

from ..config import ArtifactThresholds, GarbageThresholds, ScanThresholds
from ..logger import logger

SPECIAL_CHARS = re.compile(r"[§|{}\[\]\\<>«»°^~`]")
PUNCTUATION = re.compile(r"[!?.,;:]")
LETTERS = re.compile(r"[a-zA-ZÀ-ÿ]")
WORD_SPECIAL_CHARS = re.compile(r"[§|{}\[\]\\<>«»°^~`!@#$%&*]")
MIXED_CASE = re.compile(r"[a-z][A-Z]")
LETTER_DIGIT_MIX = re.compile(r"[a-zA-Z]\d|\d[a-zA-Z]")
BRACKETS = re.compile(r"[{}\[\]()]")
LINE_SPECIAL_CHARS = re.compile(r"""[!@#$%^&*()_+=\[\]{};':"\\|<>?~`§°]""")
LINE_LETTERS = re.compile(r"[a-zA-ZÀ-ſ]")

REPEATED_SYMBOL_PATTERNS = {
    "§§§": re.compile(r"§{3,}"),
    "|||": re.compile(r"\|{3,}"),
    "{{{/[[[": re.compile(r"[{}\[\]]{3,}"),
    "!!!": re.compile(r"!{3,}"),
    "'''''": re.compile(r"'{5,}"),
}


def _garbled_patterns(t: ScanThresholds) -> list[re.Pattern]:
    return [
        re.compile(r"[^\w\s.,!?;:\-()]{%d,}" % t.symbol_run_length),
        re.compile(r"\w{%d,}" % t.long_word_length),
        re.compile(r"[A-Z]{%d,}" % t.caps_run_length),
    ]


def _check(gate: str, check: str, value: float, threshold: str, failed: bool) -> bool:
    fields = dict(
        gate=gate,
        check=check,
        value=round(value, 4) if isinstance(value, float) else value,
        threshold=threshold,
        verdict="fail" if failed else "pass",
    )
    if failed:
        logger.info("quality check failed", **fields)
    else:
        logger.debug("quality check passed", **fields)
    return failed


def is_scanned(text: str | None, thresholds: ScanThresholds | None = None,
               garbage_thresholds: GarbageThresholds | None = None) -> bool:
    """Decide whether natively extracted text is too poor to use without OCR.

    Args:
        text: Text extracted from the document's text layer.
        thresholds: Scan detection limits; defaults apply when omitted.
        garbage_thresholds: Limits for the final garbage-output check.

    Returns:
        True when any check fires: too short, too few words, low density,
        many garbled patterns, abnormal line length, or garbage output.
    """
    t = thresholds or ScanThresholds()
    gate = "is_scanned"
    text = (text or "").strip()

    if _check(gate, "min_length", len(text), f">= {t.min_length}", len(text) < t.min_length):
        return True

    words = text.split()
    if _check(gate, "min_words", len(words), f">= {t.min_words}", len(words) < t.min_words):
        return True

    density = len(re.sub(r"\s+", "", text)) / len(text)
    if _check(gate, "density", density, f">= {t.min_density}", density < t.min_density):
        return True

    garbled = sum(len(p.findall(text)) for p in _garbled_patterns(t))
    garbled_ratio = garbled / len(words)
    if _check(gate, "garbled_ratio", garbled_ratio, f"<= {t.max_garbled_ratio}",
              garbled_ratio > t.max_garbled_ratio):
        return True

    lines = [line.strip() for line in text.split("\n") if line.strip()]
    avg_line = sum(len(line) for line in lines) / len(lines)
    if _check(gate, "avg_line_length", avg_line,
              f"[{t.min_avg_line_length}, {t.max_avg_line_length}]",
              not t.min_avg_line_length <= avg_line <= t.max_avg_line_length):
        return True

    if _check(gate, "garbage_output", 1.0, "not garbage",
              is_garbage_ocr_output(text, garbage_thresholds)):
        return True

    return False


def is_garbage_ocr_output(text: str | None, thresholds: GarbageThresholds | None = None) -> bool:
    """Decide whether recognised text is noise rather than content.

    Args:
        text: OCR output (or any text) to classify.
        thresholds: Garbage detection limits; defaults apply when omitted.

    Returns:
        True when the text is too short, dominated by special characters,
        short on letters, over-punctuated, contains a repeated-symbol run,
        or has too many gibberish words.
    """
    t = thresholds or GarbageThresholds()
    gate = "is_garbage_ocr_output"
    text = (text or "").strip()

    if _check(gate, "min_length", len(text), f">= {t.min_length}", len(text) < t.min_length):
        return True

    total = len(text)
    special_ratio = len(SPECIAL_CHARS.findall(text)) / total
    if _check(gate, "special_ratio", special_ratio, f"<= {t.max_special_ratio}",
              special_ratio > t.max_special_ratio):
        return True

    letter_ratio = len(LETTERS.findall(text)) / total
    if _check(gate, "letter_ratio", letter_ratio, f">= {t.min_letter_ratio}",
              letter_ratio < t.min_letter_ratio):
        return True

    punctuation_ratio = len(PUNCTUATION.findall(text)) / total
    if _check(gate, "punctuation_ratio", punctuation_ratio, f"<= {t.max_punctuation_ratio}",
              punctuation_ratio > t.max_punctuation_ratio):
        return True

    for name, pattern in REPEATED_SYMBOL_PATTERNS.items():
        if _check(gate, f"pattern {name}", 0, "absent", pattern.search(text) is not None):
            return True

    words = [w for w in text.split() if len(w) >= t.min_word_length]
    if words:
        gibberish = [w for w in words if _is_gibberish_word(w, t.gibberish_special_ratio)]
        ratio = len(gibberish) / len(words)
        if gibberish:
            logger.debug("gibberish words found", count=len(gibberish), sample=gibberish[:10])
        if _check(gate, "gibberish_ratio", ratio, f"<= {t.max_gibberish_ratio}",
                  ratio > t.max_gibberish_ratio):
            return True

    return False


def _is_gibberish_word(word: str, special_ratio: float) -> bool:
    if MIXED_CASE.search(word) or LETTER_DIGIT_MIX.search(word):
        return True
    return len(WORD_SPECIAL_CHARS.findall(word)) / len(word) > special_ratio


def is_problematic_line(line: str, thresholds: ArtifactThresholds | None = None) -> bool:
    """Whether a trimmed line looks like a stamp, margin note or scan artifact."""
    t = thresholds or ArtifactThresholds()
    if len(line) < t.min_line_length:
        return True
    if len(LINE_SPECIAL_CHARS.findall(line)) / len(line) > t.max_special_ratio:
        return True
    if len(LINE_LETTERS.findall(line)) / len(line) < t.min_letter_ratio:
        return True
    return len(BRACKETS.findall(line)) > t.max_brackets


def cleanup_ocr_artifacts(text: str, thresholds: ArtifactThresholds | None = None) -> str:
    """Drop a trailing run of problematic lines from OCR output.

    Scanning from the end, blank lines are neutral. If at least
    ``min_consecutive_lines`` problematic lines precede the end of the text
    without any good line in between, the text is truncated before them.
    """
    t = thresholds or ArtifactThresholds()
    lines = text.split("\n")
    first_bad = len(lines)
    bad_count = 0
    for i in range(len(lines) - 1, -1, -1):
        line = lines[i].strip()
        if not line:
            continue
        if not is_problematic_line(line, t):
            break
        bad_count += 1
        first_bad = i

    if bad_count < t.min_consecutive_lines:
        return text

    cleaned = "\n".join(lines[:first_bad]).strip()
    logger.info(
        "trailing ocr artifacts removed",
        removed_lines=len(lines) - first_bad,
        original_chars=len(text),
        cleaned_chars=len(cleaned),
    )
    return cleaned
