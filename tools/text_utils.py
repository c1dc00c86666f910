"""Text utilities: word counting, chunking, and cleanup."""

import re

_STYLE_BLOCK_RE = re.compile(r"<style[^>]*>[\s\S]*?</style>", re.IGNORECASE)
_HTML_TAG_RE = re.compile(r"<[^>]*>?")
_PARAGRAPH_BREAK_RE = re.compile(r"\n\s*\n")


def count_words(text: str) -> int:
    """Count whitespace-delimited tokens."""
    if not text:
        return 0
    return len(text.split())


def strip_html(text: str) -> str:
    """Remove HTML tags the backend occasionally emits inside prose."""
    if not text:
        return ""
    return _HTML_TAG_RE.sub("", _STYLE_BLOCK_RE.sub("", text))


def tail(text: str, char_limit: int) -> str:
    """Return the last ``char_limit`` characters of ``text``."""
    if not text:
        return ""
    if len(text) <= char_limit:
        return text
    return text[-char_limit:]


def split_into_paragraphs(text: str) -> list[str]:
    """Split text into non-empty paragraphs on blank lines."""
    return [p.strip() for p in _PARAGRAPH_BREAK_RE.split(text or "") if p.strip()]


def split_into_source_chunks(text: str, rough_word_count: int = 1000) -> list[str]:
    """Group paragraphs into chunks of roughly ``rough_word_count`` words.

    A paragraph is never split; a chunk is closed before the paragraph that
    would push it over the limit. Each chunk keeps a trailing blank line
    after every paragraph so chunks concatenate back into readable text.
    """
    chunks: list[str] = []
    current: list[str] = []
    current_words = 0

    for para in _PARAGRAPH_BREAK_RE.split(text or ""):
        if not para.strip():
            continue
        words = count_words(para)
        if current and current_words + words > rough_word_count:
            chunks.append("".join(current))
            current = []
            current_words = 0
        current.append(para + "\n\n")
        current_words += words

    if current:
        chunks.append("".join(current))
    return chunks
