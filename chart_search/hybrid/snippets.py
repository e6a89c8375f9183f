"""
Snippet extraction for search results and citations.

Two entry points:
- extract_snippet(): query-driven window around the earliest query term hit
  (used to enrich hybrid search results)
- extract_citation_snippet(): offset-driven window around a cited span, with
  context on both sides and optional expansion to sentence boundaries

Both mark truncation with "..." on the side(s) where text was cut.
"""

import re
from typing import Optional, Tuple

from ..bm25.tokenizer import tokenize

ELLIPSIS = "..."
DEFAULT_SNIPPET_LENGTH = 150

_SENTENCE_END = re.compile(r"[.!?]\s")


def _find_first_term(text: str, query_tokens) -> Tuple[int, int]:
    """Earliest (position, length) of any query token in text, (-1, 0) if none occurs"""
    best_index = -1
    best_length = 0
    for token in query_tokens:
        match = re.search(re.escape(token), text, re.IGNORECASE)
        if match and (best_index == -1 or match.start() < best_index):
            best_index = match.start()
            best_length = match.end() - match.start()
    return best_index, best_length


def extract_snippet(text: str, query: str, max_length: int = DEFAULT_SNIPPET_LENGTH) -> str:
    """
    Extract a window of text centered on the first query term occurrence.

    Args:
        text: Full chunk text
        query: Search query (tokenized without stemming)
        max_length: Window size in characters (ellipses excluded)

    Returns:
        Snippet of at most max_length characters plus up to two "..." markers

    Examples:
        >>> extract_snippet("Metformin 500mg twice daily", "metformin", 150)
        'Metformin 500mg twice daily'
    """
    if max_length <= 0:
        raise ValueError(f"max_length must be positive, got {max_length}")

    query_tokens = tokenize(query)

    if not query_tokens or len(text) <= max_length:
        return text[:max_length]

    best_index, term_length = _find_first_term(text, query_tokens)

    if best_index == -1:
        return text[:max_length] + ELLIPSIS

    # Center on the hit, but never cut the matched term itself
    start = best_index - max_length // 2
    if term_length <= max_length:
        start = max(start, best_index + term_length - max_length)
    start = max(0, min(start, len(text) - max_length))
    end = min(len(text), start + max_length)

    snippet = text[start:end]
    if start > 0:
        snippet = ELLIPSIS + snippet
    if end < len(text):
        snippet = snippet + ELLIPSIS
    return snippet


def find_sentence_boundary(text: str, position: int, direction: str) -> int:
    """
    Find the nearest sentence boundary (". ", "! ", "? ") from position.

    Args:
        text: Text to search
        position: Starting character index
        direction: 'backward' or 'forward'

    Returns:
        Index just after the punctuation and whitespace, or the text start/end
    """
    if direction == "backward":
        for i in range(min(position, len(text) - 1), -1, -1):
            if _SENTENCE_END.match(text, i):
                return i + 2
        return 0
    if direction == "forward":
        for i in range(max(position, 0), len(text) - 1):
            if _SENTENCE_END.match(text, i):
                return i + 2
        return len(text)
    raise ValueError(f"direction must be 'backward' or 'forward', got {direction!r}")


def citation_window(
    text: str,
    start: int,
    end: int,
    context_chars: int = 50,
    max_length: int = 200,
    prefer_sentences: bool = True,
) -> Tuple[int, int]:
    """
    Compute [snippet_start, snippet_end) around a cited span.

    Raises:
        ValueError: If offsets are outside the text or reversed
    """
    if start < 0 or end > len(text) or start > end:
        raise ValueError(f"Invalid character offsets ({start}, {end}) for text of length {len(text)}")

    snippet_start = max(0, start - context_chars)
    snippet_end = min(len(text), end + context_chars)

    if prefer_sentences:
        sentence_start = find_sentence_boundary(text, snippet_start, "backward")
        sentence_end = find_sentence_boundary(text, snippet_end, "forward")
        if sentence_end - sentence_start <= max_length:
            snippet_start, snippet_end = sentence_start, sentence_end

    if snippet_end - snippet_start > max_length:
        # Keep the cited span in the middle of the remaining budget
        remaining = max(0, max_length - (end - start))
        before = remaining // 2
        after = remaining - before
        snippet_start = max(0, start - before)
        snippet_end = min(len(text), end + after)

    return snippet_start, snippet_end


def extract_citation_snippet(
    text: str,
    start: int,
    end: int,
    context_chars: int = 50,
    max_length: int = 200,
    prefer_sentences: bool = True,
    highlight: Optional[Tuple[str, str]] = None,
) -> str:
    """
    Extract a snippet around cited text [start, end) with surrounding context.

    Args:
        text: Full chunk text
        start, end: Character offsets of the cited span
        context_chars: Characters of context before and after the span
        max_length: Upper bound on the snippet body
        prefer_sentences: Expand to sentence boundaries when that fits max_length
        highlight: Optional (open, close) markers wrapped around the cited span

    Returns:
        Snippet with "..." where text was truncated
    """
    snippet_start, snippet_end = citation_window(
        text, start, end, context_chars, max_length, prefer_sentences
    )

    if highlight:
        open_marker, close_marker = highlight
        snippet = (
            text[snippet_start:start]
            + open_marker + text[start:end] + close_marker
            + text[end:snippet_end]
        )
    else:
        snippet = text[snippet_start:snippet_end]

    if snippet_start > 0:
        snippet = ELLIPSIS + snippet
    if snippet_end < len(text):
        snippet = snippet + ELLIPSIS

    return snippet.strip()
