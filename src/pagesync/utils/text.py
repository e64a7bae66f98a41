"""Text helpers: chunking, display normalisation and highlight terms."""

from __future__ import annotations

import re
from collections import Counter
from typing import Iterable, Iterator, List, Sequence, Tuple

STOP_WORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "can", "do", "does", "for",
        "from", "has", "have", "how", "in", "into", "is", "it", "its", "of", "on", "or",
        "that", "the", "their", "there", "this", "to", "was", "what", "when", "where",
        "which", "who", "why", "will", "with", "you", "your",
    }
)

# Inflection endings stripped from question words before matching
TRAILING_PARTICLES = ("'s", "’s")

# Lines that start a new item: numbers, bullets, separators, lettered
# clauses, Q&A markers, article headings and all-caps titles.
_ITEM_PATTERNS = (
    re.compile(r"^[\d•·■○\-]"),
    re.compile(r"^[a-zA-Z][.)]\s"),
    re.compile(r"^Q\."),
    re.compile(r"^(Article|Section|Chapter)\s+\d+", re.IGNORECASE),
    re.compile(r"^[A-Z][A-Z\s]{1,}$"),
)
_SENTENCE_SPLIT = re.compile(r"[.!?。！？\n]")
_WORD = re.compile(r"[^\W\d_]{2,}", re.UNICODE)


def chunk_text(text: str, *, max_chars: int = 1200, overlap: int = 200) -> Iterator[str]:
    """Split text into overlapping character chunks."""
    if not text:
        return iter(())

    step = max(max_chars - overlap, 1)
    for start in range(0, len(text), step):
        yield text[start : start + max_chars]


def normalize_whitespace(lines: Iterable[str]) -> str:
    """Collapse whitespace and join lines."""
    return "\n".join(line.strip() for line in lines if line.strip())


def _is_new_item(line: str) -> bool:
    return any(pattern.match(line) for pattern in _ITEM_PATTERNS)


def normalize_display_text(text: str) -> str:
    """Re-flow hard-wrapped extraction output into paragraphs.

    Blank lines, list items, numbered clauses, separators and headings keep
    their own line; everything else is joined with a space.
    """
    if not text:
        return text

    lines = [re.sub(r"[ \t]+", " ", line).strip() for line in text.split("\n")]
    result: List[str] = []
    paragraph = ""

    for position, line in enumerate(lines):
        following = lines[position + 1] if position + 1 < len(lines) else ""

        if not line:
            if paragraph:
                result.append(paragraph)
                paragraph = ""
            result.append("")
            continue

        if _is_new_item(line):
            if paragraph:
                result.append(paragraph)
                paragraph = ""
            result.append(line)
            continue

        paragraph = f"{paragraph} {line}" if paragraph else line
        if not following or _is_new_item(following):
            result.append(paragraph)
            paragraph = ""

    if paragraph:
        result.append(paragraph)
    return "\n".join(result)


def extract_keywords(text: str, *, limit: int = 5, min_length: int = 3) -> List[str]:
    """Most frequent non-stop-words of ``text``, ties broken by first occurrence."""
    words = [word.lower() for word in _WORD.findall(text or "")]
    counts = Counter(
        word for word in words if len(word) >= min_length and word not in STOP_WORDS
    )
    return [word for word, _ in counts.most_common(limit)]


def _strip_particles(word: str) -> str:
    for particle in TRAILING_PARTICLES:
        if word.endswith(particle) and len(word) > len(particle):
            return word[: -len(particle)]
    return word


def question_terms(question: str, *, min_length: int = 3) -> List[str]:
    """Meaningful words of a question, in order of appearance."""
    cleaned = re.sub(r"[^\w\s'’]", " ", question or "")
    terms: List[str] = []
    for raw in cleaned.split():
        word = _strip_particles(raw.strip("'’"))
        if len(word) < min_length or word.lower() in STOP_WORDS:
            continue
        if word not in terms:
            terms.append(word)
    return terms


def select_highlight_terms(
    keywords: Sequence[str],
    question: str = "",
    *,
    limit: int = 3,
    min_length: int = 3,
    max_length: int = 20,
) -> Tuple[str, ...]:
    """Few, precise highlight terms for the viewer window.

    At most two chunk keywords and two question words, de-duplicated and
    capped at ``limit``.
    """

    def usable(term: str) -> bool:
        return min_length <= len(term.strip()) <= max_length

    picked = [keyword.strip() for keyword in keywords if keyword and usable(keyword)][:2]
    picked.extend(question_terms(question, min_length=min_length)[:2])

    unique: List[str] = []
    for term in picked:
        if usable(term) and term not in unique:
            unique.append(term)
    return tuple(unique[:limit])


def core_phrase(content: str, *, min_length: int = 10, max_length: int = 30) -> str | None:
    """Short search snippet: first real sentence, else the leading characters."""
    if not content:
        return None
    sentences = [part.strip() for part in _SENTENCE_SPLIT.split(content)]
    for sentence in sentences:
        if len(sentence) >= min_length:
            return sentence[:max_length]
    return content[:max_length] or None


def split_highlight(text: str, term: str) -> List[Tuple[str, bool]]:
    """Split ``text`` into ``(segment, is_match)`` pairs for ``term``, ignoring case."""
    if not text or not term:
        return [(text, False)] if text else []
    pattern = re.compile(f"({re.escape(term)})", re.IGNORECASE)
    return [
        (part, index % 2 == 1)
        for index, part in enumerate(pattern.split(text))
        if part
    ]


def preview(text: str, length: int = 150) -> str:
    if len(text) <= length:
        return text
    return text[:length].rstrip() + "..."
