"""
Split knowledge base articles into searchable chunks.

Headings first, then blank-line paragraphs, then sentences. Every chunk after
the first carries a short tail of its predecessor so retrieved chunks read in
context.
"""
from __future__ import annotations

import re
from typing import Any

DEFAULT_MAX_CHUNK_SIZE = 1500
DEFAULT_OVERLAP = 100

_HEADING_RE = re.compile(r"^#{1,3}\s+(.+)$")
_PARAGRAPH_RE = re.compile(r"\n\n+")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")


def chunk_content(
    content: str | None,
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> list[dict[str, Any]]:
    if not content or not content.strip():
        return []
    if len(content) <= max_chunk_size:
        return [{"content": content.strip(), "metadata": {"heading": None, "index": 0}}]

    chunks: list[dict[str, Any]] = []
    for heading, text in split_by_headings(content):
        pieces = [text] if len(text) <= max_chunk_size else split_by_paragraphs(text, max_chunk_size)
        for piece in pieces:
            piece = piece.strip()
            if piece:
                chunks.append({"content": piece, "metadata": {"heading": heading, "index": len(chunks)}})

    if overlap > 0 and len(chunks) > 1:
        # tails are taken from the un-prefixed text
        originals = [c["content"] for c in chunks]
        for i in range(1, len(chunks)):
            tail = originals[i - 1][-overlap:]
            if " " in tail:
                tail = tail[tail.index(" ") + 1:]
            chunks[i]["content"] = f"...{tail} {chunks[i]['content']}"

    for i, chunk in enumerate(chunks):
        chunk["metadata"]["index"] = i
    return chunks


def split_by_headings(content: str) -> list[tuple[str | None, str]]:
    sections: list[tuple[str | None, str]] = []
    heading: str | None = None
    lines: list[str] = []
    for line in content.split("\n"):
        m = _HEADING_RE.match(line)
        if m:
            if lines:
                sections.append((heading, "\n".join(lines).strip()))
            heading = m.group(1).strip()
            lines = [line]
        else:
            lines.append(line)
    if lines:
        sections.append((heading, "\n".join(lines).strip()))
    return sections


def split_by_paragraphs(text: str, max_size: int) -> list[str]:
    """Merge small paragraphs up to max_size; oversized ones fall through to sentences."""
    chunks: list[str] = []
    current = ""
    for para in _PARAGRAPH_RE.split(text):
        if len(para) > max_size:
            if current:
                chunks.append(current.strip())
                current = ""
            chunks.extend(split_by_sentences(para, max_size))
        elif current and len(current) + len(para) + 2 > max_size:
            chunks.append(current.strip())
            current = para
        else:
            current = f"{current}\n\n{para}" if current else para
    if current.strip():
        chunks.append(current.strip())
    return chunks


def split_by_sentences(text: str, max_size: int) -> list[str]:
    chunks: list[str] = []
    current = ""
    for sentence in _SENTENCE_RE.split(text):
        if current and len(current) + len(sentence) + 1 > max_size:
            chunks.append(current.strip())
            current = sentence
        else:
            current = f"{current} {sentence}" if current else sentence
    if current.strip():
        chunks.append(current.strip())
    return chunks
