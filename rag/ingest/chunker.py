"""
Chunker - Splits knowledge documents into bounded chunks.

This module:
1. Splits markdown content into sections by header (#, ##, ###)
2. Keeps markdown tables as atomic blocks
3. Packs sentences into chunks of at most ``chunk_size`` characters,
   repeating the trailing sentences (up to ``overlap`` chars) in the next chunk
4. Cuts sentences longer than a chunk at whitespace
"""

import re
from typing import Dict, List

# Hard cap for atomic blocks (tables)
ATOMIC_MAX_CHARS = 2048

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+|\n{2,}")


def extract_sections(content: str, title: str) -> List[Dict]:
    """
    Splits markdown into sections based on headers (#, ##, ###).

    Args:
        content: Markdown content
        title: Document title, used as header of the leading section

    Returns:
        List of {header, level, text}
    """
    sections = []
    header_pattern = r"^(#{1,3})\s+(.+)$"

    current = {"header": title, "level": 0, "lines": []}

    for line in content.split("\n"):
        header_match = re.match(header_pattern, line)
        if header_match:
            if any(l.strip() for l in current["lines"]):
                sections.append(
                    {
                        "header": current["header"],
                        "level": current["level"],
                        "text": "\n".join(current["lines"]).strip(),
                    }
                )
            current = {
                "header": header_match.group(2).strip(),
                "level": len(header_match.group(1)),
                "lines": [],
            }
        else:
            current["lines"].append(line)

    if any(l.strip() for l in current["lines"]):
        sections.append(
            {
                "header": current["header"],
                "level": current["level"],
                "text": "\n".join(current["lines"]).strip(),
            }
        )

    return sections


def chunk_text(text: str, chunk_size: int = 1024, overlap: int = 128) -> List[str]:
    """
    Splits a text into overlap-aware chunks.

    Markdown tables (lines starting with ``|``) stay whole up to
    ATOMIC_MAX_CHARS. The rest is packed sentence by sentence.

    Args:
        text: Text to split
        chunk_size: Max characters per chunk (default: 1024)
        overlap: Characters of trailing context repeated in the next chunk

    Returns:
        List of chunk texts
    """
    if not text or not text.strip():
        return []
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    overlap = max(0, min(overlap, chunk_size // 2))

    if len(text.strip()) <= chunk_size:
        return [text.strip()]

    chunks: List[str] = []
    for block_text, is_atomic in _split_atomic_blocks(text):
        block_text = block_text.strip()
        if not block_text:
            continue

        if is_atomic:
            if len(block_text) <= ATOMIC_MAX_CHARS:
                chunks.append(block_text)
            else:
                chunks.extend(_sliding_window(block_text, ATOMIC_MAX_CHARS, overlap))
        else:
            chunks.extend(_pack_sentences(block_text, chunk_size, overlap))

    return chunks


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in _SENTENCE_END.split(text) if s and s.strip()]


def _pack_sentences(text: str, chunk_size: int, overlap: int) -> List[str]:
    """Greedy sentence packing with sentence-aligned overlap."""
    units: List[str] = []
    for sentence in split_sentences(text):
        if len(sentence) > chunk_size:
            units.extend(_sliding_window(sentence, chunk_size, 0))
        else:
            units.append(sentence)

    chunks: List[str] = []
    current: List[str] = []
    size = 0

    for unit in units:
        added = len(unit) + (1 if current else 0)
        if current and size + added > chunk_size:
            chunks.append(" ".join(current))
            current, size = _tail(current, overlap)
            # drop the carried tail if it cannot fit alongside the new unit
            while current and size + len(unit) + 1 > chunk_size:
                size -= len(current[0]) + (1 if len(current) > 1 else 0)
                current.pop(0)
            added = len(unit) + (1 if current else 0)
        current.append(unit)
        size += added

    if current:
        last = " ".join(current)
        if not chunks or last != chunks[-1]:
            chunks.append(last)

    return chunks


def _tail(sentences: List[str], overlap: int) -> tuple:
    """Trailing sentences whose joined length fits in ``overlap``."""
    tail: List[str] = []
    size = 0
    for sentence in reversed(sentences):
        added = len(sentence) + (1 if tail else 0)
        if size + added > overlap:
            break
        tail.insert(0, sentence)
        size += added
    return tail, size


def _split_atomic_blocks(text: str) -> List[tuple]:
    """Splits text into (block, is_atomic) pairs.

    An atomic block is a contiguous run of markdown table lines plus the
    line right before it (usually the table caption).
    """
    lines = text.split("\n")
    blocks: List[tuple] = []
    buf: List[str] = []
    in_table = False

    for line in lines:
        is_table_line = line.strip().startswith("|")
        if is_table_line and not in_table:
            caption = buf.pop() if buf else ""
            if buf:
                blocks.append(("\n".join(buf), False))
                buf = []
            in_table = True
            if caption:
                buf.append(caption)
            buf.append(line)
        elif is_table_line:
            buf.append(line)
        elif in_table:
            blocks.append(("\n".join(buf), True))
            buf = [line]
            in_table = False
        else:
            buf.append(line)

    if buf:
        blocks.append(("\n".join(buf), in_table))

    return blocks


def _sliding_window(text: str, chunk_size: int, overlap: int) -> List[str]:
    """Fixed window cut at the last space/newline before the limit."""
    if len(text) <= chunk_size:
        return [text.strip()] if text.strip() else []

    chunks: List[str] = []
    start = 0

    while start < len(text):
        end = start + chunk_size

        if end < len(text):
            search_start = max(start + chunk_size - 80, start)
            last_break = max(
                text.rfind(" ", search_start, end), text.rfind("\n", search_start, end)
            )
            if last_break > start:
                end = last_break

        chunk = text[start:end].strip()
        if chunk:
            chunks.append(chunk)

        if end >= len(text):
            break
        start = max(end - overlap, start + 1)

    return chunks


def chunk_document(
    document: Dict, chunk_size: int = 1024, overlap: int = 128
) -> List[Dict]:
    """
    Chunks one document section by section.

    Args:
        document: {id, title, content, type}
        chunk_size: Max characters per chunk
        overlap: Overlap between consecutive chunks of a section

    Returns:
        List of {ordinal, text, section} with ordinals 0..n-1
    """
    title = document.get("title") or document["id"]
    chunks: List[Dict] = []

    for section in extract_sections(document.get("content", ""), title):
        for piece in chunk_text(section["text"], chunk_size, overlap):
            chunks.append(
                {"ordinal": len(chunks), "text": piece, "section": section["header"]}
            )

    return chunks
