"""
Tests for rag/ingest/chunker.py — Document chunking.
"""

from rag.ingest.chunker import (
    chunk_document,
    chunk_text,
    extract_sections,
    split_sentences,
)

SENTENCES = [f"Sentence number {i} talks about printing on fabric." for i in range(20)]
LONG_TEXT = " ".join(SENTENCES)


class TestExtractSections:
    def test_splits_by_headers(self):
        content = "Intro line.\n# First\nAlpha.\n## Second\nBeta."
        sections = extract_sections(content, "Doc")
        assert [s["header"] for s in sections] == ["Doc", "First", "Second"]
        assert sections[2]["level"] == 2
        assert sections[1]["text"] == "Alpha."

    def test_skips_empty_sections(self):
        sections = extract_sections("# Empty\n\n# Full\ntext", "Doc")
        assert [s["header"] for s in sections] == ["Full"]


class TestChunkText:
    def test_empty(self):
        assert chunk_text("") == []
        assert chunk_text("   ") == []

    def test_short_text_single_chunk(self):
        assert chunk_text("  short text  ", chunk_size=100) == ["short text"]

    def test_chunks_are_bounded(self):
        chunks = chunk_text(LONG_TEXT, chunk_size=200, overlap=60)
        assert len(chunks) > 1
        assert all(len(c) <= 200 for c in chunks)

    def test_chunks_respect_sentence_boundaries(self):
        chunks = chunk_text(LONG_TEXT, chunk_size=200, overlap=0)
        for chunk in chunks:
            assert chunk.startswith("Sentence number")
            assert chunk.endswith(".")

    def test_overlap_repeats_trailing_sentence(self):
        chunks = chunk_text(LONG_TEXT, chunk_size=200, overlap=60)
        last_sentence = split_sentences(chunks[0])[-1]
        assert chunks[1].startswith(last_sentence)

    def test_no_overlap(self):
        chunks = chunk_text(LONG_TEXT, chunk_size=200, overlap=0)
        assert " ".join(chunks) == LONG_TEXT

    def test_overlong_sentence_cut_at_whitespace(self):
        words = " ".join(["word"] * 100)  # 499 chars, no sentence end
        chunks = chunk_text(words, chunk_size=100, overlap=0)
        assert all(len(c) <= 100 for c in chunks)
        assert all(not c.startswith(" ") and "wor " not in c for c in chunks)

    def test_tables_stay_whole(self):
        table = "\n".join(["Sizes:", "| size | dpi |", "| --- | --- |", "| A4 | 300 |"])
        text = LONG_TEXT + "\n" + table + "\n" + LONG_TEXT
        chunks = chunk_text(text, chunk_size=200, overlap=0)
        assert table in chunks


class TestChunkDocument:
    def test_ordinals_are_sequential(self):
        doc = {
            "id": "dtf-guide",
            "title": "DTF Guide",
            "content": "# Prep\n" + LONG_TEXT + "\n# Curing\nCure at 160C for 15 seconds.",
        }
        chunks = chunk_document(doc, chunk_size=200, overlap=40)
        assert [c["ordinal"] for c in chunks] == list(range(len(chunks)))
        assert chunks[-1]["section"] == "Curing"
        assert chunks[0]["section"] == "Prep"

    def test_empty_content(self):
        assert chunk_document({"id": "x", "content": ""}) == []
