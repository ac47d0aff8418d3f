"""
Tests for the chunk model and the paragraph splitter.
"""

import dataclasses

import numpy as np
import pytest

from local_rag.retrieval.document import (
    DocumentChunk,
    StoredRecord,
    chunks_from_file,
    split_text,
)


class TestDocumentChunk:

    def test_frozen(self):
        chunk = DocumentChunk(content="hello", filepath="a.txt")

        with pytest.raises(dataclasses.FrozenInstanceError):
            chunk.content = "changed"

    def test_to_dict(self):
        assert DocumentChunk("hello", "a.txt").to_dict() == {"content": "hello", "filepath": "a.txt"}

    def test_stored_record_exposes_chunk_fields(self):
        record = StoredRecord(chunk=DocumentChunk("hello", "a.txt"), embedding=np.zeros(4))

        assert record.content == "hello"
        assert record.filepath == "a.txt"
        assert "embedding" not in repr(record)


class TestSplitText:

    def test_short_text_is_one_chunk(self):
        assert split_text("one paragraph only") == ["one paragraph only"]

    def test_paragraphs_packed_up_to_limit(self):
        text = "aaaa\n\nbbbb\n\ncccc"

        assert split_text(text, max_chars=10) == ["aaaa\n\nbbbb", "cccc"]

    def test_blank_paragraphs_dropped(self):
        assert split_text("\n\n  \n\nreal text\n\n\n\n") == ["real text"]

    def test_empty_text(self):
        assert split_text("") == []

    def test_long_paragraph_cut_at_whitespace(self):
        chunks = split_text("alpha beta gamma delta", max_chars=11)

        assert chunks == ["alpha beta", "gamma delta"]
        assert all(len(c) <= 11 for c in chunks)

    def test_long_word_hard_cut(self):
        assert split_text("x" * 25, max_chars=10) == ["x" * 10, "x" * 10, "x" * 5]

    def test_windows_line_endings(self):
        assert split_text("first\r\n\r\nsecond", max_chars=6) == ["first", "second"]

    def test_non_positive_limit_rejected(self):
        with pytest.raises(ValueError):
            split_text("text", max_chars=0)


class TestChunksFromFile:

    def test_reads_utf8_and_tags_filepath(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("明日の天気予報\n\nRain expected", encoding="utf-8")

        chunks = chunks_from_file(path, max_chars=14)

        assert [c.content for c in chunks] == ["明日の天気予報", "Rain expected"]
        assert all(c.filepath == str(path) for c in chunks)
