"""Tests for PDF loading and chunking."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

from pagesync.ingestion.pdf_loader import build_chunks, get_pdf_metadata, iter_page_texts
from pagesync.models import Chunk


def _mock_doc(texts: list) -> MagicMock:
    pages = []
    for text in texts:
        page = MagicMock()
        if isinstance(text, Exception):
            page.get_text.side_effect = text
        else:
            page.get_text.return_value = text
        pages.append(page)

    doc = MagicMock()
    doc.__len__ = MagicMock(return_value=len(pages))
    doc.__getitem__ = MagicMock(side_effect=lambda i: pages[i])
    return doc


class TestIterPageTexts:
    """Test iter_page_texts function."""

    @patch("pagesync.ingestion.pdf_loader.fitz")
    def test_pages_are_numbered_from_one(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        """Should yield page number and normalized text."""
        mock_fitz.open.return_value = _mock_doc(["Page 1\n  text ", "Page 2"])

        parts = list(iter_page_texts(tmp_path / "test.pdf"))

        assert parts == [(1, "Page 1\ntext"), (2, "Page 2")]
        mock_fitz.open.return_value.close.assert_called_once()

    @patch("pagesync.ingestion.pdf_loader.fitz")
    def test_blank_pages_are_skipped(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        mock_fitz.open.return_value = _mock_doc(["Intro", "   \n", "Body"])

        assert [page for page, _ in iter_page_texts(tmp_path / "a.pdf")] == [1, 3]

    @patch("pagesync.ingestion.pdf_loader.fitz")
    @patch("pagesync.ingestion.pdf_loader.LOGGER")
    def test_page_error(
        self, mock_logger: MagicMock, mock_fitz: MagicMock, tmp_path: Path
    ) -> None:
        """Should log warning and continue on page extraction error."""
        mock_fitz.open.return_value = _mock_doc(
            ["Page 1", Exception("Extraction failed"), "Page 3"]
        )

        parts = list(iter_page_texts(tmp_path / "error.pdf"))

        assert [page for page, _ in parts] == [1, 3]
        mock_logger.warning.assert_called_once()

    @patch("pagesync.ingestion.pdf_loader.fitz")
    @patch("pagesync.ingestion.pdf_loader.LOGGER")
    def test_open_error(self, mock_logger: MagicMock, mock_fitz: MagicMock, tmp_path: Path) -> None:
        """Should log error and yield nothing when the PDF cannot be opened."""
        mock_fitz.open.side_effect = Exception("Cannot open PDF")

        assert list(iter_page_texts(tmp_path / "bad.pdf")) == []
        mock_logger.error.assert_called_once()


class TestGetPdfMetadata:
    """Test get_pdf_metadata function."""

    @patch("pagesync.ingestion.pdf_loader.fitz")
    def test_get_metadata_simple(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        doc = _mock_doc(["a", "b", "c"])
        doc.metadata = {"title": "Lease Agreement"}
        mock_fitz.open.return_value = doc

        meta = get_pdf_metadata(tmp_path / "lease.pdf")

        assert meta == {"title": "Lease Agreement", "page_count": 3}
        doc.close.assert_called_once()

    @patch("pagesync.ingestion.pdf_loader.fitz")
    def test_missing_title_uses_stem(self, mock_fitz: MagicMock, tmp_path: Path) -> None:
        doc = _mock_doc(["a"])
        doc.metadata = None
        mock_fitz.open.return_value = doc

        assert get_pdf_metadata(tmp_path / "contract.pdf")["title"] == "contract"


class TestBuildChunks:
    """Test build_chunks function."""

    @patch("pagesync.ingestion.pdf_loader.iter_page_texts")
    def test_chunks_carry_pages_and_ids(self, mock_iter: MagicMock, tmp_path: Path) -> None:
        mock_iter.return_value = iter([(1, "Rent is due monthly."), (2, "Deposit equals rent.")])

        chunks = list(build_chunks(tmp_path / "a.pdf", "doc"))

        assert all(isinstance(chunk, Chunk) for chunk in chunks)
        assert [chunk.id for chunk in chunks] == ["doc-00000", "doc-00001"]
        assert [chunk.page for chunk in chunks] == [1, 2]
        assert [chunk.position for chunk in chunks] == [0, 1]
        assert "rent" in chunks[0].keywords

    @patch("pagesync.ingestion.pdf_loader.iter_page_texts")
    def test_long_page_is_split(self, mock_iter: MagicMock, tmp_path: Path) -> None:
        mock_iter.return_value = iter([(4, "word " * 100)])

        chunks = list(build_chunks(tmp_path / "a.pdf", "doc", max_chars=100, overlap=10))

        assert len(chunks) > 1
        assert {chunk.page for chunk in chunks} == {4}

    @patch("pagesync.ingestion.pdf_loader.iter_page_texts")
    def test_without_page_metadata(self, mock_iter: MagicMock, tmp_path: Path) -> None:
        mock_iter.return_value = iter([(1, "One."), (2, "Two.")])

        chunks = list(build_chunks(tmp_path / "a.pdf", "doc", keep_pages=False))

        assert [chunk.page for chunk in chunks] == [None, None]
        assert not any(chunk.has_page for chunk in chunks)
