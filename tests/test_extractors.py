"""Extractor tests: format resolution, decoding and fallback text.

Every bad input must come back as a fallback ExtractionResult, never as an
exception, and a type mismatch must be caught before any decoder runs.
"""

import io
import time
from unittest.mock import MagicMock, patch

import pytest

from src.ingest.extractors import (
    CSV,
    EXCEL,
    PDF,
    TEXT,
    WORD,
    DocumentExtractor,
    ExtractorCapabilities,
    format_file_size,
    probe_capabilities,
    resolve_format,
    sniff_format,
    validate_upload,
)
from tests.conftest import DOCX_MIME, XLSX_MIME, make_docx, make_xlsx


# ── Fixtures ────────────────────────────────────────────────────────

@pytest.fixture
def extractor(config):
    return DocumentExtractor(config, capabilities=ExtractorCapabilities(openpyxl=True, pypdf=True))


def _blank_pdf() -> bytes:
    from pypdf import PdfWriter

    writer = PdfWriter()
    writer.add_blank_page(width=200, height=200)
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


# ── Format resolution ───────────────────────────────────────────────

class TestResolveFormat:

    def test_mime_wins_over_extension(self):
        assert resolve_format(DOCX_MIME, "plan.txt") == WORD

    def test_extension_used_when_mime_unknown(self):
        assert resolve_format("application/octet-stream", "plan.xlsx") == EXCEL
        assert resolve_format("", "notes.TXT") == TEXT

    def test_mime_parameters_ignored(self):
        assert resolve_format("text/csv; charset=utf-8", "x") == CSV

    def test_unknown_returns_none(self):
        assert resolve_format("application/vnd.ms-powerpoint", "deck.pptx") is None

    def test_sniff_containers(self):
        assert sniff_format(make_docx(["Week 1"])) == WORD
        assert sniff_format(make_xlsx([["Week 1"]])) == EXCEL
        assert sniff_format(b"%PDF-1.4 ...") == PDF
        assert sniff_format(b"Week 1 Monday") is None
        assert sniff_format(b"PK\x03\x04garbage") is None


class TestValidateUpload:

    def test_acceptable_upload(self):
        assert validate_upload("plan.docx", DOCX_MIME, 2048, 10 * 1024 * 1024) == []

    def test_oversized_and_unsupported(self):
        issues = validate_upload("deck.pptx", "", 20 * 1024 * 1024, 10 * 1024 * 1024)
        assert any("Unsupported" in i for i in issues)
        assert any("too large" in i for i in issues)

    def test_missing_name(self):
        issues = validate_upload("", "text/plain", 10, 100)
        assert "File name is missing" in issues

    def test_file_size_formatting(self):
        assert format_file_size(0) == "0 Bytes"
        assert format_file_size(1024) == "1 KB"
        assert format_file_size(1536) == "1.5 KB"
        assert format_file_size(5 * 1024 * 1024) == "5 MB"


# ── Decoding ────────────────────────────────────────────────────────

class TestDecoding:

    def test_docx_paragraphs(self, extractor):
        content = make_docx(["U12 Soccer Plan", "Week 1", "Monday - passing drills"])
        result = extractor.extract(content, "plan.docx", DOCX_MIME)
        assert not result.is_fallback
        assert result.format == WORD
        assert result.text == "U12 Soccer Plan\nWeek 1\nMonday - passing drills"
        assert result.metadata["label"] == "Word Document: plan.docx"
        assert result.metadata["processing_method"] == "word_decoder"
        assert result.metadata["extracted_length"] == len(result.text)

    def test_xlsx_rows_joined_with_pipes(self, extractor):
        content = make_xlsx([["Week", "Day", "Activity"], ["Week 1", "Monday", "Sprints"]], title="Block A")
        result = extractor.extract(content, "plan.xlsx", XLSX_MIME)
        assert not result.is_fallback
        assert "Sheet 1: Block A" in result.text
        assert "Week | Day | Activity" in result.text
        assert "Week 1 | Monday | Sprints" in result.text

    def test_csv_rows(self, extractor):
        result = extractor.extract(b"Week,Day\n1,Monday\n\n2, Friday \n", "plan.csv", "text/csv")
        assert result.text == "Week | Day\n1 | Monday\n2 | Friday"

    def test_latin1_text(self, extractor):
        content = "Sábado: entrenamiento".encode("latin-1")
        result = extractor.extract(content, "plan.txt", "text/plain")
        assert not result.is_fallback
        assert result.text == "Sábado: entrenamiento"

    def test_control_chars_removed(self, extractor):
        result = extractor.extract(b"Week 1\x00\x07 Monday", "plan.txt", "text/plain")
        assert result.text == "Week 1 Monday"

    def test_csv_labelled_as_text_decodes(self, extractor):
        result = extractor.extract(b"a,b\n", "plan.csv", "text/plain")
        assert not result.is_fallback


# ── Fallbacks ───────────────────────────────────────────────────────

class TestFallback:

    @pytest.mark.parametrize("filename,mime", [
        ("plan.docx", DOCX_MIME),
        ("plan.xlsx", XLSX_MIME),
        ("plan.csv", "text/csv"),
        ("plan.txt", "text/plain"),
        ("plan.pdf", "application/pdf"),
    ])
    def test_empty_input_every_format(self, extractor, filename, mime):
        result = extractor.extract(b"", filename, mime)
        assert result.is_fallback
        assert "PROCESSING NOTICE" in result.text
        assert "File is empty" in result.text
        assert "Recommended formats:" in result.text
        assert result.metadata["processing_method"] == "fallback"

    def test_fallback_names_document_and_size(self, extractor):
        result = extractor.extract(b"   \n  ", "blank.txt", "text/plain")
        assert result.is_fallback
        assert "Document: blank.txt" in result.text
        assert "Size: 6 Bytes" in result.text

    def test_excel_bytes_declared_as_word_never_decoded(self, extractor):
        decoders = {WORD: MagicMock(return_value="x"), EXCEL: MagicMock(return_value="x")}
        with patch.dict("src.ingest.extractors._DECODERS", decoders):
            result = extractor.extract(make_xlsx([["Week 1"]]), "plan.xlsx", DOCX_MIME)
        assert result.is_fallback
        assert "mismatch" in result.text
        decoders[WORD].assert_not_called()
        decoders[EXCEL].assert_not_called()

    def test_sniffed_content_disagrees_with_declared_type(self, extractor):
        decoders = {WORD: MagicMock(return_value="x"), EXCEL: MagicMock(return_value="x")}
        with patch.dict("src.ingest.extractors._DECODERS", decoders):
            result = extractor.extract(make_xlsx([["Week 1"]]), "plan.docx", DOCX_MIME)
        assert result.is_fallback
        assert "content is Excel" in result.text
        decoders[WORD].assert_not_called()

    def test_word_bytes_declared_as_excel(self, extractor):
        result = extractor.extract(make_docx(["Week 1"]), "plan.xlsx", XLSX_MIME)
        assert result.is_fallback
        assert result.format == EXCEL

    def test_corrupt_zip(self, extractor):
        result = extractor.extract(b"PK\x03\x04garbage", "plan.docx", DOCX_MIME)
        assert result.is_fallback
        assert "not a valid Word file" in result.text

    def test_legacy_doc(self, extractor):
        result = extractor.extract(b"\xd0\xcf\x11\xe0binary", "plan.doc", "application/msword")
        assert result.is_fallback
        assert ".docx" in result.issues[0]

    def test_unsupported_format(self, extractor):
        result = extractor.extract(b"slides", "deck.pptx", "application/vnd.ms-powerpoint")
        assert result.is_fallback
        assert result.format is None
        assert "Unsupported document format" in result.text

    def test_missing_decoder_library(self, config):
        extractor = DocumentExtractor(config, capabilities=ExtractorCapabilities(openpyxl=False, pypdf=True))
        result = extractor.extract(make_xlsx([["Week 1"]]), "plan.xlsx", XLSX_MIME)
        assert result.is_fallback
        assert "openpyxl" in result.text

    def test_pdf_without_text_layer(self, extractor):
        result = extractor.extract(_blank_pdf(), "scan.pdf", "application/pdf")
        assert result.is_fallback
        assert "no text layer" in result.text


# ── Capability probe ────────────────────────────────────────────────

class TestCapabilities:

    def test_probe_finds_installed_libraries(self):
        caps = probe_capabilities(timeout=5.0)
        assert caps.openpyxl is True
        assert caps.pypdf is True
        assert caps.degraded is False

    def test_probe_timeout_runs_degraded(self):
        def slow_probe():
            time.sleep(0.5)
            return {"openpyxl": True, "pypdf": True}

        with patch("src.ingest.extractors._probe_libraries", side_effect=slow_probe):
            caps = probe_capabilities(timeout=0.05)
        assert caps.degraded is True
        assert not caps.supports(EXCEL)
        assert caps.supports(TEXT)
