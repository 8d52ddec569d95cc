"""Integrity checker tests: the four checks, repair, re-upload detection."""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from src.errors import StorageIntegrityFailure
from src.ingest.extractors import ExtractorCapabilities
from src.ingest.integrity import (
    ALL_CLEAR,
    FAILED,
    PASSED,
    RECOMMENDATIONS,
    WARNING,
    IntegrityChecker,
)
from src.memory.store import PAYLOAD_PREFIX
from tests.conftest import XLSX_MIME, make_xlsx


# ── Fixtures ────────────────────────────────────────────────────────

@pytest.fixture
def checker(repository):
    return IntegrityChecker(repository, ExtractorCapabilities(openpyxl=True, pypdf=True))


@pytest.fixture
def text_doc(repository, soccer_text):
    doc = repository.add_document("plan.txt", "text/plain", soccer_text.encode())
    doc.processed = True
    repository.update_document(doc)
    return doc


# ── Checks ──────────────────────────────────────────────────────────

class TestChecks:

    def test_healthy_document_passes(self, checker, text_doc):
        report = checker.check(text_doc)
        assert report.status == PASSED
        assert report.recommendations == [ALL_CLEAR]
        assert report.requires_reupload is False

    def test_unprocessed_document_warns(self, checker, repository):
        doc = repository.add_document("plan.txt", "text/plain", b"Week 1 Monday")
        report = checker.check(doc)
        assert report.status == WARNING
        assert report.checks["processing"].warnings == ["Document has not been processed yet"]
        assert report.recommendations == [ALL_CLEAR]

    def test_missing_payload_requires_reupload(self, checker, store, text_doc):
        store.delete(PAYLOAD_PREFIX + text_doc.id)
        report = checker.check(text_doc)
        assert report.status == FAILED
        assert report.requires_reupload is True
        assert report.checks["storage"].status == FAILED
        assert RECOMMENDATIONS["storage"] in report.recommendations

    def test_require_payload_raises(self, checker, store, text_doc):
        store.delete(PAYLOAD_PREFIX + text_doc.id)
        with pytest.raises(StorageIntegrityFailure) as exc_info:
            checker.require_payload(text_doc)
        assert exc_info.value.document_id == text_doc.id

    def test_size_mismatch_warns(self, checker, repository, text_doc):
        text_doc.size = text_doc.size * 2
        repository.update_document(text_doc)
        report = checker.check(text_doc)
        assert report.checks["storage"].status == WARNING
        assert report.status == WARNING

    def test_size_within_tolerance(self, checker, repository, text_doc):
        text_doc.size = int(text_doc.size * 1.05)
        report = checker.check(text_doc)
        assert report.checks["storage"].status == PASSED

    def test_binary_content_in_text_document(self, checker, repository, xlsx_factory):
        doc = repository.add_document("plan.txt", "text/plain", xlsx_factory([["Week 1"]]))
        report = checker.check(doc)
        assert report.checks["readability"].status == FAILED
        assert RECOMMENDATIONS["readability"] in report.recommendations

    def test_valid_spreadsheet_readable(self, checker, repository):
        doc = repository.add_document("plan.xlsx", XLSX_MIME, make_xlsx([["Week 1"]]))
        assert checker.check(doc).checks["readability"].status == PASSED

    def test_missing_decoder_fails_processing(self, repository):
        checker = IntegrityChecker(repository, ExtractorCapabilities(openpyxl=False, pypdf=True))
        doc = repository.add_document("plan.xlsx", XLSX_MIME, make_xlsx([["Week 1"]]))
        report = checker.check(doc)
        assert report.checks["processing"].status == FAILED
        assert RECOMMENDATIONS["processing"] in report.recommendations

    def test_raising_check_recorded_as_error(self, checker, text_doc):
        with patch.object(checker, "check_basic", side_effect=RuntimeError("boom")):
            report = checker.check(text_doc)
        assert report.checks["basic"].status == "error"
        assert report.status == "error"
        assert RECOMMENDATIONS["basic"] in report.recommendations


# ── Repair ──────────────────────────────────────────────────────────

class TestRepair:

    def test_missing_timestamp_and_platform_repaired(self, checker, repository, text_doc):
        text_doc.uploaded_at = None
        text_doc.platform_tag = None
        repository.update_document(text_doc)

        report = checker.check_and_repair(text_doc.id)

        assert len(report.repairs) == 2
        stored = repository.get_document(text_doc.id)
        assert stored.uploaded_at is not None
        assert stored.platform_tag == "python"
        assert stored.repaired_at is not None
        assert stored.integrity_status == PASSED
        assert stored.last_integrity_check == report.checked_at

    def test_processed_flag_restored_when_plan_exists(self, checker, repository, soccer_text):
        from src.ingest.analyzer import StructuralAnalyzer
        from src.ingest.assembler import PlanAssembler

        doc = repository.add_document("plan.txt", "text/plain", soccer_text.encode())
        repository.save_plan(PlanAssembler().assemble(soccer_text, StructuralAnalyzer().analyze(soccer_text), doc))

        report = checker.check_and_repair(doc.id)

        assert "Marked document as processed" in report.repairs
        assert repository.get_document(doc.id).processed is True

    def test_report_only_mode(self, checker, repository, text_doc):
        text_doc.platform_tag = None
        repository.update_document(text_doc)
        report = checker.check_and_repair(text_doc.id, repair=False)
        assert report.repairs == []
        assert report.status == WARNING
        assert repository.get_document(text_doc.id).platform_tag is None

    def test_unknown_document(self, checker):
        with pytest.raises(KeyError):
            checker.check_and_repair("doc_nope")

    def test_missing_payload_not_repairable(self, checker, store, text_doc):
        store.delete(PAYLOAD_PREFIX + text_doc.id)
        report = checker.check_and_repair(text_doc.id)
        assert report.requires_reupload is True
        assert report.repairs == []


# ── Maintenance ─────────────────────────────────────────────────────

class TestMaintain:

    def test_recently_checked_documents_skipped(self, checker, repository, text_doc):
        other = repository.add_document("other.txt", "text/plain", b"Week 1")
        checker.check_and_repair(text_doc.id)

        summary = checker.maintain()

        assert summary["skipped"] == 1
        assert summary["checked"] == 1
        assert repository.get_document(other.id).last_integrity_check is not None

    def test_stale_documents_rechecked(self, checker, repository, store, text_doc):
        checker.check_and_repair(text_doc.id)
        store.delete(PAYLOAD_PREFIX + text_doc.id)

        summary = checker.maintain(now=datetime.now() + timedelta(hours=25))

        assert summary["checked"] == 1
        assert summary["needs_reupload"] == [text_doc.id]

    def test_malformed_check_time_is_rechecked(self, checker, repository, text_doc):
        other = repository.add_document("other.txt", "text/plain", b"Week 1")
        doc = repository.get_document(text_doc.id)
        doc.last_integrity_check = "last tuesday"
        repository.update_document(doc)

        summary = checker.maintain()

        assert summary["checked"] == 2
        assert summary["skipped"] == 0
        refreshed = repository.get_document(text_doc.id).last_integrity_check
        assert datetime.fromisoformat(refreshed)
        assert repository.get_document(other.id).last_integrity_check is not None
