"""Document pipeline tests: ingest, versioning, learning, serialization."""

import threading
import time

import pytest

from src.errors import UnsupportedFormat
from src.ingest.pipeline import DocumentPipeline
from src.memory.store import PAYLOAD_PREFIX
from tests.conftest import DOCX_MIME


# ── Fixtures ────────────────────────────────────────────────────────

@pytest.fixture
def pipeline(config, store, repository):
    return DocumentPipeline(config, store=store, repository=repository)


# ── Ingest ──────────────────────────────────────────────────────────

class TestIngest:

    def test_text_upload_builds_plan(self, pipeline, repository, soccer_text):
        result = pipeline.ingest("u12.txt", "text/plain", soccer_text.encode())

        assert result.succeeded
        assert result.plan.version == 1
        assert result.plan.id == f"plan_{result.document.id}_v1"
        assert result.plan.category == "soccer"
        assert result.analysis.organization_level == "highly_structured"
        stored = repository.get_document(result.document.id)
        assert stored.processed is True
        assert stored.processed_at is not None
        assert repository.cached_sessions(result.document.id) == result.plan.weeks

    def test_docx_upload(self, pipeline, docx_factory, soccer_text):
        content = docx_factory(soccer_text.splitlines())
        result = pipeline.ingest("u12.docx", DOCX_MIME, content)
        assert result.succeeded
        assert result.plan.source_format == "word"
        assert [w.week_number for w in result.plan.weeks] == [1, 2, 3, 4]

    def test_pattern_recorded_and_hinted(self, pipeline, soccer_text):
        pipeline.ingest("a.txt", "text/plain", soccer_text.encode())
        assert pipeline.pattern_library.count("text") == 1

        second = pipeline.ingest("b.txt", "text/plain", soccer_text.encode())
        assert second.analysis.hints["expected_weeks"] == 4
        assert pipeline.pattern_library.count("text") == 2

    def test_unstructured_text_not_learned(self, pipeline):
        result = pipeline.ingest("notes.txt", "text/plain", b"Bring water and a good attitude")
        assert result.succeeded
        assert result.analysis.organization_level == "unstructured"
        assert pipeline.pattern_library.count("text") == 0

    def test_empty_upload_builds_plan_from_fallback_text(self, pipeline, repository):
        result = pipeline.ingest("blank.txt", "text/plain", b"")
        assert not result.succeeded
        assert result.extraction.is_fallback
        assert "PROCESSING NOTICE" in result.text
        assert result.plan is not None
        assert [p.id for p in repository.list_plans()] == [result.plan.id]
        assert repository.get_document(result.document.id).processed is True

    def test_corrupt_docx_builds_plan_but_is_not_learned(self, pipeline, repository):
        result = pipeline.ingest("plan.docx", DOCX_MIME, b"not really a docx file")
        assert result.extraction.is_fallback
        assert result.issues
        assert result.plan.version == 1
        assert result.plan.source_document == result.document.id
        assert repository.cached_sessions(result.document.id) == result.plan.weeks
        assert repository.get_document(result.document.id).processed is True
        assert pipeline.pattern_library.count("word") == 0

    def test_unsupported_format_raises(self, pipeline, repository):
        with pytest.raises(UnsupportedFormat):
            pipeline.ingest("deck.pptx", "application/vnd.ms-powerpoint", b"slides")
        assert repository.list_documents() == []

    def test_oversized_upload_rejected(self, config, store, repository):
        pipeline = DocumentPipeline(config.with_overrides(max_upload_bytes=10), store=store, repository=repository)
        with pytest.raises(ValueError, match="too large"):
            pipeline.ingest("plan.txt", "text/plain", b"Week 1 Monday drills")


# ── Reprocessing ────────────────────────────────────────────────────

class TestReprocess:

    def test_new_version_keeps_old(self, pipeline, repository, soccer_text):
        first = pipeline.ingest("u12.txt", "text/plain", soccer_text.encode())
        second = pipeline.reprocess(first.document.id)

        assert second.plan.version == 2
        assert second.integrity is not None
        plans = repository.list_plans(source_document=first.document.id)
        assert [p.version for p in plans] == [1, 2]
        assert repository.get_plan(first.plan.id).to_dict() == first.plan.to_dict()
        assert second.plan.derived_fields() == first.plan.derived_fields()

    def test_missing_payload_requires_reupload(self, pipeline, store, repository, soccer_text):
        first = pipeline.ingest("u12.txt", "text/plain", soccer_text.encode())
        store.delete(PAYLOAD_PREFIX + first.document.id)

        result = pipeline.reprocess(first.document.id)

        assert result.plan is None
        assert result.integrity.requires_reupload is True
        assert len(repository.list_plans()) == 1

    def test_unknown_document(self, pipeline):
        with pytest.raises(KeyError):
            pipeline.process_document("doc_nope")


# ── Concurrency ─────────────────────────────────────────────────────

class TestSerialization:

    def test_same_document_processed_one_at_a_time(self, pipeline, repository, soccer_text):
        first = pipeline.ingest("u12.txt", "text/plain", soccer_text.encode())
        original = pipeline.assembler.assemble
        active = {"now": 0, "max": 0}
        guard = threading.Lock()

        def tracked(*args, **kwargs):
            with guard:
                active["now"] += 1
                active["max"] = max(active["max"], active["now"])
            time.sleep(0.05)
            try:
                return original(*args, **kwargs)
            finally:
                with guard:
                    active["now"] -= 1

        pipeline.assembler.assemble = tracked
        errors = []

        def worker():
            try:
                pipeline.process_document(first.document.id)
            except Exception as e:  # surfaced through the assertion below
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert active["max"] == 1
        versions = sorted(p.version for p in repository.list_plans(source_document=first.document.id))
        assert versions == [1, 2, 3, 4]

    def test_integrity_write_during_processing_is_kept(self, pipeline, repository, soccer_text):
        first = pipeline.ingest("u12.txt", "text/plain", soccer_text.encode())
        doc_id = first.document.id
        original = pipeline.assembler.assemble

        def assemble_after_check(*args, **kwargs):
            pipeline.integrity.check_and_repair(doc_id)
            return original(*args, **kwargs)

        pipeline.assembler.assemble = assemble_after_check
        pipeline.process_document(doc_id)

        stored = repository.get_document(doc_id)
        assert stored.last_integrity_check is not None
        assert stored.integrity_status != "unchecked"
        assert stored.processed is True

    def test_integrity_check_waits_for_reprocess(self, pipeline, repository, soccer_text):
        first = pipeline.ingest("u12.txt", "text/plain", soccer_text.encode())
        doc_id = first.document.id
        original = pipeline.assembler.assemble
        started = threading.Event()
        events = []

        def slow(*args, **kwargs):
            started.set()
            time.sleep(0.1)
            events.append("assembled")
            return original(*args, **kwargs)

        pipeline.assembler.assemble = slow
        worker = threading.Thread(target=pipeline.reprocess, args=(doc_id,))
        worker.start()
        assert started.wait(5)
        report = pipeline.check_integrity(doc_id)
        events.append("checked")
        worker.join()

        assert events == ["assembled", "checked"]
        assert report.status is not None
        assert repository.get_document(doc_id).processed is True
