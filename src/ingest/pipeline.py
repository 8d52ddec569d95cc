"""Document pipeline: bytes -> text -> analysis -> training plan.

Wires the extractor, normalizer, analyzer, assembler, pattern library and
integrity checker together for one document at a time. Work on the same
document id is serialized with a per-document lock; different documents may
be processed from different threads.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime

from src.config import PlanForgeConfig
from src.errors import UnsupportedFormat
from src.ingest.analyzer import StructuralAnalyzer
from src.ingest.assembler import PlanAssembler
from src.ingest.extractors import (
    DocumentExtractor,
    ExtractionResult,
    ExtractorCapabilities,
    resolve_format,
    validate_upload,
)
from src.ingest.integrity import IntegrityChecker, IntegrityReport
from src.ingest.normalizer import normalize_text
from src.memory.documents import DocumentRepository
from src.memory.pattern_library import PatternLibrary, fingerprint_from
from src.memory.records import DocumentRecord, StructuralAnalysis, TrainingPlan
from src.memory.store import KeyValueStore

log = logging.getLogger(__name__)


@dataclass
class ProcessingResult:
    document: DocumentRecord
    extraction: ExtractionResult
    text: str
    analysis: StructuralAnalysis | None = None
    plan: TrainingPlan | None = None
    integrity: IntegrityReport | None = None
    issues: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.plan is not None and not self.extraction.is_fallback


class DocumentPipeline:
    """End-to-end processing of uploaded training-plan documents."""

    def __init__(
        self,
        config: PlanForgeConfig | None = None,
        store: KeyValueStore | None = None,
        repository: DocumentRepository | None = None,
        extractor: DocumentExtractor | None = None,
        pattern_library: PatternLibrary | None = None,
    ):
        self.config = config or PlanForgeConfig()
        self.store = store or KeyValueStore(self.config.data_dir)
        self.repository = repository or DocumentRepository(self.store)
        self.extractor = extractor or DocumentExtractor(self.config, platform_tag=self.repository.platform_tag)
        self.pattern_library = pattern_library or PatternLibrary(self.store, enabled=self.config.learning_enabled)
        self.analyzer = StructuralAnalyzer(pattern_library=self.pattern_library)
        self.assembler = PlanAssembler()
        self.integrity: IntegrityChecker | None = None
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def init(self) -> ExtractorCapabilities:
        caps = self.extractor.init()
        self.integrity = IntegrityChecker(self.repository, caps)
        return caps

    def _checker(self) -> IntegrityChecker:
        if self.integrity is None:
            self.init()
        return self.integrity

    def _document_lock(self, document_id: str) -> threading.RLock:
        with self._locks_guard:
            return self._locks.setdefault(document_id, threading.RLock())

    # ── Entry points ─────────────────────────────────────────────────

    def ingest(self, filename: str, declared_type: str, content: bytes,
               start_date: date | None = None) -> ProcessingResult:
        """Store a new upload and build its first plan version."""
        issues = validate_upload(filename, declared_type, len(content), self.config.max_upload_bytes)
        if resolve_format(declared_type, filename) is None:
            raise UnsupportedFormat(declared_type, filename)
        if len(content) > self.config.max_upload_bytes:
            raise ValueError("; ".join(issues))
        doc = self.repository.add_document(filename, declared_type, content)
        return self.process_document(doc.id, start_date=start_date)

    def process_document(self, document_id: str, start_date: date | None = None) -> ProcessingResult:
        """Extract, analyze and assemble a stored document into a new plan version."""
        with self._document_lock(document_id):
            doc = self.repository.get_document(document_id)
            if doc is None:
                raise KeyError(f"Unknown document: {document_id}")
            payload = self._checker().require_payload(doc)
            return self._process(doc, payload, start_date)

    def check_integrity(self, document_id: str, repair: bool = True) -> IntegrityReport:
        """Run the integrity checks on a stored document while holding its lock."""
        with self._document_lock(document_id):
            return self._checker().check_and_repair(document_id, repair=repair)

    def reprocess(self, document_id: str, start_date: date | None = None) -> ProcessingResult:
        """Integrity-check (and repair) a stored document, then process it again."""
        with self._document_lock(document_id):
            report = self._checker().check_and_repair(document_id)
            if report.requires_reupload:
                doc = self.repository.get_document(document_id)
                empty = ExtractionResult(text="", format=None, is_fallback=True, issues=report.recommendations)
                return ProcessingResult(document=doc, extraction=empty, text="", integrity=report,
                                        issues=list(report.recommendations))
            result = self.process_document(document_id, start_date=start_date)
        result.integrity = report
        return result

    # ── Internals ────────────────────────────────────────────────────

    def _process(self, doc: DocumentRecord, payload: bytes, start_date: date | None) -> ProcessingResult:
        extraction = self.extractor.extract(payload, doc.original_name, doc.declared_type)
        if extraction.is_fallback:
            log.warning("Document %s produced fallback text: %s", doc.id, "; ".join(extraction.issues))

        text = normalize_text(extraction.text)
        analysis = self.analyzer.analyze(text, extraction.format)
        version = self.repository.next_version(doc.id)
        plan = self.assembler.assemble(text, analysis, doc, version=version,
                                       fmt=extraction.format or "", start_date=start_date)
        self.repository.save_plan(plan)
        self.repository.cache_sessions(doc.id, plan.weeks)

        # fallback text describes the failure, not the document's structure
        if not extraction.is_fallback and analysis.organization_level != "unstructured":
            self.pattern_library.record(fingerprint_from(extraction.format, analysis))

        # re-read so fields written by the integrity checker are kept
        doc = self.repository.get_document(doc.id) or doc
        doc.processed = True
        doc.processed_at = datetime.now().isoformat(timespec="seconds")
        self.repository.update_document(doc)
        log.info(
            "Built plan %s from %s: %s, %d weeks, confidence %.2f",
            plan.id, doc.original_name, analysis.organization_level, len(plan.weeks), analysis.confidence,
        )
        return ProcessingResult(document=doc, extraction=extraction, text=text, analysis=analysis, plan=plan,
                                issues=list(extraction.issues))
