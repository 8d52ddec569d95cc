"""Integrity checker for stored documents.

Four checks run before a stored document is (re)extracted:

    basic        metadata present and plausible
    storage      payload present, size within 10% of the recorded size
    readability  payload looks like what it claims to be
    processing   a decoder for the format is available

A missing timestamp, platform tag or processed flag is repaired in place.
A missing payload cannot be repaired: the report says the document must be
re-uploaded, and require_payload() raises StorageIntegrityFailure.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from src.errors import StorageIntegrityFailure
from src.ingest.extractors import (
    CSV,
    TEXT,
    ExtractorCapabilities,
    decode_text_bytes,
    resolve_format,
    sniff_format,
)
from src.memory.documents import DocumentRepository
from src.memory.records import DocumentRecord

log = logging.getLogger(__name__)

SIZE_TOLERANCE = 0.10
REPLACEMENT_CHAR_RATIO = 0.05
RECHECK_INTERVAL = timedelta(hours=24)

PASSED = "passed"
WARNING = "warning"
FAILED = "failed"
ERROR = "error"

RECOMMENDATIONS = {
    "basic": "Fix file metadata issues before processing",
    "storage": "Re-upload the file to fix storage issues",
    "readability": "Check if file is corrupted or in wrong format",
    "processing": "Use a different file format for better compatibility",
}
ALL_CLEAR = "File integrity verified - ready for processing"


def _now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


@dataclass
class CheckResult:
    status: str = PASSED
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def fail(self, issue: str) -> None:
        self.status = FAILED
        self.issues.append(issue)

    def warn(self, warning: str) -> None:
        if self.status == PASSED:
            self.status = WARNING
        self.warnings.append(warning)


@dataclass
class IntegrityReport:
    document_id: str
    status: str
    checks: dict[str, CheckResult]
    recommendations: list[str]
    requires_reupload: bool = False
    repairs: list[str] = field(default_factory=list)
    checked_at: str = field(default_factory=_now_iso)

    def to_dict(self) -> dict:
        return {
            "document_id": self.document_id,
            "status": self.status,
            "checks": {name: vars(c) for name, c in self.checks.items()},
            "recommendations": self.recommendations,
            "requires_reupload": self.requires_reupload,
            "repairs": self.repairs,
            "checked_at": self.checked_at,
        }


def overall_status(checks: dict[str, CheckResult]) -> str:
    statuses = [c.status for c in checks.values()]
    if ERROR in statuses:
        return ERROR
    if FAILED in statuses:
        return FAILED
    if all(s == PASSED for s in statuses):
        return PASSED
    return WARNING


def recommendations_for(checks: dict[str, CheckResult]) -> list[str]:
    recs = [RECOMMENDATIONS[name] for name, c in checks.items() if c.status in (FAILED, ERROR)]
    return recs or [ALL_CLEAR]


class IntegrityChecker:
    """Check and repair stored documents."""

    def __init__(self, repository: DocumentRepository, capabilities: ExtractorCapabilities | None = None):
        self.repository = repository
        self.capabilities = capabilities or ExtractorCapabilities()

    # ── Individual checks ────────────────────────────────────────────

    def check_basic(self, doc: DocumentRecord) -> CheckResult:
        result = CheckResult()
        if not doc.id:
            result.fail("Document id is missing")
        if not doc.original_name:
            result.fail("Original file name is missing")
        if not doc.declared_type:
            result.fail("Declared file type is missing")
        if doc.size <= 0:
            result.fail(f"Recorded size is invalid ({doc.size})")
        if not doc.uploaded_at:
            result.warn("Upload timestamp is missing")
        if not doc.platform_tag:
            result.warn("Platform tag is missing")
        return result

    def check_storage(self, doc: DocumentRecord, payload: bytes | None) -> CheckResult:
        result = CheckResult()
        if payload is None:
            result.fail("Binary payload is missing; the document must be re-uploaded")
            return result
        if doc.size > 0 and abs(len(payload) - doc.size) / doc.size > SIZE_TOLERANCE:
            result.warn(f"Stored size {len(payload)} differs from recorded size {doc.size}")
        return result

    def check_readability(self, doc: DocumentRecord, payload: bytes | None) -> CheckResult:
        result = CheckResult()
        if payload is None:
            result.fail("Nothing to read")
            return result
        if not payload:
            result.fail("Payload is empty")
            return result
        fmt = resolve_format(doc.declared_type, doc.original_name)
        sniffed = sniff_format(payload)
        if fmt in (CSV, TEXT):
            if sniffed is not None:
                result.fail(f"Text document contains {sniffed} binary content")
            else:
                text = decode_text_bytes(payload)
                if text.count("�") / max(1, len(text)) > REPLACEMENT_CHAR_RATIO:
                    result.warn("Text contains many undecodable characters")
        elif fmt is not None and sniffed != fmt:
            result.fail(f"Content does not look like a valid {fmt} file")
        return result

    def check_processing(self, doc: DocumentRecord) -> CheckResult:
        result = CheckResult()
        fmt = resolve_format(doc.declared_type, doc.original_name)
        if fmt is None:
            result.fail(f"Unsupported format: {doc.declared_type}")
        elif not self.capabilities.supports(fmt):
            result.fail(f"No decoder available for {fmt} documents")
        if not doc.processed:
            result.warn("Document has not been processed yet")
        return result

    # ── Orchestration ────────────────────────────────────────────────

    def check(self, doc: DocumentRecord) -> IntegrityReport:
        """Run all checks. A check that raises is recorded as an error, not propagated."""
        checks: dict[str, CheckResult] = {}
        payload = None
        try:
            payload = self.repository.load_payload(doc.id)
        except (OSError, ValueError) as e:
            log.warning("Could not load payload for %s: %s", doc.id, e)
            checks["storage"] = CheckResult(status=ERROR, issues=[f"Payload could not be loaded: {e}"])

        runners = {
            "basic": lambda: self.check_basic(doc),
            "storage": lambda: self.check_storage(doc, payload),
            "readability": lambda: self.check_readability(doc, payload),
            "processing": lambda: self.check_processing(doc),
        }
        for name, runner in runners.items():
            if name in checks:
                continue
            try:
                checks[name] = runner()
            except Exception as e:
                log.warning("Integrity check %s failed for %s: %s", name, doc.id, e)
                checks[name] = CheckResult(status=ERROR, issues=[str(e)])

        missing_payload = payload is None and checks["storage"].status != ERROR
        return IntegrityReport(
            document_id=doc.id,
            status=overall_status(checks),
            checks=checks,
            recommendations=recommendations_for(checks),
            requires_reupload=missing_payload,
        )

    def repair(self, doc: DocumentRecord, has_plan: bool = False, platform_tag: str | None = None) -> list[str]:
        """Fill repairable metadata gaps in place. Returns the actions taken."""
        actions = []
        if not doc.uploaded_at:
            doc.uploaded_at = _now_iso()
            actions.append("Added missing upload timestamp")
        if not doc.platform_tag:
            doc.platform_tag = platform_tag or self.repository.platform_tag
            actions.append(f"Added platform tag '{doc.platform_tag}'")
        if has_plan and not doc.processed:
            doc.processed = True
            doc.processed_at = doc.processed_at or _now_iso()
            actions.append("Marked document as processed")
        if actions:
            doc.repaired_at = _now_iso()
        return actions

    def check_and_repair(self, document_id: str, repair: bool = True) -> IntegrityReport:
        doc = self.repository.get_document(document_id)
        if doc is None:
            raise KeyError(f"Unknown document: {document_id}")
        repairs = []
        if repair:
            has_plan = self.repository.latest_plan_for(doc.id) is not None
            repairs = self.repair(doc, has_plan=has_plan)
        report = self.check(doc)
        report.repairs = repairs
        doc.integrity_status = report.status
        doc.last_integrity_check = report.checked_at
        self.repository.update_document(doc)
        if report.requires_reupload:
            log.warning("Document %s (%s) must be re-uploaded", doc.id, doc.original_name)
        return report

    def require_payload(self, doc: DocumentRecord) -> bytes:
        payload = self.repository.load_payload(doc.id)
        if payload is None:
            raise StorageIntegrityFailure(doc.id, "binary payload missing; re-upload required")
        return payload

    def maintain(self, now: datetime | None = None) -> dict:
        """Re-check documents not checked within the last 24 hours."""
        now = now or datetime.now()
        summary = {"checked": 0, "repaired": 0, "needs_reupload": [], "skipped": 0}
        for doc in self.repository.list_documents():
            if doc.last_integrity_check:
                try:
                    recent = now - datetime.fromisoformat(doc.last_integrity_check) < RECHECK_INTERVAL
                except (TypeError, ValueError):
                    log.warning("Document %s has a malformed last check time, re-checking", doc.id)
                    recent = False
                if recent:
                    summary["skipped"] += 1
                    continue
            report = self.check_and_repair(doc.id)
            summary["checked"] += 1
            if report.repairs:
                summary["repaired"] += 1
            if report.requires_reupload:
                summary["needs_reupload"].append(doc.id)
        log.info("Integrity maintenance: %s", summary)
        return summary
