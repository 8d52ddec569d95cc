"""Document and plan collections on top of the key-value store.

Documents live under `coaching_documents`, their bytes under
`document_payload:<id>`, plans under `training_plans`, and the sessions
extracted for a document under `session_cache:<id>`.
"""

import logging
import threading
import uuid
from datetime import datetime

from src.memory.records import DocumentRecord, TrainingPlan, WeekRecord
from src.memory.store import (
    DOCUMENTS_KEY,
    PAYLOAD_PREFIX,
    PLANS_KEY,
    SESSION_CACHE_PREFIX,
    KeyValueStore,
)

log = logging.getLogger(__name__)

DEFAULT_PLATFORM_TAG = "python"


def _now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


class DocumentRepository:
    """CRUD for uploaded documents, their payloads, and the plans built from them."""

    def __init__(self, store: KeyValueStore, platform_tag: str = DEFAULT_PLATFORM_TAG):
        self.store = store
        self.platform_tag = platform_tag
        self._lock = threading.RLock()

    # ── Documents ────────────────────────────────────────────────────

    def add_document(self, original_name: str, declared_type: str, content: bytes) -> DocumentRecord:
        """Register an upload and store its payload. Returns the new record."""
        doc = DocumentRecord(
            id=f"doc_{uuid.uuid4().hex[:12]}",
            original_name=original_name,
            declared_type=declared_type,
            size=len(content),
            uploaded_at=_now_iso(),
            platform_tag=self.platform_tag,
        )
        with self._lock:
            self.store.set_bytes(PAYLOAD_PREFIX + doc.id, content)
            docs = self._load_documents()
            docs.append(doc.to_dict())
            self.store.set(DOCUMENTS_KEY, docs)
        log.info("Stored document %s (%s, %d bytes)", doc.id, original_name, doc.size)
        return doc

    def _load_documents(self) -> list[dict]:
        return self.store.get(DOCUMENTS_KEY, []) or []

    def list_documents(self) -> list[DocumentRecord]:
        return [DocumentRecord.from_dict(d) for d in self._load_documents()]

    def get_document(self, document_id: str) -> DocumentRecord | None:
        for data in self._load_documents():
            if data.get("id") == document_id:
                return DocumentRecord.from_dict(data)
        return None

    def update_document(self, doc: DocumentRecord) -> None:
        with self._lock:
            docs = self._load_documents()
            for i, data in enumerate(docs):
                if data.get("id") == doc.id:
                    docs[i] = doc.to_dict()
                    break
            else:
                raise KeyError(f"Unknown document: {doc.id}")
            self.store.set(DOCUMENTS_KEY, docs)

    def load_payload(self, document_id: str) -> bytes | None:
        return self.store.get_bytes(PAYLOAD_PREFIX + document_id)

    # ── Plans ────────────────────────────────────────────────────────

    def _load_plans(self) -> list[dict]:
        return self.store.get(PLANS_KEY, []) or []

    def save_plan(self, plan: TrainingPlan) -> None:
        """Append a plan version. Earlier versions are kept untouched."""
        with self._lock:
            plans = self._load_plans()
            if any(p.get("id") == plan.id for p in plans):
                raise ValueError(f"Plan {plan.id} already stored; bump the version instead")
            plans.append(plan.to_dict())
            self.store.set(PLANS_KEY, plans)

    def list_plans(self, source_document: str | None = None) -> list[TrainingPlan]:
        plans = [TrainingPlan.from_dict(p) for p in self._load_plans()]
        if source_document:
            plans = [p for p in plans if p.source_document == source_document]
        return plans

    def get_plan(self, plan_id: str) -> TrainingPlan | None:
        for data in self._load_plans():
            if data.get("id") == plan_id:
                return TrainingPlan.from_dict(data)
        return None

    def latest_plan_for(self, document_id: str) -> TrainingPlan | None:
        plans = self.list_plans(source_document=document_id)
        if not plans:
            return None
        return max(plans, key=lambda p: p.version)

    def next_version(self, document_id: str) -> int:
        latest = self.latest_plan_for(document_id)
        return latest.version + 1 if latest else 1

    # ── Session cache ────────────────────────────────────────────────

    def cache_sessions(self, document_id: str, weeks: list[WeekRecord]) -> None:
        self.store.set(SESSION_CACHE_PREFIX + document_id, {
            "cached_at": _now_iso(),
            "weeks": [w.to_dict() for w in weeks],
        })

    def cached_sessions(self, document_id: str) -> list[WeekRecord]:
        data = self.store.get(SESSION_CACHE_PREFIX + document_id)
        if not data:
            return []
        return [WeekRecord.from_dict(w) for w in data.get("weeks", [])]
