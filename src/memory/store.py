"""JSON-file key-value store.

Each key is one JSON file under `<data_dir>/store/`. Keys may contain ':'
(e.g. `document_payload:<id>`); they are mapped to safe filenames. Byte
payloads are stored base64-encoded inside a small JSON envelope.
"""

import base64
import json
import logging
import re
import threading
from pathlib import Path

log = logging.getLogger(__name__)

DOCUMENTS_KEY = "coaching_documents"
PLANS_KEY = "training_plans"
PATTERN_LIBRARY_KEY = "document_pattern_library"
PAYLOAD_PREFIX = "document_payload:"
SESSION_CACHE_PREFIX = "session_cache:"

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


def _key_to_filename(key: str) -> str:
    return _UNSAFE.sub(lambda m: f"%{ord(m.group()):02x}", key) + ".json"


def _filename_to_key(name: str) -> str:
    stem = name[: -len(".json")]
    return re.sub(r"%([0-9a-f]{2})", lambda m: chr(int(m.group(1), 16)), stem)


class KeyValueStore:
    """Persistent JSON store keyed by string."""

    def __init__(self, data_dir: str | Path):
        self._dir = Path(data_dir) / "store"
        self._lock = threading.RLock()

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        return self._dir / _key_to_filename(key)

    def get(self, key: str, default=None):
        path = self._path(key)
        with self._lock:
            if not path.exists():
                return default
            return json.loads(path.read_text())

    def set(self, key: str, value) -> None:
        with self._lock:
            self._dir.mkdir(parents=True, exist_ok=True)
            path = self._path(key)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(json.dumps(value, indent=2))
            tmp.replace(path)

    def delete(self, key: str) -> bool:
        with self._lock:
            path = self._path(key)
            if path.exists():
                path.unlink()
                return True
            return False

    def keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            if not self._dir.exists():
                return []
            found = [_filename_to_key(p.name) for p in self._dir.glob("*.json")]
        return sorted(k for k in found if k.startswith(prefix))

    def get_bytes(self, key: str) -> bytes | None:
        envelope = self.get(key)
        if not envelope:
            return None
        if envelope.get("encoding") != "base64":
            log.warning("Unexpected payload encoding for %s: %s", key, envelope.get("encoding"))
            return None
        return base64.b64decode(envelope.get("data", ""))

    def set_bytes(self, key: str, content: bytes) -> None:
        self.set(key, {
            "encoding": "base64",
            "size": len(content),
            "data": base64.b64encode(content).decode("ascii"),
        })
