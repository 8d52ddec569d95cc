"""Format extractors: turn an uploaded byte buffer into plain text.

Supported families: word (.docx), excel (.xlsx), csv, text and pdf (text
layer only). The declared mime type, the file extension and the sniffed
container type must agree before a structured decode is attempted; any
disagreement, decode failure, missing decoder library or empty result
yields a descriptive fallback block instead of an exception.

Public API:
    probe_capabilities(timeout) -> ExtractorCapabilities
    DocumentExtractor(config).init() -> ExtractorCapabilities
    DocumentExtractor.extract(content, filename, declared_type) -> ExtractionResult
    validate_upload(filename, declared_type, size, max_bytes) -> list[str]
"""

import concurrent.futures
import csv
import importlib.util
import io
import logging
import re
import xml.etree.ElementTree as ET
import zipfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import PurePath

from src.config import PlanForgeConfig
from src.errors import (
    DecoderLibraryUnavailable,
    EmptyOrCorruptContent,
    PlanForgeError,
    UnsupportedFormat,
)

log = logging.getLogger(__name__)

WORD = "word"
EXCEL = "excel"
CSV = "csv"
TEXT = "text"
PDF = "pdf"

FORMAT_LABELS = {
    WORD: "Word",
    EXCEL: "Excel",
    CSV: "CSV",
    TEXT: "Text",
    PDF: "PDF",
}

MIME_FAMILIES = {
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": WORD,
    "application/msword": WORD,
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": EXCEL,
    "application/vnd.ms-excel": EXCEL,
    "text/csv": CSV,
    "application/csv": CSV,
    "text/plain": TEXT,
    "application/pdf": PDF,
}

EXTENSION_FAMILIES = {
    ".docx": WORD,
    ".doc": WORD,
    ".xlsx": EXCEL,
    ".xls": EXCEL,
    ".csv": CSV,
    ".txt": TEXT,
    ".pdf": PDF,
}

# csv and plain text are both line-oriented text; either label decodes the other
_TEXT_FAMILIES = {CSV, TEXT}

RECOMMENDED_FORMATS = [
    ".docx (Word document)",
    ".txt (plain text)",
    ".csv (comma-separated values)",
]

_W_NS = "{http://schemas.openxmlformats.org/wordprocessingml/2006/main}"
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

OPTIONAL_LIBRARIES = ("openpyxl", "pypdf")


@dataclass
class ExtractorCapabilities:
    """Which optional decoders are importable in this process."""

    openpyxl: bool = False
    pypdf: bool = False
    degraded: bool = False
    probed_at: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))

    def supports(self, fmt: str) -> bool:
        if fmt == EXCEL:
            return self.openpyxl
        if fmt == PDF:
            return self.pypdf
        return fmt in FORMAT_LABELS

    def to_dict(self) -> dict:
        return {
            "openpyxl": self.openpyxl,
            "pypdf": self.pypdf,
            "degraded": self.degraded,
            "probed_at": self.probed_at,
        }


@dataclass
class ExtractionResult:
    text: str
    format: str | None
    is_fallback: bool = False
    issues: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)


def _probe_libraries() -> dict[str, bool]:
    return {name: importlib.util.find_spec(name) is not None for name in OPTIONAL_LIBRARIES}


def probe_capabilities(timeout: float = 5.0) -> ExtractorCapabilities:
    """Probe optional decoder libraries once, bounded by `timeout` seconds."""
    pool = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    future = pool.submit(_probe_libraries)
    try:
        found = future.result(timeout=timeout)
    except concurrent.futures.TimeoutError:
        log.warning("Decoder capability probe timed out after %.1fs, running degraded", timeout)
        return ExtractorCapabilities(degraded=True)
    finally:
        pool.shutdown(wait=False)
    caps = ExtractorCapabilities(**found)
    for name, ok in found.items():
        if not ok:
            log.warning("Optional decoder '%s' not installed; those uploads will get fallback text", name)
    return caps


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {units[unit]}"


def _extension(filename: str) -> str:
    return PurePath(filename or "").suffix.lower()


def resolve_format(declared_type: str, filename: str) -> str | None:
    """Map a declared mime type (first) or extension (second) to a format family."""
    mime = (declared_type or "").split(";")[0].strip().lower()
    if mime in MIME_FAMILIES:
        return MIME_FAMILIES[mime]
    return EXTENSION_FAMILIES.get(_extension(filename))


def sniff_format(content: bytes) -> str | None:
    """Identify binary containers by their content. Returns None for plain text."""
    if content.startswith(b"%PDF"):
        return PDF
    if content.startswith(b"PK"):
        try:
            with zipfile.ZipFile(io.BytesIO(content)) as archive:
                names = set(archive.namelist())
        except zipfile.BadZipFile:
            return None
        if "word/document.xml" in names:
            return WORD
        if "xl/workbook.xml" in names:
            return EXCEL
    return None


def _families_agree(a: str | None, b: str | None) -> bool:
    if a is None or b is None or a == b:
        return True
    return a in _TEXT_FAMILIES and b in _TEXT_FAMILIES


def validate_upload(filename: str, declared_type: str, size: int, max_bytes: int) -> list[str]:
    """Return a list of problems with an upload; empty when it is acceptable."""
    issues = []
    if not filename:
        issues.append("File name is missing")
    if not declared_type and not _extension(filename):
        issues.append("File type is missing")
    if resolve_format(declared_type, filename) is None:
        issues.append(f"Unsupported file type: {declared_type or _extension(filename) or 'unknown'}")
    if size > max_bytes:
        issues.append(f"File is too large ({format_file_size(size)}, limit {format_file_size(max_bytes)})")
    return issues


def clean_control_chars(text: str) -> str:
    return _CONTROL_CHARS.sub("", text)


def decode_text_bytes(content: bytes) -> str:
    """UTF-8 first (BOM tolerated), latin-1 when that fails."""
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        log.debug("UTF-8 decode failed, falling back to latin-1")
        return content.decode("latin-1")


# ---------------------------------------------------------------------------
# Decoders. Each raises a PlanForgeError subclass; extract() turns those into
# fallback text.
# ---------------------------------------------------------------------------

def _decode_word(content: bytes) -> str:
    try:
        with zipfile.ZipFile(io.BytesIO(content)) as archive:
            xml_payload = archive.read("word/document.xml")
        root = ET.fromstring(xml_payload)
    except (zipfile.BadZipFile, KeyError, ET.ParseError) as exc:
        raise EmptyOrCorruptContent(f"Word document could not be read: {exc}") from exc

    paragraphs = []
    for para in root.iter(f"{_W_NS}p"):
        parts = []
        for node in para.iter():
            if node.tag == f"{_W_NS}t" and node.text:
                parts.append(node.text)
            elif node.tag == f"{_W_NS}tab":
                parts.append("\t")
            elif node.tag in (f"{_W_NS}br", f"{_W_NS}cr"):
                parts.append("\n")
        paragraphs.append("".join(parts))
    return "\n".join(paragraphs)


def _decode_excel(content: bytes) -> str:
    import openpyxl

    try:
        wb = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as exc:
        raise EmptyOrCorruptContent(f"Spreadsheet could not be opened: {exc}") from exc

    lines = []
    try:
        for index, ws in enumerate(wb.worksheets, start=1):
            lines.append(f"Sheet {index}: {ws.title}")
            for row in ws.iter_rows(values_only=True):
                cells = [str(c).strip() for c in row if c is not None and str(c).strip()]
                if cells:
                    lines.append(" | ".join(cells))
            lines.append("")
    finally:
        wb.close()
    return "\n".join(lines)


def _decode_csv(content: bytes) -> str:
    text = decode_text_bytes(content)
    lines = []
    for row in csv.reader(io.StringIO(text)):
        cells = [c.strip() for c in row if c.strip()]
        if cells:
            lines.append(" | ".join(cells))
    return "\n".join(lines)


def _decode_pdf(content: bytes) -> str:
    from pypdf import PdfReader

    try:
        reader = PdfReader(io.BytesIO(content))
        pages = [(page.extract_text() or "").strip() for page in reader.pages]
    except Exception as exc:
        raise EmptyOrCorruptContent(f"PDF text extraction failed: {exc}") from exc
    text = "\n\n".join(p for p in pages if p)
    if not text:
        raise EmptyOrCorruptContent("PDF has no text layer (scanned or image-only document)")
    return text


_DECODERS = {
    WORD: _decode_word,
    EXCEL: _decode_excel,
    CSV: _decode_csv,
    TEXT: decode_text_bytes,
    PDF: _decode_pdf,
}

_REQUIRED_LIBRARY = {EXCEL: "openpyxl", PDF: "pypdf"}


class DocumentExtractor:
    """Byte-to-text front end for every supported upload format."""

    def __init__(self, config: PlanForgeConfig | None = None,
                 capabilities: ExtractorCapabilities | None = None,
                 platform_tag: str = "python"):
        self.config = config or PlanForgeConfig()
        self.capabilities = capabilities
        self.platform_tag = platform_tag

    def init(self) -> ExtractorCapabilities:
        if self.capabilities is None:
            self.capabilities = probe_capabilities(self.config.init_timeout)
        return self.capabilities

    def extract(self, content: bytes, filename: str, declared_type: str) -> ExtractionResult:
        """Decode `content`. Never raises for bad input; check `is_fallback`."""
        caps = self.init()
        fmt = resolve_format(declared_type, filename)
        content = content or b""
        try:
            if fmt is None:
                raise UnsupportedFormat(declared_type, filename)
            self._check_type_agreement(fmt, content, filename, declared_type)
            if not content:
                raise EmptyOrCorruptContent("File is empty (0 bytes)")
            if fmt in _REQUIRED_LIBRARY and not caps.supports(fmt):
                raise DecoderLibraryUnavailable(_REQUIRED_LIBRARY[fmt])
            text = clean_control_chars(_DECODERS[fmt](content))
            if not text.strip():
                raise EmptyOrCorruptContent("No readable text was found in the document")
        except PlanForgeError as exc:
            log.warning("Extraction of %s fell back: %s", filename, exc)
            return self._fallback(fmt, filename, declared_type, len(content), [str(exc)])

        label = FORMAT_LABELS[fmt]
        return ExtractionResult(
            text=text,
            format=fmt,
            metadata={
                "label": f"{label} Document: {filename}",
                "extracted_length": len(text),
                "processing_method": f"{fmt}_decoder",
                "timestamp": datetime.now().isoformat(timespec="seconds"),
            },
        )

    def _check_type_agreement(self, fmt: str, content: bytes, filename: str, declared_type: str) -> None:
        mime = (declared_type or "").split(";")[0].strip().lower()
        by_mime = MIME_FAMILIES.get(mime)
        by_ext = EXTENSION_FAMILIES.get(_extension(filename))
        if not _families_agree(by_mime, by_ext):
            raise EmptyOrCorruptContent(
                f"File type mismatch: declared {declared_type} but extension is {_extension(filename)}"
            )
        sniffed = sniff_format(content)
        if sniffed is not None and not _families_agree(sniffed, fmt):
            raise EmptyOrCorruptContent(
                f"File type mismatch: declared as {FORMAT_LABELS[fmt]} but content is {FORMAT_LABELS[sniffed]}"
            )
        if sniffed is None and fmt in (WORD, EXCEL, PDF) and content:
            if fmt == WORD and _extension(filename) == ".doc":
                raise EmptyOrCorruptContent("Legacy binary .doc files are not supported; save as .docx")
            if fmt == EXCEL and _extension(filename) == ".xls":
                raise EmptyOrCorruptContent("Legacy binary .xls files are not supported; save as .xlsx")
            raise EmptyOrCorruptContent(f"Content is not a valid {FORMAT_LABELS[fmt]} file")

    def _fallback(self, fmt: str | None, filename: str, declared_type: str,
                  size: int, issues: list[str]) -> ExtractionResult:
        label = FORMAT_LABELS.get(fmt, "Unknown")
        now = datetime.now().isoformat(timespec="seconds")
        lines = [
            f"{label} Document: {filename or 'unnamed'}",
            "=" * 40,
            "",
            "PROCESSING NOTICE",
            f"This {label} document could not be fully processed.",
            "",
            f"Document: {filename or 'unnamed'}",
            f"Declared type: {declared_type or 'unknown'}",
            f"Size: {format_file_size(size)}",
            f"Processed: {now}",
            f"Platform: {self.platform_tag}",
            "",
            "Issues detected:",
            *[f"- {issue}" for issue in issues],
            "",
            "Recommended formats:",
            *[f"- {rec}" for rec in RECOMMENDED_FORMATS],
            "",
            "The document is stored and can be reprocessed once the issue is resolved.",
        ]
        return ExtractionResult(
            text="\n".join(lines),
            format=fmt,
            is_fallback=True,
            issues=issues,
            metadata={
                "label": f"{label} Document: {filename}",
                "extracted_length": 0,
                "processing_method": "fallback",
                "timestamp": now,
            },
        )
