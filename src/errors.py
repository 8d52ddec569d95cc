"""Error taxonomy for PlanForge.

Extraction errors never reach callers of the pipeline; the extractors turn
them into fallback text. Remote-tier errors are caught by the enhancement
orchestrator and trigger a fall-through to the next tier. They are still
real exceptions so each layer can raise them and unit tests can assert on
them.
"""


class PlanForgeError(Exception):
    """Base class for all PlanForge errors."""


class UnsupportedFormat(PlanForgeError):
    """The declared type or extension is not one of the supported families."""

    def __init__(self, declared_type: str, filename: str = ""):
        self.declared_type = declared_type
        self.filename = filename
        super().__init__(f"Unsupported document format: {declared_type or '?'} ({filename})")


class EmptyOrCorruptContent(PlanForgeError):
    """The payload decoded to nothing usable, or could not be decoded at all."""


class DecoderLibraryUnavailable(PlanForgeError):
    """An optional decoder library (openpyxl, pypdf) is not installed."""

    def __init__(self, library: str):
        self.library = library
        super().__init__(f"Decoder library '{library}' is not available")


class RemoteError(PlanForgeError):
    """Base for failures of the remote inference tier."""


class RemoteUnavailable(RemoteError):
    """The remote tier is not configured (missing API key) or was disabled."""


class RemoteRateLimited(RemoteError):
    """The remote service rejected the call because of request rate."""


class RemoteQuotaExceeded(RemoteError):
    """The remote account has exhausted its quota."""


class RemoteInfrastructureOutage(RemoteError):
    """Transport failure or 5xx from the remote service."""


class StorageIntegrityFailure(PlanForgeError):
    """A stored document is missing its payload or has inconsistent metadata."""

    def __init__(self, document_id: str, reason: str):
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"Storage integrity failure for {document_id}: {reason}")


class InvalidTransition(PlanForgeError):
    """The enhancement state machine was asked for a transition it does not define."""
