"""LLM backend for the remote enhancement tier (Gemini via google-genai SDK)."""

import os

from google import genai
from google.genai import errors as genai_errors

from src.config import DEFAULT_REMOTE_MODEL
from src.errors import (
    RemoteError,
    RemoteInfrastructureOutage,
    RemoteQuotaExceeded,
    RemoteRateLimited,
    RemoteUnavailable,
)

MODEL = DEFAULT_REMOTE_MODEL

_QUOTA_MARKERS = ("quota", "billing", "exceeded your current")


def get_client(api_key: str | None = None) -> genai.Client:
    """Create a Gemini client from an explicit key or GEMINI_API_KEY."""
    api_key = api_key or os.environ.get("GEMINI_API_KEY")
    if not api_key:
        raise ValueError("GEMINI_API_KEY not set in environment")
    return genai.Client(api_key=api_key)


def generate(
    client: genai.Client,
    prompt: str,
    model: str = MODEL,
    system_instruction: str | None = None,
    temperature: float = 0.7,
    max_output_tokens: int | None = None,
) -> str:
    """Single-turn text generation. Returns the response text (may be empty)."""
    response = client.models.generate_content(
        model=model,
        contents=[genai.types.Content(role="user", parts=[genai.types.Part(text=prompt)])],
        config=genai.types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=temperature,
            max_output_tokens=max_output_tokens,
        ),
    )
    return response.text or ""


def classify_error(exc: Exception) -> RemoteError:
    """Map SDK and transport failures onto the remote error taxonomy."""
    if isinstance(exc, RemoteError):
        return exc
    detail = f"{getattr(exc, 'message', '') or ''} {exc}".lower()
    if isinstance(exc, genai_errors.ClientError):
        if getattr(exc, "code", None) == 429:
            if any(marker in detail for marker in _QUOTA_MARKERS):
                return RemoteQuotaExceeded(str(exc))
            return RemoteRateLimited(str(exc))
        if getattr(exc, "code", None) in (401, 403):
            return RemoteUnavailable(str(exc))
        return RemoteInfrastructureOutage(str(exc))
    if isinstance(exc, genai_errors.ServerError):
        return RemoteInfrastructureOutage(str(exc))
    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        return RemoteInfrastructureOutage(f"Transport failure: {exc}")
    return RemoteInfrastructureOutage(f"Unexpected remote failure: {exc}")
