"""Helpers for pulling JSON objects out of model responses."""

import json
import re

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def extract_json(text: str) -> dict:
    """Return the JSON object embedded in a model response.

    Tolerates code fences, prose around the object, trailing commas,
    truncated closing braces and raw newlines inside strings. Raises
    ValueError when nothing parses to an object.
    """
    text = _strip_fences(text.strip())
    candidates = [text]
    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        candidates.append(text[first:last + 1])
    elif first != -1:
        # truncated response: no closing brace at all
        candidates.append(text[first:])

    repairs = [
        lambda t: t,
        _drop_trailing_commas,
        _close_brackets,
        _escape_raw_newlines,
        lambda t: _escape_raw_newlines(_close_brackets(t)),
    ]
    for candidate in candidates:
        for repair in repairs:
            try:
                parsed = json.loads(repair(candidate))
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                return parsed

    raise ValueError(f"No JSON object found in model response:\n{text[:300]}")


def _strip_fences(text: str) -> str:
    if text.startswith("```"):
        text = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", text)).strip()
    return text


def _drop_trailing_commas(text: str) -> str:
    return re.sub(r",\s*([}\]])", r"\1", text)


def _close_brackets(text: str) -> str:
    """Append closers for unbalanced brackets, innermost first."""
    text = _drop_trailing_commas(text).rstrip().rstrip(",")
    stack = []
    in_string = escaped = False
    for char in text:
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = in_string
        elif char == '"':
            in_string = not in_string
        elif not in_string and char in "{[":
            stack.append("}" if char == "{" else "]")
        elif not in_string and char in "}]" and stack:
            stack.pop()
    if in_string:
        text += '"'
    return text + "".join(reversed(stack))


def _escape_raw_newlines(text: str) -> str:
    out = []
    in_string = escaped = False
    for char in text:
        if escaped:
            escaped = False
        elif char == "\\" and in_string:
            escaped = True
        elif char == '"':
            in_string = not in_string
        elif in_string and char in "\n\r\t":
            out.append({"\n": "\\n", "\r": "\\r", "\t": "\\t"}[char])
            continue
        out.append(char)
    return "".join(out)
