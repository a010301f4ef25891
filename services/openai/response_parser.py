"""Helpers to extract data from Responses, Images and Realtime payloads."""

from __future__ import annotations

from typing import Any, Dict, Optional


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read ``name`` from an SDK model or a plain dict."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def extract_text(response: Any) -> str:
    """Return the concatenated output_text of a Responses API result."""
    parts = []
    for item in _field(response, "output", None) or []:
        if _field(item, "type") != "message":
            continue
        for content in _field(item, "content", None) or []:
            if _field(content, "type") == "output_text":
                parts.append(_field(content, "text", "") or "")
    if parts:
        return "".join(parts).strip()
    return (_field(response, "output_text", "") or "").strip()


def extract_image_b64(response: Any) -> Optional[str]:
    """Return the first base64 image of an Images API result, if any."""
    data = _field(response, "data", None) or []
    if not data:
        return None
    return _field(data[0], "b64_json", None) or None


def extract_usage(response: Any) -> Dict[str, Optional[int]]:
    """Return token usage if present."""
    usage = _field(response, "usage", None)
    return {
        "input_tokens": _field(usage, "input_tokens", None) if usage else None,
        "output_tokens": _field(usage, "output_tokens", None) if usage else None,
    }


def event_type(event: Any) -> str:
    return _field(event, "type", "") or ""


def event_field(event: Any, name: str, default: Any = None) -> Any:
    """Read a (possibly nested, dotted) field from a realtime server event."""
    value = event
    for part in name.split("."):
        value = _field(value, part, None)
        if value is None:
            return default
    return value
