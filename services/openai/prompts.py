"""Prompt helpers for transcription, cleanup, summarization and illustration."""

from __future__ import annotations

from models.session_models import SessionConfig

WORKSHOP_VOCABULARY = [
    "NCIM",
    "National Center for Inspection and Monitoring",
    "KSA",
    "Vision 2030",
    "KPIs",
    "inspection",
    "monitoring",
    "governorates",
    "digital platform",
    "field inspectors",
    "compliance",
]


def transcription_prompt(config: SessionConfig, context: str) -> str:
    """Return the vocabulary/context prompt that biases recognition."""
    return "\n".join(
        [
            "Bilingual (Arabic + English) transcription for a live NCIM KSA strategy workshop.",
            f"Workshop type: {config.workshop_type}. Phase: {config.phase}.",
            'Keep short acknowledgements like "yes", "ok", "تمام", "أيوه". Use clear sentence boundaries.',
            f"Prefer these spellings/terms: {', '.join(WORKSHOP_VOCABULARY)}.",
            f"Recent context (for continuity): {context}" if context else "No recent context available.",
        ]
    )


def polish_system_prompt() -> str:
    return (
        "Clean up a short live transcript segment. Add punctuation and casing, fix obvious tokenisation issues, "
        "keep the original language (Arabic or English), and do not invent content."
    )


def polish_user_prompt(segment: str, context: str) -> str:
    return f"Recent context: {context or 'n/a'}\nRaw segment:\n{segment}\n\nReturn only the cleaned segment."


def summary_system_prompt() -> str:
    return (
        "You are assisting a live NCIM KSA strategy workshop. Summarise recent conversation into concise English "
        "bullet points suitable for an image prompt. Avoid names or sensitive data."
    )


def summary_user_prompt(config: SessionConfig, transcript: str) -> str:
    return (
        f"Workshop phase: {config.phase}.\n"
        f"Workshop type: {config.workshop_type}.\n"
        f"Transcript (last {config.summarization_window_minutes:g} minutes):\n{transcript}\n\n"
        "Return 3-6 crisp bullet points (max 180 words total)."
    )


def illustration_system_prompt() -> str:
    return (
        "Turn the provided workshop summary into a vivid, projector-friendly illustration prompt. "
        "Use English even if the summary is Arabic. Keep it concise (max 90 words). "
        "Avoid text inside the image and avoid realistic faces."
    )


def illustration_user_prompt(config: SessionConfig, summary: str) -> str:
    return (
        f"Workshop phase: {config.phase}.\n"
        f"Style preset: {config.style_preset}.\n"
        f"Summary bullets:\n{summary}\n"
        "Create one illustration prompt."
    )
