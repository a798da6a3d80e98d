"""
Gemini client wrapper.

Provides:
  - generate_text()        — one-shot prompt → text
  - chat_reply()           — multi-turn chat with prior history
  - parse_json_response()  — strip markdown fences and parse the JSON payload

Every call raises GenerationError on failure; callers decide whether that is
fatal (question generation) or replaced by a static fallback (feedback,
mentor chat).
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any

from edu_service.config import get_settings
from edu_service.errors import GenerationError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|html)?", re.IGNORECASE)


def _get_model():
    """
    Returns a configured Gemini GenerativeModel.
    Raises GenerationError when no API key is configured.
    """
    import google.generativeai as genai

    settings = get_settings()
    if not settings.gemini_api_key:
        raise GenerationError("GEMINI_API_KEY is not configured")
    genai.configure(api_key=settings.gemini_api_key)
    return genai.GenerativeModel(settings.gemini_model)


def generate_text(prompt: str) -> str:
    """Send a prompt to Gemini and return the stripped text response."""
    try:
        response = _get_model().generate_content(prompt)
        text = response.text
    except GenerationError:
        raise
    except Exception as exc:
        logger.error("Gemini generate_content failed: %s", exc)
        raise GenerationError(f"language model call failed: {exc}") from exc

    if not text or not text.strip():
        raise GenerationError("language model returned an empty response")
    return text.strip()


def chat_reply(history: list[dict[str, str]], message: str) -> str:
    """
    Continue a conversation.

    ``history`` items look like ``{"role": "user" | "model", "text": "..."}``.
    """
    gemini_history = [
        {"role": h["role"], "parts": [h["text"]]}
        for h in history
        if h.get("text")
    ]
    try:
        chat = _get_model().start_chat(history=gemini_history)
        response = chat.send_message(message)
        text = response.text
    except GenerationError:
        raise
    except Exception as exc:
        logger.error("Gemini chat failed: %s", exc)
        raise GenerationError(f"chat call failed: {exc}") from exc

    if not text or not text.strip():
        raise GenerationError("language model returned an empty chat reply")
    return text.strip()


def strip_fences(raw: str) -> str:
    return _FENCE_RE.sub("", raw).strip()


def parse_json_response(raw: str) -> Any:
    """
    Strip markdown code fences and parse JSON.  When the model wraps the
    payload in prose, the outermost ``[...]`` or ``{...}`` span is used.
    Raises GenerationError when nothing parses.
    """
    if not raw:
        raise GenerationError("empty response")
    text = strip_fences(raw)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    for open_ch, close_ch in (("[", "]"), ("{", "}")):
        start, end = text.find(open_ch), text.rfind(close_ch)
        if start != -1 and end > start:
            try:
                return json.loads(text[start:end + 1])
            except json.JSONDecodeError:
                continue
    raise GenerationError("response is not valid JSON")
