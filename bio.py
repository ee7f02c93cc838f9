from __future__ import annotations

import threading
from typing import Optional

from flask import current_app, has_app_context

try:
    from openai import OpenAI
except Exception:
    OpenAI = None


PROMPT_TEMPLATE = (
    "You are a social worker at a shelter. Improve the following resident profile bio "
    "to be professional, empathetic, and concise.\n"
    "Resident Name: {name}\n"
    "Current Bio: {bio}\n"
    "Return only the improved bio text."
)

_in_flight: set[str] = set()
_in_flight_lock = threading.Lock()


def _log_error(message: str, *args) -> None:
    if has_app_context():
        current_app.logger.error(message, *args)


def build_prompt(current_bio: str, name: str) -> str:
    return PROMPT_TEMPLATE.format(name=name, bio=current_bio)


def _generate(prompt: str, api_key: str, model: str) -> str:
    client = OpenAI(api_key=api_key)
    response = client.chat.completions.create(
        model=model,
        messages=[{"role": "user", "content": prompt}],
    )
    return (response.choices[0].message.content or "").strip()


def improve_bio(
    current_bio: str,
    name: str,
    api_key: Optional[str],
    model: str,
    editor_key: Optional[str] = None,
) -> str:
    if not (current_bio or "").strip():
        return current_bio
    if not OpenAI or not api_key:
        return current_bio

    key = editor_key or name
    with _in_flight_lock:
        if key in _in_flight:
            return current_bio
        _in_flight.add(key)

    try:
        improved = _generate(build_prompt(current_bio, name), api_key, model)
    except Exception as e:
        _log_error("Bio enhancement error: %s", e)
        return current_bio
    finally:
        with _in_flight_lock:
            _in_flight.discard(key)

    return improved or current_bio
