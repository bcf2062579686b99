import json
import logging
import re
from typing import Any, Iterable

logger = logging.getLogger("ptw.hazards")


def serialize_hazard_notes(notes: dict[str, str] | None) -> str:
    if not notes:
        return "{}"
    return json.dumps({str(key): str(value) for key, value in notes.items()}, ensure_ascii=False)


def parse_hazard_notes(raw: Any) -> dict[str, str]:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        data = raw
    else:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("hazard notes are not valid JSON, ignoring: %r", raw)
            return {}
    if not isinstance(data, dict):
        return {}
    return {str(key): "" if value is None else str(value) for key, value in data.items()}


def orphan_note_keys(notes: dict[str, str], selected_hazards: Iterable[str]) -> list[str]:
    selected = set(selected_hazards or [])
    return sorted(key for key in notes if key not in selected)


def parse_string_list(value: Any) -> list[str]:
    """Accept a list, a JSON array string, or a comma/whitespace separated string."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if str(item).strip()]
    if not isinstance(value, str):
        return [str(value)]
    text = value.strip()
    if not text:
        return []
    if "," in text and not text.startswith("["):
        return [part.strip() for part in text.split(",") if part.strip()]
    try:
        parsed = json.loads(text)
    except ValueError:
        return [part for part in re.split(r"[,\s]+", text) if part]
    if isinstance(parsed, list):
        return [str(item).strip() for item in parsed if str(item).strip()]
    return [text]
