"""Best-effort recovery of JSON objects and fenced code from model text.

Nothing here raises on malformed input: absence of structured data is a
soft condition and is reported as ``None``.
"""

import json
import re
from typing import Any, Dict, Mapping, Optional

from .logging import get_logger


logger = get_logger(__name__)

_FENCE_MARKER = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\n?")
_TRAILING_COMMA = re.compile(r",\s*([\]}])")
_CONTEXT_CELL_KEYS = {"text", "parts"}


def _strip_fences(raw: str) -> str:
    return _FENCE_MARKER.sub("", raw).strip()


def extract_json(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Parse the outermost JSON object embedded in ``raw``.

    Fence markers are removed, then the text between the first ``{`` and
    the last ``}`` is parsed. A second attempt is made with trailing
    commas removed.

    Returns:
        The parsed object, or None if no object could be recovered
    """
    if not raw or not isinstance(raw, str):
        return None

    clean = _strip_fences(raw)
    start = clean.find("{")
    end = clean.rfind("}")
    if start == -1 or end <= start:
        return None

    candidate = clean[start:end + 1]
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.debug(f"JSON extraction failed ({e}), retrying without trailing commas")
        try:
            parsed = json.loads(_TRAILING_COMMA.sub(r"\1", candidate))
        except json.JSONDecodeError:
            return None

    if not isinstance(parsed, dict):
        return None
    return parsed


def extract_fenced_code(raw: Optional[str], language: str) -> Optional[str]:
    """Return the trimmed body of the first ```language block.

    The language tag is matched case-insensitively. A block left open at
    the end of the text is accepted.
    """
    if not raw:
        return None
    pattern = re.compile(
        r"```[ \t]*" + re.escape(language) + r"\b[^\n]*\n?(.*?)(?:```|\Z)",
        re.IGNORECASE | re.DOTALL,
    )
    match = pattern.search(raw)
    if match is None:
        return None
    return match.group(1).strip()


def coerce_json(value: Any) -> Optional[Dict[str, Any]]:
    """Accept an already-parsed mapping, a context cell, or raw text."""
    if value is None:
        return None
    if isinstance(value, Mapping):
        if set(value.keys()) - _CONTEXT_CELL_KEYS:
            return dict(value)
        return extract_json(value.get("text"))
    if isinstance(value, str):
        return extract_json(value)
    return None
