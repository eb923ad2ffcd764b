"""Helpers to pull the classification JSON out of free-text model replies."""

import json
from typing import Any, Dict, List, Optional

from models.analysis import HEALTH_INDICATOR_KEYS, SIZE_BUCKETS

_INDICATOR_ALIASES = {
    "dehydration": ("dehydration",),
    "blood_presence": ("bloodPresence", "blood_presence"),
    "unusual_color": ("unusualColor", "unusual_color"),
    "consistency_issues": ("consistencyIssues", "consistency_issues"),
}


def extract_json_object(text: str) -> Dict[str, Any]:
    """Return the first JSON object embedded in `text`.

    Each `{` is tried as the start of an object in turn, so leading prose or
    stray braces do not hide a later valid object.

    Raises:
        ValueError: If no JSON object can be decoded from the text.
    """
    decoder = json.JSONDecoder()
    start = text.find("{") if text else -1
    while start != -1:
        try:
            value, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    raise ValueError("No valid JSON found in response")


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def _bristol(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        score = int(value)
    except (TypeError, ValueError):
        return None
    return score if 1 <= score <= 7 else None


def _size(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    bucket = value.strip().lower()
    return bucket if bucket in SIZE_BUCKETS else None


def _warnings(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None and str(item).strip()]


def parse_classification(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize a decoded classification object into record fields.

    Out-of-range scores, unknown size buckets, and non-boolean flags become
    None rather than errors.
    """
    raw_indicators = payload.get("healthIndicators") or payload.get("health_indicators") or {}
    if not isinstance(raw_indicators, dict):
        raw_indicators = {}
    indicators: Dict[str, Optional[bool]] = {}
    for key in HEALTH_INDICATOR_KEYS:
        value = None
        for alias in _INDICATOR_ALIASES[key]:
            if alias in raw_indicators:
                value = _as_bool(raw_indicators[alias])
                break
        indicators[key] = value

    notes = payload.get("notes")
    return {
        "is_relevant": _as_bool(payload.get("isRelevant", payload.get("is_relevant"))) or False,
        "bristol_score": _bristol(payload.get("bristolScore", payload.get("bristol_score"))),
        "size_estimation": _size(payload.get("sizeEstimation", payload.get("size_estimation"))),
        "health_indicators": indicators,
        "warnings": _warnings(payload.get("warnings")),
        "notes": str(notes) if notes else None,
    }
