"""Domain models for sample analysis results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

HEALTH_INDICATOR_KEYS = ("dehydration", "blood_presence", "unusual_color", "consistency_issues")
SIZE_BUCKETS = ("small", "medium", "large")

BRISTOL_INTERPRETATIONS: Dict[int, str] = {
    1: "Severe constipation - Hard lumps",
    2: "Mild constipation - Lumpy and sausage-like",
    3: "Normal - Sausage shape with cracks",
    4: "Ideal - Smooth, soft sausage",
    5: "Lacking fiber - Soft blobs with clear edges",
    6: "Mild diarrhea - Fluffy, mushy pieces",
    7: "Severe diarrhea - Liquid, no solid pieces",
}


def empty_health_indicators() -> Dict[str, Optional[bool]]:
    """Return a health indicator mapping with every flag unset."""
    return {key: None for key in HEALTH_INDICATOR_KEYS}


def bristol_interpretation(score: Optional[int]) -> str:
    """Return the human-readable meaning of a Bristol score, or "Unknown"."""
    return BRISTOL_INTERPRETATIONS.get(score, "Unknown") if score is not None else "Unknown"


@dataclass
class AnalysisResult:
    """Outcome of a caption + classification attempt for one image.

    `success` is False when either inference stage failed or the reply could
    not be parsed; `is_relevant` is only meaningful when `success` is True.
    """

    success: bool
    is_relevant: bool = False
    description: Optional[str] = None
    bristol_score: Optional[int] = None
    size_estimation: Optional[str] = None
    health_indicators: Dict[str, Optional[bool]] = field(default_factory=empty_health_indicators)
    warnings: List[str] = field(default_factory=list)
    notes: Optional[str] = None
    error: Optional[str] = None
    details: Optional[str] = None

    @classmethod
    def failed(cls, error: str, details: str, description: Optional[str] = None) -> "AnalysisResult":
        """Build a failed result carrying the error summary and detail."""
        return cls(success=False, error=error, details=details, description=description)
