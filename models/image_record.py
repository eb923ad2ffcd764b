from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class ImageRecord:
    """In-memory representation of a row in the user_images table.

    Attributes:
        id: Primary key assigned by the record store (None for new records).
        user_id: Id of the owning user.
        storage_path: Object store key, `{user_id}/{timestamp}_{filename}`.
        image_url: Reference URL for the object (not enough for private access).
        file_name: Original filename of the upload.
        display_order: Optional manual ordering slot for the gallery.
        created_at: Unix timestamp (milliseconds) when the row was inserted.
        bristol_score: Optional Bristol-style score (1-7).
        size_score: Optional size bucket (small, medium, large).
        health_indicators: Named boolean health flags from the analysis.
        warnings: Free-text warnings from the analysis.
        analysis_notes: Free-text notes from the analysis.
        is_analyzed: False until an analysis attempt has finished.
    """

    id: Optional[int]
    user_id: str
    storage_path: str
    image_url: str
    file_name: Optional[str] = None
    display_order: Optional[int] = None
    created_at: Optional[int] = None
    bristol_score: Optional[int] = None
    size_score: Optional[str] = None
    health_indicators: Optional[Dict[str, Optional[bool]]] = None
    warnings: List[str] = field(default_factory=list)
    analysis_notes: Optional[str] = None
    is_analyzed: bool = False
