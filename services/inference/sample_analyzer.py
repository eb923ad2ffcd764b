"""Two-stage sample analysis: caption the image, then classify the caption."""

import asyncio
import logging

from models.analysis import AnalysisResult
from services.errors import ClassificationFailed
from services.inference.caption_service import CaptionService
from services.inference.classification_service import ClassificationService

LOGGER = logging.getLogger(__name__)


class SampleAnalyzer:
    """Run caption then classification and fold every failure into the result.

    `analyze` never raises for inference problems; callers inspect
    `AnalysisResult.success` and `is_relevant` instead.
    """

    def __init__(self, captioner: CaptionService, classifier: ClassificationService) -> None:
        self.captioner = captioner
        self.classifier = classifier

    async def analyze(self, image_bytes: bytes, content_type: str = "application/octet-stream") -> AnalysisResult:
        if not image_bytes:
            return AnalysisResult.failed("No image provided", "image bytes were empty")

        try:
            description = await self.captioner.describe(image_bytes, content_type)
        except (ClassificationFailed, asyncio.TimeoutError) as exc:
            LOGGER.warning("Captioning failed: %s", exc)
            return AnalysisResult.failed("Failed to analyze image", str(exc))

        try:
            fields = await self.classifier.classify(description)
        except (ClassificationFailed, asyncio.TimeoutError) as exc:
            LOGGER.warning("Classification failed: %s", exc)
            return AnalysisResult.failed("Failed to process analysis", str(exc), description=description)

        return AnalysisResult(
            success=True,
            is_relevant=fields["is_relevant"],
            description=description,
            bristol_score=fields["bristol_score"],
            size_estimation=fields["size_estimation"],
            health_indicators=fields["health_indicators"],
            warnings=fields["warnings"],
            notes=fields["notes"],
        )
