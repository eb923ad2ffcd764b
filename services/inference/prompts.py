"""Prompt builders for the sample classification language model."""

BRISTOL_REFERENCE = (
    "Bristol Scale Reference:\n"
    "1-2: Hard lumps (constipation)\n"
    "3-4: Normal (ideal)\n"
    "5-7: Loose/liquid (diarrhea)"
)

RESPONSE_FORMAT = """{
  "isRelevant": true/false,
  "bristolScore": 1-7 or null,
  "sizeEstimation": "small/medium/large" or null,
  "healthIndicators": {
    "dehydration": true/false/null,
    "bloodPresence": true/false/null,
    "unusualColor": true/false/null,
    "consistencyIssues": true/false/null
  },
  "warnings": ["array of health warnings"],
  "notes": "brief analysis notes"
}"""


def build_system_prompt() -> str:
    """Return the system prompt for the classifier."""
    return (
        "You are a medical analysis assistant. You are careful and conservative, "
        "and you answer only with the JSON object you are asked for."
    )


def build_classification_prompt(description: str) -> str:
    """Return the user prompt embedding the image caption and the fixed reply format."""
    cleaned = (description or "").replace('"', "'").strip()
    return (
        "Analyze this image description and determine if it appears to be a stool sample. "
        "If yes, provide a detailed analysis. If no, indicate it's not relevant.\n\n"
        f'Image description: "{cleaned}"\n\n'
        "Respond ONLY with valid JSON in this exact format:\n"
        f"{RESPONSE_FORMAT}\n\n"
        f"{BRISTOL_REFERENCE}"
    )
