import json
from types import SimpleNamespace

import httpx
import pytest

from services.errors import ClassificationFailed
from services.inference.caption_service import CaptionService
from services.inference.classification_service import ANONYMOUS_API_KEY, ClassificationService, build_llm_client
from services.inference.sample_analyzer import SampleAnalyzer
from utils.settings import ServiceCredentials

CREDENTIALS = ServiceCredentials(api_token="hf_test", caption_url="https://vision.test/models/", vision_model="org/captioner")


def caption_service(handler, credentials=CREDENTIALS) -> CaptionService:
    return CaptionService(httpx.AsyncClient(transport=httpx.MockTransport(handler)), credentials)


@pytest.mark.asyncio
async def test_caption_posts_raw_bytes_with_bearer_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = request.content
        return httpx.Response(200, json=[{"generated_text": " a brown object "}])

    caption = await caption_service(handler).describe(b"jpeg-bytes", "image/jpeg")

    assert caption == "a brown object"
    assert seen == {"url": "https://vision.test/models/org/captioner", "auth": "Bearer hf_test", "body": b"jpeg-bytes"}


@pytest.mark.asyncio
async def test_caption_without_token_sends_no_auth_header():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, json={"generated_text": "a cat"})

    service = caption_service(handler, ServiceCredentials(api_token=None))
    assert await service.describe(b"x") == "a cat"
    assert seen["auth"] is None


@pytest.mark.asyncio
async def test_caption_error_status_carries_body():
    service = caption_service(lambda request: httpx.Response(503, text="Model is loading"))
    with pytest.raises(ClassificationFailed, match="Vision API error: Model is loading"):
        await service.describe(b"x")


@pytest.mark.asyncio
async def test_caption_transport_error_is_classification_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ClassificationFailed):
        await caption_service(handler).describe(b"x")


@pytest.mark.asyncio
async def test_caption_missing_text_fails():
    with pytest.raises(ClassificationFailed, match="no caption"):
        await caption_service(lambda request: httpx.Response(200, json=[])).describe(b"x")


class FakeCompletions:
    def __init__(self, replies):
        self.replies = list(replies)
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        message = SimpleNamespace(content=reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_llm(*replies):
    completions = FakeCompletions(replies)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


REPLY = json.dumps(
    {
        "isRelevant": True,
        "bristolScore": 4,
        "sizeEstimation": "medium",
        "healthIndicators": {"dehydration": False, "bloodPresence": False, "unusualColor": False, "consistencyIssues": False},
        "warnings": [],
        "notes": "Normal",
    }
)


@pytest.mark.asyncio
async def test_classify_sends_caption_and_parses_reply():
    client, completions = fake_llm(f"Here you go: {REPLY}")
    fields = await ClassificationService(client, "test-model").classify('a "brown" object')

    assert fields["bristol_score"] == 4
    assert fields["health_indicators"]["blood_presence"] is False
    request = completions.requests[0]
    assert request["model"] == "test-model"
    assert request["max_tokens"] == 500
    assert request["temperature"] == 0.3
    assert "a 'brown' object" in request["messages"][1]["content"]


@pytest.mark.asyncio
async def test_classify_unparsable_reply_fails():
    client, _ = fake_llm("I cannot help with that.")
    with pytest.raises(ClassificationFailed, match="Unable to parse analysis results"):
        await ClassificationService(client, "m").classify("a photo")


@pytest.mark.asyncio
async def test_classify_api_error_fails():
    client, _ = fake_llm(RuntimeError("rate limited"))
    with pytest.raises(ClassificationFailed, match="rate limited"):
        await ClassificationService(client, "m").classify("a photo")


def test_llm_client_accepts_missing_token(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    client = build_llm_client(ServiceCredentials(api_token=None, llm_base_url="https://llm.test/v1"))
    assert client.api_key == ANONYMOUS_API_KEY
    assert str(client.base_url).startswith("https://llm.test/v1")


def test_llm_client_uses_configured_token():
    client = build_llm_client(ServiceCredentials(api_token="hf_test"))
    assert client.api_key == "hf_test"


class StubCaptioner:
    def __init__(self, outcome):
        self.outcome = outcome

    async def describe(self, image_bytes, content_type="application/octet-stream"):
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class StubClassifier:
    def __init__(self, outcome):
        self.outcome = outcome
        self.descriptions = []

    async def classify(self, description):
        self.descriptions.append(description)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


@pytest.mark.asyncio
async def test_analyzer_combines_both_stages():
    client, _ = fake_llm(REPLY)
    analyzer = SampleAnalyzer(StubCaptioner("a brown object"), ClassificationService(client, "m"))
    result = await analyzer.analyze(b"x", "image/jpeg")
    assert result.success and result.is_relevant
    assert result.description == "a brown object"
    assert result.size_estimation == "medium"


@pytest.mark.asyncio
async def test_analyzer_caption_failure_skips_classification():
    classifier = StubClassifier({})
    analyzer = SampleAnalyzer(StubCaptioner(ClassificationFailed("Vision API error: down")), classifier)
    result = await analyzer.analyze(b"x")
    assert result.success is False
    assert result.error == "Failed to analyze image"
    assert classifier.descriptions == []


@pytest.mark.asyncio
async def test_analyzer_classification_failure_keeps_caption():
    analyzer = SampleAnalyzer(StubCaptioner("a dog"), StubClassifier(ClassificationFailed("Unable to parse analysis results")))
    result = await analyzer.analyze(b"x")
    assert result.success is False
    assert result.error == "Failed to process analysis"
    assert result.description == "a dog"
    assert result.details == "Unable to parse analysis results"


@pytest.mark.asyncio
async def test_analyzer_rejects_empty_bytes():
    result = await SampleAnalyzer(StubCaptioner("x"), StubClassifier({})).analyze(b"")
    assert result.success is False
