# tests/unit/test_driver.py
"""
Tests for the API client and generation request driver.

Tests cover:
    - Error classification (quota, backend failures, timeouts)
    - Story envelope unwrapping
    - Selfie multipart upload with progress
    - Retry on idempotent GETs only
"""

import httpx
import pytest
import pytest_asyncio
from tenacity import wait_none

from fakes import BASE_URL, JPEG_BYTES, FakeBackend, selfie_success, story_success
from genstudio.client.driver import (
    GenerationRequestDriver,
    classify_http_error,
    classify_transport_error,
    unwrap_story_envelope,
)
from genstudio.client.http import StudioApiClient
from genstudio.client.retry import is_retryable
from genstudio.config.schema import ApiConfig, SelfieConfig, StoryConfig
from genstudio.errors import (
    GenerationFailure,
    QuotaExceededError,
    TransportTimeout,
)
from genstudio.models.jobs import JobKind, SelfieInput
from genstudio.models.payloads import StoryPrompt, StoryRequest


@pytest_asyncio.fixture
async def api(backend: FakeBackend):
    client = StudioApiClient(ApiConfig(base_url=BASE_URL, token="test-token"), transport=backend.transport)
    yield client
    await client.close()


@pytest.fixture
def driver(api: StudioApiClient) -> GenerationRequestDriver:
    return GenerationRequestDriver(api, SelfieConfig(upload_chunk_size=1024), StoryConfig())


@pytest.fixture
def no_retry_wait(monkeypatch):
    for method in (StudioApiClient.get_json, StudioApiClient.get_bytes):
        monkeypatch.setattr(method.retry, "wait", wait_none())


def _selfie(size: int = 5000) -> SelfieInput:
    return SelfieInput(filename="me.jpg", content_type="image/jpeg", data=b"\xff" * size)


def _story() -> StoryRequest:
    return StoryRequest(
        character_name="Vega",
        character_traits=["brave"],
        prompt=StoryPrompt(genre="sci-fi", length="short", custom_prompt="space pirates"),
    )


class TestClassifyHttpError:
    def test_429_is_quota_exceeded(self):
        response = httpx.Response(
            429, json={"message": "Daily limit reached", "remaining_quota": 0, "resets_at": "T"}
        )
        err = classify_http_error(response)
        assert isinstance(err, QuotaExceededError)
        assert err.remaining == 0
        assert err.resets_at == "T"
        assert err.message == "Daily limit reached"

    def test_error_code_mapped(self):
        response = httpx.Response(
            500, json={"message": "upstream", "error_code": "OPENAI_API_FAILURE"}
        )
        err = classify_http_error(response)
        assert isinstance(err, GenerationFailure)
        assert err.error_code == "OPENAI_API_FAILURE"
        assert "temporarily unavailable" in err.message
        assert err.status_code == 500

    def test_401_means_login_required(self):
        err = classify_http_error(httpx.Response(401, json={}))
        assert err.error_code == "AUTH_REQUIRED"
        assert err.message == "Please log in to continue."

    def test_non_json_body(self):
        err = classify_http_error(httpx.Response(502, text="<html>Bad gateway</html>"))
        assert isinstance(err, GenerationFailure)
        assert "HTTP 502" in err.message

    def test_validation_body_uses_first_field_error(self):
        response = httpx.Response(
            422,
            json={
                "error_code": "VALIDATION_ERROR",
                "message": "The given data was invalid.",
                "errors": {"character_name": ["Name is required"], "length": ["Too long"]},
            },
        )
        err = classify_http_error(response)
        assert isinstance(err, GenerationFailure)
        assert err.message == "Name is required"
        assert err.error_code == "VALIDATION_ERROR"
        assert err.status_code == 422

    def test_empty_errors_falls_back_to_message(self):
        response = httpx.Response(422, json={"message": "Invalid input", "errors": {}})
        assert classify_http_error(response).message == "Invalid input"


class TestClassifyTransportError:
    def test_timeout_is_distinct(self):
        err = classify_transport_error(httpx.ReadTimeout("slow"), 600)
        assert isinstance(err, TransportTimeout)
        assert err.timeout_seconds == 600

    def test_write_timeout_is_distinct(self):
        assert isinstance(classify_transport_error(httpx.WriteTimeout("slow"), 600), TransportTimeout)

    @pytest.mark.parametrize("exc_type", [httpx.ConnectTimeout, httpx.PoolTimeout])
    def test_timeout_before_sending_is_network_failure(self, exc_type):
        err = classify_transport_error(exc_type("never connected"), 600)
        assert isinstance(err, GenerationFailure)
        assert not isinstance(err, TransportTimeout)
        assert err.error_code == "NETWORK_ERROR"

    def test_connection_failure(self):
        err = classify_transport_error(httpx.ConnectError("refused"), 600)
        assert isinstance(err, GenerationFailure)
        assert err.error_code == "NETWORK_ERROR"


class TestUnwrapStoryEnvelope:
    def test_data_envelope(self):
        data = unwrap_story_envelope(story_success())
        assert data["story"]["title"] == "Rise of the Captain"
        assert len(data["scenes"]) == 1
        assert data["estimated_read_time"] == 3

    def test_story_key_with_scenes_with_urls(self):
        raw = {
            "story": {"title": "T", "content": "word " * 450},
            "scenes_with_urls": [{"scene_number": 1}],
        }
        data = unwrap_story_envelope(raw)
        assert data["scenes"] == [{"scene_number": 1}]
        assert data["estimated_read_time"] == 3  # ceil(450 / 200)

    def test_camel_read_time(self):
        data = unwrap_story_envelope({"story": {"title": "T"}, "estimatedReadTime": 9})
        assert data["estimated_read_time"] == 9

    def test_flat_story(self):
        data = unwrap_story_envelope({"title": "Flat", "content": "short", "scenes": []})
        assert data["story"]["title"] == "Flat"
        assert data["estimated_read_time"] == 1

    def test_empty_payload(self):
        with pytest.raises(GenerationFailure):
            unwrap_story_envelope({"success": True})


class TestSubmitSelfie:
    @pytest.mark.asyncio
    async def test_success_with_upload_progress(self, driver, backend: FakeBackend):
        backend.on("POST", "/ai-studio/selfie/generate", json_body=selfie_success())
        progress: list[int] = []

        outcome = await driver.submit(_selfie(), on_upload_progress=progress.append)

        assert outcome.success is True
        assert outcome.result.kind is JobKind.SELFIE
        assert outcome.result.remote_id == "42"
        assert outcome.quota.remaining == 2
        assert outcome.quota.window_reset_at == "2026-10-20T00:00:00Z"

        assert len(progress) > 1
        assert progress == sorted(progress)
        assert progress[-1] == 100

        request = backend.requests[0]
        assert request.headers["Authorization"] == "Bearer test-token"
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b'name="selfie"' in request.content
        assert b'filename="me.jpg"' in request.content

    @pytest.mark.asyncio
    async def test_success_false_is_failure(self, driver, backend: FakeBackend):
        backend.on("POST", "/ai-studio/selfie/generate", json_body={"success": False, "message": "No face found"})
        outcome = await driver.submit(_selfie())
        assert outcome.success is False
        assert outcome.error.message == "No face found"

    @pytest.mark.asyncio
    async def test_quota_refusal_carries_quota(self, driver, backend: FakeBackend):
        backend.on(
            "POST", "/ai-studio/selfie/generate",
            json_body={"message": "Limit reached", "remaining": 0, "resets_at": "T"},
            status=429,
        )
        outcome = await driver.submit(_selfie())
        assert isinstance(outcome.error, QuotaExceededError)
        assert outcome.quota.remaining == 0
        assert outcome.quota.window_reset_at == "T"

    @pytest.mark.asyncio
    async def test_timeout(self, driver, backend: FakeBackend):
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        backend.on("POST", "/ai-studio/selfie/generate", slow)
        outcome = await driver.submit(_selfie())
        assert isinstance(outcome.error, TransportTimeout)
        assert outcome.error.timeout_seconds == 120.0

    @pytest.mark.asyncio
    async def test_generation_post_is_never_retried(self, driver, backend: FakeBackend):
        backend.on("POST", "/ai-studio/selfie/generate", json_body={"message": "busy"}, status=503)
        outcome = await driver.submit(_selfie())
        assert isinstance(outcome.error, GenerationFailure)
        assert backend.calls("POST", "/ai-studio/selfie/generate") == 1


class TestSubmitStory:
    @pytest.mark.asyncio
    async def test_success(self, driver, backend: FakeBackend):
        backend.on("POST", "/stories/generate", json_body=story_success(with_quota=True))
        progress: list[int] = []

        outcome = await driver.submit(_story(), on_upload_progress=progress.append)

        assert progress == [100]
        assert outcome.success is True
        assert outcome.result.kind is JobKind.STORY
        assert outcome.result.remote_id == "7"
        assert outcome.result.data["estimated_read_time"] == 3
        assert outcome.quota.remaining == 4

        body = backend.body()
        assert body["characterName"] == "Vega"
        assert body["characterTraits"] == ["brave"]
        assert body["includeImages"] is True
        assert body["prompt"] == {
            "genre": "sci-fi",
            "mood": "epic",
            "length": "short",
            "customPrompt": "space pirates",
        }

    @pytest.mark.asyncio
    async def test_missing_quota_is_none(self, driver, backend: FakeBackend):
        backend.on("POST", "/stories/generate", json_body=story_success())
        outcome = await driver.submit(_story())
        assert outcome.success is True
        assert outcome.quota is None

    @pytest.mark.asyncio
    async def test_backend_failure_envelope(self, driver, backend: FakeBackend):
        backend.on(
            "POST", "/stories/generate",
            json_body={"success": False, "error_code": "CONTENT_POLICY_VIOLATION", "message": "nope"},
        )
        outcome = await driver.submit(_story())
        assert outcome.success is False
        assert outcome.error.error_code == "CONTENT_POLICY_VIOLATION"

    @pytest.mark.asyncio
    async def test_connection_refused(self, driver, backend: FakeBackend):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        backend.on("POST", "/stories/generate", refuse)
        outcome = await driver.submit(_story())
        assert outcome.error.error_code == "NETWORK_ERROR"


class TestReads:
    def test_is_retryable(self):
        request = httpx.Request("GET", BASE_URL)
        assert is_retryable(httpx.ConnectError("x"))
        assert is_retryable(httpx.HTTPStatusError("x", request=request, response=httpx.Response(503)))
        assert not is_retryable(httpx.HTTPStatusError("x", request=request, response=httpx.Response(429)))
        assert not is_retryable(httpx.HTTPStatusError("x", request=request, response=httpx.Response(500)))
        assert not is_retryable(ValueError("x"))

    @pytest.mark.asyncio
    async def test_quota_get_retries_transient_failure(self, api, backend: FakeBackend, no_retry_wait):
        responses = [
            httpx.Response(503),
            httpx.Response(200, json={"success": True, "data": {"remaining": 3}}),
        ]
        backend.on("GET", "/ai-studio/selfie/quota", lambda request: responses.pop(0))

        quota = await api.fetch_quota("/ai-studio/selfie/quota")

        assert quota.remaining == 3
        assert backend.calls("GET", "/ai-studio/selfie/quota") == 2

    @pytest.mark.asyncio
    async def test_quota_get_gives_up_after_three_attempts(self, api, backend: FakeBackend, no_retry_wait):
        backend.on("GET", "/stories/stats", status=504)
        with pytest.raises(httpx.HTTPStatusError):
            await api.fetch_quota("/stories/stats")
        assert backend.calls("GET", "/stories/stats") == 3

    @pytest.mark.asyncio
    async def test_download_clean(self, driver, backend: FakeBackend):
        backend.on("GET", "/ai-studio/selfie/42/download", httpx.Response(200, content=JPEG_BYTES))
        assert await driver.download_clean("42") == JPEG_BYTES

    @pytest.mark.asyncio
    async def test_history(self, driver, backend: FakeBackend):
        backend.on(
            "GET", "/ai-studio/selfie/history",
            json_body={"success": True, "data": [{"id": 1}, {"id": 2}, "junk"]},
        )
        assert await driver.fetch_history() == [{"id": 1}, {"id": 2}]
