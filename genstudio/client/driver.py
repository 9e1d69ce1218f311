# genstudio/client/driver.py
"""
Generation request driver.

Issues the single long-running generation call for a job and resolves it to
a SubmitOutcome: a success payload or a classified StudioError.
"""

import logging
import math
from typing import Any

import httpx

from genstudio.config.schema import SelfieConfig, StoryConfig
from genstudio.errors import (
    GenerationFailure,
    QuotaExceededError,
    StudioError,
    TransportTimeout,
)
from genstudio.models.jobs import (
    GenerationResult,
    JobKind,
    SelfieInput,
    SubmitOutcome,
)
from genstudio.models.payloads import StoryRequest
from genstudio.models.quota import QuotaState

from .http import ProgressCallback, StudioApiClient

logger = logging.getLogger(__name__)


def _json_body(response: httpx.Response) -> dict[str, Any]:
    """Response JSON as a dict, or {} when the body is not a JSON object."""
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _first_field_error(body: dict[str, Any]) -> str | None:
    """First message from a field-keyed validation body ({"errors": {field: [msg, ...]}})."""
    errors = body.get("errors")
    if not isinstance(errors, dict) or not errors:
        return None
    first = next(iter(errors.values()))
    if isinstance(first, list):
        first = first[0] if first else None
    return str(first) if first else None


def classify_http_error(response: httpx.Response) -> StudioError:
    """
    Map an HTTP error response from a generation endpoint to the taxonomy.

    429 is a quota refusal; anything else is a generation failure carrying
    the backend's message and error code.
    """
    body = _json_body(response)
    message = _first_field_error(body) or body.get("message") or body.get("error")

    if response.status_code == 429:
        remaining = body.get("remaining_quota", body.get("remaining", 0)) or 0
        return QuotaExceededError(
            message=message,
            remaining=int(remaining),
            resets_at=body.get("resets_at"),
        )

    error_code = body.get("error_code")
    if response.status_code == 401 and not error_code:
        error_code = "AUTH_REQUIRED"
    return GenerationFailure(
        message=message or f"Generation failed (HTTP {response.status_code})",
        error_code=error_code,
        status_code=response.status_code,
    )


def classify_transport_error(exc: httpx.TransportError, timeout: float) -> StudioError:
    """
    Map a transport-level failure.

    Only read and write timeouts mean the request may have reached the
    backend; connect and pool timeouts never left the client, so they are
    plain network failures.
    """
    if isinstance(exc, (httpx.ReadTimeout, httpx.WriteTimeout)):
        return TransportTimeout(timeout_seconds=timeout)
    return GenerationFailure(message=str(exc) or None, error_code="NETWORK_ERROR")


def _read_time(story: dict[str, Any]) -> int:
    """Estimated read time in minutes, ~200 words per minute."""
    words = len((story.get("content") or "").split())
    return max(1, math.ceil(words / 200))


def unwrap_story_envelope(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Unwrap any of the story response envelopes into {story, scenes, estimated_read_time}.

    Shapes seen from the backend:
    - {success, data: {story, scenes, estimated_read_time}}
    - {story: {...}, scenes | scenes_with_urls, estimatedReadTime}
    - a flat story object with title, content, scenes

    Raises:
        GenerationFailure: If no story can be found in the payload
    """
    data = raw.get("data")
    if isinstance(data, dict) and isinstance(data.get("story"), dict) and isinstance(
        data.get("scenes"), list
    ):
        story = data["story"]
        scenes = data["scenes"] or story.get("scenes_with_urls") or story.get("scenes") or []
        return {
            "story": story,
            "scenes": scenes,
            "estimated_read_time": data.get("estimated_read_time") or _read_time(story),
        }

    if isinstance(raw.get("story"), dict):
        story = raw["story"]
        scenes = (
            raw.get("scenes_with_urls")
            or raw.get("scenes")
            or story.get("scenes_with_urls")
            or story.get("scenes")
            or []
        )
        read_time = (
            raw.get("estimatedReadTime")
            or raw.get("estimated_read_time")
            or story.get("estimated_read_time")
            or _read_time(story)
        )
        return {"story": story, "scenes": scenes, "estimated_read_time": read_time}

    if raw.get("content") or raw.get("title"):
        return {
            "story": raw,
            "scenes": raw.get("scenes_with_urls") or raw.get("scenes") or [],
            "estimated_read_time": raw.get("estimated_read_time") or _read_time(raw),
        }

    raise GenerationFailure(message="The story service returned an empty result.")


class GenerationRequestDriver:
    """
    Sends one generation request per job and classifies the outcome.

    There is no status polling: the call blocks until the backend finishes,
    which may take minutes, so read timeouts come from the per-kind config.
    """

    def __init__(
        self,
        api: StudioApiClient,
        selfie_config: SelfieConfig,
        story_config: StoryConfig,
    ) -> None:
        self._api = api
        self._selfie = selfie_config
        self._story = story_config

    async def submit(
        self,
        job_input: SelfieInput | StoryRequest,
        on_upload_progress: ProgressCallback | None = None,
    ) -> SubmitOutcome:
        """
        Submit a job and wait for the backend to finish.

        Args:
            job_input: Staged selfie or validated story request
            on_upload_progress: Called with 0..100 during the binary upload only

        Returns:
            SubmitOutcome with either a result or a classified error.
            Quota returned alongside the response (or a 429) is included.
        """
        if isinstance(job_input, SelfieInput):
            timeout = self._selfie.generation_timeout
            send = self._send_selfie(job_input, on_upload_progress)
        else:
            timeout = self._story.generation_timeout
            send = self._send_story(job_input, on_upload_progress)

        try:
            return await send
        except httpx.TransportError as e:
            error = classify_transport_error(e, timeout)
            logger.warning(f"Generation request failed: {type(e).__name__}: {e}")
            return SubmitOutcome(success=False, error=error)
        except QuotaExceededError as e:
            quota = QuotaState(remaining=e.remaining, window_reset_at=e.resets_at)
            return SubmitOutcome(success=False, error=e, quota=quota)
        except StudioError as e:
            return SubmitOutcome(success=False, error=e)

    async def download_clean(self, result_id: str) -> bytes:
        """
        Fetch the watermark-free image for a selfie result.

        Raises:
            httpx.HTTPError: On transport or HTTP errors (after retries)
        """
        path = self._selfie.download_path.format(id=result_id)
        data = await self._api.get_bytes(path)
        logger.info(f"Downloaded clean selfie {result_id} ({len(data)} bytes)")
        return data

    async def fetch_history(self) -> list[dict[str, Any]]:
        """
        List previously generated selfies, newest first as the backend returns them.

        Raises:
            httpx.HTTPError: On transport or HTTP errors (after retries)
        """
        payload = await self._api.get_json(self._selfie.history_path)
        if isinstance(payload, dict):
            payload = payload.get("data", [])
        if not isinstance(payload, list):
            return []
        return [item for item in payload if isinstance(item, dict)]

    async def _send_selfie(
        self, selfie: SelfieInput, on_upload_progress: ProgressCallback | None
    ) -> SubmitOutcome:
        response = await self._api.post_multipart(
            self._selfie.generate_path,
            field=self._selfie.upload_field,
            filename=selfie.filename,
            data=selfie.data,
            content_type=selfie.content_type,
            timeout=self._selfie.generation_timeout,
            on_progress=on_upload_progress,
            chunk_size=self._selfie.upload_chunk_size,
        )
        if response.is_error:
            raise classify_http_error(response)

        body = _json_body(response)
        data = body.get("data")
        if not body.get("success") or not isinstance(data, dict):
            raise GenerationFailure(message=body.get("message") or "Generation failed.")

        quota = None
        if isinstance(body.get("quota"), dict):
            try:
                quota = QuotaState.from_payload(body["quota"])
            except ValueError as e:
                logger.warning(f"Ignoring malformed quota in selfie response: {e}")

        remote_id = data.get("id")
        logger.info(f"Selfie generation succeeded (id={remote_id})")
        return SubmitOutcome(
            success=True,
            result=GenerationResult(
                kind=JobKind.SELFIE,
                data=data,
                remote_id=str(remote_id) if remote_id is not None else None,
            ),
            quota=quota,
        )

    async def _send_story(
        self, request: StoryRequest, on_upload_progress: ProgressCallback | None
    ) -> SubmitOutcome:
        # Text-only body: nothing meaningful to report during upload
        if on_upload_progress:
            on_upload_progress(100)

        response = await self._api.post_json(
            self._story.generate_path,
            request.to_wire(),
            timeout=self._story.generation_timeout,
        )
        if response.is_error:
            raise classify_http_error(response)

        raw = _json_body(response)
        if raw.get("success") is False:
            raise GenerationFailure(
                message=raw.get("message"), error_code=raw.get("error_code")
            )
        data = unwrap_story_envelope(raw)

        quota = None
        if isinstance(raw.get("quota"), dict):
            try:
                quota = QuotaState.from_payload(raw["quota"])
            except ValueError as e:
                logger.warning(f"Ignoring malformed quota in story response: {e}")

        remote_id = data["story"].get("id")
        logger.info(
            f"Story generation succeeded ({len(data['scenes'])} scenes, "
            f"~{data['estimated_read_time']} min read)"
        )
        return SubmitOutcome(
            success=True,
            result=GenerationResult(
                kind=JobKind.STORY,
                data=data,
                remote_id=str(remote_id) if remote_id is not None else None,
            ),
            quota=quota,
        )
