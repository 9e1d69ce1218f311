# genstudio/client/http.py
"""Async HTTP client for the studio backend."""

import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx

from genstudio.config.schema import ApiConfig
from genstudio.models.quota import QuotaState

from .retry import api_retry

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class StudioApiClient:
    """
    Thin async wrapper around httpx for the studio backend.

    Handles:
    - Bearer auth and base URL
    - Per-call timeouts (generation calls wait minutes, not seconds)
    - Chunked multipart upload with upload-progress reporting
    - Retries for idempotent reads only
    """

    def __init__(
        self,
        config: ApiConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the API client.

        Args:
            config: API connection settings
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self._config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-loaded httpx client."""
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self._config.token:
                headers["Authorization"] = f"Bearer {self._config.token}"
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url,
                headers=headers,
                timeout=self.timeout(self._config.timeout),
                transport=self._transport,
            )
        return self._client

    def timeout(self, seconds: float) -> httpx.Timeout:
        """Timeout with the configured connect limit and `seconds` for everything else."""
        return httpx.Timeout(seconds, connect=self._config.connect_timeout)

    @api_retry
    async def get_json(self, path: str) -> Any:
        """GET a JSON document, retrying transient failures."""
        response = await self.client.get(path)
        response.raise_for_status()
        return response.json()

    @api_retry
    async def get_bytes(self, path: str) -> bytes:
        """GET a binary document, retrying transient failures."""
        response = await self.client.get(path, headers={"Accept": "*/*"})
        response.raise_for_status()
        return response.content

    async def fetch_quota(self, path: str) -> QuotaState:
        """
        Fetch and parse a quota document.

        Raises:
            httpx.HTTPError: On transport or HTTP errors (after retries)
            ValueError: If the payload has no remaining count
        """
        payload = await self.get_json(path)
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected quota payload type: {type(payload).__name__}")
        return QuotaState.from_payload(payload)

    async def post_json(self, path: str, body: dict, timeout: float) -> httpx.Response:
        """
        POST a JSON body. Never retried.

        Returns the raw response; callers classify HTTP errors themselves.
        """
        logger.info(f"POST {path} (timeout={timeout}s)")
        return await self.client.post(path, json=body, timeout=self.timeout(timeout))

    async def post_multipart(
        self,
        path: str,
        field: str,
        filename: str,
        data: bytes,
        content_type: str,
        timeout: float,
        on_progress: ProgressCallback | None = None,
        chunk_size: int = 64 * 1024,
    ) -> httpx.Response:
        """
        POST a single file as multipart/form-data, reporting upload progress.

        The body is encoded once, then streamed in chunks; `on_progress` gets
        0..100 as each chunk is handed to the transport. Never retried.

        Returns:
            The raw response; callers classify HTTP errors themselves.
        """
        encoded = self.client.build_request(
            "POST", path, files={field: (filename, data, content_type)}
        )
        body = encoded.read()
        total = len(body)

        async def stream() -> AsyncIterator[bytes]:
            sent = 0
            for start in range(0, total, chunk_size):
                chunk = body[start : start + chunk_size]
                yield chunk
                sent += len(chunk)
                if on_progress:
                    on_progress(round(sent * 100 / total))

        logger.info(f"POST {path} multipart {total} bytes (timeout={timeout}s)")
        return await self.client.post(
            path,
            content=stream(),
            headers={
                "Content-Type": encoded.headers["Content-Type"],
                "Content-Length": str(total),
            },
            timeout=self.timeout(timeout),
        )

    async def close(self) -> None:
        """Close the underlying client if initialized."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
