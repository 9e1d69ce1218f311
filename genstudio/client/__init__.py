"""Backend API client, generation request driver and retry logic."""

from .driver import (
    GenerationRequestDriver,
    classify_http_error,
    classify_transport_error,
    unwrap_story_envelope,
)
from .http import StudioApiClient
from .retry import api_retry, is_retryable

__all__ = [
    "StudioApiClient",
    "GenerationRequestDriver",
    "classify_http_error",
    "classify_transport_error",
    "unwrap_story_envelope",
    "api_retry",
    "is_retryable",
]
