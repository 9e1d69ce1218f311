# genstudio/models/jobs.py
"""
Generation job models and the transition table.

Internal models (not sent over the wire) for tracking one generation attempt
from input staging to a terminal result or abandonment.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from genstudio.errors import StudioError
from genstudio.models.payloads import SavedArtifact, StoryRequest
from genstudio.models.quota import QuotaState

logger = logging.getLogger(__name__)


class GenerationState(Enum):
    """Job lifecycle states."""

    IDLE = "idle"
    PREVIEWING = "previewing"
    GENERATING = "generating"
    SUCCESS = "success"
    SAVING = "saving"
    PUBLISHED = "published"
    ERROR = "error"


class JobKind(Enum):
    """What a job generates."""

    SELFIE = "selfie"
    STORY = "story"


# Every edge the machine may take. Reset (any state -> IDLE) is a teardown, not an edge.
ALLOWED_TRANSITIONS: dict[GenerationState, frozenset[GenerationState]] = {
    GenerationState.IDLE: frozenset({GenerationState.PREVIEWING, GenerationState.GENERATING}),
    GenerationState.PREVIEWING: frozenset({GenerationState.GENERATING}),
    GenerationState.GENERATING: frozenset({GenerationState.SUCCESS, GenerationState.ERROR}),
    GenerationState.SUCCESS: frozenset({GenerationState.GENERATING, GenerationState.SAVING}),
    GenerationState.SAVING: frozenset({GenerationState.PUBLISHED, GenerationState.ERROR}),
    GenerationState.ERROR: frozenset({GenerationState.IDLE, GenerationState.SAVING}),
    GenerationState.PUBLISHED: frozenset(),
}

# Edges that only one kind of job may take
_KIND_ONLY_EDGES: dict[tuple[GenerationState, GenerationState], JobKind] = {
    (GenerationState.IDLE, GenerationState.PREVIEWING): JobKind.SELFIE,
    (GenerationState.IDLE, GenerationState.GENERATING): JobKind.STORY,
    (GenerationState.SUCCESS, GenerationState.SAVING): JobKind.STORY,
    (GenerationState.ERROR, GenerationState.SAVING): JobKind.STORY,
}

IN_FLIGHT_STATES = frozenset({GenerationState.GENERATING, GenerationState.SAVING})


def can_transition(
    src: GenerationState, dst: GenerationState, kind: JobKind | None = None
) -> bool:
    """
    Check an edge against the transition table.

    Args:
        src: Current state
        dst: Requested state
        kind: Job kind, to apply kind-only edges (None = table only)

    Returns:
        True if the edge is allowed
    """
    if dst not in ALLOWED_TRANSITIONS[src]:
        return False
    required_kind = _KIND_ONLY_EDGES.get((src, dst))
    if kind is not None and required_kind is not None and kind is not required_kind:
        return False
    return True


@dataclass
class SelfieInput:
    """A staged selfie: validated bytes plus the local preview handle."""

    filename: str
    content_type: str
    data: bytes
    preview: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class ProgressSnapshot:
    """One perceived-progress reading, as rendered by the view."""

    stage_index: int
    stage_label: str
    percent: int
    message: str = ""
    eta_seconds: int | None = None
    upload_percent: int = 0
    final: bool = False


@dataclass
class GenerationResult:
    """A successful generation response, unwrapped from its envelope."""

    kind: JobKind
    data: dict[str, Any]
    remote_id: str | None = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class SubmitOutcome:
    """What the request driver resolved to."""

    success: bool
    result: GenerationResult | None = None
    quota: QuotaState | None = None
    error: StudioError | None = None


@dataclass
class GenerationJob:
    """
    One generation attempt (ephemeral, never written to disk).

    Tracks input, state, progress and the result or error.
    """

    local_id: str
    kind: JobKind
    input: SelfieInput | StoryRequest
    state: GenerationState = GenerationState.IDLE
    id: str | None = None  # Assigned by the backend once accepted
    upload_progress: int = 0
    perceived: ProgressSnapshot | None = None
    result: GenerationResult | None = None
    error: StudioError | None = None
    artifact: SavedArtifact | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def record_upload(self, percent: int) -> int:
        """Record upload progress, keeping it monotonically non-decreasing in 0..100."""
        percent = max(0, min(100, int(percent)))
        if percent > self.upload_progress:
            self.upload_progress = percent
        return self.upload_progress


class JobSlot:
    """
    Per-session in-flight guard.

    Only one job may be GENERATING or SAVING at a time across a session.
    """

    def __init__(self) -> None:
        self._holder: str | None = None

    @property
    def holder(self) -> str | None:
        """Local id of the job holding the slot (None if free)."""
        return self._holder

    @property
    def busy(self) -> bool:
        return self._holder is not None

    def try_acquire(self, local_id: str) -> bool:
        """Claim the slot; re-entrant for the current holder."""
        if self._holder is None or self._holder == local_id:
            self._holder = local_id
            return True
        logger.info(f"Slot busy with job {self._holder}, refusing job {local_id}")
        return False

    def release(self, local_id: str) -> None:
        """Free the slot if this job holds it."""
        if self._holder == local_id:
            self._holder = None


def generate_job_id() -> str:
    """
    Generate a unique local job ID.

    Returns:
        12-character hex string (UUID4 truncated)
    """
    return uuid4().hex[:12]
