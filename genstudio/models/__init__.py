"""
Data models for genstudio.

Provides Pydantic wire models and internal job tracking.
"""

from genstudio.models.jobs import (
    ALLOWED_TRANSITIONS,
    GenerationJob,
    GenerationResult,
    GenerationState,
    JobKind,
    JobSlot,
    ProgressSnapshot,
    SelfieInput,
    SubmitOutcome,
    can_transition,
    generate_job_id,
)
from genstudio.models.payloads import (
    ArtifactMetadata,
    CanonicalScene,
    CanonicalStory,
    SavedArtifact,
    SaveStoryRequest,
    SelfieResult,
    StoryPrompt,
    StoryRequest,
    Visibility,
)
from genstudio.models.quota import QuotaDecision, QuotaState

__all__ = [
    # Wire models
    "StoryPrompt",
    "StoryRequest",
    "CanonicalScene",
    "CanonicalStory",
    "SelfieResult",
    "Visibility",
    "ArtifactMetadata",
    "SaveStoryRequest",
    "SavedArtifact",
    "QuotaState",
    "QuotaDecision",
    # Job tracking
    "GenerationState",
    "JobKind",
    "GenerationJob",
    "GenerationResult",
    "SubmitOutcome",
    "SelfieInput",
    "ProgressSnapshot",
    "JobSlot",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "generate_job_id",
]
