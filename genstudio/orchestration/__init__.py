"""Generation orchestration: quota gate, progress estimation, state machine, session."""

from .lifecycle import StudioSession
from .machine import ChangeListener, GenerationStateMachine, JobSnapshot
from .progress import (
    STORY_STAGES,
    LoopScheduler,
    ProgressEstimator,
    Scheduler,
    SelfieStageEstimator,
    StoryProgressEstimator,
    TimerGroup,
    estimate_generation_time,
)
from .quota_gate import QuotaGate

__all__ = [
    "StudioSession",
    "GenerationStateMachine",
    "JobSnapshot",
    "ChangeListener",
    "QuotaGate",
    "Scheduler",
    "LoopScheduler",
    "TimerGroup",
    "ProgressEstimator",
    "SelfieStageEstimator",
    "StoryProgressEstimator",
    "STORY_STAGES",
    "estimate_generation_time",
]
