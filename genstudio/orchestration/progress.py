# genstudio/orchestration/progress.py
"""
Perceived-progress estimation.

Once the upload finishes the backend says nothing until the single response
arrives, so these estimators fabricate forward motion on timers. All timers
of one estimator live in one TimerGroup and are cancelled together the
moment the real result arrives or the job is abandoned.
"""

import asyncio
import logging
import math
from collections.abc import Callable
from typing import Protocol

from genstudio.config.schema import SelfieConfig, StoryConfig
from genstudio.models.jobs import ProgressSnapshot

logger = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressSnapshot], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything that can run a callback after a delay (asyncio loop, test clock)."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


class TimerGroup:
    """A set of pending timers that is always cancelled as a unit."""

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._handles: dict[int, TimerHandle] = {}
        self._next_key = 0
        self._closed = False

    @property
    def pending(self) -> int:
        """Timers scheduled but neither fired nor cancelled."""
        return len(self._handles)

    @property
    def closed(self) -> bool:
        return self._closed

    def schedule(self, delay: float, callback: Callable[[], None]) -> None:
        """Schedule a callback; ignored once the group is cancelled."""
        if self._closed:
            return
        key = self._next_key
        self._next_key += 1

        def fire() -> None:
            if self._handles.pop(key, None) is None:
                return
            callback()

        self._handles[key] = self._scheduler.call_later(delay, fire)

    def cancel_all(self) -> None:
        """Cancel every pending timer and refuse new ones."""
        self._closed = True
        for handle in self._handles.values():
            handle.cancel()
        if self._handles:
            logger.debug(f"Cancelled {len(self._handles)} pending progress timer(s)")
        self._handles.clear()


class ProgressEstimator:
    """
    Base estimator: owns a TimerGroup and a listener.

    Subclasses call _emit() to publish snapshots. After finish() or cancel()
    nothing is ever emitted again.
    """

    FINAL_MESSAGE = "Complete!"

    def __init__(self, scheduler: Scheduler, listener: ProgressListener | None = None) -> None:
        self._timers = TimerGroup(scheduler)
        self._listener = listener
        self._current: ProgressSnapshot | None = None
        self._done = False

    @property
    def current(self) -> ProgressSnapshot | None:
        """Latest emitted snapshot."""
        return self._current

    @property
    def done(self) -> bool:
        return self._done

    @property
    def pending_timers(self) -> int:
        return self._timers.pending

    def start(self) -> None:
        """Begin estimating. Emits the initial snapshot."""
        raise NotImplementedError

    def on_upload_progress(self, percent: int) -> None:
        """Feed real upload progress (0..100)."""
        raise NotImplementedError

    def _final_snapshot(self) -> ProgressSnapshot:
        raise NotImplementedError

    def _emit(self, snapshot: ProgressSnapshot) -> None:
        if self._done:
            return
        self._current = snapshot
        if self._listener:
            self._listener(snapshot)

    def finish(self) -> None:
        """The real result arrived: cancel all timers and emit the final snapshot once."""
        if self._done:
            return
        self._timers.cancel_all()
        self._emit(self._final_snapshot())
        self._done = True

    def cancel(self) -> None:
        """The job was abandoned: cancel all timers, emit nothing."""
        self._timers.cancel_all()
        self._done = True


class SelfieStageEstimator(ProgressEstimator):
    """
    Discrete stages for the selfie flow.

    Stage 0 covers the upload and shows real upload progress. When the upload
    reaches 100 the estimator moves to stage 1 and schedules one timer per
    remaining stage at fixed offsets, regardless of backend state.
    """

    def __init__(
        self,
        config: SelfieConfig,
        scheduler: Scheduler,
        listener: ProgressListener | None = None,
    ) -> None:
        super().__init__(scheduler, listener)
        self._labels = config.stage_labels
        self._schedule = sorted(config.stage_schedule)
        self._stage = 0
        self._upload = 0
        self._upload_done = False

    @property
    def stage(self) -> int:
        return self._stage

    def _snapshot(self, stage: int) -> ProgressSnapshot:
        return ProgressSnapshot(
            stage_index=stage,
            stage_label=self._labels[stage],
            percent=self._upload,
            upload_percent=self._upload,
        )

    def start(self) -> None:
        self._emit(self._snapshot(0))

    def on_upload_progress(self, percent: int) -> None:
        if self._done or self._upload_done:
            return
        percent = max(0, min(100, int(percent)))
        if percent <= self._upload:
            return
        self._upload = percent
        if percent < 100:
            self._emit(self._snapshot(0))
            return

        self._upload_done = True
        self._advance_to(1)
        for i, delay in enumerate(self._schedule):
            stage = min(i + 2, len(self._labels) - 1)
            self._timers.schedule(delay, lambda stage=stage: self._advance_to(stage))
        logger.debug(f"Upload complete, scheduled {len(self._schedule)} stage timer(s)")

    def _advance_to(self, stage: int) -> None:
        if stage <= self._stage:
            return
        self._stage = stage
        self._emit(self._snapshot(stage))

    def _final_snapshot(self) -> ProgressSnapshot:
        last = len(self._labels) - 1
        self._stage = last
        return ProgressSnapshot(
            stage_index=last,
            stage_label=self._labels[last],
            percent=100,
            message=self.FINAL_MESSAGE,
            upload_percent=100,
            final=True,
        )


# (label, share of the timeline, message)
STORY_STAGES: list[tuple[str, float, str]] = [
    ("Crafting story...", 0.4, "AI is writing your story"),
    ("Generating cover image...", 0.3, "Creating beautiful artwork"),
    ("Creating scenes...", 0.3, "Adding final touches"),
]


def estimate_generation_time(
    length: str, include_images: bool, config: StoryConfig | None = None
) -> int:
    """
    Static estimate of story generation time in seconds.

    Args:
        length: Story length ("short", "medium", "long")
        include_images: Whether cover/scene images were requested
        config: Story settings (defaults when None)

    Returns:
        Estimated seconds
    """
    config = config or StoryConfig()
    seconds = config.base_times.get(length, config.base_times.get("medium", 240))
    if include_images:
        seconds += config.image_overhead
    return seconds


class StoryProgressEstimator(ProgressEstimator):
    """
    Continuous percentage plus rotating message for the story flow.

    Ticks every `tick_interval` seconds across the estimated generation time,
    capped below 100 until the real response arrives.
    """

    def __init__(
        self,
        config: StoryConfig,
        length: str,
        include_images: bool,
        scheduler: Scheduler,
        listener: ProgressListener | None = None,
    ) -> None:
        super().__init__(scheduler, listener)
        self._interval = config.tick_interval
        self._cap = config.progress_cap
        self._total_seconds = estimate_generation_time(length, include_images, config)
        total_steps = max(1.0, self._total_seconds / self._interval)
        self._per_step = 100.0 / total_steps
        self._progress = 0.0

    @property
    def total_seconds(self) -> int:
        return self._total_seconds

    def start(self) -> None:
        self._emit(
            ProgressSnapshot(
                stage_index=0,
                stage_label="Initializing...",
                percent=0,
                message="Starting story generation",
                eta_seconds=self._total_seconds,
            )
        )
        self._timers.schedule(self._interval, self._tick)

    def on_upload_progress(self, percent: int) -> None:
        # Text-only submission: the upload phase carries no useful signal
        return

    def _tick(self) -> None:
        self._progress += self._per_step
        if self._progress >= 100:
            self._emit(
                ProgressSnapshot(
                    stage_index=len(STORY_STAGES) - 1,
                    stage_label="Finalizing...",
                    percent=self._cap,
                    message="Almost done!",
                    eta_seconds=0,
                    upload_percent=100,
                )
            )
            return

        fraction = self._progress / 100
        cumulative = 0.0
        stage_index = len(STORY_STAGES) - 1
        for i, (_, share, _) in enumerate(STORY_STAGES):
            cumulative += share
            if fraction < cumulative:
                stage_index = i
                break
        label, _, message = STORY_STAGES[stage_index]

        remaining_steps = (100 - self._progress) / self._per_step
        self._emit(
            ProgressSnapshot(
                stage_index=stage_index,
                stage_label=label,
                percent=min(self._cap, int(self._progress)),
                message=message,
                eta_seconds=math.ceil(remaining_steps * self._interval),
                upload_percent=100,
            )
        )
        self._timers.schedule(self._interval, self._tick)

    def _final_snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            stage_index=len(STORY_STAGES) - 1,
            stage_label="Complete!",
            percent=100,
            message="Your story is ready!",
            eta_seconds=0,
            upload_percent=100,
            final=True,
        )
