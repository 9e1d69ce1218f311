# genstudio/orchestration/machine.py
"""
Generation state machine.

The orchestrator for one kind of generation job. Owns the current state and
job, checks every transition against ALLOWED_TRANSITIONS, and exposes the
commands the view layer calls. All StudioErrors are caught here and stored
on the job (ERROR state) or as the machine's rejection (refused command);
none propagate to the caller.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import httpx

from genstudio.client.driver import GenerationRequestDriver
from genstudio.config.schema import SelfieConfig, StoryConfig
from genstudio.errors import (
    GenerationFailure,
    IllegalTransitionError,
    JobInProgressError,
    PersistenceFailure,
    QuotaExceededError,
    RecoveryAction,
    StudioError,
    ValidationError,
)
from genstudio.models.jobs import (
    IN_FLIGHT_STATES,
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
    SavedArtifact,
    StoryRequest,
    Visibility,
)
from genstudio.models.quota import QuotaState
from genstudio.persistence.persister import ResultPersister
from genstudio.validation.inputs import InputPreparer

from .progress import (
    LoopScheduler,
    ProgressEstimator,
    Scheduler,
    SelfieStageEstimator,
    StoryProgressEstimator,
)
from .quota_gate import QuotaGate

logger = logging.getLogger(__name__)

# States in which the job's result is visible
_RESULT_STATES = frozenset(
    {GenerationState.SUCCESS, GenerationState.SAVING, GenerationState.PUBLISHED}
)


@dataclass
class JobSnapshot:
    """Read-only view of the machine for rendering."""

    state: GenerationState
    kind: JobKind
    local_id: str | None = None
    remote_id: str | None = None
    preview: str | None = None
    upload_progress: int = 0
    perceived: ProgressSnapshot | None = None
    result: GenerationResult | None = None
    error: StudioError | None = None
    rejection: StudioError | None = None
    quota: QuotaState | None = None
    artifact: SavedArtifact | None = None

    @property
    def recovery(self) -> RecoveryAction | None:
        """The single recovery action offered in ERROR, else None."""
        return self.error.recovery if self.error else None


ChangeListener = Callable[[JobSnapshot], None]


class GenerationStateMachine:
    """
    State machine for one generation kind (selfie or story).

    States: IDLE -> PREVIEWING (selfie only) -> GENERATING -> SUCCESS | ERROR,
    then SUCCESS -> SAVING -> PUBLISHED | ERROR (story only).

    Commands:
        start_with_input: stage a selfie (-> PREVIEWING) or submit a story (-> GENERATING)
        confirm_and_generate: submit the staged selfie
        try_another: discard the result and resubmit the same input
        persist / retry_save: save a story result
        download_clean: fetch a watermark-free selfie
        reset: tear down from any state back to IDLE

    Refused commands (validation, quota, busy) leave the state unchanged and
    are reported through `rejection`.
    """

    def __init__(
        self,
        kind: JobKind,
        gate: QuotaGate,
        preparer: InputPreparer,
        driver: GenerationRequestDriver,
        config: SelfieConfig | StoryConfig,
        persister: ResultPersister | None = None,
        scheduler: Scheduler | None = None,
        slot: JobSlot | None = None,
        on_change: ChangeListener | None = None,
    ) -> None:
        """
        Initialize the state machine.

        Args:
            kind: Which flow this machine drives
            gate: Quota gate for this kind
            preparer: Input validation and preview staging
            driver: Generation request driver
            config: SelfieConfig or StoryConfig matching `kind`
            persister: Result persister (story flow only)
            scheduler: Timer source for progress estimation (default: asyncio loop)
            slot: In-flight guard, shared across machines of one session
            on_change: Called with a fresh snapshot after every change
        """
        self._kind = kind
        self._gate = gate
        self._preparer = preparer
        self._driver = driver
        self._config = config
        self._persister = persister
        self._scheduler = scheduler or LoopScheduler()
        self._slot = slot or JobSlot()
        self._on_change = on_change

        self._state = GenerationState.IDLE
        self._job: GenerationJob | None = None
        self._rejection: StudioError | None = None
        self._estimator: ProgressEstimator | None = None
        self._visibility: Visibility | None = None
        self._metadata: ArtifactMetadata | None = None

    @property
    def kind(self) -> JobKind:
        return self._kind

    @property
    def state(self) -> GenerationState:
        return self._state

    @property
    def job(self) -> GenerationJob | None:
        """The current job (None in IDLE)."""
        return self._job

    @property
    def rejection(self) -> StudioError | None:
        """Why the last command was refused, cleared by the next command."""
        return self._rejection

    @property
    def gate(self) -> QuotaGate:
        return self._gate

    @property
    def estimator(self) -> ProgressEstimator | None:
        return self._estimator

    @property
    def can_retry_save(self) -> bool:
        job = self._job
        return (
            self._state is GenerationState.ERROR
            and job is not None
            and isinstance(job.error, PersistenceFailure)
            and job.result is not None
            and self._visibility is not None
        )

    def snapshot(self) -> JobSnapshot:
        """Current state and job, as the view layer renders it."""
        job = self._job
        if job is None:
            return JobSnapshot(
                state=self._state,
                kind=self._kind,
                rejection=self._rejection,
                quota=self._gate.state,
            )

        result = None
        if self._state in _RESULT_STATES or isinstance(job.error, PersistenceFailure):
            result = job.result
        return JobSnapshot(
            state=self._state,
            kind=self._kind,
            local_id=job.local_id,
            remote_id=job.id,
            preview=job.input.preview if isinstance(job.input, SelfieInput) else None,
            upload_progress=job.upload_progress,
            perceived=job.perceived,
            result=result,
            error=job.error if self._state is GenerationState.ERROR else None,
            rejection=self._rejection,
            quota=self._gate.state,
            artifact=job.artifact,
        )

    # -- commands ---------------------------------------------------------

    async def start_with_input(
        self,
        job_input: bytes | str | Path | StoryRequest,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> GenerationState:
        """
        Start a job from user input.

        Selfie: validates and stages the image (bytes or a file path) and
        moves to PREVIEWING; staging again in PREVIEWING replaces the image.
        Story: validates the prompt, checks quota and runs the generation.

        Returns:
            The state after the command
        """
        self._rejection = None
        if self._refuse_if_busy():
            return self._state

        if self._kind is JobKind.SELFIE:
            return self._stage_selfie(job_input, filename, content_type)

        if self._state is not GenerationState.IDLE:
            raise IllegalTransitionError(f"Cannot start a story from {self._state.value}")
        if not isinstance(job_input, StoryRequest):
            raise TypeError(f"Story jobs take a StoryRequest, got {type(job_input).__name__}")

        try:
            request = self._preparer.prepare_story(job_input)
        except ValidationError as e:
            return self._reject(e)

        job = GenerationJob(local_id=generate_job_id(), kind=self._kind, input=request)
        await self._generate(job)
        return self._state

    async def confirm_and_generate(self) -> GenerationState:
        """Submit the staged selfie (PREVIEWING -> GENERATING)."""
        self._rejection = None
        if self._refuse_if_busy():
            return self._state
        if self._state is not GenerationState.PREVIEWING or self._job is None:
            raise IllegalTransitionError(f"Nothing staged to confirm in {self._state.value}")

        await self._generate(self._job)
        return self._state

    async def try_another(self) -> GenerationState:
        """Discard the current result and resubmit the same input (SUCCESS -> GENERATING)."""
        self._rejection = None
        if self._refuse_if_busy():
            return self._state
        if self._state is not GenerationState.SUCCESS or self._job is None:
            raise IllegalTransitionError(f"Cannot try another from {self._state.value}")

        previous = self._job
        job = GenerationJob(local_id=generate_job_id(), kind=self._kind, input=previous.input)
        logger.info(f"Discarding result of job {previous.local_id} for a new attempt")
        await self._generate(job)
        return self._state

    async def persist(
        self,
        visibility: Visibility,
        metadata: ArtifactMetadata | None = None,
    ) -> GenerationState:
        """
        Save the story result (SUCCESS -> SAVING -> PUBLISHED | ERROR).

        Also accepted from a PersistenceFailure ERROR, with new visibility.
        """
        self._rejection = None
        if self._refuse_if_busy():
            return self._state
        if self._kind is not JobKind.STORY or self._persister is None:
            raise IllegalTransitionError("Only story results can be saved")

        job = self._job
        if not (self._state is GenerationState.SUCCESS or self._is_save_failure()):
            raise IllegalTransitionError(f"Cannot save from {self._state.value}")

        try:
            self._persister.build_request(job.result.data, visibility, metadata)
        except ValidationError as e:
            return self._reject(e)

        self._visibility = visibility
        self._metadata = metadata
        await self._save(job)
        return self._state

    async def retry_save(self) -> GenerationState:
        """Re-invoke the persister with the retained result and last visibility."""
        self._rejection = None
        if self._refuse_if_busy():
            return self._state
        if not self.can_retry_save:
            raise IllegalTransitionError(f"Nothing to retry in {self._state.value}")

        await self._save(self._job)
        return self._state

    async def download_clean(self, is_premium: bool) -> bytes | None:
        """
        Fetch the watermark-free selfie. State is unchanged either way.

        Returns:
            Image bytes, or None when refused or failed (see `rejection`)
        """
        self._rejection = None
        if self._kind is not JobKind.SELFIE or self._state is not GenerationState.SUCCESS:
            raise IllegalTransitionError(f"No selfie result to download in {self._state.value}")

        job = self._job
        if not is_premium:
            self._reject(
                ValidationError.from_fields(
                    {"membership": "Clean downloads are available to Super Fan members."}
                )
            )
            return None
        if not job.id:
            self._reject(GenerationFailure(message="This result has no identifier to download."))
            return None

        try:
            return await self._driver.download_clean(job.id)
        except httpx.HTTPError as e:
            logger.warning(f"Clean download failed for {job.id}: {e}")
            self._reject(GenerationFailure(message="Download failed. Please try again."))
            return None

    def reset(self) -> None:
        """
        Return to IDLE from any state.

        Cancels progress timers, revokes previews and frees the in-flight
        slot. A request still in flight is not aborted; its response is
        discarded when it arrives.
        """
        if self._estimator is not None:
            self._estimator.cancel()
            self._estimator = None

        job = self._job
        if job is not None:
            self._preparer.release(job.input)
            self._slot.release(job.local_id)
            logger.info(f"Reset {self._kind.value} job {job.local_id} from {self._state.value}")

        self._job = None
        self._state = GenerationState.IDLE
        self._rejection = None
        self._visibility = None
        self._metadata = None
        self._notify()

    # -- internals --------------------------------------------------------

    def _notify(self) -> None:
        if self._on_change:
            self._on_change(self.snapshot())

    def _log_context(self) -> dict[str, str | None]:
        """Job fields picked up by the JSON log formatter."""
        return {
            "job_kind": self._kind.value,
            "job_id": self._job.local_id if self._job else None,
            "job_state": self._state.value,
        }

    def _reject(self, error: StudioError) -> GenerationState:
        logger.info(f"Refused {self._kind.value} command: {error.message}")
        self._rejection = error
        self._notify()
        return self._state

    def _refuse_if_busy(self) -> bool:
        """Record a busy refusal if a job is in flight here or elsewhere in the session."""
        if self._state in IN_FLIGHT_STATES:
            self._reject(JobInProgressError(self._slot.holder))
            return True
        holder = self._slot.holder
        if holder is not None and (self._job is None or holder != self._job.local_id):
            self._reject(JobInProgressError(holder))
            return True
        return False

    def _is_save_failure(self) -> bool:
        job = self._job
        return (
            self._state is GenerationState.ERROR
            and job is not None
            and isinstance(job.error, PersistenceFailure)
            and job.result is not None
        )

    def _transition(self, dst: GenerationState) -> None:
        src = self._state
        if not can_transition(src, dst, self._kind):
            raise IllegalTransitionError(
                f"Illegal {self._kind.value} transition {src.value} -> {dst.value}"
            )
        if src is GenerationState.ERROR and dst is GenerationState.SAVING:
            if not self._is_save_failure():
                raise IllegalTransitionError("Only a failed save can be retried from ERROR")

        self._state = dst
        if self._job is not None:
            self._job.state = dst
        logger.info(f"[{self._kind.value}] {src.value} -> {dst.value}", extra=self._log_context())
        self._notify()

    def _stage_selfie(
        self,
        job_input: bytes | str | Path | StoryRequest,
        filename: str | None,
        content_type: str | None,
    ) -> GenerationState:
        if self._state not in (GenerationState.IDLE, GenerationState.PREVIEWING):
            raise IllegalTransitionError(f"Cannot stage a selfie in {self._state.value}")

        try:
            if isinstance(job_input, bytes):
                staged = self._preparer.stage_selfie(
                    job_input, filename or "selfie.jpg", content_type
                )
            elif isinstance(job_input, (str, Path)):
                staged = self._preparer.stage_selfie_file(job_input)
            else:
                raise TypeError(f"Selfie jobs take bytes or a path, got {type(job_input).__name__}")
        except ValidationError as e:
            return self._reject(e)

        if self._state is GenerationState.PREVIEWING and self._job is not None:
            # Superseded image
            self._preparer.release(self._job.input)
            self._job.input = staged
            self._job.local_id = generate_job_id()
            self._notify()
            return self._state

        self._job = GenerationJob(local_id=generate_job_id(), kind=self._kind, input=staged)
        self._transition(GenerationState.PREVIEWING)
        return self._state

    def _make_estimator(self, job: GenerationJob) -> ProgressEstimator:
        def listener(snapshot: ProgressSnapshot) -> None:
            if self._job is job:
                job.perceived = snapshot
                self._notify()

        if self._kind is JobKind.SELFIE:
            return SelfieStageEstimator(self._config, self._scheduler, listener)
        return StoryProgressEstimator(
            self._config,
            job.input.prompt.length,
            job.input.include_images,
            self._scheduler,
            listener,
        )

    async def _generate(self, job: GenerationJob) -> None:
        """Reserve slot and quota, move to GENERATING, submit and resolve."""
        if not self._slot.try_acquire(job.local_id):
            self._reject(JobInProgressError(self._slot.holder))
            return

        decision = self._gate.check_and_reserve()
        if not decision.allowed:
            self._slot.release(job.local_id)
            quota = self._gate.state
            self._reject(
                QuotaExceededError(
                    remaining=decision.remaining,
                    resets_at=quota.window_reset_at if quota else None,
                )
            )
            return

        self._job = job
        self._transition(GenerationState.GENERATING)

        estimator = self._make_estimator(job)
        self._estimator = estimator
        estimator.start()

        def on_upload(percent: int) -> None:
            if self._job is not job:
                return
            job.record_upload(percent)
            estimator.on_upload_progress(job.upload_progress)
            self._notify()

        try:
            outcome = await self._driver.submit(job.input, on_upload_progress=on_upload)
        except Exception as e:
            logger.error(f"Unexpected error generating job {job.local_id}: {e}", exc_info=True)
            outcome = SubmitOutcome(success=False, error=GenerationFailure(message=str(e) or None))

        self._gate.sync(outcome.quota)

        if self._job is not job or self._state is not GenerationState.GENERATING:
            # Abandoned while in flight; the backend may still have spent quota
            logger.info(f"Discarding late response for abandoned job {job.local_id}")
            estimator.cancel()
            return

        self._slot.release(job.local_id)
        self._estimator = None

        if outcome.success and outcome.result is not None:
            estimator.finish()
            job.result = outcome.result
            job.id = outcome.result.remote_id
            job.upload_progress = 100
            self._transition(GenerationState.SUCCESS)
            if outcome.quota is None:
                await self._gate.refresh()
                self._notify()
            return

        estimator.cancel()
        job.error = outcome.error or GenerationFailure()
        logger.warning(
            f"{self._kind.value.capitalize()} job {job.local_id} failed: "
            f"{job.error.kind.value}: {job.error.message}",
            extra=self._log_context(),
        )
        self._transition(GenerationState.ERROR)
        if outcome.quota is None:
            # Undo the local reservation, then let the backend's count win
            self._gate.release()
            await self._gate.refresh()
            self._notify()

    async def _save(self, job: GenerationJob) -> None:
        """SAVING -> PUBLISHED on success, -> ERROR (result retained) on failure."""
        if not self._slot.try_acquire(job.local_id):
            self._reject(JobInProgressError(self._slot.holder))
            return

        self._transition(GenerationState.SAVING)
        job.error = None

        try:
            artifact = await self._persister.save(job.result.data, self._visibility, self._metadata)
        except PersistenceFailure as e:
            artifact, error = None, e
        except StudioError as e:
            artifact, error = None, PersistenceFailure(message=e.message)
        except Exception as e:
            logger.error(f"Unexpected error saving job {job.local_id}: {e}", exc_info=True)
            artifact, error = None, PersistenceFailure()

        if self._job is not job or self._state is not GenerationState.SAVING:
            logger.info(f"Discarding save response for abandoned job {job.local_id}")
            return

        self._slot.release(job.local_id)
        if artifact is not None:
            job.artifact = artifact
            self._transition(GenerationState.PUBLISHED)
            return

        job.error = error
        logger.warning(f"Saving job {job.local_id} failed: {error.message}")
        self._transition(GenerationState.ERROR)
