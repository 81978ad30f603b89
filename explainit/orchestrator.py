import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from explainit.config import get_settings
from explainit.display import DisplaySink, SessionDisplay
from explainit.errors import PermissionDenied, PipelineBusyError, PipelineError
from explainit.explain_client import ExplainClient, get_explain_client
from explainit.models import (
    ANALYSIS_FAILURE_ALERT,
    EXTRACTION_FAILURE_ALERT,
    IMAGE_FAILURE_ALERT,
    NO_TEXT_ALERT,
    PERMISSION_ALERTS,
    ImageAsset,
    Notification,
    PipelineState,
    RunOutcome,
    Stage,
)
from explainit.ocr_backends.base import OCRBackend
from explainit.ocr_client import get_ocr_backend
from explainit.reducer import SizeReducer

logger = logging.getLogger(__name__)

STAGE_ALERTS = {
    Stage.REDUCING: IMAGE_FAILURE_ALERT,
    Stage.EXTRACTING_TEXT: EXTRACTION_FAILURE_ALERT,
    Stage.EXPLAINING: ANALYSIS_FAILURE_ALERT,
}


@dataclass
class CaptureEvent:
    run_id: int
    asset: ImageAsset
    future: asyncio.Future


class PipelineOrchestrator:
    """Runs reduce -> OCR -> explain for one capture at a time.

    Captures arrive either through ``submit`` (queued for the single consumer
    task started by ``start``) or through a direct ``run`` call, which is
    rejected while another run is in a stage. Every capture gets a run id;
    only the newest one may update the display, and queued captures that a
    newer one has overtaken are skipped.
    """

    def __init__(
        self,
        display: Optional[DisplaySink] = None,
        reducer: Optional[SizeReducer] = None,
        ocr_backend: Optional[OCRBackend] = None,
        explain_client: Optional[ExplainClient] = None,
        api_key: Optional[str] = None,
        byte_ceiling: Optional[int] = None,
    ):
        self.display = display if display is not None else SessionDisplay()
        self._reducer = reducer
        self._ocr_backend = ocr_backend
        self._explain_client = explain_client
        self._api_key = api_key
        self._byte_ceiling = byte_ceiling

        self._state = PipelineState.IDLE
        self._latest_run_id = 0
        self._run_lock = asyncio.Lock()
        self._queue: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    # Collaborators not injected are built from settings on first use.
    def _resolve(self) -> None:
        settings = get_settings()
        if self._reducer is None:
            self._reducer = SizeReducer.from_settings()
        if self._ocr_backend is None:
            self._ocr_backend = get_ocr_backend()
        if self._explain_client is None:
            self._explain_client = get_explain_client()
        if self._api_key is None:
            self._api_key = settings.OCR_API_KEY
        if self._byte_ceiling is None:
            self._byte_ceiling = settings.BYTE_CEILING

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state.busy

    @property
    def latest_run_id(self) -> int:
        return self._latest_run_id

    @property
    def running(self) -> bool:
        return (
            self._consumer is not None
            and not self._consumer.done()
            and not self._stop_event.is_set()
        )

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def start(self) -> None:
        """Start the consumer task that drains submitted captures."""
        if self.running:
            return
        self._stop_event.clear()
        self._queue = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume())
        logger.info("Pipeline consumer started")

    async def stop(self) -> None:
        """Let queued captures finish, then stop the consumer."""
        if self._consumer is None:
            return
        # refuse new captures before the shutdown marker is queued
        self._stop_event.set()
        await self._queue.put(None)
        await asyncio.gather(self._consumer, return_exceptions=True)
        self._consumer = None
        logger.info("Pipeline consumer stopped")

    def submit(self, asset: ImageAsset) -> asyncio.Future:
        """Queue a capture; the returned future resolves to its RunOutcome."""
        if not self.running:
            raise RuntimeError("Pipeline consumer is not running")
        self._latest_run_id += 1
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(CaptureEvent(self._latest_run_id, asset, future))
        logger.info(
            "Queued run %d for %s (%s)",
            self._latest_run_id, asset.uri, asset.source.value,
        )
        return future

    async def run(self, asset: ImageAsset) -> RunOutcome:
        """Run the pipeline now. Raises PipelineBusyError if a run is active."""
        if self._run_lock.locked():
            raise PipelineBusyError(
                f"Run {self._latest_run_id} is still {self._state.value}"
            )
        self._latest_run_id += 1
        return await self._execute(self._latest_run_id, asset)

    def handle_permission_denied(self, error: PermissionDenied) -> Notification:
        notification = PERMISSION_ALERTS[error.source]
        logger.warning("Capture blocked: %s", error)
        self.display.alert(notification)
        return notification

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            if event is None:
                self._queue.task_done()
                break
            try:
                if event.run_id < self._latest_run_id:
                    logger.info(
                        "Skipping run %d, superseded by run %d",
                        event.run_id, self._latest_run_id,
                    )
                    outcome = RunOutcome(
                        run_id=event.run_id,
                        state=PipelineState.IDLE,
                        superseded=True,
                    )
                else:
                    outcome = await self._execute(event.run_id, event.asset)
            except Exception as e:
                logger.error(
                    "Unexpected error in run %d: %s", event.run_id, e,
                    exc_info=True,
                )
                if not event.future.done():
                    event.future.set_exception(e)
            else:
                if not event.future.done():
                    event.future.set_result(outcome)
            finally:
                self._queue.task_done()

    def _is_current(self, run_id: int) -> bool:
        return run_id == self._latest_run_id

    def _enter(self, outcome: RunOutcome, state: PipelineState) -> None:
        logger.debug(
            "Run %d: %s -> %s", outcome.run_id, self._state.value, state.value
        )
        self._state = state
        outcome.state = state
        outcome.transitions.append(state)

    async def _execute(self, run_id: int, asset: ImageAsset) -> RunOutcome:
        async with self._run_lock:
            self._resolve()
            outcome = RunOutcome(
                run_id=run_id,
                state=PipelineState.IDLE,
                transitions=[PipelineState.IDLE],
            )
            if self._is_current(run_id):
                self.display.show_preview(asset.uri)
                self.display.show_text(None)
                self.display.show_explanation(None)
                self.display.set_busy(True)

            try:
                self._enter(outcome, PipelineState.REDUCING)
                payload = await self._reducer.reduce_async(
                    asset, self._byte_ceiling
                )
                outcome.payload_size = payload.size

                self._enter(outcome, PipelineState.EXTRACTING_TEXT)
                text = await self._ocr_backend.extract(payload, self._api_key)
                if not text:
                    logger.info("Run %d: no text detected", run_id)
                    outcome.notification = NO_TEXT_ALERT
                    self._enter(outcome, PipelineState.DONE)
                    return outcome

                outcome.extracted_text = text
                if self._is_current(run_id):
                    self.display.show_text(text)

                self._enter(outcome, PipelineState.EXPLAINING)
                explanation = await self._explain_client.explain(text)
                outcome.explanation = explanation
                if self._is_current(run_id):
                    self.display.show_explanation(explanation)
                self._enter(outcome, PipelineState.DONE)
                return outcome

            except PipelineError as e:
                logger.error(
                    "Run %d failed while %s: %s",
                    run_id, e.stage.value, e, exc_info=True,
                )
                outcome.failed_stage = e.stage
                outcome.notification = STAGE_ALERTS[e.stage]
                self._enter(outcome, PipelineState.FAILED)
                return outcome

            finally:
                self._state = PipelineState.IDLE
                outcome.superseded = not self._is_current(run_id)
                if outcome.superseded:
                    logger.info(
                        "Run %d finished after a newer capture; result dropped",
                        run_id,
                    )
                else:
                    if outcome.notification is not None:
                        self.display.alert(outcome.notification)
                    self.display.set_busy(False)
