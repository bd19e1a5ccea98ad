import asyncio
import inspect
import logging
import threading
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Generic, List, Optional, Sequence, Set, TypeVar, Union

from kbparts.config.settings import settings
from kbparts.core.errors import ConfigurationError, PartSubmissionError
from kbparts.models.upload import BatchProgress, UploadSummary

logger = logging.getLogger(__name__)

T = TypeVar("T")
SubmitFn = Callable[[T], Union[Awaitable[Any], Any]]
ProgressCallback = Callable[[BatchProgress], None]

class PauseToken:
    """
    Pause signal shared between a caller and one running batch.
    Safe to flip from any thread; the batch polls it between scheduling rounds.
    """

    def __init__(self):
        self._paused = threading.Event()

    def pause(self) -> None:
        self._paused.set()

    def resume(self) -> None:
        self._paused.clear()

    @property
    def is_paused(self) -> bool:
        return self._paused.is_set()

class UploadBatch(Generic[T]):
    """Handle on a running batch: live progress, pause/resume and the final summary."""

    def __init__(self, parts: Sequence[T], pause_token: PauseToken):
        self.queue: Deque[T] = deque(parts)
        self.in_flight: Set[asyncio.Task] = set()
        self.pause_token = pause_token
        self.total = len(parts)
        self.processed = 0
        self.failed = 0
        self.failed_parts: List[str] = []
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        return self.total - self.processed - self.failed

    @property
    def progress(self) -> BatchProgress:
        return BatchProgress(
            total=self.total,
            processed=self.processed,
            failed=self.failed,
            pending=self.pending,
            in_flight=len(self.in_flight),
            paused=self.pause_token.is_paused
        )

    def pause(self) -> None:
        self.pause_token.pause()

    def resume(self) -> None:
        self.pause_token.resume()

    @property
    def is_paused(self) -> bool:
        return self.pause_token.is_paused

    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def wait(self) -> UploadSummary:
        await self._task
        return self.summary()

    def summary(self) -> UploadSummary:
        return UploadSummary(
            total=self.total,
            processed=self.processed,
            failed=self.failed,
            failed_parts=list(self.failed_parts)
        )

class UploadOrchestrator:
    """
    Bounded worker pool for part submission.

    At most `concurrency_limit` submissions run at once and a free slot is
    refilled as soon as any submission finishes. Parts start in FIFO order.
    Pausing stops new starts only; running submissions always finish and are
    counted. A failing submission is recorded and never stops the batch.
    """

    def __init__(self, concurrency_limit: Optional[int] = None, poll_interval: Optional[float] = None):
        self.concurrency_limit = concurrency_limit if concurrency_limit is not None else settings.upload.concurrency_limit
        self.poll_interval = poll_interval if poll_interval is not None else settings.upload.pause_poll_interval
        if self.concurrency_limit < 1:
            raise ConfigurationError(f"concurrency_limit must be >= 1, got {self.concurrency_limit}")
        if self.poll_interval <= 0:
            raise ConfigurationError(f"poll_interval must be > 0, got {self.poll_interval}")

    def start(self,
              parts: Sequence[T],
              submit: SubmitFn,
              progress_callback: Optional[ProgressCallback] = None,
              pause_token: Optional[PauseToken] = None) -> UploadBatch[T]:
        """Schedules the batch on the running event loop and returns its handle."""
        batch = UploadBatch(parts, pause_token or PauseToken())
        batch._task = asyncio.get_running_loop().create_task(
            self._drive(batch, submit, progress_callback)
        )
        return batch

    async def run(self,
                  parts: Sequence[T],
                  submit: SubmitFn,
                  progress_callback: Optional[ProgressCallback] = None,
                  pause_token: Optional[PauseToken] = None) -> UploadSummary:
        return await self.start(parts, submit, progress_callback, pause_token).wait()

    async def _drive(self, batch: UploadBatch, submit: SubmitFn, progress_callback: Optional[ProgressCallback]):
        logger.info(f"Starting upload batch: {batch.total} parts, concurrency {self.concurrency_limit}")

        while batch.queue or batch.in_flight:
            if not batch.is_paused:
                while batch.queue and len(batch.in_flight) < self.concurrency_limit:
                    part = batch.queue.popleft()
                    task = asyncio.create_task(self._submit_one(part, submit))
                    batch.in_flight.add(task)

            if not batch.in_flight:
                # Paused with nothing running
                await asyncio.sleep(self.poll_interval)
                continue

            timeout = self.poll_interval if batch.is_paused else None
            done, _ = await asyncio.wait(batch.in_flight, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                batch.in_flight.discard(task)
                part_name, error = task.result()
                if error is None:
                    batch.processed += 1
                else:
                    batch.failed += 1
                    batch.failed_parts.append(part_name)
                if progress_callback:
                    try:
                        progress_callback(batch.progress)
                    except Exception:
                        logger.exception("Progress callback failed; batch continues")

        logger.info(f"Upload batch finished: {batch.processed} processed, {batch.failed} failed")

    async def _submit_one(self, part: Any, submit: SubmitFn):
        part_name = _label(part)
        try:
            if inspect.iscoroutinefunction(submit):
                await submit(part)
            else:
                result = await asyncio.to_thread(submit, part)
                if inspect.isawaitable(result):
                    await result
            return part_name, None
        except Exception as e:
            error = e if isinstance(e, PartSubmissionError) else PartSubmissionError(part_name, str(e))
            logger.error(f"Submission failed for part '{part_name}': {error.reason}")
            return part_name, error

def _label(part: Any) -> str:
    return getattr(part, "name", None) or str(part)
