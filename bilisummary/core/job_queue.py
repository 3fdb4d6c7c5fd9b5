"""
Batch orchestrator and progress tracker.
Runs up to `concurrency` video pipelines at once over a shared FIFO queue.
"""

import functools
import logging
import threading
import time
from collections import deque
from dataclasses import replace
from typing import Callable, Iterable, Optional

from bilisummary.core.constants import (
    ItemStatus, TERMINAL_STATUSES, ErrorCode, PipelineStage,
    STANDALONE_SUBDIR, DEFAULT_CONCURRENCY, COURTESY_DELAY_MS,
)
from bilisummary.core.error_codes import PipelineError
from bilisummary.core.models import Credential, ProgressItem, ProgressSnapshot, WorkItem
from bilisummary.core.pipeline import VideoPipeline

logger = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressItem], None]


def _transition_allowed(current: str, new: str) -> bool:
    if current in TERMINAL_STATUSES:
        return False
    if new == ItemStatus.PENDING:
        return False
    return True


class ProgressTracker:
    """
    Owns every ProgressItem. All mutation goes through this object under
    one lock; listeners receive copies after the lock is released.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._items: dict[str, ProgressItem] = {}
        self._total = 0
        self._completed = 0
        self._listeners: list[ProgressListener] = []

    def add(self, video_id: str, title: str = "") -> bool:
        """
        Register an id as pending. Returns False when the id is already
        pending or processing. A finished id is re-armed for a new run.
        """
        with self._lock:
            existing = self._items.get(video_id)
            if existing is not None and existing.status not in TERMINAL_STATUSES:
                return False
            if existing is not None:
                existing.status = ItemStatus.PENDING
                existing.message = ""
                existing.stage = None
                if title:
                    existing.title = title
                item = existing
            else:
                item = ProgressItem(video_id=video_id, title=title or video_id)
                self._items[video_id] = item
            self._total += 1
            copy = replace(item)
        self._notify(copy)
        return True

    def update(self, video_id: str, status: str, message: str = "",
               stage: Optional[str] = None, title: Optional[str] = None) -> Optional[ProgressItem]:
        with self._lock:
            item = self._items.get(video_id)
            if item is None:
                logger.warning("Progress update for unknown id %s", video_id)
                return None
            if not _transition_allowed(item.status, status):
                logger.warning("[%s] Ignoring status change %s -> %s",
                               video_id, item.status, status)
                return None
            item.status = status
            item.message = message
            item.stage = stage
            if title:
                item.title = title
            copy = replace(item)
        self._notify(copy)
        return copy

    def mark_completed(self):
        with self._lock:
            self._completed += 1

    def get(self, video_id: str) -> Optional[ProgressItem]:
        with self._lock:
            item = self._items.get(video_id)
            return replace(item) if item else None

    def snapshot(self, running: bool = False) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(
                total=self._total,
                completed=self._completed,
                running=running,
                items=[replace(i) for i in self._items.values()],
            )

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return unsubscribe

    def reset(self):
        with self._lock:
            self._items.clear()
            self._total = 0
            self._completed = 0

    def _notify(self, item: ProgressItem):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(replace(item))
            except Exception as e:
                logger.error("Progress listener error: %s", e, exc_info=True)


class BatchOrchestrator:
    """
    Feeds submitted videos into the pipeline with bounded concurrency.

    submit() may be called while a run is live: new ids join the same queue
    and the same progress list. Per-item failures never propagate; they end
    as a failed ProgressItem.
    """

    def __init__(self, pipeline: VideoPipeline,
                 concurrency: int = DEFAULT_CONCURRENCY,
                 courtesy_delay_sec: float = COURTESY_DELAY_MS / 1000.0,
                 sleep: Callable[[float], None] = time.sleep):
        self.pipeline = pipeline
        self.concurrency = max(1, int(concurrency))
        self.courtesy_delay_sec = courtesy_delay_sec
        self._sleep = sleep

        self.tracker = ProgressTracker()
        self.tracker.subscribe(self._emit_item_updated)

        self._queue: deque[WorkItem] = deque()
        self._cond = threading.Condition()
        self._slots = threading.BoundedSemaphore(self.concurrency)
        self._running = False
        self._run_id = 0
        self._active = 0
        self._dispatcher: Optional[threading.Thread] = None

        # Callbacks
        self.on_item_updated: Optional[ProgressListener] = None
        self.on_run_finished: Optional[Callable[[], None]] = None

    # ── Public API ────────────────────────────────────────────────────

    def submit(self, video_ids: Iterable[str],
               credential: Optional[Credential] = None,
               destination: str = STANDALONE_SUBDIR,
               titles: Optional[dict[str, str]] = None) -> list[str]:
        """
        Enqueue videos. Starts a run if none is active, otherwise joins the
        live one. Returns the ids actually enqueued (ids already pending or
        processing are dropped).

        An id that already finished, even earlier in the live run, is re-armed
        to pending and processed again; its item leaves the terminal status
        and counts once more toward the total.
        """
        ids = list(dict.fromkeys(v for v in video_ids if v))
        if not ids:
            raise PipelineError(ErrorCode.INVALID_INPUT, "No video ids to submit")
        titles = titles or {}

        accepted = []
        with self._cond:
            for video_id in ids:
                if not self.tracker.add(video_id, titles.get(video_id, "")):
                    logger.info("[%s] Already queued, ignoring", video_id)
                    continue
                self._queue.append(WorkItem(video_id, credential, destination))
                accepted.append(video_id)

            if accepted:
                if self._running:
                    self._cond.notify_all()
                else:
                    self._start_run()

        logger.info("Submitted %d video(s) to %s (%d dropped)",
                    len(accepted), destination, len(ids) - len(accepted))
        return accepted

    def is_running(self) -> bool:
        with self._cond:
            return self._running

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the live run drains. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: not self._running, timeout)

    def snapshot(self) -> ProgressSnapshot:
        return self.tracker.snapshot(running=self.is_running())

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        return self.tracker.subscribe(listener)

    def reset(self):
        """
        Clear queue, progress and counters.
        Precondition: no run is active. Calling it mid-run leaves in-flight
        items reporting into a cleared tracker.
        """
        with self._cond:
            if self._running:
                logger.warning("reset() called while a run is active")
            self._queue.clear()
        self.tracker.reset()

    # ── Dispatch ──────────────────────────────────────────────────────

    def _start_run(self):
        # caller holds self._cond
        self._running = True
        self._run_id += 1
        self._dispatcher = threading.Thread(target=self._dispatch_loop, args=(self._run_id,),
                                            name="batch-dispatcher", daemon=True)
        self._dispatcher.start()

    def _dispatch_loop(self, run_id: int):
        """Start queued items in FIFO order as worker slots free up."""
        while True:
            self._slots.acquire()
            with self._cond:
                while not self._queue and self._active > 0:
                    self._cond.wait()
                if not self._queue:
                    self._running = False
                    self._cond.notify_all()
                    break
                item = self._queue.popleft()
                self._active += 1

            worker = threading.Thread(target=self._run_item, args=(item,),
                                      name=f"pipeline-{item.video_id}", daemon=True)
            worker.start()

        self._slots.release()
        logger.info("Batch run finished")
        with self._cond:
            # a submit() after the drain may already have started the next run
            current = self._run_id == run_id
        if current and self.on_run_finished:
            self.on_run_finished()

    def _run_item(self, item: WorkItem):
        report = functools.partial(self._report, item.video_id)
        try:
            self.pipeline.process(item, report)
        except Exception as e:
            logger.error("[%s] Worker error: %s", item.video_id, e, exc_info=True)
            self.tracker.update(item.video_id, ItemStatus.FAILED, str(e)[:2000],
                                PipelineStage.FAILED)
        finally:
            self.tracker.mark_completed()
            if self.courtesy_delay_sec > 0:
                self._sleep(self.courtesy_delay_sec)
            with self._cond:
                self._active -= 1
                self._cond.notify_all()
            self._slots.release()

    def _report(self, video_id: str, status: str, message: str, stage: str,
                title: Optional[str] = None):
        self.tracker.update(video_id, status, message, stage, title)

    def _emit_item_updated(self, item: ProgressItem):
        if self.on_item_updated:
            self.on_item_updated(item)
