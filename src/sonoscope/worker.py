"""
Off-thread analysis.

:class:`AnalysisWorker` runs :meth:`AudioPipeline.analyze` on a thread pool
and hands events back through a per-job queue, so a caller can render
progress while the analysis runs.
"""

import logging
import queue
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Iterator, Optional

import numpy as np

from sonoscope.config import AnalysisConfig
from sonoscope.core.stream import AnalysisEvent, CompleteEvent, ErrorEvent
from sonoscope.errors import InputError
from sonoscope.pipeline import AnalysisResult, AudioPipeline

logger = logging.getLogger(__name__)


class AnalysisJob:
    """Handle for one submitted analysis."""

    def __init__(self):
        self._events: "queue.Queue[AnalysisEvent]" = queue.Queue()
        self._terminal: Optional[AnalysisEvent] = None
        self.future: Optional[Future] = None

    def _publish(self, event: AnalysisEvent) -> None:
        self._events.put(event)

    def events(self, timeout: Optional[float] = None) -> Iterator[AnalysisEvent]:
        """
        Yield events as they arrive, ending after the terminal event.

        Raises:
            queue.Empty: If no event arrives within ``timeout`` seconds.
        """
        if self._terminal is not None:
            return
        while True:
            event = self._events.get(timeout=timeout)
            yield event
            if event.is_terminal:
                self._terminal = event
                return

    def result(self, timeout: Optional[float] = None) -> AnalysisResult:
        """
        Block until the job finishes and return its result.

        Raises:
            InputError: If the job ended with an error event.
        """
        if self._terminal is None:
            for _ in self.events(timeout=timeout):
                pass
        if isinstance(self._terminal, CompleteEvent):
            return self._terminal.result
        raise InputError(self._terminal.message)

    @property
    def done(self) -> bool:
        return self.future is not None and self.future.done()


class AnalysisWorker:
    """
    Thread-pool front end for :class:`AudioPipeline`.

    Usable as a context manager; leaving the block waits for running jobs.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None, max_workers: int = 1):
        self.config = config or AnalysisConfig()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="sonoscope",
        )

    def submit(self, samples, sample_rate: int) -> AnalysisJob:
        """
        Start analysing a buffer in the background.

        The buffer is copied before this returns, so the caller may reuse it.
        """
        if samples is not None:
            try:
                samples = np.array(samples, copy=True)
            except (TypeError, ValueError):
                # Left for the pipeline to reject with an error event
                pass
        job = AnalysisJob()
        job.future = self._executor.submit(self._run, job, samples, sample_rate)
        return job

    def _run(self, job: AnalysisJob, samples, sample_rate: int) -> None:
        pipeline = AudioPipeline(self.config)
        try:
            for event in pipeline.analyze(samples, sample_rate):
                job._publish(event)
        except Exception as exc:
            logger.exception("Background analysis failed")
            job._publish(ErrorEvent(message=f"Analysis failed: {exc}"))

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown(wait=True)
