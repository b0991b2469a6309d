"""
Paced, bounded fan-out of input URLs to worker coroutines.

Every URL goes through build -> fetch -> classify -> persist/print and ends in
exactly one Outcome. run() returns only after all submitted URLs have one.
"""

import asyncio
import enum
from collections import Counter
from typing import AsyncIterator, List, Optional, Tuple

import structlog

from .classifier import FilterCriteria, first_failure
from .errors import (
    BodyReadError,
    FilesystemError,
    MalformedURLError,
    NetworkError,
    RequestConstructionError,
)
from .fetcher import Fetcher
from .output import Reporter
from .request import Header, build_request
from .storage import ArtifactStore

logger = structlog.get_logger(__name__)

_STOP = object()


class Outcome(enum.Enum):
    PERSISTED = "persisted"
    SUMMARY_PRINTED = "summary_printed"
    DROPPED = "dropped"
    ERRORED = "errored"
    # malformed input line, never became a request
    SKIPPED = "skipped"


class RunStats:
    def __init__(self):
        self.outcomes: Counter = Counter()

    def record(self, outcome: Outcome):
        self.outcomes[outcome] += 1

    @property
    def total(self) -> int:
        return sum(self.outcomes.values())

    def __getitem__(self, outcome: Outcome) -> int:
        return self.outcomes[outcome]

    def as_dict(self) -> dict:
        return {outcome.value: self.outcomes[outcome] for outcome in Outcome}


class Runner:
    """Feeds URLs from a source to a fixed pool of workers, one delay apart."""

    def __init__(
        self,
        fetcher: Fetcher,
        criteria: FilterCriteria,
        reporter: Reporter,
        store: Optional[ArtifactStore] = None,
        method: Optional[str] = None,
        body: Optional[bytes] = None,
        headers: tuple = (),
        delay: float = 0.1,
        concurrency: int = 50,
    ):
        self.fetcher = fetcher
        self.criteria = criteria
        self.reporter = reporter
        self.store = store
        self.method = method
        self.body = body
        self.headers: Tuple[Header, ...] = tuple(headers)
        self.delay = delay
        self.concurrency = concurrency
        self.stats = RunStats()
        self._stopping = asyncio.Event()
        self._workers: List[asyncio.Task] = []
        self._feeder: Optional[asyncio.Task] = None

    @property
    def interrupted(self) -> bool:
        return self._stopping.is_set()

    async def run(self, source: AsyncIterator[str]) -> RunStats:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.concurrency)
        self._workers = [
            asyncio.create_task(self._worker(queue), name=f"fff-worker-{i}")
            for i in range(self.concurrency)
        ]
        self._feeder = asyncio.create_task(self._feed(source, queue), name="fff-feeder")
        logger.info("run_started", concurrency=self.concurrency, delay=self.delay)

        try:
            await self._feeder
        except asyncio.CancelledError:
            if not self._stopping.is_set():
                # run() itself was cancelled from outside
                self._cancel_all()
                await asyncio.gather(*self._workers, return_exceptions=True)
                raise
        await asyncio.gather(*self._workers, return_exceptions=True)

        logger.info("run_finished", total=self.stats.total, **self.stats.as_dict())
        return self.stats

    async def _feed(self, source: AsyncIterator[str], queue: asyncio.Queue):
        try:
            async for url in source:
                await asyncio.sleep(self.delay)
                await queue.put(url)
        except Exception:
            logger.exception("input_read_failed")
        for _ in self._workers:
            await queue.put(_STOP)

    def stop(self):
        """Stop reading input and cancel in-flight tasks."""
        if self._stopping.is_set():
            return
        logger.warning("run_interrupted")
        self._stopping.set()
        self._cancel_all()

    def _cancel_all(self):
        if self._feeder is not None:
            self._feeder.cancel()
        for task in self._workers:
            task.cancel()

    async def _worker(self, queue: asyncio.Queue):
        while True:
            url = await queue.get()
            if url is _STOP:
                return
            outcome = await self.process_url(url)
            self.stats.record(outcome)

    async def process_url(self, url: str) -> Outcome:
        """Run one URL through the pipeline. Never raises except on cancellation."""
        try:
            return await self._process(url)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("task_failed", url=url)
            return Outcome.ERRORED

    async def _process(self, url: str) -> Outcome:
        try:
            spec = build_request(url, method=self.method, body=self.body, headers=self.headers)
        except MalformedURLError as e:
            logger.debug("url_skipped", url=url, reason=str(e))
            return Outcome.SKIPPED
        except RequestConstructionError as e:
            self.reporter.error(url, e)
            return Outcome.ERRORED

        try:
            record = await self.fetcher.fetch(spec)
        except (RequestConstructionError, NetworkError, BodyReadError) as e:
            self.reporter.error(url, e)
            return Outcome.ERRORED

        failed = first_failure(record, self.criteria)
        if failed is not None:
            logger.debug("response_dropped", url=url, status=record.status_code, predicate=failed)
            return Outcome.DROPPED

        if self.store is None:
            self.reporter.summary(url, record)
            return Outcome.SUMMARY_PRINTED

        try:
            body_path = await self.store.asave(spec, record)
        except FilesystemError as e:
            logger.error("persist_failed", url=url, error=str(e))
            return Outcome.ERRORED

        self.reporter.saved(body_path, url, record.status_code)
        return Outcome.PERSISTED
