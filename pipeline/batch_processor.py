"""
Batch processor (worker pool scheduler): runs one pipeline per job on a bounded thread pool.
Pipeline = planner.resolve(job) -> router.route(job, outcome). Does not duplicate planner logic.

At most max_workers pipelines are in flight; a new job is admitted only when one finishes.
When a pipeline ends pending because the account quota is exhausted, admission stops:
in-flight jobs finish, never-started jobs are routed to pending without any call.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait

from core.models import Failed, Job, JobResult, JobState, Pending
from pipeline.retry_planner import RetryPlanner
from services.outcome_router import OutcomeRouter

logger = logging.getLogger(__name__)

NOT_STARTED_REASON = "batch_stopped_quota"


class BatchProcessor:
    """
    Process jobs in parallel (or sequentially when max_workers=1).
    Injected planner and router; completion order is irrelevant to the result.
    """

    def __init__(self, planner: RetryPlanner, router: OutcomeRouter, max_workers: int = 1) -> None:
        self._planner = planner
        self._router = router
        self._max_workers = max(1, int(max_workers))

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def _pipeline(self, job: Job) -> JobResult:
        job.state = JobState.RUNNING
        try:
            outcome = self._planner.resolve(job)
        except Exception as e:
            logger.exception("Pipeline failed for %s trace_id=%s", job.name, job.trace_id)
            outcome = Failed(reason=f"internal_error {type(e).__name__}: {e}")
        return self._router.route(job, outcome)

    def _recover(self, job: Job, error: BaseException) -> JobResult:
        """Routing itself raised; persist the bytes to failed. If that fails too, the result records the job unsaved."""
        logger.error("Routing failed for %s trace_id=%s: %s", job.name, job.trace_id, error)
        outcome = Failed(reason=f"internal_error {type(error).__name__}: {error}")
        try:
            return self._router.route(job, outcome)
        except Exception:
            logger.exception("Could not save %s anywhere trace_id=%s", job.name, job.trace_id)
            return JobResult(index=job.index, name=job.name, outcome=outcome, attempts=job.attempt_count)

    def _route_not_started(self, job: Job) -> JobResult:
        try:
            return self._router.route(job, Pending(reason=NOT_STARTED_REASON))
        except Exception as e:
            return self._recover(job, e)

    def run(self, jobs: list[Job]) -> tuple[list[JobResult], bool]:
        """
        Run every job to a terminal, routed outcome. Returns (results, stopped_due_to_quota).
        Every submitted job appears exactly once in results.
        """
        queue: deque[Job] = deque(jobs)
        in_flight: dict[Future[JobResult], Job] = {}
        results: list[JobResult] = []
        stopped = False
        start = time.perf_counter()

        with ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="extract") as pool:
            while queue or in_flight:
                while queue and not stopped and len(in_flight) < self._max_workers:
                    job = queue.popleft()
                    logger.info("Admitting %s (%s queued, %s in flight)", job.name, len(queue), len(in_flight) + 1)
                    in_flight[pool.submit(self._pipeline, job)] = job
                if not in_flight:
                    break
                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    job = in_flight.pop(future)
                    try:
                        result = future.result()
                    except Exception as e:
                        result = self._recover(job, e)
                    results.append(result)
                    match result.outcome:
                        case Pending(fatal=True) if not stopped:
                            stopped = True
                            logger.error(
                                "Quota exhausted on %s: no new jobs will start (%s not started)",
                                job.name, len(queue),
                            )

        for job in queue:
            results.append(self._route_not_started(job))

        logger.info(
            "Batch processed %s job(s) in %.2fs (stopped_due_to_quota=%s)",
            len(results), time.perf_counter() - start, stopped,
        )
        return results, stopped
