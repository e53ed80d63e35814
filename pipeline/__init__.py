"""Pipeline: pacing, attempts, retry planning, batch scheduling and aggregation."""

from pipeline.aggregator import finalize
from pipeline.attempt_executor import AttemptExecutor
from pipeline.batch_processor import BatchProcessor
from pipeline.engine import ExtractionEngine
from pipeline.pacing import IntervalPacer, WindowPacer, create_pacer
from pipeline.retry_planner import RetryPlanner, build_plan

__all__ = [
    "finalize",
    "AttemptExecutor",
    "BatchProcessor",
    "ExtractionEngine",
    "IntervalPacer",
    "WindowPacer",
    "create_pacer",
    "RetryPlanner",
    "build_plan",
]
