"""Batch aggregator: reduces routed job results into the final BatchReport."""

from __future__ import annotations

from core.models import BatchReport, Extracted, Failed, JobResult, Pending


def finalize(batch_id: str, results: list[JobResult], stopped_due_to_quota: bool = False) -> BatchReport:
    """
    Pure reduction. Lists are ordered by job index, so the report does not depend on completion order.
    total == success + failed + pending; duplicates are a subset of success.
    """
    report = BatchReport(batch_id=batch_id, total=len(results), stopped_due_to_quota=stopped_due_to_quota)
    for result in sorted(results, key=lambda r: r.index):
        match result.outcome:
            case Extracted(first_attempt=first):
                report.success.append(result)
                if result.duplicate:
                    report.duplicate_count += 1
                if first:
                    report.first_attempt_success_count += 1
                else:
                    report.retry_success_count += 1
            case Failed():
                report.failed.append(result)
            case Pending():
                report.pending.append(result)
            case _:
                raise TypeError(f"Unknown outcome: {result.outcome!r}")
    return report
