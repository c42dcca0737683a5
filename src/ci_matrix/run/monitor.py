"""
Job lifecycle tracking for a running plan.

The monitor records when each job starts and the terminal result it ends
with. A result is final: finalizing a job twice is an error.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from .results import JobResult


QUEUED = 'queued'
RUNNING = 'running'
DONE = 'done'


@dataclass
class JobRecord:
    """Lifecycle information for a single job."""
    name: str
    state: str = QUEUED
    started_at: Optional[float] = None
    result: Optional[JobResult] = None


class JobMonitor:
    """
    Track job states for a run.

    Example:
        monitor = JobMonitor(['build-linux', 'build-windows'])
        monitor.mark_started('build-linux')
        monitor.finalize(JobResult('build-linux', JobStatus.SUCCESS))
        monitor.print_status()
    """

    def __init__(self, job_names: List[str]):
        self._order = list(job_names)
        self._records: Dict[str, JobRecord] = {}
        for name in self._order:
            self.register(name)

    def register(self, name: str):
        if name in self._records:
            raise ValueError(f"Job '{name}' is already registered")
        if name not in self._order:
            self._order.append(name)
        self._records[name] = JobRecord(name=name)

    def record(self, name: str) -> JobRecord:
        try:
            return self._records[name]
        except KeyError:
            raise KeyError(f"Unknown job '{name}'") from None

    def mark_started(self, name: str):
        record = self.record(name)
        if record.state != QUEUED:
            raise RuntimeError(f"Job '{name}' cannot start from state '{record.state}'")
        record.state = RUNNING
        record.started_at = time.monotonic()

    def elapsed(self, name: str) -> float:
        """Seconds since the job started (0 if it never started)."""
        record = self.record(name)
        if record.started_at is None:
            return 0.0
        return time.monotonic() - record.started_at

    def finalize(self, result: JobResult):
        """Record a job's terminal result. Each job is finalized exactly once."""
        record = self.record(result.name)
        if record.state == DONE:
            raise RuntimeError(
                f"Job '{result.name}' already finished with status '{record.result.status.value}'"
            )
        record.state = DONE
        record.result = result

    def is_done(self, name: str) -> bool:
        return self.record(name).state == DONE

    def result(self, name: str) -> Optional[JobResult]:
        return self.record(name).result

    def counts(self) -> Dict[str, int]:
        counts = {QUEUED: 0, RUNNING: 0, DONE: 0}
        for record in self._records.values():
            counts[record.state] += 1
        return counts

    def is_complete(self) -> bool:
        """True once every registered job has a terminal result."""
        return all(record.state == DONE for record in self._records.values())

    def results(self) -> List[JobResult]:
        """Terminal results in registration order (unfinished jobs are omitted)."""
        return [
            self._records[name].result for name in self._order
            if self._records[name].result is not None
        ]

    def print_status(self):
        counts = self.counts()
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        print(f"[{timestamp}] Completed: {counts[DONE]}/{len(self._records)}, "
              f"Running: {counts[RUNNING]}, Queued: {counts[QUEUED]}")
