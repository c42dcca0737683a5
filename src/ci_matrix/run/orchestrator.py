"""
Run orchestrator - dispatches every job of a RunManifest and joins on them.

Jobs whose dependencies are terminal are handed to a thread pool; the
orchestrator waits for the first completion, records it, and re-evaluates
what became ready. Jobs share no state: the orchestrator thread is the
only writer of job status.

Usage:
    orchestrator = RunOrchestrator(manifest, runner)
    results, outcome = orchestrator.run_and_aggregate()
"""

import dataclasses
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import Dict, List, Optional, Tuple, Union

from .manifest import ON_SUCCESS, UNLESS_CANCELLED, JobSpec, RunManifest
from .monitor import JobMonitor
from .results import (
    AggregateOutcome, JobResult, JobStatus, aggregate, aggregate_by_group, count_statuses,
)


# Returned by _decide while a dependency is still running
WAIT = 'wait'
RUN = 'run'


class RunOrchestrator:
    """
    Fans out a plan's jobs and reduces their results.

    Given a RunManifest and a job runner (anything with
    run(job, cancel_event) -> JobResult), this class:
    1. Records unselected jobs as skipped
    2. Runs ready jobs in parallel, bounded by max_workers
    3. Skips dependents of jobs that did not succeed
    4. Aggregates all terminal results once every job has finished

    Example:
        orch = RunOrchestrator(manifest, JobRunner(settings, store))
        results, outcome = orch.run_and_aggregate()
    """

    def __init__(
        self,
        manifest: RunManifest,
        runner,
        max_workers: Optional[int] = None,
        poll_interval: float = 0.5,
        verbose: bool = True,
    ):
        """
        Initialize orchestrator.

        Args:
            manifest: Plan to execute
            runner: Job body executor
            max_workers: Parallel job limit (default: settings.max_workers)
            poll_interval: Seconds between cancellation checks while waiting
            verbose: Print per-job progress lines
        """
        self.manifest = manifest
        self.runner = runner
        self.max_workers = max_workers or manifest.settings.max_workers
        self.poll_interval = poll_interval
        self.verbose = verbose
        self._cancel_event = threading.Event()
        self.monitor: Optional[JobMonitor] = None

    # =========================================================================
    # Cancellation
    # =========================================================================

    def cancel(self):
        """Abort the run: running jobs are told to stop, nothing new starts."""
        if not self._cancel_event.is_set():
            print("Cancellation requested - stopping running jobs")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    # =========================================================================
    # Scheduling decisions
    # =========================================================================

    def _decide(self, job: JobSpec, monitor: JobMonitor) -> Union[str, JobStatus]:
        """
        Decide what happens to a pending job.

        Returns WAIT while a dependency is unfinished, RUN when the job may
        start, or the terminal status to record without running it.
        """
        statuses = []
        for dep in job.depends_on:
            if not monitor.is_done(dep):
                return WAIT
            statuses.append(monitor.result(dep).status)

        # Cancellation propagates downward as "not run"
        if JobStatus.CANCELLED in statuses:
            return JobStatus.SKIPPED

        if job.run_policy == ON_SUCCESS:
            if any(status is not JobStatus.SUCCESS for status in statuses):
                return JobStatus.SKIPPED
            if self.cancelled:
                return JobStatus.CANCELLED
            return RUN

        if job.run_policy == UNLESS_CANCELLED:
            if self.cancelled:
                return JobStatus.SKIPPED
            if statuses and all(status is JobStatus.SKIPPED for status in statuses):
                return JobStatus.SKIPPED
            return RUN

        raise ValueError(f"Unknown run policy '{job.run_policy}' for job '{job.name}'")

    @staticmethod
    def _not_run_message(status: JobStatus, job: JobSpec) -> str:
        if status is JobStatus.CANCELLED:
            return "run cancelled before the job started"
        if job.depends_on:
            return "dependencies did not allow the job to run"
        return "not selected"

    def _execute(self, job: JobSpec, monitor: JobMonitor) -> JobResult:
        """Run one job body. Never raises: errors become failures."""
        try:
            result = self.runner.run(job, self._cancel_event)
        except Exception as e:
            result = JobResult(
                name=job.name,
                status=JobStatus.FAILURE,
                message=f"{type(e).__name__}: {e}",
            )

        return dataclasses.replace(
            result,
            name=job.name,
            group=job.group,
            duration_seconds=round(monitor.elapsed(job.name), 3),
        )

    def _validate_plan(self, jobs: List[JobSpec]):
        names = [job.name for job in jobs]
        if len(set(names)) != len(names):
            raise ValueError("Plan contains duplicate job names")
        known = set(names)
        for job in jobs:
            unknown = [dep for dep in job.depends_on if dep not in known]
            if unknown:
                raise ValueError(f"Job '{job.name}' depends on unknown job(s): {', '.join(unknown)}")

    # =========================================================================
    # Run
    # =========================================================================

    def _report(self, result: JobResult):
        if not self.verbose:
            return
        line = f"  [{result.status.value:>9}] {result.name}"
        if result.duration_seconds:
            line += f" ({result.duration_seconds:.1f}s)"
        if result.message and result.status is not JobStatus.SUCCESS:
            line += f" - {result.message}"
        print(line)

    def run(self) -> List[JobResult]:
        """
        Execute the plan.

        Returns:
            One terminal JobResult per planned job, in plan order.
        """
        jobs = self.manifest.compute_jobs()
        self._validate_plan(jobs)

        monitor = JobMonitor([job.name for job in jobs])
        self.monitor = monitor

        pending: List[JobSpec] = []
        for job in jobs:
            if job.selected:
                pending.append(job)
            else:
                monitor.finalize(JobResult(
                    name=job.name,
                    status=JobStatus.SKIPPED,
                    group=job.group,
                    message="not selected",
                ))

        if self.verbose:
            print(f"Dispatching {len(pending)} job(s) "
                  f"({len(jobs) - len(pending)} not selected), max {self.max_workers} in parallel")

        running: Dict = {}

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            while pending or running:
                progressed = False
                for job in list(pending):
                    decision = self._decide(job, monitor)
                    if decision == WAIT:
                        continue

                    progressed = True
                    pending.remove(job)
                    if decision == RUN:
                        monitor.mark_started(job.name)
                        if self.verbose:
                            print(f"  [  started] {job.name}")
                        running[pool.submit(self._execute, job, monitor)] = job
                    else:
                        result = JobResult(
                            name=job.name,
                            status=decision,
                            group=job.group,
                            message=self._not_run_message(decision, job),
                        )
                        monitor.finalize(result)
                        self._report(result)

                if not running:
                    if pending and not progressed:
                        names = ", ".join(job.name for job in pending)
                        raise ValueError(f"Dependency cycle between jobs: {names}")
                    continue

                try:
                    done, _ = wait(list(running), timeout=self.poll_interval,
                                   return_when=FIRST_COMPLETED)
                except KeyboardInterrupt:
                    self.cancel()
                    continue

                for future in done:
                    running.pop(future)
                    result = future.result()
                    monitor.finalize(result)
                    self._report(result)

        return monitor.results()

    def run_and_aggregate(self) -> Tuple[List[JobResult], AggregateOutcome]:
        """Run the plan, then reduce every result to the final outcome."""
        started = time.monotonic()
        results = self.run()
        outcome = aggregate(results)

        if self.verbose:
            self.print_summary(results, outcome, time.monotonic() - started)

        return results, outcome

    def print_summary(self, results: List[JobResult], outcome: AggregateOutcome,
                      elapsed: Optional[float] = None):
        """Print per-group outcomes and status counts."""
        print(f"\n{'=' * 70}")
        print(f"RUN {'SUCCEEDED' if outcome is AggregateOutcome.SUCCESS else 'FAILED'}")
        print(f"{'=' * 70}")

        by_group = aggregate_by_group(results)
        print(f"  {'Group':<12} {'Jobs':>6} {'OK':>6} {'Failed':>7} {'Cancel':>7} {'Skip':>6} {'Result':>9}")
        print(f"  {'-' * 12} {'-' * 6} {'-' * 6} {'-' * 7} {'-' * 7} {'-' * 6} {'-' * 9}")
        for group, group_outcome in by_group.items():
            members = [r for r in results if r.group == group]
            counts = count_statuses(members)
            print(f"  {group:<12} {len(members):>6} {counts['success']:>6} {counts['failure']:>7} "
                  f"{counts['cancelled']:>7} {counts['skipped']:>6} {group_outcome.value:>9}")

        failed = [r for r in results if r.status.counts_as_failure]
        if failed:
            print("\n  Not successful:")
            for result in failed:
                print(f"    - {result.name}: {result.status.value}"
                      + (f" ({result.message})" if result.message else ""))

        if elapsed is not None:
            print(f"\nElapsed: {elapsed:.1f}s")
