"""
Job execution.

Runs the body of one planned job: its command steps (through subprocess,
with output captured in a per-job log file) and its artifact hand-off.
Build jobs upload their packages; WPT shards fetch and unpack the release
binary before they start and upload their filtered results; report jobs
combine a suite's results.
"""

import shutil
import subprocess
import tarfile
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, TextIO, Tuple

from .artifacts import ArtifactNotFoundError, ArtifactStore
from .commands import (
    RELEASE_TARBALL, Step, build_artifacts, build_steps, timings_artifact, wpt_output_files,
    wpt_steps,
)
from ..run.manifest import (
    BUILD, RELEASE_BINARY, REPORT, WPT, JobSpec, wpt_logs_artifact, wpt_results_artifact,
)
from ..run.report import combine_wpt_results
from ..run.results import JobResult, JobStatus
from ..run.settings import PipelineSettings


class JobCancelled(Exception):
    """The run was cancelled while this job was executing."""


def run_with_retry(
    invoke: Callable[[Optional[float]], bool],
    max_attempts: int = 2,
    timeout_seconds: Optional[float] = None,
) -> Tuple[bool, int]:
    """
    Call invoke until it succeeds, at most max_attempts times.

    Args:
        invoke: Called with the per-attempt timeout; returns True on success
        max_attempts: Attempt limit (>= 1)
        timeout_seconds: Fixed timeout handed to every attempt

    Returns:
        Tuple of (succeeded, attempts used)
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    for attempt in range(1, max_attempts + 1):
        if invoke(timeout_seconds):
            return True, attempt
        if attempt < max_attempts:
            print(f"    Attempt {attempt}/{max_attempts} failed, retrying")
    return False, max_attempts


def unpack_release_binary(source_dir: Path, dest_dir: Path) -> List[str]:
    """
    Place a fetched release binary where the tests run.

    The linux build ships target.tar.gz, which is extracted into dest_dir;
    any other files of the artifact are copied over as they are.

    Returns:
        Sorted top-level names written into dest_dir
    """
    dest_dir.mkdir(parents=True, exist_ok=True)
    written = set()

    for entry in sorted(source_dir.iterdir()):
        if entry.name == RELEASE_TARBALL:
            with tarfile.open(entry, 'r:gz') as tar:
                members = tar.getmembers()
                if hasattr(tarfile, 'data_filter'):
                    tar.extractall(dest_dir, filter='data')
                else:
                    tar.extractall(dest_dir)
            written.update(Path(m.name).parts[0] for m in members if Path(m.name).parts)
        elif entry.is_dir():
            shutil.copytree(entry, dest_dir / entry.name, dirs_exist_ok=True)
            written.add(entry.name)
        else:
            shutil.copy2(entry, dest_dir / entry.name)
            written.add(entry.name)

    return sorted(written)


class JobRunner:
    """
    Execute planned jobs on the local machine.

    Example:
        runner = JobRunner(settings, ArtifactStore(settings.artifacts_dir))
        result = runner.run(manifest.job('build-linux'), threading.Event())
    """

    def __init__(
        self,
        settings: PipelineSettings,
        store: ArtifactStore,
        dry_run: bool = False,
        poll_interval: float = 1.0,
    ):
        """
        Initialize runner.

        Args:
            settings: Pipeline settings
            store: Artifact store shared by all jobs of the run
            dry_run: Print commands instead of executing them
            poll_interval: Seconds between cancellation/timeout checks
        """
        self.settings = settings
        self.store = store
        self.dry_run = dry_run
        self.poll_interval = poll_interval
        self._unpack_lock = threading.Lock()

    # =========================================================================
    # Steps
    # =========================================================================

    @staticmethod
    def _stop(proc: subprocess.Popen):
        proc.terminate()
        try:
            proc.wait(timeout=10)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()

    def run_step(
        self,
        job: JobSpec,
        step: Step,
        log: TextIO,
        cancel_event: threading.Event,
        timeout: Optional[float] = None,
    ) -> bool:
        """
        Run one command to completion.

        Returns:
            True if the command exited with status 0

        Raises:
            JobCancelled: if the run is cancelled while the command runs
        """
        if cancel_event.is_set():
            raise JobCancelled(f"cancelled before step '{step.name}'")

        log.write(f"\n== Step: {step.name}\n$ {step.command_line}\n")
        log.flush()

        if self.dry_run:
            print(f"    [dry-run] {job.name}: {step.command_line}")
            return True

        proc = subprocess.Popen(
            step.argv,
            cwd=str(self.settings.workspace),
            stdout=log,
            stderr=subprocess.STDOUT,
        )
        deadline = time.monotonic() + timeout if timeout else None

        while True:
            try:
                returncode = proc.wait(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if cancel_event.is_set():
                    self._stop(proc)
                    log.write(f"Step '{step.name}' cancelled\n")
                    raise JobCancelled(f"cancelled during step '{step.name}'")
                if deadline is not None and time.monotonic() > deadline:
                    self._stop(proc)
                    log.write(f"Step '{step.name}' timed out after {timeout:.0f}s\n")
                    return False

        log.write(f"Exit code: {returncode}\n")
        return returncode == 0

    def run_steps(
        self,
        job: JobSpec,
        steps: List[Step],
        log: TextIO,
        cancel_event: threading.Event,
    ) -> Tuple[Optional[str], int]:
        """
        Run steps in order, stopping at the first failure.

        Returns:
            Tuple of (name of the failed step or None, attempts used by the
            retried step, 1 if no step was retried)
        """
        attempts = 1
        for step in steps:
            if step.retry:
                ok, attempts = run_with_retry(
                    lambda timeout, step=step: self.run_step(job, step, log, cancel_event, timeout),
                    max_attempts=self.settings.unit_test_max_attempts,
                    timeout_seconds=self.settings.unit_test_timeout_minutes * 60,
                )
            else:
                ok = self.run_step(job, step, log, cancel_event)
            if not ok:
                return step.name, attempts
        return None, attempts

    # =========================================================================
    # Artifacts
    # =========================================================================

    def _upload(self, name: str, paths: List[Path], base_dir: Optional[Path] = None) -> str:
        if self.dry_run:
            self.store.put(name)
        else:
            self.store.put(name, paths, base_dir=base_dir)
        return name

    # =========================================================================
    # Job kinds
    # =========================================================================

    def _run_build(self, job: JobSpec, log: TextIO, cancel_event: threading.Event) -> JobResult:
        failed_step, attempts = self.run_steps(job, build_steps(job, self.settings), log, cancel_event)
        if failed_step:
            return JobResult(job.name, JobStatus.FAILURE, attempts=attempts,
                             message=f"step '{failed_step}' failed")

        workspace = self.settings.workspace
        uploaded = []
        for name, paths in build_artifacts(job, self.settings).items():
            paths = [Path(p) for p in paths]
            if name == timings_artifact(job.platform) and not self.dry_run:
                # Build timings are optional
                paths = [p for p in paths if (workspace / p).exists()]
                if not paths:
                    log.write("No build timings to upload\n")
                    continue
            uploaded.append(self._upload(name, paths, workspace))

        return JobResult(job.name, JobStatus.SUCCESS, attempts=attempts, artifacts=tuple(uploaded))

    def _run_wpt(self, job: JobSpec, log: TextIO, cancel_event: threading.Event) -> JobResult:
        work_dir = self.settings.jobs_dir / job.name
        work_dir.mkdir(parents=True, exist_ok=True)

        try:
            self.store.fetch(RELEASE_BINARY, work_dir / RELEASE_BINARY)
        except ArtifactNotFoundError as e:
            log.write(f"{e}\n")
            return JobResult(job.name, JobStatus.FAILURE, message=str(e))

        workspace = self.settings.workspace
        if self.dry_run:
            print(f"    [dry-run] {job.name}: unpack {RELEASE_BINARY} into {workspace}")
        else:
            # Shards of both suites share the workspace
            try:
                with self._unpack_lock:
                    unpacked = unpack_release_binary(work_dir / RELEASE_BINARY, workspace)
            except (tarfile.TarError, OSError) as e:
                message = f"could not unpack {RELEASE_BINARY}: {e}"
                log.write(f"{message}\n")
                return JobResult(job.name, JobStatus.FAILURE, message=message)
            log.write(f"Unpacked {RELEASE_BINARY} into {workspace}: {', '.join(unpacked)}\n")

        failed_step, attempts = self.run_steps(
            job, wpt_steps(job, self.settings, work_dir), log, cancel_event
        )

        outputs = wpt_output_files(work_dir, job)
        uploaded = []
        if self.settings.wpt_mode == 'test':
            results = [p for p in (outputs['filtered_json'], outputs['unexpected_log']) if p.exists()]
            uploaded.append(self._upload(wpt_results_artifact(job.layout, job.shard), results, work_dir))
        if failed_step or self.settings.wpt_mode == 'sync':
            logs = [p for p in (outputs['raw_log'],) if p.exists()]
            uploaded.append(self._upload(wpt_logs_artifact(job.layout, job.shard), logs, work_dir))

        if failed_step:
            return JobResult(job.name, JobStatus.FAILURE, attempts=attempts,
                             artifacts=tuple(uploaded), message=f"step '{failed_step}' failed")
        return JobResult(job.name, JobStatus.SUCCESS, attempts=attempts, artifacts=tuple(uploaded))

    def _run_report(self, job: JobSpec, log: TextIO) -> JobResult:
        report_dir = self.settings.reports_dir / job.layout.value
        df = combine_wpt_results(self.store, job.layout, report_dir)
        log.write(f"Combined {len(df)} filtered result(s) into {report_dir}\n")

        name = self._upload(f"wpt-report-{job.layout.value}", sorted(report_dir.iterdir()), report_dir)
        return JobResult(job.name, JobStatus.SUCCESS, attempts=1, artifacts=(name,))

    def run(self, job: JobSpec, cancel_event: threading.Event) -> JobResult:
        """
        Execute a job and return its terminal result.

        Step failures and cancellation become statuses; unexpected errors
        propagate to the caller.
        """
        logs_dir = self.settings.logs_dir
        logs_dir.mkdir(parents=True, exist_ok=True)
        log_path = logs_dir / f"{job.name}.log"

        with open(log_path, 'w') as log:
            log.write(f"== Job started: {job.name} at {datetime.now().isoformat()}\n")
            try:
                if job.kind == BUILD:
                    result = self._run_build(job, log, cancel_event)
                elif job.kind == WPT:
                    result = self._run_wpt(job, log, cancel_event)
                elif job.kind == REPORT:
                    result = self._run_report(job, log)
                else:
                    raise ValueError(f"Unknown job kind '{job.kind}'")
            except JobCancelled as e:
                result = JobResult(job.name, JobStatus.CANCELLED, message=str(e))
            log.write(f"\n== Job finished: {result.status.value}\n")

        return result
