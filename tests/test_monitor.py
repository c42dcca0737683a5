"""Tests for job lifecycle tracking."""

import pytest

from ci_matrix.run.monitor import DONE, QUEUED, RUNNING, JobMonitor
from ci_matrix.run.results import JobResult, JobStatus


class TestJobMonitor:

    def test_lifecycle(self):
        monitor = JobMonitor(['build-linux', 'build-windows'])
        assert monitor.counts() == {QUEUED: 2, RUNNING: 0, DONE: 0}

        monitor.mark_started('build-linux')
        assert monitor.counts()[RUNNING] == 1
        assert monitor.elapsed('build-linux') >= 0.0

        monitor.finalize(JobResult('build-linux', JobStatus.SUCCESS))
        monitor.finalize(JobResult('build-windows', JobStatus.SKIPPED))

        assert monitor.is_complete()
        assert monitor.result('build-linux').status is JobStatus.SUCCESS

    def test_results_in_registration_order(self):
        monitor = JobMonitor(['a', 'b', 'c'])
        monitor.finalize(JobResult('c', JobStatus.SUCCESS))
        monitor.finalize(JobResult('a', JobStatus.FAILURE))

        assert [r.name for r in monitor.results()] == ['a', 'c']
        assert not monitor.is_complete()

    def test_result_is_final(self):
        monitor = JobMonitor(['a'])
        monitor.finalize(JobResult('a', JobStatus.SUCCESS))
        with pytest.raises(RuntimeError):
            monitor.finalize(JobResult('a', JobStatus.FAILURE))

    def test_cannot_start_twice(self):
        monitor = JobMonitor(['a'])
        monitor.mark_started('a')
        with pytest.raises(RuntimeError):
            monitor.mark_started('a')

    def test_unknown_and_duplicate_jobs(self):
        monitor = JobMonitor(['a'])
        with pytest.raises(KeyError):
            monitor.record('b')
        with pytest.raises(ValueError):
            monitor.register('a')

    def test_elapsed_before_start(self):
        assert JobMonitor(['a']).elapsed('a') == 0.0

    def test_print_status(self, capsys):
        monitor = JobMonitor(['a', 'b'])
        monitor.mark_started('a')
        monitor.print_status()

        assert "Completed: 0/2, Running: 1, Queued: 1" in capsys.readouterr().out
