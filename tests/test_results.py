"""Tests for job results and aggregation."""

import json

import pytest

from ci_matrix.run.configuration import ConfigurationError
from ci_matrix.run.results import (
    AggregateOutcome,
    JobResult,
    JobStatus,
    aggregate,
    aggregate_by_group,
    count_statuses,
    load_results,
    results_to_frame,
    save_results,
)


def _results(*statuses, group=''):
    return [JobResult(f"job-{i}", status, group=group) for i, status in enumerate(statuses)]


class TestAggregate:
    """The join point of a run."""

    def test_empty_is_success(self):
        assert aggregate([]) is AggregateOutcome.SUCCESS

    def test_all_success(self):
        assert aggregate(_results(JobStatus.SUCCESS, JobStatus.SUCCESS)) is AggregateOutcome.SUCCESS

    def test_skipped_is_neutral(self):
        results = _results(JobStatus.SUCCESS, JobStatus.SKIPPED, JobStatus.SKIPPED)
        assert aggregate(results) is AggregateOutcome.SUCCESS

    def test_all_skipped_is_success(self):
        assert aggregate(_results(JobStatus.SKIPPED)) is AggregateOutcome.SUCCESS

    @pytest.mark.parametrize("bad", [JobStatus.FAILURE, JobStatus.CANCELLED])
    def test_any_failure_or_cancellation_fails(self, bad):
        results = _results(JobStatus.SUCCESS, JobStatus.SKIPPED, bad, JobStatus.SUCCESS)
        assert aggregate(results) is AggregateOutcome.FAILURE

    def test_order_does_not_matter(self):
        statuses = [JobStatus.SKIPPED, JobStatus.FAILURE, JobStatus.SUCCESS]
        assert aggregate(_results(*statuses)) is aggregate(_results(*reversed(statuses)))

    def test_exit_codes(self):
        assert AggregateOutcome.SUCCESS.exit_code == 0
        assert AggregateOutcome.FAILURE.exit_code == 1

    def test_by_group(self):
        results = (
            _results(JobStatus.SUCCESS, group='linux')
            + [JobResult('build-windows', JobStatus.FAILURE, group='windows')]
        )
        assert aggregate_by_group(results) == {
            'linux': AggregateOutcome.SUCCESS,
            'windows': AggregateOutcome.FAILURE,
        }


class TestCountStatuses:
    def test_counts_every_status(self):
        counts = count_statuses(_results(JobStatus.SUCCESS, JobStatus.SKIPPED, JobStatus.SKIPPED))
        assert counts == {'success': 1, 'failure': 0, 'cancelled': 0, 'skipped': 2}


class TestJobResult:
    """Serialization of job results."""

    def test_from_dict_minimal(self):
        result = JobResult.from_dict({'name': 'build-linux', 'status': 'skipped'})
        assert result.status is JobStatus.SKIPPED
        assert result.artifacts == ()

    def test_from_dict_unknown_status(self):
        with pytest.raises(ConfigurationError):
            JobResult.from_dict({'name': 'build-linux', 'status': 'neutral'})

    def test_from_dict_missing_status(self):
        with pytest.raises(ConfigurationError):
            JobResult.from_dict({'name': 'build-linux'})

    def test_frame(self):
        results = [
            JobResult('build-linux', JobStatus.SUCCESS, group='linux',
                      artifacts=('linux', 'release-binary')),
            JobResult('build-macos', JobStatus.SKIPPED, group='macos'),
        ]
        df = results_to_frame(results)

        assert list(df['name']) == ['build-linux', 'build-macos']
        assert df.loc[0, 'artifacts'] == 'linux,release-binary'
        assert df.loc[1, 'status'] == 'skipped'


class TestSaveLoad:
    def test_save_and_load(self, tmp_path, capsys):
        results = [
            JobResult('build-linux', JobStatus.SUCCESS, group='linux', attempts=2),
            JobResult('wpt-2013-chunk-01', JobStatus.FAILURE, group='linux', message='boom'),
        ]
        path = save_results(results, tmp_path / "out" / "results.json",
                            configuration={'platforms': ['linux']})

        data = json.loads(path.read_text())
        assert data['outcome'] == 'failure'
        assert data['counts']['failure'] == 1
        assert data['configuration'] == {'platforms': ['linux']}
        assert load_results(path) == results
        assert "Saved results" in capsys.readouterr().out

    def test_load_bare_list(self, tmp_path):
        path = tmp_path / "results.json"
        path.write_text(json.dumps([{'name': 'a', 'status': 'success'},
                                    {'name': 'b', 'status': 'cancelled'}]))

        results = load_results(path)

        assert [r.status for r in results] == [JobStatus.SUCCESS, JobStatus.CANCELLED]
        assert aggregate(results) is AggregateOutcome.FAILURE

    def test_load_invalid(self, tmp_path):
        path = tmp_path / "results.json"
        path.write_text('{"results": 3}')
        with pytest.raises(ConfigurationError):
            load_results(path)
