"""Tests for fan-out plan generation."""

import json
from pathlib import Path

import pytest

from ci_matrix.run.configuration import (
    ALL_PLATFORMS, Layout, Platform, RunConfiguration, TriggerContext, TriggerKind,
)
from ci_matrix.run.manifest import (
    BUILD, REPORT, UNLESS_CANCELLED, WPT, RunManifest,
)
from ci_matrix.run.settings import PipelineSettings


def _make_settings(base_dir: Path, total_chunks: int = 3, **extra) -> PipelineSettings:
    data = {
        'wpt': {'total_chunks': total_chunks},
        'output': {'base_dir': str(base_dir)},
    }
    data.update(extra)
    return PipelineSettings(data)


def _manifest(tmp_path, platforms, layout=Layout.NONE, unit_tests=False,
              ref_name='', event=TriggerKind.PULL_REQUEST, **settings):
    configuration = RunConfiguration(platforms=tuple(platforms), layout=layout,
                                     unit_tests=unit_tests)
    trigger = TriggerContext(event, ref_name=ref_name)
    return RunManifest(_make_settings(tmp_path, **settings), configuration, trigger)


def _selected_names(manifest):
    return [job.name for job in manifest.selected_jobs()]


class TestComputeJobs:
    """Shape of the full plan."""

    def test_full_plan_shape(self, tmp_path):
        manifest = _manifest(tmp_path, ALL_PLATFORMS, layout=Layout.ALL, total_chunks=20)
        jobs = manifest.compute_jobs()

        assert [j.name for j in jobs[:3]] == ['build-linux', 'build-windows', 'build-macos']
        assert len([j for j in jobs if j.kind == WPT]) == 40
        assert len([j for j in jobs if j.kind == REPORT]) == 2
        assert all(j.selected for j in jobs)

    def test_every_job_is_planned_even_when_unselected(self, tmp_path):
        """Unselected jobs stay in the plan so they can be recorded as skipped."""
        manifest = _manifest(tmp_path, [Platform.WINDOWS])
        assert len(manifest.compute_jobs()) == 3 + 2 * (3 + 1)

    def test_shards_depend_on_linux_build(self, tmp_path):
        manifest = _manifest(tmp_path, [Platform.LINUX], layout=Layout.LAYOUT_2020)
        shard = manifest.job('wpt-2020-chunk-02')

        assert shard.depends_on == ('build-linux',)
        assert shard.shard.chunk_index == 2
        assert shard.shard.total_chunks == 3
        assert shard.group == 'linux'

    def test_report_waits_for_all_shards(self, tmp_path):
        manifest = _manifest(tmp_path, [Platform.LINUX], layout=Layout.LAYOUT_2013)
        report = manifest.job('wpt-report-2013')

        assert report.depends_on == (
            'wpt-2013-chunk-01', 'wpt-2013-chunk-02', 'wpt-2013-chunk-03',
        )
        assert report.run_policy == UNLESS_CANCELLED

    def test_unknown_job(self, tmp_path):
        with pytest.raises(KeyError):
            _manifest(tmp_path, [Platform.LINUX]).job('build-solaris')


class TestSelection:
    """Which jobs a configuration launches."""

    def test_windows_only(self, tmp_path):
        manifest = _manifest(tmp_path, [Platform.WINDOWS])
        assert _selected_names(manifest) == ['build-windows']

    def test_layout_without_linux_runs_no_suites(self, tmp_path):
        manifest = _manifest(tmp_path, [Platform.MACOS], layout=Layout.ALL)
        assert _selected_names(manifest) == ['build-macos']

    def test_single_layout(self, tmp_path):
        manifest = _manifest(tmp_path, [Platform.LINUX], layout=Layout.LAYOUT_2013)
        names = _selected_names(manifest)

        assert 'wpt-2013-chunk-01' in names
        assert 'wpt-report-2013' in names
        assert not any(name.startswith('wpt-2020') or name == 'wpt-report-2020' for name in names)

    def test_unit_tests_flag_reaches_builds(self, tmp_path):
        manifest = _manifest(tmp_path, ALL_PLATFORMS, unit_tests=True)
        assert all(manifest.job(f"build-{p.value}").unit_tests for p in ALL_PLATFORMS)

    def test_sync_mode_skips_reports(self, tmp_path):
        manifest = _manifest(tmp_path, [Platform.LINUX], layout=Layout.ALL,
                             wpt={'total_chunks': 2, 'mode': 'sync'})
        names = _selected_names(manifest)

        assert 'wpt-2013-chunk-02' in names
        assert 'wpt-report-2013' not in names
        assert 'wpt-report-2020' not in names


class TestTryBranches:
    """Branch names that select extra work on linux."""

    def test_try_linux_enables_linux_unit_tests(self, tmp_path):
        manifest = _manifest(tmp_path, ALL_PLATFORMS, ref_name='try-linux')

        assert manifest.job('build-linux').unit_tests is True
        assert manifest.job('build-windows').unit_tests is False

    def test_try_wpt_selects_2013_suite(self, tmp_path):
        manifest = _manifest(tmp_path, [Platform.LINUX], ref_name='try-wpt')

        assert manifest.suite_selected(Layout.LAYOUT_2013)
        assert not manifest.suite_selected(Layout.LAYOUT_2020)

    def test_try_wpt_2020_selects_2020_suite(self, tmp_path):
        manifest = _manifest(tmp_path, [Platform.LINUX], ref_name='try-wpt-2020')

        assert manifest.suite_selected(Layout.LAYOUT_2020)
        assert not manifest.suite_selected(Layout.LAYOUT_2013)

    def test_try_wpt_reports_in_sync_mode(self, tmp_path):
        """Try branches always get a report, whatever the WPT mode."""
        manifest = _manifest(tmp_path, [Platform.LINUX], ref_name='try-wpt',
                             wpt={'total_chunks': 2, 'mode': 'sync'})
        names = _selected_names(manifest)

        assert 'wpt-report-2013' in names
        assert 'wpt-report-2020' not in names

    def test_try_wpt_needs_linux(self, tmp_path):
        manifest = _manifest(tmp_path, [Platform.WINDOWS], ref_name='try-wpt')
        assert not manifest.suite_selected(Layout.LAYOUT_2013)


class TestManifestOutput:
    def test_summary(self, tmp_path):
        manifest = _manifest(tmp_path, [Platform.LINUX], layout=Layout.LAYOUT_2020)
        assert manifest.summary() == {
            BUILD: {'selected': 1, 'skipped': 2},
            WPT: {'selected': 3, 'skipped': 3},
            REPORT: {'selected': 1, 'skipped': 1},
        }

    def test_save_manifest_default_path(self, tmp_path, capsys):
        manifest = _manifest(tmp_path, [Platform.WINDOWS])
        path = manifest.save_manifest()

        assert path == tmp_path / "jobs" / "manifest.json"
        data = json.loads(path.read_text())
        assert data['configuration']['platforms'] == ['windows']
        assert data['trigger']['event'] == 'pull_request'
        assert len(data['jobs']) == len(manifest.compute_jobs())
        assert "Saved manifest" in capsys.readouterr().out

    def test_print_summary(self, tmp_path, capsys):
        _manifest(tmp_path, [Platform.LINUX], layout=Layout.ALL).print_summary()
        out = capsys.readouterr().out

        assert "Platforms: linux" in out
        assert "TOTAL" in out
