"""Tests for WPT result reporting and job log analysis."""

import json

from ci_matrix.jobs.artifacts import ArtifactStore
from ci_matrix.run.configuration import Layout
from ci_matrix.run.report import (
    analyze_job_logs, analyze_log_file, combine_wpt_results, print_log_findings,
)


def _write_chunk(tmp_path, store, layout, chunk, rows, unexpected):
    work_dir = tmp_path / f"work-{layout}-{chunk}"
    work_dir.mkdir()
    (work_dir / f"filtered-test-wpt.{chunk}.json").write_text(json.dumps(rows))
    (work_dir / f"unexpected-test-wpt.{chunk}.log").write_text(unexpected)
    store.put(
        f"wpt-filtered-results-{layout}-chunk-{chunk:02d}",
        [f"filtered-test-wpt.{chunk}.json", f"unexpected-test-wpt.{chunk}.log"],
        base_dir=work_dir,
    )


class TestAnalyzeLogs:

    def test_clean_log(self, tmp_path):
        log = tmp_path / "build-linux.log"
        log.write_text("== Job started: build-linux\nExit code: 0\n\n== Job finished: success\n")

        finding = analyze_log_file(log)

        assert finding.job == 'build-linux'
        assert not finding.suspicious

    def test_detects_abnormal_end(self, tmp_path):
        log = tmp_path / "wpt-2020-chunk-03.log"
        log.write_text("== Job started: wpt-2020-chunk-03\n== Step: test-wpt\n")

        finding = analyze_log_file(log)

        assert finding.abnormal_end is True
        assert finding.has_error is False
        assert finding.matched_lines == ["Abnormal termination (last line): == Step: test-wpt"]

    def test_detects_errors(self, tmp_path):
        log = tmp_path / "build-macos.log"
        log.write_text(
            "== Job started: build-macos\n"
            "error[E0425]: cannot find value `x` in this scope\n"
            "== Job finished: failure\n"
        )

        finding = analyze_log_file(log)

        assert finding.has_error is True
        assert finding.abnormal_end is False
        assert finding.matched_lines[0].startswith("error[E0425]")

    def test_analyze_job_logs_returns_suspicious_only(self, tmp_path, capsys):
        (tmp_path / "a.log").write_text("== Job started: a\n== Job finished: success\n")
        (tmp_path / "b.log").write_text("== Job started: b\nthread 'main' panicked at src/lib.rs\n")

        findings = analyze_job_logs(tmp_path)

        assert [f.job for f in findings] == ['b']
        print_log_findings(findings)
        out = capsys.readouterr().out
        assert "Suspicious logs found: 1" in out
        assert "error, abnormal_end" in out

    def test_missing_dir(self, tmp_path):
        assert analyze_job_logs(tmp_path / "missing") == []


class TestCombineWptResults:

    def test_combines_chunks_in_order(self, tmp_path, capsys):
        store = ArtifactStore(tmp_path / "artifacts")
        _write_chunk(tmp_path, store, '2020', 2,
                     [{'test': '/b.html', 'actual': 'FAIL'}], "chunk 2 unexpected\n")
        _write_chunk(tmp_path, store, '2020', 1,
                     [{'test': '/a.html', 'actual': 'TIMEOUT'},
                      {'test': '/c.html', 'actual': 'FAIL'}], "chunk 1 unexpected\n")
        _write_chunk(tmp_path, store, '2013', 1,
                     [{'test': '/legacy.html', 'actual': 'CRASH'}], "legacy\n")

        df = combine_wpt_results(store, Layout.LAYOUT_2020, tmp_path / "report")

        assert list(df['test']) == ['/a.html', '/c.html', '/b.html']
        assert list(df['chunk']) == [1, 1, 2]
        log = (tmp_path / "report" / "unexpected-test-wpt-2020.log").read_text()
        assert log == "chunk 1 unexpected\nchunk 2 unexpected\n"
        assert (tmp_path / "report" / "wpt-results-2020.csv").exists()
        out = capsys.readouterr().out
        assert "Found 2 result artifact(s)" in out
        assert "FAIL: 2" in out

    def test_chunk_order_beyond_99(self, tmp_path):
        store = ArtifactStore(tmp_path / "artifacts")
        for chunk in (100, 11, 9):
            _write_chunk(tmp_path, store, '2013', chunk,
                         [{'test': f"/t{chunk}.html", 'actual': 'FAIL'}], f"chunk {chunk}\n")

        df = combine_wpt_results(store, Layout.LAYOUT_2013, tmp_path / "report")

        assert list(df['chunk']) == [9, 11, 100]
        log = (tmp_path / "report" / "unexpected-test-wpt-2013.log").read_text()
        assert log == "chunk 9\nchunk 11\nchunk 100\n"

    def test_no_results(self, tmp_path):
        df = combine_wpt_results(ArtifactStore(tmp_path / "artifacts"), Layout.LAYOUT_2013,
                                 tmp_path / "report")
        assert len(df) == 0
        assert (tmp_path / "report" / "unexpected-test-wpt-2013.log").read_text() == ""
