"""
WPT result reporting and job log analysis.

combine_wpt_results gathers the per-chunk artifacts of one WPT suite into a
single unexpected-results log and a CSV table. analyze_job_logs flags job
logs that contain errors or stop before the job's end marker.
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from .configuration import Layout
from ..jobs.artifacts import ArtifactStore


ERROR_PATTERNS = [
    re.compile(r"Traceback", re.IGNORECASE),
    re.compile(r"panicked at", re.IGNORECASE),
    re.compile(r"^error(\[E\d+\])?:", re.IGNORECASE),
    re.compile(r"Segmentation fault", re.IGNORECASE),
    re.compile(r"\bkilled\b", re.IGNORECASE),
    re.compile(r"timed out after", re.IGNORECASE),
]

START_PATTERN = re.compile(r"^== Job started", re.MULTILINE)
DONE_PATTERN = re.compile(r"^== Job finished", re.MULTILINE)
CHUNK_PATTERN = re.compile(r"-chunk-(?P<chunk>\d+)$")


@dataclass
class LogFinding:
    job: str
    path: Path
    has_error: bool
    abnormal_end: bool
    matched_lines: List[str]

    @property
    def suspicious(self) -> bool:
        return self.has_error or self.abnormal_end


def _collect_matching_lines(text: str, max_lines: int = 5) -> List[str]:
    matches: List[str] = []
    for line in text.splitlines():
        if any(p.search(line) for p in ERROR_PATTERNS):
            matches.append(line.strip())
            if len(matches) >= max_lines:
                break
    return matches


def analyze_log_file(log_path: Path, max_lines: int = 5) -> LogFinding:
    text = log_path.read_text(errors="replace")

    matched_lines = _collect_matching_lines(text, max_lines)
    has_error = bool(matched_lines)
    started = bool(START_PATTERN.search(text))
    abnormal_end = started and not DONE_PATTERN.search(text)

    if abnormal_end and not matched_lines:
        lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
        matched_lines = [f"Abnormal termination (last line): {lines[-1]}"]

    return LogFinding(
        job=log_path.stem,
        path=log_path,
        has_error=has_error,
        abnormal_end=abnormal_end,
        matched_lines=matched_lines,
    )


def analyze_job_logs(
    logs_dir: Union[str, Path],
    pattern: str = "*.log",
    max_lines: int = 5,
) -> List[LogFinding]:
    """
    Scan job logs and return the suspicious ones.

    Args:
        logs_dir: Directory of per-job log files
        pattern: Glob pattern for log files
        max_lines: Matched lines kept per log

    Returns:
        Findings for logs with errors or without an end marker, sorted by job
    """
    logs_dir = Path(logs_dir)
    if not logs_dir.exists():
        return []

    findings = []
    for log_path in sorted(logs_dir.glob(pattern)):
        finding = analyze_log_file(log_path, max_lines)
        if finding.suspicious:
            findings.append(finding)
    return findings


def print_log_findings(findings: List[LogFinding], max_logs: int = 20):
    print(f"Suspicious logs found: {len(findings)}")
    print()

    if not findings:
        print("No suspicious logs found.")
        return

    for idx, finding in enumerate(findings[:max_logs], start=1):
        labels = []
        if finding.has_error:
            labels.append("error")
        if finding.abnormal_end:
            labels.append("abnormal_end")

        print(f"[{idx}] {finding.path}")
        print(f"  Job: {finding.job}")
        print(f"  Flags: {', '.join(labels) if labels else 'none'}")
        if finding.matched_lines:
            print("  Matched log lines:")
            for line in finding.matched_lines:
                print(f"    - {line}")
        print()

    remaining = len(findings) - max_logs
    if remaining > 0:
        print(f"... and {remaining} more")


def _load_filtered_results(json_file: Path) -> List[Dict[str, Any]]:
    with open(json_file, 'r') as f:
        data = json.load(f)

    if isinstance(data, dict):
        data = data.get('results', [])
    if not isinstance(data, list):
        return []
    return [row for row in data if isinstance(row, dict)]


def _chunk_number(artifact_name: str) -> Optional[int]:
    match = CHUNK_PATTERN.search(artifact_name)
    return int(match.group('chunk')) if match else None


def combine_wpt_results(
    store: ArtifactStore,
    layout: Layout,
    output_dir: Union[str, Path],
) -> pd.DataFrame:
    """
    Combine one WPT suite's per-chunk result artifacts.

    Writes unexpected-test-wpt-{layout}.log (all chunks' unexpected logs
    concatenated in chunk order) and wpt-results-{layout}.csv (one row per
    filtered result, with its chunk number).

    Returns:
        Combined DataFrame (empty if no chunk produced results)
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    prefix = f"wpt-filtered-results-{layout.value}-chunk-"
    chunk_artifacts = sorted(
        ((_chunk_number(name), name) for name in store.list(prefix)),
        key=lambda item: (item[0] is None, item[0] or 0, item[1]),
    )

    print(f"Found {len(chunk_artifacts)} result artifact(s) for layout {layout.value}")

    log_path = output_dir / f"unexpected-test-wpt-{layout.value}.log"
    rows: List[Dict[str, Any]] = []
    failed_files = []

    with open(log_path, 'w') as combined_log:
        for chunk, name in chunk_artifacts:
            for path in store.files(name):
                if path.suffix == '.log':
                    combined_log.write(path.read_text(errors="replace"))
                elif path.suffix == '.json':
                    try:
                        for row in _load_filtered_results(path):
                            rows.append({'chunk': chunk, **row})
                    except (OSError, json.JSONDecodeError):
                        failed_files.append(path)

    if failed_files:
        print(f"Warning: Failed to load {len(failed_files)} result files")

    df = pd.DataFrame(rows)
    csv_path = output_dir / f"wpt-results-{layout.value}.csv"
    df.to_csv(csv_path, index=False)

    print(f"\n=== SUMMARY ({layout.value}) ===")
    print(f"Filtered results: {len(df)}")
    if 'actual' in df.columns and len(df):
        for actual, count in df['actual'].value_counts().items():
            print(f"  {actual}: {count}")
    print(f"Unexpected log: {log_path}")
    print(f"Results table: {csv_path}")

    return df
