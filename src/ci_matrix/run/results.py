"""
Job results and their reduction to a single outcome.

A JobResult is the terminal record of one fanned-out job. aggregate() is
the join point of a run: it is total over every combination of statuses,
so no combination can silently pass.
"""

import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import pandas as pd

from .configuration import ConfigurationError


class JobStatus(str, Enum):
    SUCCESS = 'success'
    FAILURE = 'failure'
    CANCELLED = 'cancelled'
    SKIPPED = 'skipped'

    @property
    def counts_as_failure(self) -> bool:
        return self in (JobStatus.FAILURE, JobStatus.CANCELLED)


class AggregateOutcome(str, Enum):
    SUCCESS = 'success'
    FAILURE = 'failure'

    @property
    def exit_code(self) -> int:
        return 0 if self is AggregateOutcome.SUCCESS else 1


@dataclass(frozen=True)
class JobResult:
    """Terminal outcome of one job."""
    name: str
    status: JobStatus
    group: str = ''
    attempts: int = 0
    duration_seconds: float = 0.0
    artifacts: Tuple[str, ...] = field(default_factory=tuple)
    message: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'status': self.status.value,
            'group': self.group,
            'attempts': self.attempts,
            'duration_seconds': self.duration_seconds,
            'artifacts': list(self.artifacts),
            'message': self.message,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'JobResult':
        if 'name' not in data or 'status' not in data:
            raise ConfigurationError(f"Job result needs 'name' and 'status': {dict(data)}")
        try:
            status = JobStatus(data['status'])
        except ValueError:
            raise ConfigurationError(
                f"Unknown status '{data['status']}' for job '{data['name']}'"
            ) from None
        return cls(
            name=str(data['name']),
            status=status,
            group=str(data.get('group', '')),
            attempts=int(data.get('attempts', 0)),
            duration_seconds=float(data.get('duration_seconds', 0.0)),
            artifacts=tuple(data.get('artifacts', ())),
            message=str(data.get('message', '')),
        )


def aggregate(results: Iterable[JobResult]) -> AggregateOutcome:
    """
    Reduce job results to one outcome.

    failure if any job failed or was cancelled; skipped jobs are neutral;
    no jobs at all is a success.
    """
    for result in results:
        if result.status.counts_as_failure:
            return AggregateOutcome.FAILURE
    return AggregateOutcome.SUCCESS


def aggregate_by_group(results: Iterable[JobResult]) -> Dict[str, AggregateOutcome]:
    """Outcome per group (platform or report group), in first-seen order."""
    grouped: Dict[str, List[JobResult]] = {}
    for result in results:
        grouped.setdefault(result.group, []).append(result)
    return {group: aggregate(members) for group, members in grouped.items()}


def count_statuses(results: Iterable[JobResult]) -> Dict[str, int]:
    counts = Counter(result.status for result in results)
    return {status.value: counts.get(status, 0) for status in JobStatus}


def results_to_frame(results: Iterable[JobResult]) -> pd.DataFrame:
    """One row per job result."""
    rows = [result.to_dict() for result in results]
    columns = ['name', 'group', 'status', 'attempts', 'duration_seconds', 'artifacts', 'message']
    df = pd.DataFrame(rows, columns=columns)
    df['artifacts'] = df['artifacts'].apply(lambda names: ','.join(names))
    return df


def save_results(
    results: List[JobResult],
    output_path: Union[str, Path],
    configuration: Optional[Dict[str, Any]] = None,
) -> Path:
    """Save results (and the final outcome) to a JSON file."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        'created': datetime.now().isoformat(),
        'configuration': configuration,
        'outcome': aggregate(results).value,
        'counts': count_statuses(results),
        'results': [result.to_dict() for result in results],
    }

    with open(output_path, 'w') as f:
        json.dump(data, f, indent=2)

    print(f"Saved results to {output_path}")
    return output_path


def load_results(path: Union[str, Path]) -> List[JobResult]:
    """
    Load job results from JSON.

    Accepts either the file written by save_results or a bare list of
    result objects.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Results file not found: {path}")

    with open(path, 'r') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Results file {path} is not valid JSON: {e}") from None

    if isinstance(data, dict):
        data = data.get('results', [])
    if not isinstance(data, list):
        raise ConfigurationError(f"Results file {path} must contain a list of results")

    return [JobResult.from_dict(item) for item in data]
