"""
Fan-out plan generation.

The RunManifest expands a resolved RunConfiguration into the full list of
jobs a run consists of: one build job per platform, and for linux one
sharded WPT suite per layout variant plus a report job per suite. Jobs the
configuration does not select stay in the plan, marked unselected, so they
are recorded as skipped rather than silently missing.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .configuration import (
    ALL_PLATFORMS, LAYOUT_VARIANTS, Layout, Platform, RunConfiguration, TriggerContext,
)
from .settings import PipelineSettings
from ..jobs.shard import TestShard, iter_shards


BUILD = 'build'
WPT = 'wpt'
REPORT = 'report'

# Run policies: when a job runs, given its dependencies' outcomes
ON_SUCCESS = 'on_success'
UNLESS_CANCELLED = 'unless_cancelled'

RELEASE_BINARY = 'release-binary'

# Branch pushes that select extra work on linux
TRY_LINUX_BRANCH = 'try-linux'
TRY_WPT_BRANCHES = {
    Layout.LAYOUT_2013: 'try-wpt',
    Layout.LAYOUT_2020: 'try-wpt-2020',
}


@dataclass(frozen=True)
class JobSpec:
    """One unit of fanned-out work."""
    name: str
    kind: str
    group: str
    platform: Platform
    selected: bool
    profile: str = 'release'
    layout: Optional[Layout] = None
    shard: Optional[TestShard] = None
    depends_on: Tuple[str, ...] = field(default_factory=tuple)
    run_policy: str = ON_SUCCESS
    unit_tests: bool = False
    upload: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'kind': self.kind,
            'group': self.group,
            'platform': self.platform.value,
            'selected': self.selected,
            'profile': self.profile,
            'layout': self.layout.value if self.layout else None,
            'chunk': self.shard.chunk_index if self.shard else None,
            'total_chunks': self.shard.total_chunks if self.shard else None,
            'depends_on': list(self.depends_on),
            'run_policy': self.run_policy,
            'unit_tests': self.unit_tests,
            'upload': self.upload,
        }


def build_job_name(platform: Platform) -> str:
    return f"build-{platform.value}"


def wpt_job_name(layout: Layout, shard: TestShard) -> str:
    return f"wpt-{layout.value}-chunk-{shard.label}"


def report_job_name(layout: Layout) -> str:
    return f"wpt-report-{layout.value}"


def wpt_results_artifact(layout: Layout, shard: TestShard) -> str:
    return f"wpt-filtered-results-{layout.value}-chunk-{shard.label}"


def wpt_logs_artifact(layout: Layout, shard: TestShard) -> str:
    return f"wpt-logs-{layout.value}-chunk-{shard.label}"


class RunManifest:
    """
    Computes the full set of jobs for a resolved configuration.

    Example:
        settings = PipelineSettings.from_yaml('config/ci.yaml')
        manifest = RunManifest(settings, configuration, trigger)
        manifest.print_summary()
        for job in manifest.selected_jobs():
            print(job.name)
    """

    def __init__(
        self,
        settings: PipelineSettings,
        configuration: RunConfiguration,
        trigger: Optional[TriggerContext] = None,
    ):
        self.settings = settings
        self.configuration = configuration
        self.trigger = trigger
        self._jobs: Optional[List[JobSpec]] = None

    @property
    def ref_name(self) -> str:
        return self.trigger.ref_name if self.trigger else ''

    def suite_selected(self, layout: Layout) -> bool:
        """Whether the WPT suite of a layout variant runs in this run."""
        if not self.configuration.includes(Platform.LINUX):
            return False
        return (self.configuration.layout.includes(layout)
                or self.ref_name == TRY_WPT_BRANCHES[layout])

    def compute_jobs(self) -> List[JobSpec]:
        """
        Compute every job of the run in plan order.

        Returns:
            Build jobs (linux, windows, macos), then per layout variant the
            WPT shards followed by the suite's report job.
        """
        if self._jobs is not None:
            return self._jobs

        settings = self.settings
        configuration = self.configuration
        jobs: List[JobSpec] = []

        # --- Builds ---
        for platform in ALL_PLATFORMS:
            unit_tests = configuration.unit_tests
            if platform is Platform.LINUX and self.ref_name == TRY_LINUX_BRANCH:
                unit_tests = True

            jobs.append(JobSpec(
                name=build_job_name(platform),
                kind=BUILD,
                group=platform.value,
                platform=platform,
                selected=configuration.includes(platform),
                profile=settings.profile,
                unit_tests=unit_tests,
                upload=settings.upload,
            ))

        # --- WPT suites (linux only) ---
        build_linux = build_job_name(Platform.LINUX)
        for layout in LAYOUT_VARIANTS:
            selected = self.suite_selected(layout)
            shard_names = []

            for shard in iter_shards(settings.wpt_total_chunks):
                name = wpt_job_name(layout, shard)
                shard_names.append(name)
                jobs.append(JobSpec(
                    name=name,
                    kind=WPT,
                    group=Platform.LINUX.value,
                    platform=Platform.LINUX,
                    selected=selected,
                    profile=settings.profile,
                    layout=layout,
                    shard=shard,
                    depends_on=(build_linux,),
                ))

            jobs.append(JobSpec(
                name=report_job_name(layout),
                kind=REPORT,
                group=Platform.LINUX.value,
                platform=Platform.LINUX,
                selected=selected and (settings.wpt_mode == 'test'
                                       or self.ref_name in TRY_WPT_BRANCHES.values()),
                profile=settings.profile,
                layout=layout,
                depends_on=tuple(shard_names),
                run_policy=UNLESS_CANCELLED,
            ))

        self._jobs = jobs
        return jobs

    def selected_jobs(self) -> List[JobSpec]:
        return [job for job in self.compute_jobs() if job.selected]

    def job(self, name: str) -> JobSpec:
        for job in self.compute_jobs():
            if job.name == name:
                return job
        raise KeyError(f"No job named '{name}' in the plan")

    def summary(self) -> Dict[str, Dict[str, int]]:
        """
        Counts of selected and skipped jobs per kind.

        Returns:
            Dict mapping kind to {'selected': n, 'skipped': m}.
        """
        counts = {kind: {'selected': 0, 'skipped': 0} for kind in (BUILD, WPT, REPORT)}
        for job in self.compute_jobs():
            counts[job.kind]['selected' if job.selected else 'skipped'] += 1
        return counts

    def print_summary(self):
        """Print a human-readable summary of the plan."""
        configuration = self.configuration
        settings = self.settings
        counts = self.summary()

        if self.trigger:
            print(f"Trigger: {self.trigger.event.value}"
                  + (f" ({self.trigger.ref_name})" if self.trigger.ref_name else ""))
        print(f"Platforms: {', '.join(p.value for p in configuration.platforms)}")
        print(f"Layout: {configuration.layout.value}")
        print(f"Unit tests: {'yes' if configuration.unit_tests else 'no'}")
        print(f"Profile: {settings.profile}")
        print(f"WPT: {settings.wpt_mode} mode, {settings.wpt_total_chunks} chunks per suite")
        print()

        print("Jobs:")
        print(f"  {'Kind':<12} {'Selected':>10} {'Skipped':>10}")
        print(f"  {'-' * 12} {'-' * 10} {'-' * 10}")
        total_selected = 0
        total_skipped = 0
        for kind, info in counts.items():
            print(f"  {kind:<12} {info['selected']:>10,} {info['skipped']:>10,}")
            total_selected += info['selected']
            total_skipped += info['skipped']
        print(f"  {'-' * 12} {'-' * 10} {'-' * 10}")
        print(f"  {'TOTAL':<12} {total_selected:>10,} {total_skipped:>10,}")

    def save_manifest(self, output_path: Optional[str] = None) -> Path:
        """
        Save the plan to a JSON file.

        Args:
            output_path: Defaults to {jobs_dir}/manifest.json.
        """
        if output_path is None:
            output_path = self.settings.jobs_dir / "manifest.json"

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        manifest_data = {
            'created': datetime.now().isoformat(),
            'trigger': {
                'event': self.trigger.event.value,
                'ref_name': self.trigger.ref_name,
                'pull_request': self.trigger.pull_request,
            } if self.trigger else None,
            'configuration': self.configuration.to_dict(),
            'summary': self.summary(),
            'jobs': [job.to_dict() for job in self.compute_jobs()],
        }

        with open(output_path, 'w') as f:
            json.dump(manifest_data, f, indent=2)

        print(f"Saved manifest to {output_path}")
        return output_path
