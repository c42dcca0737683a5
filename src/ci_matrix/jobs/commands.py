"""
Command lines for build and WPT jobs.

Every job body is a sequence of external commands run through the
repository's mach entry point. Only the command lines live here; running
them is the JobRunner's business.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Tuple

from ..run.configuration import Layout, Platform
from ..run.manifest import RELEASE_BINARY, JobSpec
from ..run.settings import PipelineSettings


@dataclass(frozen=True)
class Step:
    """One command of a job."""
    name: str
    argv: Tuple[str, ...]
    retry: bool = False

    @property
    def command_line(self) -> str:
        return ' '.join(self.argv)


# Linux build output consumed by the WPT shards
RELEASE_TARBALL = 'target.tar.gz'


def timings_artifact(platform: Platform) -> str:
    return f"cargo-timings-{platform.value}"


def _mach(settings: PipelineSettings, *args: str) -> Tuple[str, ...]:
    return (settings.python, settings.mach) + tuple(args)


def build_steps(job: JobSpec, settings: PipelineSettings) -> List[Step]:
    """
    Steps of a platform build job.

    Bootstrap, build, smoketest and package always run; linux adds tidy,
    script tests, the lockfile check and the release-binary tarball; unit
    tests run only when the job asks for them (retried); nightly upload only
    with upload set.
    """
    profile = f"--{job.profile}"
    linux = job.platform is Platform.LINUX

    steps = [Step('bootstrap', _mach(settings, 'bootstrap'))]
    if linux:
        steps.append(Step('tidy', _mach(settings, 'test-tidy', '--no-progress', '--all')))
    steps.append(Step('build', _mach(settings, 'build', profile)))
    steps.append(Step('smoketest', _mach(settings, 'smoketest', profile)))
    if linux:
        steps.append(Step('script tests', _mach(settings, 'test-scripts')))
    if job.unit_tests:
        steps.append(Step('unit tests', _mach(settings, 'test-unit', profile), retry=True))
    if linux:
        steps.append(Step('lockfile check', ('./etc/ci/lockfile_changed.sh',)))
    steps.append(Step('package', _mach(settings, 'package', profile)))

    if job.upload:
        upload = _mach(settings, 'upload-nightly', job.platform.value, '--secret-from-environment')
        if settings.github_release_id:
            upload += ('--github-release-id', str(settings.github_release_id))
        steps.append(Step('upload nightly', upload))

    if linux:
        steps.append(Step('release binary', (
            'tar', '-czf', RELEASE_TARBALL, f"target/{job.profile}/servo", 'resources',
        )))

    return steps


def build_artifacts(job: JobSpec, settings: PipelineSettings) -> Dict[str, List[str]]:
    """
    Artifact name -> workspace-relative paths uploaded by a build job.

    The cargo-timings-{platform} artifact is uploaded only when the build
    wrote timing data.
    """
    artifacts = {
        job.platform.value: [settings.package_path(job.platform)],
        timings_artifact(job.platform): ['target/cargo-timings'],
    }
    if job.platform is Platform.LINUX:
        artifacts[RELEASE_BINARY] = [RELEASE_TARBALL]
    return artifacts


def wpt_output_files(work_dir: Path, job: JobSpec) -> Dict[str, Path]:
    """Per-chunk output files of a WPT shard."""
    chunk = job.shard.chunk_index
    return {
        'raw_log': work_dir / f"test-wpt.{chunk}.log",
        'unexpected_log': work_dir / f"unexpected-test-wpt.{chunk}.log",
        'filtered_json': work_dir / f"filtered-test-wpt.{chunk}.json",
    }


def wpt_steps(job: JobSpec, settings: PipelineSettings, work_dir: Path) -> List[Step]:
    """
    Steps of one WPT shard.

    In test mode the run writes unexpected results and filtered
    intermittents for the report job; in sync mode it updates the
    expectations first and always succeeds.
    """
    outputs = wpt_output_files(work_dir, job)
    shard = job.shard

    args = ['test-wpt']
    if job.layout is Layout.LAYOUT_2013:
        args.append('--legacy-layout')
    args += [
        f"--{job.profile}",
        '--processes', str(settings.wpt_processes),
        '--timeout-multiplier', str(settings.wpt_timeout_multiplier),
        '--total-chunks', str(shard.total_chunks),
        '--this-chunk', str(shard.chunk_index),
        '--log-raw', str(outputs['raw_log']),
    ]

    steps = []
    if settings.wpt_mode == 'sync':
        steps.append(Step('sync', _mach(settings, 'update-wpt', '--sync', '--patch')))
        args.append('--always-succeed')
    else:
        args += [
            '--log-raw-unexpected', str(outputs['unexpected_log']),
            '--filter-intermittents', str(outputs['filtered_json']),
        ]

    steps.append(Step('test-wpt', _mach(settings, *args)))
    return steps
