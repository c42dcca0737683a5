"""
Command-line interface for ci_matrix.

Pipeline Pattern:
    1. ci-matrix resolve --event pull_request --platform windows
    2. ci-matrix plan    --event pull_request --platform windows --output manifest.json
    3. ci-matrix run     --event pull_request --platform windows [--dry-run]
    4. ci-matrix aggregate --results ci-output/results.json

Trigger Options (resolve, plan, run):
    --event          push | pull_request | merge_group | workflow_dispatch | workflow_call
    --ref-name       Target branch (try-linux, try-wpt, try-wpt-2020 select extra work)
    --platform       linux | windows | macos | all
    --layout         none | 2013 | 2020 | all
    --unit-tests     true | false
    --configuration  Pre-resolved configuration JSON (bypasses the policy)
    --event-file     JSON event description instead of the options above

Sharding:
    ci-matrix shard split --tests tests.txt --chunks-dir chunks/ --total-chunks 20
    ci-matrix shard list  --tests tests.txt --total-chunks 20 --this-chunk 3

Reporting:
    ci-matrix report --layout 2020 --settings config/ci.yaml
    ci-matrix analyze-logs --settings config/ci.yaml
"""

import click

from ..run.configuration import ConfigurationError, Layout, PlatformChoice, TriggerKind


def _load_settings(settings_path):
    from ..run.settings import PipelineSettings

    try:
        if settings_path:
            return PipelineSettings.from_yaml(settings_path)
        return PipelineSettings.default()
    except ConfigurationError as e:
        raise click.BadParameter(str(e), param_hint='--settings')


def _resolve_from_options(event, ref_name, pull_request, platform, layout, unit_tests,
                          configuration, event_file):
    """Build the trigger and resolve the run configuration (fails fast on bad input)."""
    from ..run.configuration import TriggerContext, build_resolver_input, resolve

    try:
        if event_file:
            trigger = TriggerContext.from_event_file(event_file)
        else:
            inputs = {}
            if platform:
                inputs['platform'] = platform
            if layout:
                inputs['layout'] = layout
            if unit_tests:
                inputs['unit-tests'] = unit_tests
            trigger = TriggerContext(
                event=TriggerKind(event),
                ref_name=ref_name or '',
                pull_request=pull_request,
                inputs=inputs,
            )
        resolver_input = build_resolver_input(trigger, configuration)
    except ConfigurationError as e:
        raise click.UsageError(str(e))

    return trigger, resolve(resolver_input)


def trigger_options(func):
    """Options shared by every command that resolves a configuration."""
    options = [
        click.option('--event', '-e', default='workflow_dispatch',
                     type=click.Choice([k.value for k in TriggerKind]),
                     help='Event that triggered the run'),
        click.option('--ref-name', help='Target branch name'),
        click.option('--pull-request', type=int, help='Pull request number'),
        click.option('--platform', '-p', type=click.Choice([p.value for p in PlatformChoice]),
                     help='Platform(s) to build (default: linux)'),
        click.option('--layout', '-l', type=click.Choice([l.value for l in Layout]),
                     help='Layout WPT suites to run (default: none)'),
        click.option('--unit-tests', help='Run unit tests (true/false, default: false)'),
        click.option('--configuration', help='Pre-resolved configuration JSON'),
        click.option('--event-file', type=click.Path(exists=True),
                     help='JSON event description (replaces the options above)'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.version_option()
def cli():
    """CI Matrix - build/test fan-out orchestration."""
    pass


# ============================================================================
# Configuration and planning
# ============================================================================

@cli.command('resolve')
@trigger_options
def resolve_cmd(event, ref_name, pull_request, platform, layout, unit_tests,
                configuration, event_file):
    """Print the resolved run configuration as JSON."""
    _, resolved = _resolve_from_options(event, ref_name, pull_request, platform, layout,
                                        unit_tests, configuration, event_file)
    click.echo(resolved.to_json())


@cli.command('plan')
@trigger_options
@click.option('--settings', '-s', 'settings_path', type=click.Path(exists=True),
              help='Pipeline settings YAML file')
@click.option('--output', '-o', type=click.Path(),
              help='Save the plan to this JSON file')
def plan_cmd(event, ref_name, pull_request, platform, layout, unit_tests,
             configuration, event_file, settings_path, output):
    """Print the jobs a run would launch (without running them)."""
    from ..run.manifest import RunManifest

    trigger, resolved = _resolve_from_options(event, ref_name, pull_request, platform, layout,
                                              unit_tests, configuration, event_file)
    manifest = RunManifest(_load_settings(settings_path), resolved, trigger)
    manifest.print_summary()

    if output:
        manifest.save_manifest(output)


@cli.command('run')
@trigger_options
@click.option('--settings', '-s', 'settings_path', type=click.Path(exists=True),
              help='Pipeline settings YAML file')
@click.option('--max-workers', type=int, help='Parallel job limit (default: from settings)')
@click.option('--dry-run', is_flag=True, help='Print commands without executing them')
def run_cmd(event, ref_name, pull_request, platform, layout, unit_tests,
            configuration, event_file, settings_path, max_workers, dry_run):
    """Resolve, fan out every selected job, and aggregate the results."""
    import sys
    from ..jobs.artifacts import ArtifactStore
    from ..jobs.runner import JobRunner
    from ..run.manifest import RunManifest
    from ..run.orchestrator import RunOrchestrator
    from ..run.results import save_results

    trigger, resolved = _resolve_from_options(event, ref_name, pull_request, platform, layout,
                                              unit_tests, configuration, event_file)
    settings = _load_settings(settings_path)

    manifest = RunManifest(settings, resolved, trigger)
    click.echo(f"{'=' * 70}")
    click.echo(f"Run configuration: {resolved.to_json()}")
    if dry_run:
        click.echo("(DRY RUN - commands are printed, not executed)")
    click.echo(f"{'=' * 70}")
    manifest.print_summary()
    manifest.save_manifest()
    click.echo()

    store = ArtifactStore(settings.artifacts_dir)
    removed = store.clear()
    if removed:
        click.echo(f"Removed {removed} artifact(s) from a previous run")

    orch = RunOrchestrator(manifest, JobRunner(settings, store, dry_run=dry_run),
                           max_workers=max_workers)
    results, outcome = orch.run_and_aggregate()
    save_results(results, settings.results_file, configuration=resolved.to_dict())

    click.echo(f"\nFinal status: {outcome.value}")
    sys.exit(outcome.exit_code)


@cli.command('aggregate')
@click.option('--results', '-r', 'results_path', required=True, type=click.Path(exists=True),
              help='Results JSON file (from ci-matrix run, or a list of {name, status})')
def aggregate_cmd(results_path):
    """Reduce a set of job results to one pass/fail status."""
    import sys
    from ..run.results import aggregate, aggregate_by_group, count_statuses, load_results

    try:
        results = load_results(results_path)
    except ConfigurationError as e:
        raise click.BadParameter(str(e), param_hint='--results')

    counts = count_statuses(results)
    click.echo(f"Jobs: {len(results)} "
               + ", ".join(f"{status}={count}" for status, count in counts.items()))
    for group, group_outcome in aggregate_by_group(results).items():
        if group:
            click.echo(f"  {group}: {group_outcome.value}")

    outcome = aggregate(results)
    click.echo(f"Final status: {outcome.value}")
    sys.exit(outcome.exit_code)


# ============================================================================
# Sharding
# ============================================================================

@cli.group()
def shard():
    """WPT test sharding commands."""
    pass


@shard.command('list')
@click.option('--tests', '-t', 'tests_file', required=True, type=click.Path(exists=True),
              help='Test list file (one test ID per line)')
@click.option('--total-chunks', '-n', default=20, type=click.IntRange(min=1),
              help='Number of chunks')
@click.option('--this-chunk', '-c', required=True, type=int, help='Chunk to show (1-indexed)')
def shard_list(tests_file, total_chunks, this_chunk):
    """Print the tests assigned to one chunk."""
    from ..jobs.shard import TestShard, read_test_list, select_chunk

    try:
        test_shard = TestShard(total_chunks=total_chunks, chunk_index=this_chunk)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint='--this-chunk')

    for test in select_chunk(read_test_list(tests_file), test_shard):
        click.echo(test)


@shard.command('split')
@click.option('--tests', '-t', 'tests_file', required=True, type=click.Path(exists=True),
              help='Test list file (one test ID per line)')
@click.option('--chunks-dir', '-d', required=True, type=click.Path(),
              help='Directory for chunk files')
@click.option('--total-chunks', '-n', default=20, type=click.IntRange(min=1),
              help='Number of chunks')
def shard_split(tests_file, chunks_dir, total_chunks):
    """Partition a test list into chunk files."""
    from ..jobs.shard import create_chunk_files, read_test_list

    chunk_files, _ = create_chunk_files(read_test_list(tests_file), chunks_dir, total_chunks)
    click.echo(f"\nCreated {len(chunk_files)} chunk(s) in {chunks_dir}")


# ============================================================================
# Reporting
# ============================================================================

@cli.command('report')
@click.option('--settings', '-s', 'settings_path', type=click.Path(exists=True),
              help='Pipeline settings YAML file')
@click.option('--layout', '-l', required=True,
              type=click.Choice([l.value for l in Layout if l not in (Layout.NONE, Layout.ALL)]),
              help='Layout suite to report on')
@click.option('--output-dir', '-o', type=click.Path(),
              help='Report directory (default: {reports_dir}/{layout})')
def report_cmd(settings_path, layout, output_dir):
    """Combine a WPT suite's per-chunk results from the artifact store."""
    from ..jobs.artifacts import ArtifactStore
    from ..run.report import combine_wpt_results

    settings = _load_settings(settings_path)
    output_dir = output_dir or settings.reports_dir / layout
    combine_wpt_results(ArtifactStore(settings.artifacts_dir), Layout(layout), output_dir)


@cli.command('analyze-logs')
@click.option('--settings', '-s', 'settings_path', type=click.Path(exists=True),
              help='Pipeline settings YAML file')
@click.option('--pattern', default='*.log', help='Glob pattern for job logs')
@click.option('--max-logs', default=20, type=int, help='Maximum suspicious logs to print')
def analyze_logs_cmd(settings_path, pattern, max_logs):
    """Find job logs with errors or abnormal termination."""
    from ..run.report import analyze_job_logs, print_log_findings

    settings = _load_settings(settings_path)
    click.echo(f"Logs directory: {settings.logs_dir}")
    print_log_findings(analyze_job_logs(settings.logs_dir, pattern), max_logs=max_logs)


if __name__ == '__main__':
    cli()
