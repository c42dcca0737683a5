"""Run configuration, fan-out planning, orchestration and result aggregation."""

from .configuration import (
    ConfigurationError, Layout, Platform, RunConfiguration, TriggerContext, TriggerKind, resolve,
)
from .settings import PipelineSettings
from .results import AggregateOutcome, JobResult, JobStatus, aggregate
from .manifest import JobSpec, RunManifest
from .orchestrator import RunOrchestrator

__all__ = [
    'ConfigurationError', 'Layout', 'Platform', 'RunConfiguration', 'TriggerContext',
    'TriggerKind', 'resolve', 'PipelineSettings', 'AggregateOutcome', 'JobResult',
    'JobStatus', 'aggregate', 'JobSpec', 'RunManifest', 'RunOrchestrator',
]
