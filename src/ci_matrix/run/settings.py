"""
Pipeline settings.

PipelineSettings loads a YAML settings file describing how jobs are
invoked: build profile, mach entry point, WPT sharding, unit-test retry
policy, worker pool size and output directories.
"""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, Optional

from .configuration import ConfigurationError, Platform


PROFILES = ('release', 'debug', 'production')
WPT_MODES = ('test', 'sync')

DEFAULT_PACKAGES = {
    'linux': 'target/{profile}/servo-tech-demo.tar.gz',
    'windows': 'target/{profile}/msi/Servo.exe',
    'macos': 'target/{profile}/servo-tech-demo.dmg',
}


class PipelineSettings:
    """
    Loads and validates pipeline settings.

    Every key is optional; missing keys fall back to the reference pipeline
    values (release profile, 20 WPT chunks, two unit-test attempts of
    20 minutes each).

    Example:
        settings = PipelineSettings.from_yaml('config/ci.yaml')
        print(settings.wpt_total_chunks)
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self._data = data or {}
        self._validate()

    @classmethod
    def from_yaml(cls, path: str) -> 'PipelineSettings':
        """Load settings from YAML file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Settings file not found: {path}")

        with open(path, 'r') as f:
            data = yaml.safe_load(f)

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file {path} must contain a mapping")

        return cls(data)

    @classmethod
    def default(cls) -> 'PipelineSettings':
        return cls({})

    def _validate(self):
        """Validate values that would otherwise fail late, inside a job."""
        if self.profile not in PROFILES:
            raise ConfigurationError(
                f"Invalid profile '{self.profile}'. Expected one of: {', '.join(PROFILES)}"
            )
        if self.wpt_mode not in WPT_MODES:
            raise ConfigurationError(
                f"Invalid wpt mode '{self.wpt_mode}'. Expected one of: {', '.join(WPT_MODES)}"
            )

        for key, value, minimum in [
            ('wpt.total_chunks', self.wpt_total_chunks, 1),
            ('unit_tests.max_attempts', self.unit_test_max_attempts, 1),
            ('execution.max_workers', self.max_workers, 1),
        ]:
            if not isinstance(value, int) or isinstance(value, bool) or value < minimum:
                raise ConfigurationError(f"'{key}' must be an integer >= {minimum}, got {value!r}")

        timeout = self.unit_test_timeout_minutes
        if not isinstance(timeout, (int, float)) or isinstance(timeout, bool) or timeout <= 0:
            raise ConfigurationError("'unit_tests.timeout_minutes' must be positive")

        unknown = set(self._data.get('platforms', {}) or {}) - {p.value for p in Platform}
        if unknown:
            raise ConfigurationError(f"Unknown platform(s) in settings: {', '.join(sorted(unknown))}")

    def _section(self, name: str) -> Dict[str, Any]:
        return self._data.get(name, {}) or {}

    # --- Build ---

    @property
    def profile(self) -> str:
        return self._data.get('profile', 'release')

    @property
    def upload(self) -> bool:
        return bool(self._data.get('upload', False))

    @property
    def github_release_id(self) -> Optional[str]:
        return self._data.get('github_release_id')

    @property
    def workspace(self) -> Path:
        return Path(self._data.get('workspace', '.'))

    @property
    def python(self) -> str:
        return self._data.get('python', 'python3')

    @property
    def mach(self) -> str:
        return self._data.get('mach', './mach')

    def package_path(self, platform: Platform) -> str:
        """Relative path of the platform's package, with the profile filled in."""
        platform_cfg = self._section('platforms').get(platform.value, {}) or {}
        template = platform_cfg.get('package', DEFAULT_PACKAGES[platform.value])
        return template.format(profile=self.profile)

    # --- WPT ---

    @property
    def wpt_mode(self) -> str:
        return self._section('wpt').get('mode', 'test')

    @property
    def wpt_total_chunks(self) -> int:
        return self._section('wpt').get('total_chunks', 20)

    @property
    def wpt_processes(self) -> int:
        processes = self._section('wpt').get('processes', 'auto')
        if processes == 'auto':
            return os.cpu_count() or 1
        return int(processes)

    @property
    def wpt_timeout_multiplier(self) -> int:
        return self._section('wpt').get('timeout_multiplier', 2)

    # --- Unit tests ---

    @property
    def unit_test_max_attempts(self) -> int:
        return self._section('unit_tests').get('max_attempts', 2)

    @property
    def unit_test_timeout_minutes(self) -> float:
        return self._section('unit_tests').get('timeout_minutes', 20)

    # --- Execution ---

    @property
    def max_workers(self) -> int:
        return self._section('execution').get('max_workers', 4)

    # --- Output paths ---

    @property
    def base_dir(self) -> Path:
        return Path(self._section('output').get('base_dir', 'ci-output'))

    @property
    def artifacts_dir(self) -> Path:
        return self.base_dir / self._section('output').get('artifacts_dir', 'artifacts')

    @property
    def logs_dir(self) -> Path:
        return self.base_dir / self._section('output').get('logs_dir', 'logs')

    @property
    def jobs_dir(self) -> Path:
        return self.base_dir / self._section('output').get('jobs_dir', 'jobs')

    @property
    def reports_dir(self) -> Path:
        return self.base_dir / self._section('output').get('reports_dir', 'reports')

    @property
    def results_file(self) -> Path:
        return self.base_dir / self._section('output').get('results_file', 'results.json')
