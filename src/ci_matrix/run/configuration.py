"""
Run configuration resolution.

The resolver turns a trigger context (which event started the run, which
branch it targets, which manual inputs were given) into the effective
RunConfiguration: the platforms to build, the layout test suites to run and
whether unit tests run.

Example:
    trigger = TriggerContext(TriggerKind.PULL_REQUEST, ref_name='feature',
                             inputs={'platform': 'windows'})
    configuration = resolve(build_resolver_input(trigger))
    print(configuration.to_json())
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union


class ConfigurationError(ValueError):
    """Malformed or contradictory run input, raised before any job launches."""


class Platform(str, Enum):
    LINUX = 'linux'
    WINDOWS = 'windows'
    MACOS = 'macos'


# Expansion order of platform = all
ALL_PLATFORMS: Tuple[Platform, ...] = (Platform.LINUX, Platform.WINDOWS, Platform.MACOS)


class PlatformChoice(str, Enum):
    LINUX = 'linux'
    WINDOWS = 'windows'
    MACOS = 'macos'
    ALL = 'all'

    def expand(self) -> Tuple[Platform, ...]:
        if self is PlatformChoice.ALL:
            return ALL_PLATFORMS
        return (Platform(self.value),)


class Layout(str, Enum):
    NONE = 'none'
    LAYOUT_2013 = '2013'
    LAYOUT_2020 = '2020'
    ALL = 'all'

    def includes(self, variant: 'Layout') -> bool:
        """True if this selection runs the given layout variant's suite."""
        return self is Layout.ALL or self is variant


# Layout variants that have their own WPT suite
LAYOUT_VARIANTS: Tuple[Layout, ...] = (Layout.LAYOUT_2013, Layout.LAYOUT_2020)


class TriggerKind(str, Enum):
    PUSH = 'push'
    PULL_REQUEST = 'pull_request'
    MERGE_GROUP = 'merge_group'
    WORKFLOW_DISPATCH = 'workflow_dispatch'
    WORKFLOW_CALL = 'workflow_call'

    @property
    def forces_full_matrix(self) -> bool:
        return self in (TriggerKind.PUSH, TriggerKind.MERGE_GROUP)


@dataclass(frozen=True)
class RunConfiguration:
    """The resolved execution plan."""
    platforms: Tuple[Platform, ...]
    layout: Layout = Layout.NONE
    unit_tests: bool = False

    def __post_init__(self):
        if not self.platforms:
            raise ConfigurationError("A run configuration needs at least one platform")

    def includes(self, platform: Platform) -> bool:
        return platform in self.platforms

    def to_dict(self) -> Dict[str, Any]:
        return {
            'platforms': [p.value for p in self.platforms],
            'layout': self.layout.value,
            'unit_tests': self.unit_tests,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass(frozen=True)
class Overrides:
    """Explicit configuration choices; None means the field was not given."""
    platform: Optional[PlatformChoice] = None
    layout: Optional[Layout] = None
    unit_tests: Optional[bool] = None


@dataclass(frozen=True)
class TriggerContext:
    """What started the run. Treated as opaque input by the resolver."""
    event: TriggerKind
    ref_name: str = ''
    pull_request: Optional[int] = None
    inputs: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'TriggerContext':
        """
        Build a trigger from an event description.

        Accepts the keys event_name (or event), ref_name, pull_request and
        inputs. Unknown event names raise ConfigurationError.
        """
        event_name = data.get('event_name', data.get('event'))
        if not event_name:
            raise ConfigurationError("Event description has no 'event_name'")
        try:
            event = TriggerKind(event_name)
        except ValueError:
            raise ConfigurationError(
                f"Unknown event '{event_name}'. "
                f"Expected one of: {', '.join(k.value for k in TriggerKind)}"
            ) from None

        pull_request = data.get('pull_request')
        if isinstance(pull_request, Mapping):
            pull_request = pull_request.get('number')
        if pull_request is not None:
            try:
                pull_request = int(pull_request)
            except (TypeError, ValueError):
                raise ConfigurationError(f"Invalid pull request number: {pull_request!r}") from None

        inputs = data.get('inputs') or {}
        if not isinstance(inputs, Mapping):
            raise ConfigurationError("Event 'inputs' must be a mapping")

        return cls(
            event=event,
            ref_name=str(data.get('ref_name', '') or ''),
            pull_request=pull_request,
            inputs=dict(inputs),
        )

    @classmethod
    def from_event_file(cls, path: Union[str, Path]) -> 'TriggerContext':
        """Load a trigger from a JSON event file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Event file not found: {path}")

        with open(path, 'r') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Event file {path} is not valid JSON: {e}") from None

        if not isinstance(data, Mapping):
            raise ConfigurationError(f"Event file {path} must contain a JSON object")
        return cls.from_dict(data)


@dataclass(frozen=True)
class RawInput:
    trigger: TriggerContext
    overrides: Overrides = Overrides()


@dataclass(frozen=True)
class PreResolved:
    configuration: RunConfiguration


ResolverInput = Union[RawInput, PreResolved]


# Values sent when a manual-dispatch input is left blank
_EMPTY = (None, '')

_TRUE_WORDS = {'true', 'yes', '1', 'on'}
_FALSE_WORDS = {'false', 'no', '0', 'off'}


def _parse_bool(value: Any, what: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise ConfigurationError(f"Invalid {what} value: {value!r} (expected a boolean)")


def _parse_enum(enum_cls, value: Any, what: str):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        choices = ', '.join(member.value for member in enum_cls)
        raise ConfigurationError(f"Invalid {what} '{value}'. Expected one of: {choices}") from None


def parse_overrides(
    platform: Any = None,
    layout: Any = None,
    unit_tests: Any = None,
) -> Overrides:
    """
    Validate explicit overrides at the boundary.

    Empty strings and None mean the field was not provided. Anything else
    must be a known value or ConfigurationError is raised.
    """
    return Overrides(
        platform=None if platform in _EMPTY else _parse_enum(PlatformChoice, platform, 'platform'),
        layout=None if layout in _EMPTY else _parse_enum(Layout, layout, 'layout'),
        unit_tests=None if unit_tests in _EMPTY else _parse_bool(unit_tests, 'unit-tests'),
    )


def parse_configuration(payload: Union[str, Mapping[str, Any]]) -> RunConfiguration:
    """
    Validate a pre-resolved configuration object (dict or JSON text).

    Platforms are normalised into the fixed linux, windows, macos order.
    """
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Configuration is not valid JSON: {e}") from None

    if not isinstance(payload, Mapping):
        raise ConfigurationError("Configuration must be a JSON object")

    missing = [key for key in ('platforms', 'layout', 'unit_tests') if key not in payload]
    if missing:
        raise ConfigurationError(f"Configuration is missing: {', '.join(missing)}")

    raw_platforms = payload['platforms']
    if isinstance(raw_platforms, str) or not isinstance(raw_platforms, Iterable):
        raise ConfigurationError("Configuration 'platforms' must be a list")

    platforms = [_parse_enum(Platform, p, 'platform') for p in raw_platforms]
    if not platforms:
        raise ConfigurationError("Configuration 'platforms' must not be empty")
    if len(set(platforms)) != len(platforms):
        raise ConfigurationError("Configuration 'platforms' contains duplicates")

    unit_tests = payload['unit_tests']
    if not isinstance(unit_tests, bool):
        raise ConfigurationError(f"Configuration 'unit_tests' must be a boolean, got {unit_tests!r}")

    return RunConfiguration(
        platforms=tuple(p for p in ALL_PLATFORMS if p in platforms),
        layout=_parse_enum(Layout, payload['layout'], 'layout'),
        unit_tests=unit_tests,
    )


def build_resolver_input(
    trigger: TriggerContext,
    configuration: Optional[Union[str, Mapping[str, Any], RunConfiguration]] = None,
) -> ResolverInput:
    """
    Dispatch at the boundary between the pre-resolved and raw cases.

    A supplied configuration (the reusable-call case) bypasses the policy;
    otherwise the trigger's manual inputs are validated as overrides.
    """
    if isinstance(configuration, RunConfiguration):
        return PreResolved(configuration)
    if configuration not in _EMPTY:
        return PreResolved(parse_configuration(configuration))

    inputs = trigger.inputs
    overrides = parse_overrides(
        platform=inputs.get('platform'),
        layout=inputs.get('layout'),
        unit_tests=inputs.get('unit-tests', inputs.get('unit_tests')),
    )
    return RawInput(trigger=trigger, overrides=overrides)


def resolve(resolver_input: ResolverInput) -> RunConfiguration:
    """
    Compute the effective run configuration. Pure; never raises.

    Direct pushes and merge-queue checks always get the full matrix,
    whatever was asked for.
    """
    if isinstance(resolver_input, PreResolved):
        return resolver_input.configuration

    overrides = resolver_input.overrides
    platform = overrides.platform or PlatformChoice.LINUX
    layout = overrides.layout or Layout.NONE
    unit_tests = bool(overrides.unit_tests)

    if resolver_input.trigger.event.forces_full_matrix:
        platform = PlatformChoice.ALL
        layout = Layout.ALL
        unit_tests = True

    return RunConfiguration(
        platforms=platform.expand(),
        layout=layout,
        unit_tests=unit_tests,
    )
