"""Configuration loading and management for testwarden.

Configuration sources are merged in priority order:
    1. Defaults (defined in InfrastructureConfig / GenerationOptions)
    2. Global config (~/.testwarden.toml)
    3. Project config (./testwarden.toml)
    4. Explicit config file
    5. Environment variables (TESTWARDEN_* prefix)
    6. Keyword overrides

Durations are ``timedelta`` values in Python and plain seconds in TOML files
and environment variables.

Example:
    >>> config = load_config(regression_threshold=20.0)
    >>> config.regression_threshold
    20.0
    >>> config.generation.test_file_naming
    'suffix'
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from datetime import timedelta
from pathlib import Path
from typing import Any, Literal, Optional, get_type_hints

from .exceptions import ConfigurationError, InvalidConfigError

TestingFramework = Literal["testify", "standard"]
MockingFramework = Literal["testify", "gomock", "none"]
TestFileNaming = Literal["suffix", "package", "parallel"]

_FRAMEWORKS = ("testify", "standard")
_MOCKING = ("testify", "gomock", "none")
_NAMING = ("suffix", "package", "parallel")


@dataclass(frozen=True)
class GenerationOptions:
    """Test synthesis options.

    Attributes:
        Test kinds:
            generate_unit_tests: Happy/error/edge cases per function
            generate_integration_tests: Extra case for functions with package dependencies
            generate_benchmark_tests: Benchmarks for complex or "process" functions
            generate_table_driven_tests: Fold a function's cases into one table
            generate_example_tests: Example functions for exported functions

        Coverage:
            target_coverage: Desired coverage percentage reported by the estimator

        Scaffolding:
            generate_mock_dependencies: Mocks for interface-typed parameters
            generate_test_helpers: Constructor helpers for method receivers
            testing_framework: "testify" (assert/require) or "standard"
            mocking_framework: Only "testify" mocks are rendered

        Output:
            test_file_naming: "suffix" (x_test.go), "package" (test_x.go),
                "parallel" (tests/x_test.go)
            include_comments: Emit descriptive comments above cases
            include_todos: Emit TODO markers where assertions are placeholders
    """

    __test__ = False

    generate_unit_tests: bool = True
    generate_integration_tests: bool = False
    generate_benchmark_tests: bool = False
    generate_table_driven_tests: bool = True
    generate_example_tests: bool = False

    target_coverage: float = 80.0
    generate_mock_dependencies: bool = True
    generate_test_helpers: bool = True

    testing_framework: TestingFramework = "testify"
    mocking_framework: MockingFramework = "testify"

    test_file_naming: TestFileNaming = "suffix"
    include_comments: bool = True
    include_todos: bool = False

    analyze_dependencies: bool = True

    def __post_init__(self) -> None:
        """Validate generation options."""
        if not 0.0 <= self.target_coverage <= 100.0:
            raise InvalidConfigError(
                "target_coverage", self.target_coverage, "must be between 0 and 100"
            )
        if self.testing_framework not in _FRAMEWORKS:
            raise InvalidConfigError(
                "testing_framework", self.testing_framework, f"expected one of {_FRAMEWORKS}"
            )
        if self.mocking_framework not in _MOCKING:
            raise InvalidConfigError(
                "mocking_framework", self.mocking_framework, f"expected one of {_MOCKING}"
            )
        if self.test_file_naming not in _NAMING:
            raise InvalidConfigError(
                "test_file_naming", self.test_file_naming, f"expected one of {_NAMING}"
            )


@dataclass(frozen=True)
class InfrastructureConfig:
    """Configuration for the self-maintaining test infrastructure.

    Attributes:
        Core:
            project_root: Root of the Go project (contains go.mod)
            test_directory: Directory for the "parallel" test layout
            maintenance_interval: Cadence of full maintenance cycles
            health_check_interval: Cadence of health snapshots

        Performance thresholds:
            max_test_duration: Average duration above this is critical
            max_suite_duration: Wall time budget for one test-runner call
            max_memory_usage_mb: Tests above this are "memory intensive"
            max_cpu_usage: CPU percent budget (reported only)
            slow_test_threshold: Latest duration above this marks a test slow

        Regression detection:
            enable_regression_detection: Compare snapshots against history
            regression_threshold: Percent degradation that raises an alert
            severity_band_multipliers: Multiples of the threshold that bound
                the low/medium, medium/high and high/critical bands
            performance_history_days: Age limit for snapshots kept for comparison
            baseline_update_frequency: Cadence of baseline recomputation

        Maintenance actions:
            auto_*: Enable each automated action
            apply_changes: Write maintenance changes to disk (otherwise plan only)
            backup_before_changes: Copy files to .testwarden/backups before edits

        Quality gates:
            min_code_coverage, max_failure_rate (percent), max_flaky_test_rate

        Integration:
            continuous_monitoring: Run the periodic maintenance loop
            test_command: Test-runner argv, run from project_root

        Nested:
            generation: Options for test synthesis
    """

    project_root: str = "."
    test_directory: str = "./tests"
    maintenance_interval: timedelta = timedelta(hours=6)
    health_check_interval: timedelta = timedelta(minutes=15)

    max_test_duration: timedelta = timedelta(minutes=5)
    max_suite_duration: timedelta = timedelta(minutes=30)
    max_memory_usage_mb: int = 512
    max_cpu_usage: float = 80.0
    slow_test_threshold: timedelta = timedelta(seconds=1)

    enable_regression_detection: bool = True
    regression_threshold: float = 10.0
    severity_band_multipliers: tuple[float, float, float] = (2.0, 4.0, 8.0)
    performance_history_days: int = 30
    baseline_update_frequency: timedelta = timedelta(hours=24)

    auto_fix_failing_tests: bool = False
    auto_optimize_slow_tests: bool = True
    auto_update_dependencies: bool = False
    auto_cleanup_obsolete_tests: bool = True
    auto_generate_missing_tests: bool = True
    apply_changes: bool = False
    backup_before_changes: bool = True

    min_code_coverage: float = 80.0
    max_failure_rate: float = 5.0
    max_flaky_test_rate: float = 2.0
    require_documentation: bool = True

    continuous_monitoring: bool = True
    test_command: tuple[str, ...] = ("go", "test", "-v", "./...")

    generation: GenerationOptions = field(default_factory=GenerationOptions)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        for name in (
            "maintenance_interval",
            "health_check_interval",
            "max_test_duration",
            "max_suite_duration",
            "slow_test_threshold",
            "baseline_update_frequency",
        ):
            value = getattr(self, name)
            if not isinstance(value, timedelta):
                raise InvalidConfigError(name, value, "must be a timedelta")
            if value <= timedelta(0):
                raise InvalidConfigError(name, value, "must be positive")

        if self.regression_threshold <= 0:
            raise InvalidConfigError(
                "regression_threshold", self.regression_threshold, "must be positive"
            )
        bands = tuple(self.severity_band_multipliers)
        if len(bands) != 3 or not 1.0 <= bands[0] < bands[1] < bands[2]:
            raise InvalidConfigError(
                "severity_band_multipliers", bands, "must be three increasing values >= 1"
            )
        if not 0.0 <= self.max_failure_rate <= 100.0:
            raise InvalidConfigError(
                "max_failure_rate", self.max_failure_rate, "must be between 0 and 100"
            )
        if self.max_memory_usage_mb < 1:
            raise InvalidConfigError(
                "max_memory_usage_mb", self.max_memory_usage_mb, "must be at least 1"
            )
        if self.performance_history_days < 1:
            raise InvalidConfigError(
                "performance_history_days", self.performance_history_days, "must be at least 1"
            )
        if not self.test_command:
            raise InvalidConfigError("test_command", self.test_command, "must not be empty")

    @property
    def root_path(self) -> Path:
        """Resolved project root."""
        return Path(self.project_root).resolve()

    @property
    def max_memory_usage_bytes(self) -> int:
        """Memory budget in bytes."""
        return self.max_memory_usage_mb * 1024 * 1024


_DURATION_FIELDS = {
    f.name for f in fields(InfrastructureConfig) if f.type in ("timedelta", timedelta)
}


def load_config(config_file: Optional[Path] = None, **overrides: Any) -> InfrastructureConfig:
    """Load configuration with auto-discovery and merging.

    Args:
        config_file: Optional explicit config file path
        **overrides: Direct overrides (typically from CLI flags); a
            ``generation`` override may be a dict or a GenerationOptions

    Returns:
        Validated InfrastructureConfig instance

    Raises:
        ConfigurationError: If a config file is missing or invalid
    """
    merged: dict[str, Any] = {}
    generation: dict[str, Any] = {}

    def _merge(values: dict[str, Any]) -> None:
        section = values.pop("generation", None)
        if isinstance(section, dict):
            generation.update(section)
        elif section is not None:
            raise ConfigurationError("[generation] must be a table")
        merged.update(values)

    global_config = Path.home() / ".testwarden.toml"
    if global_config.exists():
        _merge(_read_config_file(global_config))

    project_config = Path.cwd() / "testwarden.toml"
    if project_config.exists():
        _merge(_read_config_file(project_config))

    if config_file is not None:
        if not config_file.exists():
            raise ConfigurationError(f"Config file not found: {config_file}")
        _merge(_read_config_file(config_file))

    env_values, env_generation = _load_env_vars()
    merged.update(env_values)
    generation.update(env_generation)

    override_generation = overrides.pop("generation", None)
    merged.update(overrides)

    for name in _DURATION_FIELDS:
        if name in merged and not isinstance(merged[name], timedelta):
            merged[name] = _coerce_duration(name, merged[name])
    for name in ("severity_band_multipliers", "test_command"):
        if name in merged and isinstance(merged[name], list):
            merged[name] = tuple(merged[name])

    try:
        if isinstance(override_generation, GenerationOptions):
            options = override_generation
        else:
            generation.update(override_generation or {})
            options = GenerationOptions(**generation)
        return InfrastructureConfig(generation=options, **merged)
    except TypeError as e:
        raise ConfigurationError(f"Invalid configuration: {e}")


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        return _load_toml_file(path)
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(f"Invalid config file '{path}': {e}")


def _coerce_duration(name: str, value: Any) -> timedelta:
    """Interpret a number of seconds as a timedelta."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfigError(name, value, "expected a number of seconds")
    return timedelta(seconds=value)


def _load_env_vars() -> tuple[dict[str, Any], dict[str, Any]]:
    """Load configuration from TESTWARDEN_* environment variables.

    Top-level fields use ``TESTWARDEN_<FIELD>``; generation options use
    ``TESTWARDEN_GENERATION_<FIELD>``. Tuple-valued fields are not read
    from the environment.

    Returns:
        (top-level values, generation values)
    """
    return (
        _env_values(InfrastructureConfig, "TESTWARDEN_"),
        _env_values(GenerationOptions, "TESTWARDEN_GENERATION_"),
    )


def _env_values(cls: type, prefix: str) -> dict[str, Any]:
    type_hints = get_type_hints(cls)
    result: dict[str, Any] = {}

    for field_name in cls.__dataclass_fields__:
        env_key = f"{prefix}{field_name.upper()}"
        env_value = os.environ.get(env_key)
        if env_value is None:
            continue

        type_hint = type_hints.get(field_name)
        if type_hint is None:
            continue

        try:
            parsed = _parse_env_value(env_value, type_hint)
        except ValueError as e:
            raise ConfigurationError(f"Invalid {env_key}: {e}")
        if parsed is not None:
            result[field_name] = parsed

    return result


def _parse_env_value(value: str, type_hint: Any) -> Any:
    """Parse an environment variable string to the field's type.

    Returns:
        Parsed value, or None for types that are not settable from the
        environment

    Raises:
        ValueError: If value can't be parsed to the expected type
    """
    origin = getattr(type_hint, "__origin__", None)

    if type_hint is bool:
        lower = value.lower()
        if lower in ("true", "1", "yes", "on"):
            return True
        if lower in ("false", "0", "no", "off"):
            return False
        raise ValueError(f"expected true/false, got '{value}'")

    if type_hint is int:
        return int(value)

    if type_hint is float:
        return float(value)

    if type_hint is timedelta:
        return timedelta(seconds=float(value))

    if type_hint is str or origin is Literal:
        return value

    return None


def _load_toml_file(path: Path) -> dict[str, Any]:
    """Load a TOML file and return the parsed dict."""
    try:
        import tomllib
    except ModuleNotFoundError:
        try:
            import tomli as tomllib  # type: ignore
        except ImportError:
            raise ConfigurationError(
                "TOML support requires Python 3.11+ or 'tomli' package. "
                "Install with: pip install tomli"
            )

    with open(path, "rb") as f:
        return tomllib.load(f)
