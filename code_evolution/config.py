"""Configuration for the code evolution engine."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


CONFIG_FILE_NAMES = [
    ".codeevolutionrc.json",
    ".codeevolutionrc",
    "codeevolution.config.json",
]

DETECTOR_KEYS = ["n1-query", "inefficient-loop", "memory-leak", "large-payload"]

DEFAULT_IGNORE = ["**/node_modules/**", "**/dist/**", "**/build/**", "**/.git/**"]

OUTPUT_FORMATS = ["text", "json", "sarif"]

SEVERITY_NAMES = ["low", "medium", "high", "critical"]


class ConfigError(ValueError):
    """Invalid configuration file or value."""


@dataclass
class DataAccessPattern:
    """Project-specific data-access methods for one library family."""
    family: str
    methods: List[str] = field(default_factory=list)


@dataclass
class EvolutionConfig:
    """Tunables of the evolutionary optimizer."""

    enabled: bool = False             # Feature flag; disabled means template output only
    population_size: int = 20
    max_generations: int = 10
    mutation_rate: float = 0.3
    crossover_rate: float = 0.7
    elitism_count: int = 2
    convergence_threshold: float = 0.01
    tournament_size: int = 3
    max_solutions: int = 5            # Evolved solutions kept per issue
    seed: Optional[int] = None        # Fixed seed for reproducible runs
    time_budget_seconds: Optional[float] = None  # Checked between generations only
    max_concurrent_runs: int = 4      # Optimizer runs in flight per file

    def validate(self) -> "EvolutionConfig":
        """Raise ConfigError on out-of-range values."""
        if self.population_size < 1:
            raise ConfigError("population_size must be at least 1")
        if self.max_generations < 1:
            raise ConfigError("max_generations must be at least 1")
        for name in ("mutation_rate", "crossover_rate"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigError(f"{name} must be between 0 and 1, got {value}")
        if self.elitism_count < 0:
            raise ConfigError("elitism_count must not be negative")
        if self.tournament_size < 1:
            raise ConfigError("tournament_size must be at least 1")
        if self.max_concurrent_runs < 1:
            raise ConfigError("max_concurrent_runs must be at least 1")
        return self

    @classmethod
    def from_env(cls, base: Optional["EvolutionConfig"] = None) -> "EvolutionConfig":
        """Create config from EVO_* environment variables, defaulting to `base`."""
        base = base or cls()
        env = os.environ
        try:
            seed = env.get("EVO_SEED")
            budget = env.get("EVO_TIME_BUDGET")
            return cls(
                enabled=env.get("EVO_ENABLE_ALGORITHM", str(base.enabled)).lower() == "true",
                population_size=int(env.get("EVO_POPULATION_SIZE", base.population_size)),
                max_generations=int(env.get("EVO_MAX_GENERATIONS", base.max_generations)),
                mutation_rate=float(env.get("EVO_MUTATION_RATE", base.mutation_rate)),
                crossover_rate=float(env.get("EVO_CROSSOVER_RATE", base.crossover_rate)),
                elitism_count=int(env.get("EVO_ELITISM_COUNT", base.elitism_count)),
                convergence_threshold=float(env.get("EVO_CONVERGENCE_THRESHOLD", base.convergence_threshold)),
                tournament_size=int(env.get("EVO_TOURNAMENT_SIZE", base.tournament_size)),
                max_solutions=base.max_solutions,
                seed=int(seed) if seed else base.seed,
                time_budget_seconds=float(budget) if budget else base.time_budget_seconds,
                max_concurrent_runs=int(env.get("EVO_MAX_CONCURRENT_RUNS", base.max_concurrent_runs)),
            ).validate()
        except ValueError as e:
            if isinstance(e, ConfigError):
                raise
            raise ConfigError(f"Invalid EVO_* environment value: {e}")


@dataclass
class AnalysisConfig:
    """Configuration for one analysis run."""

    # Detector toggles, keyed by DETECTOR_KEYS
    detectors: Dict[str, bool] = field(default_factory=lambda: {k: True for k in DETECTOR_KEYS})

    # Severity filtering
    min_severity: str = "low"         # Issues below this are not reported
    fail_on: Optional[str] = None     # Exit non-zero at or above this severity

    # File selection
    ignore: List[str] = field(default_factory=lambda: list(DEFAULT_IGNORE))

    # Output
    output_format: str = "text"       # text, json, sarif
    output_file: Optional[str] = None

    # Solutions
    generate_solutions: bool = False
    data_access_patterns: List[DataAccessPattern] = field(default_factory=list)
    evolution: EvolutionConfig = field(default_factory=EvolutionConfig)

    # Parallel processing
    concurrency: int = 4              # Files analysed at once

    def is_detector_enabled(self, key: str) -> bool:
        return self.detectors.get(key, True)

    def validate(self) -> "AnalysisConfig":
        for name in (self.min_severity, self.fail_on):
            if name is not None and name not in SEVERITY_NAMES:
                raise ConfigError(f"Unknown severity '{name}'. Expected one of: {', '.join(SEVERITY_NAMES)}")
        if self.output_format not in OUTPUT_FORMATS:
            raise ConfigError(f"Unknown output format '{self.output_format}'")
        unknown = set(self.detectors) - set(DETECTOR_KEYS)
        if unknown:
            raise ConfigError(f"Unknown detector(s): {', '.join(sorted(unknown))}")
        if self.concurrency < 1:
            raise ConfigError("concurrency must be at least 1")
        self.evolution.validate()
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisConfig":
        """Build config from the rc-file schema."""
        config = cls()

        for key, settings in (data.get("detectors") or {}).items():
            if isinstance(settings, bool):
                config.detectors[key] = settings
            elif isinstance(settings, dict):
                config.detectors[key] = bool(settings.get("enabled", True))
                for pattern in settings.get("customPatterns") or []:
                    if isinstance(pattern, dict) and pattern.get("orm"):
                        config.data_access_patterns.append(
                            DataAccessPattern(family=pattern["orm"], methods=list(pattern.get("methods", [])))
                        )
            else:
                raise ConfigError(f"Invalid settings for detector '{key}'")

        if "ignore" in data:
            config.ignore = list(DEFAULT_IGNORE) + list(data["ignore"] or [])

        severity = data.get("severity") or {}
        config.min_severity = severity.get("minReportLevel", config.min_severity)
        config.fail_on = severity.get("failOn", config.fail_on)

        output = data.get("output") or {}
        config.output_format = output.get("format", config.output_format)
        config.output_file = output.get("file", config.output_file)

        for pattern in data.get("dbPatterns") or []:
            if not isinstance(pattern, dict) or "orm" not in pattern:
                raise ConfigError("dbPatterns entries need an 'orm' and a 'methods' list")
            config.data_access_patterns.append(
                DataAccessPattern(family=pattern["orm"], methods=list(pattern.get("methods", [])))
            )

        evolution = data.get("evolution") or {}
        defaults = EvolutionConfig()
        config.evolution = EvolutionConfig(
            enabled=bool(evolution.get("enabled", defaults.enabled)),
            population_size=int(evolution.get("populationSize", defaults.population_size)),
            max_generations=int(evolution.get("maxGenerations", defaults.max_generations)),
            mutation_rate=float(evolution.get("mutationRate", defaults.mutation_rate)),
            crossover_rate=float(evolution.get("crossoverRate", defaults.crossover_rate)),
            elitism_count=int(evolution.get("elitismCount", defaults.elitism_count)),
            convergence_threshold=float(evolution.get("convergenceThreshold", defaults.convergence_threshold)),
            tournament_size=int(evolution.get("tournamentSize", defaults.tournament_size)),
            max_solutions=int(evolution.get("maxSolutions", defaults.max_solutions)),
            seed=evolution.get("seed", defaults.seed),
            time_budget_seconds=evolution.get("timeBudgetSeconds", defaults.time_budget_seconds),
            max_concurrent_runs=int(evolution.get("maxConcurrentRuns", defaults.max_concurrent_runs)),
        )

        config.concurrency = int(data.get("concurrency", config.concurrency))
        return config.validate()

    @classmethod
    def from_file(cls, path: Path) -> "AnalysisConfig":
        """Load a config file, following `extends` chains."""
        return cls.from_dict(load_config_data(Path(path)))

    @classmethod
    def resolve(
        cls,
        start_dir: Optional[Path] = None,
        config_path: Optional[Path] = None,
    ) -> "AnalysisConfig":
        """
        Resolve the configuration for a run.

        Args:
            start_dir: Directory to start the rc-file search from
            config_path: Explicit config file (skips discovery)

        Returns:
            AnalysisConfig with EVO_* environment overrides applied
        """
        path = Path(config_path) if config_path else find_config_file(start_dir or Path.cwd())
        config = cls.from_file(path) if path else cls()
        config.evolution = EvolutionConfig.from_env(config.evolution)
        return config.validate()


def find_config_file(start_dir: Path) -> Optional[Path]:
    """Walk up from `start_dir` to the filesystem root looking for an rc file."""
    current = Path(start_dir).resolve()
    while True:
        for name in CONFIG_FILE_NAMES:
            candidate = current / name
            if candidate.is_file():
                return candidate
        if current.parent == current:
            return None
        current = current.parent


def load_config_data(path: Path, _seen: Optional[List[Path]] = None) -> Dict[str, Any]:
    """Read one rc file and merge its `extends` chain underneath it."""
    seen = _seen or []
    path = path.resolve()
    if path in seen:
        raise ConfigError(f"Circular 'extends' in {path}")

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    parent = data.pop("extends", None)
    if not parent:
        return data
    base = load_config_data(path.parent / parent, seen + [path])
    return merge_config_data(base, data)


def merge_config_data(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge two rc dictionaries; lists and scalars in `override` win."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config_data(merged[key], value)
        else:
            merged[key] = value
    return merged


DEFAULT_CONFIG_DATA: Dict[str, Any] = {
    "detectors": {key: {"enabled": True} for key in DETECTOR_KEYS},
    "ignore": [],
    "severity": {"minReportLevel": "low", "failOn": "critical"},
    "output": {"format": "text"},
    "dbPatterns": [],
    "evolution": {
        "enabled": False,
        "populationSize": 20,
        "maxGenerations": 10,
    },
}
