"""
Configuration file support for the compdiff CLI.

Supports YAML and JSON config files with CLI argument override.

Example config (YAML):

    counts: data/counts.csv
    metadata: data/metadata.csv
    condition_col: group
    output: results/run1
    sampling:
      mc_samples: 256
      denom: iqlr
      gamma: 0.5
      seed: 42
    test:
      bayes_est: true
      paired: false
      workers: 4
"""

import json
from argparse import Namespace
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


@dataclass
class SamplingConfig:
    """Dirichlet Monte Carlo sampling configuration."""
    mc_samples: int = 128
    denom: str = "all"
    gamma: Optional[float] = None
    seed: Optional[int] = None


@dataclass
class TestingConfig:
    """Per-instance test configuration."""
    bayes_est: bool = False
    paired: bool = False
    workers: int = 1
    hist_plot: bool = False


@dataclass
class ConfigSchema:
    """
    Complete configuration schema for the compdiff ttest command.

    Mirrors the CLI argument structure for consistency.
    """
    counts: Optional[Path] = None
    metadata: Optional[Path] = None
    output: Optional[Path] = None
    condition_col: str = "condition"
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    test: TestingConfig = field(default_factory=TestingConfig)


# config key -> argparse dest, per section
_TOP_LEVEL = {
    'counts': 'counts',
    'metadata': 'metadata',
    'output': 'output',
    'condition_col': 'condition_col',
}
_SAMPLING = {
    'mc_samples': 'mc_samples',
    'denom': 'denom',
    'gamma': 'gamma',
    'seed': 'seed',
}
_TEST = {
    'bayes_est': 'bayes',
    'paired': 'paired',
    'workers': 'workers',
    'hist_plot': 'hist_plot',
}
_PATH_ARGS = ('counts', 'metadata', 'output')
_SHORT_TO_LONG = {
    'c': 'counts',
    'm': 'metadata',
    'o': 'output',
    'j': 'workers',
    'v': 'verbose',
}


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Parameters:
        config_path: Path to config file (.yaml, .yml, or .json)

    Returns:
        Dictionary with configuration values

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If file format is unsupported or invalid

    Examples:
        >>> config = load_config(Path("run.yaml"))
        >>> print(config['sampling']['mc_samples'])
        256
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()

    try:
        with open(config_path, 'r') as f:
            if suffix in ('.yaml', '.yml'):
                config = yaml.safe_load(f)
            elif suffix == '.json':
                config = json.load(f)
            else:
                raise ValueError(
                    f"Unsupported config format: {suffix}. "
                    f"Use .yaml, .yml, or .json"
                )
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file: {e}")
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file: {e}")

    if config is None:
        return {}

    if not isinstance(config, dict):
        raise ValueError("Config file must contain a dictionary/mapping at top level")

    _check_keys(config, ConfigSchema, "top level")
    for section, schema in (('sampling', SamplingConfig), ('test', TestingConfig)):
        if config.get(section) is None:
            continue
        if not isinstance(config[section], dict):
            raise ValueError(f"Config section '{section}' must be a mapping")
        _check_keys(config[section], schema, f"section '{section}'")

    return config


def _check_keys(section: Dict[str, Any], schema: type, where: str) -> None:
    known = {f.name for f in fields(schema)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise ValueError(
            f"Unknown config keys at {where}: {unknown}. Known keys: {sorted(known)}"
        )


def _merge_value(cli_value: Any, config_value: Any, was_explicitly_set: bool) -> Any:
    """
    Merge a single config value with CLI argument.

    Rules:
    - CLI args ALWAYS override config if explicitly set
    - If CLI arg not set, use config value
    - If neither set, keep CLI default
    """
    if was_explicitly_set:
        return cli_value
    if config_value is not None:
        return config_value
    return cli_value


def _explicit_args(cli_args: Optional[List[str]]) -> set:
    """Names (argparse dests) of options that appear on the command line."""
    explicit = set()
    for arg in cli_args or []:
        if arg.startswith('--'):
            explicit.add(arg[2:].split('=', 1)[0].replace('-', '_'))
        elif arg.startswith('-') and len(arg) == 2 and arg[1] in _SHORT_TO_LONG:
            explicit.add(_SHORT_TO_LONG[arg[1]])
    # --no-bayes style negations still count as setting the base dest
    for name in list(explicit):
        if name.startswith('no_'):
            explicit.add(name[3:])
    return explicit


def merge_config_with_args(
    config: Dict[str, Any],
    args: Namespace,
    cli_args: Optional[List[str]] = None,
) -> Namespace:
    """
    Merge config file values with CLI arguments.

    Priority (highest to lowest):
    1. Explicitly provided CLI arguments
    2. Config file values
    3. CLI argument defaults

    Parameters:
        config: Configuration dictionary from load_config()
        args: Parsed CLI arguments (argparse.Namespace)
        cli_args: Raw CLI arguments list (for detecting explicit values).
                  If None, assumes all args are defaults

    Returns:
        New Namespace with merged values
    """
    explicit = _explicit_args(cli_args)
    merged = Namespace(**vars(args))

    sections = (
        (config, _TOP_LEVEL),
        (config.get('sampling', {}) or {}, _SAMPLING),
        (config.get('test', {}) or {}, _TEST),
    )
    for section, mapping in sections:
        for config_key, dest in mapping.items():
            if config_key not in section:
                continue
            value = section[config_key]
            if value is not None and dest in _PATH_ARGS:
                value = Path(value)
            setattr(
                merged,
                dest,
                _merge_value(getattr(merged, dest, None), value, dest in explicit),
            )

    return merged
