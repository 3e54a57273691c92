"""Run configuration: YAML file, CLI overrides and the immutable RunOptions."""

from __future__ import annotations

import copy
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from omegaconf import OmegaConf
from omegaconf.errors import InterpolationResolutionError

from acceptance.constants import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_FEATURES_DIR,
    ENV_CONFIG,
    ENV_JUNIT_REPORT,
    RANDOM_SEED,
    SCENARIO_TIMEOUT_SECONDS,
    STATE_DIR_NAME,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunOptions:
    """Immutable options for one run, passed explicitly to every component.

    Attributes
    ----------
    features_dir : Path
        Directory searched for ``*.feature`` files
    state_dir : Path
        Root directory of persisted environments
    persist : bool
        Persist each scenario's stub environment after it finishes
    restore : bool
        Restore each scenario's environment from the last persisted run
    no_colors : bool
        Disable colored interactive output
    tags : str
        Tag expression selecting scenarios, empty selects all
    seed : int | None
        Shuffle seed, ``None`` keeps discovery order, ``-1`` picks one
    concurrency : int
        Maximum number of scenarios running at the same time
    junit_report : Path | None
        Destination of the JUnit report, if any
    scenario_timeout : float
        Upper bound in seconds for blocking waits inside steps
    verbose : bool
        Log at DEBUG level
    """

    features_dir: Path = field(default_factory=lambda: Path(DEFAULT_FEATURES_DIR).resolve())
    state_dir: Path = field(
        default_factory=lambda: Path(tempfile.gettempdir()) / STATE_DIR_NAME
    )
    persist: bool = False
    restore: bool = False
    no_colors: bool = False
    tags: str = ""
    seed: int | None = None
    concurrency: int = field(default_factory=lambda: os.cpu_count() or 1)
    junit_report: Path | None = None
    scenario_timeout: float = SCENARIO_TIMEOUT_SECONDS
    verbose: bool = False


class ConfigLoader:
    """Load YAML configuration and merge it with defaults and CLI overrides."""

    def __init__(self) -> None:
        self.BUILT_IN_DEFAULTS: dict[str, Any] = {
            "features_dir": DEFAULT_FEATURES_DIR,
            "state_dir": str(Path(tempfile.gettempdir()) / STATE_DIR_NAME),
            "persist": False,
            "restore": False,
            "no_colors": False,
            "tags": "",
            "seed": None,
            "concurrency": None,
            "scenario_timeout": SCENARIO_TIMEOUT_SECONDS,
            "verbose": False,
        }

    def load_config(self, config_path: str | None = None) -> dict[str, Any]:
        """Load configuration from a YAML file.

        Parameters
        ----------
        config_path : str | None
            Path to YAML config file. If None, checks the ACCEPTANCE_CONFIG
            env var, then falls back to acceptance.yaml

        Returns
        -------
        dict[str, Any]
            Parsed configuration with interpolations resolved, empty when
            the file does not exist

        Raises
        ------
        ValueError
            If the file is not valid YAML or variables cannot be resolved
        """
        explicit = config_path is not None or ENV_CONFIG in os.environ
        if config_path is None:
            config_path = os.environ.get(ENV_CONFIG, DEFAULT_CONFIG_FILE)

        config_file = Path(config_path)

        if not config_file.exists():
            if explicit:
                raise ValueError(f"Configuration file not found: {config_file}")
            return {}

        try:
            cfg = OmegaConf.load(config_file)
        except yaml.YAMLError as e:
            logger.error("Failed to parse YAML config file %s: %s", config_file, e)
            raise ValueError(f"Invalid YAML in {config_file}: {e}") from e
        except OSError as e:
            logger.error("Failed to read config file %s: %s", config_file, e)
            raise ValueError(f"Failed to read config file {config_file}: {e}") from e

        if cfg is None:
            return {}

        hoisted: list[str] = []
        if "vars" in cfg:
            vars_dict = OmegaConf.to_container(cfg.vars, resolve=False)
            for key, value in vars_dict.items():
                if key not in cfg:
                    cfg[key] = value
                    hoisted.append(key)

        try:
            config = OmegaConf.to_container(cfg, resolve=True, throw_on_missing=True)
        except InterpolationResolutionError as e:
            logger.error("Failed to resolve configuration variables: %s", e)
            raise ValueError(f"Configuration variable resolution error: {e}") from e

        config.pop("vars", None)
        for key in hoisted:
            config.pop(key, None)
        return config

    def merge(
        self, config: dict[str, Any], overrides: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Merge built-in defaults, file configuration and non-None overrides."""
        merged = copy.deepcopy(self.BUILT_IN_DEFAULTS)

        for key, value in config.items():
            merged[key] = value

        for key, value in (overrides or {}).items():
            if value is not None:
                merged[key] = value

        return merged

    def validate_config(self, config: dict[str, Any]) -> None:
        """Validate merged configuration values.

        Raises
        ------
        ValueError
            If configuration is invalid
        """
        unknown = sorted(set(config) - set(self.BUILT_IN_DEFAULTS) - {"junit_report"})
        if unknown:
            raise ValueError(f"Unknown configuration keys: {unknown}")

        for name in ("persist", "restore", "no_colors", "verbose"):
            if not isinstance(config[name], bool):
                raise ValueError(f"{name} must be a boolean")

        for name in ("features_dir", "state_dir", "tags"):
            if not isinstance(config[name], str):
                raise ValueError(f"{name} must be a string")

        seed = config["seed"]
        if seed is not None:
            if isinstance(seed, bool) or not isinstance(seed, int):
                raise ValueError("seed must be an integer")
            if seed < RANDOM_SEED:
                raise ValueError(f"seed must be >= {RANDOM_SEED}, got {seed}")

        concurrency = config["concurrency"]
        if concurrency is not None:
            if isinstance(concurrency, bool) or not isinstance(concurrency, int):
                raise ValueError("concurrency must be an integer")
            if concurrency < 1:
                raise ValueError(f"concurrency must be at least 1, got {concurrency}")

        timeout = config["scenario_timeout"]
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError("scenario_timeout must be a positive number")

    def build_options(
        self,
        config_path: str | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> RunOptions:
        """Load, merge and validate configuration into ``RunOptions``.

        The JUnit destination is read from the JUNIT_REPORT environment
        variable unless given explicitly in ``overrides``.
        """
        merged = self.merge(self.load_config(config_path), overrides)
        self.validate_config(merged)

        junit_report = merged.get("junit_report") or os.environ.get(ENV_JUNIT_REPORT) or None

        return RunOptions(
            features_dir=Path(merged["features_dir"]).resolve(),
            state_dir=Path(merged["state_dir"]),
            persist=merged["persist"],
            restore=merged["restore"],
            no_colors=merged["no_colors"],
            tags=merged["tags"],
            seed=merged["seed"],
            concurrency=merged["concurrency"] or os.cpu_count() or 1,
            junit_report=Path(junit_report) if junit_report else None,
            scenario_timeout=float(merged["scenario_timeout"]),
            verbose=merged["verbose"],
        )
