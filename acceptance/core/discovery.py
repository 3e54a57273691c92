"""Discovery, filtering and ordering of scenarios."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from behave.parser import ParserError, parse_file
from cucumber_tag_expressions import parse as parse_tag_expression
from cucumber_tag_expressions.parser import TagExpressionError

from acceptance.constants import FEATURE_GLOB, RANDOM_SEED
from acceptance.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScenarioRef:
    """Handle to one discovered scenario.

    Attributes
    ----------
    identity : str
        Stable identity, ``<feature file>:<scenario name>``
    name : str
        Scenario display name
    feature : str
        Name of the enclosing feature
    filename : str
        Feature file path relative to the features directory
    line : int
        Line of the scenario declaration
    tags : tuple[str, ...]
        Effective tags without the leading ``@``
    model : Any
        Parsed behave scenario
    """

    identity: str
    name: str
    feature: str
    filename: str
    line: int = 0
    tags: tuple[str, ...] = ()
    model: Any = field(default=None, compare=False, repr=False)

    @property
    def steps(self) -> list[Any]:
        """Background steps followed by the scenario's own steps."""
        if self.model is None:
            return []
        return list(self.model.all_steps)


@dataclass
class RunPlan:
    """Scenarios selected for a run, in execution order."""

    features_dir: Path
    feature_files: list[Path]
    scenarios: list[ScenarioRef]
    seed: int | None = None


def discover_feature_files(features_dir: Path) -> list[Path]:
    """Find feature files directly under ``features_dir``.

    Raises
    ------
    ConfigurationError
        If the directory does not exist or holds no feature files
    """
    features_dir = Path(features_dir)
    if not features_dir.is_dir():
        raise ConfigurationError(f"Features directory not found: {features_dir}")

    files = sorted(features_dir.glob(FEATURE_GLOB))
    logger.info("Found %d feature files in %s", len(files), features_dir)

    if not files:
        raise ConfigurationError(f"No feature files found in {features_dir}")

    return files


def load_scenarios(files: list[Path], features_dir: Path) -> list[ScenarioRef]:
    """Parse feature files into scenario handles in discovery order.

    Scenario outlines are expanded into one scenario per example row.

    Raises
    ------
    ConfigurationError
        If a feature file cannot be read, decoded or parsed
    """
    scenarios: list[ScenarioRef] = []
    seen: dict[str, int] = {}

    for path in files:
        try:
            feature = parse_file(str(path))
        except (ParserError, UnicodeDecodeError, OSError) as e:
            raise ConfigurationError(f"Cannot parse {path}: {e}") from e

        if feature is None:
            logger.warning("Skipping empty feature file %s", path)
            continue

        try:
            relative = str(path.relative_to(features_dir))
        except ValueError:
            relative = str(path)

        for scenario in feature.walk_scenarios():
            identity = f"{relative}:{scenario.name}"
            seen[identity] = seen.get(identity, 0) + 1
            if seen[identity] > 1:
                identity = f"{identity}#{seen[identity]}"

            scenarios.append(
                ScenarioRef(
                    identity=identity,
                    name=scenario.name,
                    feature=feature.name,
                    filename=relative,
                    line=scenario.line,
                    tags=tuple(sorted(str(t) for t in scenario.effective_tags)),
                    model=scenario,
                )
            )

    return scenarios


def filter_by_tags(scenarios: list[ScenarioRef], expression: str) -> list[ScenarioRef]:
    """Keep scenarios whose effective tags satisfy ``expression``.

    ``expression`` uses cucumber tag expression syntax, for example
    ``@policy and not @slow``. An empty expression keeps everything.

    Raises
    ------
    ConfigurationError
        If the expression cannot be parsed
    """
    if not expression or not expression.strip():
        return list(scenarios)

    try:
        tag_expression = parse_tag_expression(expression)
    except TagExpressionError as e:
        raise ConfigurationError(f"Invalid tag expression '{expression}': {e}") from e

    selected = [
        s for s in scenarios if tag_expression.evaluate([f"@{t}" for t in s.tags])
    ]
    logger.debug("Tag expression '%s' selected %d of %d scenarios", expression, len(selected), len(scenarios))
    return selected


def order_scenarios(
    scenarios: list[ScenarioRef], seed: int | None
) -> tuple[list[ScenarioRef], int | None]:
    """Shuffle scenarios deterministically by ``seed``.

    Parameters
    ----------
    scenarios : list[ScenarioRef]
        Scenarios in discovery order
    seed : int | None
        ``None`` keeps discovery order, ``-1`` picks a random seed

    Returns
    -------
    tuple[list[ScenarioRef], int | None]
        Ordered scenarios and the seed actually used
    """
    if seed is None:
        return list(scenarios), None

    if seed == RANDOM_SEED:
        seed = random.SystemRandom().randint(1, 2**31 - 1)

    ordered = list(scenarios)
    random.Random(seed).shuffle(ordered)
    return ordered, seed


def plan_run(features_dir: Path, tags: str = "", seed: int | None = None) -> RunPlan:
    """Discover, filter and order the scenarios of a run."""
    files = discover_feature_files(features_dir)
    scenarios = filter_by_tags(load_scenarios(files, Path(features_dir)), tags)
    ordered, used_seed = order_scenarios(scenarios, seed)
    return RunPlan(
        features_dir=Path(features_dir),
        feature_files=files,
        scenarios=ordered,
        seed=used_seed,
    )
