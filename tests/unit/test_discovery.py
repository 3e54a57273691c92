"""Unit tests for feature discovery, tag filtering and ordering."""

from pathlib import Path

import pytest

from acceptance.core.discovery import (
    discover_feature_files,
    filter_by_tags,
    load_scenarios,
    order_scenarios,
    plan_run,
)
from acceptance.core.errors import ConfigurationError

SIGNING = """
@signing
Feature: Image signing

  Background:
    Given a key pair named "signer"

  Scenario: Sign an image
    When "image" is signed with the key "signer"

  @slow
  Scenario: Sign a large image
    When "large image" is signed with the key "signer"
"""

POLICY = """
Feature: Policy evaluation

  @policy
  Scenario Outline: Evaluate <name>
    Given the value is "<name>"

    Examples:
      | name    |
      | minimal |
      | strict  |
"""


class TestDiscovery:
    """Test locating and parsing feature files."""

    def test_missing_directory_is_fatal(self, tmp_path: Path) -> None:
        """Test a non-existent features directory is a configuration error."""
        with pytest.raises(ConfigurationError, match="not found"):
            discover_feature_files(tmp_path / "missing")

    def test_empty_directory_is_fatal(self, features_dir: Path) -> None:
        """Test zero feature files is a configuration error."""
        (features_dir / "README.md").write_text("not a feature")

        with pytest.raises(ConfigurationError, match="No feature files"):
            discover_feature_files(features_dir)

    def test_files_are_sorted(self, features_dir: Path, write_feature) -> None:
        """Test discovery order is deterministic."""
        write_feature("b.feature", POLICY)
        write_feature("a.feature", SIGNING)

        files = discover_feature_files(features_dir)

        assert [f.name for f in files] == ["a.feature", "b.feature"]

    def test_scenarios_carry_identity_and_tags(self, features_dir: Path, write_feature) -> None:
        """Test scenario handles expose identity, feature and effective tags."""
        path = write_feature("signing.feature", SIGNING)

        scenarios = load_scenarios([path], features_dir)

        assert [s.identity for s in scenarios] == [
            "signing.feature:Sign an image",
            "signing.feature:Sign a large image",
        ]
        assert scenarios[0].feature == "Image signing"
        assert scenarios[0].tags == ("signing",)
        assert scenarios[1].tags == ("signing", "slow")

    def test_background_steps_come_first(self, features_dir: Path, write_feature) -> None:
        """Test a scenario's steps include its background."""
        path = write_feature("signing.feature", SIGNING)

        scenario = load_scenarios([path], features_dir)[0]

        assert [s.name for s in scenario.steps] == [
            'a key pair named "signer"',
            '"image" is signed with the key "signer"',
        ]

    def test_outline_expands_examples(self, features_dir: Path, write_feature) -> None:
        """Test each example row becomes its own scenario."""
        path = write_feature("policy.feature", POLICY)

        scenarios = load_scenarios([path], features_dir)

        assert len(scenarios) == 2
        assert len({s.identity for s in scenarios}) == 2
        assert all("policy" in s.tags for s in scenarios)

    def test_duplicate_names_get_distinct_identities(self, features_dir: Path, write_feature) -> None:
        """Test scenarios sharing a name in one file stay distinguishable."""
        path = write_feature(
            "dup.feature",
            """
            Feature: Duplicates

              Scenario: Same
                Given the value is "a"

              Scenario: Same
                Given the value is "b"
            """,
        )

        scenarios = load_scenarios([path], features_dir)

        assert [s.identity for s in scenarios] == ["dup.feature:Same", "dup.feature:Same#2"]

    def test_parse_error_is_fatal(self, features_dir: Path, write_feature) -> None:
        """Test an unparseable feature file is a configuration error."""
        path = write_feature("broken.feature", "Scenario without a feature\n  Given nothing\n")

        with pytest.raises(ConfigurationError, match="broken.feature"):
            load_scenarios([path], features_dir)

    def test_undecodable_feature_is_fatal(self, features_dir: Path) -> None:
        """Test a feature file that is not UTF-8 is a configuration error."""
        path = features_dir / "binary.feature"
        path.write_bytes(b"Feature: \xff\xfe\n")

        with pytest.raises(ConfigurationError, match="binary.feature"):
            load_scenarios([path], features_dir)


class TestTagFiltering:
    """Test cucumber tag expression selection."""

    @pytest.fixture
    def scenarios(self, features_dir: Path, write_feature) -> list:
        return load_scenarios(
            [write_feature("signing.feature", SIGNING), write_feature("policy.feature", POLICY)],
            features_dir,
        )

    def test_empty_expression_selects_all(self, scenarios: list) -> None:
        """Test no expression keeps every scenario."""
        assert filter_by_tags(scenarios, "") == scenarios
        assert filter_by_tags(scenarios, "   ") == scenarios

    def test_expression_selects_matching(self, scenarios: list) -> None:
        """Test a boolean expression over effective tags."""
        selected = filter_by_tags(scenarios, "@signing and not @slow")

        assert [s.name for s in selected] == ["Sign an image"]

    def test_or_expression(self, scenarios: list) -> None:
        """Test alternatives select from several features."""
        selected = filter_by_tags(scenarios, "@slow or @policy")

        assert len(selected) == 3

    def test_invalid_expression_is_fatal(self, scenarios: list) -> None:
        """Test a malformed expression is a configuration error."""
        with pytest.raises(ConfigurationError, match="Invalid tag expression"):
            filter_by_tags(scenarios, "@signing and (")


class TestOrdering:
    """Test seeded shuffling of the scenario list."""

    def test_no_seed_keeps_discovery_order(self) -> None:
        """Test order is unchanged without a seed."""
        ordered, seed = order_scenarios(list(range(10)), None)

        assert ordered == list(range(10))
        assert seed is None

    def test_same_seed_same_order(self) -> None:
        """Test a seed reproduces the same order."""
        first, _ = order_scenarios(list(range(50)), 42)
        second, _ = order_scenarios(list(range(50)), 42)

        assert first == second
        assert sorted(first) == list(range(50))
        assert first != list(range(50))

    def test_random_seed_is_reported(self) -> None:
        """Test -1 picks a seed that reproduces the order."""
        ordered, seed = order_scenarios(list(range(50)), -1)

        assert seed is not None and seed > 0
        assert order_scenarios(list(range(50)), seed)[0] == ordered

    def test_plan_run_combines_steps(self, features_dir: Path, write_feature) -> None:
        """Test planning discovers, filters and orders."""
        write_feature("signing.feature", SIGNING)
        write_feature("policy.feature", POLICY)

        plan = plan_run(features_dir, tags="@signing", seed=7)

        assert plan.seed == 7
        assert len(plan.feature_files) == 2
        assert {s.name for s in plan.scenarios} == {"Sign an image", "Sign a large image"}
