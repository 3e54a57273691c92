"""Unit tests for the cluster namespace steps."""

import subprocess
from typing import Any

import pytest

from acceptance.core.config import RunOptions
from acceptance.core.context import ScenarioContext
from acceptance.core.environment import TestEnvironment
from acceptance.core.errors import SuiteSetupError
from acceptance.core.hooks import SuiteContext
from acceptance.steps import cluster


class FakeKubectl:
    """Replaces ``subprocess.run`` and answers kubectl invocations."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.failing: set[str] = set()

    def __call__(self, argv: list[str], **kwargs: Any) -> subprocess.CompletedProcess:
        self.calls.append(argv)
        verb = argv[3]
        if verb in self.failing:
            return subprocess.CompletedProcess(argv, 1, "", f"error: {verb} failed")
        if verb == "config":
            return subprocess.CompletedProcess(argv, 0, "https://cluster.example:6443", "")
        return subprocess.CompletedProcess(argv, 0, "", "")

    def verbs(self) -> list[str]:
        return [call[3] for call in self.calls]


@pytest.fixture
def kubectl(monkeypatch: pytest.MonkeyPatch) -> FakeKubectl:
    fake = FakeKubectl()
    monkeypatch.setattr(cluster.subprocess, "run", fake)
    return fake


class TestConnect:
    """Test the run-once cluster connectivity check."""

    def test_without_kubeconfig_binds_none(self, options: RunOptions, kubectl: FakeKubectl) -> None:
        """Test no kubeconfig means cluster steps are unavailable, not broken."""
        suite = SuiteContext(options, TestEnvironment())

        cluster.connect(suite)

        assert suite.env.get(cluster.CLUSTER) is None
        assert kubectl.calls == []

    def test_with_kubeconfig_checks_cluster(
        self, options: RunOptions, kubectl: FakeKubectl, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test the cluster is checked once and bound for all scenarios."""
        monkeypatch.setenv("KUBECONFIG", "/tmp/kubeconfig")
        suite = SuiteContext(options, TestEnvironment())
        cluster.initialize_suite(suite)

        suite.setup()

        connection = suite.env.get(cluster.CLUSTER)
        assert connection == cluster.Cluster("/tmp/kubeconfig", "https://cluster.example:6443")
        assert kubectl.verbs() == ["config", "cluster-info"]

    def test_unreachable_cluster_fails_suite(
        self, options: RunOptions, kubectl: FakeKubectl, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test a failing connectivity check is fatal to the run."""
        monkeypatch.setenv("KUBECONFIG", "/tmp/kubeconfig")
        kubectl.failing.add("cluster-info")
        suite = SuiteContext(options, TestEnvironment())
        cluster.initialize_suite(suite)

        with pytest.raises(SuiteSetupError, match="cluster-info failed"):
            suite.setup()


class TestNamespaceSteps:
    """Test per-scenario namespaces."""

    @pytest.fixture
    def connected(self, scenario_context: ScenarioContext) -> ScenarioContext:
        scenario_context.env.set(cluster.CLUSTER, cluster.Cluster("/tmp/kubeconfig", "https://c:6443"))
        return scenario_context

    def test_namespace_names_are_valid_and_unique(self) -> None:
        """Test names are DNS labels derived from the scenario name."""
        first = cluster.namespace_name("Validate image: strict policy!")
        second = cluster.namespace_name("Validate image: strict policy!")

        assert first.startswith("acc-validate-image-strict-policy-")
        assert first != second
        assert len(first) <= 63

    def test_no_cluster_fails_step(self, scenario_context: ScenarioContext, kubectl: FakeKubectl) -> None:
        """Test cluster steps fail clearly without a cluster."""
        scenario_context.env.set(cluster.CLUSTER, None)

        with pytest.raises(AssertionError, match="KUBECONFIG"):
            cluster.create_namespace(scenario_context)

    def test_namespace_created_and_deleted(self, connected: ScenarioContext, kubectl: FakeKubectl) -> None:
        """Test the namespace is created and deleted with the scenario."""
        cluster.create_namespace(connected)
        namespace = connected.env.get(cluster.NAMESPACE)

        connected.text = "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: policy\n"
        cluster.apply_manifest(connected)
        cluster.resource_should_exist(connected, "configmap", "policy")
        connected.env.close()

        assert kubectl.verbs() == ["create", "apply", "get", "delete"]
        assert kubectl.calls[0][-1] == namespace.name
        assert kubectl.calls[-1][5] == namespace.name

    def test_missing_resource_fails(self, connected: ScenarioContext, kubectl: FakeKubectl) -> None:
        """Test a resource lookup failure fails the step."""
        cluster.create_namespace(connected)
        kubectl.failing.add("get")

        with pytest.raises(RuntimeError, match="get failed"):
            cluster.resource_should_exist(connected, "deployment", "ec")

    def test_persisted_namespace_is_verified_on_restore(self, kubectl: FakeKubectl) -> None:
        """Test restoring checks the namespace still exists."""
        namespace = cluster.Namespace("acc-x-1234", cluster.Cluster("/tmp/kubeconfig", "https://c:6443"))
        codec = cluster.NAMESPACE.codec

        assert codec.load(codec.dump(namespace)) == namespace
        assert kubectl.verbs() == ["get"]
