"""Steps handing out per-scenario namespaces on a shared cluster.

The cluster itself is shared by all scenarios and checked once per run in
a suite hook; isolation comes from giving every scenario its own
namespace.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
import uuid
from dataclasses import dataclass
from typing import Any

from acceptance.constants import ENV_KUBECONFIG
from acceptance.core.context import ScenarioContext
from acceptance.core.environment import Codec, Key
from acceptance.core.hooks import SuiteContext
from acceptance.core.registry import StepCollector

logger = logging.getLogger(__name__)

NAME = "cluster"

KUBECTL_TIMEOUT_SECONDS = 120


@dataclass(frozen=True)
class Cluster:
    """Connection details of the shared cluster."""

    kubeconfig: str
    server: str = ""


def kubectl(cluster: Cluster, *args: str, input: str | None = None, timeout: float = KUBECTL_TIMEOUT_SECONDS) -> str:
    """Run kubectl against ``cluster`` and return its stdout.

    Raises
    ------
    RuntimeError
        If kubectl exits with a non-zero status
    """
    result = subprocess.run(
        ["kubectl", "--kubeconfig", cluster.kubeconfig, *args],
        input=input,
        capture_output=True,
        text=True,
        timeout=timeout,
    )
    if result.returncode != 0:
        raise RuntimeError(f"kubectl {' '.join(args)} failed: {result.stderr.strip()}")
    return result.stdout


@dataclass(frozen=True)
class Namespace:
    """A namespace owned by one scenario."""

    name: str
    cluster: Cluster

    def delete(self) -> None:
        kubectl(self.cluster, "delete", "namespace", self.name, "--wait=false", "--ignore-not-found")
        logger.debug("Deleted namespace %s", self.name)

    def as_variables(self) -> dict[str, str]:
        return {"NAMESPACE": self.name, "KUBECONFIG": self.cluster.kubeconfig}


def namespace_name(scenario_name: str) -> str:
    """Derive a valid, unique namespace name from a scenario name."""
    base = re.sub(r"[^a-z0-9-]+", "-", scenario_name.lower()).strip("-")[:40].strip("-")
    return f"acc-{base or 'scenario'}-{uuid.uuid4().hex[:8]}"


def _dump(namespace: Namespace) -> dict[str, Any]:
    return {
        "name": namespace.name,
        "kubeconfig": namespace.cluster.kubeconfig,
        "server": namespace.cluster.server,
    }


def _load(payload: dict[str, Any]) -> Namespace:
    cluster = Cluster(kubeconfig=payload["kubeconfig"], server=payload.get("server", ""))
    kubectl(cluster, "get", "namespace", payload["name"], "--output=name")
    return Namespace(name=payload["name"], cluster=cluster)


CLUSTER = Key("cluster.connection", owner=NAME)
NAMESPACE = Key(
    "cluster.namespace",
    owner=NAME,
    codec=Codec(dump=_dump, load=_load),
    type=Namespace,
)

KEYS = (CLUSTER, NAMESPACE)


def connect(suite: SuiteContext) -> None:
    """Check cluster connectivity once and bind the connection for all scenarios.

    Without a kubeconfig the connection is bound to ``None`` so cluster
    steps can tell "no cluster configured" apart from a programming error.
    """
    kubeconfig = os.environ.get(ENV_KUBECONFIG)
    if not kubeconfig:
        logger.info("%s not set, cluster steps are unavailable", ENV_KUBECONFIG)
        suite.env.set(CLUSTER, None)
        return

    cluster = Cluster(kubeconfig=kubeconfig)
    server = kubectl(
        cluster, "config", "view", "--minify", "--output=jsonpath={.clusters[0].cluster.server}"
    ).strip()
    kubectl(cluster, "cluster-info", timeout=suite.options.scenario_timeout)
    suite.env.set(CLUSTER, Cluster(kubeconfig=kubeconfig, server=server))
    logger.info("Connected to cluster %s", server)


def initialize_suite(suite: SuiteContext) -> None:
    suite.before_suite(connect)


def create_namespace(context: ScenarioContext) -> None:
    cluster: Cluster | None = context.env.get(CLUSTER)
    if cluster is None:
        raise AssertionError(f"no cluster configured, set {ENV_KUBECONFIG} to run cluster scenarios")

    if context.env.get(NAMESPACE, None) is not None:
        return

    namespace = Namespace(name=namespace_name(context.scenario.name), cluster=cluster)
    kubectl(cluster, "create", "namespace", namespace.name)
    context.env.own(NAMESPACE, namespace, Namespace.delete)
    context.logger.logf("Created namespace %s", namespace.name)


def apply_manifest(context: ScenarioContext) -> None:
    namespace: Namespace = context.env.get(NAMESPACE)
    output = kubectl(
        namespace.cluster,
        "apply",
        "--namespace",
        namespace.name,
        "--filename=-",
        input=context.text or "",
        timeout=context.options.scenario_timeout,
    )
    context.logger.log(output.strip())


def resource_should_exist(context: ScenarioContext, kind: str, name: str) -> None:
    namespace: Namespace = context.env.get(NAMESPACE)
    kubectl(namespace.cluster, "get", kind, name, "--namespace", namespace.name, "--output=name")


def add_steps_to(steps: StepCollector) -> None:
    steps.given("a cluster namespace", create_namespace, requires=(CLUSTER,))
    steps.when("the manifest is applied to the namespace", apply_manifest, requires=(NAMESPACE,))
    steps.then(
        'the {kind:w} "{name}" should exist in the namespace',
        resource_should_exist,
        requires=(NAMESPACE,),
    )
