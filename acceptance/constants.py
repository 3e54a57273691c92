"""Global constants for the acceptance orchestrator."""

SUITE_NAME = "ec-cli"
"""Name of the test suite as it appears in reports."""

FEATURE_GLOB = "*.feature"
"""Glob used to discover scenario specification files."""

DEFAULT_FEATURES_DIR = "features"
"""Directory searched for feature files when none is configured."""

STATE_DIR_NAME = "ec-acceptance"
"""Directory under the system temp dir holding persisted environments."""

SNAPSHOT_FORMAT = "acceptance-snapshot"
"""Marker stored in every persisted snapshot."""

SNAPSHOT_VERSION = 1
"""Snapshot schema version written by this release.

Snapshots with a higher version are rejected as corrupt, lower versions
are read as long as their bindings are understood.
"""

RANDOM_SEED = -1
"""Seed value asking for a randomly chosen (and reported) seed."""

SCENARIO_TIMEOUT_SECONDS = 600
"""Default upper bound for a single step waiting on an external stub."""

ENV_JUNIT_REPORT = "JUNIT_REPORT"
"""Environment variable naming the JUnit report destination."""

ENV_CONFIG = "ACCEPTANCE_CONFIG"
"""Environment variable naming the YAML configuration file."""

ENV_DEBUG = "ACCEPTANCE_DEBUG"
"""Set to 1 to re-raise errors instead of printing friendly messages."""

ENV_KUBECONFIG = "KUBECONFIG"
"""Kubeconfig used by the cluster steps; cluster checks are skipped without it."""

DEFAULT_CONFIG_FILE = "acceptance.yaml"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIGURATION_ERROR = 2
