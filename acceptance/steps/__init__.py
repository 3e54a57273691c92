"""Step vocabularies registered with every run."""

from acceptance.steps import cli, cluster, crypto, git, httpstub

DEFAULT_PROVIDERS = (cli, crypto, git, httpstub, cluster)

__all__ = ["DEFAULT_PROVIDERS"]
