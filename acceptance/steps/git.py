"""Steps creating local git repositories with content."""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from acceptance.core.context import ScenarioContext
from acceptance.core.environment import Codec, Key
from acceptance.core.registry import StepCollector

logger = logging.getLogger(__name__)

NAME = "git"

GIT_IDENTITY = ["-c", "user.name=acceptance", "-c", "user.email=acceptance@example.com"]


def run_git(path: Path, *args: str) -> str:
    """Run a git command inside ``path`` and return its stdout.

    Raises
    ------
    RuntimeError
        If git exits with a non-zero status
    """
    result = subprocess.run(
        ["git", *GIT_IDENTITY, *args],
        cwd=path,
        capture_output=True,
        text=True,
        timeout=60,
    )
    if result.returncode != 0:
        raise RuntimeError(f"git {' '.join(args)} failed: {result.stderr.strip()}")
    return result.stdout


@dataclass(frozen=True)
class Repository:
    """A local repository created for one scenario."""

    name: str
    path: Path
    commit: str

    @property
    def url(self) -> str:
        return f"git+file://{self.path}"

    def remove(self) -> None:
        shutil.rmtree(self.path, ignore_errors=True)
        logger.debug("Removed repository %s at %s", self.name, self.path)


@dataclass(frozen=True)
class Repositories:
    """Repositories bound in a scenario, by name."""

    by_name: dict[str, Repository] = field(default_factory=dict)

    def with_repository(self, repository: Repository) -> Repositories:
        return Repositories({**self.by_name, repository.name: repository})

    def get(self, name: str) -> Repository:
        if name not in self.by_name:
            raise AssertionError(f"no git repository named '{name}', known: {sorted(self.by_name)}")
        return self.by_name[name]

    def as_variables(self) -> dict[str, str]:
        variables = {}
        for name, repository in self.by_name.items():
            prefix = name.upper().replace("-", "_")
            variables[f"GIT_{prefix}_URL"] = repository.url
            variables[f"GIT_{prefix}_PATH"] = str(repository.path)
        return variables


def create_repository(name: str, files: dict[str, str]) -> Repository:
    """Initialize a repository holding ``files`` in a single commit."""
    path = Path(tempfile.mkdtemp(prefix=f"acceptance-git-{name}-"))
    try:
        run_git(path, "init", "--quiet", "--initial-branch=main")
        for relative, content in files.items():
            target = path / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        run_git(path, "add", "--all")
        run_git(path, "commit", "--quiet", "--allow-empty", "-m", f"Initial content of {name}")
        commit = run_git(path, "rev-parse", "HEAD").strip()
    except Exception:
        shutil.rmtree(path, ignore_errors=True)
        raise

    return Repository(name=name, path=path, commit=commit)


def _dump(repositories: Repositories) -> dict[str, Any]:
    return {
        name: {"path": str(r.path), "commit": r.commit}
        for name, r in repositories.by_name.items()
    }


def _load(payload: dict[str, Any]) -> Repositories:
    by_name = {}
    for name, data in payload.items():
        path = Path(data["path"])
        if not (path / ".git").is_dir():
            raise FileNotFoundError(f"persisted repository {path} no longer exists")
        by_name[name] = Repository(name=name, path=path, commit=data["commit"])
    return Repositories(by_name)


REPOSITORIES = Key(
    "git.repositories",
    owner=NAME,
    codec=Codec(dump=_dump, load=_load),
    type=Repositories,
)

KEYS = (REPOSITORIES,)


def git_repository_with_files(context: ScenarioContext, name: str) -> None:
    files: dict[str, str] = {}
    if context.table is not None:
        for row in context.table:
            files[row["path"]] = row["content"]

    repository = create_repository(name, files)
    repositories: Repositories = context.env.get(REPOSITORIES, Repositories())
    context.env.set(REPOSITORIES, repositories.with_repository(repository))
    context.env.resources.register(REPOSITORIES.name, repository, Repository.remove, owner=NAME)
    context.logger.logf("Created git repository %s at %s (%s)", name, repository.path, repository.commit[:8])


def repository_should_contain(context: ScenarioContext, name: str, path: str) -> None:
    repository = context.env.get(REPOSITORIES).get(name)
    tracked = run_git(repository.path, "ls-files").splitlines()
    assert path in tracked, f"'{path}' is not tracked in {name}: {tracked}"


def add_steps_to(steps: StepCollector) -> None:
    steps.given('a git repository named "{name}" with files', git_repository_with_files)
    steps.given('an empty git repository named "{name}"', git_repository_with_files)
    steps.then(
        'the git repository "{name}" should contain "{path}"',
        repository_should_contain,
        requires=(REPOSITORIES,),
    )
