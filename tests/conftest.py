"""Shared pytest fixtures for backfill tests."""

from __future__ import annotations

import dataclasses
import pathlib
import typing as typ

import pygit2
import pytest

from tests.helpers.github import FakeGithub, sync_runner


@dataclasses.dataclass(slots=True)
class GitRepo:
    """Expose repository handle and path for tests."""

    repository: pygit2.Repository
    path: pathlib.Path

    def commit_file(self, relative_path: str, contents: str) -> pathlib.Path:
        """Write, stage and commit a file relative to the repository root."""
        target = self.path / relative_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(contents, encoding="utf-8")

        index = self.repository.index
        index.add(relative_path)
        index.write()
        tree_oid = index.write_tree()
        signature = pygit2.Signature("Test User", "test@example.com")
        self.repository.create_commit(
            "HEAD",
            signature,
            signature,
            f"add {relative_path}",
            tree_oid,
            [self.repository.head.target],
        )
        return target


@pytest.fixture
def git_repo(tmp_path: pathlib.Path) -> GitRepo:
    """Initialise a git repository with an initial commit for testing."""
    repo_path = pathlib.Path(tmp_path, "repo")
    repo_path.mkdir()
    repository = pygit2.init_repository(str(repo_path), initial_head="main")

    config = repository.config
    config["user.name"] = "Test User"
    config["user.email"] = "test@example.com"

    seed_file = repo_path / "README.md"
    seed_file.write_text("seed\n", encoding="utf-8")

    index = repository.index
    index.add("README.md")
    index.write()
    tree_oid = index.write_tree()

    signature = pygit2.Signature("Test User", "test@example.com")
    repository.create_commit(
        "refs/heads/main",
        signature,
        signature,
        "initial commit",
        tree_oid,
        [],
    )

    repository.set_head("refs/heads/main")

    return GitRepo(repository=repository, path=repo_path)


@pytest.fixture
def runner() -> typ.Callable[[typ.Callable[[], typ.Any]], typ.Awaitable[typ.Any]]:
    """Run blocking calls inline so tests stay deterministic."""
    return sync_runner


@pytest.fixture
def fake_github() -> FakeGithub:
    """Return an empty fake organization named ``acme``."""
    return FakeGithub(org="acme")
