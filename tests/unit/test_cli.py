"""Tests for the backfill command line entry points."""

from __future__ import annotations

import datetime as dt
import json
import typing as typ

import pytest

from backfill import cli
from tests.helpers.github import FakeGithub, FakeRepository, teams

if typ.TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep the user's config and credentials out of CLI runs."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("GITHUB_TOKEN", "t0ken")
    monkeypatch.delenv("BACKFILL_ORG", raising=False)


@pytest.fixture
def org() -> FakeGithub:
    """Serve one active repository and one that is quiet."""
    recent = dt.datetime.now(dt.UTC) - dt.timedelta(days=3)
    github = FakeGithub(org="acme")
    github.add(FakeRepository(name="api", teams=teams("infra:push"), commits=(recent,)))
    github.add(FakeRepository(name="quiet", teams=teams("infra:push")))
    return github


@pytest.fixture
def client_factory(
    monkeypatch: pytest.MonkeyPatch, org: FakeGithub
) -> list[tuple[object, str]]:
    """Replace the real client with the fake organization."""
    built: list[tuple[object, str]] = []

    def build(config: object, token: str) -> FakeGithub:
        built.append((config, token))
        return org

    monkeypatch.setattr(cli, "_build_client", build)
    return built


def test_generate_writes_entries(
    tmp_path: Path,
    client_factory: list[tuple[object, str]],
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Generate writes active repositories and prints a summary."""
    store_root = tmp_path / "repos"

    exit_code = cli.main(
        ["generate", "--org", "acme", "--store-root", str(store_root)]
    )

    assert exit_code == 0
    assert (store_root / "acme" / "api.yaml").exists()
    assert not (store_root / "acme" / "quiet.yaml").exists()
    assert "Written 1 repo(s)" in capsys.readouterr().out
    assert client_factory[0][1] == "t0ken"


def test_fetch_then_generate_from_snapshot(
    tmp_path: Path,
    client_factory: list[tuple[object, str]],
    capsys: pytest.CaptureFixture[str],
) -> None:
    """A fetched snapshot feeds a later generate run."""
    snapshot = tmp_path / "repos.json"

    assert cli.main(["fetch", "--org", "acme", "--output", str(snapshot)]) == 0
    names = [item["name"] for item in json.loads(snapshot.read_text(encoding="utf-8"))]
    assert sorted(names) == ["api", "quiet"]
    assert "wrote 2 repo(s)" in capsys.readouterr().out

    store_root = tmp_path / "repos"
    exit_code = cli.main(
        [
            "generate",
            "--org",
            "acme",
            "--store-root",
            str(store_root),
            "--snapshot",
            str(snapshot),
        ]
    )

    assert exit_code == 0
    assert (store_root / "acme" / "api.yaml").exists()


def test_missing_org_is_reported(
    client_factory: list[tuple[object, str]],
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Configuration errors become a non-zero exit with a message."""
    exit_code = cli.main(["generate"])

    assert exit_code == 1
    assert capsys.readouterr().out.startswith("backfill: No organization configured")
    assert client_factory == []


def test_missing_token_is_reported(
    monkeypatch: pytest.MonkeyPatch,
    client_factory: list[tuple[object, str]],
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Without a token the run stops before any request."""
    monkeypatch.delenv("GITHUB_TOKEN")

    assert cli.main(["generate", "--org", "acme"]) == 1
    assert "GITHUB_TOKEN" in capsys.readouterr().out
    assert client_factory == []


def test_org_can_come_from_config_file(
    tmp_path: Path,
    client_factory: list[tuple[object, str]],
) -> None:
    """The config file supplies the organization and store root."""
    store_root = tmp_path / "policies"
    config_path = tmp_path / "backfill.yaml"
    config_path.write_text(
        f"org: acme\nstore_root: {store_root}\nexclude:\n  - api\n",
        encoding="utf-8",
    )

    assert cli.main(["generate", "--config", str(config_path)]) == 0
    assert not (store_root / "acme" / "api.yaml").exists()
