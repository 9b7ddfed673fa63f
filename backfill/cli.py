"""Command line entry points for the backfill tooling."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from cyclopts import App

from .config import BackfillConfig, load_config, resolve_token
from .errors import BackfillError
from .github import GithubClient
from .pipeline import PipelineOptions, fetch_records, run_pipeline
from .snapshot import read_snapshot, write_snapshot
from .store import PolicyStore

_logger = logging.getLogger(__name__)

app = App(help="Backfill access policy entries from a GitHub organization.")

DEFAULT_SNAPSHOT_PATH = Path("repos.json")
LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def _configure_logging(*, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )


def _resolve_config(
    config: Path | None,
    *,
    org: str | None,
    store_root: Path | None = None,
    activity_window_days: int | None = None,
    max_concurrency: int | None = None,
) -> BackfillConfig:
    return load_config(config).with_overrides(
        org=org,
        store_root=store_root,
        activity_window_days=activity_window_days,
        max_concurrency=max_concurrency,
    )


def _build_client(config: BackfillConfig, token: str) -> GithubClient:
    return GithubClient(
        token=token,
        api_url=config.api_url,
        timeout=config.timeout,
        per_page=config.per_page,
        max_retries=config.max_retries,
    )


@app.command()
def fetch(
    *,
    org: str | None = None,
    output: Path = DEFAULT_SNAPSHOT_PATH,
    config: Path | None = None,
    github_token: str | None = None,
    verbose: bool = False,
) -> int:
    """Fetch every repository's access data and save it as a JSON snapshot."""
    _configure_logging(verbose=verbose)
    settings = _resolve_config(config, org=org)
    options = PipelineOptions.from_config(settings)
    client = _build_client(settings, resolve_token(github_token))

    outcomes = asyncio.run(fetch_records(client, options))
    records = []
    for outcome in outcomes:
        if outcome.ok and outcome.value is not None:
            records.append(outcome.value)
        else:
            _logger.warning("Cannot download repo %s: %s", outcome.name, outcome.error)
    path = write_snapshot(records, output)
    print(f"wrote {len(records)} repo(s) to {path}")
    return 0


@app.command()
def generate(
    *,
    org: str | None = None,
    store_root: Path | None = None,
    snapshot: Path | None = None,
    config: Path | None = None,
    github_token: str | None = None,
    activity_window_days: int | None = None,
    max_concurrency: int | None = None,
    verbose: bool = False,
) -> int:
    """Write policy entries for active repositories that are not yet managed."""
    _configure_logging(verbose=verbose)
    settings = _resolve_config(
        config,
        org=org,
        store_root=store_root,
        activity_window_days=activity_window_days,
        max_concurrency=max_concurrency,
    )
    options = PipelineOptions.from_config(settings)
    client = _build_client(settings, resolve_token(github_token))
    store = PolicyStore(settings.store_root, options.org)
    records = read_snapshot(snapshot) if snapshot is not None else None

    report = asyncio.run(run_pipeline(client, store, options, records=records))
    print(report.render())
    return 0


def main(argv: list[str] | tuple[str, ...] | None = None) -> int:
    """Entry point for the backfill CLI."""
    try:
        result = app(argv)
    except BackfillError as error:
        print(f"backfill: {error}")
        return 1
    return int(result or 0)


if __name__ == "__main__":
    raise SystemExit(main())
