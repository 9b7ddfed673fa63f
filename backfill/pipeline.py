"""Fetch, filter and emit access policy entries for an organization."""

from __future__ import annotations

import asyncio
import dataclasses
import datetime as dt
import logging
import typing as typ

from .activity import (
    DEFAULT_ACTIVITY_WINDOW_DAYS,
    DEFAULT_COMMIT_PAGE_SIZE,
    ActivityVerdict,
    Exclusion,
    activity_cutoff,
    check_activity,
)
from .assembler import FetchLimits, Runner, assemble_repository, default_runner
from .errors import BackfillError, InstallationMapError, SnapshotError, StoreError
from .installations import build_installation_map
from .models import ActiveRepository, RepositoryOutcome, RepositoryRecord, RunReport
from .render import build_entry

if typ.TYPE_CHECKING:
    from .config import BackfillConfig
    from .github import GithubClient
    from .installations import InstallationMap
    from .models import RepositorySummary
    from .store import PolicyStore

T = typ.TypeVar("T")
S = typ.TypeVar("S")

_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class PipelineOptions:
    """Knobs for a single pipeline run."""

    org: str
    activity_window_days: int = DEFAULT_ACTIVITY_WINDOW_DAYS
    commit_page_size: int = DEFAULT_COMMIT_PAGE_SIZE
    limits: FetchLimits = FetchLimits()
    max_concurrency: int = 8
    exclude: frozenset[str] = frozenset()
    now: dt.datetime | None = None

    @classmethod
    def from_config(cls, config: BackfillConfig) -> PipelineOptions:
        """Derive run options from the process configuration."""
        return cls(
            org=config.require_org(),
            activity_window_days=config.activity_window_days,
            commit_page_size=config.commit_page_size,
            limits=FetchLimits(
                max_protection_rules=config.max_protection_rules,
                max_push_allowances=config.max_push_allowances,
            ),
            max_concurrency=config.max_concurrency,
            exclude=config.exclude,
        )


def order_repositories(
    active: typ.Iterable[ActiveRepository],
) -> list[ActiveRepository]:
    """Sort most recently active first, breaking ties by name."""
    by_name = sorted(active, key=lambda repo: repo.record.name)
    return sorted(by_name, key=lambda repo: repo.last_commit_at, reverse=True)


async def fetch_records(
    client: GithubClient,
    options: PipelineOptions,
    *,
    runner: Runner | None = None,
) -> list[RepositoryOutcome[RepositoryRecord]]:
    """Assemble a record for every repository in the organization.

    Raises :class:`~backfill.errors.InstallationMapError` when the
    installation map cannot be built; no repository is fetched in that case.
    """
    run = runner or default_runner
    summaries = await run(lambda: client.org_repositories(options.org))
    installation_map = await _installation_map(client, options.org, run)

    async def assemble(summary: RepositorySummary) -> RepositoryRecord:
        return await assemble_repository(
            client,
            summary,
            installation_map,
            limits=options.limits,
            runner=run,
        )

    return await _bounded_gather(
        summaries,
        assemble,
        name_of=lambda summary: summary.name,
        limit=options.max_concurrency,
    )


async def run_pipeline(
    client: GithubClient,
    store: PolicyStore,
    options: PipelineOptions,
    *,
    runner: Runner | None = None,
    records: typ.Sequence[RepositoryRecord] | None = None,
) -> RunReport:
    """Generate policy entries for every eligible, unmanaged repository.

    When ``records`` is given (for example from a snapshot) they replace the
    live repository fetch; commit activity is still checked against GitHub.
    """
    run = runner or default_runner
    report = RunReport()
    since = activity_cutoff(options.activity_window_days, now=options.now)

    def check(record: RepositoryRecord) -> ActivityVerdict:
        return check_activity(
            client, record, since=since, per_page=options.commit_page_size
        )

    if records is not None:
        _check_snapshot_org(records, options.org)
        candidates = _gate(
            records, store, options, report, name_of=lambda record: record.name
        )

        async def task(record: RepositoryRecord) -> ActivityVerdict:
            return await run(lambda: check(record))

        outcomes = await _bounded_gather(
            candidates,
            task,
            name_of=lambda record: record.name,
            limit=options.max_concurrency,
        )
    else:
        summaries = await run(lambda: client.org_repositories(options.org))
        pending = _gate(
            summaries, store, options, report, name_of=lambda summary: summary.name
        )
        installation_map = await _installation_map(client, options.org, run)

        async def live_task(summary: RepositorySummary) -> ActivityVerdict:
            return await _fetch_and_check(
                client, summary, installation_map, options, run, check
            )

        outcomes = await _bounded_gather(
            pending,
            live_task,
            name_of=lambda summary: summary.name,
            limit=options.max_concurrency,
        )

    active = _collect_verdicts(outcomes, report)
    for repository in order_repositories(active):
        _emit(store, repository, report)
    return report


def _check_snapshot_org(
    records: typ.Iterable[RepositoryRecord], org: str
) -> None:
    foreign = sorted({record.org for record in records if record.org != org})
    if foreign:
        message = (
            f"Snapshot records belong to {', '.join(foreign)}, not {org}; "
            "fetch a snapshot for this organization."
        )
        raise SnapshotError(message)


async def _installation_map(
    client: GithubClient, org: str, run: Runner
) -> InstallationMap:
    try:
        return await run(lambda: build_installation_map(client, org))
    except InstallationMapError as error:
        _logger.error("Aborting run for %s: %s", org, error)  # noqa: TRY400
        raise


async def _fetch_and_check(
    client: GithubClient,
    summary: RepositorySummary,
    installation_map: InstallationMap,
    options: PipelineOptions,
    run: Runner,
    check: typ.Callable[[RepositoryRecord], ActivityVerdict],
) -> ActivityVerdict:
    if summary.archived:
        _logger.debug("%s is archived", summary.name)
        return ActivityVerdict(name=summary.name, exclusion=Exclusion.ARCHIVED)
    record = await assemble_repository(
        client,
        summary,
        installation_map,
        limits=options.limits,
        runner=run,
    )
    return await run(lambda: check(record))


def _gate(
    items: typ.Iterable[S],
    store: PolicyStore,
    options: PipelineOptions,
    report: RunReport,
    *,
    name_of: typ.Callable[[S], str],
) -> list[S]:
    pending: list[S] = []
    for item in items:
        name = name_of(item)
        if name in options.exclude:
            _logger.debug("%s is excluded by configuration", name)
            continue
        if store.is_managed(name):
            _logger.debug("%s is already managed", name)
            report.managed.append(name)
            continue
        pending.append(item)
    return pending


def _collect_verdicts(
    outcomes: typ.Iterable[RepositoryOutcome[ActivityVerdict]],
    report: RunReport,
) -> list[ActiveRepository]:
    active: list[ActiveRepository] = []
    for outcome in outcomes:
        if not outcome.ok:
            _logger.warning("Cannot download repo %s: %s", outcome.name, outcome.error)
            report.failed[outcome.name] = str(outcome.error)
            continue
        verdict = typ.cast("ActivityVerdict", outcome.value)
        if verdict.active is not None:
            active.append(verdict.active)
        elif verdict.exclusion is not None:
            report.excluded[verdict.name] = verdict.exclusion.value
    return active


def _emit(store: PolicyStore, repository: ActiveRepository, report: RunReport) -> None:
    name = repository.record.name
    _logger.info("Writing %s (%s)", name, repository.last_commit_at.isoformat())
    try:
        store.write(build_entry(repository))
    except StoreError as error:
        _logger.warning("Cannot write entry for %s: %s", name, error)
        report.emit_failed[name] = str(error)
        return
    report.written.append(name)


async def _bounded_gather(
    items: typ.Iterable[S],
    task: typ.Callable[[S], typ.Awaitable[T]],
    *,
    name_of: typ.Callable[[S], str],
    limit: int,
) -> list[RepositoryOutcome[T]]:
    """Run ``task`` for every item, at most ``limit`` at a time.

    Each task fills its own result slot; a failing task becomes a failure
    outcome instead of cancelling its siblings.
    """
    semaphore = asyncio.Semaphore(limit)

    async def guarded(item: S) -> RepositoryOutcome[T]:
        name = name_of(item)
        async with semaphore:
            try:
                value = await task(item)
            except BackfillError as error:
                return RepositoryOutcome.failure(name, error)
        return RepositoryOutcome.success(name, value)

    return list(await asyncio.gather(*(guarded(item) for item in items)))
