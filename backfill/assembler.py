"""Assemble one repository's access record from independent fetches."""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

from .installations import installations_for
from .models import RepositoryRecord

if typ.TYPE_CHECKING:
    from .github import GithubClient
    from .installations import InstallationMap
    from .models import RepositorySummary

Runner = typ.Callable[[typ.Callable[[], typ.Any]], typ.Awaitable[typ.Any]]


@dataclasses.dataclass(frozen=True)
class FetchLimits:
    """Caps applied to the branch protection query."""

    max_protection_rules: int = 10
    max_push_allowances: int = 100


def default_runner(thunk: typ.Callable[[], typ.Any]) -> typ.Awaitable[typ.Any]:
    """Run a blocking call in the default thread pool."""
    return asyncio.to_thread(thunk)


async def assemble_repository(
    client: GithubClient,
    summary: RepositorySummary,
    installation_map: InstallationMap,
    *,
    limits: FetchLimits | None = None,
    runner: Runner | None = None,
) -> RepositoryRecord:
    """Fetch teams, collaborators and branch protection for one repository.

    The three fetches run concurrently. If any of them fails the error
    propagates and no record is produced.
    """
    limits = limits or FetchLimits()
    run = runner or default_runner
    owner, name = summary.org, summary.name

    teams, collaborators, protections = await asyncio.gather(
        run(lambda: client.teams(owner, name)),
        run(lambda: client.collaborators(owner, name)),
        run(
            lambda: client.branch_protection_rules(
                owner,
                name,
                max_rules=limits.max_protection_rules,
                max_push_allowances=limits.max_push_allowances,
            )
        ),
    )
    return RepositoryRecord(
        org=owner,
        name=name,
        archived=summary.archived,
        private=summary.private,
        default_branch=summary.default_branch,
        teams=tuple(teams),
        collaborators=tuple(collaborators),
        branch_protections=tuple(protections),
        installations=installations_for(installation_map, name),
    )
