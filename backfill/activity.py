"""Decide which repositories are active enough to receive a policy entry."""

from __future__ import annotations

import dataclasses
import datetime as dt
import enum
import logging
import typing as typ

from .models import ActiveRepository

if typ.TYPE_CHECKING:
    from .github import GithubClient
    from .models import RepositoryRecord

DEFAULT_ACTIVITY_WINDOW_DAYS = 180
DEFAULT_COMMIT_PAGE_SIZE = 50

_logger = logging.getLogger(__name__)


class Exclusion(enum.StrEnum):
    """Why a repository was left out of generation."""

    ARCHIVED = "archived"
    INACTIVE = "inactive"
    NO_TEAMS = "no teams"


@dataclasses.dataclass(frozen=True)
class ActivityVerdict:
    """Outcome of the activity check for one repository."""

    name: str
    active: ActiveRepository | None = None
    exclusion: Exclusion | None = None

    @property
    def eligible(self) -> bool:
        """Return True when the repository should receive an entry."""
        return self.active is not None


def evaluate_activity(
    record: RepositoryRecord, commit_dates: typ.Sequence[dt.datetime]
) -> ActivityVerdict:
    """Apply the archived, activity and team checks in that order.

    ``commit_dates`` are the author dates of default-branch commits inside
    the trailing window, newest first.
    """
    if record.archived:
        _logger.debug("%s is archived", record.name)
        return ActivityVerdict(name=record.name, exclusion=Exclusion.ARCHIVED)
    if not commit_dates:
        _logger.info("%s is inactive", record.name)
        return ActivityVerdict(name=record.name, exclusion=Exclusion.INACTIVE)
    if not record.teams:
        _logger.info("%s has no teams", record.name)
        return ActivityVerdict(name=record.name, exclusion=Exclusion.NO_TEAMS)
    return ActivityVerdict(
        name=record.name,
        active=ActiveRepository(record=record, last_commit_at=max(commit_dates)),
    )


def activity_cutoff(
    window_days: int = DEFAULT_ACTIVITY_WINDOW_DAYS,
    *,
    now: dt.datetime | None = None,
) -> dt.datetime:
    """Return the start of the trailing activity window."""
    current = now or dt.datetime.now(dt.UTC)
    return current - dt.timedelta(days=window_days)


def check_activity(
    client: GithubClient,
    record: RepositoryRecord,
    *,
    since: dt.datetime,
    per_page: int = DEFAULT_COMMIT_PAGE_SIZE,
) -> ActivityVerdict:
    """Fetch recent default-branch commits and evaluate the repository.

    Archived repositories are rejected before any request is made.
    """
    if record.archived:
        return evaluate_activity(record, ())
    commit_dates = client.recent_commits(
        record.org,
        record.name,
        branch=record.default_branch,
        since=since,
        per_page=per_page,
    )
    return evaluate_activity(record, commit_dates)
