"""Shared data structures for the access-policy pipeline."""

from __future__ import annotations

import dataclasses
import typing as typ

if typ.TYPE_CHECKING:
    import datetime as dt

T = typ.TypeVar("T")

TEAM_PERMISSIONS = frozenset(
    {"pull", "read", "triage", "push", "write", "maintain", "admin"}
)
COLLABORATOR_FLAGS = ("admin", "maintain", "push", "triage", "pull")


@dataclasses.dataclass(frozen=True)
class RepositorySummary:
    """Repository metadata returned by the org repository listing."""

    org: str
    name: str
    archived: bool = False
    private: bool = False
    default_branch: str = "main"

    @property
    def slug(self) -> str:
        """Return the owner/repo slug used in diagnostics."""
        return f"{self.org}/{self.name}"


@dataclasses.dataclass(frozen=True)
class TeamGrant:
    """Team permission assignment exposed by the GitHub API."""

    name: str
    permission: str


@dataclasses.dataclass(frozen=True)
class CollaboratorPermissions:
    """Permission flags GitHub reports for a repository collaborator."""

    admin: bool = False
    maintain: bool = False
    push: bool = False
    triage: bool = False
    pull: bool = False

    @classmethod
    def from_mapping(cls, payload: typ.Mapping[str, object]) -> CollaboratorPermissions:
        """Build the flag set from an API payload; missing keys are false."""
        return cls(**{flag: payload.get(flag) is True for flag in COLLABORATOR_FLAGS})

    def as_dict(self) -> dict[str, bool]:
        """Return the flags as a plain mapping."""
        return {flag: getattr(self, flag) for flag in COLLABORATOR_FLAGS}


@dataclasses.dataclass(frozen=True)
class CollaboratorGrant:
    """Direct collaborator permission assignment."""

    login: str
    permissions: CollaboratorPermissions


@dataclasses.dataclass(frozen=True)
class BranchProtectionRule:
    """Branch protection rule returned by the GraphQL API."""

    pattern: str
    status_checks: frozenset[str] = frozenset()
    dismiss_stale_reviews: bool = False
    requires_reviews: bool = False
    required_approvals: int = 0
    restricts_pushes: bool = False
    push_allowances: frozenset[str] = frozenset()


@dataclasses.dataclass(frozen=True)
class AppInstallationRef:
    """GitHub App installation granted access to org repositories."""

    installation_id: int
    app_id: int
    app_slug: str


@dataclasses.dataclass(frozen=True)
class RepositoryRecord:
    """Everything fetched for one repository during a run."""

    org: str
    name: str
    archived: bool
    private: bool
    default_branch: str
    teams: tuple[TeamGrant, ...] = ()
    collaborators: tuple[CollaboratorGrant, ...] = ()
    branch_protections: tuple[BranchProtectionRule, ...] = ()
    installations: tuple[AppInstallationRef, ...] = ()

    @property
    def slug(self) -> str:
        """Return the owner/repo slug used in diagnostics."""
        return f"{self.org}/{self.name}"


@dataclasses.dataclass(frozen=True)
class ActiveRepository:
    """A repository that passed the activity filter."""

    record: RepositoryRecord
    last_commit_at: dt.datetime


@dataclasses.dataclass(frozen=True)
class AccessPolicyEntry:
    """Access policy document emitted for one repository."""

    org: str
    name: str
    teams: dict[str, str]
    individuals: dict[str, str] = dataclasses.field(default_factory=dict)
    description: str = ""
    bots: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True)
class RepositoryOutcome(typ.Generic[T]):
    """Result of one repository task: a value or the error that stopped it."""

    name: str
    value: T | None = None
    error: Exception | None = None

    @classmethod
    def success(cls, name: str, value: T) -> RepositoryOutcome[T]:
        """Wrap a successful result."""
        return cls(name=name, value=value)

    @classmethod
    def failure(cls, name: str, error: Exception) -> RepositoryOutcome[T]:
        """Wrap the error that stopped the task."""
        return cls(name=name, error=error)

    @property
    def ok(self) -> bool:
        """Return True when the task produced a value."""
        return self.error is None


@dataclasses.dataclass
class RunReport:
    """Summary of a pipeline run."""

    written: list[str] = dataclasses.field(default_factory=list)
    managed: list[str] = dataclasses.field(default_factory=list)
    excluded: dict[str, str] = dataclasses.field(default_factory=dict)
    failed: dict[str, str] = dataclasses.field(default_factory=dict)
    emit_failed: dict[str, str] = dataclasses.field(default_factory=dict)

    def render(self) -> str:
        """Return a human-readable summary."""
        lines = [f"Written {len(self.written)} repo(s)"]
        lines.append(
            f"managed: {len(self.managed)}, excluded: {len(self.excluded)}, "
            f"failed: {len(self.failed) + len(self.emit_failed)}"
        )
        lines.extend(
            f"failed {name}: {cause}"
            for name, cause in sorted({**self.failed, **self.emit_failed}.items())
        )
        return "\n".join(lines)
