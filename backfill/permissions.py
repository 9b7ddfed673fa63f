"""Collapse raw GitHub permission data into policy labels."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    from .models import CollaboratorGrant, CollaboratorPermissions, TeamGrant

# Checked in order; the first flag that is set decides the label.
COLLABORATOR_PRECEDENCE: tuple[tuple[str, str], ...] = (
    ("admin", "admin"),
    ("maintain", "maintain"),
    ("push", "write"),
    ("triage", "triage"),
)

TEAM_SYNONYMS = {"push": "write"}


def collaborator_permission(permissions: CollaboratorPermissions) -> str | None:
    """Return the label for a collaborator, or None for pull-only access."""
    for flag, label in COLLABORATOR_PRECEDENCE:
        if getattr(permissions, flag):
            return label
    return None


def team_permission(raw: str) -> str:
    """Return the label for a team's raw permission."""
    return TEAM_SYNONYMS.get(raw, raw)


def team_access(teams: typ.Iterable[TeamGrant]) -> dict[str, str]:
    """Map team names to their labels."""
    return {team.name: team_permission(team.permission) for team in teams}


def individual_access(
    collaborators: typ.Iterable[CollaboratorGrant],
) -> dict[str, str]:
    """Map collaborator logins to labels, leaving out pull-only grants."""
    access: dict[str, str] = {}
    for collaborator in collaborators:
        if (label := collaborator_permission(collaborator.permissions)) is not None:
            access[collaborator.login] = label
    return access
