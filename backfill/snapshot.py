"""JSON snapshots of assembled repository records.

A snapshot lets the slow fetch step run once and the generate step run many
times against the same data.
"""

from __future__ import annotations

import json
import typing as typ

from .errors import SnapshotError
from .models import (
    TEAM_PERMISSIONS,
    AppInstallationRef,
    BranchProtectionRule,
    CollaboratorGrant,
    CollaboratorPermissions,
    RepositoryRecord,
    TeamGrant,
)

if typ.TYPE_CHECKING:
    from pathlib import Path


def record_to_dict(record: RepositoryRecord) -> dict[str, typ.Any]:
    """Return a JSON-compatible representation of ``record``."""
    return {
        "org": record.org,
        "name": record.name,
        "archived": record.archived,
        "private": record.private,
        "default_branch": record.default_branch,
        "teams": [
            {"name": team.name, "permission": team.permission} for team in record.teams
        ],
        "collaborators": [
            {"name": grant.login, "permissions": grant.permissions.as_dict()}
            for grant in record.collaborators
        ],
        "branch_protections": [
            {
                "pattern": rule.pattern,
                "status_checks": sorted(rule.status_checks),
                "dismiss_stale_review": rule.dismiss_stale_reviews,
                "pr_required": rule.requires_reviews,
                "required_approvals": rule.required_approvals,
                "restrict_pushes": rule.restricts_pushes,
                "push_allowances": sorted(rule.push_allowances),
            }
            for rule in record.branch_protections
        ],
        "installations": [
            {
                "installation_id": ref.installation_id,
                "app_id": ref.app_id,
                "app_slug": ref.app_slug,
            }
            for ref in record.installations
        ],
    }


def record_from_dict(payload: typ.Mapping[str, typ.Any]) -> RepositoryRecord:
    """Rebuild a record written by :func:`record_to_dict`."""
    return RepositoryRecord(
        org=str(payload["org"]),
        name=str(payload["name"]),
        archived=bool(payload.get("archived", False)),
        private=bool(payload.get("private", False)),
        default_branch=str(payload.get("default_branch") or "master"),
        teams=tuple(_team_grant(entry) for entry in payload.get("teams", [])),
        collaborators=tuple(
            CollaboratorGrant(
                login=str(entry["name"]),
                permissions=CollaboratorPermissions.from_mapping(
                    entry.get("permissions", {})
                ),
            )
            for entry in payload.get("collaborators", [])
        ),
        branch_protections=tuple(
            BranchProtectionRule(
                pattern=str(entry["pattern"]),
                status_checks=frozenset(entry.get("status_checks", [])),
                dismiss_stale_reviews=bool(entry.get("dismiss_stale_review", False)),
                requires_reviews=bool(entry.get("pr_required", False)),
                required_approvals=int(entry.get("required_approvals") or 0),
                restricts_pushes=bool(entry.get("restrict_pushes", False)),
                push_allowances=frozenset(entry.get("push_allowances", [])),
            )
            for entry in payload.get("branch_protections", [])
        ),
        installations=tuple(
            AppInstallationRef(
                installation_id=int(entry["installation_id"]),
                app_id=int(entry["app_id"]),
                app_slug=str(entry["app_slug"]),
            )
            for entry in payload.get("installations", [])
        ),
    )


def _team_grant(entry: typ.Mapping[str, typ.Any]) -> TeamGrant:
    name = str(entry["name"])
    permission = entry["permission"]
    if permission not in TEAM_PERMISSIONS:
        message = f"Team {name!r} has unrecognised permission {permission!r}."
        raise SnapshotError(message)
    return TeamGrant(name=name, permission=permission)


def write_snapshot(records: typ.Iterable[RepositoryRecord], path: Path) -> Path:
    """Write ``records`` to ``path`` as pretty-printed JSON."""
    data = [record_to_dict(record) for record in records]
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    except OSError as exc:
        message = f"Unable to write snapshot {path}: {exc}"
        raise SnapshotError(message) from exc
    return path


def read_snapshot(path: Path) -> tuple[RepositoryRecord, ...]:
    """Load records from ``path``, sorted by name with duplicates dropped."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        message = f"Unable to read snapshot {path}: {exc}"
        raise SnapshotError(message) from exc
    if not isinstance(data, list):
        message = f"Snapshot {path} must contain a list of repositories."
        raise SnapshotError(message)
    try:
        records = [record_from_dict(entry) for entry in data]
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        message = f"Snapshot {path} contains a malformed repository: {exc}"
        raise SnapshotError(message) from exc
    unique: dict[str, RepositoryRecord] = {}
    for record in sorted(records, key=lambda item: item.name):
        unique.setdefault(record.name, record)
    return tuple(unique.values())
