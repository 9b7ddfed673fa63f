"""Build and serialise access policy entries."""

from __future__ import annotations

import io
import typing as typ

from ruamel.yaml import YAML

from .models import AccessPolicyEntry
from .permissions import individual_access, team_access

if typ.TYPE_CHECKING:
    from .models import ActiveRepository

_yaml = YAML(typ="safe")
_yaml.default_flow_style = False
_yaml.indent(mapping=2, sequence=4, offset=2)
_yaml.sort_base_mapping_type_on_output = False


def build_entry(active: ActiveRepository) -> AccessPolicyEntry:
    """Return the policy entry for a repository that passed every filter."""
    record = active.record
    return AccessPolicyEntry(
        org=record.org,
        name=record.name,
        teams=team_access(record.teams),
        individuals=individual_access(record.collaborators),
    )


def entry_document(entry: AccessPolicyEntry) -> dict[str, typ.Any]:
    """Return the entry as an ordered mapping ready for serialisation."""
    access: dict[str, typ.Any] = {"teams": dict(sorted(entry.teams.items()))}
    if entry.individuals:
        access["individuals"] = dict(sorted(entry.individuals.items()))
    return {
        "org": entry.org,
        "name": entry.name,
        "description": entry.description,
        "bots": list(entry.bots),
        "access": access,
    }


def render_entry(entry: AccessPolicyEntry) -> str:
    """Serialise ``entry`` to YAML."""
    buffer = io.StringIO()
    _yaml.dump(entry_document(entry), buffer)
    return buffer.getvalue()

