"""Org-wide mapping from repository name to GitHub App installations."""

from __future__ import annotations

import collections
import logging
import types
import typing as typ

from .errors import GithubError, InstallationMapError

if typ.TYPE_CHECKING:
    from .github import GithubClient
    from .models import AppInstallationRef

InstallationMap = typ.Mapping[str, tuple["AppInstallationRef", ...]]

EMPTY_INSTALLATION_MAP: InstallationMap = types.MappingProxyType({})

_logger = logging.getLogger(__name__)


def build_installation_map(client: GithubClient, org: str) -> InstallationMap:
    """Return which App installations can reach each repository in ``org``.

    Any failure, including a single installation's repository listing,
    raises :class:`InstallationMapError`; a partial map would understate
    which automation has access to a repository.
    """
    try:
        installations = client.org_installations(org)
    except GithubError as error:
        message = f"Unable to list App installations for {org}: {error}"
        raise InstallationMapError(message) from error

    grouped: dict[str, list[AppInstallationRef]] = collections.defaultdict(list)
    for installation in installations:
        try:
            names = client.installation_repositories(installation.installation_id)
        except GithubError as error:
            message = (
                f"Unable to list repositories for installation "
                f"{installation.installation_id} ({installation.app_slug}): {error}"
            )
            raise InstallationMapError(message) from error
        for name in dict.fromkeys(names):
            grouped[name].append(installation)

    _logger.debug(
        "Mapped %d installation(s) across %d repositories in %s",
        len(installations),
        len(grouped),
        org,
    )
    return freeze_installation_map(grouped)


def freeze_installation_map(
    grouped: typ.Mapping[str, typ.Iterable[AppInstallationRef]],
) -> InstallationMap:
    """Return a read-only copy of ``grouped`` safe to share across workers."""
    return types.MappingProxyType(
        {name: tuple(refs) for name, refs in grouped.items()}
    )


def installations_for(
    installation_map: InstallationMap, name: str
) -> tuple[AppInstallationRef, ...]:
    """Return the installations that can access repository ``name``."""
    return installation_map.get(name, ())
