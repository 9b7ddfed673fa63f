"""Thin GitHub REST and GraphQL client tailored for access-policy generation."""

from __future__ import annotations

import datetime as dt
import logging
import time
import typing as typ

import requests
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .errors import (
    DecodeError,
    ForbiddenError,
    GithubError,
    NotFoundError,
    RateLimitedError,
    TransportError,
)
from .models import (
    TEAM_PERMISSIONS,
    AppInstallationRef,
    BranchProtectionRule,
    CollaboratorGrant,
    CollaboratorPermissions,
    RepositorySummary,
    TeamGrant,
)
from .pagination import DEFAULT_PAGE_SIZE, Page, collect
from .protection import (
    BRANCH_PROTECTION_QUERY,
    parse_branch_protection_rules,
    query_variables,
)

DEFAULT_API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"

_logger = logging.getLogger(__name__)

T = typ.TypeVar("T")


class GithubClient:
    """Minimal GitHub client using the REST and GraphQL APIs."""

    def __init__(
        self,
        *,
        token: str,
        api_url: str = DEFAULT_API_URL,
        timeout: int = 30,
        per_page: int = DEFAULT_PAGE_SIZE,
        max_retries: int = 5,
        backoff_base: float = 1.0,
        backoff_max: float = 30.0,
        rate_limit_max_wait: float = 60.0,
        session: requests.Session | None = None,
        sleep: typ.Callable[[float], None] = time.sleep,
    ) -> None:
        """Configure a GitHub session scoped to the provided token."""
        self.api_url = api_url.rstrip("/")
        self.graphql_url = _graphql_url(self.api_url)
        self.timeout = timeout
        self.per_page = per_page
        self.max_retries = max_retries
        self.rate_limit_max_wait = rate_limit_max_wait
        self._backoff = wait_exponential(multiplier=backoff_base, max=backoff_max)
        self._sleep = sleep
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
                "User-Agent": "backfill",
            }
        )

    def org_repositories(self, org: str) -> tuple[RepositorySummary, ...]:
        """List every repository owned by the organization."""
        entries = self._paginate(f"/orgs/{org}/repos", params={"type": "all"})
        return tuple(_repository_summary(org, entry) for entry in entries)

    def teams(self, owner: str, name: str) -> tuple[TeamGrant, ...]:
        """List team permission assignments for the repository."""
        entries = self._paginate(f"/repos/{owner}/{name}/teams")
        return tuple(_team_grant(entry) for entry in entries)

    def collaborators(self, owner: str, name: str) -> tuple[CollaboratorGrant, ...]:
        """Return every collaborator with their permission flags."""
        entries = self._paginate(f"/repos/{owner}/{name}/collaborators")
        return tuple(_collaborator_grant(entry) for entry in entries)

    def branch_protection_rules(
        self,
        owner: str,
        name: str,
        *,
        max_rules: int,
        max_push_allowances: int,
    ) -> tuple[BranchProtectionRule, ...]:
        """Fetch branch protection rules with one GraphQL query."""
        variables = query_variables(
            owner,
            name,
            max_rules=max_rules,
            max_push_allowances=max_push_allowances,
        )
        payload = self.graphql(BRANCH_PROTECTION_QUERY, variables)
        return parse_branch_protection_rules(payload, slug=f"{owner}/{name}")

    def recent_commits(
        self,
        owner: str,
        name: str,
        *,
        branch: str,
        since: dt.datetime,
        per_page: int,
    ) -> tuple[dt.datetime, ...]:
        """Return author dates of the newest commits on ``branch`` since ``since``.

        Only the first page is requested; callers need to know whether any
        commit exists and when the newest one was authored.
        """
        params = {
            "sha": branch,
            "since": since.astimezone(dt.UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "per_page": per_page,
        }
        try:
            response = self._request(
                "GET", f"/repos/{owner}/{name}/commits", params=params
            )
        except GithubError as exc:
            # 409 Conflict: the repository is empty.
            if exc.status_code == 409:
                return ()
            raise
        entries = _items(self._json(response), key=None, path=response.url)
        return tuple(_commit_date(entry) for entry in entries)

    def org_installations(self, org: str) -> tuple[AppInstallationRef, ...]:
        """List GitHub App installations on the organization."""
        entries = self._paginate(f"/orgs/{org}/installations", key="installations")
        return tuple(_installation_ref(entry) for entry in entries)

    def installation_repositories(self, installation_id: int) -> tuple[str, ...]:
        """Return names of repositories an installation can access."""
        entries = self._paginate(
            f"/user/installations/{installation_id}/repositories",
            key="repositories",
        )
        return tuple(_required_str(entry, "name") for entry in entries)

    def graphql(
        self, query: str, variables: dict[str, typ.Any] | None = None
    ) -> dict[str, typ.Any]:
        """Run a GraphQL query and return the decoded response body."""
        body = {"query": query, "variables": variables or {}}
        return self._call(self._graphql_once, body)

    # Internal helpers -------------------------------------------------

    def _call(self, func: typ.Callable[..., T], *args: object, **kwargs: object) -> T:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=self._wait,
            retry=retry_if_exception_type((TransportError, RateLimitedError)),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        return retrying(func, *args, **kwargs)

    def _wait(self, retry_state: RetryCallState) -> float:
        delay = self._backoff(retry_state)
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        if isinstance(error, RateLimitedError) and error.retry_after is not None:
            delay = max(delay, min(error.retry_after, self.rate_limit_max_wait))
        return delay

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, typ.Any] | None = None,
    ) -> requests.Response:
        return self._call(self._send, method, f"{self.api_url}{path}", params=params)

    def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, typ.Any] | None = None,
        json: dict[str, typ.Any] | None = None,
    ) -> requests.Response:
        try:
            response = self.session.request(
                method, url, params=params, json=json, timeout=self.timeout
            )
        except requests.RequestException as exc:
            message = f"{method} {url} failed: {exc}"
            raise TransportError(message) from exc
        _raise_for_status(method, url, response)
        return response

    def _graphql_once(self, body: dict[str, typ.Any]) -> dict[str, typ.Any]:
        response = self._send("POST", self.graphql_url, json=body)
        payload = self._json(response)
        if not isinstance(payload, dict):
            message = "GraphQL response must be an object."
            raise DecodeError(message)
        if errors := payload.get("errors"):
            raise _graphql_error(errors)
        return payload

    @staticmethod
    def _json(response: requests.Response) -> typ.Any:  # noqa: ANN401
        try:
            return response.json()
        except ValueError as exc:
            message = f"Response from {response.url} is not valid JSON."
            raise DecodeError(message, status_code=response.status_code) from exc

    def _paginate(
        self,
        path: str,
        *,
        params: dict[str, typ.Any] | None = None,
        key: str | None = None,
    ) -> tuple[dict[str, typ.Any], ...]:
        def fetch_page(page_number: int) -> Page[dict[str, typ.Any]]:
            page_params = {
                **(params or {}),
                "per_page": self.per_page,
                "page": page_number,
            }
            response = self._request("GET", path, params=page_params)
            items = _items(self._json(response), key=key, path=path)
            return Page(items=items, has_next="next" in response.links)

        return collect(fetch_page)


def _graphql_url(api_url: str) -> str:
    if api_url.endswith("/api/v3"):
        return f"{api_url.removesuffix('/v3')}/graphql"
    return f"{api_url}/graphql"


def _raise_for_status(method: str, url: str, response: requests.Response) -> None:
    status = response.status_code
    if status < 400:
        return
    detail = response.text[:400]
    message = f"{method} {url} failed: {status} {detail}"
    if status == 404:
        raise NotFoundError(f"{method} {url} returned 404.", status_code=status)
    if status == 429 or (status == 403 and _is_rate_limited(response)):
        raise RateLimitedError(
            message, status_code=status, retry_after=_retry_after(response)
        )
    if status in {401, 403}:
        raise ForbiddenError(message, status_code=status)
    if status >= 500:
        raise TransportError(message, status_code=status)
    raise GithubError(message, status_code=status)


def _is_rate_limited(response: requests.Response) -> bool:
    headers = response.headers
    return headers.get("x-ratelimit-remaining") == "0" or "retry-after" in headers


def _retry_after(response: requests.Response) -> float | None:
    headers = response.headers
    if (raw := headers.get("retry-after")) is not None:
        try:
            return max(float(raw), 0.0)
        except ValueError:
            return None
    if (reset := headers.get("x-ratelimit-reset")) is not None:
        try:
            return max(float(reset) - time.time(), 0.0)
        except ValueError:
            return None
    return None


def _graphql_error(errors: object) -> GithubError:
    entries = errors if isinstance(errors, list) else [errors]
    kinds = {entry.get("type") for entry in entries if isinstance(entry, dict)}
    text = "; ".join(
        str(entry.get("message", entry)) if isinstance(entry, dict) else str(entry)
        for entry in entries
    )
    message = f"GraphQL query failed: {text}"
    if "RATE_LIMITED" in kinds:
        return RateLimitedError(message)
    if "NOT_FOUND" in kinds:
        return NotFoundError(message)
    if "FORBIDDEN" in kinds:
        return ForbiddenError(message)
    return GithubError(message)


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    _logger.debug(
        "Retrying GitHub request (attempt %d): %s",
        retry_state.attempt_number,
        error,
    )


def _items(
    payload: object, *, key: str | None, path: str
) -> tuple[dict[str, typ.Any], ...]:
    if key is not None:
        if not isinstance(payload, dict):
            message = f"Expected an object from {path}."
            raise DecodeError(message)
        payload = payload.get(key)
    if not isinstance(payload, list) or not all(
        isinstance(entry, dict) for entry in payload
    ):
        message = f"Expected a list of objects from {path}."
        raise DecodeError(message)
    return tuple(payload)


def _required_str(entry: typ.Mapping[str, object], key: str) -> str:
    value = entry.get(key)
    if not isinstance(value, str) or not value:
        message = f"Missing {key!r} in GitHub response entry."
        raise DecodeError(message)
    return value


def _required_int(entry: typ.Mapping[str, object], key: str) -> int:
    value = entry.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        message = f"Missing integer {key!r} in GitHub response entry."
        raise DecodeError(message)
    return value


def _repository_summary(org: str, entry: dict[str, typ.Any]) -> RepositorySummary:
    return RepositorySummary(
        org=org,
        name=_required_str(entry, "name"),
        archived=bool(entry.get("archived", False)),
        private=bool(entry.get("private", False)),
        default_branch=str(entry.get("default_branch") or "master"),
    )


def _team_grant(entry: dict[str, typ.Any]) -> TeamGrant:
    name = _required_str(entry, "name")
    permission = entry.get("permission")
    if permission not in TEAM_PERMISSIONS:
        message = f"Team {name!r} has unrecognised permission {permission!r}."
        raise DecodeError(message)
    return TeamGrant(name=name, permission=typ.cast("str", permission))


def _collaborator_grant(entry: dict[str, typ.Any]) -> CollaboratorGrant:
    login = _required_str(entry, "login")
    permissions = entry.get("permissions") or {}
    if not isinstance(permissions, dict):
        message = f"Collaborator {login!r} has malformed permissions."
        raise DecodeError(message)
    return CollaboratorGrant(
        login=login,
        permissions=CollaboratorPermissions.from_mapping(permissions),
    )


def _installation_ref(entry: dict[str, typ.Any]) -> AppInstallationRef:
    return AppInstallationRef(
        installation_id=_required_int(entry, "id"),
        app_id=_required_int(entry, "app_id"),
        app_slug=_required_str(entry, "app_slug"),
    )


def _commit_date(entry: dict[str, typ.Any]) -> dt.datetime:
    commit = entry.get("commit")
    if isinstance(commit, dict):
        for role in ("author", "committer"):
            person = commit.get(role)
            if isinstance(person, dict) and isinstance(person.get("date"), str):
                return parse_timestamp(person["date"])
    message = f"Commit {entry.get('sha')!r} has no author or committer date."
    raise DecodeError(message)


def parse_timestamp(value: str) -> dt.datetime:
    """Parse a GitHub ISO-8601 timestamp into an aware datetime."""
    try:
        parsed = dt.datetime.fromisoformat(value)
    except ValueError as exc:
        message = f"Invalid timestamp {value!r}."
        raise DecodeError(message) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed
