"""Branch protection query and strict parsing of its GraphQL response."""

from __future__ import annotations

import typing as typ

from .errors import DecodeError, NotFoundError
from .models import BranchProtectionRule

BRANCH_PROTECTION_QUERY = """
query BranchProtectionRules(
  $owner: String!
  $name: String!
  $rules: Int!
  $allowances: Int!
) {
  repository(owner: $owner, name: $name) {
    branchProtectionRules(first: $rules) {
      edges {
        node {
          pattern
          dismissesStaleReviews
          requiresApprovingReviews
          requiredApprovingReviewCount
          restrictsPushes
          requiredStatusChecks {
            context
          }
          pushAllowances(first: $allowances) {
            nodes {
              id
              actor {
                __typename
                ... on User {
                  login
                }
                ... on Team {
                  name
                }
              }
            }
          }
        }
      }
    }
  }
}
"""

ERROR_SHAPE = "Unexpected branch protection payload for {slug}: {detail}"


def query_variables(
    owner: str, name: str, *, max_rules: int, max_push_allowances: int
) -> dict[str, typ.Any]:
    """Return the GraphQL variables for one repository."""
    return {
        "owner": owner,
        "name": name,
        "rules": max_rules,
        "allowances": max_push_allowances,
    }


def parse_branch_protection_rules(
    payload: object, *, slug: str
) -> tuple[BranchProtectionRule, ...]:
    """Convert a GraphQL response body into rules.

    Every edge becomes its own rule; rules sharing a pattern are kept apart.
    """
    data = _mapping(_mapping(payload, "response", slug).get("data"), "data", slug)
    repository = data.get("repository")
    if repository is None:
        message = f"Repository {slug} was not found by the GraphQL API."
        raise NotFoundError(message)
    repository = _mapping(repository, "repository", slug)
    rules = _mapping(
        repository.get("branchProtectionRules"), "branchProtectionRules", slug
    )
    edges = _sequence(rules.get("edges"), "edges", slug)
    return tuple(
        _parse_rule(_mapping(edge, "edge", slug).get("node"), slug) for edge in edges
    )


def _parse_rule(node: object, slug: str) -> BranchProtectionRule:
    node = _mapping(node, "node", slug)
    pattern = node.get("pattern")
    if not isinstance(pattern, str) or not pattern:
        raise _shape_error(slug, "rule without a pattern")
    return BranchProtectionRule(
        pattern=pattern,
        status_checks=_status_checks(node.get("requiredStatusChecks"), slug),
        dismiss_stale_reviews=_flag(node, "dismissesStaleReviews", slug),
        requires_reviews=_flag(node, "requiresApprovingReviews", slug),
        required_approvals=_approvals(node.get("requiredApprovingReviewCount"), slug),
        restricts_pushes=_flag(node, "restrictsPushes", slug, default=False),
        push_allowances=_push_allowances(node.get("pushAllowances"), slug),
    )


def _flag(
    node: typ.Mapping[str, object],
    key: str,
    slug: str,
    *,
    default: bool | None = None,
) -> bool:
    value = node.get(key)
    if value is None and default is not None:
        return default
    if not isinstance(value, bool):
        raise _shape_error(slug, f"{key} must be a boolean, got {value!r}")
    return value


def _approvals(value: object, slug: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise _shape_error(slug, f"invalid requiredApprovingReviewCount {value!r}")
    return value


def _status_checks(value: object, slug: str) -> frozenset[str]:
    if value is None:
        return frozenset()
    contexts: set[str] = set()
    for entry in _sequence(value, "requiredStatusChecks", slug):
        context = _mapping(entry, "requiredStatusChecks", slug).get("context")
        if not isinstance(context, str):
            raise _shape_error(slug, f"status check context {context!r}")
        contexts.add(context)
    return frozenset(contexts)


def _push_allowances(value: object, slug: str) -> frozenset[str]:
    if value is None:
        return frozenset()
    container = _mapping(value, "pushAllowances", slug)
    nodes = container.get("nodes")
    if nodes is None:
        return frozenset()
    return frozenset(
        _allowance_token(_mapping(node, "pushAllowances", slug), slug)
        for node in _sequence(nodes, "pushAllowances", slug)
    )


def _allowance_token(node: typ.Mapping[str, object], slug: str) -> str:
    actor = node.get("actor")
    if isinstance(actor, dict):
        for key in ("login", "name"):
            if isinstance(token := actor.get(key), str) and token:
                return token
    allowance_id = node.get("id")
    if not isinstance(allowance_id, str):
        raise _shape_error(slug, "push allowance without an actor or id")
    return allowance_id


def _mapping(value: object, what: str, slug: str) -> typ.Mapping[str, typ.Any]:
    if not isinstance(value, dict):
        raise _shape_error(slug, f"{what} must be an object")
    return value


def _sequence(value: object, what: str, slug: str) -> list[typ.Any]:
    if not isinstance(value, list):
        raise _shape_error(slug, f"{what} must be a list")
    return value


def _shape_error(slug: str, detail: str) -> DecodeError:
    return DecodeError(ERROR_SHAPE.format(slug=slug, detail=detail))
