"""Process configuration for backfill runs."""

from __future__ import annotations

import dataclasses
import os
import typing as typ
from pathlib import Path

from cyclopts import config as cyclopts_config
from ruamel.yaml import YAML

from .activity import DEFAULT_ACTIVITY_WINDOW_DAYS, DEFAULT_COMMIT_PAGE_SIZE
from .errors import ConfigError
from .github import DEFAULT_API_URL
from .pagination import DEFAULT_PAGE_SIZE

CONFIG_FILENAME = "config.yaml"
TOKEN_ENV = "GITHUB_TOKEN"  # noqa: S105 - environment variable name
ORG_ENV = "BACKFILL_ORG"
ERROR_ORG_REQUIRED = "No organization configured; pass --org or set org in the config."
ERROR_TOKEN_REQUIRED = (
    "GITHUB_TOKEN is required; pass --github-token or export the "  # noqa: S105
    "environment variable."
)

_yaml = YAML(typ="safe")

_POSITIVE_INT_KEYS = (
    "activity_window_days",
    "per_page",
    "commit_page_size",
    "max_protection_rules",
    "max_push_allowances",
    "max_concurrency",
    "max_retries",
    "timeout",
)


class _YamlConfig(cyclopts_config.ConfigFromFile):
    """Cyclopts config provider backed by ruamel.yaml."""

    def _load_config(self, path: Path) -> dict[str, typ.Any]:
        if not path.exists():
            return {}
        with path.open("r", encoding="utf-8") as handle:
            contents = _yaml.load(handle) or {}
        return dict(contents) if isinstance(contents, dict) else {}


@dataclasses.dataclass(frozen=True, slots=True)
class BackfillConfig:
    """Settings shared by the fetch and generate commands."""

    org: str = ""
    store_root: Path = Path("repos")
    api_url: str = DEFAULT_API_URL
    activity_window_days: int = DEFAULT_ACTIVITY_WINDOW_DAYS
    per_page: int = DEFAULT_PAGE_SIZE
    commit_page_size: int = DEFAULT_COMMIT_PAGE_SIZE
    max_protection_rules: int = 10
    max_push_allowances: int = 100
    max_concurrency: int = 8
    max_retries: int = 5
    timeout: int = 30
    exclude: frozenset[str] = frozenset()

    @classmethod
    def from_mapping(cls, payload: typ.Mapping[str, typ.Any]) -> BackfillConfig:
        """Build a config from file contents, ignoring unknown keys."""
        values: dict[str, typ.Any] = {}
        if (org := payload.get("org")) is not None:
            values["org"] = _string(org, "org")
        if (root := payload.get("store_root")) is not None:
            values["store_root"] = Path(_string(root, "store_root")).expanduser()
        if (api_url := payload.get("api_url")) is not None:
            values["api_url"] = _string(api_url, "api_url")
        for key in _POSITIVE_INT_KEYS:
            if (value := payload.get(key)) is not None:
                values[key] = _positive_int(value, key)
        if (exclude := payload.get("exclude")) is not None:
            if not isinstance(exclude, list):
                message = "exclude must be a list of repository names."
                raise ConfigError(message)
            values["exclude"] = frozenset(_string(item, "exclude") for item in exclude)
        return cls(**values)

    def with_overrides(self, **overrides: object) -> BackfillConfig:
        """Return a copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        for key in _POSITIVE_INT_KEYS:
            if key in changes:
                changes[key] = _positive_int(changes[key], key)
        if "store_root" in changes:
            changes["store_root"] = Path(typ.cast("str", changes["store_root"]))
        if "exclude" in changes:
            changes["exclude"] = frozenset(
                typ.cast("typ.Iterable[str]", changes["exclude"])
            )
        return dataclasses.replace(self, **changes)

    def require_org(self) -> str:
        """Return the organization or raise when none is configured."""
        if not self.org:
            raise ConfigError(ERROR_ORG_REQUIRED)
        return self.org


def default_config_path() -> Path:
    """Return the path to the backfill configuration file."""
    root = os.environ.get("XDG_CONFIG_HOME")
    base = Path(root).expanduser() if root else Path.home() / ".config"
    return base / "backfill" / CONFIG_FILENAME


def load_config(config_path: Path | None = None) -> BackfillConfig:
    """Read the config file (if present) and apply environment defaults."""
    path = config_path or default_config_path()
    if config_path is not None and not path.exists():
        message = f"Config file {path} does not exist."
        raise ConfigError(message)
    provider = _YamlConfig(path=str(path), must_exist=False)
    raw = provider.config or {}
    config = BackfillConfig.from_mapping(raw if isinstance(raw, dict) else {})
    if org := os.getenv(ORG_ENV):
        config = dataclasses.replace(config, org=org)
    return config


def resolve_token(explicit: str | None = None) -> str:
    """Return the GitHub token from the flag or the environment."""
    if not (token := explicit or os.getenv(TOKEN_ENV)):
        raise ConfigError(ERROR_TOKEN_REQUIRED)
    return token


def _string(value: object, key: str) -> str:
    if not isinstance(value, str) or not value.strip():
        message = f"{key} must be a non-empty string."
        raise ConfigError(message)
    return value.strip()


def _positive_int(value: object, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        message = f"{key} must be a positive integer, got {value!r}."
        raise ConfigError(message)
    return value
