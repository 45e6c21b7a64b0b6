# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The chart-automation contributors
"""Configuration parsing and validation for chart-automation."""

import json
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

CHART_TYPES = ("application", "library")

DEFAULT_CONFIG_PATH = Path(".github/chart-automation.toml")


def _default_chart_types() -> dict[str, str]:
    return {chart_type: chart_type for chart_type in CHART_TYPES}


@dataclass
class Config:
    """Repository configuration, populated once at startup."""

    url: str = "https://axivo.github.io/charts"
    chart_icon: str = "icon.png"
    chart_types: dict[str, str] = field(default_factory=_default_chart_types)
    packages_enabled: bool = True
    retention: int = 10  # 0 keeps every version
    oci_registry: str = "ghcr.io"
    oci_enabled: bool = True
    release_packages: Path = Path(".cr-release-packages")
    release_title: str = "{{ .Name }}-{{ .Version }}"
    release_template: Path | None = None  # None uses the bundled template
    redirect_template: Path | None = None
    user_name: str = "github-actions[bot]"
    user_email: str = "41898282+github-actions[bot]@users.noreply.github.com"

    def release_tag(self, name: str, version: str) -> str:
        """Render the release title template for a chart version."""
        return self.release_title.replace("{{ .Name }}", name).replace(
            "{{ .Version }}", version
        )


@dataclass
class GitHubContext:
    """The GitHub Actions run this process belongs to."""

    repository: str  # "owner/repo"
    server_url: str = "https://github.com"
    api_url: str = "https://api.github.com"
    graphql_url: str = "https://api.github.com/graphql"
    token: str | None = None
    head_ref: str | None = None
    default_branch: str | None = None
    event_name: str = "push"
    pull_request: int | None = None
    before: str | None = None
    after: str | None = None

    @property
    def owner(self) -> str:
        return self.repository.split("/", 1)[0]

    @property
    def html_url(self) -> str:
        return f"{self.server_url.rstrip('/')}/{self.repository}"

    @property
    def download_url(self) -> str:
        """Base URL that release assets are downloaded from."""
        return f"{self.html_url}/releases/download"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "GitHubContext":
        """
        Build the context from the GitHub Actions environment.

        Args:
            environ: Environment mapping (default: os.environ)

        Returns:
            Context for the current run

        Raises:
            ValueError: If GITHUB_REPOSITORY is not set
        """
        env = os.environ if environ is None else environ
        repository = env.get("GITHUB_REPOSITORY")
        if not repository or "/" not in repository:
            raise ValueError(
                "GITHUB_REPOSITORY must be set to 'owner/repo' "
                "(are we running inside GitHub Actions?)"
            )

        payload: dict = {}
        event_path = env.get("GITHUB_EVENT_PATH")
        if event_path and Path(event_path).exists():
            with open(event_path) as f:
                payload = json.load(f)

        pull_request = (payload.get("pull_request") or {}).get("number")
        default_branch = (payload.get("repository") or {}).get("default_branch")

        return cls(
            repository=repository,
            server_url=env.get("GITHUB_SERVER_URL", "https://github.com"),
            api_url=env.get("GITHUB_API_URL", "https://api.github.com"),
            graphql_url=env.get("GITHUB_GRAPHQL_URL", "https://api.github.com/graphql"),
            token=env.get("GITHUB_TOKEN") or None,
            head_ref=env.get("GITHUB_HEAD_REF") or env.get("GITHUB_REF_NAME") or None,
            default_branch=default_branch,
            event_name=env.get("GITHUB_EVENT_NAME", "push"),
            pull_request=pull_request,
            before=payload.get("before"),
            after=payload.get("after"),
        )


_KNOWN_KEYS = {
    "repository": {"url", "chart", "oci", "release", "user"},
    "repository.chart": {"icon", "types", "packages"},
    "repository.chart.packages": {"enabled", "retention"},
    "repository.oci": {"registry", "packages_enabled"},
    "repository.release": {"packages", "title", "template", "redirect_template"},
    "repository.user": {"name", "email"},
}


def _check_keys(table: dict, section: str, source_file: Path) -> None:
    if not isinstance(table, dict):
        raise ValueError(f"[{section}] must be a table in {source_file}")
    unknown = set(table) - _KNOWN_KEYS[section]
    if unknown:
        raise ValueError(
            f"Unknown key(s) {sorted(unknown)} in [{section}] of {source_file}"
        )


def _expect(value: object, kind: type, key: str, source_file: Path) -> object:
    # bool is an int subclass; reject it where an integer is expected
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ValueError(
            f"'{key}' must be of type {kind.__name__} in {source_file}, "
            f"got {type(value).__name__}"
        )
    return value


def load_config(path: Path | None = None) -> Config:
    """
    Load the repository configuration from a TOML file.

    A missing file yields the defaults.

    Args:
        path: Path to the TOML configuration file

    Returns:
        Parsed configuration

    Raises:
        ValueError: If the TOML is invalid or contains unknown or mistyped keys
    """
    if path is None or not path.exists():
        return Config()

    with open(path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {path}: {e}") from e

    unknown = set(data) - {"repository"}
    if unknown:
        raise ValueError(f"Unknown table(s) {sorted(unknown)} in {path}")

    return _parse_repository(data.get("repository", {}), path)


def _parse_repository(data: dict, source_file: Path) -> Config:
    """Parse the [repository] table into a Config."""
    _check_keys(data, "repository", source_file)
    config = Config()

    if "url" in data:
        config.url = _expect(data["url"], str, "url", source_file)

    chart = data.get("chart", {})
    _check_keys(chart, "repository.chart", source_file)
    if "icon" in chart:
        config.chart_icon = _expect(chart["icon"], str, "icon", source_file)
    if "types" in chart:
        types = _expect(chart["types"], dict, "types", source_file)
        if set(types) != set(CHART_TYPES):
            raise ValueError(
                f"'types' must map exactly {list(CHART_TYPES)} in {source_file}"
            )
        config.chart_types = {
            t: _expect(d, str, f"types.{t}", source_file) for t, d in types.items()
        }

    packages = chart.get("packages", {})
    _check_keys(packages, "repository.chart.packages", source_file)
    if "enabled" in packages:
        config.packages_enabled = _expect(
            packages["enabled"], bool, "enabled", source_file
        )
    if "retention" in packages:
        retention = _expect(packages["retention"], int, "retention", source_file)
        if retention < 0:
            raise ValueError(
                f"'retention' must be zero or positive in {source_file}, got {retention}"
            )
        config.retention = retention

    oci = data.get("oci", {})
    _check_keys(oci, "repository.oci", source_file)
    if "registry" in oci:
        config.oci_registry = _expect(oci["registry"], str, "registry", source_file)
    if "packages_enabled" in oci:
        config.oci_enabled = _expect(
            oci["packages_enabled"], bool, "packages_enabled", source_file
        )

    release = data.get("release", {})
    _check_keys(release, "repository.release", source_file)
    if "packages" in release:
        config.release_packages = Path(
            _expect(release["packages"], str, "packages", source_file)
        )
    if "title" in release:
        config.release_title = _expect(release["title"], str, "title", source_file)
    if release.get("template"):
        config.release_template = Path(
            _expect(release["template"], str, "template", source_file)
        )
    if release.get("redirect_template"):
        config.redirect_template = Path(
            _expect(release["redirect_template"], str, "redirect_template", source_file)
        )

    user = data.get("user", {})
    _check_keys(user, "repository.user", source_file)
    if "name" in user:
        config.user_name = _expect(user["name"], str, "name", source_file)
    if "email" in user:
        config.user_email = _expect(user["email"], str, "email", source_file)

    return config
