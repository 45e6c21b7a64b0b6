# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The chart-automation contributors
"""Chart metadata files and version-index merging.

A chart's metadata.yaml has the shape of a Helm repository index restricted
to that chart:

    apiVersion: v1
    entries:
      mychart:
        - version: 1.2.0
          urls: [https://.../mychart-1.2.0/application.tgz]
          appVersion: ...
    generated: ...

Entries are kept newest first, unique by version, and bounded by the
configured retention.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml
import semver

logger = logging.getLogger(__name__)


@dataclass
class VersionEntry:
    """One published version of one chart."""

    version: str
    urls: list[str]
    # Fields emitted by `helm repo index` (appVersion, created, digest, ...)
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict, source: Path | None = None) -> "VersionEntry":
        if not isinstance(data, dict) or "version" not in data:
            raise ValueError(f"Index entry without a version in {source}: {data!r}")
        extra = {k: v for k, v in data.items() if k not in ("version", "urls")}
        return cls(
            version=str(data["version"]),
            urls=list(data.get("urls") or []),
            extra=extra,
        )

    def to_dict(self) -> dict:
        return {"version": self.version, "urls": list(self.urls), **self.extra}


@dataclass
class ChartMetadata:
    """Parsed metadata.yaml (or index.yaml) content."""

    entries: dict[str, list[VersionEntry]] = field(default_factory=dict)
    # Top-level keys other than entries (apiVersion, generated, ...)
    extra: dict = field(default_factory=dict)

    def has_version(self, chart_name: str, version: str) -> bool:
        wanted = normalize_version(version)
        return any(
            normalize_version(e.version) == wanted
            for e in self.entries.get(chart_name, [])
        )

    @classmethod
    def from_dict(cls, data: dict, source: Path | None = None) -> "ChartMetadata":
        if not isinstance(data, dict):
            raise ValueError(f"Metadata must be a YAML mapping: {source}")
        raw_entries = data.get("entries") or {}
        if not isinstance(raw_entries, dict):
            raise ValueError(f"'entries' must be a mapping of chart names: {source}")
        entries = {
            name: [VersionEntry.from_dict(e, source) for e in versions or []]
            for name, versions in raw_entries.items()
        }
        extra = {k: v for k, v in data.items() if k != "entries"}
        return cls(entries=entries, extra=extra)

    def to_dict(self) -> dict:
        data: dict = {}
        if "apiVersion" in self.extra:
            data["apiVersion"] = self.extra["apiVersion"]
        data["entries"] = {
            name: [e.to_dict() for e in versions]
            for name, versions in self.entries.items()
        }
        for key, value in self.extra.items():
            if key != "apiVersion":
                data[key] = value
        return data


def read_metadata(path: Path) -> ChartMetadata | None:
    """
    Read a metadata file.

    Args:
        path: Path to metadata.yaml

    Returns:
        Parsed metadata, or None if the file does not exist

    Raises:
        ValueError: If the file is malformed
    """
    if not path.exists():
        return None

    with open(path) as f:
        data = yaml.safe_load(f)

    if data is None:
        return ChartMetadata()
    return ChartMetadata.from_dict(data, path)


def write_metadata(path: Path, metadata: ChartMetadata) -> None:
    """Write a metadata file, keeping the key order of each entry."""
    with open(path, "w") as f:
        yaml.safe_dump(metadata.to_dict(), f, default_flow_style=False, sort_keys=False)


def normalize_version(version: str) -> str:
    """Strip the optional leading "v" of a chart version."""
    return version[1:] if version[:1] in ("v", "V") else version


def version_key(version: str) -> tuple:
    """
    Sort key giving version precedence.

    Chart versions compare by SemVer 2 rules (an optional leading "v" is
    ignored, and a missing minor or patch counts as 0). Pre-releases such as
    1.0.0-1 or 1.0.0-alpha.beta sort before their release. Versions that are
    not SemVer sort below every SemVer one and compare among themselves as
    strings.
    """
    try:
        parsed = semver.Version.parse(
            normalize_version(version), optional_minor_and_patch=True
        )
    except ValueError:
        return (0, semver.Version(0), version)
    return (1, parsed, "")


def merge_entries(
    chart_name: str,
    fresh: list[VersionEntry],
    existing: list[VersionEntry],
    retention: int,
) -> list[VersionEntry]:
    """
    Merge freshly generated index entries into the existing ones.

    Entries are sorted newest first and de-duplicated by version, ignoring a
    leading "v". When a version is present in both lists the fresh entry is
    kept, so freshly computed URLs replace stale ones. With a positive retention only the
    newest `retention` versions survive.

    Args:
        chart_name: Chart the entries belong to
        fresh: Entries from the newly generated index fragment
        existing: Entries already recorded in metadata.yaml
        retention: Maximum number of versions to keep; 0 keeps all

    Returns:
        Merged entries, newest first
    """
    # sorted() stays stable with reverse=True, so fresh entries remain ahead
    # of existing entries with the same version
    ordered = sorted(
        [*fresh, *existing], key=lambda e: version_key(e.version), reverse=True
    )
    seen: set[str] = set()
    merged: list[VersionEntry] = []
    for entry in ordered:
        version = normalize_version(entry.version)
        if version in seen:
            continue
        seen.add(version)
        merged.append(entry)

    if retention > 0 and len(merged) > retention:
        logger.debug(
            f"Dropping {len(merged) - retention} old version(s) of {chart_name} "
            f"(retention {retention})"
        )
        merged = merged[:retention]
    return merged
