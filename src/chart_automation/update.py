# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The chart-automation contributors
"""Per-chart file updates, batched into one commit per file type."""

import enum
import logging
import tempfile
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import yaml

from chart_automation import helm
from chart_automation.chart import read_chart
from chart_automation.config import Config
from chart_automation.git_utils import get_status
from chart_automation.index import (
    ChartMetadata,
    merge_entries,
    read_metadata,
    write_metadata,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8

# Commits the given files with the given message, returning the file count
Committer = Callable[[list[Path], str], int]


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with a formatter for console output.

    Args:
        verbose: If True, set log level to DEBUG; otherwise INFO
    """
    formatter = logging.Formatter(
        "[%(asctime)s] [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S %z",
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)


class UpdateOutcome(enum.Enum):
    """What happened to one chart in a batch."""

    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ChartResult:
    """Result of updating one chart."""

    chart_dir: Path
    outcome: UpdateOutcome
    files: list[Path] = field(default_factory=list)


@dataclass
class ChangeSet:
    """Files changed and per-chart outcomes of one batch."""

    files: list[Path] = field(default_factory=list)
    outcomes: list[UpdateOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return UpdateOutcome.FAILED not in self.outcomes


def commit_changes(files: list[Path], change_type: str, commit: Committer) -> None:
    """
    Commit the files changed by a batch, as a single commit.

    Nothing is committed when no file changed.

    Args:
        files: Changed files, relative to the repository root
        change_type: Kind of files, used in the commit message
        commit: Commit collaborator

    Raises:
        RuntimeError: If the commit fails
    """
    if not files:
        logger.info(f"No {change_type} file changes to commit")
        return

    word = "file" if len(files) == 1 else "files"
    commit(list(files), f"chore(github-action): update {change_type} {word}")


def generate_index_fragment(
    chart_dir: Path,
    scratch_dir: Path,
    config: Config,
    download_url: str,
) -> ChartMetadata:
    """
    Package a chart and generate the repository index for that package alone.

    The generated URLs are rewritten to the chart's release asset:
    <download_url>/<release tag>/<chart type>.tgz

    Args:
        chart_dir: Chart directory
        scratch_dir: Empty directory to package into
        config: Repository configuration
        download_url: Base URL of release downloads

    Returns:
        Index holding the packaged version of the chart

    Raises:
        RuntimeError: If packaging or indexing fails
        ValueError: If the generated index does not contain the chart
    """
    chart_name = chart_dir.name
    asset_name = f"{chart_dir.parent.name}.tgz"

    helm.package(chart_dir, scratch_dir)
    index_path = helm.repo_index(scratch_dir, url=download_url)

    index = read_metadata(index_path)
    if index is None or not index.entries.get(chart_name):
        raise ValueError(f"Generated index for {chart_dir} has no '{chart_name}' entry")

    for entry in index.entries[chart_name]:
        tag = config.release_tag(chart_name, entry.version)
        entry.urls = [f"{download_url}/{tag}/{asset_name}"]
    return index


class ChartUpdater:
    """Updates generated chart files and commits them per file type."""

    def __init__(
        self,
        config: Config,
        commit: Committer,
        download_url: str,
        root: Path = Path("."),
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        self.config = config
        self.commit = commit
        self.download_url = download_url
        self.root = root
        self.max_workers = max_workers

    def _run_batch(
        self,
        charts: list[Path],
        change_type: str,
        update: Callable[[Path], ChartResult],
    ) -> bool:
        """Run update for every chart concurrently and commit the changed files.

        A failing chart does not stop the others. Commit errors propagate.
        """
        if not charts:
            return True

        word = "chart" if len(charts) == 1 else "charts"
        logger.info(f"Updating {change_type} files for {len(charts)} {word}...")

        def run(chart_dir: Path) -> ChartResult:
            try:
                return update(chart_dir)
            except Exception as e:
                logger.error(f"✗ Failed to update '{chart_dir}' {change_type} file: {e}")
                return ChartResult(chart_dir, UpdateOutcome.FAILED)

        changes = ChangeSet()
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(run, chart_dir) for chart_dir in charts]
            for future in as_completed(futures):
                result = future.result()
                changes.outcomes.append(result.outcome)
                changes.files.extend(result.files)

        # Completion order varies; keep commits reproducible
        changes.files.sort()
        commit_changes(changes.files, change_type, self.commit)

        counts = {o: changes.outcomes.count(o) for o in UpdateOutcome}
        logger.info(
            f"{change_type.capitalize()} files: "
            f"{counts[UpdateOutcome.UPDATED]} updated, "
            f"{counts[UpdateOutcome.SKIPPED]} up to date, "
            f"{counts[UpdateOutcome.FAILED]} failed"
        )
        return changes.succeeded

    def _update_metadata(self, chart_dir: Path) -> ChartResult:
        chart_name = chart_dir.name
        metadata_file = chart_dir / "metadata.yaml"
        metadata_path = self.root / metadata_file

        chart = read_chart(self.root / chart_dir)
        metadata = read_metadata(metadata_path)
        if metadata is not None and metadata.has_version(chart_name, chart.version):
            logger.info(f"'{chart_dir}' metadata is already up to date ({chart.version})")
            return ChartResult(chart_dir, UpdateOutcome.SKIPPED)

        with tempfile.TemporaryDirectory(prefix="helm-metadata-") as scratch:
            index = generate_index_fragment(
                self.root / chart_dir, Path(scratch), self.config, self.download_url
            )

        existing = metadata.entries.get(chart_name, []) if metadata else []
        index.entries[chart_name] = merge_entries(
            chart_name, index.entries[chart_name], existing, self.config.retention
        )
        if metadata is not None:
            for name, entries in metadata.entries.items():
                index.entries.setdefault(name, entries)

        write_metadata(metadata_path, index)
        logger.info(f"✓ Updated '{chart_dir}' metadata file ({chart.version})")
        return ChartResult(chart_dir, UpdateOutcome.UPDATED, [metadata_file])

    def metadata(self, charts: list[Path]) -> bool:
        """
        Record the current version of each chart in its metadata.yaml.

        Charts whose current version is already recorded are skipped.

        Args:
            charts: Chart directories, relative to the repository root

        Returns:
            True if no chart failed

        Raises:
            RuntimeError: If committing the changed files fails
        """
        return self._run_batch(charts, "metadata", self._update_metadata)

    def _update_application(self, chart_dir: Path) -> ChartResult:
        app_file = chart_dir / "application.yaml"
        app_path = self.root / app_file
        if not app_path.exists():
            return ChartResult(chart_dir, UpdateOutcome.SKIPPED)

        chart = read_chart(self.root / chart_dir)
        with open(app_path) as f:
            app = yaml.safe_load(f)
        try:
            source = app["spec"]["source"]
        except (KeyError, TypeError) as e:
            raise ValueError(f"{app_file} has no spec.source") from e

        tag = self.config.release_tag(chart_dir.name, chart.version)
        if source.get("targetRevision") == tag:
            return ChartResult(chart_dir, UpdateOutcome.SKIPPED)

        source["targetRevision"] = tag
        with open(app_path, "w") as f:
            yaml.safe_dump(app, f, default_flow_style=False, sort_keys=False)
        logger.info(f"✓ Updated '{chart_dir}' application file ({tag})")
        return ChartResult(chart_dir, UpdateOutcome.UPDATED, [app_file])

    def application(self, charts: list[Path]) -> bool:
        """
        Point each chart's application.yaml at the chart's current release tag.

        Charts without an application.yaml are skipped.
        """
        return self._run_batch(charts, "application", self._update_application)

    def _update_lock(self, chart_dir: Path) -> ChartResult:
        lock_file = chart_dir / "Chart.lock"
        lock_path = self.root / lock_file

        chart = read_chart(self.root / chart_dir)
        if chart.dependencies:
            helm.dependency_update(self.root / chart_dir)
            status = get_status(self.root)
            if str(lock_file) in (*status.modified, *status.untracked):
                logger.info(f"✓ Updated '{chart_dir}' dependency lock file")
                return ChartResult(chart_dir, UpdateOutcome.UPDATED, [lock_file])
            return ChartResult(chart_dir, UpdateOutcome.SKIPPED)

        if lock_path.exists():
            lock_path.unlink()
            logger.info(f"✓ Removed '{chart_dir}' dependency lock file")
            return ChartResult(chart_dir, UpdateOutcome.UPDATED, [lock_file])
        return ChartResult(chart_dir, UpdateOutcome.SKIPPED)

    def lock(self, charts: list[Path]) -> bool:
        """
        Refresh Chart.lock for charts with dependencies; drop stale ones.
        """
        return self._run_batch(charts, "dependency lock", self._update_lock)
