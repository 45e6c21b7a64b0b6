# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The chart-automation contributors
"""Chart.yaml parsing and chart discovery."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from chart_automation import helm
from chart_automation.config import CHART_TYPES, Config

logger = logging.getLogger(__name__)


@dataclass
class ChartDependency:
    """A dependency declared in Chart.yaml."""
    name: str
    version: str | None
    repository: str | None


@dataclass
class ChartDescriptor:
    """Parsed Chart.yaml content."""
    name: str
    version: str
    app_version: str | None = None
    description: str | None = None
    kube_version: str | None = None
    dependencies: list[ChartDependency] = field(default_factory=list)


@dataclass
class ChartSet:
    """Chart directories grouped by chart type."""
    application: list[Path] = field(default_factory=list)
    library: list[Path] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.application) + len(self.library)

    def all(self) -> list[Path]:
        return [*self.application, *self.library]

    def by_type(self) -> dict[str, list[Path]]:
        return {"application": self.application, "library": self.library}


def read_chart(chart_dir: Path) -> ChartDescriptor:
    """
    Parse the Chart.yaml of a chart directory.

    Args:
        chart_dir: Chart directory

    Returns:
        Parsed chart descriptor

    Raises:
        FileNotFoundError: If Chart.yaml does not exist
        ValueError: If Chart.yaml is malformed
    """
    path = chart_dir / "Chart.yaml"
    if not path.exists():
        raise FileNotFoundError(f"Chart.yaml not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Chart.yaml must be a YAML mapping: {path}")
    for key in ("name", "version"):
        if not data.get(key):
            raise ValueError(f"Missing required field '{key}' in {path}")

    dependencies: list[ChartDependency] = []
    for dep in data.get("dependencies") or []:
        if "name" not in dep:
            raise ValueError(f"Each dependency entry requires 'name': {path}")
        dependencies.append(
            ChartDependency(
                name=dep["name"],
                version=dep.get("version"),
                repository=dep.get("repository"),
            )
        )

    return ChartDescriptor(
        name=data["name"],
        # YAML reads an unquoted 1.0 as a float
        version=str(data["version"]),
        app_version=str(data["appVersion"]) if data.get("appVersion") else None,
        description=data.get("description"),
        kube_version=data.get("kubeVersion"),
        dependencies=dependencies,
    )


def find_charts(files: list[str], config: Config, root: Path = Path(".")) -> ChartSet:
    """
    Find the chart directories touched by a list of changed files.

    A file maps to a chart when its path is <type dir>/<chart>/... and
    <type dir>/<chart>/Chart.yaml exists under root.

    Args:
        files: Changed file paths, relative to the repository root
        config: Repository configuration
        root: Repository root

    Returns:
        Touched chart directories, relative to root
    """
    found: dict[str, set[Path]] = {t: set() for t in CHART_TYPES}
    for file in files:
        parts = Path(file).parts
        if len(parts) < 3:
            continue
        for chart_type, directory in config.chart_types.items():
            if parts[0] == directory:
                chart_dir = Path(parts[0], parts[1])
                if (root / chart_dir / "Chart.yaml").exists():
                    found[chart_type].add(chart_dir)

    charts = ChartSet(
        application=sorted(found["application"]),
        library=sorted(found["library"]),
    )
    if charts.total:
        word = "chart" if charts.total == 1 else "charts"
        logger.info(f"Found {charts.total} modified {word}")
    return charts


def list_charts(config: Config, root: Path = Path(".")) -> ChartSet:
    """
    List every chart in the repository.

    Args:
        config: Repository configuration
        root: Repository root

    Returns:
        All chart directories, relative to root
    """
    found: dict[str, list[Path]] = {}
    for chart_type, directory in config.chart_types.items():
        type_dir = root / directory
        if not type_dir.is_dir():
            found[chart_type] = []
            continue
        found[chart_type] = sorted(
            Path(directory) / chart_yaml.parent.name
            for chart_yaml in type_dir.glob("*/Chart.yaml")
        )
    return ChartSet(application=found["application"], library=found["library"])


def lint_charts(charts: list[Path], root: Path = Path(".")) -> bool:
    """
    Lint charts with helm lint --strict.

    Args:
        charts: Chart directories, relative to root
        root: Repository root

    Returns:
        True if every chart passed
    """
    if not charts:
        return True

    word = "chart" if len(charts) == 1 else "charts"
    logger.info(f"Linting {len(charts)} {word}...")
    success = True
    for chart_dir in charts:
        try:
            helm.lint(root / chart_dir, strict=True)
            logger.info(f"✓ Lint passed for {chart_dir}")
        except RuntimeError as e:
            logger.error(f"✗ Lint failed for {chart_dir}: {e}")
            success = False
    return success
