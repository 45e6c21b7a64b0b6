# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The chart-automation contributors
"""Chart packaging and publishing to GitHub releases and OCI registries."""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

import pystache

from chart_automation import helm
from chart_automation.chart import ChartDescriptor, ChartSet, list_charts, read_chart
from chart_automation.config import Config, GitHubContext
from chart_automation.github import GitHubClient

logger = logging.getLogger(__name__)


@dataclass
class ChartPackage:
    """A packaged chart ready to be published."""

    name: str
    version: str
    type: str
    path: Path
    chart_dir: Path
    chart: ChartDescriptor


def _load_template(override: Path | None, name: str) -> str:
    """Read a template override, or the bundled template of the given name."""
    if override is not None:
        if not override.exists():
            raise FileNotFoundError(f"Template not found: {override}")
        return override.read_text()

    from importlib.resources import files as get_package_files

    return (get_package_files("chart_automation") / "templates" / name).read_text()


def package_charts(charts: ChartSet, config: Config, root: Path = Path(".")) -> list[ChartPackage]:
    """
    Package charts into <release packages>/<type dir>/.

    Charts that fail to package are logged and left out.

    Args:
        charts: Chart directories to package, relative to root
        config: Repository configuration
        root: Repository root

    Returns:
        The packages that were built
    """
    packages_root = root / config.release_packages
    word = "chart" if charts.total == 1 else "charts"
    logger.info(f"Packaging {charts.total} {word}...")

    packages: list[ChartPackage] = []
    for chart_type, chart_dirs in charts.by_type().items():
        destination = packages_root / config.chart_types[chart_type]
        destination.mkdir(parents=True, exist_ok=True)
        for chart_dir in chart_dirs:
            try:
                chart = read_chart(root / chart_dir)
                helm.dependency_update(root / chart_dir)
                archive = helm.package(root / chart_dir, destination)
            except (FileNotFoundError, ValueError, RuntimeError) as e:
                logger.error(f"✗ Failed to package '{chart_dir}' chart: {e}")
                continue
            packages.append(
                ChartPackage(
                    name=chart_dir.name,
                    version=chart.version,
                    type=chart_type,
                    path=archive,
                    chart_dir=chart_dir,
                    chart=chart,
                )
            )

    word = "chart" if len(packages) == 1 else "charts"
    logger.info(f"Successfully packaged {len(packages)} {word}")
    return packages


def render_release_notes(
    package: ChartPackage,
    config: Config,
    context: GitHubContext,
    root: Path = Path("."),
) -> str:
    """Render the release notes of a chart package."""
    template = _load_template(
        root / config.release_template if config.release_template else None,
        "release.md.mustache",
    )
    tag = config.release_tag(package.name, package.version)
    chart_yaml_url = f"{context.html_url}/blob/{tag}/{package.chart_dir}/Chart.yaml"
    has_icon = (root / package.chart_dir / config.chart_icon).exists()

    template_context = {
        "AppVersion": package.chart.app_version or "",
        "Branch": context.default_branch or "main",
        "Dependencies": [
            {
                "Name": dep.name,
                "Repository": dep.repository or "",
                "Source": chart_yaml_url,
                "Version": dep.version or "",
            }
            for dep in package.chart.dependencies
        ],
        "HasDependencies": bool(package.chart.dependencies),
        "Description": package.chart.description or "",
        "Icon": config.chart_icon if has_icon else None,
        "KubeVersion": package.chart.kube_version or "",
        "Name": package.name,
        "Owner": context.owner,
        "RepoRawURL": context.html_url.replace("github.com", "raw.githubusercontent.com"),
        "RepoURL": context.html_url,
        "RepositoryURL": f"{config.url}/{config.chart_types[package.type]}/{package.name}",
        "Type": config.chart_types[package.type],
        "Version": package.version,
    }
    # Markdown output: no HTML escaping
    renderer = pystache.Renderer(escape=lambda s: s)
    return renderer.render(template, template_context)


def publish_releases(
    packages: list[ChartPackage],
    config: Config,
    client: GitHubClient,
    root: Path = Path("."),
) -> list[str]:
    """
    Create a GitHub release for each package whose tag is not released yet.

    The archive is attached as <type>.tgz, which is the URL recorded in the
    chart's metadata.yaml.

    Returns:
        Tags of the releases that were created
    """
    if not config.packages_enabled:
        logger.info("Publishing of chart packages is disabled")
        return []
    if not packages:
        logger.info("No charts to publish to GitHub releases")
        return []

    word = "release" if len(packages) == 1 else "releases"
    logger.info(f"Publishing {len(packages)} GitHub {word}...")

    published: list[str] = []
    for package in packages:
        tag = config.release_tag(package.name, package.version)
        try:
            if client.get_release_by_tag(tag):
                logger.info(f"Release '{tag}' already exists, skipping")
                continue
            body = render_release_notes(package, config, client.context, root)
            release = client.create_release(tag, tag, body)
            asset_name = f"{package.chart_dir.parent.name}.tgz"
            client.upload_release_asset(release, asset_name, package.path.read_bytes())
        except (FileNotFoundError, RuntimeError) as e:
            logger.error(f"✗ Failed to publish '{tag}' release: {e}")
            continue
        logger.info(f"✓ Published '{tag}' release")
        published.append(tag)

    return published


def publish_oci(
    packages: list[ChartPackage],
    config: Config,
    client: GitHubClient,
) -> list[str]:
    """
    Push packages to the OCI registry under <registry>/<owner/repo>/<type>.

    Existing container packages of the charts are deleted first.

    Returns:
        Registry references that were pushed
    """
    if not config.oci_enabled:
        logger.info("Publishing of OCI packages is disabled")
        return []
    if not packages:
        logger.info("No packages to publish to OCI registry")
        return []

    context = client.context
    if not context.token:
        logger.warning("GitHub token not available, skipping OCI publishing")
        return []
    try:
        helm.registry_login(config.oci_registry, context.owner, context.token)
    except RuntimeError as e:
        logger.warning(f"OCI authentication failed, skipping OCI publishing: {e}")
        return []

    logger.info("Cleaning up existing OCI packages...")
    for package in packages:
        try:
            if client.delete_package(package.name, config.chart_types[package.type]):
                logger.info(f"Deleted existing OCI package for {package.name}")
        except RuntimeError as e:
            logger.warning(f"Could not delete OCI package for {package.name}: {e}")

    word = "package" if len(packages) == 1 else "packages"
    logger.info(f"Publishing {len(packages)} OCI {word}...")
    pushed: list[str] = []
    for package in packages:
        remote = (
            f"oci://{config.oci_registry}/{context.repository}/"
            f"{config.chart_types[package.type]}"
        )
        try:
            helm.push(package.path, remote)
        except RuntimeError as e:
            logger.error(f"✗ Failed to publish '{package.path.name}' to {remote}: {e}")
            continue
        logger.info(f"✓ Published '{package.path.name}' to {remote}")
        pushed.append(f"{remote}/{package.name}:{package.version}")

    return pushed


def generate_indexes(config: Config, output_dir: Path, root: Path = Path(".")) -> int:
    """
    Write a Helm repository index and redirect page for every chart.

    Each chart's metadata.yaml becomes <output>/<type dir>/<chart>/index.yaml,
    next to an index.html that redirects to it. Charts without metadata are
    skipped.

    Returns:
        Number of indexes generated
    """
    if not config.packages_enabled:
        logger.info("Chart indexes generation is disabled")
        return 0

    logger.info("Generating chart indexes...")
    template = _load_template(
        root / config.redirect_template if config.redirect_template else None,
        "redirect.html.mustache",
    )

    generated = 0
    for chart_dir in list_charts(config, root).all():
        metadata_path = root / chart_dir / "metadata.yaml"
        if not metadata_path.exists():
            logger.warning(f"No metadata.yaml found for {chart_dir}, skipping index generation")
            continue

        target_dir = output_dir / chart_dir
        target_dir.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(metadata_path, target_dir / "index.yaml")
        redirect = pystache.render(
            template,
            {"RepoURL": config.url, "Type": chart_dir.parent.name, "Name": chart_dir.name},
        )
        (target_dir / "index.html").write_text(redirect)
        logger.debug(f"Generated index for '{chart_dir}'")
        generated += 1

    if generated:
        word = "index" if generated == 1 else "indexes"
        logger.info(f"Successfully generated {generated} chart {word}")
    return generated
