# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The chart-automation contributors
"""Command-line interface for chart-automation."""

import sys
from functools import partial
from pathlib import Path

import click

from chart_automation._version import __version__
from chart_automation.chart import find_charts, lint_charts, list_charts
from chart_automation.config import DEFAULT_CONFIG_PATH, Config, GitHubContext, load_config
from chart_automation.git_utils import configure_identity, signed_commit
from chart_automation.github import GitHubClient
from chart_automation.helm import check_helm_available
from chart_automation.release import (
    generate_indexes,
    package_charts,
    publish_oci,
    publish_releases,
)
from chart_automation.update import ChartUpdater, setup_logging


def _require_helm() -> None:
    if not check_helm_available():
        raise RuntimeError(
            "helm is not installed or not available in PATH. "
            "Please install helm: https://helm.sh/docs/intro/install/"
        )


def _make_updater(config: Config, repo_root: Path) -> ChartUpdater:
    """Build an updater that commits to the branch of the current run."""
    context = GitHubContext.from_env()
    if not context.head_ref:
        raise ValueError("GITHUB_HEAD_REF or GITHUB_REF_NAME must name the branch to commit to")

    client = GitHubClient(context)
    configure_identity(repo_root, config.user_name, config.user_email)
    return ChartUpdater(
        config=config,
        commit=partial(signed_commit, repo_root, client, context.head_ref),
        download_url=context.download_url,
        root=repo_root,
    )


def _run(action) -> None:
    """Run a command body, mapping errors to messages and exit codes."""
    try:
        ok = action()
    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except ValueError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except RuntimeError as e:
        click.echo(f"Runtime error: {e}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    if not ok:
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="chart-automation")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=DEFAULT_CONFIG_PATH,
    help="Configuration file",
    show_default=True,
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Show detailed output",
)
@click.pass_context
def main(ctx: click.Context, config_path: Path, verbose: bool) -> None:
    """Automate chart updates and releases in a Helm chart repository."""
    setup_logging(verbose=verbose)

    # Get the repository root (current working directory)
    repo_root = Path.cwd()
    try:
        config = load_config(repo_root / config_path)
    except ValueError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)

    if verbose:
        click.echo(f"Repository root: {repo_root}")
        click.echo(f"Configuration file: {repo_root / config_path}")
        click.echo()

    ctx.obj = {"config": config, "root": repo_root}


@main.command()
@click.argument("files", nargs=-1)
@click.pass_context
def chart(ctx: click.Context, files: tuple[str, ...]) -> None:
    """Update and lint the charts touched by FILES (default: the current event)."""
    config: Config = ctx.obj["config"]
    repo_root: Path = ctx.obj["root"]

    def action() -> bool:
        changed = list(files)
        if not changed:
            changed = GitHubClient(GitHubContext.from_env()).get_updated_files()

        charts = find_charts(changed, config, repo_root)
        if not charts.total:
            click.echo("No chart updates found")
            return True

        _require_helm()
        updater = _make_updater(config, repo_root)
        results = [
            updater.application(charts.all()),
            updater.lock(charts.all()),
            updater.metadata(charts.all()),
            lint_charts(charts.all(), repo_root),
        ]
        return all(results)

    _run(action)


@main.command("update-metadata")
@click.argument("chart_dirs", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.pass_context
def update_metadata(ctx: click.Context, chart_dirs: tuple[Path, ...]) -> None:
    """Record the current version of each chart in its metadata.yaml."""
    config: Config = ctx.obj["config"]
    repo_root: Path = ctx.obj["root"]

    def action() -> bool:
        _require_helm()
        updater = _make_updater(config, repo_root)
        return updater.metadata(list(chart_dirs))

    _run(action)


@main.command()
@click.option(
    "--output-dir",
    "-o",
    type=click.Path(exists=False, path_type=Path),
    default=Path("_site"),
    help="Output directory for chart indexes",
    show_default=True,
)
@click.pass_context
def release(ctx: click.Context, output_dir: Path) -> None:
    """Package every chart and publish releases, indexes and OCI packages."""
    config: Config = ctx.obj["config"]
    repo_root: Path = ctx.obj["root"]

    def action() -> bool:
        charts = list_charts(config, repo_root)
        if not charts.total:
            click.echo("No charts found")
            return True

        _require_helm()
        client = GitHubClient(GitHubContext.from_env())
        packages = package_charts(charts, config, repo_root)
        if not packages:
            click.echo("No chart packages available for publishing", err=True)
            return False

        published = publish_releases(packages, config, client, repo_root)
        generate_indexes(config, repo_root / output_dir, repo_root)
        pushed = publish_oci(packages, config, client)

        click.echo(
            f"✓ Packaged {len(packages)} chart(s), published {len(published)} "
            f"release(s) and {len(pushed)} OCI package(s)"
        )
        return len(packages) == charts.total

    _run(action)


if __name__ == "__main__":
    main()
