# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The chart-automation contributors
"""Helm command execution for packaging and publishing charts."""

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

PACKAGED_MARKER = "Successfully packaged chart and saved it to:"


def check_helm_available() -> bool:
    """
    Check if helm is installed and available.

    Returns:
        True if helm is available, False otherwise
    """
    try:
        subprocess.run(
            ["helm", "version", "--short"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        return True
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return False


def _run_helm(
    args: list[str],
    description: str,
    timeout: int = 120,
    stdin: str | None = None,
    redact: bool = False,
) -> str:
    """Run a helm command and return its stdout.

    Raises:
        RuntimeError: If helm is missing, fails or times out
    """
    cmd = ["helm", *args]
    cmd_str = " ".join(cmd)
    logger.debug(f"Executing: {cmd_str}")

    try:
        result = subprocess.run(
            cmd,
            input=stdin,
            capture_output=True,
            text=True,
            check=True,
            timeout=timeout,
        )
        return result.stdout
    except FileNotFoundError as e:
        raise RuntimeError(
            "helm is not installed or not available in PATH. "
            "Please install helm: https://helm.sh/docs/intro/install/"
        ) from e
    except subprocess.CalledProcessError as e:
        stderr = "<redacted>" if redact else e.stderr
        raise RuntimeError(
            f"helm {description} failed:\n  Command: {cmd_str}\n  Error: {stderr}"
        ) from e
    except subprocess.TimeoutExpired as e:
        raise RuntimeError(
            f"helm {description} timed out:\n  Command: {cmd_str}"
        ) from e


def lint(chart_dir: Path, strict: bool = True) -> None:
    """
    Lint a chart.

    Raises:
        RuntimeError: If linting fails
    """
    args = ["lint", str(chart_dir)]
    if strict:
        args.append("--strict")
    _run_helm(args, f"lint for {chart_dir}", timeout=60)


def package(chart_dir: Path, destination: Path) -> Path:
    """
    Package a chart into a .tgz archive.

    Args:
        chart_dir: Chart directory
        destination: Directory to write the archive into

    Returns:
        Path to the packaged archive

    Raises:
        RuntimeError: If helm package fails
    """
    output = _run_helm(
        ["package", str(chart_dir), "--destination", str(destination)],
        f"package for {chart_dir}",
    )
    for line in output.splitlines():
        if PACKAGED_MARKER in line:
            archive = Path(line.split(PACKAGED_MARKER, 1)[1].strip())
            logger.debug(f"Packaged {chart_dir} to {archive}")
            return archive
    raise RuntimeError(f"helm package for {chart_dir} did not report an archive path")


def repo_index(directory: Path, url: str | None = None) -> Path:
    """
    Generate a repository index for the archives in a directory.

    Args:
        directory: Directory containing packaged charts
        url: URL prefix for the generated chart URLs

    Returns:
        Path to the generated index.yaml

    Raises:
        RuntimeError: If helm repo index fails
    """
    args = ["repo", "index", str(directory)]
    if url:
        args.extend(["--url", url])
    _run_helm(args, f"repo index for {directory}")
    return directory / "index.yaml"


def dependency_update(chart_dir: Path) -> None:
    """
    Update the dependencies of a chart, rewriting Chart.lock.

    Raises:
        RuntimeError: If helm dependency update fails
    """
    _run_helm(
        ["dependency", "update", str(chart_dir)],
        f"dependency update for {chart_dir}",
        timeout=300,
    )


def registry_login(registry: str, username: str, password: str) -> None:
    """
    Log into an OCI registry, passing the password on stdin.

    Raises:
        RuntimeError: If the login fails
    """
    logger.info(f"Logging into '{registry}' OCI registry...")
    _run_helm(
        ["registry", "login", registry, "-u", username, "--password-stdin"],
        f"registry login to {registry}",
        timeout=60,
        stdin=password,
        redact=True,
    )


def push(archive: Path, remote: str) -> None:
    """
    Push a packaged chart to an OCI registry.

    Args:
        archive: Path to the chart archive
        remote: Registry reference, e.g. oci://ghcr.io/owner/repo/application

    Raises:
        RuntimeError: If the push fails
    """
    _run_helm(["push", str(archive), remote], f"push of {archive.name}", timeout=300)
