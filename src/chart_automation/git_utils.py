# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The chart-automation contributors
"""Git utilities for staging and committing generated chart files."""

import base64
import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from chart_automation.github import GitHubClient

logger = logging.getLogger(__name__)


@dataclass
class GitStatus:
    """Files reported by git status --porcelain."""
    modified: list[str] = field(default_factory=list)
    untracked: list[str] = field(default_factory=list)


def _run_git(args: list[str], cwd: Path) -> str:
    """Run a git command and return its stdout without trailing newlines.

    Raises:
        RuntimeError: If the git command fails
    """
    cmd = ["git", *args]
    logger.debug(f"Executing: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            check=True,
        )
        return result.stdout.rstrip()
    except subprocess.CalledProcessError as e:
        raise RuntimeError(f"git {args[0]} failed in {cwd}: {e.stderr}") from e


def get_git_commit(path: Path, ref: str = "HEAD") -> str:
    """
    Get the commit hash a reference points at.

    Args:
        path: Directory inside the repository
        ref: Git reference

    Returns:
        Full commit hash (40 characters)

    Raises:
        RuntimeError: If not a git repository or git command fails
    """
    return _run_git(["rev-parse", ref], path)


def get_status(path: Path) -> GitStatus:
    """
    Parse git status --porcelain for a repository.

    Raises:
        RuntimeError: If not a git repository or git command fails
    """
    status = GitStatus()
    output = _run_git(["status", "--porcelain", "--untracked-files=all"], path)
    for line in output.splitlines():
        if not line:
            continue
        code, file = line[:2], line[3:]
        if "M" in code:
            status.modified.append(file)
        if "?" in code:
            status.untracked.append(file)
    return status


def configure_identity(path: Path, name: str, email: str) -> None:
    """Set the committer identity used for local git operations."""
    _run_git(["config", "user.email", email], path)
    _run_git(["config", "user.name", name], path)
    logger.info("Git repository configured successfully")


def _staged_paths(path: Path, diff_filter: str, files: list[str]) -> list[str]:
    output = _run_git(
        ["diff", "--staged", "--name-only", f"--diff-filter={diff_filter}", "--", *files],
        path,
    )
    return [line for line in output.splitlines() if line]


def signed_commit(
    path: Path,
    client: GitHubClient,
    branch: str,
    files: list[Path],
    message: str,
) -> int:
    """
    Commit files to a branch as a single GitHub-signed commit.

    The files are staged locally to determine what was added, modified or
    deleted, then committed server-side with createCommitOnBranch so the
    commit is signed by GitHub.

    Args:
        path: Repository root
        client: GitHub API client
        branch: Branch to commit to
        files: Files to commit, relative to path
        message: Commit message

    Returns:
        Number of files committed (0 when nothing was staged)

    Raises:
        RuntimeError: If git or the GitHub API fails
    """
    try:
        head = get_git_commit(path)
        _run_git(["fetch", "origin", branch], path)
        _run_git(["switch", branch], path)
        # -A also stages deletions of files that no longer exist
        paths = [str(f) for f in files]
        _run_git(["add", "-A", "--", *paths], path)

        additions = _staged_paths(path, "ACMRT", paths)
        deletions = _staged_paths(path, "D", paths)
        if not additions and not deletions:
            logger.info("There is nothing to commit.")
            return 0

        client.create_commit_on_branch(
            branch=branch,
            expected_head=head,
            message=message,
            additions=[
                {
                    "path": file,
                    "contents": base64.b64encode((path / file).read_bytes()).decode(),
                }
                for file in additions
            ],
            deletions=[{"path": file} for file in deletions],
        )
        # Move the local branch and index to the new commit for the next batch
        _run_git(["fetch", "origin", branch], path)
        _run_git(["reset", f"origin/{branch}"], path)
    except RuntimeError as e:
        raise RuntimeError(f"Failed to create signed commit on {branch}: {e}") from e

    count = len(additions) + len(deletions)
    word = "file" if count == 1 else "files"
    logger.info(f"Successfully committed {count} {word}")
    return count
