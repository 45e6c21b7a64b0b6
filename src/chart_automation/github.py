# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The chart-automation contributors
"""GitHub REST and GraphQL API access."""

import logging
import re
from urllib.parse import quote

import requests

from chart_automation.config import GitHubContext

logger = logging.getLogger(__name__)

CREATE_COMMIT_MUTATION = """
mutation ($input: CreateCommitOnBranchInput!) {
  createCommitOnBranch(input: $input) {
    commit { oid url }
  }
}
"""


class GitHubClient:
    """Thin client for the GitHub endpoints used by the release automation."""

    def __init__(self, context: GitHubContext, timeout: int = 30) -> None:
        self.context = context
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers["Accept"] = "application/vnd.github+json"
        self.session.headers["X-GitHub-Api-Version"] = "2022-11-28"
        if context.token:
            self.session.headers["Authorization"] = f"Bearer {context.token}"

    def _url(self, path: str) -> str:
        return f"{self.context.api_url.rstrip('/')}{path}"

    def _request(self, method: str, url: str, allow: tuple[int, ...] = (), **kwargs) -> requests.Response:
        """Send a request, raising RuntimeError on any status not in allow."""
        logger.debug(f"{method} {url}")
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise RuntimeError(f"GitHub API request {method} {url} failed: {e}") from e
        if response.status_code in allow:
            return response
        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise RuntimeError(
                f"GitHub API request {method} {url} failed with "
                f"{response.status_code}: {response.text}"
            ) from e
        return response

    def _paginate(self, path: str, params: dict | None = None) -> list:
        items: list = []
        url: str | None = self._url(path)
        params = {"per_page": 100, **(params or {})}
        while url:
            response = self._request("GET", url, params=params)
            items.extend(response.json())
            url = response.links.get("next", {}).get("url")
            params = None  # the next link already carries the query
        return items

    def get_release_by_tag(self, tag: str) -> dict | None:
        """Return the release for a tag, or None if there is none."""
        response = self._request(
            "GET",
            self._url(f"/repos/{self.context.repository}/releases/tags/{quote(tag)}"),
            allow=(404,),
        )
        if response.status_code == 404:
            return None
        return response.json()

    def create_release(self, tag: str, name: str, body: str) -> dict:
        response = self._request(
            "POST",
            self._url(f"/repos/{self.context.repository}/releases"),
            json={
                "tag_name": tag,
                "name": name,
                "body": body,
                "draft": False,
                "prerelease": False,
            },
        )
        release = response.json()
        logger.info(f"Created release '{tag}' (id {release['id']})")
        return release

    def upload_release_asset(self, release: dict, name: str, data: bytes) -> dict:
        """Upload an asset to a release created by create_release()."""
        # upload_url is a URI template: .../assets{?name,label}
        upload_url = re.sub(r"\{.*\}$", "", release["upload_url"])
        response = self._request(
            "POST",
            upload_url,
            params={"name": name},
            data=data,
            headers={"Content-Type": "application/octet-stream"},
        )
        logger.info(f"Uploaded asset {name} to release {release['id']}")
        return response.json()

    def delete_package(self, name: str, chart_type: str) -> bool:
        """
        Delete the container package of a chart from GHCR.

        Returns:
            True if a package was deleted, False if none existed
        """
        package = quote(f"{self.context.repository.split('/', 1)[1]}/{chart_type}/{name}", safe="")
        owner = self.context.owner
        for scope in ("orgs", "users"):
            response = self._request(
                "DELETE",
                self._url(f"/{scope}/{owner}/packages/container/{package}"),
                allow=(404,),
            )
            if response.status_code != 404:
                return True
        return False

    def get_updated_files(self) -> list[str]:
        """
        List the files changed by the event that triggered this run.

        Pull requests list the PR's files; other events compare the pushed
        range. Returns an empty list when the event carries neither.
        """
        repository = self.context.repository
        if self.context.event_name.startswith("pull_request"):
            if not self.context.pull_request:
                logger.warning("Pull request data missing from event payload")
                return []
            files = self._paginate(
                f"/repos/{repository}/pulls/{self.context.pull_request}/files"
            )
            return [f["filename"] for f in files]

        if not self.context.before or not self.context.after:
            logger.warning("Commit data missing from event payload")
            return []
        response = self._request(
            "GET",
            self._url(
                f"/repos/{repository}/compare/{self.context.before}...{self.context.after}"
            ),
        )
        files = [f["filename"] for f in response.json().get("files", [])]
        logger.info(f"Found {len(files)} files in {self.context.event_name} event")
        return files

    def create_commit_on_branch(
        self,
        branch: str,
        expected_head: str,
        message: str,
        additions: list[dict],
        deletions: list[dict],
    ) -> str:
        """
        Create a commit through the GraphQL API so that GitHub signs it.

        Args:
            branch: Branch to commit to
            expected_head: Commit the branch must currently point at
            message: Commit message
            additions: [{"path": ..., "contents": <base64>}, ...]
            deletions: [{"path": ...}, ...]

        Returns:
            The new commit's oid

        Raises:
            RuntimeError: If the mutation fails
        """
        headline, _, body = message.partition("\n")
        variables = {
            "input": {
                "branch": {
                    "repositoryNameWithOwner": self.context.repository,
                    "branchName": branch,
                },
                "expectedHeadOid": expected_head,
                "message": {"headline": headline, "body": body.strip()},
                "fileChanges": {"additions": additions, "deletions": deletions},
            }
        }
        response = self._request(
            "POST",
            self.context.graphql_url,
            json={"query": CREATE_COMMIT_MUTATION, "variables": variables},
        )
        payload = response.json()
        if payload.get("errors"):
            messages = "; ".join(e.get("message", "") for e in payload["errors"])
            raise RuntimeError(f"createCommitOnBranch on {branch} failed: {messages}")
        return payload["data"]["createCommitOnBranch"]["commit"]["oid"]
