# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The chart-automation contributors
"""Tests for the GitHub API client."""

from unittest.mock import MagicMock

import pytest
import requests

from chart_automation.config import GitHubContext
from chart_automation.github import GitHubClient


def response(status_code: int = 200, payload=None, links: dict | None = None) -> MagicMock:
    resp = MagicMock(status_code=status_code, text=str(payload), links=links or {})
    resp.json.return_value = payload
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return resp


def make_client(**context) -> GitHubClient:
    client = GitHubClient(GitHubContext(repository="acme/charts", token="secret", **context))
    client.session = MagicMock()
    return client


def test_session_headers() -> None:
    client = GitHubClient(GitHubContext(repository="acme/charts", token="secret"))

    assert client.session.headers["Authorization"] == "Bearer secret"
    assert client.session.headers["Accept"] == "application/vnd.github+json"


def test_get_release_by_tag_missing() -> None:
    client = make_client()
    client.session.request.return_value = response(404, {"message": "Not Found"})

    assert client.get_release_by_tag("foo-1.0.0") is None
    method, url = client.session.request.call_args[0]
    assert method == "GET"
    assert url == "https://api.github.com/repos/acme/charts/releases/tags/foo-1.0.0"


def test_get_release_by_tag_found() -> None:
    client = make_client()
    client.session.request.return_value = response(200, {"id": 7, "tag_name": "foo-1.0.0"})

    assert client.get_release_by_tag("foo-1.0.0") == {"id": 7, "tag_name": "foo-1.0.0"}


def test_request_error_becomes_runtime_error() -> None:
    client = make_client()
    client.session.request.return_value = response(500, {"message": "boom"})

    with pytest.raises(RuntimeError, match="failed with 500"):
        client.create_release("foo-1.0.0", "foo-1.0.0", "notes")


def test_connection_error_becomes_runtime_error() -> None:
    client = make_client()
    client.session.request.side_effect = requests.ConnectionError("unreachable")

    with pytest.raises(RuntimeError, match="unreachable"):
        client.get_release_by_tag("foo-1.0.0")


def test_upload_release_asset_strips_uri_template() -> None:
    client = make_client()
    client.session.request.return_value = response(201, {"id": 1})
    release = {
        "id": 7,
        "upload_url": "https://uploads.github.com/repos/acme/charts/releases/7/assets{?name,label}",
    }

    client.upload_release_asset(release, "application.tgz", b"archive")

    args, kwargs = client.session.request.call_args
    assert args == ("POST", "https://uploads.github.com/repos/acme/charts/releases/7/assets")
    assert kwargs["params"] == {"name": "application.tgz"}
    assert kwargs["data"] == b"archive"


def test_delete_package_falls_back_to_user_scope() -> None:
    client = make_client()
    client.session.request.side_effect = [response(404), response(204)]

    assert client.delete_package("foo", "application") is True

    urls = [call[0][1] for call in client.session.request.call_args_list]
    assert urls == [
        "https://api.github.com/orgs/acme/packages/container/charts%2Fapplication%2Ffoo",
        "https://api.github.com/users/acme/packages/container/charts%2Fapplication%2Ffoo",
    ]


def test_delete_package_missing() -> None:
    client = make_client()
    client.session.request.return_value = response(404)

    assert client.delete_package("foo", "application") is False


def test_get_updated_files_pull_request_paginates() -> None:
    client = make_client(event_name="pull_request", pull_request=42)
    next_url = "https://api.github.com/repos/acme/charts/pulls/42/files?page=2"
    client.session.request.side_effect = [
        response(200, [{"filename": "application/foo/Chart.yaml"}], {"next": {"url": next_url}}),
        response(200, [{"filename": "README.md"}]),
    ]

    files = client.get_updated_files()

    assert files == ["application/foo/Chart.yaml", "README.md"]
    second = client.session.request.call_args_list[1]
    assert second[0][1] == next_url
    assert second[1]["params"] is None


def test_get_updated_files_push_compares_range() -> None:
    client = make_client(event_name="push", before="aaa", after="bbb")
    client.session.request.return_value = response(
        200, {"files": [{"filename": "library/common/values.yaml"}]}
    )

    assert client.get_updated_files() == ["library/common/values.yaml"]
    url = client.session.request.call_args[0][1]
    assert url == "https://api.github.com/repos/acme/charts/compare/aaa...bbb"


def test_get_updated_files_without_event_data() -> None:
    client = make_client(event_name="workflow_dispatch")

    assert client.get_updated_files() == []
    client.session.request.assert_not_called()


def test_create_commit_on_branch() -> None:
    client = make_client()
    client.session.request.return_value = response(
        200, {"data": {"createCommitOnBranch": {"commit": {"oid": "abc", "url": "u"}}}}
    )

    oid = client.create_commit_on_branch(
        branch="main",
        expected_head="123",
        message="chore(github-action): update metadata file",
        additions=[{"path": "a/metadata.yaml", "contents": "ZQ=="}],
        deletions=[],
    )

    assert oid == "abc"
    args, kwargs = client.session.request.call_args
    assert args == ("POST", "https://api.github.com/graphql")
    commit_input = kwargs["json"]["variables"]["input"]
    assert commit_input["branch"] == {"repositoryNameWithOwner": "acme/charts", "branchName": "main"}
    assert commit_input["expectedHeadOid"] == "123"
    assert commit_input["message"]["headline"] == "chore(github-action): update metadata file"
    assert commit_input["fileChanges"]["additions"] == [{"path": "a/metadata.yaml", "contents": "ZQ=="}]


def test_create_commit_on_branch_graphql_errors() -> None:
    client = make_client()
    client.session.request.return_value = response(
        200, {"errors": [{"message": "Expected branch to point to 123"}]}
    )

    with pytest.raises(RuntimeError, match="Expected branch to point to 123"):
        client.create_commit_on_branch("main", "123", "msg", [], [])
