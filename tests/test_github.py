from unittest.mock import Mock

import pytest
import requests
from requests import RequestException

from patchbot.config_loader import GitHubConfig
from patchbot.github import GitHubClient, GitHubError


def _response(status=200, payload=None, text=""):
    response = Mock()
    response.status_code = status
    response.json.return_value = payload
    response.text = text
    return response


class TestGitHubClient:
    @pytest.fixture
    def session(self) -> Mock:
        session = Mock(spec=requests.Session)
        session.headers = {}
        return session

    @pytest.fixture
    def client(self, session) -> GitHubClient:
        return GitHubClient(GitHubConfig(token="t0ken"), session=session)

    def test_requires_token(self):
        with pytest.raises(ValueError):
            GitHubClient(GitHubConfig(token=None))

    def test_auth_header_and_token_not_in_repr(self, client, session):
        assert session.headers["Authorization"] == "Bearer t0ken"
        assert "t0ken" not in repr(GitHubConfig(token="t0ken"))

    def test_get_issue(self, client, session):
        session.request.return_value = _response(payload={"number": 3, "title": "Bug"})
        assert client.get_issue("octo", "demo", 3)["title"] == "Bug"
        method, url = session.request.call_args.args
        assert method == "GET"
        assert url == "https://api.github.com/repos/octo/demo/issues/3"

    def test_is_pull_request(self, client, session):
        session.request.return_value = _response(payload={"pull_request": {"url": "x"}})
        assert client.is_pull_request("octo", "demo", 3)

        session.request.return_value = _response(payload={"number": 3})
        assert not client.is_pull_request("octo", "demo", 3)

        session.request.return_value = _response(status=404, text="Not Found")
        assert not client.is_pull_request("octo", "demo", 3)

    def test_pull_request_diff_uses_diff_media_type(self, client, session):
        session.request.return_value = _response(text="diff --git a/x b/x")
        assert client.get_pull_request_diff("octo", "demo", 3).startswith("diff --git")
        assert session.request.call_args.kwargs["headers"] == {"Accept": "application/vnd.github.v3.diff"}

    def test_pagination(self, client, session):
        first = [{"filename": f"f{i}.py"} for i in range(100)]
        session.request.side_effect = [_response(payload=first), _response(payload=[{"filename": "last.py"}])]
        files = client.list_pull_request_files("octo", "demo", 3)
        assert len(files) == 101
        assert session.request.call_args_list[1].kwargs["params"] == {"per_page": 100, "page": 2}

    def test_branch_exists(self, client, session):
        session.request.return_value = _response(payload={"ref": "refs/heads/x"})
        assert client.branch_exists("octo", "demo", "patchbot/issue-1")
        assert session.request.call_args.args[1].endswith("/git/ref/heads/patchbot/issue-1")

        session.request.return_value = _response(status=404)
        assert not client.branch_exists("octo", "demo", "patchbot/issue-1")

        session.request.return_value = _response(status=500, text="boom")
        with pytest.raises(GitHubError) as exc:
            client.branch_exists("octo", "demo", "patchbot/issue-1")
        assert exc.value.status_code == 500

    def test_network_errors_become_github_errors(self, client, session):
        session.request.side_effect = RequestException("connection reset")
        with pytest.raises(GitHubError, match="connection reset"):
            client.get_repo("octo", "demo")

    def test_writes(self, client, session):
        session.request.return_value = _response(status=201, payload={"id": 1})

        client.create_comment("octo", "demo", 3, "hello")
        assert session.request.call_args.args[1].endswith("/issues/3/comments")
        assert session.request.call_args.kwargs["json"] == {"body": "hello"}

        client.reply_to_review_comment("octo", "demo", 3, 77, "noted")
        assert session.request.call_args.args[1].endswith("/pulls/3/comments/77/replies")

        client.create_pull_request("octo", "demo", head="h", base="main", title="T", body="B")
        assert session.request.call_args.args == ("POST", "https://api.github.com/repos/octo/demo/pulls")
        assert session.request.call_args.kwargs["json"] == {"head": "h", "base": "main", "title": "T", "body": "B"}
