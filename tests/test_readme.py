import pytest

from application.messages import CancelToken
from application.ports import AdapterError
from infrastructure.readme import GithubReadmeFetcher, repo_path
from infrastructure.sources import HttpClientError


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://github.com/sharkdp/bat", "sharkdp/bat"),
        ("https://github.com/sharkdp/bat.git", "sharkdp/bat"),
        ("https://github.com/sharkdp/bat/tree/master/src", "sharkdp/bat"),
        ("github.com/a/b?tab=readme", "a/b"),
        ("https://github.com/sharkdp", None),
        ("https://gitlab.com/a/b", None),
        ("", None),
    ],
)
def test_repo_path(url, expected):
    assert repo_path(url) == expected


class FakeClient:
    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def _get(self, url):
        self.calls.append(url)
        value = self.routes.get(url, HttpClientError("HTTP 404", 404))
        if isinstance(value, Exception):
            raise value
        return value

    def get_json(self, url, token=None, params=None, headers=None):
        return self._get(url)

    def get_text(self, url, token=None, params=None, headers=None):
        return self._get(url)


def test_fetch_follows_default_branch_and_readme_name():
    client = FakeClient(
        {
            "https://api.github.com/repos/old/name": {"full_name": "new/name", "default_branch": "main"},
            "https://api.github.com/repos/new/name/contents/": [{"name": "src"}, {"name": "README.rst"}],
            "https://raw.githubusercontent.com/new/name/main/README.rst": "Title\n=====",
        }
    )
    text = GithubReadmeFetcher(client).fetch("https://github.com/old/name", CancelToken())
    assert text == "Title\n====="


def test_fetch_falls_back_when_api_fails():
    client = FakeClient({"https://raw.githubusercontent.com/a/b/HEAD/README.md": "# b"})
    assert GithubReadmeFetcher(client).fetch("https://github.com/a/b", CancelToken()) == "# b"


def test_fetch_errors():
    fetcher = GithubReadmeFetcher(FakeClient({}))
    with pytest.raises(AdapterError, match="not a GitHub repository"):
        fetcher.fetch("https://example.com/x", CancelToken())
    with pytest.raises(AdapterError, match="README not available"):
        fetcher.fetch("https://github.com/a/b", CancelToken())
