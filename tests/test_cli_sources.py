import json

import pytest

from application.messages import CancelToken
from application.ports import AdapterError, ProcessError
from core import DiscoverOrigin
from infrastructure.sources import AptSource, BrewSource, GitHubSource


class FakeRunner:
    def __init__(self, outputs):
        self.outputs = outputs
        self.calls = []

    def capture(self, argv, token, timeout=30.0):
        self.calls.append(list(argv))
        value = self.outputs[argv[0]]
        if isinstance(value, Exception):
            raise value
        return value


class StubRegistry:
    def __init__(self, verdicts=None):
        self.verdicts = verdicts or {}

    def matches_repo(self, name, repo_url, token):
        return self.verdicts.get(name, False)


def test_brew_parses_formula_list():
    runner = FakeRunner({"brew": (0, "==> Formulae\nripgrep\nrgrep\n\n", "")})
    results = BrewSource(runner).search("rg", CancelToken())
    assert [r.name for r in results] == ["ripgrep", "rgrep"]
    assert results[0].option_for(DiscoverOrigin.HOMEBREW).command == "brew install ripgrep"
    assert runner.calls == [["brew", "search", "rg"]]


def test_brew_limit_and_failure():
    runner = FakeRunner({"brew": (0, "a\nb\nc\n", "")})
    assert len(BrewSource(runner, limit=2).search("x", CancelToken())) == 2
    runner.outputs["brew"] = (1, "", "No formulae found")
    assert BrewSource(runner).search("x", CancelToken()) == []


def test_missing_cli_is_adapter_error():
    runner = FakeRunner({"apt-cache": ProcessError("apt-cache: command not found")})
    with pytest.raises(AdapterError, match="command not found"):
        AptSource(runner).search("grep", CancelToken())


def test_apt_splits_description():
    runner = FakeRunner({"apt-cache": (0, "ripgrep - Recursively searches directories\n\n", "")})
    [result] = AptSource(runner).search("ripgrep", CancelToken())
    assert result.description == "Recursively searches directories"
    assert result.option_for(DiscoverOrigin.APT).command == "sudo apt install ripgrep"


def _github(repos, crates=None, npm=None, pypi=None, code=0, stderr=""):
    runner = FakeRunner({"gh": (code, json.dumps(repos), stderr)})
    source = GitHubSource(crates or StubRegistry(), npm or StubRegistry(), pypi or StubRegistry(), runner, limit=5)
    return source, runner


def test_github_resolves_install_source_by_language():
    repos = [
        {
            "name": "ripgrep",
            "url": "https://github.com/BurntSushi/ripgrep",
            "language": "Rust",
            "stargazersCount": 40000,
        },
        {"name": "gotool", "url": "https://github.com/o/gotool", "language": "Go"},
        {"name": "weird", "url": "https://github.com/o/weird", "language": "Haskell"},
        {"name": "httpie", "url": "https://github.com/httpie/cli", "language": "Python"},
        {"name": "rustlib", "url": "https://github.com/o/rustlib", "language": "Rust"},
        {"name": "unpublished", "url": "https://github.com/o/unpublished", "language": "Rust"},
    ]
    crates = StubRegistry({"ripgrep": True, "rustlib": False, "unpublished": None})
    source, runner = _github(repos, crates=crates, pypi=StubRegistry({"httpie": True}))
    results = source.search("grep", CancelToken())
    assert [r.name for r in results] == ["ripgrep", "gotool", "httpie", "unpublished"]
    rg = results[0]
    assert rg.origins == (DiscoverOrigin.CRATES_IO, DiscoverOrigin.GITHUB)
    assert rg.stars == 40000
    assert results[1].install_options[0].command == "go install github.com/o/gotool/cmd/gotool@latest"
    assert results[3].origins == (DiscoverOrigin.GITHUB,)
    assert results[3].install_options[0].command == "cargo install --git https://github.com/o/unpublished"
    assert runner.calls[0][:4] == ["gh", "search", "repos", "grep"]
    assert "--json" in runner.calls[0]


def test_github_rate_limit_is_adapter_error():
    source, _ = _github([], code=1, stderr="HTTP 403: API rate limit exceeded")
    with pytest.raises(AdapterError, match="rate limit"):
        source.search("x", CancelToken())


def test_github_bad_json():
    runner = FakeRunner({"gh": (0, "not json", "")})
    source = GitHubSource(StubRegistry(), StubRegistry(), StubRegistry(), runner)
    with pytest.raises(AdapterError, match="failed to parse"):
        source.search("x", CancelToken())
