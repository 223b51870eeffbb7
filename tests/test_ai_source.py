import json

import pytest

from application.messages import CancelToken
from application.ports import AdapterError
from core import DiscoverOrigin
from infrastructure.sources import AiSource
from infrastructure.sources.ai import build_prompt, extract_json_object, provider_argv


class FakeRunner:
    def __init__(self, code=0, stdout="", stderr=""):
        self.result = (code, stdout, stderr)
        self.calls = []

    def capture(self, argv, token, timeout=30.0):
        self.calls.append((list(argv), timeout))
        return self.result


class StubNpm:
    def has_bin(self, name, token):
        return name != "nolib"


RESPONSE = {
    "summary": "search tools",
    "tools": [
        {
            "name": "ripgrep",
            "description": "fast grep",
            "source": "cargo",
            "install_cmd": "cargo install ripgrep",
            "github": "BurntSushi/ripgrep",
        },
        {"name": "nolib", "source": "npm", "install_cmd": "npm install -g nolib"},
        {"name": "", "install_cmd": "make"},
        {"name": "thing", "source": "github", "install_cmd": "make install"},
        "garbage",
    ],
}


def test_search_parses_and_validates_suggestions():
    runner = FakeRunner(stdout="Sure!\n" + json.dumps(RESPONSE) + "\nHope this helps.")
    source = AiSource("claude", runner=runner, installed=lambda: ["bat"], sources=lambda: ["cargo", "npm"], npm=StubNpm())
    results = source.search("searching code", CancelToken())
    assert [r.name for r in results] == ["ripgrep", "thing"]
    rg = results[0]
    assert rg.origins == (DiscoverOrigin.CRATES_IO, DiscoverOrigin.AI)
    assert rg.url == "https://github.com/BurntSushi/ripgrep"
    assert results[1].origins == (DiscoverOrigin.AI,)
    argv, timeout = runner.calls[0]
    assert argv[:4] == ["claude", "--model", "sonnet", "-p"]
    assert "Already installed tools: bat" in argv[4]
    assert timeout == 180.0
    assert source.label == "AI (claude)"


def test_failed_command_is_adapter_error():
    source = AiSource("gemini", runner=FakeRunner(code=2, stderr="not logged in"))
    with pytest.raises(AdapterError, match="not logged in"):
        source.search("x", CancelToken())


def test_limit():
    tools = [{"name": f"t{i}", "install_cmd": f"brew install t{i}", "source": "brew"} for i in range(5)]
    runner = FakeRunner(stdout=json.dumps({"tools": tools}))
    assert len(AiSource("codex", runner=runner, limit=3).search("x", CancelToken())) == 3


@pytest.mark.parametrize(
    "provider,expected",
    [
        ("claude", ["claude", "--model", "opus", "-p", "P"]),
        ("codex", ["codex", "-q", "P"]),
        ("gemini", ["gemini", "P"]),
        ("opencode", ["opencode", "P"]),
    ],
)
def test_provider_argv(provider, expected):
    assert provider_argv(provider, "P", "opus" if provider == "claude" else "") == expected


def test_unknown_provider():
    with pytest.raises(AdapterError):
        provider_argv("", "P")


def test_extract_json_object_errors():
    with pytest.raises(AdapterError, match="no JSON"):
        extract_json_object("nothing here")
    with pytest.raises(AdapterError, match="invalid JSON"):
        extract_json_object("{not: json}")
    assert extract_json_object('x {"a": 1} y') == {"a": 1}


def test_build_prompt_defaults():
    prompt = build_prompt("q", [], [])
    assert "Already installed tools: none" in prompt
    assert "package sources: any" in prompt
    assert '"tools": [' in prompt
