import pytest

from core import DiscoverOrigin, DiscoverResult, SortKey, merge_results, normalize_name, sort_results


def test_normalize_name_drops_case_and_punctuation():
    assert normalize_name("Rip-Grep") == "ripgrep"
    assert normalize_name("fd_find") == "fdfind"
    assert normalize_name("---") == "---"


def test_origin_aliases():
    assert DiscoverOrigin.from_string("crates") is DiscoverOrigin.CRATES_IO
    assert DiscoverOrigin.from_string("PyPI") is DiscoverOrigin.PYPI
    assert DiscoverOrigin.from_string("homebrew") is DiscoverOrigin.HOMEBREW
    assert DiscoverOrigin.from_string("nope") is None


def test_merge_unions_origins_and_keeps_every_install_option():
    crates = DiscoverResult.create("ripgrep", DiscoverOrigin.CRATES_IO, "cargo install ripgrep", stars=12)
    brew = DiscoverResult.create(
        "RipGrep", DiscoverOrigin.HOMEBREW, "brew install ripgrep", description="fast grep", stars=40
    )
    merged = crates.merge(brew)
    assert merged.origins == (DiscoverOrigin.CRATES_IO, DiscoverOrigin.HOMEBREW)
    assert merged.stars == 40
    assert merged.description == "fast grep"
    assert merged.option_for(DiscoverOrigin.CRATES_IO).command == "cargo install ripgrep"
    assert merged.option_for(DiscoverOrigin.HOMEBREW).command == "brew install ripgrep"
    assert merged.name == "ripgrep"


def test_merge_keeps_first_description_and_first_option_per_origin():
    first = DiscoverResult.create("fd", DiscoverOrigin.CRATES_IO, "cargo install fd-find", description="find")
    second = DiscoverResult.create("fd", DiscoverOrigin.CRATES_IO, "cargo install fd", description="other")
    merged = first.merge(second)
    assert merged.description == "find"
    assert [o.command for o in merged.install_options] == ["cargo install fd-find"]


def test_merge_prefers_github_url():
    npm = DiscoverResult.create("bat", DiscoverOrigin.NPM, "npm i -g bat", url="https://www.npmjs.com/package/bat")
    gh = DiscoverResult.create("bat", DiscoverOrigin.GITHUB, "", url="https://github.com/sharkdp/bat")
    merged = npm.merge(gh)
    assert merged.url == "https://github.com/sharkdp/bat"
    assert merged.readme_url == "https://github.com/sharkdp/bat"


def test_merge_rejects_different_keys():
    with pytest.raises(ValueError):
        DiscoverResult.create("a", DiscoverOrigin.NPM, "").merge(DiscoverResult.create("b", DiscoverOrigin.NPM, ""))


def test_merge_results_keeps_positions():
    a = DiscoverResult.create("alpha", DiscoverOrigin.NPM, "npm i -g alpha")
    b = DiscoverResult.create("beta", DiscoverOrigin.NPM, "npm i -g beta")
    again = DiscoverResult.create("Alpha", DiscoverOrigin.PYPI, "pip install alpha", stars=3)
    merged = merge_results([a, b], [again])
    assert [r.key for r in merged] == ["alpha", "beta"]
    assert merged[0].stars == 3
    assert len(merged[0].install_options) == 2


def test_sort_results():
    rows = [
        DiscoverResult.create("b", DiscoverOrigin.NPM, "", stars=5),
        DiscoverResult.create("a", DiscoverOrigin.PYPI, "", stars=5),
        DiscoverResult.create("c", DiscoverOrigin.CRATES_IO, "", stars=9),
    ]
    assert [r.name for r in sort_results(rows, SortKey.STARS)] == ["c", "a", "b"]
    assert [r.name for r in sort_results(rows, SortKey.NAME)] == ["a", "b", "c"]
    assert [r.name for r in sort_results(rows, SortKey.SOURCE)] == ["c", "b", "a"]
