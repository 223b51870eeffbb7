from core import fuzzy


def test_subsequence_required():
    assert fuzzy.score("rg", "ripgrep") is not None
    assert fuzzy.score("zz", "ripgrep") is None
    assert fuzzy.score("gr", "rg") is None


def test_case_insensitive_and_empty_query():
    assert fuzzy.score("RG", "ripgrep") == fuzzy.score("rg", "RipGrep")
    assert fuzzy.score("", "anything") == 0
    assert fuzzy.score("a", "") is None


def test_exact_match_beats_longer_candidates():
    full = fuzzy.score("rg", "rg")
    assert full > fuzzy.score("rg", "ripgrep")
    assert full > fuzzy.score("rg", "argon")


def test_consecutive_start_and_separator_bonuses():
    assert fuzzy.score("rip", "ripgrep") > fuzzy.score("rip", "xripgrep")
    # 'f' right after '-' earns the separator bonus
    assert fuzzy.score("ff", "fd-find") > fuzzy.score("ff", "fdxfind")
    # larger gaps cost more
    assert fuzzy.score("ab", "a-b") > fuzzy.score("ab", "a---b")


def test_match_positions_for_highlighting():
    assert fuzzy.match_positions("rg", "ripgrep") == [0, 3]
    assert fuzzy.match_positions("", "ripgrep") == []
    assert fuzzy.match_positions("x", "ripgrep") is None


def test_rank_orders_by_score_then_length():
    ranked = fuzzy.rank("rg", ["ripgrep", "rg", "grep"])
    assert [name for name, _ in ranked] == ["rg", "ripgrep"]
    ties = fuzzy.rank("a", ["abc", "ab"])
    assert [name for name, _ in ties] == ["ab", "abc"]


def test_rank_key_is_none_for_non_matches():
    assert fuzzy.rank_key("q", "ripgrep") is None
    assert fuzzy.rank_key("r", "rg") < fuzzy.rank_key("r", "ripgrep")
