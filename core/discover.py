"""Discover results and the cross-registry merge rule."""

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from .tabs import SortKey
from .tool import InstallSource


class DiscoverOrigin(Enum):
    CRATES_IO = ("crates.io", "cargo", InstallSource.CARGO)
    NPM = ("npm", "npm", InstallSource.NPM)
    PYPI = ("PyPI", "pip", InstallSource.PIP)
    HOMEBREW = ("Homebrew", "brew", InstallSource.BREW)
    APT = ("apt", "apt", InstallSource.APT)
    GO = ("Go", "go", InstallSource.GO)
    GITHUB = ("GitHub", "github", InstallSource.UNKNOWN)
    AI = ("AI", "ai", InstallSource.UNKNOWN)

    @property
    def label(self) -> str:
        return self.value[0]

    @property
    def source_id(self) -> str:
        return self.value[1]

    @property
    def install_source(self) -> InstallSource:
        return self.value[2]

    @property
    def order(self) -> int:
        return list(DiscoverOrigin).index(self)

    @classmethod
    def from_string(cls, value: str) -> Optional["DiscoverOrigin"]:
        token = (value or "").strip().lower()
        aliases = {"crates": "cargo", "pypi": "pip", "homebrew": "brew"}
        token = aliases.get(token, token)
        for origin in cls:
            if origin.source_id == token or origin.label.lower() == token:
                return origin
        return None


@dataclass(frozen=True)
class InstallOption:
    origin: DiscoverOrigin
    command: str


_NON_ALNUM = re.compile(r"[\W_]+", re.UNICODE)


def normalize_name(name: str) -> str:
    """Dedup key: lowercase with punctuation removed."""
    lowered = (name or "").strip().lower()
    key = _NON_ALNUM.sub("", lowered)
    return key or lowered


def _is_github_url(url: Optional[str]) -> bool:
    return bool(url) and ("github.com" in url or "github.io" in url)


@dataclass(frozen=True)
class DiscoverResult:
    key: str
    name: str
    origins: Tuple[DiscoverOrigin, ...] = ()
    stars: int = 0
    description: str = ""
    install_options: Tuple[InstallOption, ...] = ()
    url: Optional[str] = None
    readme_url: Optional[str] = None
    language: str = ""

    @property
    def id(self) -> str:
        return self.key

    @property
    def primary_origin(self) -> Optional[DiscoverOrigin]:
        return self.origins[0] if self.origins else None

    def option_for(self, origin: DiscoverOrigin) -> Optional[InstallOption]:
        for option in self.install_options:
            if option.origin is origin:
                return option
        return None

    @classmethod
    def create(
        cls,
        name: str,
        origin: DiscoverOrigin,
        install_command: str,
        *,
        description: str = "",
        stars: int = 0,
        url: Optional[str] = None,
        readme_url: Optional[str] = None,
        language: str = "",
    ) -> "DiscoverResult":
        options: Tuple[InstallOption, ...] = ()
        if install_command:
            options = (InstallOption(origin, install_command),)
        return cls(
            key=normalize_name(name),
            name=name,
            origins=(origin,),
            stars=max(0, int(stars or 0)),
            description=(description or "").strip(),
            install_options=options,
            url=url,
            readme_url=readme_url if readme_url else (url if _is_github_url(url) else None),
            language=language or "",
        )

    def merge(self, other: "DiscoverResult") -> "DiscoverResult":
        """Merge a result for the same tool reported by another source.

        Origins and install options are unioned (first option per origin
        wins), stars take the maximum and the first non-empty description is
        kept.
        """
        if other.key != self.key:
            raise ValueError(f"cannot merge {other.key!r} into {self.key!r}")
        origins = list(self.origins)
        for origin in other.origins:
            if origin not in origins:
                origins.append(origin)
        options: Dict[DiscoverOrigin, InstallOption] = {}
        for option in self.install_options + other.install_options:
            options.setdefault(option.origin, option)
        url = self.url or other.url
        if _is_github_url(other.url) and not _is_github_url(self.url):
            url = other.url
        return replace(
            self,
            origins=tuple(origins),
            stars=max(self.stars, other.stars),
            description=self.description or other.description,
            install_options=tuple(options.values()),
            url=url,
            readme_url=self.readme_url or other.readme_url,
            language=self.language or other.language,
        )


def merge_results(accumulated: Iterable[DiscoverResult], incoming: Iterable[DiscoverResult]) -> List[DiscoverResult]:
    """Fold `incoming` into `accumulated` by dedup key, keeping existing positions."""
    merged: List[DiscoverResult] = []
    index: Dict[str, int] = {}
    for result in list(accumulated) + list(incoming):
        pos = index.get(result.key)
        if pos is None:
            index[result.key] = len(merged)
            merged.append(result)
        else:
            merged[pos] = merged[pos].merge(result)
    return merged


def _source_order(result: DiscoverResult) -> int:
    origin = result.primary_origin
    return origin.order if origin else len(DiscoverOrigin)


def sort_results(results: Iterable[DiscoverResult], key: SortKey = SortKey.STARS) -> List[DiscoverResult]:
    items = list(results)
    if key is SortKey.NAME:
        return sorted(items, key=lambda r: r.name.lower())
    if key is SortKey.SOURCE:
        return sorted(items, key=lambda r: (_source_order(r), r.name.lower()))
    return sorted(items, key=lambda r: (-r.stars, r.name.lower()))


__all__ = [
    "DiscoverOrigin",
    "DiscoverResult",
    "InstallOption",
    "normalize_name",
    "merge_results",
    "sort_results",
]
