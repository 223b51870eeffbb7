"""HTTP registry sources: crates.io, npm and PyPI.

Each source over-fetches candidates and keeps only packages that ship a
command-line entry point, checked concurrently against the registry's
package endpoint.
"""

import html
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote

from application.messages import CancelToken
from core import DiscoverOrigin, DiscoverResult

from .http import HttpClient, HttpClientError

logger = logging.getLogger("hoard.sources")

CRATES_API = "https://crates.io/api/v1/crates"
NPM_SEARCH = "https://registry.npmjs.org/-/v1/search"
NPM_PACKAGE = "https://registry.npmjs.org/{name}"
PYPI_SEARCH = "https://pypi.org/search/"
PYPI_JSON = "https://pypi.org/pypi/{name}/json"

OVERFETCH = 3
CHECK_WORKERS = 8

_PYPI_NAME = re.compile(r'class="package-snippet__name"[^>]*>([^<]+)</span>')
_PYPI_DESC = re.compile(r'class="package-snippet__description"[^>]*>([^<]*)</p>')
_CLI_HINTS = ("command-line", "command line", " cli ", "cli tool", "cli for")
_CLI_DEPS = ("click", "typer", "fire", "argcomplete")


def normalize_repo_url(url: str) -> str:
    value = (url or "").strip().lower()
    for prefix in ("git+", "https://", "http://", "git://", "ssh://git@", "www."):
        if value.startswith(prefix):
            value = value[len(prefix) :]
    if value.startswith("git@github.com:"):
        value = "github.com/" + value[len("git@github.com:") :]
    value = value.split("#", 1)[0].rstrip("/")
    if value.endswith(".git"):
        value = value[: -len(".git")]
    return value


def github_urls_match(a: str, b: str) -> bool:
    left, right = normalize_repo_url(a), normalize_repo_url(b)
    return bool(left) and left == right


def _filter_concurrently(
    candidates: List[Any],
    check: Callable[[Any], bool],
    limit: int,
    token: CancelToken,
) -> List[Any]:
    """Keep candidates passing ``check`` in their original order, at most ``limit``."""
    if not candidates:
        return []
    with ThreadPoolExecutor(max_workers=min(CHECK_WORKERS, len(candidates))) as pool:
        verdicts = list(pool.map(check, candidates))
    token.raise_if_cancelled()
    kept = [candidate for candidate, ok in zip(candidates, verdicts) if ok]
    return kept[:limit]


class RegistrySource:
    adapter_id = ""
    label = ""
    origin = DiscoverOrigin.CRATES_IO

    def __init__(self, client: HttpClient, limit: int = 10, check_binaries: bool = True):
        self.client = client
        self.limit = max(1, int(limit))
        self.check_binaries = check_binaries

    def _fetch_limit(self) -> int:
        return self.limit * OVERFETCH if self.check_binaries else self.limit

    def _probe(self, url: str, token: CancelToken) -> Optional[Dict[str, Any]]:
        """Package metadata; None when the package does not exist (404)."""
        try:
            data = self.client.get_json(url, token)
        except HttpClientError as exc:
            if exc.status == 404:
                return None
            raise
        return data if isinstance(data, dict) else {}

    def search(self, query: str, token: CancelToken) -> List[DiscoverResult]:
        raise NotImplementedError


class CratesIoSource(RegistrySource):
    adapter_id = "cargo"
    label = "crates.io"
    origin = DiscoverOrigin.CRATES_IO

    def search(self, query: str, token: CancelToken) -> List[DiscoverResult]:
        data = self.client.get_json(CRATES_API, token, params={"q": query, "per_page": self._fetch_limit()})
        candidates = []
        for item in (data or {}).get("crates") or []:
            name = item.get("name")
            if name:
                candidates.append(item)
        if self.check_binaries:
            candidates = _filter_concurrently(candidates, lambda c: self.has_binaries(c["name"], token), self.limit, token)
        else:
            candidates = candidates[: self.limit]
        results = []
        for item in candidates:
            name = item["name"]
            results.append(
                DiscoverResult.create(
                    name,
                    self.origin,
                    f"cargo install {name}",
                    description=item.get("description") or "",
                    stars=int(item.get("downloads") or 0) // 1000,
                    url=item.get("repository") or f"https://crates.io/crates/{name}",
                )
            )
        return results

    def has_binaries(self, name: str, token: CancelToken) -> bool:
        try:
            data = self._probe(f"{CRATES_API}/{quote(name)}", token)
        except HttpClientError:
            return True
        if data is None:
            return False
        versions = data.get("versions") or []
        if not versions:
            return True
        return bool(versions[0].get("bin_names"))

    def matches_repo(self, name: str, repo_url: str, token: CancelToken) -> Optional[bool]:
        """True: same project with binaries; False: same project, library only; None: no match."""
        try:
            data = self._probe(f"{CRATES_API}/{quote(name)}", token)
        except HttpClientError:
            return None
        if not data:
            return None
        repository = (data.get("crate") or {}).get("repository") or ""
        if not github_urls_match(repository, repo_url):
            return None
        versions = data.get("versions") or []
        return bool(versions[0].get("bin_names")) if versions else True


class NpmSource(RegistrySource):
    adapter_id = "npm"
    label = "npm"
    origin = DiscoverOrigin.NPM

    def search(self, query: str, token: CancelToken) -> List[DiscoverResult]:
        data = self.client.get_json(NPM_SEARCH, token, params={"text": query, "size": self._fetch_limit()})
        candidates: List[Tuple[str, str, float]] = []
        for obj in (data or {}).get("objects") or []:
            pkg = obj.get("package") or {}
            name = pkg.get("name")
            if not name:
                continue
            score = float(((obj.get("score") or {}).get("final")) or 0.0)
            candidates.append((name, pkg.get("description") or "", score))
        if self.check_binaries:
            candidates = _filter_concurrently(candidates, lambda c: self.has_bin(c[0], token), self.limit, token)
        else:
            candidates = candidates[: self.limit]
        return [
            DiscoverResult.create(
                name,
                self.origin,
                f"npm install -g {name}",
                description=description,
                stars=int(score * 1000),
                url=f"https://www.npmjs.com/package/{name}",
            )
            for name, description, score in candidates
        ]

    def _package(self, name: str, token: CancelToken) -> Optional[Dict[str, Any]]:
        return self._probe(NPM_PACKAGE.format(name=quote(name, safe="@")), token)

    @staticmethod
    def _latest_has_bin(data: Dict[str, Any]) -> Optional[bool]:
        latest = (data.get("dist-tags") or {}).get("latest", "")
        version = (data.get("versions") or {}).get(latest)
        if version is None:
            return None
        return "bin" in version

    def has_bin(self, name: str, token: CancelToken) -> bool:
        try:
            data = self._package(name, token)
        except HttpClientError:
            return True
        if data is None:
            return False
        verdict = self._latest_has_bin(data)
        return True if verdict is None else verdict

    def matches_repo(self, name: str, repo_url: str, token: CancelToken) -> bool:
        try:
            data = self._package(name, token)
        except HttpClientError:
            return False
        if not data:
            return False
        repository = data.get("repository")
        if isinstance(repository, dict):
            repository = repository.get("url")
        if not isinstance(repository, str) or not github_urls_match(repository, repo_url):
            return False
        return bool(self._latest_has_bin(data))


def looks_like_cli(info: Dict[str, Any]) -> bool:
    """Heuristic over PyPI ``info`` metadata for packages shipping a CLI."""
    for classifier in info.get("classifiers") or []:
        if "Environment :: Console" in classifier or "Command-line" in classifier:
            return True
    combined = f"{info.get('summary') or ''} {info.get('description') or ''}".lower()
    if any(hint in combined for hint in _CLI_HINTS):
        return True
    for key in (info.get("project_urls") or {}):
        if "cli" in key.lower():
            return True
    for requirement in info.get("requires_dist") or []:
        if requirement.lower().startswith(_CLI_DEPS):
            return True
    return False


class PyPISource(RegistrySource):
    adapter_id = "pip"
    label = "PyPI"
    origin = DiscoverOrigin.PYPI

    def search(self, query: str, token: CancelToken) -> List[DiscoverResult]:
        page = self.client.get_text(PYPI_SEARCH, token, params={"q": query, "o": ""})
        fetch = self._fetch_limit()
        names = [html.unescape(m.group(1).strip()) for m in _PYPI_NAME.finditer(page)][:fetch]
        descriptions = [html.unescape(m.group(1).strip()) for m in _PYPI_DESC.finditer(page)][:fetch]
        candidates = [(name, descriptions[idx] if idx < len(descriptions) else "") for idx, name in enumerate(names)]
        if self.check_binaries:
            candidates = _filter_concurrently(candidates, lambda c: self.has_cli(c[0], token), self.limit, token)
        else:
            candidates = candidates[: self.limit]
        return [
            DiscoverResult.create(
                name,
                self.origin,
                f"pip install {name}",
                description=description,
                url=f"https://pypi.org/project/{name}/",
            )
            for name, description in candidates
        ]

    def _info(self, name: str, token: CancelToken) -> Optional[Dict[str, Any]]:
        data = self._probe(PYPI_JSON.format(name=quote(name)), token)
        if data is None:
            return None
        return data.get("info") or {}

    def has_cli(self, name: str, token: CancelToken) -> bool:
        try:
            info = self._info(name, token)
        except HttpClientError:
            return True
        if info is None:
            return False
        return looks_like_cli(info)

    def matches_repo(self, name: str, repo_url: str, token: CancelToken) -> bool:
        try:
            info = self._info(name, token)
        except HttpClientError:
            return False
        if not info:
            return False
        repo_keys = ("repository", "source", "github", "code", "homepage")
        urls = [
            value
            for key, value in (info.get("project_urls") or {}).items()
            if isinstance(value, str) and any(k in key.lower() for k in repo_keys)
        ]
        if info.get("home_page"):
            urls.append(info["home_page"])
        if not any(github_urls_match(url, repo_url) for url in urls):
            return False
        return looks_like_cli(info)
