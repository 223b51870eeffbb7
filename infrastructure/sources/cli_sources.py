"""Sources backed by local CLIs: Homebrew, apt and GitHub (via ``gh``)."""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from application.messages import CancelToken
from application.ports import AdapterError, ProcessError
from core import DiscoverOrigin, DiscoverResult

from ..process import SubprocessRunner
from .registries import CHECK_WORKERS, OVERFETCH, CratesIoSource, NpmSource, PyPISource

logger = logging.getLogger("hoard.sources")

GH_FIELDS = "name,description,stargazersCount,language,url"


class CliSource:
    adapter_id = ""
    label = ""

    def __init__(self, runner: Optional[SubprocessRunner] = None, limit: int = 10, timeout: float = 30.0):
        self.runner = runner or SubprocessRunner()
        self.limit = max(1, int(limit))
        self.timeout = timeout

    def _capture(self, argv: List[str], token: CancelToken):
        try:
            return self.runner.capture(argv, token, timeout=self.timeout)
        except ProcessError as exc:
            raise AdapterError(str(exc)) from exc


class BrewSource(CliSource):
    adapter_id = "brew"
    label = "Homebrew"

    def search(self, query: str, token: CancelToken) -> List[DiscoverResult]:
        code, stdout, _ = self._capture(["brew", "search", query], token)
        if code != 0:
            return []
        results = []
        for line in stdout.splitlines():
            name = line.strip()
            if not name or name.startswith("==>"):
                continue
            results.append(
                DiscoverResult.create(
                    name,
                    DiscoverOrigin.HOMEBREW,
                    f"brew install {name}",
                    url=f"https://formulae.brew.sh/formula/{name}",
                )
            )
            if len(results) >= self.limit:
                break
        return results


class AptSource(CliSource):
    adapter_id = "apt"
    label = "apt"

    def search(self, query: str, token: CancelToken) -> List[DiscoverResult]:
        code, stdout, _ = self._capture(["apt-cache", "search", query], token)
        if code != 0:
            return []
        results = []
        for line in stdout.splitlines():
            if not line.strip():
                continue
            name, _, description = line.partition(" - ")
            name = name.strip()
            if not name:
                continue
            results.append(
                DiscoverResult.create(
                    name,
                    DiscoverOrigin.APT,
                    f"sudo apt install {name}",
                    description=description.strip(),
                )
            )
            if len(results) >= self.limit:
                break
        return results


class GitHubSource(CliSource):
    """``gh search repos`` cross-checked against the package registry of the repo's language."""

    adapter_id = "github"
    label = "GitHub"

    def __init__(
        self,
        crates: CratesIoSource,
        npm: NpmSource,
        pypi: PyPISource,
        runner: Optional[SubprocessRunner] = None,
        limit: int = 10,
        timeout: float = 30.0,
    ):
        super().__init__(runner, limit, timeout)
        self.crates = crates
        self.npm = npm
        self.pypi = pypi

    def search(self, query: str, token: CancelToken) -> List[DiscoverResult]:
        argv = ["gh", "search", "repos", query, "--limit", str(self.limit * OVERFETCH), "--json", GH_FIELDS]
        code, stdout, stderr = self._capture(argv, token)
        if code != 0:
            if "rate limit" in stderr.lower():
                raise AdapterError("GitHub API rate limit exceeded")
            return []
        try:
            repos = json.loads(stdout or "[]")
        except ValueError as exc:
            raise AdapterError(f"failed to parse gh output: {exc}") from exc
        candidates = [repo for repo in repos if isinstance(repo, dict) and repo.get("name") and repo.get("url")]
        if not candidates:
            return []
        with ThreadPoolExecutor(max_workers=min(CHECK_WORKERS, len(candidates))) as pool:
            resolved = list(pool.map(lambda repo: self._resolve(repo, token), candidates))
        token.raise_if_cancelled()
        return [result for result in resolved if result is not None][: self.limit]

    def _resolve(self, repo: Dict[str, Any], token: CancelToken) -> Optional[DiscoverResult]:
        name = repo["name"]
        url = repo["url"]
        language = (repo.get("language") or "").lower()
        if token.cancelled:
            return None
        if language == "rust":
            verdict = self.crates.matches_repo(name, url, token)
            if verdict is False:
                return None
            if verdict:
                origin, command = DiscoverOrigin.CRATES_IO, f"cargo install {name}"
            else:
                origin, command = DiscoverOrigin.GITHUB, f"cargo install --git {url}"
        elif language == "python":
            if not self.pypi.matches_repo(name, url, token):
                return None
            origin, command = DiscoverOrigin.PYPI, f"pip install {name}"
        elif language in ("javascript", "typescript"):
            if not self.npm.matches_repo(name, url, token):
                return None
            origin, command = DiscoverOrigin.NPM, f"npm install -g {name}"
        elif language == "go":
            path = url[len("https://") :] if url.startswith("https://") else url
            origin, command = DiscoverOrigin.GO, f"go install {path}/cmd/{name}@latest"
        else:
            return None
        result = DiscoverResult.create(
            name,
            origin,
            command,
            description=repo.get("description") or "",
            stars=int(repo.get("stargazersCount") or 0),
            url=url,
            language=repo.get("language") or "",
        )
        if origin is not DiscoverOrigin.GITHUB:
            # found through GitHub even when installed from a registry
            result = result.merge(DiscoverResult.create(name, DiscoverOrigin.GITHUB, "", url=url))
        return result
