"""README text for GitHub-hosted tools."""

import logging
from typing import Optional

from application.messages import CancelToken
from application.ports import AdapterError

from .sources.http import HttpClient, HttpClientError

logger = logging.getLogger("hoard.sources")

GITHUB_API = "https://api.github.com/repos/{path}"
RAW_URL = "https://raw.githubusercontent.com/{path}/{branch}/{name}"
README_NAMES = ("readme.md", "readme.adoc", "readme.rst", "readme.txt", "readme")
API_HEADERS = {"Accept": "application/vnd.github.v3+json"}


def repo_path(url: str) -> Optional[str]:
    """``owner/repo`` from a GitHub URL, or None."""
    value = (url or "").strip()
    for prefix in ("https://github.com/", "http://github.com/", "github.com/"):
        if value.startswith(prefix):
            value = value[len(prefix) :]
            break
    else:
        return None
    value = value.split("#", 1)[0].split("?", 1)[0].rstrip("/")
    if value.endswith(".git"):
        value = value[: -len(".git")]
    parts = [part for part in value.split("/") if part]
    if len(parts) < 2:
        return None
    return f"{parts[0]}/{parts[1]}"


class GithubReadmeFetcher:
    def __init__(self, client: Optional[HttpClient] = None):
        self.client = client or HttpClient()

    def fetch(self, url: str, token: CancelToken) -> str:
        path = repo_path(url)
        if path is None:
            raise AdapterError(f"not a GitHub repository: {url}")
        branch = "HEAD"
        name = "README.md"
        try:
            info = self.client.get_json(GITHUB_API.format(path=path), token, headers=API_HEADERS)
            # follows renames and transfers
            path = info.get("full_name") or path
            branch = info.get("default_branch") or branch
            name = self._find_readme(path, token) or name
        except HttpClientError as exc:
            logger.debug("GitHub API lookup for %s failed: %s", path, exc)
        try:
            return self.client.get_text(RAW_URL.format(path=path, branch=branch, name=name), token)
        except HttpClientError as exc:
            raise AdapterError(f"README not available for {path}: {exc}") from exc

    def _find_readme(self, path: str, token: CancelToken) -> Optional[str]:
        listing = self.client.get_json(GITHUB_API.format(path=path) + "/contents/", token, headers=API_HEADERS)
        if not isinstance(listing, list):
            return None
        names = {str(item.get("name", "")).lower(): item.get("name") for item in listing if isinstance(item, dict)}
        for candidate in README_NAMES:
            if candidate in names:
                return names[candidate]
        return None
