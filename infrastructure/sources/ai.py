"""AI recommendations through a locally installed assistant CLI."""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from application.messages import CancelToken
from application.ports import AdapterError, ProcessError
from core import DiscoverOrigin, DiscoverResult

from ..process import SubprocessRunner
from .registries import CratesIoSource, NpmSource, PyPISource

logger = logging.getLogger("hoard.sources")

DEFAULT_CLAUDE_MODEL = "sonnet"

DISCOVERY_PROMPT = """You are a CLI tool expert. Based on the user's description of what they're working on, recommend relevant command-line tools.

User's context: {query}

Already installed tools: {installed}

IMPORTANT - Only recommend tools from these package sources: {sources}
Do NOT recommend tools that cannot be installed from the enabled sources above.

Guidelines:
1. Recommend 5-10 highly relevant tools
2. Categorize as "essential" (must-have) or "recommended" (nice-to-have)
3. Don't recommend tools they already have installed
4. Focus on well-maintained, popular tools
5. Include the exact install command for each
6. ONLY use sources from the enabled list above

Respond with JSON:
{{
  "summary": "Brief description of the recommendations",
  "tools": [
    {{
      "name": "tool-name",
      "description": "What it does (1 sentence)",
      "category": "essential|recommended",
      "source": "cargo|pip|npm|apt|brew",
      "install_cmd": "cargo install tool-name",
      "github": "owner/repo"
    }}
  ]
}}
"""


def build_prompt(query: str, installed: Sequence[str], sources: Sequence[str]) -> str:
    return DISCOVERY_PROMPT.format(
        query=query,
        installed=", ".join(installed) or "none",
        sources=", ".join(sources) or "any",
    )


def provider_argv(provider: str, prompt: str, model: str = "") -> List[str]:
    if provider == "claude":
        return ["claude", "--model", model or DEFAULT_CLAUDE_MODEL, "-p", prompt]
    if provider == "codex":
        return ["codex", "-q", prompt]
    if provider in ("gemini", "opencode"):
        return [provider, prompt]
    raise AdapterError(f"unsupported AI provider: {provider or 'none'}")


def extract_json_object(response: str) -> Dict[str, Any]:
    """Parse the JSON object between the first ``{`` and the last ``}``."""
    start = response.find("{")
    end = response.rfind("}")
    if start < 0 or end <= start:
        raise AdapterError("no JSON object in AI response")
    try:
        data = json.loads(response[start : end + 1])
    except ValueError as exc:
        raise AdapterError(f"invalid JSON in AI response: {exc}") from exc
    if not isinstance(data, dict):
        raise AdapterError("AI response is not a JSON object")
    return data


class AiSource:
    adapter_id = "ai"

    def __init__(
        self,
        provider: str,
        model: str = "",
        runner: Optional[SubprocessRunner] = None,
        installed: Optional[Callable[[], Sequence[str]]] = None,
        sources: Optional[Callable[[], Sequence[str]]] = None,
        crates: Optional[CratesIoSource] = None,
        npm: Optional[NpmSource] = None,
        pypi: Optional[PyPISource] = None,
        limit: int = 10,
        timeout: float = 180.0,
    ):
        self.provider = provider
        self.model = model
        self.runner = runner or SubprocessRunner()
        self._installed = installed or (lambda: [])
        self._sources = sources or (lambda: [])
        self.crates = crates
        self.npm = npm
        self.pypi = pypi
        self.limit = max(1, int(limit))
        self.timeout = timeout

    @property
    def label(self) -> str:
        return f"AI ({self.provider})" if self.provider else "AI"

    def search(self, query: str, token: CancelToken) -> List[DiscoverResult]:
        prompt = build_prompt(query, list(self._installed()), list(self._sources()))
        argv = provider_argv(self.provider, prompt, self.model)
        try:
            code, stdout, stderr = self.runner.capture(argv, token, timeout=self.timeout)
        except ProcessError as exc:
            raise AdapterError(str(exc)) from exc
        if code != 0:
            raise AdapterError(f"AI command failed: {stderr.strip() or code}")
        token.raise_if_cancelled()
        data = extract_json_object(stdout)
        results = []
        for tool in data.get("tools") or []:
            result = self._to_result(tool, token)
            if result is not None:
                results.append(result)
            if len(results) >= self.limit:
                break
        return results

    def _valid(self, origin: DiscoverOrigin, name: str, token: CancelToken) -> bool:
        if origin is DiscoverOrigin.CRATES_IO and self.crates is not None:
            return self.crates.has_binaries(name, token)
        if origin is DiscoverOrigin.NPM and self.npm is not None:
            return self.npm.has_bin(name, token)
        if origin is DiscoverOrigin.PYPI and self.pypi is not None:
            return self.pypi.has_cli(name, token)
        return True

    def _to_result(self, tool: Any, token: CancelToken) -> Optional[DiscoverResult]:
        if not isinstance(tool, dict):
            return None
        name = str(tool.get("name") or "").strip()
        command = str(tool.get("install_cmd") or "").strip()
        if not name or not command:
            return None
        origin = DiscoverOrigin.from_string(str(tool.get("source") or "")) or DiscoverOrigin.AI
        if origin is DiscoverOrigin.GITHUB:
            origin = DiscoverOrigin.AI
        if not self._valid(origin, name, token):
            logger.debug("dropping AI suggestion %s: not found on %s", name, origin.label)
            return None
        github = str(tool.get("github") or "").strip().strip("/")
        url = f"https://github.com/{github}" if github.count("/") == 1 else None
        result = DiscoverResult.create(
            name,
            origin,
            command,
            description=str(tool.get("description") or ""),
            url=url,
        )
        if origin is not DiscoverOrigin.AI:
            result = result.merge(DiscoverResult.create(name, DiscoverOrigin.AI, ""))
        return result
