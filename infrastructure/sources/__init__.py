from typing import Callable, Dict, Optional, Sequence, Tuple

from config import HoardConfig

from ..process import SubprocessRunner
from .ai import AiSource, build_prompt, extract_json_object, provider_argv
from .cli_sources import AptSource, BrewSource, GitHubSource
from .http import HttpClient, HttpClientError, HttpRateLimitError
from .rate_limiter import RateLimiter
from .registries import CratesIoSource, NpmSource, PyPISource


def build_adapters(
    config: HoardConfig,
    client: Optional[HttpClient] = None,
    runner: Optional[SubprocessRunner] = None,
    installed: Optional[Callable[[], Sequence[str]]] = None,
) -> Tuple[Dict[str, object], Optional[AiSource]]:
    """Every lookup adapter keyed by id, plus the AI adapter when a provider is configured."""
    client = client or HttpClient(timeout=config.http_timeout)
    runner = runner or SubprocessRunner()
    limit = config.search_limit
    crates = CratesIoSource(client, limit)
    npm = NpmSource(client, limit)
    pypi = PyPISource(client, limit)
    adapters: Dict[str, object] = {
        crates.adapter_id: crates,
        npm.adapter_id: npm,
        pypi.adapter_id: pypi,
        "brew": BrewSource(runner, limit),
        "apt": AptSource(runner, limit),
        "github": GitHubSource(crates, npm, pypi, runner, limit),
    }
    ai = None
    if config.ai_provider:
        ai = AiSource(
            config.ai_provider,
            config.ai_model,
            runner=runner,
            installed=installed,
            sources=config.enabled_sources,
            crates=crates,
            npm=npm,
            pypi=pypi,
            limit=limit,
        )
    return adapters, ai


__all__ = [
    "AiSource",
    "AptSource",
    "BrewSource",
    "CratesIoSource",
    "GitHubSource",
    "HttpClient",
    "HttpClientError",
    "HttpRateLimitError",
    "NpmSource",
    "PyPISource",
    "RateLimiter",
    "build_adapters",
    "build_prompt",
    "extract_json_object",
    "provider_argv",
]
