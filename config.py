from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List

import yaml

logger = logging.getLogger("hoard.config")

USER_CONFIG_PATH = Path.home() / ".hoard_config.yaml"
DATA_DIR = Path.home() / ".hoard"

THEME_NAMES: List[str] = [
    "catppuccin-mocha",
    "catppuccin-latte",
    "dracula",
    "nord",
    "tokyo-night",
    "gruvbox",
]
AI_PROVIDERS: List[str] = ["", "claude", "gemini", "codex", "opencode"]
SOURCE_IDS: List[str] = ["cargo", "npm", "pip", "brew", "apt", "github"]


def config_path() -> Path:
    override = os.environ.get("HOARD_CONFIG", "").strip()
    return Path(override).expanduser() if override else USER_CONFIG_PATH


def _default_sources() -> Dict[str, bool]:
    return {source_id: True for source_id in SOURCE_IDS}


@dataclass
class HoardConfig:
    theme: str = THEME_NAMES[0]
    ai_provider: str = ""
    ai_model: str = ""
    include_ai: bool = False
    sources: Dict[str, bool] = field(default_factory=_default_sources)
    max_jobs: int = 4
    search_limit: int = 10
    history_size: int = 50
    undo_size: int = 100
    http_timeout: float = 15.0
    store_path: str = str(DATA_DIR / "inventory.yaml")
    history_path: str = str(DATA_DIR / "history.yaml")

    def enabled_sources(self) -> List[str]:
        return [source_id for source_id in SOURCE_IDS if self.sources.get(source_id, False)]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HoardConfig":
        payload = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(payload) - known)
        if unknown:
            logger.warning("ignoring unknown config keys: %s", ", ".join(unknown))
        cfg = cls(**{k: v for k, v in payload.items() if k in known})
        sources = _default_sources()
        if isinstance(cfg.sources, dict):
            for key, value in cfg.sources.items():
                if key in sources:
                    sources[key] = bool(value)
        cfg.sources = sources
        if cfg.theme not in THEME_NAMES:
            cfg.theme = THEME_NAMES[0]
        if cfg.ai_provider not in AI_PROVIDERS:
            logger.warning("unknown ai_provider %r, AI source disabled", cfg.ai_provider)
            cfg.ai_provider = ""
        cfg.max_jobs = max(1, int(cfg.max_jobs))
        cfg.search_limit = max(1, int(cfg.search_limit))
        cfg.history_size = max(1, int(cfg.history_size))
        cfg.undo_size = max(1, int(cfg.undo_size))
        cfg.http_timeout = float(cfg.http_timeout)
        return cfg


def _load_config() -> Dict[str, Any]:
    path = config_path()
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("failed to read %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


def _save_config(data: Dict[str, Any]) -> None:
    path = config_path()
    if not data:
        if path.exists():
            path.unlink()
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, allow_unicode=True, sort_keys=False), encoding="utf-8")


def load_config() -> HoardConfig:
    try:
        return HoardConfig.from_dict(_load_config())
    except (TypeError, ValueError) as exc:
        logger.warning("invalid config, using defaults: %s", exc)
        return HoardConfig()


def save_config(cfg: HoardConfig) -> None:
    _save_config(cfg.to_dict())
