"""Inventory entries as seen by the dashboard.

Entries are owned by the store; the dashboard only ever holds snapshots.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple


class InstallSource(Enum):
    CARGO = "cargo"
    PIP = "pip"
    NPM = "npm"
    APT = "apt"
    BREW = "brew"
    GO = "go"
    FLATPAK = "flatpak"
    MANUAL = "manual"
    UNKNOWN = "unknown"

    @classmethod
    def from_string(cls, value: str) -> "InstallSource":
        token = (value or "").strip().lower()
        aliases = {"crates.io": "cargo", "pypi": "pip", "homebrew": "brew"}
        token = aliases.get(token, token)
        for source in cls:
            if source.value == token:
                return source
        return cls.UNKNOWN


@dataclass(frozen=True)
class ToolEntry:
    """Point-in-time snapshot of one tracked tool."""

    name: str
    source: InstallSource = InstallSource.UNKNOWN
    installed: bool = False
    version: str = ""
    latest_version: str = ""
    description: str = ""
    category: str = ""
    use_count: int = 0
    last_used: float = 0.0
    updated_at: float = 0.0
    labels: Tuple[str, ...] = ()
    stars: int = 0
    favorite: bool = False
    url: str = ""

    @property
    def id(self) -> str:
        return self.name

    @property
    def has_update(self) -> bool:
        return bool(self.latest_version) and self.latest_version != self.version

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "source": self.source.value,
            "installed": self.installed,
            "version": self.version,
            "latest_version": self.latest_version,
            "description": self.description,
            "category": self.category,
            "use_count": self.use_count,
            "last_used": self.last_used,
            "updated_at": self.updated_at,
            "labels": list(self.labels),
            "stars": self.stars,
            "favorite": self.favorite,
            "url": self.url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolEntry":
        payload = dict(data or {})
        return cls(
            name=str(payload.get("name", "")).strip(),
            source=InstallSource.from_string(str(payload.get("source", ""))),
            installed=bool(payload.get("installed", False)),
            version=str(payload.get("version") or ""),
            latest_version=str(payload.get("latest_version") or ""),
            description=str(payload.get("description") or ""),
            category=str(payload.get("category") or ""),
            use_count=int(payload.get("use_count") or 0),
            last_used=float(payload.get("last_used") or 0.0),
            updated_at=float(payload.get("updated_at") or 0.0),
            labels=tuple(str(x) for x in (payload.get("labels") or [])),
            stars=int(payload.get("stars") or 0),
            favorite=bool(payload.get("favorite", False)),
            url=str(payload.get("url") or ""),
        )


@dataclass(frozen=True)
class Bundle:
    """Named group of tools installed together."""

    name: str
    tools: Tuple[str, ...] = field(default_factory=tuple)
    description: str = ""

    @property
    def id(self) -> str:
        return self.name

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "tools": list(self.tools), "description": self.description}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bundle":
        payload = dict(data or {})
        return cls(
            name=str(payload.get("name", "")).strip(),
            tools=tuple(str(t) for t in (payload.get("tools") or [])),
            description=str(payload.get("description") or ""),
        )
