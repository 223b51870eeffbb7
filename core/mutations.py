"""Mutation commands understood by the inventory store.

The dashboard never edits entries in place; it asks the store to apply one of
these commands and then takes a fresh snapshot.
"""

from dataclasses import dataclass
from typing import Tuple, Union

from .tool import Bundle, ToolEntry


@dataclass(frozen=True)
class TrackTool:
    entry: ToolEntry


@dataclass(frozen=True)
class SetInstalled:
    name: str
    installed: bool
    version: str = ""


@dataclass(frozen=True)
class SetLabels:
    name: str
    labels: Tuple[str, ...]


@dataclass(frozen=True)
class SetFavorite:
    name: str
    favorite: bool


@dataclass(frozen=True)
class RemoveTool:
    name: str


@dataclass(frozen=True)
class SaveBundle:
    """Create a bundle, or replace the one with the same name."""

    bundle: Bundle


@dataclass(frozen=True)
class DeleteBundle:
    name: str


Mutation = Union[TrackTool, SetInstalled, SetLabels, SetFavorite, RemoveTool, SaveBundle, DeleteBundle]
