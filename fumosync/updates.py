"""Update model for fumosync.

Two layers of "update" exist:

* :class:`Update` — *what* changed on disk (main script, description,
  project configuration, or one module file).  Queued by the watcher and
  resolved by the sync driver, which attaches the file contents it read.
* Editor updates (:class:`Name`, :class:`MainSource`, :class:`Module`, …)
  — the field-level changes the remote editor accepts.  A batch of them
  is folded into one partial ``scriptInfo`` object by
  :func:`build_script_info`.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from pathlib import PurePath
from typing import Any, Iterable, Union

from fumosync.config import Configuration


class UpdateKind(enum.Enum):
    MAIN_SOURCE = "main source"
    DESCRIPTION = "description"
    PROJECT_CONFIGURATION = "project configuration"
    MODULE = "module"


@dataclass(frozen=True)
class Update:
    """One pending change, optionally carrying the contents read for it.

    ``path`` is only set for modules and is relative to the project root.
    ``contents`` stays ``None`` until the sync driver resolves the update;
    it takes no part in equality so a resolved update still matches the
    queued one.
    """

    kind: UpdateKind
    path: PurePath | None = None
    contents: str | None = field(default=None, compare=False)

    @classmethod
    def main_source(cls) -> Update:
        return cls(UpdateKind.MAIN_SOURCE)

    @classmethod
    def description(cls) -> Update:
        return cls(UpdateKind.DESCRIPTION)

    @classmethod
    def project_configuration(cls) -> Update:
        return cls(UpdateKind.PROJECT_CONFIGURATION)

    @classmethod
    def module(cls, path: PurePath | str) -> Update:
        return cls(UpdateKind.MODULE, PurePath(path))

    @property
    def module_name(self) -> str | None:
        """Module name derived from the file name, or None if there is none."""
        if self.path is None:
            return None
        return module_name_from_file(self.path.name)

    @property
    def is_resolved(self) -> bool:
        return self.contents is not None

    def resolved(self, contents: str) -> Update:
        return replace(self, contents=contents)

    def describe(self) -> str:
        if self.kind is UpdateKind.MODULE:
            return f"module {self.path}"
        return self.kind.value


def module_name_from_file(file_name: str) -> str | None:
    """Strip the final extension from *file_name* (``foo.luau`` -> ``foo``)."""
    if file_name in ("", ".", ".."):
        return None
    return PurePath(file_name).stem


def dedupe(updates: Iterable[Update]) -> list[Update]:
    """Drop repeated updates, keeping the first occurrence's position."""
    seen: set[Update] = set()
    unique: list[Update] = []
    for update in updates:
        if update not in seen:
            seen.add(update)
            unique.append(update)
    return unique


# ---- editor updates ----


@dataclass(frozen=True)
class Name:
    name: str


@dataclass(frozen=True)
class Description:
    description: str


@dataclass(frozen=True)
class MainSource:
    source: str


@dataclass(frozen=True)
class Whitelist:
    users: tuple[str, ...]


@dataclass(frozen=True)
class Publicity:
    is_public: bool


@dataclass(frozen=True)
class Module:
    name: str
    source: str


EditorUpdate = Union[Name, Description, MainSource, Whitelist, Publicity, Module]


def configuration_updates(configuration: Configuration) -> list[EditorUpdate]:
    """The three remote fields a project configuration maps onto."""
    return [
        Name(configuration.script_name),
        Whitelist(tuple(configuration.whitelist)),
        Publicity(configuration.is_public),
    ]


def editor_updates_for(update: Update, configuration: Configuration) -> list[EditorUpdate]:
    """Expand one resolved update into the editor updates it stands for."""
    if update.kind is UpdateKind.PROJECT_CONFIGURATION:
        return configuration_updates(configuration)
    if update.contents is None:
        raise ValueError(f"{update.describe()} has not been resolved")
    if update.kind is UpdateKind.MAIN_SOURCE:
        return [MainSource(update.contents)]
    if update.kind is UpdateKind.DESCRIPTION:
        return [Description(update.contents)]
    name = update.module_name
    if name is None:
        raise ValueError(f"{update.describe()} has no module name")
    return [Module(name, update.contents)]


def build_script_info(updates: Iterable[EditorUpdate]) -> dict[str, Any]:
    """Fold editor updates into a partial ``scriptInfo`` object.

    Only fields touched by *updates* appear in the result.  Later updates
    to the same field win; modules merge by name, so two writes to one
    module collapse into a single entry.
    """
    info: dict[str, Any] = {}
    for update in updates:
        if isinstance(update, MainSource):
            info.setdefault("source", {})["main"] = update.source
        elif isinstance(update, Module):
            source = info.setdefault("source", {})
            source.setdefault("modules", {})[update.name] = update.source
        elif isinstance(update, Description):
            info["description"] = update.description
        elif isinstance(update, Whitelist):
            info["whitelist"] = list(update.users)
        elif isinstance(update, Name):
            info["name"] = update.name
        elif isinstance(update, Publicity):
            info["isPublic"] = update.is_public
        else:
            raise TypeError(f"unknown editor update: {update!r}")
    return info


def build_editor_payload(script_id: str, updates: Iterable[EditorUpdate]) -> dict[str, Any]:
    """The complete ``PATCH /api/script/editor`` body."""
    return {"scriptId": script_id, "scriptInfo": build_script_info(updates)}
