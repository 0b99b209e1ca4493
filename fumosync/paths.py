"""Path classification for the watch engine.

Maps raw filesystem paths reported by the watcher onto the role they
play in a project (main script, description, metadata, or a module) and
decides which kinds of filesystem event are worth looking at at all.
"""

from __future__ import annotations

import enum
import logging
from pathlib import Path, PurePath

from fumosync.config import (
    DESCRIPTION_FILE,
    MAIN_SCRIPT_FILE,
    MODULE_EXTENSION,
    PACKAGE_DIRECTORY,
    SYNC_CONFIGURATION_FILE,
)
from fumosync.errors import PathDiffError
from fumosync.updates import Update

logger = logging.getLogger(__name__)

_PARENT = ".."


class EventKind(enum.Enum):
    """What happened to a path, as far as the engine cares."""

    ANY = "any"
    CREATE = "create"
    REMOVE = "remove"
    MODIFY = "modify"
    RENAME = "rename"
    METADATA = "metadata"
    ACCESS = "access"
    OTHER = "other"


# Editors and indexers touch files constantly without changing them.
_IGNORED_KINDS = frozenset({EventKind.METADATA, EventKind.ACCESS, EventKind.OTHER})


def should_classify(kind: EventKind) -> bool:
    """Return whether events of *kind* can lead to a remote write."""
    return kind not in _IGNORED_KINDS


def diff_paths(path: PurePath | str, base: PurePath | str) -> Path | None:
    """Express *path* relative to *base*, using ``..`` where they diverge.

    Returns ``None`` when no relative path exists: *path* is relative
    while *base* is absolute, or *base* climbs out through ``..`` exactly
    where the two diverge.  An absolute *path* against a relative *base*
    is returned unchanged.  Neither argument touches the filesystem.
    """
    path = PurePath(path)
    base = PurePath(base)

    if path.is_absolute() != base.is_absolute():
        return Path(path) if path.is_absolute() else None

    ita = iter(path.parts)
    itb = iter(base.parts)
    comps: list[str] = []
    while True:
        a = next(ita, None)
        b = next(itb, None)
        if a is None and b is None:
            break
        if b is None:
            comps.append(a)
            comps.extend(ita)
            break
        if a is None:
            comps.append(_PARENT)
            continue
        if not comps and a == b:
            continue
        if b == _PARENT:
            return None
        comps.append(_PARENT)
        comps.extend(_PARENT for _ in itb)
        comps.append(a)
        comps.extend(ita)
        break

    return Path(*comps)


def relative_to_project(path: PurePath | str, root: PurePath | str) -> Path:
    """Like :func:`diff_paths` but raises ``PathDiffError`` instead of returning None."""
    relative = diff_paths(path, root)
    if relative is None:
        raise PathDiffError(path, root)
    return relative


def is_module_path(relative: PurePath) -> bool:
    """True when *relative* sits directly inside a module directory."""
    return relative.parent.name == PACKAGE_DIRECTORY


def has_module_extension(path: PurePath) -> bool:
    return path.suffix.lstrip(".") == MODULE_EXTENSION


_ROOT_FILES = {
    PurePath(MAIN_SCRIPT_FILE): Update.main_source,
    PurePath(DESCRIPTION_FILE): Update.description,
    PurePath(SYNC_CONFIGURATION_FILE): Update.project_configuration,
}


def classify(relative: PurePath, root: Path) -> Update | None:
    """Map a project-relative path onto the update it implies, if any.

    Module entries only need to not be directories, so removals inside the
    module directory still count; the three root files must currently
    exist as files.
    """
    relative = PurePath(relative)
    full = root / relative

    if is_module_path(relative):
        if full.is_dir():
            logger.debug("Ignoring directory event in %s: %s", PACKAGE_DIRECTORY, relative)
            return None
        if not has_module_extension(relative):
            logger.debug("Ignoring non-%s file in %s: %s", MODULE_EXTENSION, PACKAGE_DIRECTORY, relative)
            return None
        logger.info("Got module update at %s", relative)
        return Update.module(relative)

    factory = _ROOT_FILES.get(relative)
    if factory is None:
        logger.debug("Ignoring unrelated path: %s", relative)
        return None
    if not full.is_file():
        logger.debug("Ignoring %s: not a file", relative)
        return None

    update = factory()
    logger.info("Got %s update", update.describe())
    return update
