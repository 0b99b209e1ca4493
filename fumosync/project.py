"""
Project operations for fumosync.

A project is a directory holding a main script, a description, a
``fumosync.json`` metadata file and a ``pkg/`` directory with one file
per module.  This module scaffolds new projects, hydrates them from the
remote editor (pull) and sends them back in full (push).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from fumosync.client import Client
from fumosync.config import (
    DESCRIPTION_FILE,
    MAIN_SCRIPT_FILE,
    MODULE_EXTENSION,
    PACKAGE_DIRECTORY,
    SYNC_CONFIGURATION_FILE,
    Configuration,
)
from fumosync.errors import (
    ConfigurationError,
    CreateDirectoryError,
    CreateFileError,
    DirectoryAlreadyExistsError,
    FumoError,
    ProjectInitError,
    ReadDirectoryError,
    ReadFileError,
)
from fumosync.paths import has_module_extension
from fumosync.updates import (
    Description,
    EditorUpdate,
    MainSource,
    Module,
    configuration_updates,
    module_name_from_file,
)

logger = logging.getLogger(__name__)

VSCODE_SETTINGS = """\
{
	"luau-lsp.types.robloxSecurityLevel": "None",
	"luau-lsp.types.definitionFiles": ["types.d.luau"]
}"""

MAIN_SCRIPT_TEMPLATE = (
    '-- you can require packages with requireM("path") where path is a file '
    "inside of pkg (no extension)"
)

DESCRIPTION_TEMPLATE = "# stuff here"

TYPE_DEFINITIONS = """\
declare loadstringEnabled: boolean
declare owner: Player
declare arguments: { any }

declare isolatedStorage: {
  get: (name: string) -> any,
  set: (name: string, value: any?) -> ()
}

declare immediateSignals: boolean
declare NLS: (source: string, parent: Instance?) -> LocalScript
declare requireM: (moduleName: string) -> any

declare LoadAssets: (assetId: number) -> {
  Get: (asset: string) -> Instance,
  Exists: (asset: string) -> boolean,
  GetNames: () -> { string },
  GetArray: () -> { Instance },
  GetDictionary: () -> { [string]: Instance }
}"""


# ---- file helpers ----


def read_file(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ReadFileError(path, exc) from exc


def write_file(path: Path, contents: str) -> None:
    try:
        path.write_text(contents, encoding="utf-8")
    except OSError as exc:
        raise CreateFileError(path, exc) from exc


def create_directory(path: Path) -> None:
    try:
        path.mkdir()
    except OSError as exc:
        raise CreateDirectoryError(path, exc) from exc


def read_configuration(project_directory: Path) -> Configuration:
    """Read and validate ``fumosync.json`` from *project_directory*."""
    path = Path(project_directory) / SYNC_CONFIGURATION_FILE
    text = read_file(path)
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise ConfigurationError(path, str(exc)) from exc
    return Configuration.from_dict(data, source=path)


def write_configuration(project_directory: Path, configuration: Configuration) -> None:
    write_file(Path(project_directory) / SYNC_CONFIGURATION_FILE, configuration.to_json())


def module_file_name(name: str) -> str:
    return f"{name}.{MODULE_EXTENSION}"


# ---- operations ----


def init(directory: Path) -> None:
    """Scaffold a new, unlinked project in *directory*.

    The directory must not exist yet.  The script id is left as a
    placeholder until the project is linked by editing ``fumosync.json``
    or created through :func:`pull`.
    """
    directory = Path(directory)
    if directory.exists():
        raise DirectoryAlreadyExistsError(directory)

    create_directory(directory)
    create_directory(directory / PACKAGE_DIRECTORY)
    create_directory(directory / ".vscode")

    write_file(directory / ".vscode" / "settings.json", VSCODE_SETTINGS)
    write_file(directory / MAIN_SCRIPT_FILE, MAIN_SCRIPT_TEMPLATE)
    write_file(directory / DESCRIPTION_FILE, DESCRIPTION_TEMPLATE)
    write_file(directory / "types.d.luau", TYPE_DEFINITIONS)

    name = directory.resolve().name or "unknown"
    write_configuration(directory, Configuration(script_name=name))
    logger.info("Initialized project %r in %s", name, directory)


def pull(client: Client, script_id: str, directory: Path) -> Configuration:
    """Create *directory* as a project holding the remote script *script_id*."""
    directory = Path(directory)
    try:
        init(directory)
    except FumoError as exc:
        raise ProjectInitError(exc) from exc

    info = client.get_editor(script_id)

    write_file(directory / DESCRIPTION_FILE, info.description)
    write_file(directory / MAIN_SCRIPT_FILE, info.main)

    configuration = Configuration(
        script_name=info.name,
        script_id=script_id,
        whitelist=list(info.whitelist),
        is_public=info.is_public,
    )
    write_configuration(directory, configuration)

    for name, source in info.modules.items():
        write_file(directory / PACKAGE_DIRECTORY / module_file_name(name), source)

    logger.info(
        "Pulled %r (%s) into %s with %d module%s",
        info.name,
        script_id,
        directory,
        len(info.modules),
        "" if len(info.modules) == 1 else "s",
    )
    return configuration


def read_modules(project_directory: Path) -> list[tuple[str, str]]:
    """Return ``(name, source)`` for every module file in ``pkg/``."""
    package = Path(project_directory) / PACKAGE_DIRECTORY
    try:
        entries = sorted(package.iterdir())
    except OSError as exc:
        raise ReadDirectoryError(package, exc) from exc

    modules: list[tuple[str, str]] = []
    for entry in entries:
        try:
            is_file = entry.is_file()
        except OSError:
            logger.warning("Failed getting file type for %s", entry)
            continue
        if not is_file or not has_module_extension(entry):
            continue
        name = module_name_from_file(entry.name)
        if name is None:
            continue
        modules.append((name, read_file(entry)))
    return modules


def collect_project(project_directory: Path) -> tuple[Configuration, list[EditorUpdate]]:
    """Read the whole project into the editor updates a full push sends."""
    project_directory = Path(project_directory)
    configuration = read_configuration(project_directory)
    description = read_file(project_directory / DESCRIPTION_FILE)
    main_source = read_file(project_directory / MAIN_SCRIPT_FILE)

    updates: list[EditorUpdate] = [Description(description), MainSource(main_source)]
    updates.extend(configuration_updates(configuration))
    updates.extend(Module(name, source) for name, source in read_modules(project_directory))
    return configuration, updates


def push(client: Client, project_directory: Path) -> Configuration:
    """Send every file of the project to the remote editor in one call."""
    configuration, updates = collect_project(project_directory)
    module_count = sum(1 for update in updates if isinstance(update, Module))
    logger.info(
        "Pushing %r (%s): %d module%s",
        configuration.script_name,
        configuration.script_id,
        module_count,
        "" if module_count == 1 else "s",
    )
    client.set_editor(configuration.script_id, updates)
    logger.info("Pushed successfully.")
    return configuration
