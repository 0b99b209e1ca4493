"""Tests for project scaffolding, pull and push."""

import pytest

from fumosync.client import ScriptInfo
from fumosync.config import Configuration
from fumosync.errors import (
    ConfigurationError,
    DirectoryAlreadyExistsError,
    ProjectInitError,
    ReadFileError,
)
from fumosync.project import (
    DESCRIPTION_TEMPLATE,
    MAIN_SCRIPT_TEMPLATE,
    collect_project,
    init,
    pull,
    push,
    read_configuration,
    read_modules,
)

from tests.conftest import SCRIPT_ID, read_json


class EditorStub:
    def __init__(self, info):
        self.info = info
        self.requested = []

    def get_editor(self, script_id):
        self.requested.append(script_id)
        return self.info


def test_init_creates_layout(tmp_path):
    root = tmp_path / "my-script"
    init(root)

    assert (root / "pkg").is_dir()
    assert (root / ".vscode" / "settings.json").is_file()
    assert (root / "types.d.luau").is_file()
    assert (root / "init.server.luau").read_text() == MAIN_SCRIPT_TEMPLATE
    assert (root / "README.md").read_text() == DESCRIPTION_TEMPLATE
    assert read_json(root / "fumosync.json") == {
        "scriptName": "my-script",
        "scriptId": "???",
        "whitelist": [],
        "isPublic": False,
    }


def test_init_refuses_existing_directory(tmp_path):
    with pytest.raises(DirectoryAlreadyExistsError):
        init(tmp_path)


def test_read_configuration_rejects_bad_json(project):
    (project / "fumosync.json").write_text("{not json")
    with pytest.raises(ConfigurationError):
        read_configuration(project)


def test_read_configuration_missing_file(project):
    (project / "fumosync.json").unlink()
    with pytest.raises(ReadFileError):
        read_configuration(project)


def test_pull_writes_remote_script(tmp_path):
    info = ScriptInfo(
        name="Remote",
        description="remote readme",
        main="print('main')",
        modules={"util": "return {}", "net": "return 2"},
        is_public=True,
        whitelist=["alice"],
    )
    client = EditorStub(info)
    root = tmp_path / "pulled"

    configuration = pull(client, "xyz", root)

    assert client.requested == ["xyz"]
    assert configuration == Configuration("Remote", "xyz", ["alice"], True)
    assert read_configuration(root) == configuration
    assert (root / "README.md").read_text() == "remote readme"
    assert (root / "init.server.luau").read_text() == "print('main')"
    assert (root / "pkg" / "util.luau").read_text() == "return {}"
    assert (root / "pkg" / "net.luau").read_text() == "return 2"


def test_pull_into_existing_directory(tmp_path):
    client = EditorStub(None)
    with pytest.raises(ProjectInitError) as excinfo:
        pull(client, "xyz", tmp_path)
    assert isinstance(excinfo.value.cause, DirectoryAlreadyExistsError)
    assert client.requested == []


def test_read_modules_ignores_other_entries(project):
    pkg = project / "pkg"
    (pkg / "b.luau").write_text("return 'b'")
    (pkg / "a.luau").write_text("return 'a'")
    (pkg / "notes.md").write_text("ignored")
    (pkg / "folder.luau").mkdir()

    assert read_modules(project) == [("a", "return 'a'"), ("b", "return 'b'")]


def test_push_sends_whole_project_in_one_call(project, fake_client):
    (project / "pkg" / "util.luau").write_text("return 1")
    (project / "README.md").write_text("docs")
    (project / "init.server.luau").write_text("main")

    configuration = push(fake_client, project)

    assert configuration.script_id == SCRIPT_ID
    assert fake_client.calls == [
        (
            SCRIPT_ID,
            {
                "description": "docs",
                "source": {"main": "main", "modules": {"util": "return 1"}},
                "name": "project",
                "whitelist": [],
                "isPublic": False,
            },
        )
    ]


def test_push_with_placeholder_id_is_not_refused_locally(tmp_path, fake_client):
    root = tmp_path / "fresh"
    init(root)
    push(fake_client, root)
    assert fake_client.calls[0][0] == "???"


def test_collect_project_requires_main_script(project):
    (project / "init.server.luau").unlink()
    with pytest.raises(ReadFileError):
        collect_project(project)
