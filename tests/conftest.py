"""Shared fixtures for the fumosync test suite."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from fumosync.config import Configuration
from fumosync.project import init, write_configuration
from fumosync.updates import build_script_info

SCRIPT_ID = "abc123"


class FakeClient:
    """Records ``set_editor`` calls instead of talking to the network."""

    def __init__(self, error: Exception | None = None):
        self.calls: list[tuple[str, dict]] = []
        self.error = error

    def set_editor(self, script_id, updates):
        updates = list(updates)
        if self.error is not None:
            raise self.error
        self.calls.append((script_id, build_script_info(updates)))

    @property
    def payloads(self) -> list[dict]:
        return [info for _, info in self.calls]


@pytest.fixture(autouse=True)
def fumosync_home(tmp_path, monkeypatch) -> Path:
    """Keep settings, secrets and logs out of the real home directory."""
    home = tmp_path / "home"
    monkeypatch.setenv("FUMOSYNC_HOME", str(home))
    return home


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def project(tmp_path) -> Path:
    """An initialized project linked to ``SCRIPT_ID``."""
    root = tmp_path / "project"
    init(root)
    write_configuration(root, Configuration(script_name="project", script_id=SCRIPT_ID))
    return root.resolve()


def read_json(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))
