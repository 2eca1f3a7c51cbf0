"""Shared fixtures for neatly tests."""

from pathlib import Path

import pytest

from neatly import Dao


@pytest.fixture
def write(tmp_path):
    """Write a file under tmp_path and return its path."""

    def _write(name: str, content: str | bytes) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content)
        return path

    return _write


@pytest.fixture
def load(write):
    """Write a document and load it with a Dao built from the given options."""

    def _load(content: str, name: str = "doc.csv", state: dict | None = None, **options):
        path = write(name, content)
        return Dao(**options).load(state or {}, str(path))

    return _load
