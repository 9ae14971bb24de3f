"""Root pytest configuration for all tests."""

from __future__ import annotations

from pathlib import Path

import pytest


# Configure pytest-asyncio to use auto mode
# This is redundant with pyproject.toml but ensures it's set
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A small source tree.

    Layout:
        src/a.go, src/b.go
        pkg/c.go
        build/x.go
        build-tools/y.go
        README.md
    """
    for rel in ("src/a.go", "src/b.go", "pkg/c.go", "build/x.go", "build-tools/y.go"):
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("package main\n")
    (tmp_path / "README.md").write_text("# readme\n")
    return tmp_path
