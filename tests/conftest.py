from __future__ import annotations

import shutil

import pytest


@pytest.fixture(scope="session")
def cpio_tool() -> str:
    """Path to cpio(1); skips the test when it is not installed."""
    path = shutil.which("cpio")
    if path is None:
        pytest.skip("cpio not found on PATH")
    return path


def require_tool(name: str) -> str:
    """Skip the calling test unless *name* is on PATH."""
    path = shutil.which(name)
    if path is None:
        pytest.skip(f"{name} not found on PATH")
    return path
