"""Shared fixtures for openeuler_baseimage tests."""

import subprocess
from pathlib import Path

import pytest


class FakeArchiveTools:
    """Stand-in for the tar and xz commands used while repacking.

    ``tar`` drops ``members`` into the working directory and ``xz``
    replaces its argument with a ``.xz`` file, mirroring the real tools.
    """

    def __init__(self) -> None:
        self.members = ["0123abcd.tar"]
        self.calls: list[tuple[list[str], Path]] = []
        self.fail_on: str | None = None

    def __call__(self, cmd, cwd=None, **kwargs):
        cwd = Path(cwd)
        self.calls.append((list(cmd), cwd))

        if cmd[0] == self.fail_on:
            return subprocess.CompletedProcess(cmd, 2, stdout="", stderr="boom")

        if cmd[0] == "tar":
            for name in self.members:
                (cwd / name).write_bytes(b"rootfs layer")
        elif cmd[0] == "xz":
            source = cwd / cmd[-1]
            source.with_name(source.name + ".xz").write_bytes(b"xz data")
            source.unlink()
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")


@pytest.fixture
def fake_tools(monkeypatch) -> FakeArchiveTools:
    """Patch subprocess.run with FakeArchiveTools."""
    tools = FakeArchiveTools()
    monkeypatch.setattr(subprocess, "run", tools)
    return tools
