from __future__ import annotations

import subprocess
from typing import Callable

import pytest

from stackprep_core.shell import HostContext

Response = tuple[int, str] | Callable[[], tuple[int, str]]


class FakeHost:
    """Scripted stand-in for the machine: which binaries exist and what commands print."""

    def __init__(self, binaries=(), responses: dict[tuple[str, ...], Response] | None = None, *, is_root=True):
        self.binaries = set(binaries)
        self.responses = dict(responses or {})
        self.is_root = is_root
        self.calls: list[list[str]] = []
        self.inputs: dict[tuple[str, ...], str | None] = {}
        self.sleeps: list[float] = []

    def run(self, argv, *, sudo=False, input=None) -> subprocess.CompletedProcess:
        argv = list(argv)
        self.calls.append(argv)
        self.inputs[tuple(argv)] = input
        resp = self.responses.get(tuple(argv), (0, ""))
        if callable(resp):
            resp = resp()
        code, stdout = resp
        return subprocess.CompletedProcess(argv, code, stdout, "")

    def which(self, name: str) -> str | None:
        return f"/usr/bin/{name}" if name in self.binaries else None

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)

    def context(self) -> HostContext:
        return HostContext(run=self.run, which=self.which, sleep=self.sleep, is_root=self.is_root)

    def installs(self) -> list[list[str]]:
        return [c for c in self.calls if "install" in c]


@pytest.fixture
def make_host() -> Callable[..., FakeHost]:
    return FakeHost


_DQ_ESCAPES = {"\\": "\\", '"': '"', "$": "$"}


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == "'":
        return value[1:-1]
    if len(value) >= 2 and value[0] == value[-1] == '"':
        out: list[str] = []
        chars = iter(value[1:-1])
        for ch in chars:
            if ch == "\\":
                nxt = next(chars, "")
                out.append(_DQ_ESCAPES.get(nxt, "\\" + nxt))
            else:
                out.append(ch)
        return "".join(out)
    return value


def parse_env(content: str) -> dict[str, str]:
    """Read a rendered .env the way compose does, undoing its quoting."""
    data: dict[str, str] = {}
    for line in content.splitlines():
        if not line or line.startswith("#"):
            continue
        key, value = line.split("=", 1)
        data[key] = _unquote(value)
    return data


@pytest.fixture
def read_env() -> Callable[[str], dict[str, str]]:
    return parse_env
