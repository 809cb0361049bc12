from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from dataclasses import dataclass
from typing import Callable, Sequence

from .errors import InstallError

logger = logging.getLogger(__name__)

RunFn = Callable[..., subprocess.CompletedProcess]


@dataclass
class HostContext:
    """Everything the host library needs to touch the machine.

    Tests build one with fake callables; ``local_context()`` builds the real one.
    """

    run: RunFn
    which: Callable[[str], str | None]
    sleep: Callable[[float], None]
    is_root: bool

    @property
    def needs_sudo(self) -> bool:
        return not self.is_root


def _run_local(
    argv: Sequence[str],
    *,
    sudo: bool = False,
    input: str | None = None,
) -> subprocess.CompletedProcess:
    cmd = list(argv)
    if sudo and hasattr(os, "geteuid") and os.geteuid() != 0:
        cmd = ["sudo", *cmd]
    logger.debug("run: %s", " ".join(cmd))
    try:
        return subprocess.run(cmd, input=input, text=True, capture_output=True, check=False)
    except FileNotFoundError as exc:
        return subprocess.CompletedProcess(cmd, 127, "", str(exc))


def local_context() -> HostContext:
    is_root = hasattr(os, "geteuid") and os.geteuid() == 0
    return HostContext(run=_run_local, which=shutil.which, sleep=time.sleep, is_root=is_root)


def command_exists(ctx: HostContext, name: str) -> bool:
    if not name:
        return False
    return ctx.which(name) is not None


def command_success(ctx: HostContext, argv: Sequence[str]) -> bool:
    if not argv:
        return False
    res = ctx.run(list(argv))
    return res.returncode == 0


def first_line(ctx: HostContext, argv: Sequence[str]) -> str | None:
    res = ctx.run(list(argv))
    if res.returncode != 0:
        return None
    for line in (res.stdout or "").splitlines():
        if line.strip():
            return line.strip()
    return None


def run_checked(
    ctx: HostContext,
    argv: Sequence[str],
    *,
    label: str,
    sudo: bool = False,
    input: str | None = None,
) -> subprocess.CompletedProcess:
    res = ctx.run(list(argv), sudo=sudo and ctx.needs_sudo, input=input)
    if res.returncode != 0:
        detail = (res.stderr or "").strip() or (res.stdout or "").strip() or None
        raise InstallError(label, detail)
    return res


def invoking_user() -> str | None:
    return os.environ.get("SUDO_USER") or os.environ.get("USER") or None
