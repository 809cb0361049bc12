from __future__ import annotations

import logging
import platform
import tempfile
from pathlib import Path

import httpx

from .errors import InstallError
from .shell import HostContext, command_success, first_line, run_checked

logger = logging.getLogger(__name__)

COMPOSE_PLUGIN = "docker compose"
COMPOSE_STANDALONE = "docker-compose"
COMPOSE_NONE = "none"

COMPOSE_RELEASES_API = "https://api.github.com/repos/docker/compose/releases/latest"
COMPOSE_DOWNLOAD_URL = "https://github.com/docker/compose/releases/download/{tag}/docker-compose-{os}-{arch}"
COMPOSE_FALLBACK_TAG = "v2.29.7"
STANDALONE_INSTALL_PATH = "/usr/local/bin/docker-compose"

_PLUGIN_PROBE = ["docker", "compose", "version"]
_STANDALONE_PROBE = ["docker-compose", "--version"]


def detect_compose(ctx: HostContext) -> str:
    """Return the usable compose invocation, or ``COMPOSE_NONE``.

    Not cached: callers re-probe after installing.
    """
    if command_success(ctx, _PLUGIN_PROBE):
        return COMPOSE_PLUGIN
    if command_success(ctx, _STANDALONE_PROBE):
        return COMPOSE_STANDALONE
    return COMPOSE_NONE


def compose_version(ctx: HostContext, variant: str) -> str | None:
    if variant == COMPOSE_PLUGIN:
        return first_line(ctx, _PLUGIN_PROBE)
    if variant == COMPOSE_STANDALONE:
        return first_line(ctx, _STANDALONE_PROBE)
    return None


def latest_compose_tag(*, fallback: str = COMPOSE_FALLBACK_TAG, timeout: float = 10.0) -> str:
    try:
        resp = httpx.get(
            COMPOSE_RELEASES_API,
            headers={"Accept": "application/vnd.github+json"},
            timeout=timeout,
            follow_redirects=True,
        )
        resp.raise_for_status()
        tag = str(resp.json().get("tag_name") or "").strip()
    except (httpx.HTTPError, ValueError) as exc:
        logger.debug("compose release lookup failed: %s", exc)
        return fallback
    return tag or fallback


def standalone_download_url(tag: str, *, system: str | None = None, machine: str | None = None) -> str:
    return COMPOSE_DOWNLOAD_URL.format(
        tag=tag,
        os=(system or platform.system()).lower(),
        arch=machine or platform.machine(),
    )


def install_standalone_compose(ctx: HostContext, *, fallback_tag: str = COMPOSE_FALLBACK_TAG) -> str:
    """Download the standalone compose binary into ``/usr/local/bin``."""
    tag = latest_compose_tag(fallback=fallback_tag)
    url = standalone_download_url(tag)
    logger.debug("downloading %s", url)
    with tempfile.TemporaryDirectory() as tmp:
        target = Path(tmp) / "docker-compose"
        try:
            with httpx.stream("GET", url, follow_redirects=True, timeout=120.0) as resp:
                resp.raise_for_status()
                with target.open("wb") as f:
                    for chunk in resp.iter_bytes():
                        f.write(chunk)
        except httpx.HTTPError as exc:
            raise InstallError("download docker-compose", str(exc)) from exc
        run_checked(
            ctx,
            ["install", "-m", "0755", str(target), STANDALONE_INSTALL_PATH],
            label="install docker-compose binary",
            sudo=True,
        )
    return tag
