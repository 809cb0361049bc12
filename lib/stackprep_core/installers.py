from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

import httpx

from .compose import (
    COMPOSE_FALLBACK_TAG,
    COMPOSE_NONE,
    compose_version,
    detect_compose,
    install_standalone_compose,
)
from .errors import InstallError
from .shell import HostContext, command_exists, first_line, invoking_user, run_checked

logger = logging.getLogger(__name__)

OS_RELEASE_PATH = Path("/etc/os-release")
DOCKER_CONVENIENCE_SCRIPT = "https://get.docker.com"
DOCKER_APT_KEYRING = "/etc/apt/keyrings/docker.gpg"
DOCKER_APT_SOURCE = "/etc/apt/sources.list.d/docker.list"
DOCKER_DOWNLOAD_BASE = "https://download.docker.com/linux"
DOCKER_PACKAGES = ("docker-ce", "docker-ce-cli", "containerd.io", "docker-buildx-plugin")
DOCKER_LEGACY_PACKAGES = ("docker", "docker-engine", "docker.io", "containerd", "runc")
DOCKER_APT_PREREQS = ("ca-certificates", "curl", "gnupg", "lsb-release")
COMPOSE_PLUGIN_PACKAGE = "docker-compose-plugin"
COMPOSE_SETTLE_SECONDS = 2.0

NotifyFn = Callable[[str], None]


@dataclass(frozen=True)
class PackageManager:
    name: str
    probe: str
    install_cmd: tuple[str, ...]
    refresh_cmd: tuple[str, ...] | None = None
    remove_cmd: tuple[str, ...] | None = None

    def install_argv(self, packages: Iterable[str]) -> list[str]:
        return [*self.install_cmd, *packages]


# Priority order: the first manager present on the host wins.
PACKAGE_MANAGERS: tuple[PackageManager, ...] = (
    PackageManager(
        name="apt",
        probe="apt",
        install_cmd=("apt-get", "install", "-y"),
        refresh_cmd=("apt-get", "update"),
        remove_cmd=("apt-get", "remove", "-y"),
    ),
    PackageManager(name="yum", probe="yum", install_cmd=("yum", "install", "-y")),
    PackageManager(name="dnf", probe="dnf", install_cmd=("dnf", "install", "-y")),
)

MAKE_PACKAGES = {"apt": ("build-essential",), "yum": ("make",), "dnf": ("make",)}


@dataclass
class ToolStatus:
    name: str
    present: bool
    installed: bool = False
    version: str | None = None
    method: str | None = None
    warnings: list[str] = field(default_factory=list)


def detect_package_manager(
    ctx: HostContext,
    managers: Iterable[PackageManager] = PACKAGE_MANAGERS,
) -> PackageManager | None:
    for manager in managers:
        if command_exists(ctx, manager.probe):
            return manager
    return None


def read_os_release(path: Path = OS_RELEASE_PATH) -> dict[str, str]:
    if not path.exists():
        return {}
    data: dict[str, str] = {}
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        data[key.strip()] = value.strip().strip("\"'")
    return data


def docker_apt_distro(release: dict[str, str]) -> str:
    distro_id = release.get("ID", "").lower()
    if distro_id in {"ubuntu", "debian"}:
        return distro_id
    like = release.get("ID_LIKE", "").lower().split()
    if "ubuntu" in like:
        return "ubuntu"
    if "debian" in like:
        return "debian"
    return "ubuntu"


def docker_apt_codename(ctx: HostContext, release: dict[str, str]) -> str:
    # Derivatives (Mint, Pop!_OS) carry the upstream codename separately.
    codename = release.get("UBUNTU_CODENAME") or release.get("VERSION_CODENAME")
    if codename:
        return codename
    codename = first_line(ctx, ["lsb_release", "-cs"])
    if not codename:
        raise InstallError("detect distribution codename", "Neither /etc/os-release nor lsb_release reported one.")
    return codename


def docker_apt_source_line(arch: str, distro: str, codename: str) -> str:
    return (
        f"deb [arch={arch} signed-by={DOCKER_APT_KEYRING}] "
        f"{DOCKER_DOWNLOAD_BASE}/{distro} {codename} stable\n"
    )


def _notify(notify: NotifyFn | None, message: str) -> None:
    if notify is not None:
        notify(message)


def _fetch_text(url: str, *, label: str) -> str:
    try:
        resp = httpx.get(url, timeout=30.0, follow_redirects=True)
        resp.raise_for_status()
    except httpx.HTTPError as exc:
        raise InstallError(label, str(exc)) from exc
    return resp.text


def _refresh(ctx: HostContext, manager: PackageManager) -> None:
    if manager.refresh_cmd:
        run_checked(ctx, manager.refresh_cmd, label=f"{manager.name} update", sudo=True)


def _install_packages(ctx: HostContext, manager: PackageManager, packages: Iterable[str], *, label: str) -> None:
    run_checked(ctx, manager.install_argv(packages), label=label, sudo=True)


def _install_docker_apt(ctx: HostContext, manager: PackageManager, release: dict[str, str]) -> None:
    if manager.remove_cmd:
        # Legacy packages are usually absent; a failed removal is fine.
        ctx.run([*manager.remove_cmd, *DOCKER_LEGACY_PACKAGES], sudo=ctx.needs_sudo)
    _refresh(ctx, manager)
    _install_packages(ctx, manager, DOCKER_APT_PREREQS, label="install docker prerequisites")

    distro = docker_apt_distro(release)
    run_checked(ctx, ["mkdir", "-p", str(Path(DOCKER_APT_KEYRING).parent)], label="create keyring dir", sudo=True)
    key = _fetch_text(f"{DOCKER_DOWNLOAD_BASE}/{distro}/gpg", label="download docker signing key")
    run_checked(
        ctx,
        ["gpg", "--dearmor", "--yes", "-o", DOCKER_APT_KEYRING],
        label="import docker signing key",
        sudo=True,
        input=key,
    )

    arch = first_line(ctx, ["dpkg", "--print-architecture"])
    if not arch:
        raise InstallError("detect architecture", "dpkg --print-architecture returned nothing.")
    codename = docker_apt_codename(ctx, release)
    run_checked(
        ctx,
        ["tee", DOCKER_APT_SOURCE],
        label="register docker apt repository",
        sudo=True,
        input=docker_apt_source_line(arch, distro, codename),
    )
    _refresh(ctx, manager)
    _install_packages(ctx, manager, DOCKER_PACKAGES, label="install docker engine")


def _install_docker_rpm(ctx: HostContext, manager: PackageManager, release: dict[str, str]) -> None:
    repo_distro = "fedora" if release.get("ID", "").lower() == "fedora" else "centos"
    repo_url = f"{DOCKER_DOWNLOAD_BASE}/{repo_distro}/docker-ce.repo"
    if manager.name == "dnf":
        _install_packages(ctx, manager, ["dnf-plugins-core"], label="install dnf-plugins-core")
        add_repo = ["dnf", "config-manager", "--add-repo", repo_url]
    else:
        _install_packages(ctx, manager, ["yum-utils"], label="install yum-utils")
        add_repo = ["yum-config-manager", "--add-repo", repo_url]
    run_checked(ctx, add_repo, label="register docker repository", sudo=True)
    _install_packages(ctx, manager, DOCKER_PACKAGES, label="install docker engine")
    run_checked(ctx, ["systemctl", "enable", "--now", "docker"], label="start docker service", sudo=True)


def _install_docker_script(ctx: HostContext) -> None:
    script = _fetch_text(DOCKER_CONVENIENCE_SCRIPT, label="download docker install script")
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "get-docker.sh"
        path.write_text(script, encoding="utf-8")
        run_checked(ctx, ["sh", str(path)], label="docker install script", sudo=True)


def ensure_docker(
    ctx: HostContext,
    *,
    os_release_path: Path = OS_RELEASE_PATH,
    notify: NotifyFn | None = None,
) -> ToolStatus:
    if command_exists(ctx, "docker"):
        return ToolStatus(name="docker", present=True, version=first_line(ctx, ["docker", "--version"]))

    manager = detect_package_manager(ctx)
    release = read_os_release(os_release_path)
    method = manager.name if manager else "get.docker.com"
    _notify(notify, f"Docker not found. Installing Docker via {method}...")
    if manager is None:
        _install_docker_script(ctx)
    elif manager.name == "apt":
        _install_docker_apt(ctx, manager, release)
    else:
        _install_docker_rpm(ctx, manager, release)

    status = ToolStatus(
        name="docker",
        present=command_exists(ctx, "docker"),
        installed=True,
        version=first_line(ctx, ["docker", "--version"]),
        method=method,
    )
    user = invoking_user()
    if user and user != "root":
        run_checked(ctx, ["usermod", "-aG", "docker", user], label="add user to docker group", sudo=True)
        status.warnings.append(
            f"User {user} was added to the docker group. Log out and back in (or run: newgrp docker) to use docker without sudo."
        )
    return status


def ensure_compose(
    ctx: HostContext,
    *,
    fallback_tag: str = COMPOSE_FALLBACK_TAG,
    notify: NotifyFn | None = None,
) -> ToolStatus:
    variant = detect_compose(ctx)
    if variant != COMPOSE_NONE:
        return ToolStatus(name="compose", present=True, version=compose_version(ctx, variant))

    manager = detect_package_manager(ctx)
    if manager is None:
        _notify(notify, "Docker Compose not found. Package manager not supported; installing via direct download...")
        tag = install_standalone_compose(ctx, fallback_tag=fallback_tag)
        method = f"download {tag}"
    else:
        _notify(notify, f"Docker Compose not found. Installing {COMPOSE_PLUGIN_PACKAGE} via {manager.name}...")
        _refresh(ctx, manager)
        _install_packages(ctx, manager, [COMPOSE_PLUGIN_PACKAGE], label="install docker compose plugin")
        method = manager.name

    # A fresh plugin is not always visible to the current session right away.
    ctx.sleep(COMPOSE_SETTLE_SECONDS)
    variant = detect_compose(ctx)
    status = ToolStatus(name="compose", present=variant != COMPOSE_NONE, installed=True, method=method)
    if status.present:
        status.version = compose_version(ctx, variant)
    else:
        status.warnings.extend(
            [
                "Docker Compose was installed but is not visible yet; it may require a Docker restart.",
                "Try: sudo systemctl restart docker",
                "Or log out and back in, then re-run.",
            ]
        )
    return status


def ensure_make(ctx: HostContext, *, notify: NotifyFn | None = None) -> ToolStatus:
    if command_exists(ctx, "make"):
        return ToolStatus(name="make", present=True, version=first_line(ctx, ["make", "--version"]))
    manager = detect_package_manager(ctx)
    if manager is None:
        raise InstallError("install make", "No supported package manager (apt, yum, dnf) found.")
    _notify(notify, f"Make not found. Installing via {manager.name}...")
    _refresh(ctx, manager)
    _install_packages(ctx, manager, MAKE_PACKAGES[manager.name], label="install make")
    return ToolStatus(
        name="make",
        present=command_exists(ctx, "make"),
        installed=True,
        version=first_line(ctx, ["make", "--version"]),
        method=manager.name,
    )


def ensure_net_tools(ctx: HostContext, *, notify: NotifyFn | None = None) -> ToolStatus:
    if command_exists(ctx, "ss") or command_exists(ctx, "netstat"):
        return ToolStatus(name="net-tools", present=True)
    manager = detect_package_manager(ctx)
    if manager is None:
        return ToolStatus(
            name="net-tools",
            present=False,
            warnings=["Could not install net-tools. Port checking may be limited."],
        )
    _notify(notify, "Installing net-tools for port checking...")
    _refresh(ctx, manager)
    _install_packages(ctx, manager, ["net-tools"], label="install net-tools")
    return ToolStatus(
        name="net-tools",
        present=command_exists(ctx, "netstat"),
        installed=True,
        method=manager.name,
    )
