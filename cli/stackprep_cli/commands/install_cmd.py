from __future__ import annotations

from functools import partial
from pathlib import Path
from typing import Callable, Iterable

import typer

from stackprep_core.compose import COMPOSE_NONE, detect_compose
from stackprep_core.errors import InstallError, RenderError
from stackprep_core.installers import (
    ToolStatus,
    ensure_compose,
    ensure_docker,
    ensure_make,
    ensure_net_tools,
)
from stackprep_core.render import write_makefile
from stackprep_core.shell import HostContext, local_context

from .. import console
from ..config import load_config

_LABELS = {
    "net-tools": "net-tools",
    "docker": "Docker",
    "compose": "Docker Compose",
    "make": "Make",
}


def _steps(fallback_tag: str) -> dict[str, Callable[..., ToolStatus]]:
    return {
        "net-tools": ensure_net_tools,
        "docker": ensure_docker,
        "compose": partial(ensure_compose, fallback_tag=fallback_tag),
        "make": ensure_make,
    }


def report_status(status: ToolStatus) -> None:
    label = _LABELS.get(status.name, status.name)
    if status.present and not status.installed:
        console.ok(f"{label} already installed" + (f": {status.version}" if status.version else ""))
    elif status.present:
        console.ok(f"{label} installed successfully" + (f": {status.version}" if status.version else ""))
    for warning in status.warnings:
        console.warn(warning)


def run_installers(ctx: HostContext, names: Iterable[str], *, fallback_tag: str) -> list[ToolStatus]:
    steps = _steps(fallback_tag)
    results: list[ToolStatus] = []
    for name in names:
        console.info(f"Checking {_LABELS[name]}...")
        try:
            status = steps[name](ctx, notify=console.warn)
        except InstallError as exc:
            console.err(str(exc))
            raise typer.Exit(code=2)
        report_status(status)
        results.append(status)
    return results


def _makefile_path(output_dir: str) -> Path:
    return Path(output_dir).expanduser().resolve() / "Makefile"


def create_makefile(ctx: HostContext, output_dir: str, *, force: bool) -> Path:
    compose_cmd = detect_compose(ctx)
    if compose_cmd == COMPOSE_NONE:
        console.err("No Docker Compose found. Please install Docker Compose first.")
        raise typer.Exit(code=2)
    console.info(f"Detected Docker Compose command: {compose_cmd}")
    path = _makefile_path(output_dir)
    try:
        written = write_makefile(path, compose_cmd, force=force)
    except (RenderError, OSError) as exc:
        console.err(str(exc))
        raise typer.Exit(code=2)
    for backup in written.backups:
        console.warn(f"Backed up existing Makefile to {backup}")
    console.ok(f"Makefile created: {path}")
    console.print("Available make commands:")
    for line in (
        "make up          - Start containers",
        "make down        - Stop containers",
        "make prune-all   - Stop containers and remove images",
        "make logs        - Show logs",
        "make ps          - Show running containers",
        "make clean       - Complete cleanup",
    ):
        console.print(f"  {line}")
    return path


def install(
    output_dir: str = typer.Option(".", "--dir", help="Directory for the generated Makefile."),
    force: bool = typer.Option(False, "--force", help="Recreate the Makefile if it already exists."),
    no_makefile: bool = typer.Option(False, "--no-makefile", help="Only install tools."),
):
    """Install Docker, Docker Compose and Make, then generate a Makefile.

    Every step is skipped when the tool is already present.
    """
    console.rule("[bold]Docker & Docker Compose Setup[/]")
    cfg = load_config()
    ctx = local_context()
    results = run_installers(ctx, ["docker", "compose", "make"], fallback_tag=cfg.compose_fallback_version)

    if not no_makefile:
        path = _makefile_path(output_dir)
        if path.exists() and not force:
            console.ok(f"Makefile already exists: {path}")
            console.warn("To recreate the Makefile, delete it first or pass --force.")
        else:
            create_makefile(ctx, output_dir, force=force)

    console.ok("Setup completed successfully!")
    console.print("Next steps:")
    if any(s.name == "docker" and s.installed for s in results):
        console.print("  - Log out and back in (or run: newgrp docker) to apply docker group changes")
    console.print("  - Create your docker-compose.yml (or run: stackprep setup)")
    console.print("  - Run 'make up' to start your containers")
    console.print("  - Run 'make help' to see all available commands")


def makefile(
    output_dir: str = typer.Option(".", "--dir", help="Directory for the generated Makefile."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing Makefile (a backup is kept)."),
):
    """Generate a Makefile for the detected Docker Compose command."""
    create_makefile(local_context(), output_dir, force=force)
