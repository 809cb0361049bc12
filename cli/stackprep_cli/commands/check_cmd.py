from __future__ import annotations

import typer
from rich.table import Table

from stackprep_core.compose import COMPOSE_NONE, compose_version, detect_compose
from stackprep_core.installers import detect_package_manager
from stackprep_core.ports import detect_firewall, port_inspector
from stackprep_core.shell import HostContext, command_exists, first_line, local_context

from .. import console


def collect_checks(ctx: HostContext) -> list[tuple[str, bool, str]]:
    checks: list[tuple[str, bool, str]] = []

    docker = command_exists(ctx, "docker")
    checks.append(("docker", docker, first_line(ctx, ["docker", "--version"]) if docker else "not installed"))

    variant = detect_compose(ctx)
    if variant == COMPOSE_NONE:
        checks.append(("compose", False, "not installed"))
    else:
        checks.append(("compose", True, f"{variant} ({compose_version(ctx, variant) or 'unknown version'})"))

    make = command_exists(ctx, "make")
    checks.append(("make", make, first_line(ctx, ["make", "--version"]) if make else "not installed"))

    inspector = port_inspector(ctx)
    checks.append(("port inspection", inspector is not None, inspector or "ss/netstat missing"))

    manager = detect_package_manager(ctx)
    checks.append(("package manager", manager is not None, manager.name if manager else "unsupported"))

    firewall = detect_firewall(ctx)
    checks.append(("firewall", firewall is not None, firewall.name if firewall else "none found"))
    return checks


def check(
    strict: bool = typer.Option(False, "--strict", help="Exit non-zero when docker or compose is missing."),
) -> None:
    """Report which tools this host already has."""
    checks = collect_checks(local_context())
    table = Table(title="Host prerequisites")
    table.add_column("check", style="bold")
    table.add_column("status")
    table.add_column("detail")
    for name, present, detail in checks:
        table.add_row(name, "[green]ok[/]" if present else "[yellow]missing[/]", detail or "")
    console.print(table)

    required = {name: present for name, present, _ in checks if name in {"docker", "compose"}}
    if strict and not all(required.values()):
        console.err("Docker and Docker Compose are required. Run: stackprep install")
        raise typer.Exit(code=2)
