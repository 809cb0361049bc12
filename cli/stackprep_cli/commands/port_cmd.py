from __future__ import annotations

import typer

from stackprep_core.errors import InstallError
from stackprep_core.ports import check_port_in_use, open_firewall_port, port_in_range, suggest_ports
from stackprep_core.shell import local_context

from .. import console

app = typer.Typer(help="Check host ports and open them in the firewall.")


def _require_range(port: int) -> None:
    if not port_in_range(port):
        console.err("Invalid port range. Use port between 1024-65535.")
        raise typer.Exit(code=2)


@app.command("check")
def port_check(
    port: int = typer.Argument(..., help="TCP port to check."),
) -> None:
    _require_range(port)
    ctx = local_context()
    if not check_port_in_use(ctx, port):
        console.ok(f"Port {port} is available!")
        return
    console.err(f"Port {port} is already in use!")
    suggestions = suggest_ports(ctx, port)
    if suggestions:
        console.info("Available ports: " + ", ".join(str(p) for p in suggestions))
    raise typer.Exit(code=1)


@app.command("open")
def port_open(
    port: int = typer.Argument(..., help="TCP port to allow inbound."),
) -> None:
    _require_range(port)
    try:
        result = open_firewall_port(local_context(), port)
    except InstallError as exc:
        console.err(str(exc))
        raise typer.Exit(code=2)
    if not result.opened:
        console.warn(f"No firewall management tool found. Please open port {port} manually.")
        return
    console.ok(f"Port {port} opened via {result.tool}")
    if not result.persistent:
        console.warn("Note: iptables rules may not persist after reboot")
