from __future__ import annotations

from dataclasses import replace

import typer
from rich.prompt import Confirm
from rich.text import Text

from stackprep_core.compose import COMPOSE_NONE, detect_compose
from stackprep_core.errors import InstallError, RenderError, ValidationError
from stackprep_core.inputs import Credentials, StackInputs
from stackprep_core.keys import resolve_api_key, resolve_secret_key
from stackprep_core.ports import check_port_in_use, open_firewall_port, suggest_ports
from stackprep_core.render import write_stack_files
from stackprep_core.shell import HostContext, local_context
from stackprep_core.validation import (
    confirm_password,
    parse_port,
    validate_password,
    validate_port,
    validate_username,
)

from .. import console
from ..config import load_config
from .install_cmd import run_installers


def _reject(exc: ValidationError, *, non_interactive: bool) -> None:
    console.err(str(exc))
    if non_interactive:
        raise typer.Exit(code=2)


def prompt_username(initial: str | None, *, non_interactive: bool) -> str:
    value = initial
    while True:
        if value is None:
            value = typer.prompt("Broker username (min 3 chars, alphanumeric)")
        try:
            return validate_username(value.strip())
        except ValidationError as exc:
            _reject(exc, non_interactive=non_interactive)
        value = None


def prompt_password(initial: str | None, *, non_interactive: bool) -> str:
    value = initial
    while True:
        from_option = value is not None
        if value is None:
            value = typer.prompt("Broker password (min 6 chars, no @ symbol)", hide_input=True)
        try:
            validate_password(value)
            if not from_option:
                confirmation = typer.prompt("Confirm password", hide_input=True)
                confirm_password(value, confirmation)
            return value
        except ValidationError as exc:
            _reject(exc, non_interactive=non_interactive)
        value = None


def show_port_suggestions(ctx: HostContext, port: int) -> list[int]:
    suggestions = suggest_ports(ctx, port)
    if suggestions:
        console.info("Available ports: " + ", ".join(str(p) for p in suggestions))
    else:
        console.warn(f"No free ports found between {port + 1} and {port + 5}.")
    return suggestions


def prompt_port(
    ctx: HostContext,
    initial: int | None,
    *,
    default_port: int,
    non_interactive: bool,
) -> int:
    raw: str | int | None = initial
    if raw is None and non_interactive:
        raw = default_port
    while True:
        if raw is None:
            raw = typer.prompt(f"Broker port [{default_port}]", default="", show_default=False)
        port: int | None = None
        try:
            port = parse_port(raw, default=default_port)
            validate_port(port, in_use=lambda p: check_port_in_use(ctx, p))
        except ValidationError as exc:
            console.err(str(exc))
            if port is not None:
                show_port_suggestions(ctx, port)
            if non_interactive:
                raise typer.Exit(code=2)
            console.warn("Please try another port.")
            raw = None
            continue
        console.ok(f"Port {port} is available!")
        return port


def collect_credentials(
    ctx: HostContext,
    *,
    username: str | None,
    password: str | None,
    port: int | None,
    default_port: int,
    non_interactive: bool,
) -> Credentials:
    missing = []
    if username is None:
        missing.append("--username")
    if password is None:
        missing.append("--password")
    if missing and non_interactive:
        console.err(f"Missing required flags: {', '.join(missing)}")
        raise typer.Exit(code=2)

    console.rule("Broker Configuration")
    return Credentials(
        username=prompt_username(username, non_interactive=non_interactive),
        password=prompt_password(password, non_interactive=non_interactive),
        port=prompt_port(ctx, port, default_port=default_port, non_interactive=non_interactive),
    )


def collect_keys(
    secret_key: str | None,
    api_key: str | None,
    *,
    non_interactive: bool,
) -> tuple[str, str]:
    console.rule("Security Configuration")
    if secret_key is None and not non_interactive:
        secret_key = typer.prompt("SECRET_KEY [auto-generate]", default="", show_default=False)
    if api_key is None and not non_interactive:
        api_key = typer.prompt("API_KEY [auto-generate]", default="", show_default=False)
    return resolve_secret_key(secret_key), resolve_api_key(api_key)


def _existing_artifacts(inputs: StackInputs) -> list[str]:
    paths = [inputs.compose_path, inputs.env_path]
    # No Makefile is written while compose is unresolved.
    if inputs.compose_cmd != COMPOSE_NONE:
        paths.insert(0, inputs.makefile_path)
    return [str(p) for p in paths if p.exists()]


def _confirm_overwrite(inputs: StackInputs, *, assume_yes: bool, non_interactive: bool) -> bool:
    existing = _existing_artifacts(inputs)
    if not existing or inputs.force:
        return inputs.force
    if non_interactive:
        console.err(f"Already exists: {', '.join(existing)}. Use --force to overwrite.")
        raise typer.Exit(code=2)
    if assume_yes:
        return True
    console.warn(f"Already exists: {', '.join(existing)}")
    if not Confirm.ask("Overwrite existing files? (backups are kept)", default=False):
        console.err("Aborted by user.")
        raise typer.Exit(code=1)
    return True


def _open_port(ctx: HostContext, port: int) -> bool:
    console.info(f"Opening firewall port {port}...")
    try:
        result = open_firewall_port(ctx, port)
    except InstallError as exc:
        console.warn(f"{exc} Please open port {port} manually.")
        return False
    if not result.opened:
        console.warn(f"No firewall management tool found. Please open port {port} manually.")
        return False
    console.ok(f"Port {port} opened via {result.tool}")
    if not result.persistent:
        console.warn("Note: iptables rules may not persist after reboot")
    return True


def print_summary(inputs: StackInputs, *, firewall_opened: bool, makefile_written: bool) -> None:
    console.rule("[bold green]Setup Complete![/]")
    console.print("Generated files:")
    if makefile_written:
        console.print(f"  - {inputs.makefile_path}")
    console.print(f"  - {inputs.compose_path}")
    console.print(f"  - {inputs.env_path} (secure permissions)")
    console.print("  - " + ", ".join(f"{d.name}/" for d in inputs.data_dirs) + " directories")
    console.print("Configuration:")
    console.print(f"  - Broker User: {inputs.credentials.username}")
    console.print(f"  - Broker Port: {inputs.credentials.port}")
    state = "opened" if firewall_opened else "not opened"
    console.print(f"  - Firewall: Port {inputs.credentials.port} {state}")
    console.print("Next steps:")
    if makefile_written:
        console.print("  1. Run: make up")
        console.print("  2. Check logs: make logs")
        console.print("  3. Stop: make down")
    else:
        console.print("  1. Once Docker Compose is visible, run: stackprep makefile")
        console.print("  2. Then: make up")


def setup(
    output_dir: str = typer.Option(".", "--dir", help="Directory for the generated files."),
    username: str | None = typer.Option(None, "--username", help="Broker username."),
    password: str | None = typer.Option(None, "--password", help="Broker password (prompted if omitted)."),
    port: int | None = typer.Option(None, "--port", help="Host port for the broker."),
    secret_key: str | None = typer.Option(None, "--secret-key", help="SECRET_KEY (generated if empty)."),
    api_key: str | None = typer.Option(None, "--api-key", help="API_KEY (generated if empty)."),
    no_install: bool = typer.Option(False, "--no-install", help="Do not install Docker/Compose/net-tools."),
    no_firewall: bool = typer.Option(False, "--no-firewall", help="Do not open the broker port in the firewall."),
    force: bool = typer.Option(False, "--force", help="Overwrite generated files (backups are kept)."),
    assume_yes: bool = typer.Option(False, "--yes", help="Assume yes where safe."),
    non_interactive: bool = typer.Option(False, "--non-interactive", help="Fail instead of prompting."),
):
    """Interactive setup wizard for the FBBot stack.

    Collects broker credentials, installs missing tools, writes
    Makefile, docker-compose.yml and .env, and opens the broker port.

    Examples:
      stackprep setup
      stackprep setup --username bot --password s3cret! --port 5673 --yes
    """
    console.rule("[bold]Docker Compose Setup for FBBot[/]")
    cfg = load_config()
    ctx = local_context()
    if ctx.is_root:
        console.warn("Running as root. Consider using a non-root user.")

    credentials = collect_credentials(
        ctx,
        username=username,
        password=password,
        port=port,
        default_port=cfg.default_port,
        non_interactive=non_interactive,
    )
    secret, api = collect_keys(secret_key, api_key, non_interactive=non_interactive)

    if not no_install:
        run_installers(ctx, ["net-tools", "docker", "compose"], fallback_tag=cfg.compose_fallback_version)

    compose_cmd = detect_compose(ctx)
    if compose_cmd == COMPOSE_NONE:
        console.warn("Docker Compose is not available yet; the Makefile will be skipped.")
    else:
        console.info(f"Detected Docker Compose command: {compose_cmd}")

    inputs = StackInputs(
        output_dir=output_dir,
        compose_cmd=compose_cmd,
        credentials=credentials,
        secret_key=secret,
        api_key=api,
        broker_image=cfg.broker_image,
        worker_image=cfg.worker_image,
        project_name=cfg.project_name,
        force=force,
    )
    overwrite = _confirm_overwrite(inputs, assume_yes=assume_yes, non_interactive=non_interactive)
    if overwrite != inputs.force:
        inputs = replace(inputs, force=overwrite)

    if not assume_yes and not non_interactive:
        confirm_message = Text(f"Write stack files to {inputs.stack_dir}?", style="bold")
        if not Confirm.ask(confirm_message, default=True):
            console.err("Aborted by user.")
            raise typer.Exit(code=1)

    try:
        written = write_stack_files(inputs)
    except (RenderError, OSError) as exc:
        console.err(str(exc))
        raise typer.Exit(code=2)
    for backup in written.backups:
        console.warn(f"Backed up existing file to {backup}")
    for path in written.paths:
        console.ok(f"Wrote {path}")
    for path in written.skipped:
        console.warn(f"Skipped {path}: no Docker Compose command detected.")

    firewall_opened = False
    if not no_firewall:
        firewall_opened = _open_port(ctx, credentials.port)

    print_summary(inputs, firewall_opened=firewall_opened, makefile_written=not written.skipped)
