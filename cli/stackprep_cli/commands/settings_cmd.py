from __future__ import annotations

import os

import typer

from .. import console
from ..config import (
    SETTING_KEYS,
    config_path,
    default_config,
    load_config,
    normalize_default_port,
    normalize_project_name,
    save_config,
    to_toml,
)

app = typer.Typer(help="Manage local defaults (~/.config/stackprep/config.toml).")


@app.command("init")
def init_settings(
        force: bool = typer.Option(False, "--force", help="Overwrite existing config."),
):
    path = config_path()
    if os.path.exists(path) and not force:
        console.info(f"Config already exists: {path}")
        console.info("Use --force to overwrite.")
        return
    saved = save_config(default_config())
    console.ok(f"Config written: {saved}")


@app.command("show")
def show_settings():
    cfg = load_config()
    for key, value in to_toml(cfg).items():
        console.console.print(f"{key}={value}", highlight=False)


@app.command("get")
def get_setting(
        key: str = typer.Argument(..., help=f"Setting key ({', '.join(SETTING_KEYS)})."),
):
    cfg = load_config()
    k = key.strip().lower()
    values = to_toml(cfg)
    if k not in values:
        console.err(f"Unknown setting: {key}")
        raise typer.Exit(code=2)
    console.console.print(str(values[k]), highlight=False)


@app.command("set")
def set_setting(
        broker_image: str | None = typer.Option(None, "--broker-image", help="Broker image."),
        worker_image: str | None = typer.Option(None, "--worker-image", help="Worker image."),
        project_name: str | None = typer.Option(None, "--project-name", help="Prefix for container and network names."),
        default_port: int | None = typer.Option(None, "--default-port", help="Default broker port."),
        compose_fallback_version: str | None = typer.Option(
            None,
            "--compose-fallback-version",
            help="docker-compose release used when the release API is unreachable.",
        ),
):
    cfg = load_config(apply_env=False)
    try:
        if broker_image is not None:
            cfg.broker_image = broker_image.strip() or cfg.broker_image
        if worker_image is not None:
            cfg.worker_image = worker_image.strip() or cfg.worker_image
        if project_name is not None:
            cfg.project_name = normalize_project_name(project_name)
        if default_port is not None:
            cfg.default_port = normalize_default_port(default_port)
        if compose_fallback_version is not None:
            cfg.compose_fallback_version = compose_fallback_version.strip() or cfg.compose_fallback_version
    except ValueError as exc:
        console.err(str(exc))
        raise typer.Exit(code=2)
    saved = save_config(cfg)
    console.ok(f"Settings updated: {saved}")
