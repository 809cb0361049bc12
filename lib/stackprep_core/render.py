from __future__ import annotations

import os
import re
import shutil
import urllib.parse
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable

import yaml

from .compose import COMPOSE_NONE
from .errors import RenderError
from .inputs import (
    BROKER_CONTAINER_PORT,
    BROKER_SERVICE,
    WORKER_SERVICE,
    StackInputs,
)

ENV_FILE_MODE = 0o600
COMPOSE_FILE_MODE = 0o644

_ENV_PLAIN_RE = re.compile(r"^[A-Za-z0-9_./:@%+,=-]*$")

# (target, help text, recipe lines)
_MAKE_TARGETS: tuple[tuple[str, str, tuple[str, ...]], ...] = (
    (
        "up",
        "Start containers in detached mode",
        ('@echo "Starting containers..."', "$(COMPOSE_CMD) up -d", '@echo "Containers started!"'),
    ),
    (
        "down",
        "Stop and remove containers",
        ('@echo "Stopping containers..."', "$(COMPOSE_CMD) down", '@echo "Containers stopped!"'),
    ),
    ("logs", "Show logs from all containers", ('@echo "Showing logs..."', "$(COMPOSE_CMD) logs -f")),
    ("ps", "Show running containers", ('@echo "Running containers:"', "$(COMPOSE_CMD) ps")),
    (
        "restart",
        "Restart containers",
        ('@echo "Restarting containers..."', "$(COMPOSE_CMD) restart", '@echo "Containers restarted!"'),
    ),
    (
        "prune-all",
        "Stop containers and remove all images",
        (
            '@echo "Stopping containers and removing images..."',
            "$(COMPOSE_CMD) down --rmi all",
            '@echo "Cleanup completed!"',
        ),
    ),
    (
        "clean",
        "Clean up everything (containers, images, volumes, networks)",
        (
            '@echo "Cleaning up everything..."',
            "$(COMPOSE_CMD) down -v --rmi all --remove-orphans",
            "docker system prune -f",
            '@echo "Complete cleanup done!"',
        ),
    ),
)

_MAKE_HELP = (
    ("up", "Start containers ($(COMPOSE_CMD) up -d)"),
    ("down", "Stop containers ($(COMPOSE_CMD) down)"),
    ("logs", "Show logs ($(COMPOSE_CMD) logs -f)"),
    ("ps", "Show running containers"),
    ("restart", "Restart containers"),
    ("prune-all", "Stop containers and remove images"),
    ("clean", "Clean up everything (containers, images, volumes)"),
)


@dataclass
class WrittenFiles:
    paths: list[Path] = field(default_factory=list)
    directories: list[Path] = field(default_factory=list)
    backups: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)


def make_escape(value: str) -> str:
    """Escape a value for use on the right-hand side of a make assignment."""
    if "\n" in value or "\r" in value:
        raise RenderError("Makefile values cannot contain newlines.")
    return value.replace("$", "$$").replace("#", "\\#")


def env_escape(value: str) -> str:
    """Quote a value for a dotenv line read by docker compose."""
    if "\n" in value or "\r" in value:
        raise RenderError(".env values cannot contain newlines.")
    if _ENV_PLAIN_RE.match(value):
        return value
    # Single quotes are literal: no interpolation, no escapes.
    if "'" not in value:
        return f"'{value}'"
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("$", "\\$")
    return f'"{escaped}"'


def render_makefile(compose_cmd: str) -> str:
    if not compose_cmd or compose_cmd == COMPOSE_NONE:
        raise RenderError("No Docker Compose found. Please install Docker Compose first.")
    cmd = make_escape(compose_cmd)
    phony = " ".join(["help", *(name for name, _, _ in _MAKE_TARGETS), "start", "stop"])
    lines = [
        "# Makefile for Docker Compose commands",
        "# Usage: make <command>",
        f"# Auto-detected Docker Compose command: {cmd}",
        "",
        f".PHONY: {phony}",
        "",
        "# Docker Compose command (auto-detected)",
        f"COMPOSE_CMD = {cmd}",
        "",
        "# Default target",
        "help: ## Show this help message",
        '\t@echo "Available commands:"',
    ]
    for name, text in _MAKE_HELP:
        lines.append(f'\t@echo "  make {name:<13} - {text}"')
    for name, text, recipe in _MAKE_TARGETS:
        lines.append("")
        lines.append(f"{name}: ## {text}")
        lines.extend(f"\t{step}" for step in recipe)
    lines.extend(
        [
            "",
            "# Aliases",
            "start: up",
            "stop: down",
        ]
    )
    return "\n".join(lines) + "\n"


def render_compose(inputs: StackInputs) -> str:
    network = inputs.network_name
    compose = {
        "services": {
            BROKER_SERVICE: {
                "image": inputs.broker_image,
                "container_name": f"{inputs.project_name}-broker",
                "ports": [f"{inputs.credentials.port}:{BROKER_CONTAINER_PORT}"],
                "environment": {
                    "RABBITMQ_DEFAULT_USER": "${RABBITMQ_USER}",
                    "RABBITMQ_DEFAULT_PASS": "${RABBITMQ_PASS}",
                    "RABBITMQ_DEFAULT_VHOST": "/",
                },
                "volumes": ["rabbitmq_data:/var/lib/rabbitmq"],
                "healthcheck": {
                    "test": ["CMD", "rabbitmq-diagnostics", "ping"],
                    "interval": "30s",
                    "timeout": "10s",
                    "retries": 5,
                },
                "networks": [network],
                "restart": "unless-stopped",
            },
            WORKER_SERVICE: {
                "image": inputs.worker_image,
                "container_name": f"{inputs.project_name}-worker",
                "depends_on": {BROKER_SERVICE: {"condition": "service_healthy"}},
                "env_file": [".env"],
                "volumes": [f"./{d.name}:/app/{d.name}" for d in inputs.data_dirs],
                "networks": [network],
                "restart": "unless-stopped",
                "deploy": {"resources": {"limits": {"cpus": "1.0", "memory": "1G"}}},
            },
        },
        "networks": {network: {"driver": "bridge"}},
        "volumes": {"rabbitmq_data": {}},
    }
    dumped = yaml.safe_dump(compose, sort_keys=False, default_flow_style=False)
    return dumped if dumped.endswith("\n") else dumped + "\n"


def broker_url(username: str, password: str) -> str:
    user = urllib.parse.quote(username, safe="")
    secret = urllib.parse.quote(password, safe="")
    return f"pyamqp://{user}:{secret}@{BROKER_SERVICE}:{BROKER_CONTAINER_PORT}//"


def render_env(inputs: StackInputs) -> str:
    creds = inputs.credentials
    sections: list[tuple[str, list[tuple[str, str]]]] = [
        (
            "Broker Configuration",
            [
                ("RABBITMQ_HOST", BROKER_SERVICE),
                ("RABBITMQ_PORT", str(BROKER_CONTAINER_PORT)),
                ("RABBITMQ_USER", creds.username),
                ("RABBITMQ_PASS", creds.password),
                ("CELERY_BROKER_URL", broker_url(creds.username, creds.password)),
                ("CELERY_RESULT_BACKEND", "rpc://"),
            ],
        ),
        (
            "Browser Settings",
            [
                ("HEADLESS", "true"),
                ("VISIBLE_BROWSER", "false"),
                ("DEBUG", "false"),
                ("ENVIRONMENT", "production"),
                ("DISPLAY", ":99"),
                ("PLAYWRIGHT_BROWSERS_PATH", "/usr/local/share/ms-playwright"),
            ],
        ),
        (
            "Application Settings",
            [
                ("PYTHONUNBUFFERED", "1"),
                ("PYTHONPATH", "/app"),
                ("LOG_LEVEL", "INFO"),
            ],
        ),
        (
            "Security",
            [
                ("SECRET_KEY", inputs.secret_key),
                ("API_KEY", inputs.api_key),
            ],
        ),
    ]
    lines: list[str] = []
    for title, entries in sections:
        if lines:
            lines.append("")
        lines.append(f"# {title}")
        lines.extend(f"{key}={env_escape(value)}" for key, value in entries)
    return "\n".join(lines) + "\n"


def _write_private(path: Path, content: str) -> None:
    # Created with the final mode so the secrets are never world-readable.
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, ENV_FILE_MODE)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(content)
    os.chmod(path, ENV_FILE_MODE)


def backup_file(path: Path) -> Path:
    timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
    backup_path = path.with_name(f"{path.name}.bak-{timestamp}")
    shutil.move(str(path), str(backup_path))
    return backup_path


def _backup_existing(paths: Iterable[Path], *, force: bool) -> list[Path]:
    existing = [p for p in paths if p.exists()]
    if not existing:
        return []
    if not force:
        names = ", ".join(str(p) for p in existing)
        raise RenderError(f"Already exists: {names}. Use --force to overwrite.")
    return [backup_file(p) for p in existing]


def write_makefile(path: Path, compose_cmd: str, *, force: bool = False) -> WrittenFiles:
    content = render_makefile(compose_cmd)
    path.parent.mkdir(parents=True, exist_ok=True)
    result = WrittenFiles(backups=_backup_existing([path], force=force))
    path.write_text(content, encoding="utf-8")
    result.paths.append(path)
    return result


def write_stack_files(inputs: StackInputs) -> WrittenFiles:
    """Write Makefile, compose file and .env, plus the data directories.

    The Makefile is skipped when no compose command was resolved.
    """
    # Render everything first so a rejected value leaves the directory untouched.
    makefile = None
    if inputs.compose_cmd != COMPOSE_NONE:
        makefile = render_makefile(inputs.compose_cmd)
    compose = render_compose(inputs)
    env = render_env(inputs)

    inputs.stack_dir.mkdir(parents=True, exist_ok=True)
    targets = [inputs.compose_path, inputs.env_path]
    if makefile is not None:
        targets.insert(0, inputs.makefile_path)
    result = WrittenFiles(backups=_backup_existing(targets, force=inputs.force))

    if makefile is None:
        result.skipped.append(inputs.makefile_path)
    else:
        inputs.makefile_path.write_text(makefile, encoding="utf-8")
        result.paths.append(inputs.makefile_path)
    inputs.compose_path.write_text(compose, encoding="utf-8")
    os.chmod(inputs.compose_path, COMPOSE_FILE_MODE)
    _write_private(inputs.env_path, env)
    result.paths.extend([inputs.compose_path, inputs.env_path])

    for directory in inputs.data_dirs:
        directory.mkdir(parents=True, exist_ok=True)
        result.directories.append(directory)
    return result
