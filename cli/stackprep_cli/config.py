from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass
from typing import Any

import tomli_w
from platformdirs import user_config_dir

from stackprep_core.compose import COMPOSE_FALLBACK_TAG
from stackprep_core.inputs import (
    DEFAULT_BROKER_IMAGE,
    DEFAULT_BROKER_PORT,
    DEFAULT_PROJECT_NAME,
    DEFAULT_WORKER_IMAGE,
)
from stackprep_core.ports import port_in_range

APP_NAME = "stackprep"
CONFIG_FILENAME = "config.toml"
ENV_BROKER_IMAGE = "STACKPREP_BROKER_IMAGE"
ENV_WORKER_IMAGE = "STACKPREP_WORKER_IMAGE"

SETTING_KEYS = ("broker_image", "worker_image", "project_name", "default_port", "compose_fallback_version")

_PROJECT_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


@dataclass
class AppConfig:
    broker_image: str = DEFAULT_BROKER_IMAGE
    worker_image: str = DEFAULT_WORKER_IMAGE
    project_name: str = DEFAULT_PROJECT_NAME
    default_port: int = DEFAULT_BROKER_PORT
    compose_fallback_version: str = COMPOSE_FALLBACK_TAG


def config_path() -> str:
    return f"{user_config_dir(APP_NAME)}/{CONFIG_FILENAME}"


def default_config() -> AppConfig:
    return AppConfig()


def ensure_parent_dir(path: str) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)


def normalize_project_name(raw: str | None) -> str:
    value = (raw or "").strip().lower()
    if not _PROJECT_NAME_RE.fullmatch(value):
        raise ValueError("Project name must start with a letter or digit and use only a-z, 0-9, '_' or '-'.")
    return value


def normalize_default_port(raw: Any) -> int:
    try:
        port = int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid port: {raw!r}") from None
    if not port_in_range(port):
        raise ValueError("Default port must be between 1024 and 65535.")
    return port


def to_toml(cfg: AppConfig) -> dict[str, Any]:
    return {
        "broker_image": cfg.broker_image,
        "worker_image": cfg.worker_image,
        "project_name": cfg.project_name,
        "default_port": cfg.default_port,
        "compose_fallback_version": cfg.compose_fallback_version,
    }


def from_toml(data: dict[str, Any]) -> AppConfig:
    cfg = default_config()
    broker_image = str(data.get("broker_image") or "").strip()
    if broker_image:
        cfg.broker_image = broker_image
    worker_image = str(data.get("worker_image") or "").strip()
    if worker_image:
        cfg.worker_image = worker_image
    fallback = str(data.get("compose_fallback_version") or "").strip()
    if fallback:
        cfg.compose_fallback_version = fallback
    # Bad values in a hand-edited file fall back to defaults.
    try:
        cfg.project_name = normalize_project_name(data.get("project_name") or cfg.project_name)
    except ValueError:
        pass
    try:
        cfg.default_port = normalize_default_port(data.get("default_port", cfg.default_port))
    except ValueError:
        pass
    return cfg


def apply_env_overrides(cfg: AppConfig) -> AppConfig:
    broker_image = os.getenv(ENV_BROKER_IMAGE, "").strip()
    if broker_image:
        cfg.broker_image = broker_image
    worker_image = os.getenv(ENV_WORKER_IMAGE, "").strip()
    if worker_image:
        cfg.worker_image = worker_image
    return cfg


def load_config(*, apply_env: bool = True) -> AppConfig:
    path = config_path()
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
        cfg = from_toml(data)
    except FileNotFoundError:
        cfg = default_config()
    return apply_env_overrides(cfg) if apply_env else cfg


def save_config(cfg: AppConfig) -> str:
    path = config_path()
    ensure_parent_dir(path)
    with open(path, "wb") as f:
        f.write(tomli_w.dumps(to_toml(cfg)).encode("utf-8"))
    os.chmod(path, 0o600)
    return path
