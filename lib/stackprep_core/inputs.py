from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

DEFAULT_BROKER_IMAGE = "rabbitmq:3-management"
DEFAULT_WORKER_IMAGE = "ghcr.io/irosadie/grbot:latest"
DEFAULT_PROJECT_NAME = "fbbot"
DEFAULT_BROKER_PORT = 5672
BROKER_CONTAINER_PORT = 5672
BROKER_SERVICE = "rabbitmq"
WORKER_SERVICE = "fbbot"
DATA_DIR_NAMES = ("logs", "sessions", "data")


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str
    port: int


@dataclass(frozen=True)
class StackInputs:
    output_dir: str
    compose_cmd: str
    credentials: Credentials
    secret_key: str
    api_key: str
    broker_image: str = DEFAULT_BROKER_IMAGE
    worker_image: str = DEFAULT_WORKER_IMAGE
    project_name: str = DEFAULT_PROJECT_NAME
    force: bool = False

    @property
    def stack_dir(self) -> Path:
        return Path(self.output_dir).expanduser().resolve()

    @property
    def makefile_path(self) -> Path:
        return self.stack_dir / "Makefile"

    @property
    def compose_path(self) -> Path:
        return self.stack_dir / "docker-compose.yml"

    @property
    def env_path(self) -> Path:
        return self.stack_dir / ".env"

    @property
    def data_dirs(self) -> list[Path]:
        return [self.stack_dir / name for name in DATA_DIR_NAMES]

    @property
    def network_name(self) -> str:
        return f"{self.project_name}-network"
