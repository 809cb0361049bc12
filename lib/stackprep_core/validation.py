from __future__ import annotations

import re
from typing import Callable

from .errors import ValidationError
from .ports import PORT_MAX, PORT_MIN, port_in_range

USERNAME_MIN = 3
PASSWORD_MIN = 6

_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]+$")


class PortInUseError(ValidationError):
    def __init__(self, port: int):
        super().__init__(f"Port {port} is already in use!")
        self.port = port


class PortRangeError(ValidationError):
    pass


def validate_username(value: str) -> str:
    if len(value) < USERNAME_MIN or not _USERNAME_RE.fullmatch(value):
        raise ValidationError(
            f"Invalid username. Use at least {USERNAME_MIN} characters (letters, numbers, underscore only)."
        )
    return value


def validate_password(value: str) -> str:
    # The broker URL embeds the password between ':' and '@'.
    if "@" in value:
        raise ValidationError("Password cannot contain '@' symbol. This can cause connection issues.")
    if len(value) < PASSWORD_MIN:
        raise ValidationError(f"Password too short. Minimum {PASSWORD_MIN} characters.")
    return value


def confirm_password(value: str, confirmation: str) -> str:
    if value != confirmation:
        raise ValidationError("Passwords don't match. Try again.")
    return value


def parse_port(raw: str | int | None, *, default: int) -> int:
    if raw is None:
        return default
    if isinstance(raw, int):
        port = raw
    else:
        text = raw.strip()
        if not text:
            return default
        # int() alone would also take "5_672" and non-ASCII digits.
        if not (text.isascii() and text.isdigit()):
            raise PortRangeError(f"Invalid port range. Use port between {PORT_MIN}-{PORT_MAX}.")
        port = int(text)
    return port


def validate_port(port: int, *, in_use: Callable[[int], bool]) -> int:
    if not port_in_range(port):
        raise PortRangeError(f"Invalid port range. Use port between {PORT_MIN}-{PORT_MAX}.")
    if in_use(port):
        raise PortInUseError(port)
    return port
