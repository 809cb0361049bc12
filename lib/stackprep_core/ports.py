from __future__ import annotations

import logging
import re
import socket
from dataclasses import dataclass
from typing import Iterable

from .shell import HostContext, command_exists, run_checked

logger = logging.getLogger(__name__)

PORT_MIN = 1024
PORT_MAX = 65535
SUGGESTION_COUNT = 5

_ADDR_PORT_RE = re.compile(r"^(?P<addr>.*):(?P<port>\d+)$")

# Both tools print the local address before the peer address.
PORT_INSPECTORS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("ss", ("ss", "-tuln")),
    ("netstat", ("netstat", "-tuln")),
)


@dataclass(frozen=True)
class FirewallTool:
    name: str
    probe: str
    commands: tuple[tuple[str, ...], ...]
    persistent: bool = True

    def argv_for(self, port: int) -> list[list[str]]:
        return [[part.format(port=port) for part in cmd] for cmd in self.commands]


# Priority order: the first tool present on the host wins.
FIREWALL_TOOLS: tuple[FirewallTool, ...] = (
    FirewallTool(name="ufw", probe="ufw", commands=(("ufw", "allow", "{port}/tcp"),)),
    FirewallTool(
        name="firewalld",
        probe="firewall-cmd",
        commands=(
            ("firewall-cmd", "--permanent", "--add-port={port}/tcp"),
            ("firewall-cmd", "--reload"),
        ),
    ),
    FirewallTool(
        name="iptables",
        probe="iptables",
        commands=(("iptables", "-A", "INPUT", "-p", "tcp", "--dport", "{port}", "-j", "ACCEPT"),),
        persistent=False,
    ),
)


@dataclass
class FirewallResult:
    port: int
    tool: str | None
    persistent: bool = False

    @property
    def opened(self) -> bool:
        return self.tool is not None


def parse_listening_ports(output: str) -> set[int]:
    ports: set[int] = set()
    for line in output.splitlines():
        for token in line.split():
            match = _ADDR_PORT_RE.match(token)
            if not match:
                continue
            ports.add(int(match.group("port")))
            break
    return ports


def listening_ports(ctx: HostContext) -> set[int] | None:
    for name, argv in PORT_INSPECTORS:
        if not command_exists(ctx, name):
            continue
        res = ctx.run(list(argv))
        if res.returncode != 0:
            logger.debug("%s exited with %s", name, res.returncode)
            continue
        return parse_listening_ports(res.stdout or "")
    return None


def port_inspector(ctx: HostContext) -> str | None:
    for name, _argv in PORT_INSPECTORS:
        if command_exists(ctx, name):
            return name
    return None


def _bind_probe(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind(("", port))
        except OSError:
            return True
    return False


def check_port_in_use(ctx: HostContext, port: int, *, ports: set[int] | None = None) -> bool:
    if ports is None:
        ports = listening_ports(ctx)
    if ports is None:
        return _bind_probe(port)
    return port in ports


def port_in_range(port: int) -> bool:
    return PORT_MIN <= port <= PORT_MAX


def suggest_ports(ctx: HostContext, port: int, *, count: int = SUGGESTION_COUNT) -> list[int]:
    """Free candidates among ``port+1 .. port+count``."""
    ports = listening_ports(ctx)
    suggestions: list[int] = []
    for candidate in range(port + 1, port + count + 1):
        if not port_in_range(candidate):
            continue
        if check_port_in_use(ctx, candidate, ports=ports):
            continue
        suggestions.append(candidate)
    return suggestions


def detect_firewall(ctx: HostContext, tools: Iterable[FirewallTool] = FIREWALL_TOOLS) -> FirewallTool | None:
    for tool in tools:
        if command_exists(ctx, tool.probe):
            return tool
    return None


def open_firewall_port(
    ctx: HostContext,
    port: int,
    tools: Iterable[FirewallTool] = FIREWALL_TOOLS,
) -> FirewallResult:
    tool = detect_firewall(ctx, tools)
    if tool is None:
        return FirewallResult(port=port, tool=None)
    for argv in tool.argv_for(port):
        run_checked(ctx, argv, label=f"{tool.name} open port {port}", sudo=True)
    return FirewallResult(port=port, tool=tool.name, persistent=tool.persistent)
