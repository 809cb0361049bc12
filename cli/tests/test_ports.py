import pytest

from stackprep_core import ports
from stackprep_core.errors import InstallError
from stackprep_core.ports import (
    check_port_in_use,
    open_firewall_port,
    parse_listening_ports,
    suggest_ports,
)

SS_OUTPUT = """\
Netid State  Recv-Q Send-Q Local Address:Port  Peer Address:Port Process
udp   UNCONN 0      0          127.0.0.53%lo:53         0.0.0.0:*
tcp   LISTEN 0      4096          0.0.0.0:5672       0.0.0.0:*
tcp   LISTEN 0      4096             [::]:5674          [::]:*
tcp   LISTEN 0      128                 *:22               *:*
"""

NETSTAT_OUTPUT = """\
Active Internet connections (only servers)
Proto Recv-Q Send-Q Local Address           Foreign Address         State
tcp        0      0 0.0.0.0:8080            0.0.0.0:*               LISTEN
tcp6       0      0 :::5672                 :::*                    LISTEN
"""


def _ss_host(make_host, output=SS_OUTPUT):
    return make_host({"ss"}, {("ss", "-tuln"): (0, output)})


def test_parse_ss_output() -> None:
    assert parse_listening_ports(SS_OUTPUT) == {53, 5672, 5674, 22}


def test_parse_netstat_output() -> None:
    assert parse_listening_ports(NETSTAT_OUTPUT) == {8080, 5672}


def test_port_in_use_via_ss(make_host) -> None:
    ctx = _ss_host(make_host).context()
    assert check_port_in_use(ctx, 5672)
    assert not check_port_in_use(ctx, 5673)


def test_netstat_used_when_ss_missing(make_host) -> None:
    host = make_host({"netstat"}, {("netstat", "-tuln"): (0, NETSTAT_OUTPUT)})
    assert check_port_in_use(host.context(), 8080)
    assert ["ss", "-tuln"] not in host.calls


def test_bind_probe_when_no_inspector(make_host, monkeypatch) -> None:
    probed: list[int] = []

    def _fake_probe(port: int) -> bool:
        probed.append(port)
        return port == 6000

    monkeypatch.setattr(ports, "_bind_probe", _fake_probe)
    ctx = make_host().context()
    assert check_port_in_use(ctx, 6000)
    assert not check_port_in_use(ctx, 6001)
    assert probed == [6000, 6001]


def test_suggestions_skip_bound_ports(make_host) -> None:
    ctx = _ss_host(make_host).context()
    # 5672 is the rejected port; 5674 is also bound.
    assert suggest_ports(ctx, 5672) == [5673, 5675, 5676, 5677]


def test_five_suggestions_when_all_free(make_host) -> None:
    ctx = _ss_host(make_host, "").context()
    assert suggest_ports(ctx, 8000) == [8001, 8002, 8003, 8004, 8005]


def test_suggestions_stay_in_range(make_host) -> None:
    ctx = _ss_host(make_host, "").context()
    assert suggest_ports(ctx, 65533) == [65534, 65535]
    assert all(p >= ports.PORT_MIN for p in suggest_ports(ctx, 1000))


@pytest.mark.parametrize(
    ("binaries", "tool", "expected_calls"),
    [
        ({"ufw", "firewall-cmd", "iptables"}, "ufw", [["ufw", "allow", "5673/tcp"]]),
        (
            {"firewall-cmd", "iptables"},
            "firewalld",
            [["firewall-cmd", "--permanent", "--add-port=5673/tcp"], ["firewall-cmd", "--reload"]],
        ),
        (
            {"iptables"},
            "iptables",
            [["iptables", "-A", "INPUT", "-p", "tcp", "--dport", "5673", "-j", "ACCEPT"]],
        ),
    ],
)
def test_firewall_priority(make_host, binaries, tool, expected_calls) -> None:
    host = make_host(binaries)
    result = open_firewall_port(host.context(), 5673)
    assert result.tool == tool
    assert result.opened
    assert result.persistent is (tool != "iptables")
    assert host.calls == expected_calls


def test_no_firewall_tool(make_host) -> None:
    host = make_host()
    result = open_firewall_port(host.context(), 5673)
    assert not result.opened
    assert host.calls == []


def test_firewall_command_failure_raises(make_host) -> None:
    host = make_host({"ufw"}, {("ufw", "allow", "5673/tcp"): (1, "")})
    with pytest.raises(InstallError, match="ufw open port 5673"):
        open_firewall_port(host.context(), 5673)
