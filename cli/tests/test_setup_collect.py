import pytest
import typer

from stackprep_cli.commands import setup_cmd

SS_BUSY = "tcp LISTEN 0 4096 0.0.0.0:5672 0.0.0.0:*\n"


def _script(monkeypatch, answers: list[str]) -> list[str]:
    prompts: list[str] = []
    queue = list(answers)

    def _fake_prompt(text, **_kwargs):
        prompts.append(text)
        return queue.pop(0)

    monkeypatch.setattr(setup_cmd.typer, "prompt", _fake_prompt)
    return prompts


def test_username_reprompts_until_valid(monkeypatch, capsys) -> None:
    prompts = _script(monkeypatch, ["ab", "ab$", "user_1"])
    assert setup_cmd.prompt_username(None, non_interactive=False) == "user_1"
    assert len(prompts) == 3
    assert "Invalid username" in capsys.readouterr().out


def test_password_confirmation_loop(monkeypatch, capsys) -> None:
    _script(monkeypatch, ["se@cret", "secret1", "secret2", "secret1", "secret1"])
    assert setup_cmd.prompt_password(None, non_interactive=False) == "secret1"
    out = capsys.readouterr().out
    assert "cannot contain '@'" in out
    assert "don't match" in out


def test_password_option_skips_confirmation(monkeypatch) -> None:
    prompts = _script(monkeypatch, [])
    assert setup_cmd.prompt_password("secret1", non_interactive=False) == "secret1"
    assert prompts == []


def test_busy_port_shows_suggestions_then_accepts(monkeypatch, capsys, make_host) -> None:
    ctx = make_host({"ss"}, {("ss", "-tuln"): (0, SS_BUSY)}).context()
    _script(monkeypatch, ["", "5673"])
    port = setup_cmd.prompt_port(ctx, None, default_port=5672, non_interactive=False)
    out = capsys.readouterr().out
    assert port == 5673
    assert "Port 5672 is already in use!" in out
    assert "Available ports: 5673, 5674, 5675, 5676, 5677" in out
    assert "Port 5673 is available!" in out


def test_out_of_range_port_reprompts(monkeypatch, capsys, make_host) -> None:
    ctx = make_host({"ss"}, {("ss", "-tuln"): (0, "")}).context()
    _script(monkeypatch, ["80", "abc", "6000"])
    assert setup_cmd.prompt_port(ctx, None, default_port=5672, non_interactive=False) == 6000
    out = capsys.readouterr().out
    assert out.count("Invalid port range") == 2
    assert "No free ports found between 81 and 85" in out


def test_non_interactive_busy_port_exits(make_host) -> None:
    ctx = make_host({"ss"}, {("ss", "-tuln"): (0, SS_BUSY)}).context()
    with pytest.raises(typer.Exit) as info:
        setup_cmd.prompt_port(ctx, 5672, default_port=5672, non_interactive=True)
    assert info.value.exit_code == 2


def test_non_interactive_missing_flags(make_host, capsys) -> None:
    with pytest.raises(typer.Exit):
        setup_cmd.collect_credentials(
            make_host().context(),
            username="bot",
            password=None,
            port=None,
            default_port=5672,
            non_interactive=True,
        )
    assert "--password" in capsys.readouterr().out


def test_keys_blank_answers_generate(monkeypatch) -> None:
    _script(monkeypatch, ["", "my-api-key"])
    secret, api = setup_cmd.collect_keys(None, None, non_interactive=False)
    assert len(secret) == 64
    assert api == "my-api-key"


def test_keys_non_interactive_never_prompt(monkeypatch) -> None:
    prompts = _script(monkeypatch, [])
    secret, api = setup_cmd.collect_keys(None, "given", non_interactive=True)
    assert prompts == []
    assert len(secret) == 64
    assert api == "given"
