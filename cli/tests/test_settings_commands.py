from __future__ import annotations

from typer.testing import CliRunner

from stackprep_cli import config, main


def _isolate(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(config, "user_config_dir", lambda _name: str(tmp_path))
    monkeypatch.delenv(config.ENV_BROKER_IMAGE, raising=False)
    monkeypatch.delenv(config.ENV_WORKER_IMAGE, raising=False)


def test_settings_group_available() -> None:
    runner = CliRunner()
    result = runner.invoke(main._build_app(), ["--help"])
    assert result.exit_code == 0
    assert "settings" in result.output


def test_settings_set_then_get(tmp_path, monkeypatch) -> None:
    _isolate(tmp_path, monkeypatch)
    app = main._build_app()
    runner = CliRunner()

    result = runner.invoke(app, ["settings", "set", "--default-port", "5690", "--project-name", "Demo"])
    assert result.exit_code == 0
    assert "Settings updated" in result.output

    result = runner.invoke(app, ["settings", "get", "default_port"])
    assert result.exit_code == 0
    assert result.output.strip() == "5690"

    result = runner.invoke(app, ["settings", "get", "project_name"])
    assert result.output.strip() == "demo"


def test_settings_set_rejects_bad_port(tmp_path, monkeypatch) -> None:
    _isolate(tmp_path, monkeypatch)
    result = CliRunner().invoke(main._build_app(), ["settings", "set", "--default-port", "80"])
    assert result.exit_code == 2
    assert not tmp_path.joinpath("config.toml").exists()


def test_settings_get_unknown_key(tmp_path, monkeypatch) -> None:
    _isolate(tmp_path, monkeypatch)
    result = CliRunner().invoke(main._build_app(), ["settings", "get", "nope"])
    assert result.exit_code == 2
    assert "Unknown setting" in result.output


def test_settings_init_keeps_existing(tmp_path, monkeypatch) -> None:
    _isolate(tmp_path, monkeypatch)
    app = main._build_app()
    runner = CliRunner()
    assert runner.invoke(app, ["settings", "init"]).exit_code == 0
    result = runner.invoke(app, ["settings", "init"])
    assert "Config already exists" in result.output
