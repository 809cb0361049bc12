from __future__ import annotations

import typer

from .commands import check_cmd, install_cmd, port_cmd, settings_cmd, setup_cmd
from .logging_ import setup_logging


def _build_app() -> typer.Typer:
    app = typer.Typer(
        name="stackprep",
        help="Prepare a host for the FBBot Docker Compose stack.",
        no_args_is_help=False,
    )

    app.command("setup")(setup_cmd.setup)
    app.command("install")(install_cmd.install)
    app.command("makefile")(install_cmd.makefile)
    app.command("check")(check_cmd.check)
    app.add_typer(port_cmd.app, name="port")
    app.add_typer(settings_cmd.app, name="settings")

    @app.callback(invoke_without_command=True)
    def _main(
            ctx: typer.Context,
            verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose logs."),
    ):
        setup_logging(verbose)
        if ctx.invoked_subcommand is None:
            typer.echo(ctx.get_help())

    return app


app = _build_app()
