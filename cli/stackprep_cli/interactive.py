from __future__ import annotations

import shlex
from dataclasses import dataclass

import questionary
import typer
from questionary import Choice, Style

# Inline, non-fullscreen selection for the no-argument entry point.

_SELECT_STYLE = Style(
    [
        ("pointer", "ansiyellow bold"),
        ("selected", "ansicyan bold"),
        ("highlighted", "ansicyan bold"),
        ("instruction", "ansiblack"),
    ]
)

_EXIT = -1


@dataclass(frozen=True)
class MenuEntry:
    tokens: list[str]
    help_text: str
    needs_args: bool


def _clean_help(text: str) -> str:
    lines = (text or "").strip().splitlines()
    return lines[0] if lines else ""


def _subcommands(command) -> dict:
    # Checked by shape: newer typer releases ship their own click copy.
    return getattr(command, "commands", None) or {}


def _needs_args(command) -> bool:
    return any(
        getattr(p, "param_type_name", None) == "argument" and p.required
        for p in getattr(command, "params", [])
    )


def build_menu(app: typer.Typer) -> list[MenuEntry]:
    root = typer.main.get_command(app)
    entries: list[MenuEntry] = []
    for name, command in sorted(_subcommands(root).items()):
        if getattr(command, "hidden", False):
            continue
        subcommands = _subcommands(command)
        if subcommands:
            for sub_name, sub in sorted(subcommands.items()):
                if getattr(sub, "hidden", False):
                    continue
                entries.append(
                    MenuEntry(
                        tokens=[name, sub_name],
                        help_text=_clean_help(sub.short_help or sub.help or ""),
                        needs_args=_needs_args(sub),
                    )
                )
            continue
        entries.append(
            MenuEntry(
                tokens=[name],
                help_text=_clean_help(command.short_help or command.help or ""),
                needs_args=_needs_args(command),
            )
        )
    return entries


def select_command(app: typer.Typer) -> list[str] | None:
    entries = build_menu(app)
    choices = [
        Choice(title=f"{' '.join(e.tokens):<16} {e.help_text}", value=idx)
        for idx, e in enumerate(entries)
    ]
    choices.append(Choice(title="Exit", value=_EXIT))
    try:
        result = questionary.select(
            "What do you want to do?",
            choices=choices,
            use_shortcuts=False,
            pointer="▶",
            style=_SELECT_STYLE,
        ).ask()
    except KeyboardInterrupt:
        return None
    if result is None or result == _EXIT:
        return None

    entry = entries[result]
    tokens = list(entry.tokens)
    if entry.needs_args:
        raw = questionary.text(f"Arguments for '{' '.join(tokens)}':", style=_SELECT_STYLE).ask()
        if raw is None:
            return None
        tokens.extend(shlex.split(raw))
    return tokens
