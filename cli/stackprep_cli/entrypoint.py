from __future__ import annotations

import sys


def main() -> None:
    from .main import app

    if len(sys.argv) == 1 and sys.stdin.isatty():
        from .interactive import select_command

        tokens = select_command(app)
        if not tokens:
            raise SystemExit(0)
        sys.argv = [sys.argv[0], *tokens]
    app()


if __name__ == "__main__":
    main()
