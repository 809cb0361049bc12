from __future__ import annotations

import logging

# Release lookups and downloads go through httpx; its per-request INFO lines
# would interleave with the status output.
_NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logging(verbose: bool) -> None:
    """WARNING by default; ``-v`` shows every host command stackprep runs."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level)
