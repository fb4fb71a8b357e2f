"""
Operator output for disc-renamer.

Everything the operator sees goes through a themed rich Console and is mirrored
to the stdlib logging module, so a run can also leave a plain-text log file
behind (see setup_logging).
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.theme import Theme

THEME = Theme(
    {
        "title": "bold cyan",
        "info": "bright_cyan",
        "ok": "bold green",
        "warn": "bold yellow",
        "err": "bold red",
        "dim": "dim",
        "path": "bright_white",
    }
)
console = Console(theme=THEME, highlight=False)

logger = logging.getLogger("disc_renamer")

# Set by --verbose
VERBOSE = False


def set_verbose(enabled: bool) -> None:
    global VERBOSE
    VERBOSE = enabled


def setup_logging(log_dir: Path) -> Path | None:
    """Attach a timestamped file handler to the disc_renamer logger.

    Returns the log file path if successful, None otherwise.
    """
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"disc_renamer_{timestamp}.log"

        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(handler)
        logger.setLevel(logging.DEBUG)
        return log_file
    except OSError:
        return None


# ---------------------------------------------------------------------------
# Logging helpers
# ---------------------------------------------------------------------------


def log(msg: str, style: str = "") -> None:
    console.print(f"[{style}]{escape(msg)}[/]" if style else escape(msg))
    logger.info(msg)


def ok(msg: str) -> None:
    log(f"✓ {msg}", style="ok")


def warn(msg: str) -> None:
    console.print(f"[warn]⚠ {escape(msg)}[/]")
    logger.warning(msg)


def error(msg: str) -> None:
    console.print(f"[err]✗ {escape(msg)}[/]")
    logger.error(msg)


def debug(msg: str) -> None:
    """Print debug message if verbose mode is enabled (always goes to the log file)."""
    if VERBOSE:
        console.print(f"[dim][DEBUG] {escape(msg)}[/]")
    logger.debug(msg)
