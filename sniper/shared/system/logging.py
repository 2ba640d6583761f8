"""
Engine Logger
=============
Rich console + rotating file log shared by every component.

Messages may start with a ``[SOURCE]`` tag (``[SESSION]``, ``[LEDGER]``...);
the tag becomes its own column on the console and is kept in the file log.

Usage:
    from sniper.shared.system.logging import Logger

    Logger.info("[SESSION] 7xKX...9aQe fired a1b2c3")
    Logger.success("[LEDGER] Transaction confirmed")
    Logger.warning("[OBSERVER] Pool fetch failed")
    Logger.section("Starting Engine")
"""

import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Tuple

from rich.console import Console
from rich.text import Text

LOG_DIR = os.getenv(
    "LOG_DIR",
    os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(__file__)))), "logs"),
)
os.makedirs(LOG_DIR, exist_ok=True)

# One file per process run, rotated at 5 MB
log_file = os.path.join(LOG_DIR, f"sniper_{datetime.now():%Y%m%d_%H%M%S}.log")

file_logger = logging.getLogger("NextSniper")
file_logger.setLevel(logging.DEBUG)
if not file_logger.handlers:
    _handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8", delay=True)
    _handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", "%Y-%m-%d %H:%M:%S"))
    file_logger.addHandler(_handler)

_console = Console()


SOURCE_ICONS = {
    "SYSTEM": "🛸",
    "ENGINE": "⚙️",
    "SESSION": "👛",
    "BUILDER": "🧱",
    "LEDGER": "📡",
    "OBSERVER": "🔍",
    "STORE": "💾",
    "REGISTRY": "🔄",
    "AUDIT": "📋",
    "FEE": "⛽",
    "CLI": "⌨️",
}

# level -> (console style or None for file-only, file level, file prefix)
LEVELS = {
    "DEBUG": (None, logging.DEBUG, ""),
    "INFO": ("cyan", logging.INFO, ""),
    "SUCCESS": ("green bold", logging.INFO, "✅ "),
    "WARNING": ("yellow", logging.WARNING, ""),
    "ERROR": ("red bold", logging.ERROR, ""),
    "CRITICAL": ("red bold reverse", logging.CRITICAL, "🛑 "),
}


def split_source(message: str) -> Tuple[str, str]:
    """``"[LEDGER] sent"`` -> ``("LEDGER", "sent")``; untagged text is SYSTEM."""
    text = message.strip()
    if text.startswith("["):
        end = text.find("]")
        if 1 < end < 16:
            return text[1:end].upper(), text[end + 1:].strip()
    return "SYSTEM", message


class Logger:
    """Static logging facade. Console output honours ``Settings.SILENT_MODE``."""

    _silent_mode = False

    @staticmethod
    def _console_enabled() -> bool:
        if Logger._silent_mode:
            return False
        from config.settings import Settings
        return not getattr(Settings, "SILENT_MODE", False)

    @staticmethod
    def _emit(level: str, message: str) -> None:
        style, file_level, prefix = LEVELS[level]
        source, body = split_source(str(message))

        file_logger.log(file_level, f"[{source}] {prefix}{body}")

        if style is None or not Logger._console_enabled():
            return

        icon = SOURCE_ICONS.get(source, "")
        now = datetime.now()
        line = Text()
        line.append(f"{now:%H:%M:%S}.{now.microsecond // 1000:03d} ", style="dim")
        line.append(f"| {level:<8} ", style=style)
        line.append(f"| {source[:10]:<10} | ", style="dim")
        line.append(f"{prefix if level == 'CRITICAL' else ''}{icon + ' ' if icon else ''}{body}")
        _console.print(line)

    @staticmethod
    def info(message: str) -> None:
        Logger._emit("INFO", message)

    @staticmethod
    def success(message: str) -> None:
        Logger._emit("SUCCESS", message)

    @staticmethod
    def warning(message: str) -> None:
        Logger._emit("WARNING", message)

    @staticmethod
    def error(message: str) -> None:
        Logger._emit("ERROR", message)

    @staticmethod
    def debug(message: str) -> None:
        Logger._emit("DEBUG", message)

    @staticmethod
    def critical(message: str) -> None:
        Logger._emit("CRITICAL", message)

    @staticmethod
    def section(title: str) -> None:
        if Logger._console_enabled():
            _console.print()
            _console.rule(f"[bold magenta]{title}[/]", style="dim")
        file_logger.info(f"[SYSTEM] === {title} ===")

    @staticmethod
    def set_silent(silent: bool) -> None:
        Logger._silent_mode = silent
