"""Console output for the village tick.

Every line is tagged by what produced it. Tags double as colour-blind markers
and survive ``COZY_NO_COLOR``.
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI color codes for terminal output."""

    BLUE = "\033[94m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    GREEN = "\033[92m"
    CYAN = "\033[96m"

    BOLD = "\033[1m"
    RESET = "\033[0m"


LOG_TAG_DETERMINISTIC = "[•]"
LOG_TAG_LLM = "[AI]"
LOG_TAG_ERROR = "[!]"
LOG_TAG_SUCCESS = "[✓]"
LOG_TAG_INFO = "[i]"


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap ``text`` in ANSI codes unless COZY_NO_COLOR is set."""

    if os.getenv("COZY_NO_COLOR"):
        return text
    prefix = (Color.BOLD.value if bold else "") + color.value
    return f"{prefix}{text}{Color.RESET.value}"


def _emit(tag: str, color: Color, message: str) -> None:
    print(colored(f"  {tag} {message}", color))


def log_deterministic(message: str) -> None:
    """Store reads/writes, movement and fallback lines."""
    _emit(LOG_TAG_DETERMINISTIC, Color.BLUE, message)


def log_llm(message: str) -> None:
    """Model calls and model-written lines."""
    _emit(LOG_TAG_LLM, Color.YELLOW, message)


def log_error(message: str) -> None:
    """A failure the tick logs and moves past, or a retry."""
    _emit(LOG_TAG_ERROR, Color.RED, message)


def log_success(message: str) -> None:
    _emit(LOG_TAG_SUCCESS, Color.GREEN, message)


def log_info(message: str) -> None:
    _emit(LOG_TAG_INFO, Color.CYAN, message)


def log_line(speaker: str, content: str, *, model_written: bool) -> None:
    """Echo an inserted speech line under the tag of whoever wrote it."""

    log = log_llm if model_written else log_deterministic
    log(f"[{speaker}] {content}")
