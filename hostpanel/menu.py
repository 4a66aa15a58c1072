"""Menu codes: the reserved built-ins plus numbered action modules."""

from __future__ import annotations

from enum import Enum


class Action(Enum):
    QUIT = "quit"
    REDRAW = "redraw"
    CONNECTIONS = "connections"
    LOG_TAIL = "log-tail"
    PROCESS_MONITOR = "process-monitor"
    MODULE = "module"  # numbered placeholder for an external action module
    INVALID = "invalid"


RESERVED: dict[int, Action] = {
    90: Action.QUIT,
    91: Action.REDRAW,
    92: Action.CONNECTIONS,
    93: Action.LOG_TAIL,
    94: Action.PROCESS_MONITOR,
}

# Left to right as shown in the menu bar
MENU_ITEMS: tuple[tuple[int, str], ...] = (
    (94, "HTOP/TOP"),
    (93, "LIVE LOGS"),
    (92, "NET-STAT"),
    (91, "REFRESH"),
    (90, "EXIT"),
)


def dispatch(choice: str) -> tuple[Action, int | None]:
    """Map one line of operator input to an action and its numeric code."""
    text = choice.strip()
    if not text.isdigit() or not text.isascii():
        return Action.INVALID, None
    code = int(text)
    return RESERVED.get(code, Action.MODULE), code
