"""Key bindings and the help text generated from them."""

from __future__ import annotations

from tuiporal.events import Action

# (key, textual key names, action, description)
GLOBAL_KEYS = [
    ("1", "1", Action.SHOW_WORKFLOWS, "Switch to Workflows screen"),
    ("2", "2", Action.SHOW_NAMESPACES, "Switch to Namespaces screen"),
    ("?", "question_mark", Action.SHOW_HELP, "Show this help screen"),
    ("P", "P", Action.SWITCH_PROFILE, "Switch to the next connection profile"),
    ("R", "R", Action.RECONNECT, "Reconnect with the active profile"),
    ("d", "d", Action.DISMISS, "Dismiss operation messages"),
    ("q", "q", Action.QUIT, "Quit"),
]

MOVE_KEYS = [
    ("↑/k, ↓/j", "up,k", Action.UP, "Move up"),
    ("", "down,j", Action.DOWN, "Move down"),
    ("PgUp/PgDn", "pageup", Action.PAGE_UP, "Scroll a page"),
    ("", "pagedown", Action.PAGE_DOWN, ""),
    ("g/G", "g,home", Action.TOP, "Jump to top/bottom"),
    ("", "G,end", Action.BOTTOM, ""),
    ("ESC", "escape", Action.ESCAPE, "Go back"),
]

WORKFLOW_KEYS = [
    ("Enter", "enter", Action.ENTER, "View workflow details"),
    ("/", "slash", Action.SEARCH, "Search workflows (Temporal visibility query)"),
    ("f", "f", Action.CYCLE_FILTER, "Cycle status filter (Running/Completed/Failed/...)"),
    ("c", "c", Action.CLEAR_QUERY, "Clear search and filter"),
    ("r", "r", Action.REFRESH, "Refresh now"),
    ("a", "a", Action.TOGGLE_AUTO_REFRESH, "Toggle auto-refresh"),
    ("→/n", "right,n", Action.NEXT_PAGE, "Next page (if available)"),
    ("←/p", "left,p", Action.PREV_PAGE, "Previous page"),
]

DETAIL_KEYS = [
    ("Tab/S-Tab", "tab", Action.NEXT_TAB, "Switch tab (summary/history/pending)"),
    ("", "shift+tab", Action.PREV_TAB, ""),
    ("Enter", "enter", Action.ENTER, "Show the history event at the cursor"),
    ("r", "r", Action.REFRESH, "Refresh workflow"),
    ("t", "t", Action.TERMINATE, "Terminate workflow"),
    ("x", "x", Action.CANCEL, "Cancel workflow"),
    ("s", "s", Action.SIGNAL, "Signal workflow"),
]

NAMESPACE_KEYS = [
    ("Enter", "enter", Action.ENTER, "Switch to selected namespace"),
    ("r", "r", Action.REFRESH, "Refresh namespace list"),
]

HELP_SECTIONS = [
    ("Global Navigation", GLOBAL_KEYS),
    ("Movement", MOVE_KEYS),
    ("Workflows Screen", WORKFLOW_KEYS),
    ("Workflow Detail Screen", DETAIL_KEYS),
    ("Namespaces Screen", NAMESPACE_KEYS),
]


def help_lines() -> list[str]:
    """Plain-text help, one entry per documented key."""
    lines = ["Tuiporal - Temporal TUI Client", ""]
    for title, keys in HELP_SECTIONS:
        lines.append(title)
        for label, _names, _action, description in keys:
            if label:
                lines.append(f"  {label:<12} → {description}")
        lines.append("")
    return lines
