"""Rendering of AppState into rich renderables. Reads state, never mutates it."""

from __future__ import annotations

import time

from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from tmx.models import Confirm, FocusPanel, Input, InputPurpose, MatchResult, Search, Session
from tmx.state import AppState, SearchView, TagView

PRIMARY = "#61afef"
SECONDARY = "#c678dd"
WARNING = "#d4b85c"
ERROR = "#c97070"
SUCCESS = "#7dba6d"

INPUT_PROMPTS = {
    InputPurpose.NEW_SESSION: "New session",
    InputPurpose.RENAME_SESSION: "Rename to",
    InputPurpose.ADD_TAG: "Add tag",
    InputPurpose.FILTER_BY_TAG: "Filter by tag",
}

NARROW_WIDTH = 60

HINTS = "j/k move  gg/G top/bottom  enter open  / search  n new  r rename  dd kill  D detach  t tag  f filter  q quit"


def _format_age(timestamp: int, now: float | None = None) -> str:
    """Format seconds since timestamp as human-readable age."""
    if timestamp <= 0:
        return "never"
    delta = (time.time() if now is None else now) - timestamp
    if delta < 60:
        return f"{max(0, int(delta))}s"
    if delta < 3600:
        return f"{int(delta / 60)}m"
    if delta < 86400:
        return f"{int(delta / 3600)}h"
    return f"{int(delta / 86400)}d"


def _session_name(session: Session, match: MatchResult | None) -> Text:
    text = Text(session.name)
    if match is not None:
        for position in match.matched_positions:
            if position < len(session.name):
                text.stylize(f"bold {WARNING}", position, position + 1)
    return text


def _sessions_title(state: AppState) -> Text:
    title = f"Sessions ({state.visible_count}/{len(state.sessions)})"
    if isinstance(state.view, SearchView):
        title += f"  search: {state.view.query!r}"
    elif isinstance(state.view, TagView):
        title += f"  tag: {state.view.tag}"
    return Text(title)


def render_sessions(state: AppState, now: float | None = None) -> RenderableType:
    table = Table.grid(expand=True, padding=(0, 1))
    table.add_column(width=1)
    table.add_column(ratio=1, no_wrap=True)
    table.add_column(justify="right", no_wrap=True)
    table.add_column(no_wrap=True)
    table.add_column(justify="right", no_wrap=True)

    focused = state.focus is FocusPanel.SESSIONS
    for cursor, (session, match) in enumerate(state.visible_sessions()):
        selected = cursor == state.selected
        tags = state.settings.get_tags(session.name)
        table.add_row(
            "▶" if selected else " ",
            _session_name(session, match),
            f"{session.window_count}w",
            Text(" ".join(f"#{tag}" for tag in tags), style=SECONDARY),
            Text(
                "attached" if session.attached_client_count else _format_age(session.last_attached_at, now),
                style=SUCCESS if session.attached_client_count else "dim",
            ),
            style=f"reverse {PRIMARY}" if selected and focused else None,
        )
    if not state.visible_count:
        table.add_row("", Text("no sessions", style="dim"), "", "", "")

    border = PRIMARY if focused else "dim"
    return Panel(table, title=_sessions_title(state), title_align="left", border_style=border)


def render_details(state: AppState, preview_lines: int) -> RenderableType:
    windows = Table.grid(expand=True, padding=(0, 1))
    windows.add_column(width=1)
    windows.add_column(no_wrap=True)
    windows.add_column(ratio=1, no_wrap=True)

    focused = state.focus is FocusPanel.WINDOWS
    for position, window in enumerate(state.selected_windows()):
        selected = focused and position == state.window_selected
        name = Text(f"{window.index}: {window.name}", style="bold" if window.is_active else "")
        windows.add_row(
            "▶" if selected else " ",
            name,
            Text(window.current_command, style="dim"),
            style=f"reverse {PRIMARY}" if selected else None,
        )

    preview = Text("\n".join(state.preview.splitlines()[-preview_lines:]) if preview_lines > 0 else "")
    session = state.selected_session()
    title = Text(session.name if session is not None else "Windows")
    return Panel(
        Group(windows, Text("─" * 8, style="dim"), preview),
        title=title,
        title_align="left",
        border_style=PRIMARY if focused else "dim",
    )


def render_footer(state: AppState) -> Text:
    mode = state.mode
    if isinstance(mode, Search):
        return Text.assemble(("/", PRIMARY), state.input_buffer, ("█", "dim"))
    if isinstance(mode, Input):
        return Text.assemble((f"{INPUT_PROMPTS[mode.purpose]}: ", PRIMARY), state.input_buffer, ("█", "dim"))
    if isinstance(mode, Confirm):
        return Text(f"Kill session '{mode.action.name}'? [y/n]", style=f"bold {ERROR}")
    if state.error is not None:
        return Text(state.error.message, style=ERROR)
    if state.status:
        return Text(state.status, style=WARNING)
    return Text(HINTS, style="dim")


def render(state: AppState, width: int, height: int) -> RenderableType:
    """Build the whole frame for a terminal of the given size."""
    if width < NARROW_WIDTH:
        return Group(render_sessions(state), render_footer(state))
    body = Table.grid(expand=True)
    body.add_column(ratio=3)
    body.add_column(ratio=2)
    # Panel borders, window rows and the separator take the rest.
    preview_lines = max(0, height - 5 - len(state.selected_windows()))
    body.add_row(render_sessions(state), render_details(state, preview_lines))
    return Group(body, render_footer(state))
