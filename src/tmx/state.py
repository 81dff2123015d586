"""AppState: the session list, selection, mode and transient messages.

All tmux calls made on behalf of the UI go through here, and every tmux or
I/O failure is turned into a transient error instead of propagating.
"""

from __future__ import annotations

import logging
import time
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Callable, ContextManager, Union

from tmx.models import AppMode, FocusPanel, MatchResult, Normal, Session, Window
from tmx.search import fuzzy_match_sessions
from tmx.settings import Settings
from tmx.tmux import (
    TmuxError,
    attach_exec,
    capture_pane,
    create_session,
    detach_clients,
    has_session,
    is_inside_tmux,
    kill_session,
    list_sessions,
    list_windows,
    rename_session,
    switch_active_client,
)

logger = logging.getLogger(__name__)

ERROR_TTL = 3.0


@dataclass(frozen=True)
class FullView:
    """Every session, in tmux order."""

    def size(self, session_count: int) -> int:
        return session_count

    def source_index(self, cursor: int, session_count: int) -> int | None:
        if 0 <= cursor < session_count:
            return cursor
        return None

    def match_at(self, cursor: int) -> MatchResult | None:
        return None


@dataclass(frozen=True)
class TagView:
    """Sessions carrying ``tag``; ``indices`` point into the session list."""

    tag: str
    indices: tuple[int, ...]

    def size(self, session_count: int) -> int:
        return len(self.indices)

    def source_index(self, cursor: int, session_count: int) -> int | None:
        if 0 <= cursor < len(self.indices):
            return self.indices[cursor]
        return None

    def match_at(self, cursor: int) -> MatchResult | None:
        return None


@dataclass(frozen=True)
class SearchView:
    """Fuzzy matches for ``query``, best first."""

    query: str
    matches: tuple[MatchResult, ...]

    def size(self, session_count: int) -> int:
        return len(self.matches)

    def source_index(self, cursor: int, session_count: int) -> int | None:
        match = self.match_at(cursor)
        return match.source_index if match is not None else None

    def match_at(self, cursor: int) -> MatchResult | None:
        if 0 <= cursor < len(self.matches):
            return self.matches[cursor]
        return None


SessionView = Union[FullView, TagView, SearchView]


@dataclass(frozen=True)
class TransientError:
    message: str
    raised_at: float


class AppState:
    def __init__(
        self,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or Settings()
        self.clock = clock
        self.sessions: list[Session] = []
        # Keyed by session name; entries for vanished sessions are kept.
        self.windows: dict[str, list[Window]] = {}
        self.mode: AppMode = Normal()
        self.focus = FocusPanel.SESSIONS
        self.view: SessionView = FullView()
        self.search_query: str | None = None
        self.tag_filter: str | None = None
        self.selected = 0
        self.window_selected = 0
        self.last_g_press: float | None = None
        self.last_d_press: float | None = None
        self.input_buffer = ""
        self.input_target: str | None = None
        self.status = ""
        self.error: TransientError | None = None
        self.preview = ""
        self.should_quit = False
        self.release_terminal: Callable[[], ContextManager[object]] = nullcontext

    # -- views and selection ------------------------------------------------

    @property
    def visible_count(self) -> int:
        return self.view.size(len(self.sessions))

    def visible_sessions(self) -> list[tuple[Session, MatchResult | None]]:
        rows: list[tuple[Session, MatchResult | None]] = []
        for cursor in range(self.visible_count):
            index = self.view.source_index(cursor, len(self.sessions))
            if index is not None:
                rows.append((self.sessions[index], self.view.match_at(cursor)))
        return rows

    def selected_session(self) -> Session | None:
        index = self.view.source_index(self.selected, len(self.sessions))
        if index is None:
            return None
        return self.sessions[index]

    def selected_windows(self) -> list[Window]:
        session = self.selected_session()
        if session is None:
            return []
        return self.windows.get(session.name, [])

    def selected_window(self) -> Window | None:
        windows = self.selected_windows()
        if 0 <= self.window_selected < len(windows):
            return windows[self.window_selected]
        return None

    def selected_target(self) -> str | None:
        """tmux target for the selection: ``session`` or ``session:index``."""
        session = self.selected_session()
        if session is None:
            return None
        window = self.selected_window() if self.focus is FocusPanel.WINDOWS else None
        if window is not None:
            return f"{session.name}:{window.index}"
        return session.name

    def selection_key(self) -> tuple[int, int, FocusPanel]:
        return self.selected, self.window_selected, self.focus

    def clamp(self) -> None:
        count = self.visible_count
        self.selected = 0 if count == 0 else max(0, min(self.selected, count - 1))
        window_count = len(self.selected_windows())
        self.window_selected = 0 if window_count == 0 else max(0, min(self.window_selected, window_count - 1))

    def _move_session_cursor(self, cursor: int) -> None:
        previous = self.selected
        self.selected = cursor
        self.clamp()
        if self.selected != previous:
            self.window_selected = 0
            self.clamp()

    def _move_window_cursor(self, cursor: int) -> None:
        self.window_selected = cursor
        self.clamp()

    def select_next(self) -> None:
        if self.focus is FocusPanel.WINDOWS:
            self._move_window_cursor(self.window_selected + 1)
        else:
            self._move_session_cursor(self.selected + 1)

    def select_previous(self) -> None:
        if self.focus is FocusPanel.WINDOWS:
            self._move_window_cursor(self.window_selected - 1)
        else:
            self._move_session_cursor(self.selected - 1)

    def select_first(self) -> None:
        if self.focus is FocusPanel.WINDOWS:
            self._move_window_cursor(0)
        else:
            self._move_session_cursor(0)

    def select_last(self) -> None:
        if self.focus is FocusPanel.WINDOWS:
            self._move_window_cursor(len(self.selected_windows()) - 1)
        else:
            self._move_session_cursor(self.visible_count - 1)

    def _rebuild_view(self) -> None:
        if self.search_query is not None:
            matches = fuzzy_match_sessions(self.sessions, self.search_query)
            self.view = SearchView(self.search_query, tuple(matches))
        elif self.tag_filter is not None:
            names = self.settings.sessions_with_tag(self.tag_filter)
            indices = tuple(i for i, s in enumerate(self.sessions) if s.name in names)
            self.view = TagView(self.tag_filter, indices)
        else:
            self.view = FullView()
        self.clamp()

    # -- search and tag filter ----------------------------------------------

    def start_search(self) -> None:
        self.focus = FocusPanel.SESSIONS
        self.input_buffer = ""
        self.update_search("")

    def update_search(self, query: str) -> None:
        self.search_query = query
        self.selected = 0
        self.window_selected = 0
        self._rebuild_view()

    def end_search(self) -> None:
        self.search_query = None
        self.input_buffer = ""
        self.selected = 0
        self.window_selected = 0
        self._rebuild_view()

    def set_tag_filter(self, tag: str) -> None:
        if tag == self.tag_filter:
            self.clear_tag_filter()
            return
        self.tag_filter = tag
        self.selected = 0
        self.window_selected = 0
        self._rebuild_view()
        if self.visible_count == 0:
            self.status = f"No sessions tagged '{tag}'"
        else:
            self.status = f"Filtering by tag '{tag}'"

    def clear_tag_filter(self) -> None:
        self.tag_filter = None
        self.selected = 0
        self.window_selected = 0
        self._rebuild_view()
        self.status = "Tag filter cleared"

    # -- gestures and messages ----------------------------------------------

    def cancel_gestures(self) -> None:
        self.last_g_press = None
        self.last_d_press = None

    def set_error(self, message: str) -> None:
        logger.info("error shown: %s", message)
        self.error = TransientError(message, self.clock())

    def clear_expired_error(self) -> None:
        if self.error is not None and self.clock() - self.error.raised_at >= ERROR_TTL:
            self.error = None

    # -- tmux ----------------------------------------------------------------

    async def refresh_sessions(self) -> bool:
        """Re-list sessions; on failure the previous list stays on screen."""
        try:
            sessions = await list_sessions()
        except TmuxError as exc:
            self.set_error(str(exc))
            return False
        self.sessions = sessions
        self._rebuild_view()
        return True

    async def load_windows(self, session_name: str, force: bool = False) -> None:
        if not force and session_name in self.windows:
            return
        try:
            self.windows[session_name] = await list_windows(session_name)
        except TmuxError as exc:
            logger.debug("could not list windows for %s: %s", session_name, exc)
            return
        self.clamp()

    async def refresh_preview(self, reload_windows: bool = False) -> None:
        """Load the selection's windows (lazily unless reload_windows) and capture its pane."""
        session = self.selected_session()
        if session is None:
            self.preview = ""
            return
        await self.load_windows(session.name, force=reload_windows)
        target = self.selected_target()
        if target is None:
            self.preview = ""
            return
        try:
            self.preview = await capture_pane(target)
        except TmuxError as exc:
            logger.debug("could not capture %s: %s", target, exc)
            self.preview = ""

    async def focus_windows(self) -> None:
        session = self.selected_session()
        if session is None:
            self.status = "No session selected"
            return
        await self.load_windows(session.name)
        self.focus = FocusPanel.WINDOWS
        self.clamp()

    def focus_sessions(self) -> None:
        self.focus = FocusPanel.SESSIONS

    async def create_session(self, name: str, working_directory: str | None = None) -> None:
        try:
            await create_session(name, working_directory)
        except TmuxError as exc:
            self.set_error(str(exc))
            return
        self.status = f"Created session '{name}'"
        await self.refresh_sessions()

    async def rename_session(self, current_name: str, new_name: str) -> None:
        if current_name == new_name:
            self.status = "Name unchanged"
            return
        try:
            await rename_session(current_name, new_name)
        except TmuxError as exc:
            self.set_error(str(exc))
            return
        self.status = f"Renamed '{current_name}' to '{new_name}'"
        await self.refresh_sessions()

    async def kill_session(self, name: str) -> None:
        try:
            await kill_session(name)
        except TmuxError as exc:
            self.set_error(str(exc))
            return
        self.status = f"Killed session '{name}'"
        await self.refresh_sessions()

    async def detach_clients(self, name: str) -> None:
        try:
            await detach_clients(name)
        except TmuxError as exc:
            self.set_error(str(exc))
            return
        self.status = f"Detached clients from '{name}'"
        await self.refresh_sessions()

    async def open_target(self, session_name: str, target: str | None = None) -> None:
        """Switch to the target when inside tmux, otherwise exec into an attach.

        Switching ends the loop; a successful exec never returns.
        """
        target = target or session_name
        try:
            if not await has_session(session_name):
                self.set_error(f"Session '{session_name}' no longer exists")
                await self.refresh_sessions()
                return
            if is_inside_tmux():
                await switch_active_client(target)
                self.should_quit = True
                return
            with self.release_terminal():
                attach_exec(target)
        except TmuxError as exc:
            self.set_error(str(exc))

    async def open_selected(self) -> None:
        session = self.selected_session()
        if session is None:
            self.status = "No session selected"
            return
        await self.open_target(session.name, self.selected_target())

    # -- tags ----------------------------------------------------------------

    def add_tag(self, session_name: str, tag: str) -> None:
        already_tagged = tag in self.settings.get_tags(session_name)
        self.settings.add_tag(session_name, tag)
        try:
            self.settings.save()
        except OSError as exc:
            if not already_tagged:
                self.settings.remove_tag(session_name, tag)
            self.set_error(f"Could not save tags: {exc}")
            return
        self.status = f"Tagged '{session_name}' with '{tag}'"
        if self.tag_filter is not None:
            self._rebuild_view()
