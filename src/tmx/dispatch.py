"""Key handling: maps (mode, key) to mode transitions and AppState calls."""

from __future__ import annotations

from tmx.keys import InputMessage, KeyEvent, KeyKind, ResizeEvent, is_quit
from tmx.models import Confirm, FocusPanel, Input, InputPurpose, KillSession, Normal, Search
from tmx.state import AppState

DOUBLE_TAP_WINDOW = 0.5

EMPTY_INPUT_MESSAGES = {
    InputPurpose.NEW_SESSION: "Session name cannot be empty",
    InputPurpose.RENAME_SESSION: "New name cannot be empty",
    InputPurpose.ADD_TAG: "Tag cannot be empty",
    InputPurpose.FILTER_BY_TAG: "Enter a tag to filter by",
}


async def handle_event(state: AppState, message: InputMessage) -> None:
    if isinstance(message, ResizeEvent):
        state.clamp()
    elif isinstance(message, KeyEvent):
        await handle_key(state, message)


async def handle_key(state: AppState, key: KeyEvent) -> None:
    if key.kind is not KeyKind.PRESS:
        return

    mode = state.mode
    if isinstance(mode, Normal):
        if is_quit(key):
            state.should_quit = True
            return
        await _handle_normal(state, key)
    elif isinstance(mode, Search):
        await _handle_search(state, key)
    elif isinstance(mode, Input):
        await _handle_input(state, key, mode.purpose)
    elif isinstance(mode, Confirm):
        await _handle_confirm(state, key, mode.action)


def _double_tap(state: AppState, char: str) -> bool:
    """Record a press of g or d; True when it completes a double tap.

    Arming one gesture disarms the other.
    """
    now = state.clock()
    last = state.last_g_press if char == "g" else state.last_d_press
    state.cancel_gestures()
    if last is not None and now - last <= DOUBLE_TAP_WINDOW:
        return True
    if char == "g":
        state.last_g_press = now
    else:
        state.last_d_press = now
    return False


def _open_input(state: AppState, purpose: InputPurpose, text: str = "", target: str | None = None) -> None:
    state.mode = Input(purpose)
    state.input_buffer = text
    state.input_target = target


async def _handle_normal(state: AppState, key: KeyEvent) -> None:
    char = key.char
    if char in ("g", "d"):
        if not _double_tap(state, char):
            return
        if char == "g":
            state.select_first()
            return
        session = state.selected_session()
        if session is None:
            state.status = "No session selected"
        else:
            state.mode = Confirm(KillSession(session.name))
        return

    state.cancel_gestures()
    code = key.code if not (key.ctrl or key.alt) else None

    if code in ("j", "down"):
        state.select_next()
    elif code in ("k", "up"):
        state.select_previous()
    elif code == "home":
        state.select_first()
    elif code in ("G", "end"):
        state.select_last()
    elif code == "tab":
        if state.focus is FocusPanel.WINDOWS:
            state.focus_sessions()
        else:
            await state.focus_windows()
    elif code in ("l", "right"):
        await state.focus_windows()
    elif code in ("h", "left"):
        state.focus_sessions()
    elif code in ("enter", "o"):
        await state.open_selected()
    elif code == "D":
        session = state.selected_session()
        if session is None:
            state.status = "No session selected"
        else:
            await state.detach_clients(session.name)
    elif code == "n":
        _open_input(state, InputPurpose.NEW_SESSION)
    elif code == "r":
        session = state.selected_session()
        if session is None:
            state.status = "No session selected"
        else:
            _open_input(state, InputPurpose.RENAME_SESSION, session.name, session.name)
    elif code == "/":
        state.start_search()
        state.mode = Search()
    elif code == "t":
        session = state.selected_session()
        if session is None:
            state.status = "No session selected"
        else:
            _open_input(state, InputPurpose.ADD_TAG, target=session.name)
    elif code == "f":
        if state.tag_filter is not None:
            state.clear_tag_filter()
        else:
            tags = state.settings.all_tags()
            if not tags:
                state.status = "No tags defined"
            else:
                _open_input(state, InputPurpose.FILTER_BY_TAG)
                state.status = "Tags: " + ", ".join(tags)
    elif code == "R":
        if await state.refresh_sessions():
            state.status = "Refreshed"
    elif code == "escape":
        state.status = ""


async def _handle_search(state: AppState, key: KeyEvent) -> None:
    if key.code == "escape":
        state.end_search()
        state.mode = Normal()
    elif key.code == "enter":
        session = state.selected_session()
        state.end_search()
        state.mode = Normal()
        if session is not None:
            await state.open_target(session.name)
    elif key.code == "backspace":
        state.input_buffer = state.input_buffer[:-1]
        state.update_search(state.input_buffer)
    elif key.code == "up" or (key.ctrl and key.code == "p"):
        state.select_previous()
    elif key.code == "down" or (key.ctrl and key.code == "n"):
        state.select_next()
    elif key.char is not None:
        state.input_buffer += key.char
        state.update_search(state.input_buffer)


async def _handle_input(state: AppState, key: KeyEvent, purpose: InputPurpose) -> None:
    if key.code == "escape":
        state.mode = Normal()
        state.input_buffer = ""
        state.input_target = None
        state.status = ""
    elif key.code == "enter":
        await _commit_input(state, purpose)
    elif key.code == "backspace":
        state.input_buffer = state.input_buffer[:-1]
    elif key.char is not None:
        state.input_buffer += key.char


async def _commit_input(state: AppState, purpose: InputPurpose) -> None:
    value = state.input_buffer.strip()
    target = state.input_target
    state.mode = Normal()
    state.input_buffer = ""
    state.input_target = None

    if not value:
        state.status = EMPTY_INPUT_MESSAGES[purpose]
        return

    if purpose is InputPurpose.NEW_SESSION:
        await state.create_session(value)
    elif purpose is InputPurpose.RENAME_SESSION:
        if target is None:
            state.status = "No session selected"
        else:
            await state.rename_session(target, value)
    elif purpose is InputPurpose.ADD_TAG:
        if target is None:
            state.status = "No session selected"
        else:
            state.add_tag(target, value)
    elif purpose is InputPurpose.FILTER_BY_TAG:
        state.set_tag_filter(value)


async def _handle_confirm(state: AppState, key: KeyEvent, action: KillSession) -> None:
    if key.ctrl or key.alt:
        return
    if key.code in ("y", "enter"):
        state.mode = Normal()
        await state.kill_session(action.name)
    elif key.code in ("n", "escape"):
        state.mode = Normal()
        state.status = "Cancelled"
