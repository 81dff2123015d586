"""Textual application owning the terminal for the tmx session browser."""

from __future__ import annotations

import argparse
import logging
import os
import select
import sys
import termios
import tty
from pathlib import Path

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.events import Key, Resize
from textual.theme import Theme
from textual.widgets import Static

from tmx.keys import InputMessage, KeyEvent, ResizeEvent, key_from_textual
from tmx.loop import EventLoopError, InputSink, run_event_loop
from tmx.settings import Settings
from tmx.state import AppState
from tmx.ui import ERROR, PRIMARY, SECONDARY, SUCCESS, WARNING, render

logger = logging.getLogger(__name__)

DEFAULT_BACKGROUND = "#282c34"


def _query_terminal_bg() -> str | None:
    """Ask the terminal for its background colour with OSC 11.

    Returns a hex colour like '#282c34', or None when the terminal does not
    answer within 0.3 s.
    """
    if not sys.stdin.isatty() or not sys.stdout.isatty():
        return None
    fd = sys.stdin.fileno()
    try:
        old = termios.tcgetattr(fd)
    except termios.error:
        return None
    try:
        tty.setraw(fd)
        os.write(sys.stdout.fileno(), b"\033]11;?\033\\")
        response = b""
        while select.select([fd], [], [], 0.3)[0]:
            ch = os.read(fd, 1)
            response += ch
            if ch in (b"\\", b"\x07"):
                break
    except (OSError, termios.error):
        return None
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old)

    decoded = response.decode("latin-1")
    if "rgb:" not in decoded:
        return None
    parts = decoded.split("rgb:")[1].split("\033")[0].split("\x07")[0].split("/")
    if len(parts) != 3:
        return None
    try:
        # 8-bit (ab) and 16-bit (abcd) components both start with the high byte.
        r, g, b = (int(part[:2], 16) for part in parts)
    except ValueError:
        return None
    return f"#{r:02x}{g:02x}{b:02x}"


def _build_theme(background: str) -> Theme:
    return Theme(
        name="tmx",
        primary=PRIMARY,
        secondary=SECONDARY,
        warning=WARNING,
        error=ERROR,
        success=SUCCESS,
        accent=PRIMARY,
        foreground="#abb2bf",
        background=background,
        surface=background,
        panel=background,
        dark=True,
    )


def _state_dir() -> Path:
    base = os.environ.get("XDG_STATE_HOME") or str(Path.home() / ".local" / "state")
    return Path(base) / "tmx"


def setup_logging(level: int = logging.INFO, log_file: Path | None = None) -> Path:
    """Log to a file; the terminal belongs to the UI."""
    if log_file is None:
        log_file = _state_dir() / "tmx.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger("tmx")
    root.setLevel(level)
    if root.hasHandlers():
        root.handlers.clear()

    handler = logging.FileHandler(log_file)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root.addHandler(handler)
    return log_file


class TmxApp(App):
    """Hosts the event loop and serves as its terminal.

    Textual reads input on its own thread; key and resize events are
    forwarded unchanged to the loop's channel.
    """

    TITLE = "tmx"
    CSS = """
    Screen {
        background: $background;
    }
    #frame {
        height: 1fr;
    }
    """

    ENABLE_COMMAND_PALETTE = False

    # Keys Textual binds for itself; they belong to the dispatcher here.
    BINDINGS = [
        Binding("ctrl+c", "forward_ctrl('c')", show=False, priority=True),
        Binding("ctrl+p", "forward_ctrl('p')", show=False, priority=True),
        Binding("ctrl+q", "forward_ctrl('q')", show=False, priority=True),
    ]

    def __init__(self, state: AppState, terminal_bg: str | None = None) -> None:
        super().__init__()
        self.register_theme(_build_theme(terminal_bg or DEFAULT_BACKGROUND))
        self.theme = "tmx"
        self._state = state
        self._sink: InputSink | None = None

    def compose(self) -> ComposeResult:
        yield Static(id="frame")

    def on_mount(self) -> None:
        self.run_worker(self._run_loop(), name="event-loop", exclusive=True)

    async def _run_loop(self) -> None:
        try:
            await run_event_loop(self._state, self)
        except EventLoopError as exc:
            logger.error("event loop stopped: %s", exc)
            self.exit(return_code=1, message=f"tmx: {exc}")
            return
        self.exit()

    # -- terminal handle -------------------------------------------------

    def start_input(self, sink: InputSink) -> None:
        self._sink = sink

    def draw(self, state: AppState) -> None:
        frame = self.query_one("#frame", Static)
        frame.update(render(state, self.size.width, self.size.height))

    def _forward(self, message: InputMessage) -> None:
        if self._sink is not None:
            self._sink(message)

    # -- input -----------------------------------------------------------

    def on_key(self, event: Key) -> None:
        event.stop()
        event.prevent_default()
        self._forward(key_from_textual(event))

    def on_resize(self, event: Resize) -> None:
        self._forward(ResizeEvent(event.size.width, event.size.height))

    def action_forward_ctrl(self, code: str) -> None:
        self._forward(KeyEvent(code, ctrl=True))


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="tmx", description="Browse and control tmux sessions.")
    parser.add_argument("--config", type=Path, default=None, help="path to config.json")
    parser.add_argument("--debug", action="store_true", help="log at DEBUG level")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    setup_logging(logging.DEBUG if args.debug else logging.INFO)
    state = AppState(Settings.load(args.config))
    app = TmxApp(state, terminal_bg=_query_terminal_bg())
    app.run()
    if app.return_code:
        sys.exit(app.return_code)


if __name__ == "__main__":
    main()
