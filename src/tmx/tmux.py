"""tmux subprocess wrappers: bounded command execution and listing parsers."""

from __future__ import annotations

import asyncio
import logging
import os
import re
from typing import Callable, NoReturn, TypeVar

from tmx.models import Pane, Session, Window

logger = logging.getLogger(__name__)

COMMAND_TIMEOUT = 5.0

# \x01 cannot be typed into a session or window name, unlike "|" or "\t".
DELIMITER = "\x01"
# Older tmux releases escape control characters in format output.
ESCAPED_DELIMITER = "\\001"

SESSION_FORMAT = DELIMITER.join((
    "#{session_id}",
    "#{session_name}",
    "#{session_windows}",
    "#{session_attached}",
    "#{session_created}",
    "#{session_last_attached}",
    "#{session_group}",
    "#{session_path}",
))
WINDOW_FORMAT = DELIMITER.join((
    "#{window_id}",
    "#{session_id}",
    "#{window_index}",
    "#{window_name}",
    "#{window_active}",
    "#{pane_current_command}",
))
PANE_FORMAT = DELIMITER.join((
    "#{pane_id}",
    "#{window_id}",
    "#{session_id}",
    "#{pane_index}",
    "#{pane_active}",
    "#{pane_current_command}",
    "#{pane_current_path}",
))

SESSION_FIELDS = 8
WINDOW_FIELDS = 6
PANE_FIELDS = 7

MISSING_SESSION_MESSAGES = ("can't find session", "no server running")
NO_SERVER_MESSAGES = ("no server running", "error connecting to")

T = TypeVar("T")


class TmuxError(Exception):
    """A tmux command exited non-zero or could not be run at all."""

    def __init__(self, returncode: int | None, message: str, command: str = "tmux") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.message = message
        self.command = command

    def __str__(self) -> str:
        if self.returncode is None:
            return f"{self.command}: {self.message}"
        return f"{self.command} failed ({self.returncode}): {self.message}"


class TmuxTimeoutError(TmuxError):
    """A tmux command did not finish within COMMAND_TIMEOUT."""

    def __init__(self, command: str, timeout: float) -> None:
        super().__init__(None, f"timed out after {timeout:g} seconds", command)
        self.timeout = timeout


async def run_tmux(*args: str) -> str:
    """Run tmux with args and return stdout, raising TmuxError on any failure.

    Output is only returned when tmux exits 0; callers never see partial
    output from a failed or timed-out command.
    """
    command_line = " ".join(("tmux", *args))
    logger.debug("running %s", command_line)
    try:
        proc = await asyncio.create_subprocess_exec(
            "tmux", *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise TmuxError(None, f"failed to execute: {exc}", command_line) from exc

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=COMMAND_TIMEOUT)
    except asyncio.TimeoutError:
        # Best effort; the child is not awaited here.
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        logger.warning("%s timed out after %gs", command_line, COMMAND_TIMEOUT)
        raise TmuxTimeoutError(command_line, COMMAND_TIMEOUT) from None

    if proc.returncode == 0:
        return stdout.decode("utf-8", errors="replace")

    error_text = stderr.decode("utf-8", errors="replace").strip() or "no output"
    logger.warning("%s failed (%s): %s", command_line, proc.returncode, error_text)
    raise TmuxError(proc.returncode, error_text, command_line)


def is_inside_tmux() -> bool:
    """True when this process runs inside a tmux client."""
    return bool(os.environ.get("TMUX", "").strip())


# -- parsing ---------------------------------------------------------------


class _SkipRecord(Exception):
    pass


def _split_fields(line: str) -> list[str]:
    if ESCAPED_DELIMITER in line:
        return line.split(ESCAPED_DELIMITER)
    return line.split(DELIMITER)


def _count(value: str) -> int:
    if not (value.isascii() and value.isdigit()):
        raise _SkipRecord(value)
    return int(value)


def _timestamp(value: str, default: int = 0) -> int:
    if value == "":
        return default
    if not re.fullmatch(r"-?[0-9]+", value):
        raise _SkipRecord(value)
    return int(value)


def _optional(value: str) -> str | None:
    return value or None


def _parse_records(output: str, arity: int, build: Callable[[list[str]], T]) -> list[T]:
    """Decode one record per line, skipping lines of the wrong arity or type."""
    records: list[T] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        fields = _split_fields(line)
        if len(fields) != arity:
            logger.debug("dropping record with %d fields (want %d): %r", len(fields), arity, line)
            continue
        try:
            records.append(build(fields))
        except _SkipRecord as exc:
            logger.debug("dropping record with bad field %r: %r", str(exc), line)
    return records


def _build_session(fields: list[str]) -> Session:
    return Session(
        id=fields[0],
        name=fields[1],
        window_count=_count(fields[2]),
        attached_client_count=_count(fields[3]),
        created_at=_timestamp(fields[4]),
        last_attached_at=_timestamp(fields[5]),
        group=_optional(fields[6]),
        working_directory=fields[7],
    )


def _build_window(fields: list[str]) -> Window:
    return Window(
        id=fields[0],
        owning_session_id=fields[1],
        index=_count(fields[2]),
        name=fields[3],
        is_active=fields[4] == "1",
        current_command=fields[5],
    )


def _build_pane(fields: list[str]) -> Pane:
    return Pane(
        id=fields[0],
        window_id=fields[1],
        session_id=fields[2],
        index=_count(fields[3]),
        is_active=fields[4] == "1",
        current_command=fields[5],
        current_path=fields[6],
    )


def parse_sessions(output: str) -> list[Session]:
    return _parse_records(output, SESSION_FIELDS, _build_session)


def parse_windows(output: str) -> list[Window]:
    return _parse_records(output, WINDOW_FIELDS, _build_window)


def parse_panes(output: str) -> list[Pane]:
    return _parse_records(output, PANE_FIELDS, _build_pane)


# -- queries ---------------------------------------------------------------


async def list_sessions() -> list[Session]:
    """List all sessions. A tmux server that is not running has no sessions."""
    try:
        output = await run_tmux("list-sessions", "-F", SESSION_FORMAT)
    except TmuxTimeoutError:
        raise
    except TmuxError as exc:
        if any(text in exc.message for text in NO_SERVER_MESSAGES):
            return []
        raise
    return parse_sessions(output)


def exact_session(name: str) -> str:
    """Target a session by its exact name; a bare "-t name" also matches prefixes."""
    return f"={name}"


async def list_windows(session_name: str) -> list[Window]:
    output = await run_tmux("list-windows", "-F", WINDOW_FORMAT, "-t", exact_session(session_name))
    return parse_windows(output)


async def list_panes(target_window: str) -> list[Pane]:
    output = await run_tmux("list-panes", "-F", PANE_FORMAT, "-t", target_window)
    return parse_panes(output)


async def capture_pane(target: str) -> str:
    """Capture the visible contents of the target's active pane."""
    output = await run_tmux("capture-pane", "-p", "-t", target)
    return output.rstrip("\n")


async def has_session(name: str) -> bool:
    try:
        await run_tmux("has-session", "-t", exact_session(name))
    except TmuxTimeoutError:
        raise
    except TmuxError as exc:
        if any(text in exc.message for text in MISSING_SESSION_MESSAGES):
            return False
        raise
    return True


# -- mutations -------------------------------------------------------------


async def create_session(name: str, working_directory: str | None = None) -> None:
    args = ["new-session", "-d", "-s", name]
    if working_directory:
        args.extend(["-c", working_directory])
    await run_tmux(*args)


async def kill_session(name: str) -> None:
    await run_tmux("kill-session", "-t", exact_session(name))


async def rename_session(current_name: str, new_name: str) -> None:
    await run_tmux("rename-session", "-t", exact_session(current_name), "--", new_name)


async def detach_clients(name: str) -> None:
    """Detach every client attached to the session."""
    await run_tmux("detach-client", "-s", exact_session(name))


async def switch_active_client(target: str) -> None:
    await run_tmux("switch-client", "-t", target)


def attach_exec(target: str) -> NoReturn:
    """Replace this process with `tmux attach-session -t target`.

    Only meaningful outside tmux; returns only by raising TmuxError.
    """
    argv = ["tmux", "attach-session", "-t", target]
    logger.info("exec %s", " ".join(argv))
    try:
        os.execvp(argv[0], argv)
    except OSError as exc:
        raise TmuxError(None, f"failed to exec: {exc}", " ".join(argv)) from exc
