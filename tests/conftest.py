from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from tmx.models import Session, Window
from tmx.settings import Settings
from tmx.state import AppState
from tmx.tmux import TmuxError


@pytest.fixture(autouse=True)
def _isolate_home(tmp_path_factory, monkeypatch):
    """Keep config and log files out of the real HOME."""
    base = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(base))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(base / ".config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(base / ".local" / "state"))
    monkeypatch.delenv("TMUX", raising=False)
    monkeypatch.setattr(Path, "home", lambda: base)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTmux:
    """In-memory tmux server standing in for the driver functions used by AppState."""

    def __init__(self) -> None:
        self.sessions: list[Session] = []
        self.windows: dict[str, list[Window]] = {}
        self.inside = False
        self.failures: dict[str, TmuxError] = {}
        self.calls: list[tuple[str, tuple]] = []
        self._next_id = 0

    def add(self, name: str, windows: int = 1, attached: int = 0) -> Session:
        session = Session(
            id=f"${self._next_id}",
            name=name,
            window_count=windows,
            attached_client_count=attached,
            created_at=1770744224,
            last_attached_at=0,
            group=None,
            working_directory="/tmp",
        )
        self._next_id += 1
        self.sessions.append(session)
        self.windows[name] = [
            Window(
                id=f"@{session.id[1:]}{i}",
                owning_session_id=session.id,
                index=i,
                name=f"win{i}",
                is_active=i == 0,
                current_command="bash",
            )
            for i in range(windows)
        ]
        return session

    def names(self) -> list[str]:
        return [s.name for s in self.sessions]

    def count(self, call: str) -> int:
        return sum(1 for name, _ in self.calls if name == call)

    def _record(self, call: str, *args) -> None:
        self.calls.append((call, args))
        if call in self.failures:
            raise self.failures[call]

    def _find(self, name: str) -> Session:
        for session in self.sessions:
            if session.name == name:
                return session
        raise TmuxError(1, f"can't find session: {name}", "tmux")

    async def list_sessions(self) -> list[Session]:
        self._record("list_sessions")
        return list(self.sessions)

    async def list_windows(self, session_name: str) -> list[Window]:
        self._record("list_windows", session_name)
        self._find(session_name)
        return list(self.windows.get(session_name, []))

    async def capture_pane(self, target: str) -> str:
        self._record("capture_pane", target)
        return f"$ preview of {target}"

    async def create_session(self, name: str, working_directory: str | None = None) -> None:
        self._record("create_session", name, working_directory)
        if name in self.names():
            raise TmuxError(1, f"duplicate session: {name}", "tmux new-session")
        self.add(name)

    async def kill_session(self, name: str) -> None:
        self._record("kill_session", name)
        self.sessions.remove(self._find(name))

    async def rename_session(self, current_name: str, new_name: str) -> None:
        self._record("rename_session", current_name, new_name)
        session = self._find(current_name)
        self.sessions[self.sessions.index(session)] = replace(session, name=new_name)
        self.windows[new_name] = self.windows.pop(current_name, [])

    async def detach_clients(self, name: str) -> None:
        self._record("detach_clients", name)
        session = self._find(name)
        self.sessions[self.sessions.index(session)] = replace(session, attached_client_count=0)

    async def switch_active_client(self, target: str) -> None:
        self._record("switch_active_client", target)

    def attach_exec(self, target: str):
        self._record("attach_exec", target)
        raise TmuxError(None, "failed to exec: [Errno 2] No such file or directory", "tmux attach-session")

    async def has_session(self, name: str) -> bool:
        self._record("has_session", name)
        return name in self.names()

    def is_inside_tmux(self) -> bool:
        return self.inside


@pytest.fixture
def fake_tmux(monkeypatch) -> FakeTmux:
    fake = FakeTmux()
    for name in (
        "list_sessions",
        "list_windows",
        "capture_pane",
        "create_session",
        "kill_session",
        "rename_session",
        "detach_clients",
        "switch_active_client",
        "attach_exec",
        "has_session",
        "is_inside_tmux",
    ):
        monkeypatch.setattr(f"tmx.state.{name}", getattr(fake, name))
    return fake


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(path=tmp_path / "config.json")


@pytest.fixture
def state(settings, clock) -> AppState:
    return AppState(settings, clock=clock)
