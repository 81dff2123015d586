from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union


@dataclass(frozen=True)
class Session:
    id: str
    name: str
    window_count: int
    attached_client_count: int
    created_at: int
    last_attached_at: int
    group: str | None
    working_directory: str


@dataclass(frozen=True)
class Window:
    id: str
    owning_session_id: str
    index: int
    name: str
    is_active: bool
    current_command: str


@dataclass(frozen=True)
class Pane:
    id: str
    window_id: str
    session_id: str
    index: int
    is_active: bool
    current_command: str
    current_path: str


@dataclass(frozen=True)
class MatchResult:
    source_index: int
    score: int
    matched_positions: frozenset[int] = field(default_factory=frozenset)


class InputPurpose(Enum):
    NEW_SESSION = "new_session"
    RENAME_SESSION = "rename_session"
    ADD_TAG = "add_tag"
    FILTER_BY_TAG = "filter_by_tag"


@dataclass(frozen=True)
class KillSession:
    name: str


ConfirmAction = KillSession


@dataclass(frozen=True)
class Normal:
    pass


@dataclass(frozen=True)
class Search:
    pass


@dataclass(frozen=True)
class Input:
    purpose: InputPurpose


@dataclass(frozen=True)
class Confirm:
    action: ConfirmAction


AppMode = Union[Normal, Search, Input, Confirm]


class FocusPanel(Enum):
    SESSIONS = "sessions"
    WINDOWS = "windows"
