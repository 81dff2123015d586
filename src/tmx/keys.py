"""Input messages forwarded from the terminal to the event loop."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from textual import events


class KeyKind(Enum):
    PRESS = "press"
    REPEAT = "repeat"
    RELEASE = "release"


@dataclass(frozen=True)
class KeyEvent:
    """A key with its modifiers.

    ``code`` is the typed character for printable keys ("a", "G", "/") and
    a lowercase name otherwise ("enter", "escape", "backspace", "up", ...).
    """

    code: str
    ctrl: bool = False
    alt: bool = False
    kind: KeyKind = KeyKind.PRESS

    @property
    def char(self) -> str | None:
        """The printable character for this key, if it types one."""
        if self.ctrl or self.alt or len(self.code) != 1 or not self.code.isprintable():
            return None
        return self.code


@dataclass(frozen=True)
class ResizeEvent:
    width: int
    height: int


@dataclass(frozen=True)
class InputError:
    """The input reader failed; it sends this once and then stops."""

    error: BaseException


InputMessage = Union[KeyEvent, ResizeEvent, InputError]


def is_quit(key: KeyEvent) -> bool:
    if key.alt:
        return False
    if key.ctrl:
        return key.code == "c"
    return key.code == "q"


def key_from_textual(event: events.Key) -> KeyEvent:
    """Convert a Textual key event, preferring the typed character."""
    *modifiers, name = event.key.split("+")
    ctrl = "ctrl" in modifiers
    alt = "alt" in modifiers or "meta" in modifiers
    character = event.character
    if not ctrl and not alt and character and len(character) == 1 and character.isprintable():
        return KeyEvent(character)
    if name == "space":
        name = " "
    return KeyEvent(name, ctrl=ctrl, alt=alt)
