"""Session tags and groups loaded from ~/.config/tmx/config.json."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


def default_settings_path() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "tmx" / "config.json"


def _string_lists(value: object) -> dict[str, list[str]]:
    if not isinstance(value, dict):
        raise ValueError(f"expected an object, got {type(value).__name__}")
    result: dict[str, list[str]] = {}
    for key, items in value.items():
        if not isinstance(items, list) or not all(isinstance(item, str) for item in items):
            raise ValueError(f"expected a list of strings for {key!r}")
        result[str(key)] = list(items)
    return result


@dataclass
class Settings:
    tags: dict[str, list[str]] = field(default_factory=dict)  # session name -> tags
    groups: dict[str, list[str]] = field(default_factory=dict)  # group name -> session names
    path: Path | None = field(default=None, compare=False, repr=False)

    @staticmethod
    def load(path: Path | None = None) -> Settings:
        return Settings.load_from(path or default_settings_path())

    @staticmethod
    def load_from(path: Path) -> Settings:
        """Load settings, falling back to defaults when missing or corrupt.

        A missing file is created with defaults. A corrupt one is moved aside
        to ``<name>.bak`` and never overwritten.
        """
        if not path.exists():
            settings = Settings(path=path)
            try:
                settings.save_to(path)
            except OSError as exc:
                logger.warning("could not create %s: %s", path, exc)
            return settings
        try:
            data = json.loads(path.read_text())
            if not isinstance(data, dict):
                raise ValueError("top level is not an object")
            return Settings(
                tags=_string_lists(data.get("tags", {})),
                groups=_string_lists(data.get("groups", {})),
                path=path,
            )
        except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as exc:
            backup = path.with_name(path.name + ".bak")
            logger.warning("corrupt settings %s (%s), moving to %s", path, exc, backup)
            try:
                path.rename(backup)
            except OSError as rename_exc:
                logger.warning("could not move %s aside: %s", path, rename_exc)
        except OSError as exc:
            logger.warning("could not read %s: %s", path, exc)
        return Settings(path=path)

    def save(self) -> None:
        self.save_to(self.path or default_settings_path())

    def save_to(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {"tags": self.tags, "groups": self.groups}
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n")

    def add_tag(self, session: str, tag: str) -> None:
        tags = self.tags.setdefault(session, [])
        if tag not in tags:
            tags.append(tag)

    def remove_tag(self, session: str, tag: str) -> None:
        tags = self.tags.get(session)
        if tags is None:
            return
        if tag in tags:
            tags.remove(tag)
        if not tags:
            del self.tags[session]

    def get_tags(self, session: str) -> list[str]:
        return list(self.tags.get(session, []))

    def sessions_with_tag(self, tag: str) -> set[str]:
        return {session for session, tags in self.tags.items() if tag in tags}

    def all_tags(self) -> list[str]:
        return sorted({tag for tags in self.tags.values() for tag in tags})
