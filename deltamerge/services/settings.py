"""
Engine settings management.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from enum import Enum, auto
from pathlib import Path
from typing import Any, Callable, Optional

from deltamerge.core.diff.edit_script import DiffAlgorithm, DiffOptions, WhitespaceMode


class AutoResolveMode(Enum):
    """When conflict-free changes are merged without asking."""
    ALWAYS = auto()
    NEVER = auto()
    ASK = auto()

    @classmethod
    def from_string(cls, value: str) -> AutoResolveMode:
        """Parse a mode name in any case; unknown names mean ASK."""
        try:
            return cls[value.upper()]
        except (KeyError, AttributeError):
            return cls.ASK


@dataclass
class DiffSettings:
    """Settings for computing deltas."""
    algorithm: DiffAlgorithm = DiffAlgorithm.MYERS
    whitespace_mode: WhitespaceMode = WhitespaceMode.EXACT
    ignore_case: bool = False
    word_diff_line_limit: int = 20

    def to_options(self) -> DiffOptions:
        """Options for the edit script provider."""
        return DiffOptions(
            algorithm=self.algorithm,
            ignore_case=self.ignore_case,
            whitespace_mode=self.whitespace_mode,
        )


@dataclass
class MergeSettings:
    """Settings for three-way merges."""
    auto_resolve_mode: AutoResolveMode = AutoResolveMode.ASK
    apply_resolve_options: bool = True   # Accept counterparts an accept settled
    create_backup: bool = True
    backup_extension: str = ".orig"


@dataclass
class IOSettings:
    """Settings for reading and writing files."""
    default_encoding: str = "utf-8"
    fallback_encoding: str = "latin-1"
    max_text_size: int = 50 * 1024 * 1024
    preserve_line_endings: bool = True


@dataclass
class EngineSettings:
    """All engine settings, persisted as one JSON document."""
    diff: DiffSettings = field(default_factory=DiffSettings)
    merge: MergeSettings = field(default_factory=MergeSettings)
    io: IOSettings = field(default_factory=IOSettings)


class SettingsManager:
    """
    Loads and saves `EngineSettings` as JSON.

    Each settings group is stored as an object keyed by field name, with
    enum members stored by name. Missing keys keep their defaults, so files
    written by older versions still load.
    """

    GROUPS = {
        'diff': DiffSettings,
        'merge': MergeSettings,
        'io': IOSettings,
    }

    def __init__(self, settings_path: Optional[Path] = None):
        self.settings_path = Path(settings_path) if settings_path else self._get_default_path()
        self._settings: Optional[EngineSettings] = None
        self._observers: list[Callable[[EngineSettings], None]] = []

    @staticmethod
    def _get_default_path() -> Path:
        """Per-user settings file location."""
        if os.name == 'nt':
            base = Path(os.environ.get('APPDATA', os.path.expanduser('~')))
            return base / 'DeltaMerge' / 'settings.json'

        base = Path(os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config')))
        return base / 'deltamerge' / 'settings.json'

    @property
    def settings(self) -> EngineSettings:
        """Current settings; read from disk on first access."""
        if self._settings is None:
            self._settings = self.load()
        return self._settings

    def load(self) -> EngineSettings:
        """Read the settings file; defaults when it is missing or unreadable."""
        if not self.settings_path.exists():
            return EngineSettings()

        try:
            data = json.loads(self.settings_path.read_text(encoding='utf-8'))
            return self._from_dict(data)
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logging.error(f"SettingsManager - Cannot load {self.settings_path}: {e}")
            return EngineSettings()

    def save(self, settings: Optional[EngineSettings] = None) -> bool:
        """Write settings to disk and notify observers; False on failure."""
        settings = settings or self._settings
        if settings is None:
            return False

        try:
            self.settings_path.parent.mkdir(parents=True, exist_ok=True)
            self.settings_path.write_text(json.dumps(self._to_dict(settings), indent=2), encoding='utf-8')
        except (OSError, TypeError) as e:
            logging.error(f"SettingsManager - Cannot save {self.settings_path}: {e}")
            return False

        self._settings = settings
        self._notify_observers()
        return True

    def reset(self) -> EngineSettings:
        """Replace the stored settings with defaults."""
        self._settings = EngineSettings()
        self.save()
        return self._settings

    def add_observer(self, callback: Callable[[EngineSettings], None]) -> None:
        """Call `callback` with the new settings after every save."""
        self._observers.append(callback)

    def remove_observer(self, callback: Callable[[EngineSettings], None]) -> None:
        if callback in self._observers:
            self._observers.remove(callback)

    def _notify_observers(self) -> None:
        for callback in self._observers:
            try:
                callback(self._settings)
            except Exception as e:
                logging.error(f"SettingsManager - Settings observer failed: {e}")

    def _to_dict(self, settings: EngineSettings) -> dict:
        return {
            name: {
                f.name: _to_json_value(getattr(getattr(settings, name), f.name))
                for f in fields(group_class)
            }
            for name, group_class in self.GROUPS.items()
        }

    def _from_dict(self, data: dict) -> EngineSettings:
        groups = {}
        for name, group_class in self.GROUPS.items():
            defaults = group_class()
            stored = data.get(name, {})
            values = {}
            for f in fields(group_class):
                default = getattr(defaults, f.name)
                if f.name not in stored:
                    values[f.name] = default
                elif isinstance(default, Enum):
                    values[f.name] = _enum_by_name(type(default), stored[f.name])
                else:
                    values[f.name] = stored[f.name]
            groups[name] = group_class(**values)

        return EngineSettings(**groups)


def _to_json_value(value: Any) -> Any:
    return value.name if isinstance(value, Enum) else value


def _enum_by_name(enum_class: type[Enum], name: Any) -> Enum:
    """Look up a member by name; unknown names give the first member."""
    try:
        return enum_class[name]
    except (KeyError, TypeError):
        return next(iter(enum_class))
