"""
Services supporting the delta engine.

Provides:
- Settings persistence
- Text file reading and writing with encoding and line ending handling
"""

from deltamerge.services.settings import (
    SettingsManager,
    EngineSettings,
    DiffSettings,
    MergeSettings,
    IOSettings,
    AutoResolveMode,
)
from deltamerge.services.file_io import (
    FileIOService,
    LoadedText,
    ReadResult,
    WriteResult,
    FileReadError,
    FileWriteError,
    normalize_line_endings,
)

__all__ = [
    # Settings
    'SettingsManager',
    'EngineSettings',
    'DiffSettings',
    'MergeSettings',
    'IOSettings',
    'AutoResolveMode',
    # File I/O
    'FileIOService',
    'LoadedText',
    'ReadResult',
    'WriteResult',
    'FileReadError',
    'FileWriteError',
    'normalize_line_endings',
]
