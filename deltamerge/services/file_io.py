"""
File I/O service for reading and writing texts safely.

Handles:
- Encoding detection
- Line ending detection, normalization and restoration
- Binary file rejection
- Atomic writes
"""

from __future__ import annotations

import codecs
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import chardet

from deltamerge.core.errors import DeltaError
from deltamerge.core.models import FileContentInfo, LineEnding


class FileReadError(DeltaError):
    """A file could not be read as text."""


class FileWriteError(DeltaError):
    """A text could not be written to a file."""


@dataclass
class LoadedText:
    """Newline-normalized text with what is needed to write it back."""
    text: str
    info: FileContentInfo
    size: int = 0

    @property
    def line_count(self) -> int:
        return self.text.count('\n') + (1 if self.text and not self.text.endswith('\n') else 0)


@dataclass
class ReadResult:
    """Result of a file read operation."""
    success: bool
    content: Optional[LoadedText] = None
    error: Optional[str] = None
    is_binary: bool = False


@dataclass
class WriteResult:
    """Result of a file write operation."""
    success: bool
    bytes_written: int = 0
    error: Optional[str] = None


# BOM bytes and the codec decoding what follows them
_BOMS = [
    (codecs.BOM_UTF8, 'utf-8'),
    (codecs.BOM_UTF16_LE, 'utf-16-le'),
    (codecs.BOM_UTF16_BE, 'utf-16-be'),
]


class FileIOService:
    """
    Reads texts for diffing and writes merge results back.

    Texts handed to the delta engine always use ``\\n``. The encoding, BOM
    and line ending style found on disk travel alongside in a
    `FileContentInfo`, so a written file looks like the one that was read.
    """

    # Leading bytes of common binary formats
    BINARY_SIGNATURES = (
        b'\x89PNG',
        b'\xff\xd8\xff',
        b'GIF8',
        b'PK\x03\x04',
        b'\x1f\x8b',
        b'%PDF',
        b'\x7fELF',
    )

    # Share of control bytes above which a header counts as binary
    CONTROL_BYTE_RATIO = 0.3

    def __init__(
        self,
        default_encoding: str = 'utf-8',
        fallback_encoding: str = 'latin-1',
        max_text_size: int = 50 * 1024 * 1024,
        binary_check_size: int = 8192
    ):
        self.default_encoding = default_encoding
        self.fallback_encoding = fallback_encoding
        self.max_text_size = max_text_size
        self.binary_check_size = binary_check_size

    @classmethod
    def from_settings(cls, settings) -> FileIOService:
        """Create a service from IOSettings."""
        return cls(
            default_encoding=settings.default_encoding,
            fallback_encoding=settings.fallback_encoding,
            max_text_size=settings.max_text_size,
        )

    def read_file(self, path: Path | str, encoding: Optional[str] = None) -> ReadResult:
        """
        Read a text file, reporting failure in the result instead of raising.

        Args:
            path: File to read
            encoding: Codec to use instead of detecting one

        Returns:
            ReadResult holding the normalized text or the failure reason
        """
        try:
            return ReadResult(success=True, content=self._load(Path(path), encoding))
        except FileReadError as e:
            return ReadResult(success=False, error=e.message, is_binary=e.error_details.get('is_binary', False))

    def read_text(self, path: Path | str, encoding: Optional[str] = None) -> LoadedText:
        """
        Read a text file.

        Raises:
            FileReadError: The file is missing, unreadable, too large or binary
        """
        try:
            return self._load(Path(path), encoding)
        except FileReadError as e:
            logging.error(f"FileIOService - Failed to read {path}: {e.message}")
            raise

    def _load(self, path: Path, encoding: Optional[str]) -> LoadedText:
        raw = self._read_bytes(path)
        body, bom_encoding = _strip_bom(raw)

        if bom_encoding is None and self._looks_binary(raw[:self.binary_check_size]):
            raise FileReadError("File appears to be binary", {'path': str(path), 'is_binary': True})

        content, used_encoding = self._decode(path, body, bom_encoding or encoding)
        info = FileContentInfo(
            encoding=used_encoding,
            line_ending=self._detect_line_ending(content),
            bom=bom_encoding is not None,
            path=str(path),
        )
        return LoadedText(text=normalize_line_endings(content), info=info, size=len(raw))

    def _read_bytes(self, path: Path) -> bytes:
        details = {'path': str(path)}
        if not path.is_file():
            reason = "Not a file" if path.exists() else "File not found"
            raise FileReadError(f"{reason}: {path}", details)

        try:
            size = path.stat().st_size
            if size > self.max_text_size:
                raise FileReadError(
                    f"File too large ({size / 1024 / 1024:.2f} MB, "
                    f"limit {self.max_text_size / 1024 / 1024:.2f} MB)",
                    {**details, 'size': size}
                )
            return path.read_bytes()
        except PermissionError as e:
            raise FileReadError(f"Permission denied: {path}", details) from e
        except OSError as e:
            raise FileReadError(f"Cannot read {path}: {e}", details) from e

    def _decode(self, path: Path, body: bytes, encoding: Optional[str]) -> tuple[str, str]:
        encoding = encoding or self._detect_encoding(body)
        try:
            return body.decode(encoding), encoding
        except (UnicodeDecodeError, LookupError):
            logging.warning(
                f"FileIOService - {path} is not valid {encoding}, "
                f"decoding as {self.fallback_encoding}"
            )
            return body.decode(self.fallback_encoding, errors='replace'), self.fallback_encoding

    def write_file(
        self,
        path: Path | str,
        text: str,
        info: Optional[FileContentInfo] = None,
        atomic: bool = True,
        create_backup: bool = False,
        backup_extension: str = '.orig'
    ) -> WriteResult:
        """
        Write a ``\\n`` text back in a file's on-disk format.

        Args:
            path: Destination file
            text: Text with ``\\n`` line endings
            info: Encoding, line ending and BOM to restore (UTF-8/LF if None)
            atomic: Write a temporary file in the same directory and move it
                over the destination
            create_backup: Copy an existing destination aside first
            backup_extension: Suffix appended to the backup's name

        Returns:
            WriteResult with the byte count or the failure reason
        """
        try:
            data = _encode(text, info or FileContentInfo())
            written = self._store(Path(path), data, atomic, create_backup, backup_extension)
        except FileWriteError as e:
            return WriteResult(success=False, error=e.message)
        return WriteResult(success=True, bytes_written=written)

    def write_text(self, path: Path | str, text: str, info: Optional[FileContentInfo] = None, **kwargs) -> int:
        """
        Write a text, raising on failure.

        Returns:
            Number of bytes written

        Raises:
            FileWriteError: The text cannot be encoded or the file written
        """
        result = self.write_file(path, text, info, **kwargs)
        if not result.success:
            logging.error(f"FileIOService - Failed to write {path}: {result.error}")
            raise FileWriteError(result.error or f"Failed to write {path}", {'path': str(path)})
        return result.bytes_written

    def _store(self, path: Path, data: bytes, atomic: bool, create_backup: bool, backup_extension: str) -> int:
        try:
            if create_backup and path.is_file():
                backup = path.with_name(path.name + backup_extension)
                shutil.copy2(path, backup)
                logging.debug(f"FileIOService - Backed up {path} to {backup}")

            path.parent.mkdir(parents=True, exist_ok=True)
            if not atomic:
                path.write_bytes(data)
                return len(data)

            fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
            try:
                with os.fdopen(fd, 'wb') as f:
                    f.write(data)
                os.replace(temp_name, path)
            except OSError:
                Path(temp_name).unlink(missing_ok=True)
                raise
            return len(data)

        except PermissionError as e:
            raise FileWriteError(f"Permission denied: {path}", {'path': str(path)}) from e
        except OSError as e:
            raise FileWriteError(f"Cannot write {path}: {e}", {'path': str(path)}) from e

    def _looks_binary(self, header: bytes) -> bool:
        if not header:
            return False
        if b'\x00' in header or header.startswith(self.BINARY_SIGNATURES):
            return True

        control = sum(1 for b in header if b < 9 or 13 < b < 32)
        return control / len(header) > self.CONTROL_BYTE_RATIO

    def _detect_encoding(self, body: bytes) -> str:
        """Guess a codec with chardet, trusting only confident answers."""
        if not body:
            return self.default_encoding

        guess = chardet.detect(body)
        name = (guess.get('encoding') or '').lower()
        if not name or guess.get('confidence', 0) <= 0.7:
            return self.default_encoding

        # Plain ASCII is written back as UTF-8 once edits add other characters
        return 'utf-8' if name == 'ascii' else name

    def _detect_line_ending(self, content: str) -> LineEnding:
        """Classify the line terminators used in a decoded text."""
        crlf = content.count('\r\n')
        counts = {
            LineEnding.CRLF: crlf,
            LineEnding.LF: content.count('\n') - crlf,
            LineEnding.CR: content.count('\r') - crlf,
        }
        used = [ending for ending, count in counts.items() if count]
        if not used:
            return LineEnding.NONE
        return used[0] if len(used) == 1 else LineEnding.MIXED


def normalize_line_endings(text: str) -> str:
    """Convert CRLF and CR line endings to LF."""
    return text.replace('\r\n', '\n').replace('\r', '\n')


def _strip_bom(raw: bytes) -> tuple[bytes, Optional[str]]:
    """Split a leading BOM off, returning the body and the BOM's codec."""
    for marker, encoding in _BOMS:
        if raw.startswith(marker):
            return raw[len(marker):], encoding
    return raw, None


def _encode(text: str, info: FileContentInfo) -> bytes:
    separator = info.line_ending.separator
    if separator != '\n':
        text = text.replace('\n', separator)

    try:
        data = text.encode(info.encoding)
    except (UnicodeEncodeError, LookupError) as e:
        raise FileWriteError(f"Cannot encode as {info.encoding}: {e}", {'encoding': info.encoding}) from e
    return _bom_for(info.encoding) + data if info.bom else data


def _bom_for(encoding: str) -> bytes:
    normalized = codecs.lookup(encoding).name
    if normalized == 'utf-16-le':
        return codecs.BOM_UTF16_LE
    if normalized == 'utf-16-be':
        return codecs.BOM_UTF16_BE
    if normalized == 'utf-8':
        return codecs.BOM_UTF8
    return b''
