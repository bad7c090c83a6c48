"""
Command line entry point for the delta engine.

This module handles:
- Command line argument parsing
- Logging configuration
- Settings loading
- Two-way diff and three-way merge runs
- Exception handling
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import traceback
from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto
from pathlib import Path
from typing import List, Optional

from PyQt6.QtCore import QCoreApplication

from deltamerge import __version__
from deltamerge.core.diff.change_delta import ChangeDelta
from deltamerge.core.diff.edit_script import DiffAlgorithm, EditScriptProvider
from deltamerge.core.diff.file_diff import FileDiffModel
from deltamerge.core.merge.conflict_resolver import ConflictAnalyzer
from deltamerge.core.merge.merge_model import MergeModel
from deltamerge.core.models import ChangeSide, ChangeStatus, ConflictSide, FileContentInfo, FileDiffHeader
from deltamerge.services.file_io import FileIOService, FileReadError, FileWriteError
from deltamerge.services.settings import AutoResolveMode, EngineSettings, SettingsManager


# =============================================================================
# Constants
# =============================================================================

APP_NAME = "deltamerge"
APP_VERSION = __version__

APP_DIR = Path(__file__).parent
LOGS_DIR = APP_DIR / "logs"

EXIT_OK = 0
EXIT_CONFLICTS = 1
EXIT_ERROR = 2


# =============================================================================
# Enums
# =============================================================================

class RunMode(Enum):
    """What the command line run does."""
    DIFF = auto()
    MERGE = auto()


# =============================================================================
# Command Line Arguments
# =============================================================================

@dataclass
class CommandLineArgs:
    """Parsed command line arguments."""
    mode: RunMode = RunMode.DIFF
    old_path: Optional[str] = None
    new_path: Optional[str] = None
    base_path: Optional[str] = None
    yours_path: Optional[str] = None
    theirs_path: Optional[str] = None
    output_path: Optional[str] = None
    json_output: bool = False
    accept_all: bool = False
    auto_resolve: Optional[AutoResolveMode] = None
    algorithm: Optional[DiffAlgorithm] = None
    config_file: Optional[str] = None
    log_level: str = "WARNING"
    debug: bool = False


# =============================================================================
# Logging Setup
# =============================================================================

class LogFormatter(logging.Formatter):
    """Custom log formatter with colors for console."""

    COLORS = {
        logging.INFO: '\033[32m',      # Green
        logging.WARNING: '\033[33m',   # Yellow
        logging.ERROR: '\033[31m',     # Red
        logging.CRITICAL: '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def __init__(self, use_colors: bool = True):
        super().__init__(
            fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)

        if self.use_colors:
            color = self.COLORS.get(record.levelno, '')
            return f"{color}{formatted}{self.RESET}"

        return formatted


def setup_logging(level: str = "WARNING", log_file: Optional[Path] = None) -> logging.Logger:
    """
    Configure logging.

    Console output goes to stderr; stdout carries the diff or merge result.

    Args:
        level: Log level string
        log_file: Optional file path for logging

    Returns:
        Root logger instance
    """
    numeric_level = getattr(logging, level.upper(), logging.WARNING)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Remove existing handlers
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(LogFormatter(use_colors=True))
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(LogFormatter(use_colors=False))
        root_logger.addHandler(file_handler)

    # chardet logs every probe at DEBUG
    logging.getLogger('chardet').setLevel(logging.WARNING)

    return root_logger


# =============================================================================
# Exception Handling
# =============================================================================

class ExceptionHandler:
    """Global handler logging unhandled exceptions."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def handle_exception(self, exc_type: type, exc_value: BaseException, exc_tb) -> None:
        """Handle an unhandled exception."""
        # Don't handle keyboard interrupt
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return

        self.logger.critical("Unhandled exception", exc_info=(exc_type, exc_value, exc_tb))
        tb_text = ''.join(traceback.format_exception(exc_type, exc_value, exc_tb))
        print(f"{APP_NAME}: internal error\n\n{tb_text}", file=sys.stderr)


def parse_arguments(args: Optional[List[str]] = None) -> CommandLineArgs:
    """
    Parse command line arguments.

    Args:
        args: Arguments to parse (defaults to sys.argv)

    Returns:
        Parsed arguments
    """
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        '-c', '--config',
        help='Settings file path'
    )
    common.add_argument(
        '--algorithm',
        choices=[a.name.lower() for a in DiffAlgorithm],
        default=None,
        help='Diff algorithm (overrides settings)'
    )
    common.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging to console and log file'
    )
    common.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        default='WARNING',
        help='Log level'
    )

    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Delta based diff and three-way merge",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s diff old.txt new.txt                 List deltas between two files
  %(prog)s diff --json old.txt new.txt          Deltas as JSON
  %(prog)s merge base.txt yours.txt theirs.txt -o merged.txt
        """
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'{APP_NAME} {APP_VERSION}'
    )
    commands = parser.add_subparsers(dest='command', required=True)

    diff_parser = commands.add_parser('diff', parents=[common], help='Compare two files')
    diff_parser.add_argument('old', help='Original file')
    diff_parser.add_argument('new', help='Changed file')
    diff_parser.add_argument(
        '--json',
        action='store_true',
        help='Print deltas as JSON'
    )
    diff_parser.add_argument(
        '--accept-all',
        action='store_true',
        help='Accept every delta and print the resulting text'
    )

    merge_parser = commands.add_parser('merge', parents=[common], help='Three-way merge')
    merge_parser.add_argument('base', help='Common ancestor')
    merge_parser.add_argument('yours', help='Your version')
    merge_parser.add_argument('theirs', help='Their version')
    merge_parser.add_argument(
        '-o', '--output',
        help='Output file for the merged text (stdout if omitted)'
    )
    merge_parser.add_argument(
        '--auto-resolve',
        choices=[m.name.lower() for m in AutoResolveMode],
        default=None,
        help='Merge conflict-free changes without asking (overrides settings)'
    )

    parsed = parser.parse_args(args)

    result = CommandLineArgs()
    result.config_file = parsed.config
    result.debug = parsed.debug
    result.log_level = 'DEBUG' if parsed.debug else parsed.log_level
    if parsed.algorithm:
        result.algorithm = DiffAlgorithm.from_string(parsed.algorithm)

    if parsed.command == 'diff':
        result.mode = RunMode.DIFF
        result.old_path = parsed.old
        result.new_path = parsed.new
        result.json_output = parsed.json
        result.accept_all = parsed.accept_all
    else:
        result.mode = RunMode.MERGE
        result.base_path = parsed.base
        result.yours_path = parsed.yours
        result.theirs_path = parsed.theirs
        result.output_path = parsed.output
        if parsed.auto_resolve:
            result.auto_resolve = AutoResolveMode.from_string(parsed.auto_resolve)

    return result


# =============================================================================
# Runs
# =============================================================================

def delta_to_dict(delta: ChangeDelta) -> dict:
    """JSON-ready description of a delta."""
    return {
        'type': delta.change_type.name,
        'status': delta.change_status.name,
        'old_lines': [delta.start_line_old, delta.end_line_old],
        'new_lines': [delta.start_line_new, delta.end_line_new],
        'old_text_range': [delta.start_text_old, delta.end_text_old],
        'new_text_range': [delta.start_text_new, delta.end_text_new],
        'old_text': delta.get_text(ChangeSide.OLD),
        'new_text': delta.get_text(ChangeSide.NEW),
    }


def format_delta(delta: ChangeDelta) -> str:
    """Hunk-style rendering of one delta."""
    header = (
        f"@@ {delta.change_type.name} "
        f"-{delta.start_line_old + 1},{delta.line_count(ChangeSide.OLD)} "
        f"+{delta.start_line_new + 1},{delta.line_count(ChangeSide.NEW)} @@"
    )
    lines = [header]
    lines.extend(f"-{line}" for line in delta.get_text(ChangeSide.OLD).splitlines())
    lines.extend(f"+{line}" for line in delta.get_text(ChangeSide.NEW).splitlines())
    return '\n'.join(lines)


def run_diff(args: CommandLineArgs, settings: EngineSettings) -> int:
    """Compare two files and print their deltas."""
    file_io = FileIOService.from_settings(settings.io)
    old = file_io.read_text(args.old_path)
    new = file_io.read_text(args.new_path)

    model = FileDiffModel.from_settings(
        old.text,
        new.text,
        settings.diff,
        header=FileDiffHeader(args.old_path, args.new_path),
        content_info={ChangeSide.OLD: old.info, ChangeSide.NEW: new.info},
    )
    logging.info(f"Found {len(model.deltas)} deltas between {args.old_path} and {args.new_path}")

    if args.accept_all:
        pending = model.snapshot.with_status(ChangeStatus.PENDING)
        while pending:
            model.accept_delta(pending[0])
            pending = model.snapshot.with_status(ChangeStatus.PENDING)
        sys.stdout.write(model.get_text(ChangeSide.OLD))
    elif args.json_output:
        print(json.dumps({
            'old_path': args.old_path,
            'new_path': args.new_path,
            'deltas': [delta_to_dict(d) for d in model.deltas],
        }, indent=2))
    else:
        print(f"--- {args.old_path}")
        print(f"+++ {args.new_path}")
        for delta in model.deltas:
            print(format_delta(delta))

    return EXIT_OK if not model.deltas or args.accept_all else EXIT_CONFLICTS


def run_merge(args: CommandLineArgs, settings: EngineSettings) -> int:
    """Merge two versions against their base and write the result."""
    file_io = FileIOService.from_settings(settings.io)
    base = file_io.read_text(args.base_path)
    yours = file_io.read_text(args.yours_path)
    theirs = file_io.read_text(args.theirs_path)

    merge = MergeModel.from_texts(
        base.text,
        yours.text,
        theirs.text,
        provider=EditScriptProvider(settings.diff.to_options()),
        settings=settings.merge,
        word_diff_line_limit=settings.diff.word_diff_line_limit,
    )

    mode = args.auto_resolve or settings.merge.auto_resolve_mode
    if mode is AutoResolveMode.ASK:
        mode = _ask_auto_resolve()
    if mode is AutoResolveMode.ALWAYS:
        accepted = merge.auto_resolve()
        logging.info(f"Auto-resolved {accepted} deltas")

    _report_conflicts(merge)

    output_info = _output_info(base.info)
    if args.output_path:
        file_io.write_text(
            args.output_path,
            merge.base_text,
            output_info,
            create_backup=settings.merge.create_backup,
            backup_extension=settings.merge.backup_extension,
        )
        logging.info(f"Merged text written to {args.output_path}")
    else:
        sys.stdout.write(merge.base_text)

    return EXIT_CONFLICTS if merge.has_unresolved else EXIT_OK


def _ask_auto_resolve() -> AutoResolveMode:
    if not sys.stdin.isatty():
        logging.info("Not a terminal, skipping auto-resolve")
        return AutoResolveMode.NEVER
    answer = input("Merge all conflict-free changes? [Y/n] ").strip().lower()
    return AutoResolveMode.NEVER if answer.startswith('n') else AutoResolveMode.ALWAYS


def _report_conflicts(merge: MergeModel) -> None:
    yours = merge.get_diff(ConflictSide.YOURS).deltas
    theirs = merge.get_diff(ConflictSide.THEIRS).deltas
    for pair in merge.conflict_pairs:
        own = yours[pair.yours_index]
        other = theirs[pair.theirs_index]
        suggestions = ConflictAnalyzer.suggestions(own, other)
        hint = f", suggestion: {suggestions[0].reason}" if suggestions else ""
        logging.warning(
            f"Conflict at base lines {own.start_line_old + 1}-{own.end_line_old} "
            f"({pair.resolve_option.name.lower()}){hint}"
        )


def _output_info(base_info: FileContentInfo) -> FileContentInfo:
    return FileContentInfo(
        encoding=base_info.encoding,
        line_ending=base_info.line_ending,
        bom=base_info.bom,
    )


# =============================================================================
# Main Function
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    Command line entry point.

    Returns:
        Exit code: 0 on success, 1 when differences or conflicts remain,
        2 on file errors
    """
    args = parse_arguments(argv)

    log_file = LOGS_DIR / f"{APP_NAME}_{datetime.now():%Y%m%d}.log" if args.debug else None
    logger = setup_logging(args.log_level, log_file)
    logger.debug(f"Starting {APP_NAME} v{APP_VERSION}")

    exception_handler = ExceptionHandler(logger)
    sys.excepthook = exception_handler.handle_exception

    # Model signals are QObjects
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])

    settings_manager = SettingsManager(Path(args.config_file) if args.config_file else None)
    settings = settings_manager.settings
    if args.algorithm:
        settings.diff.algorithm = args.algorithm

    try:
        if args.mode is RunMode.MERGE:
            return run_merge(args, settings)
        return run_diff(args, settings)
    except (FileReadError, FileWriteError) as e:
        logger.error(str(e))
        return EXIT_ERROR


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == '__main__':
    sys.exit(main())
