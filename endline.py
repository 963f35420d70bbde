#!/usr/bin/env python3
"""
endline

A cross-platform formatter that normalizes line endings and whitespace in
text files, one formatting pass at a time.
"""

import argparse
import concurrent.futures
import logging
import os
import shutil
import sys
import threading
import time
from pathlib import Path
from typing import Dict, FrozenSet, List, Mapping, Optional, Set, Tuple

from tqdm import tqdm

from eol import END_OF_LINE_KEY, STYLE_MARKERS
from passes import (
    DEFAULT_TAB_WIDTH,
    FormattingPass,
    default_passes,
    make_lookup,
    run_passes,
)
from textlines import FormattingCancelled

# Define version
__version__ = "1.0.0"


# Set up logging with thread-safe handler
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(), logging.FileHandler("endline.log", mode="a")],
)
logger = logging.getLogger("endline")
# Add a thread lock for logging
log_lock = threading.Lock()

DEFAULT_IGNORE_DIRS: List[str] = [
    ".git",
    ".github",
    "__pycache__",
    "node_modules",
    "venv",
    ".venv",
]

# Skipped by name, without reading
BINARY_EXTENSIONS: FrozenSet[str] = frozenset(
    (
        ".bin .exe .dll .so .dylib .obj .o .a .lib .class .pyc .pyo .pyd "
        ".png .jpg .jpeg .gif .bmp .ico .tif .tiff .mp3 .mp4 .avi .mov "
        ".zip .tar .gz .bz2 .xz .7z .rar .pdf .doc .docx .xls .xlsx .ppt .pptx"
    ).split()
)

# PNG, GIF, JPEG, PDF, ZIP, ELF
BINARY_SIGNATURES: Tuple[bytes, ...] = (
    b"\x89PNG",
    b"GIF8",
    b"\xff\xd8\xff",
    b"%PDF",
    b"PK\x03\x04",
    b"\x7fELF",
)

SNIFF_SIZE = 8192

# BEL, BS, TAB, LF, FF, CR and ESC still occur in text
_TEXT_BYTES: bytes = bytes(
    sorted({7, 8, 9, 10, 12, 13, 27} | set(range(0x20, 0x100)) - {0x7F})
)


def platform_style() -> str:
    """Return the style token matching this platform's line separator."""
    for style, marker in STYLE_MARKERS.items():
        if marker == os.linesep:
            return style
    return "lf"


def looks_binary(data: bytes) -> bool:
    """Guess from the first SNIFF_SIZE bytes whether data is not text."""
    head: bytes = data[:SNIFF_SIZE]
    if b"\x00" in head or head.startswith(BINARY_SIGNATURES):
        return True
    # More than a fifth of the bytes are control characters
    return len(head.translate(None, _TEXT_BYTES)) * 5 > len(head)


def decode_text(data: bytes, file_path: str) -> Tuple[str, str]:
    """Decode file bytes as (content, encoding); latin-1 accepts any byte."""
    try:
        return data.decode("utf-8"), "utf-8"
    except UnicodeDecodeError:
        with log_lock:
            logger.warning(
                "UTF-8 decoding failed for %s, falling back to latin-1", file_path
            )
        return data.decode("latin-1"), "latin-1"


def _restore_backup(file_path: str, backup_path: str) -> None:
    try:
        shutil.copy2(backup_path, file_path)
        os.remove(backup_path)
    except Exception as e:  # pylint: disable=broad-exception-caught
        with log_lock:
            logger.error("Failed to restore from backup for %s: %s", file_path, str(e))
        return
    with log_lock:
        logger.info("Restored original file from backup after write error: %s", file_path)


def write_text(file_path: str, content: str, encoding: str) -> bool:
    """Write content back, restoring the original from a .bak copy on failure."""
    backup_path = file_path + ".bak"
    try:
        shutil.copy2(file_path, backup_path)
    except Exception as e:  # pylint: disable=broad-exception-caught
        with log_lock:
            logger.warning("Could not create backup of %s: %s", file_path, str(e))

    try:
        with open(file_path, "wb") as f:
            f.write(content.encode(encoding))
    except Exception as e:  # pylint: disable=broad-exception-caught
        if os.path.exists(backup_path):
            _restore_backup(file_path, backup_path)
        with log_lock:
            logger.error("Error writing to %s: %s", file_path, str(e))
        return False

    if os.path.exists(backup_path):
        os.remove(backup_path)
    return True


def process_file(  # pylint: disable=too-many-return-statements
    file_path: str,
    conventions: Mapping[str, str],
    check: bool = False,
    passes: Optional[List[FormattingPass]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> bool:
    """
    Run the formatting passes over one file.

    The file is read once; binary detection, decoding and the passes all work
    on those bytes. Returns True when the file was changed, or in check mode
    would be.
    """
    try:
        if Path(file_path).suffix.lower() in BINARY_EXTENSIONS:
            with log_lock:
                logger.debug("Skipping binary file: %s", file_path)
            return False

        with open(file_path, "rb") as f:
            data: bytes = f.read()

        if not data:
            with log_lock:
                logger.debug("Skipping empty file: %s", file_path)
            return False

        if looks_binary(data):
            with log_lock:
                logger.debug("Skipping binary file: %s", file_path)
            return False

        content, encoding_used = decode_text(data, file_path)

        try:
            formatted, applied = run_passes(
                content, make_lookup(conventions), passes, cancel_event
            )
        except FormattingCancelled:
            with log_lock:
                logger.debug("Formatting cancelled, leaving file as is: %s", file_path)
            return False

        if formatted == content:
            with log_lock:
                logger.debug("No changes needed for file: %s", file_path)
            return False

        if check:
            with log_lock:
                logger.warning("%s: %s", file_path, ", ".join(applied))
            return True

        if not os.access(file_path, os.W_OK):
            with log_lock:
                logger.error("File is not writable: %s", file_path)
            return False

        if not write_text(file_path, formatted, encoding_used):
            return False

        with log_lock:
            logger.debug("Updated file (%s): %s", ", ".join(applied), file_path)
        return True
    except FileNotFoundError:
        with log_lock:
            logger.error("File not found: %s", file_path)
        return False
    except PermissionError as e:
        with log_lock:
            logger.error("Permission denied accessing %s: %s", file_path, str(e))
        return False
    except Exception as e:  # pylint: disable=broad-exception-caught
        with log_lock:
            logger.error("Error processing %s: %s", file_path, str(e))
        return False


def to_glob(pattern: str) -> str:
    # A bare extension such as ".py" means "*.py"
    if pattern.startswith(".") and "/" not in pattern and "\\" not in pattern:
        return f"*{pattern}"
    return pattern


def matches_any(filename: str, globs: List[str]) -> bool:
    path = Path(filename)
    for glob in globs:
        try:
            if path.match(glob):
                return True
        except Exception as e:  # pylint: disable=broad-exception-caught
            with log_lock:
                logger.error(
                    "Error matching pattern '%s' to file '%s': %s", glob, filename, str(e)
                )
    return False


def find_files(
    root_dir: str,
    file_patterns: Optional[List[str]],
    ignore_dirs: Optional[List[str]] = None,
) -> List[str]:
    """
    Find the files under root_dir matching any of the patterns.

    The tree is walked once, so a file matched by several patterns is still
    listed only once, in walk order.
    """
    skipped: Set[str] = set(DEFAULT_IGNORE_DIRS if ignore_dirs is None else ignore_dirs)
    globs: List[str] = [
        to_glob(pattern.strip())
        for pattern in (file_patterns or [".txt"])
        if pattern.strip()
    ]

    found: List[str] = []
    for root, dirs, files in os.walk(root_dir):
        dirs[:] = [d for d in dirs if d not in skipped]
        found.extend(
            os.path.join(root, filename)
            for filename in files
            if matches_any(filename, globs)
        )
    return found


def process_files_parallel(  # pylint: disable=too-many-locals
    files: List[str],
    conventions: Mapping[str, str],
    check: bool = False,
    passes: Optional[List[FormattingPass]] = None,
    max_workers: Optional[int] = None,
) -> int:
    """Process files on a thread pool; returns how many changed."""
    changed_count: int = 0
    error_count: int = 0
    skipped_count: int = 0

    if not files:
        return 0

    if max_workers is None:
        cpu_count: Optional[int] = os.cpu_count()
        max_workers = min((cpu_count or 2) * 2, 32, len(files))
    else:
        max_workers = min(max_workers, 32, len(files))

    with log_lock:
        logger.debug(
            "Using %d worker threads for processing %d files", max_workers, len(files)
        )

    cancel_event = threading.Event()

    batch_size = 1000
    for i in range(0, len(files), batch_size):
        batch_files = files[i : i + batch_size]

        with tqdm(
            total=len(batch_files),
            desc=f"Processing files (batch {i//batch_size + 1})",
            unit="file",
        ) as pbar:
            with concurrent.futures.ThreadPoolExecutor(
                max_workers=max_workers
            ) as executor:
                future_to_file = {
                    executor.submit(
                        process_file,
                        file_path,
                        conventions,
                        check,
                        passes,
                        cancel_event,
                    ): file_path
                    for file_path in batch_files
                }

                try:
                    for future in concurrent.futures.as_completed(future_to_file):
                        file_path = future_to_file[future]
                        try:
                            if future.result():
                                changed_count += 1
                            else:
                                skipped_count += 1
                        except Exception as e:  # pylint: disable=broad-exception-caught
                            error_count += 1
                            with log_lock:
                                logger.error(
                                    "Unhandled error processing %s: %s",
                                    file_path,
                                    str(e),
                                )
                        finally:
                            pbar.update(1)
                except KeyboardInterrupt:
                    # Running passes stop at their next line, queued files never start
                    cancel_event.set()
                    for future in future_to_file:
                        future.cancel()
                    raise

    with log_lock:
        if error_count > 0:
            logger.warning("Encountered errors while processing %d files", error_count)
        logger.info(
            "%s: %d, Skipped: %d, Errors: %d",
            "Would change" if check else "Processed",
            changed_count,
            skipped_count,
            error_count,
        )

    return changed_count


def build_conventions(args: argparse.Namespace) -> Dict[str, str]:
    """Collect the formatting conventions selected on the command line."""
    conventions: Dict[str, str] = {}
    if args.end_of_line:
        conventions[END_OF_LINE_KEY] = args.end_of_line.lower()
    if args.remove_whitespace:
        conventions["trim_trailing_whitespace"] = "true"
    if args.expand_tabs:
        conventions["indent_style"] = "space"
        conventions["tab_width"] = str(args.tab_width)
    return conventions


def _count(amount: int, unit: str) -> str:
    return f"{amount} {unit}{'' if amount == 1 else 's'}"


def format_duration(execution_time: float) -> str:
    """Render elapsed seconds, leading with hours and minutes only when non-zero."""
    whole_minutes, seconds = divmod(execution_time, 60)
    hours, minutes = divmod(int(whole_minutes), 60)
    parts: List[str] = []
    if hours:
        parts.append(_count(hours, "hour"))
    if hours or minutes:
        parts.append(_count(minutes, "minute"))
    parts.append(f"{seconds:.2f} seconds")
    return " ".join(parts)


def build_parser(version: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Normalize line endings and whitespace in text files"
    )
    parser.add_argument(
        "root_dir",
        nargs="?",
        default=None,
        help="Root directory to process (default: current directory)",
    )
    parser.add_argument(
        "file_patterns",
        nargs="?",
        default=None,
        help="File patterns to match (e.g., '.txt .py .md')",
    )
    parser.add_argument(
        "--end-of-line",
        default=None,
        metavar="STYLE",
        help="Target line ending: lf, cr or crlf. Any other value selects the "
        "platform line ending (default: leave line endings unchanged)",
    )
    parser.add_argument(
        "--platform-eol",
        choices=sorted(STYLE_MARKERS),
        default=platform_style(),
        help="Line ending used for unrecognized --end-of-line values "
        "(default: this platform's)",
    )
    parser.add_argument(
        "--remove-whitespace",
        action="store_true",
        help="Remove trailing spaces and tabs from every line",
    )
    parser.add_argument(
        "--expand-tabs",
        action="store_true",
        help="Convert tab characters to spaces",
    )
    parser.add_argument(
        "--tab-width",
        type=int,
        default=DEFAULT_TAB_WIDTH,
        help="Spaces per tab for --expand-tabs (default: %(default)s)",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Report files that would change without writing them",
    )
    parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Run in non-interactive mode with provided options",
    )
    parser.add_argument(
        "--ignore-dirs",
        nargs="+",
        default=[],
        help="Directories to ignore during processing "
        "(default: .git, .github, __pycache__, node_modules, venv, .venv)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of worker threads for parallel processing "
        "(default: auto-detect based on CPU count)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"endline v{version}",
        help="Show program version and exit",
    )
    return parser


def ask_yes_no(question: str) -> bool:
    return input(f"{question} (y/n)? [default: n] ").strip().lower().startswith("y")


def prompt_for_options(args: argparse.Namespace) -> None:
    """Ask on the terminal for the options the command line left unset."""
    if args.root_dir is None:
        args.root_dir = input(
            "Normalize what root directory? [default: current directory] "
        ).strip()
        if not args.root_dir:
            args.root_dir = os.getcwd()

    if args.file_patterns is None:
        args.file_patterns = input(
            "Normalize files that end with what? (e.g., '.txt .py') "
        ).strip()
        if not args.file_patterns:
            args.file_patterns = ".txt"

    if args.end_of_line is None:
        eol_choice = (
            input("Convert to which line ending? [lf/cr/crlf, default: leave as is] ")
            .strip()
            .lower()
        )
        if eol_choice:
            args.end_of_line = eol_choice

    # store_true flags can only be switched on from the command line
    if not args.remove_whitespace:
        args.remove_whitespace = ask_yes_no("Remove trailing white space")
    if not args.expand_tabs:
        args.expand_tabs = ask_yes_no("Convert tabs to spaces")

    if not args.ignore_dirs:
        ignore_dirs_input = input(
            "Directories to ignore (space-separated)? "
            "[default: .git .github __pycache__ node_modules venv .venv] "
        ).strip()
        if ignore_dirs_input:
            args.ignore_dirs = ignore_dirs_input.split()

    if args.workers is None:
        workers_input = input("Number of worker threads? [default: auto] ").strip()
        if workers_input.isdigit():
            args.workers = int(workers_input)


def main() -> int:  # pylint: disable=too-many-return-statements
    try:
        version: str = getattr(sys.modules[__name__], "__version__", "1.0.0")
        logger.info("endline v%s - Line Ending Normalizer", version)

        args = build_parser(version).parse_args()

        if args.verbose:
            logger.setLevel(logging.DEBUG)

        if not args.non_interactive and (
            args.root_dir is None or args.file_patterns is None
        ):
            prompt_for_options(args)

        root_dir: str = args.root_dir if args.root_dir else os.getcwd()
        if not os.path.isdir(root_dir):
            logger.error("Error: '%s' is not a valid directory.", root_dir)
            return 1
        root_dir = os.path.abspath(root_dir)

        file_patterns: List[str] = (
            args.file_patterns.split() if args.file_patterns else [".txt"]
        )
        ignore_dirs: List[str] = (
            args.ignore_dirs if args.ignore_dirs else DEFAULT_IGNORE_DIRS
        )

        if args.workers is not None and args.workers <= 0:
            logger.warning(
                "Invalid worker count (%d), using auto-detection instead", args.workers
            )
            args.workers = None

        if args.tab_width <= 0:
            logger.warning(
                "Invalid tab width (%d), using %d instead",
                args.tab_width,
                DEFAULT_TAB_WIDTH,
            )
            args.tab_width = DEFAULT_TAB_WIDTH

        conventions: Dict[str, str] = build_conventions(args)
        passes: List[FormattingPass] = default_passes(STYLE_MARKERS[args.platform_eol])

        logger.info(
            "Searching for files in %s matching patterns: %s",
            root_dir,
            " ".join(file_patterns),
        )
        logger.info("Ignoring directories: %s", ", ".join(ignore_dirs))
        logger.info(
            "Target line ending: %s",
            args.end_of_line.upper() if args.end_of_line else "unchanged",
        )
        logger.info("Remove whitespace: %s", "Yes" if args.remove_whitespace else "No")
        logger.info("Expand tabs: %s", "Yes" if args.expand_tabs else "No")

        start_time: float = time.time()

        files: List[str] = find_files(root_dir, file_patterns, ignore_dirs)

        if not files:
            logger.warning("No matching files found.")
            return 0

        logger.info("Found %d files to process.", len(files))

        changed_count: int = process_files_parallel(
            files,
            conventions,
            check=args.check,
            passes=passes,
            max_workers=args.workers,
        )

        time_str: str = format_duration(time.time() - start_time)

        if args.check:
            logger.info(
                "Done! %d of %d files need formatting (checked in %s).",
                changed_count,
                len(files),
                time_str,
            )
            return 2 if changed_count else 0

        logger.info(
            "Done! Processed %d of %d files in %s.",
            changed_count,
            len(files),
            time_str,
        )
        return 0
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user.")
        return 130
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.error("An unexpected error occurred: %s", str(e))
        if logger.level <= logging.DEBUG:
            import traceback  # pylint: disable=import-outside-toplevel

            logger.debug("Traceback: %s", traceback.format_exc())
        return 1


if __name__ == "__main__":
    sys.exit(main())
