"""
Marker-delimited region primitives for .htaccess files

A managed region is a run of lines enclosed by two sentinel comments:

    # BEGIN Brute Force Login Protection
    ...managed lines...
    # END Brute Force Login Protection

Everything outside the sentinels belongs to the site owner (or to other
plugins) and is preserved byte for byte on every rewrite. The scheme is the
one WordPress uses for its own rewrite rules, so a block written here can be
read back by WordPress tooling and vice versa.

Usage:
    lines = extract_from_markers("/var/www/.htaccess", MARKER_NAME)
    ok = insert_with_markers("/var/www/.htaccess", MARKER_NAME, lines + ["deny from 1.2.3.4"])
"""

import logging
import os
import shutil
from typing import List, Sequence, Tuple

logger = logging.getLogger(__name__)

MARKER_NAME = "Brute Force Login Protection"


class MarkerFileError(Exception):
    """Raised when an existing marker file cannot be read."""

    pass


def begin_marker(marker: str) -> str:
    return f"# BEGIN {marker}"


def end_marker(marker: str) -> str:
    return f"# END {marker}"


def _read_lines(path: str) -> Tuple[List[str], bool]:
    """
    Reads a file as a list of raw lines and whether it ends with a newline.

    Lines are split on "\\n" only. A CRLF line keeps its "\\r" so content
    outside the markers is written back exactly as it was read.
    """
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            content = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise MarkerFileError(f"Cannot read {path}: {e}") from e

    if not content:
        return [], True
    lines = content.split("\n")
    trailing_newline = lines[-1] == ""
    if trailing_newline:
        lines.pop()
    return lines, trailing_newline


def _strip_cr(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line


def _split_on_markers(
    lines: Sequence[str], marker: str
) -> Tuple[List[str], List[str], List[str], bool]:
    """
    Splits file lines into (pre, existing, post, found).

    The first BEGIN line opens the region and the first END line after it
    closes it. A BEGIN without an END swallows the rest of the file into the
    region, matching how WordPress treats a truncated block.
    """
    start, end = begin_marker(marker), end_marker(marker)
    pre_lines, existing_lines, post_lines = [], [], []
    found_start = found_end = False

    for line in lines:
        if not found_start and start in line:
            found_start = True
            continue
        if found_start and not found_end and end in line:
            found_end = True
            continue

        if not found_start:
            pre_lines.append(line)
        elif found_end:
            post_lines.append(line)
        else:
            existing_lines.append(line)

    return pre_lines, existing_lines, post_lines, found_start


def _replace_atomically(path: str, content: str) -> None:
    """Writes to a temp file first, then renames it over `path`."""
    temp_file = f"{path}.tmp"
    try:
        with open(temp_file, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        if os.path.exists(path):
            shutil.copymode(path, temp_file)
        os.replace(temp_file, path)
    finally:
        if os.path.exists(temp_file):
            os.unlink(temp_file)


def extract_from_markers(path: str, marker: str) -> List[str]:
    """
    Returns the lines currently inside the marked region of `path`.

    Returns an empty list if the file or the markers are absent.

    Raises:
        MarkerFileError: If the file exists but cannot be read.
    """
    if not os.path.exists(path):
        return []

    lines, _ = _read_lines(path)
    _, existing_lines, _, found = _split_on_markers(lines, marker)
    if not found:
        return []
    return [_strip_cr(line) for line in existing_lines]


def insert_with_markers(path: str, marker: str, insertion: Sequence[str]) -> bool:
    """
    Replaces the marked region of `path` with `insertion`.

    The file is created when missing (its directory must be writable). When
    the markers are absent the region is appended after the existing content.
    Content outside the markers is left untouched.

    Args:
        path: Target file.
        marker: Region name used in the BEGIN/END sentinels.
        insertion: Lines to place between the sentinels, without terminators.

    Returns:
        bool: True if the region holds `insertion` afterwards, False otherwise.
    """
    insertion = list(insertion)

    if not os.path.exists(path):
        directory = os.path.dirname(path) or "."
        if not os.access(directory, os.W_OK):
            logger.error(f"Cannot create {path}: directory {directory} is not writable")
            return False
        lines, trailing_newline = [], True
    elif not os.access(path, os.W_OK):
        logger.error(f"Cannot update {path}: file is not writable")
        return False
    else:
        try:
            lines, trailing_newline = _read_lines(path)
        except MarkerFileError as e:
            logger.error(str(e))
            return False

    pre_lines, existing_lines, post_lines, found = _split_on_markers(lines, marker)

    if found and [_strip_cr(line) for line in existing_lines] == insertion:
        logger.debug(f"Marker block '{marker}' in {path} is already up to date")
        return True

    # New lines follow the file's own line ending
    cr = "\r" if lines and lines[0].endswith("\r") else ""
    new_lines = (
        pre_lines
        + [begin_marker(marker) + cr]
        + [line + cr for line in insertion]
        + [end_marker(marker) + cr]
        + post_lines
    )

    content = "\n".join(new_lines) + ("\n" if trailing_newline else "")
    try:
        if os.access(os.path.dirname(path) or ".", os.W_OK):
            _replace_atomically(path, content)
        else:
            # A writable file in a read-only directory can only be rewritten in place
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(content)
    except OSError as e:
        logger.error(f"Failed to write marker block '{marker}' to {path}: {e}")
        return False

    logger.info(f"Wrote {len(insertion)} line(s) to marker block '{marker}' in {path}")
    return True
