"""
Utility functions for ZX Spectrum +3 disk image utilities.
"""

import re
from pathlib import Path

from .constants import VALID_FILENAME_CHARS
from .exceptions import InvalidFilenameError


def validate_filename(filename: str) -> tuple[str, str]:
    """
    Validate and parse 8.3 filename.
    Returns (name, extension) both uppercase and space-padded.
    Raises InvalidFilenameError if not valid 8.3 format.
    """
    filename = filename.upper().strip()

    if not filename:
        raise InvalidFilenameError("Filename cannot be empty")

    if '.' in filename:
        name, ext = filename.rsplit('.', 1)
    else:
        name, ext = filename, ''

    if len(name) > 8:
        raise InvalidFilenameError(f"Filename '{name}' exceeds 8 characters")
    if len(ext) > 3:
        raise InvalidFilenameError(f"Extension '{ext}' exceeds 3 characters")
    if not name.strip():
        raise InvalidFilenameError("Filename cannot be empty")

    for char in name:
        if char not in VALID_FILENAME_CHARS:
            raise InvalidFilenameError(f"Invalid character {char!r} in filename")
    for char in ext:
        if char not in VALID_FILENAME_CHARS:
            raise InvalidFilenameError(f"Invalid character {char!r} in extension")

    return name.ljust(8), ext.ljust(3)


def normalize_filename(filename: str) -> str:
    """Validate a filename and return it as 'NAME.EXT' without padding."""
    name, ext = validate_filename(filename)
    name, ext = name.rstrip(), ext.rstrip()
    return f"{name}.{ext}" if ext else name


def disk_filename(host_path: str | Path, extension: str | None = None) -> str:
    """
    Derive an 8.3 disk filename from a host file path.

    Invalid characters are replaced with '_', the name is truncated to 8
    characters and the extension to 3. If extension is given it replaces
    the host file's own extension.

    Examples:
        'games/Manic Miner.bas' -> 'MANIC_MI.BAS'
        ('loader.bin', 'BAS')   -> 'LOADER.BAS'
    """
    path = Path(host_path)
    stem = path.stem if path.suffix else path.name
    ext = extension if extension is not None else path.suffix.lstrip('.')

    def clean(text: str, length: int) -> str:
        text = text.upper().replace(' ', '_').replace('.', '_')
        text = ''.join(c if c in VALID_FILENAME_CHARS else '_' for c in text)
        return text[:length]

    name = clean(stem, 8) or 'FILE'
    ext = clean(ext, 3)
    return f"{name}.{ext}" if ext else name


def has_wildcards(pattern: str) -> bool:
    """Check if a string contains wildcard characters."""
    return '*' in pattern or '?' in pattern


def match_filename(pattern: str, filename: str) -> bool:
    """
    Match a DOS-style wildcard pattern against a filename.
    Supports * (any characters) and ? (single character).
    """
    regex = ''
    for char in pattern.upper():
        if char == '*':
            regex += '.*'
        elif char == '?':
            regex += '.'
        else:
            regex += re.escape(char)

    return re.fullmatch(regex, filename.upper()) is not None


def remove_partial(path: Path) -> None:
    """Remove a partially written output file, leaving directories alone."""
    if path.is_file():
        path.unlink()
