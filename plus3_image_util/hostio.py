"""
Import and export of host data to and from a +3 disk image.

Byte-buffer functions wrap the PLUS3DOS header convention for each kind
of file; the *_host_* functions add host file handling on top.
"""

import os
from enum import Enum
from pathlib import Path

from .constants import (
    BLOCK_SIZE,
    BLOCKS_PER_EXTENT,
    HEADER_SIZE,
    MAX_BLOCKS_PER_FILE,
    MAX_IMPORT_SIZE,
    NO_AUTOSTART,
    RESERVED_BLOCKS,
    SCREEN_ADDRESS,
    SCREEN_SIZE,
    TOTAL_BLOCKS,
)
from .disk import DiskImage
from .exceptions import (
    DirectoryFullError,
    DiskError,
    DiskFullError,
    FileExistsError,
    FileTooLargeError,
    FormatError,
    Plus3Error,
    ReadOnlyError,
)
from .header import CodeParams, FileType, Plus3DosHeader, ProgramParams
from .logging_config import get_logger
from .models import Plus3FileInfo
from .utils import disk_filename, normalize_filename, remove_partial

logger = get_logger('hostio')


class ImportKind(Enum):
    AUTO = 'auto'
    BASIC = 'basic'
    CODE = 'code'
    SCREEN = 'screen'
    RAW = 'raw'


DEFAULT_EXTENSIONS = {
    ImportKind.BASIC: 'BAS',
    ImportKind.CODE: 'BIN',
    ImportKind.SCREEN: 'SCR',
}

EXTENSION_KINDS = {f".{ext}": kind for kind, ext in DEFAULT_EXTENSIONS.items()}


def kind_for_path(path: str | Path) -> ImportKind:
    """Pick an import kind from a host file's extension (.bas, .bin, .scr)."""
    return EXTENSION_KINDS.get(Path(path).suffix.upper(), ImportKind.RAW)


def _with_extension(name: str, extension: str) -> str:
    """Add a default extension to names that have none."""
    return name if '.' in name else f"{name}.{extension}"


def _check_import_size(size: int, headered: bool) -> None:
    if size > MAX_IMPORT_SIZE:
        raise FileTooLargeError(
            f"File too large: {size} bytes (maximum {MAX_IMPORT_SIZE})")
    total = size + (HEADER_SIZE if headered else 0)
    blocks = (total + BLOCK_SIZE - 1) // BLOCK_SIZE
    if blocks > MAX_BLOCKS_PER_FILE:
        raise FileTooLargeError(
            f"File too large: needs {blocks} blocks (maximum {MAX_BLOCKS_PER_FILE})")


def _check_capacity(disk: DiskImage, full_name: str, size: int, replacing: bool) -> None:
    """
    Make sure a file of size bytes fits once any file it replaces is gone.

    Runs before the old file is deleted so a failed overwrite leaves it intact.
    """
    blocks = (size + BLOCK_SIZE - 1) // BLOCK_SIZE
    extents = max(1, (blocks + BLOCKS_PER_EXTENT - 1) // BLOCKS_PER_EXTENT)
    free_blocks = disk.blocks.free_block_count()
    free_slots = disk.directory.free_slot_count()

    if replacing:
        old = disk.find_file(full_name)
        if old.is_read_only:
            raise ReadOnlyError(f"File is read-only: {old.full_name}")
        free_blocks += len({b for b in old.blocks if RESERVED_BLOCKS <= b < TOTAL_BLOCKS})
        free_slots += len(old.extents)

    if blocks > free_blocks:
        raise DiskFullError(f"Need {blocks} blocks, only {free_blocks} available")
    if extents > free_slots:
        raise DirectoryFullError(
            f"Need {extents} directory entries, only {free_slots} available")


def write_new_file(disk: DiskImage, name: str, data: bytes,
                   header: Plus3DosHeader | None = None,
                   overwrite: bool = False) -> Plus3FileInfo:
    """
    Create a file holding data, optionally preceded by a header.

    Size limits and free space are checked before anything is created or
    replaced. If writing fails part way the new file is removed again.
    """
    _check_import_size(len(data), header is not None)
    full_name = normalize_filename(name)
    total = len(data) + (HEADER_SIZE if header is not None else 0)

    replacing = disk.directory.exists(full_name)
    if replacing and not overwrite:
        raise FileExistsError(f"File already exists: {full_name}")
    _check_capacity(disk, full_name, total, replacing)
    if replacing:
        disk.delete_file(full_name)

    handle = disk.open_file(full_name, create=True)
    try:
        if header is not None:
            handle.set_header(header)
        handle.write(data)
        handle.close()
    except Plus3Error:
        handle.closed = True
        disk.delete_file(full_name, no_recycle=True, force=True)
        raise

    logger.info("Imported %s (%d bytes%s)", full_name, len(data),
                ", with header" if header is not None else "")
    return disk.find_file(full_name)


def import_basic(disk: DiskImage, name: str, data: bytes, line: int = NO_AUTOSTART,
                 overwrite: bool = False) -> Plus3FileInfo:
    """Import a tokenized BASIC program with a program header."""
    header = Plus3DosHeader.for_program(len(data), line) if len(data) <= 0xFFFF else None
    if header is None:
        raise FileTooLargeError(f"BASIC program too large: {len(data)} bytes")
    return write_new_file(disk, _with_extension(name, 'BAS'), data, header, overwrite)


def import_code(disk: DiskImage, name: str, data: bytes, load_address: int,
                overwrite: bool = False) -> Plus3FileInfo:
    """Import machine code with a code header."""
    if len(data) > 0xFFFF:
        raise FileTooLargeError(f"Code file too large: {len(data)} bytes")
    header = Plus3DosHeader.for_code(len(data), load_address)
    return write_new_file(disk, _with_extension(name, 'BIN'), data, header, overwrite)


def import_screen(disk: DiskImage, name: str, data: bytes,
                  overwrite: bool = False) -> Plus3FileInfo:
    """Import a 6912-byte screen dump as code loaded at 16384."""
    if len(data) != SCREEN_SIZE:
        raise FormatError(f"Screen data must be {SCREEN_SIZE} bytes, got {len(data)}")
    return write_new_file(disk, _with_extension(name, 'SCR'), data,
                          Plus3DosHeader.for_screen(), overwrite)


def import_raw(disk: DiskImage, name: str, data: bytes,
               overwrite: bool = False) -> Plus3FileInfo:
    """Import data as-is, without a header. The name is cut down to 8.3."""
    return write_new_file(disk, disk_filename(name), data, None, overwrite)


def export_file(disk: DiskImage, name: str, strip_header: bool = False) -> bytes:
    """Return a file's bytes, without its PLUS3DOS header if strip_header is set."""
    with disk.open_file(name, read_only=True) as f:
        if strip_header and f.headered:
            return f.read_at(-1, HEADER_SIZE)
        return f.read_at(-1, 0)


def _read_headered(disk: DiskImage, name: str) -> tuple[Plus3DosHeader, bytes]:
    with disk.open_file(name, read_only=True) as f:
        if f.header is None:
            raise FormatError(f"{f.name} has no PLUS3DOS header")
        return f.header, f.read_at(-1, HEADER_SIZE)


def export_screen(disk: DiskImage, name: str) -> bytes:
    """Return the 6912 screen bytes of a screen file."""
    header, data = _read_headered(disk, name)
    params = header.params
    if not isinstance(params, CodeParams):
        raise FormatError(f"{name} is not a code file")
    if len(data) != SCREEN_SIZE or params.length != SCREEN_SIZE:
        raise FormatError(f"{name} is {len(data)} bytes, a screen is {SCREEN_SIZE}")
    if params.load_address != SCREEN_ADDRESS:
        raise FormatError(f"{name} loads at {params.load_address}, not {SCREEN_ADDRESS}")
    return data


def export_basic(disk: DiskImage, name: str) -> bytes:
    """Return the program bytes of a BASIC file."""
    header, data = _read_headered(disk, name)
    if header.file_type != FileType.PROGRAM:
        raise FormatError(f"{name} is not a BASIC program")
    return data


def describe_file(disk: DiskImage, name: str) -> str:
    """One-line description of a file's header (e.g. 'Program LINE 10')."""
    with disk.open_file(name, read_only=True) as f:
        if f.header is None:
            return 'Headerless'
        params = f.header.params
    match params:
        case ProgramParams(autostart_line=line) if line < NO_AUTOSTART:
            return f"Program LINE {line}"
        case ProgramParams():
            return "Program"
        case CodeParams(length=length, load_address=address):
            return f"Bytes {address},{length}"
        case _:
            return "Array"


# -----------------------------------------------------------------------------
# Host files
# -----------------------------------------------------------------------------

def import_host_file(disk: DiskImage, path: str | Path,
                     kind: ImportKind = ImportKind.AUTO,
                     name: str | None = None,
                     line: int = NO_AUTOSTART,
                     load_address: int = 32768,
                     overwrite: bool = False) -> Plus3FileInfo:
    """
    Import a host file; the disk name defaults to the host name in 8.3 form.

    With ImportKind.AUTO the kind follows the host extension.
    """
    path = Path(path)
    if kind is ImportKind.AUTO:
        kind = kind_for_path(path)
        logger.debug("Importing %s as %s", path.name, kind.value)
    try:
        size = os.path.getsize(path)
    except OSError as e:
        raise DiskError(f"Cannot read {path}: {e}") from e
    _check_import_size(size, kind is not ImportKind.RAW)

    try:
        data = path.read_bytes()
    except OSError as e:
        raise DiskError(f"Cannot read {path}: {e}") from e

    if name is None:
        name = disk_filename(path, DEFAULT_EXTENSIONS.get(kind))

    match kind:
        case ImportKind.BASIC:
            return import_basic(disk, name, data, line, overwrite)
        case ImportKind.CODE:
            return import_code(disk, name, data, load_address, overwrite)
        case ImportKind.SCREEN:
            return import_screen(disk, name, data, overwrite)
        case _:
            return import_raw(disk, name, data, overwrite)


def export_to_host(disk: DiskImage, name: str, path: str | Path,
                   strip_header: bool = False) -> int:
    """
    Write a disk file to the host. A partially written file is removed.

    Returns:
        Number of bytes written
    """
    data = export_file(disk, name, strip_header)
    path = Path(path)
    try:
        path.write_bytes(data)
    except OSError as e:
        remove_partial(path)
        raise DiskError(f"Cannot write {path}: {e}") from e
    logger.info("Extracted %s to %s (%d bytes)", name, path, len(data))
    return len(data)
