"""
Conversion between .TAP tape images and +3 disk files.

A TAP file is a sequence of blocks, each stored as a 16-bit little-endian
length followed by that many bytes: a flag byte (0x00 header, 0xFF data),
the payload and an XOR checksum of flag and payload.

Header payload (17 bytes):
    0       file type (0 program, 1/2 array, 3 code)
    1-10    filename, space-padded
    11-12   data length
    13-14   param1 (autostart line / load address; arrays keep the
            variable name in byte 14)
    15-16   param2 (program length)
"""

import struct
from dataclasses import dataclass
from functools import reduce
from operator import xor

from .constants import NO_AUTOSTART
from .disk import DiskImage
from .exceptions import FormatError
from .header import CodeParams, FileType, Plus3DosHeader, ProgramParams
from .hostio import DEFAULT_EXTENSIONS, ImportKind, write_new_file
from .logging_config import get_logger
from .models import Plus3FileInfo
from .utils import disk_filename

logger = get_logger('tap')

FLAG_HEADER = 0x00
FLAG_DATA = 0xFF
TAP_NAME_LENGTH = 10
_HEADER_FORMAT = '<B10sHHH'
HEADER_BLOCK_LENGTH = 2 + struct.calcsize(_HEADER_FORMAT)   # flag + payload + checksum = 19


@dataclass
class TapFile:
    """A header block and its data block."""
    file_type: int
    name: str
    data: bytes
    param1: int = 0
    param2: int = 0

    @property
    def disk_name(self) -> str:
        """8.3 name for this file on disk, with a default extension by type."""
        name = disk_filename(self.name.strip() or 'TAPE')
        if '.' in name:
            return name
        kind = ImportKind.BASIC if self.file_type == FileType.PROGRAM else ImportKind.CODE
        return f"{name}.{DEFAULT_EXTENSIONS[kind]}"

    def plus3_header(self) -> Plus3DosHeader:
        match self.file_type:
            case FileType.PROGRAM:
                params = ProgramParams(len(self.data), self.param1, self.param2)
            case FileType.CODE:
                params = CodeParams(len(self.data), self.param1)
            case _:
                raise FormatError(f"Unsupported tape file type {self.file_type} ({self.name!r})")
        return Plus3DosHeader.for_params(params)


def _checksum(flag: int, payload: bytes) -> int:
    return reduce(xor, payload, flag)


def _read_blocks(data: bytes) -> list[tuple[int, bytes]]:
    """Split TAP data into (flag, payload) pairs, checking each checksum."""
    blocks = []
    offset = 0
    while offset < len(data):
        if offset + 2 > len(data):
            raise FormatError(f"Truncated TAP block length at offset {offset}")
        (length,) = struct.unpack_from('<H', data, offset)
        offset += 2
        block = data[offset:offset + length]
        if length < 2 or len(block) != length:
            raise FormatError(f"Truncated TAP block at offset {offset - 2}")
        offset += length

        flag, payload, checksum = block[0], bytes(block[1:-1]), block[-1]
        if _checksum(flag, payload) != checksum:
            raise FormatError(f"TAP block checksum mismatch at offset {offset - length - 2}")
        blocks.append((flag, payload))
    return blocks


def read_tap(data: bytes) -> list[TapFile]:
    """
    Parse TAP data into files.

    Data blocks without a preceding header are skipped.

    Raises:
        FormatError: On truncated blocks, bad checksums or a header
            without its data block
    """
    files = []
    blocks = _read_blocks(data)
    index = 0
    while index < len(blocks):
        flag, payload = blocks[index]
        index += 1
        if flag != FLAG_HEADER or len(payload) != HEADER_BLOCK_LENGTH - 2:
            logger.warning("Skipping headerless TAP block (%d bytes)", len(payload))
            continue

        file_type, raw_name, length, param1, param2 = struct.unpack(_HEADER_FORMAT, payload)
        name = raw_name.decode('latin-1').rstrip()
        if index >= len(blocks) or blocks[index][0] == FLAG_HEADER:
            raise FormatError(f"TAP header {name!r} has no data block")
        data_block = blocks[index][1]
        index += 1
        if len(data_block) != length:
            logger.warning("%s: header says %d bytes, data block has %d",
                           name, length, len(data_block))
        files.append(TapFile(file_type, name, data_block, param1, param2))
    return files


def tap_to_disk(disk: DiskImage, data: bytes, overwrite: bool = False) -> list[Plus3FileInfo]:
    """Import every program and code file of a tape as headered disk files."""
    imported = []
    for tap_file in read_tap(data):
        if tap_file.file_type not in (FileType.PROGRAM, FileType.CODE):
            logger.warning("Skipping %r: tape file type %d is not supported",
                           tap_file.name, tap_file.file_type)
            continue
        imported.append(write_new_file(disk, tap_file.disk_name, tap_file.data,
                                       tap_file.plus3_header(), overwrite))
    return imported


def _block(flag: int, payload: bytes) -> bytes:
    return struct.pack('<HB', len(payload) + 2, flag) + payload + bytes([_checksum(flag, payload)])


def tap_blocks(tap_file: TapFile) -> bytes:
    """Encode one file as a header block followed by a data block."""
    name = tap_file.name.encode('latin-1', 'replace')[:TAP_NAME_LENGTH].ljust(TAP_NAME_LENGTH)
    header = struct.pack(_HEADER_FORMAT, tap_file.file_type, name, len(tap_file.data),
                         tap_file.param1, tap_file.param2)
    return _block(FLAG_HEADER, header) + _block(FLAG_DATA, tap_file.data)


def disk_to_tap(disk: DiskImage, names: list[str] | None = None) -> bytes:
    """
    Convert headered disk files to TAP data.

    Args:
        disk: Source image
        names: Files to convert, in tape order (default: every file)

    Raises:
        FormatError: If a file has no PLUS3DOS header or is too long for tape
    """
    if names is None:
        names = [f.full_name for f in disk.list_files()]

    out = bytearray()
    for name in names:
        with disk.open_file(name, read_only=True) as f:
            if f.header is None:
                raise FormatError(f"{f.name} has no PLUS3DOS header")
            file_type, _, param1, param2 = f.header.get_basic_header()
            data = f.read_at(-1, f.tell())
            tape_name = f.name.split('.')[0]
        if len(data) > 0xFFFF:
            raise FormatError(f"{name} is too long for a tape block ({len(data)} bytes)")
        match file_type:
            case FileType.CODE:
                param2 = NO_AUTOSTART
            case FileType.NUMERIC_ARRAY | FileType.CHAR_ARRAY:
                param1, param2 = param1 << 8, 0
        out += tap_blocks(TapFile(file_type, tape_name, data, param1, param2))
        logger.debug("Added %s to tape (%d bytes)", name, len(data))
    return bytes(out)
