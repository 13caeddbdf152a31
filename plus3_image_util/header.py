"""
PLUS3DOS file header.

Most files written by +3 BASIC start with a 128-byte header carrying the
file type, total length and the tape-style BASIC header (type, length and
two type-specific parameters).

Layout:
    0-7     "PLUS3DOS"
    8       soft-EOF (0x1A)
    9       issue
    10      version
    11-14   file length including this header (little-endian)
    15-22   BASIC header: type, length(2), param1(2), param2(2), unused
    23-126  reserved
    127     checksum: sum of bytes 0-126 modulo 256
"""

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar

from .constants import (
    HEADER_ISSUE,
    HEADER_SIGNATURE,
    HEADER_SIZE,
    HEADER_SOFT_EOF,
    HEADER_VERSION,
    NO_AUTOSTART,
    SCREEN_ADDRESS,
    SCREEN_SIZE,
)
from .exceptions import InvalidHeaderError

_SOFT_EOF = 8
_ISSUE = 9
_VERSION = 10
_FILE_LENGTH = 11
_BASIC = 15
_TYPE = _BASIC
_LENGTH = _BASIC + 1
_PARAM1 = _BASIC + 3
_CHECKSUM = HEADER_SIZE - 1


class FileType(IntEnum):
    """BASIC file type codes."""
    PROGRAM = 0
    NUMERIC_ARRAY = 1
    CHAR_ARRAY = 2
    CODE = 3


@dataclass
class ProgramParams:
    """BASIC program: autostart line and length of the program without variables."""
    length: int
    autostart_line: int = NO_AUTOSTART
    program_length: int | None = None
    file_type: ClassVar[FileType] = FileType.PROGRAM

    def encode(self) -> tuple[int, int]:
        program_length = self.length if self.program_length is None else self.program_length
        return self.autostart_line, program_length


@dataclass
class NumericArrayParams:
    length: int
    variable_name: int = 0
    file_type: ClassVar[FileType] = FileType.NUMERIC_ARRAY

    def encode(self) -> tuple[int, int]:
        return self.variable_name, 0


@dataclass
class CharArrayParams:
    length: int
    variable_name: int = 0
    file_type: ClassVar[FileType] = FileType.CHAR_ARRAY

    def encode(self) -> tuple[int, int]:
        return self.variable_name, 0


@dataclass
class CodeParams:
    """Machine code or screen data loaded at load_address."""
    length: int
    load_address: int = 0
    file_type: ClassVar[FileType] = FileType.CODE

    def encode(self) -> tuple[int, int]:
        return self.load_address, 0

    @property
    def is_screen(self) -> bool:
        return self.length == SCREEN_SIZE and self.load_address == SCREEN_ADDRESS


HeaderParams = ProgramParams | NumericArrayParams | CharArrayParams | CodeParams


class Plus3DosHeader:
    """A 128-byte PLUS3DOS header backed by its raw bytes."""

    def __init__(self, data: bytes | None = None):
        if data is None:
            self.data = bytearray(HEADER_SIZE)
            self.data[0:8] = HEADER_SIGNATURE
            self.data[_SOFT_EOF] = HEADER_SOFT_EOF
            self.data[_ISSUE] = HEADER_ISSUE
            self.data[_VERSION] = HEADER_VERSION
            self.update_checksum()
        else:
            if len(data) < HEADER_SIZE:
                raise InvalidHeaderError(f"Header too short: {len(data)} bytes")
            self.data = bytearray(data[:HEADER_SIZE])

    @classmethod
    def from_bytes(cls, data: bytes) -> 'Plus3DosHeader':
        return cls(data)

    def to_bytes(self) -> bytes:
        return bytes(self.data)

    @staticmethod
    def is_plus3dos(data: bytes) -> bool:
        """Quick check for the signature and soft-EOF marker."""
        return (len(data) >= HEADER_SIZE
                and data[0:8] == HEADER_SIGNATURE
                and data[_SOFT_EOF] == HEADER_SOFT_EOF)

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def for_params(cls, params: HeaderParams) -> 'Plus3DosHeader':
        header = cls()
        header.set_params(params)
        header.file_length = HEADER_SIZE + params.length
        header.update_checksum()
        return header

    @classmethod
    def for_program(cls, length: int, line: int = NO_AUTOSTART,
                    program_length: int | None = None) -> 'Plus3DosHeader':
        return cls.for_params(ProgramParams(length, line, program_length))

    @classmethod
    def for_code(cls, length: int, load_address: int) -> 'Plus3DosHeader':
        return cls.for_params(CodeParams(length, load_address))

    @classmethod
    def for_screen(cls) -> 'Plus3DosHeader':
        return cls.for_code(SCREEN_SIZE, SCREEN_ADDRESS)

    # -------------------------------------------------------------------------
    # Fields
    # -------------------------------------------------------------------------

    @property
    def issue(self) -> int:
        return self.data[_ISSUE]

    @property
    def version(self) -> int:
        return self.data[_VERSION]

    @property
    def file_length(self) -> int:
        """Total file length in bytes, header included."""
        return struct.unpack_from('<I', self.data, _FILE_LENGTH)[0]

    @file_length.setter
    def file_length(self, value: int) -> None:
        struct.pack_into('<I', self.data, _FILE_LENGTH, value)

    @property
    def checksum(self) -> int:
        return self.data[_CHECKSUM]

    def compute_checksum(self) -> int:
        return sum(self.data[:_CHECKSUM]) % 256

    def update_checksum(self) -> None:
        """Recompute the checksum; call after changing any field."""
        self.data[_CHECKSUM] = self.compute_checksum()

    @property
    def file_type(self) -> int:
        return self.data[_TYPE]

    def set_basic_header(self, file_type: int, length: int,
                         param1: int = 0, param2: int = 0) -> None:
        """
        Fill in the BASIC header.

        Arrays keep the variable name in the first parameter byte. Programs
        store param1 and param2 as 16-bit words; code stores only param1
        (the load address) and leaves the second word zero.
        The checksum is not updated.

        Raises:
            InvalidHeaderError: If file_type is unknown or a value is out of range
        """
        try:
            file_type = FileType(file_type)
        except ValueError:
            raise InvalidHeaderError(f"Unknown file type: {file_type}") from None
        for label, value in (('length', length), ('param1', param1), ('param2', param2)):
            if not 0 <= value <= 0xFFFF:
                raise InvalidHeaderError(f"BASIC header {label} out of range: {value}")
        is_array = file_type in (FileType.NUMERIC_ARRAY, FileType.CHAR_ARRAY)
        if is_array and param1 > 0xFF:
            raise InvalidHeaderError(f"Array variable name out of range: {param1}")

        self.data[_BASIC:_BASIC + 8] = bytes(8)
        self.data[_TYPE] = file_type
        struct.pack_into('<H', self.data, _LENGTH, length)
        if is_array:
            self.data[_PARAM1] = param1
        elif file_type == FileType.CODE:
            struct.pack_into('<H', self.data, _PARAM1, param1)
        else:
            struct.pack_into('<HH', self.data, _PARAM1, param1, param2)

    def get_basic_header(self) -> tuple[int, int, int, int]:
        """Return (file_type, length, param1, param2). param2 is 0 except for programs."""
        file_type = self.data[_TYPE]
        length = struct.unpack_from('<H', self.data, _LENGTH)[0]
        if file_type in (FileType.NUMERIC_ARRAY, FileType.CHAR_ARRAY):
            return file_type, length, self.data[_PARAM1], 0
        if file_type == FileType.CODE:
            return file_type, length, struct.unpack_from('<H', self.data, _PARAM1)[0], 0
        param1, param2 = struct.unpack_from('<HH', self.data, _PARAM1)
        return file_type, length, param1, param2

    @property
    def params(self) -> HeaderParams:
        """The BASIC header as a typed variant."""
        file_type, length, param1, param2 = self.get_basic_header()
        match file_type:
            case FileType.PROGRAM:
                return ProgramParams(length, param1, param2)
            case FileType.NUMERIC_ARRAY:
                return NumericArrayParams(length, param1)
            case FileType.CHAR_ARRAY:
                return CharArrayParams(length, param1)
            case FileType.CODE:
                return CodeParams(length, param1)
        raise InvalidHeaderError(f"Unknown file type: {file_type}")

    def set_params(self, params: HeaderParams) -> None:
        param1, param2 = params.encode()
        self.set_basic_header(params.file_type, params.length, param1, param2)

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def problems(self) -> list[str]:
        """Every reason this header is invalid (empty when valid)."""
        found = []
        if self.data[0:8] != HEADER_SIGNATURE:
            found.append("Invalid header signature")
        if self.data[_SOFT_EOF] != HEADER_SOFT_EOF:
            found.append(f"Invalid soft-EOF byte: 0x{self.data[_SOFT_EOF]:02X}")
        if self.issue != HEADER_ISSUE:
            found.append(f"Unsupported header issue: {self.issue}")
        if self.version > HEADER_VERSION:
            found.append(f"Unsupported header version: {self.version}")
        if self.file_type not in tuple(FileType):
            found.append(f"Unknown file type: {self.file_type}")
        if self.checksum != self.compute_checksum():
            found.append(
                f"Header checksum mismatch: stored 0x{self.checksum:02X}, "
                f"computed 0x{self.compute_checksum():02X}"
            )
        return found

    def validate(self) -> None:
        """Raise InvalidHeaderError describing the first problem found."""
        found = self.problems()
        if found:
            raise InvalidHeaderError(found[0])

    @property
    def is_valid(self) -> bool:
        return not self.problems()

    def __repr__(self) -> str:
        file_type, length, param1, param2 = self.get_basic_header()
        return (f"Plus3DosHeader(type={file_type}, length={length}, "
                f"param1={param1}, param2={param2}, file_length={self.file_length})")
