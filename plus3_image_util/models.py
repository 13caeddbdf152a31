"""
Data model classes for ZX Spectrum +3 disk images.
"""

import struct
from dataclasses import dataclass, field

from .constants import (
    ATTR_BIT,
    BLOCKS_PER_EXTENT,
    DIR_ENTRY_SIZE,
    DISK_CREATOR,
    DISK_HEADER_SIZE,
    DISK_SIGNATURE,
    ENTRY_ACTIVE,
    ENTRY_DELETED,
    ENTRY_UNUSED,
    FIRST_SECTOR_ID,
    FILLER_BYTE,
    GAP3_LENGTH,
    RECORD_SIZE,
    SECTOR_SIZE,
    SECTOR_SIZE_CODE,
    SECTORS_PER_TRACK,
    SIDES_PER_DISK,
    TRACK_INFO_SIZE,
    TRACK_SIGNATURE,
    TRACK_SIZE,
    TRACKS_PER_SIDE,
)
from .exceptions import DiskError, InvalidImageError

# Disk-Info block offsets
_DI_CREATOR = 34
_DI_TRACKS = 48
_DI_SIDES = 49
_DI_TRACK_SIZE = 50
_DI_SIZE_TABLE = 52

# Track-Info block offsets
_TI_TRACK = 16
_TI_SIDE = 17
_TI_SIZE_CODE = 20
_TI_SECTORS = 21
_TI_GAP = 22
_TI_FILLER = 23
_TI_SECTOR_INFO = 24
_SECTOR_INFO_SIZE = 8


@dataclass
class DiskInfoHeader:
    """The 256-byte Disk-Info block at the start of an extended DSK file."""
    signature: bytes = DISK_SIGNATURE
    creator: bytes = DISK_CREATOR
    tracks: int = TRACKS_PER_SIDE
    sides: int = SIDES_PER_DISK
    track_size: int = TRACK_SIZE

    @classmethod
    def from_bytes(cls, data: bytes) -> 'DiskInfoHeader':
        """Parse a Disk-Info block."""
        if len(data) < DISK_HEADER_SIZE:
            raise InvalidImageError(f"Truncated disk header: {len(data)} bytes")
        return cls(
            signature=bytes(data[0:_DI_CREATOR]),
            creator=bytes(data[_DI_CREATOR:_DI_TRACKS]).rstrip(b'\x00'),
            tracks=data[_DI_TRACKS],
            sides=data[_DI_SIDES],
            track_size=struct.unpack_from('<H', data, _DI_TRACK_SIZE)[0],
        )

    def to_bytes(self) -> bytes:
        """Serialize to a 256-byte Disk-Info block."""
        data = bytearray(DISK_HEADER_SIZE)
        data[0:_DI_CREATOR] = self.signature[:_DI_CREATOR].ljust(_DI_CREATOR, b'\x00')
        data[_DI_CREATOR:_DI_TRACKS] = self.creator[:14].ljust(14, b'\x00')
        data[_DI_TRACKS] = self.tracks
        data[_DI_SIDES] = self.sides
        struct.pack_into('<H', data, _DI_TRACK_SIZE, self.track_size)
        # Extended format per-track size table (MSB of track-info + data size)
        size_msb = (TRACK_INFO_SIZE + self.track_size) >> 8
        for i in range(min(self.tracks * self.sides, DISK_HEADER_SIZE - _DI_SIZE_TABLE)):
            data[_DI_SIZE_TABLE + i] = size_msb
        return bytes(data)

    def problems(self) -> list[str]:
        """List every way this header differs from the supported format."""
        found = []
        if self.signature != DISK_SIGNATURE:
            found.append("Invalid disk signature")
        if self.tracks != TRACKS_PER_SIDE:
            found.append(f"Invalid track count: {self.tracks} (expected {TRACKS_PER_SIDE})")
        if self.sides != SIDES_PER_DISK:
            found.append(f"Invalid side count: {self.sides} (expected {SIDES_PER_DISK})")
        if self.track_size != TRACK_SIZE:
            found.append(f"Invalid track size: {self.track_size} (expected {TRACK_SIZE})")
        return found


@dataclass
class SectorInfo:
    """An 8-byte sector information record inside a Track-Info block."""
    track: int
    side: int
    sector_id: int
    size_code: int = SECTOR_SIZE_CODE
    status1: int = 0
    status2: int = 0
    data_length: int = SECTOR_SIZE

    @classmethod
    def from_bytes(cls, data: bytes, offset: int = 0) -> 'SectorInfo':
        track, side, sector_id, size_code, st1, st2, length = struct.unpack_from(
            '<6BH', data, offset)
        return cls(track, side, sector_id, size_code, st1, st2, length)

    def to_bytes(self) -> bytes:
        return struct.pack('<6BH', self.track, self.side, self.sector_id,
                           self.size_code, self.status1, self.status2,
                           self.data_length)


@dataclass
class TrackInfo:
    """The 256-byte Track-Info block that precedes each track's data."""
    track: int
    side: int
    size_code: int = SECTOR_SIZE_CODE
    sector_count: int = SECTORS_PER_TRACK
    gap_length: int = GAP3_LENGTH
    filler: int = FILLER_BYTE
    sectors: list[SectorInfo] = field(default_factory=list)
    signature: bytes = TRACK_SIGNATURE

    @classmethod
    def for_track(cls, track: int, side: int = 0) -> 'TrackInfo':
        """Build the standard Track-Info block for a +3 track."""
        sectors = [SectorInfo(track, side, FIRST_SECTOR_ID + i)
                   for i in range(SECTORS_PER_TRACK)]
        return cls(track=track, side=side, sectors=sectors)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'TrackInfo':
        """Parse a Track-Info block."""
        if len(data) < TRACK_INFO_SIZE:
            raise InvalidImageError(f"Truncated track header: {len(data)} bytes")
        count = data[_TI_SECTORS]
        max_count = (TRACK_INFO_SIZE - _TI_SECTOR_INFO) // _SECTOR_INFO_SIZE
        sectors = [SectorInfo.from_bytes(data, _TI_SECTOR_INFO + i * _SECTOR_INFO_SIZE)
                   for i in range(min(count, max_count))]
        return cls(
            track=data[_TI_TRACK],
            side=data[_TI_SIDE],
            size_code=data[_TI_SIZE_CODE],
            sector_count=count,
            gap_length=data[_TI_GAP],
            filler=data[_TI_FILLER],
            sectors=sectors,
            signature=bytes(data[0:len(TRACK_SIGNATURE)]),
        )

    def to_bytes(self) -> bytes:
        """Serialize to a 256-byte Track-Info block."""
        data = bytearray(TRACK_INFO_SIZE)
        data[0:len(self.signature)] = self.signature
        data[_TI_TRACK] = self.track
        data[_TI_SIDE] = self.side
        data[_TI_SIZE_CODE] = self.size_code
        data[_TI_SECTORS] = self.sector_count
        data[_TI_GAP] = self.gap_length
        data[_TI_FILLER] = self.filler
        for i, info in enumerate(self.sectors):
            offset = _TI_SECTOR_INFO + i * _SECTOR_INFO_SIZE
            data[offset:offset + _SECTOR_INFO_SIZE] = info.to_bytes()
        return bytes(data)

    def check(self, track: int, side: int) -> None:
        """Raise InvalidImageError if this block does not describe a +3 track."""
        where = f"track {track} side {side}"
        if self.signature != TRACK_SIGNATURE:
            raise InvalidImageError(f"Invalid track signature on {where}")
        if self.track != track or self.side != side:
            raise InvalidImageError(
                f"Track header mismatch on {where}: says track {self.track} side {self.side}")
        if self.size_code != SECTOR_SIZE_CODE:
            raise InvalidImageError(f"Invalid sector size code {self.size_code} on {where}")
        if self.sector_count != SECTORS_PER_TRACK:
            raise InvalidImageError(f"Invalid sector count {self.sector_count} on {where}")
        ids = sorted(info.sector_id for info in self.sectors)
        if ids != list(range(FIRST_SECTOR_ID, FIRST_SECTOR_ID + SECTORS_PER_TRACK)):
            raise InvalidImageError(f"Unexpected sector IDs {ids} on {where}")
        for info in self.sectors:
            if info.size_code != SECTOR_SIZE_CODE or info.data_length != SECTOR_SIZE:
                raise InvalidImageError(
                    f"Invalid size for sector {info.sector_id} on {where}")


@dataclass
class FileAttributes:
    """+3DOS file attributes stored in the high bits of name/extension bytes."""
    read_only: bool = False
    system: bool = False
    archived: bool = False
    user_flags: tuple[bool, bool, bool, bool] = (False, False, False, False)

    @classmethod
    def from_entry(cls, entry: 'DirectoryEntry') -> 'FileAttributes':
        return cls(
            read_only=bool(entry.ext_flags & 0x01),
            system=bool(entry.ext_flags & 0x02),
            archived=bool(entry.ext_flags & 0x04),
            user_flags=tuple(bool(entry.name_flags & (1 << i)) for i in range(4)),
        )

    def apply_to(self, entry: 'DirectoryEntry') -> None:
        """Store these attributes in an entry; reserved name bits are cleared."""
        entry.ext_flags = (int(self.read_only)
                           | int(self.system) << 1
                           | int(self.archived) << 2)
        entry.name_flags = sum(1 << i for i, flag in enumerate(self.user_flags) if flag)

    def attr_string(self) -> str:
        """Format as e.g. 'R-A' followed by user flags '1--4'."""
        flags = 'R' if self.read_only else '-'
        flags += 'S' if self.system else '-'
        flags += 'A' if self.archived else '-'
        users = ''.join(str(i + 1) if f else '-' for i, f in enumerate(self.user_flags))
        return flags + users

    def modified(self, modifications: list[str]) -> 'FileAttributes':
        """
        Apply modifications like ['+R', '-A', '+2'] and return the result.

        Unknown modifications are ignored.
        """
        read_only, system, archived = self.read_only, self.system, self.archived
        users = list(self.user_flags)
        for mod in modifications:
            if len(mod) < 2 or mod[0] not in '+-':
                continue
            value = mod[0] == '+'
            match mod[1].upper():
                case 'R':
                    read_only = value
                case 'S':
                    system = value
                case 'A':
                    archived = value
                case '1' | '2' | '3' | '4' as digit:
                    users[int(digit) - 1] = value
        return FileAttributes(read_only, system, archived, tuple(users))


@dataclass
class DirectoryEntry:
    """Represents a 32-byte +3DOS (CP/M) directory entry."""
    status: int = ENTRY_UNUSED
    name: str = '\x00' * 8      # 7-bit characters, space-padded
    extension: str = '\x00' * 3
    extent: int = 0
    last_record_bytes: int = 0  # bytes used in the final record, 0 = full
    reserved: int = 0
    record_count: int = 0       # 128-byte records in this extent
    allocation: list[int] = field(default_factory=lambda: [0] * BLOCKS_PER_EXTENT)
    name_flags: int = 0         # high bit of name byte i -> bit i
    ext_flags: int = 0          # high bit of extension byte i -> bit i

    @classmethod
    def from_bytes(cls, data: bytes) -> 'DirectoryEntry':
        """Parse a 32-byte directory entry. Every byte is preserved."""
        if len(data) != DIR_ENTRY_SIZE:
            raise DiskError(f"Invalid directory entry size: {len(data)}")

        name_raw = data[1:9]
        ext_raw = data[9:12]
        return cls(
            status=data[0],
            name=''.join(chr(b & 0x7F) for b in name_raw),
            extension=''.join(chr(b & 0x7F) for b in ext_raw),
            extent=data[12],
            last_record_bytes=data[13],
            reserved=data[14],
            record_count=data[15],
            allocation=list(data[16:32]),
            name_flags=sum(1 << i for i, b in enumerate(name_raw) if b & ATTR_BIT),
            ext_flags=sum(1 << i for i, b in enumerate(ext_raw) if b & ATTR_BIT),
        )

    def to_bytes(self) -> bytes:
        """Serialize to a 32-byte directory entry."""
        data = bytearray(DIR_ENTRY_SIZE)
        data[0] = self.status
        for i, char in enumerate(self.name.ljust(8)[:8]):
            data[1 + i] = (ord(char) & 0x7F) | (ATTR_BIT if self.name_flags & (1 << i) else 0)
        for i, char in enumerate(self.extension.ljust(3)[:3]):
            data[9 + i] = (ord(char) & 0x7F) | (ATTR_BIT if self.ext_flags & (1 << i) else 0)
        data[12] = self.extent
        data[13] = self.last_record_bytes
        data[14] = self.reserved
        data[15] = self.record_count
        data[16:32] = bytes(self.allocation[:BLOCKS_PER_EXTENT]).ljust(BLOCKS_PER_EXTENT, b'\x00')
        return bytes(data)

    @classmethod
    def new(cls, name: str, extension: str, extent: int = 0) -> 'DirectoryEntry':
        """Create an active, empty entry. name/extension must be validated."""
        return cls(status=ENTRY_ACTIVE, name=name.ljust(8), extension=extension.ljust(3),
                   extent=extent)

    @property
    def is_unused(self) -> bool:
        return self.status == ENTRY_UNUSED

    @property
    def is_deleted(self) -> bool:
        return self.status == ENTRY_DELETED

    @property
    def is_active(self) -> bool:
        return not (self.is_unused or self.is_deleted)

    @property
    def filename(self) -> str:
        return self.name.rstrip()

    @property
    def ext(self) -> str:
        return self.extension.rstrip()

    @property
    def full_name(self) -> str:
        """Return 'NAME.EXT' format."""
        if self.ext:
            return f"{self.filename}.{self.ext}"
        return self.filename

    @property
    def blocks(self) -> list[int]:
        """Allocated block numbers in order (zero slots skipped)."""
        return [b for b in self.allocation if b != 0]

    @blocks.setter
    def blocks(self, blocks: list[int]) -> None:
        if len(blocks) > BLOCKS_PER_EXTENT:
            raise DiskError(f"An extent holds at most {BLOCKS_PER_EXTENT} blocks")
        self.allocation = list(blocks) + [0] * (BLOCKS_PER_EXTENT - len(blocks))

    @property
    def size(self) -> int:
        """Bytes described by this extent alone."""
        size = self.record_count * RECORD_SIZE
        if self.record_count and self.last_record_bytes:
            size -= RECORD_SIZE - self.last_record_bytes
        return size

    @property
    def attributes(self) -> FileAttributes:
        return FileAttributes.from_entry(self)

    @property
    def is_read_only(self) -> bool:
        return bool(self.ext_flags & 0x01)

    def matches(self, full_name: str) -> bool:
        """Case-insensitive comparison against 'NAME.EXT'."""
        return self.full_name.upper() == full_name.upper()

    def clear(self) -> None:
        """Zero the whole entry ('unused')."""
        self.status = ENTRY_UNUSED
        self.name = '\x00' * 8
        self.extension = '\x00' * 3
        self.extent = self.last_record_bytes = self.reserved = self.record_count = 0
        self.allocation = [0] * BLOCKS_PER_EXTENT
        self.name_flags = self.ext_flags = 0


TYPE_LABELS = {
    "BAS": "BASIC",
    "BIN": "Code",
    "SCR": "Screen$",
}


@dataclass
class Plus3FileInfo:
    """Aggregated information about a file (may span multiple extents)."""
    filename: str
    extension: str
    file_size: int
    extents: list[DirectoryEntry]
    attributes: FileAttributes = field(default_factory=FileAttributes)
    deleted: bool = False

    @property
    def full_name(self) -> str:
        if self.extension:
            return f"{self.filename}.{self.extension}"
        return self.filename

    @property
    def blocks(self) -> list[int]:
        return [b for entry in self.extents for b in entry.blocks]

    @property
    def records(self) -> int:
        return sum(entry.record_count for entry in self.extents)

    @property
    def is_read_only(self) -> bool:
        return self.attributes.read_only

    @property
    def type_label(self) -> str:
        """File type as guessed from the extension."""
        return TYPE_LABELS.get(self.extension.upper(), "Data")
