"""
ZX Spectrum +3 disk image handler.

A DiskImage holds a whole EXTENDED CPC DSK image in memory: the Disk-Info
header, one byte buffer per track, the sector allocation bitmap and the
directory. Images are read once on load and written once on save; every
edit in between happens in memory.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO

from .allocation import BlockAllocator, SectorAllocation
from .constants import (
    BLOCK_SIZE,
    BOOT_CHECKSUM,
    BOOT_CHECKSUM_FIDDLE,
    BOOT_SECTOR,
    DATA_CAPACITY,
    DIR_SECTORS,
    DIR_START_SECTOR,
    DIRECTORY_BLOCKS,
    DISK_HEADER_SIZE,
    FILLER_BYTE,
    FIRST_SECTOR_ID,
    GAP3_LENGTH,
    RESERVED_BLOCKS,
    SECTOR_SIZE,
    SECTOR_SIZE_CODE,
    SECTORS_PER_TRACK,
    SIDES_PER_DISK,
    TOTAL_BLOCKS,
    TRACK_INFO_SIZE,
    TRACK_SIZE,
    TRACKS_PER_SIDE,
)
from .directory import Directory
from .exceptions import (
    DiskError,
    FileNotFoundError,
    InvalidImageError,
    ReadOnlyError,
)
from .fileio import Plus3File
from .geometry import (
    block_to_sector,
    linear_to_physical,
    physical_to_linear,
    track_index,
)
from .logging_config import image_logger
from .models import DiskInfoHeader, FileAttributes, Plus3FileInfo, TrackInfo
from .utils import remove_partial


class AllocationRecovery(Enum):
    """How the allocation bitmap is rebuilt when an image is loaded."""
    DIRECTORY = 'directory'      # reserved region plus blocks of live entries
    SCAN_TRACKS = 'scan'         # any track holding data counts as allocated


class DiskState(Enum):
    EMPTY = 'empty'
    INITIALIZED = 'initialized'
    POPULATED = 'populated'


@dataclass
class DiskUsage:
    """Aggregate space usage of a disk image."""
    file_count: int
    used_bytes: int
    free_bytes: int
    total_bytes: int

    @property
    def percent_used(self) -> float:
        if self.total_bytes == 0:
            return 0.0
        return round(self.used_bytes / self.total_bytes * 100, 1)


class DiskImage:
    """In-memory +3 disk image."""

    def __init__(self, name: str = '<memory>'):
        """Create an empty image: zero-filled tracks, directory all unused."""
        self.name = name
        self.log = image_logger('disk', name)
        self.header = DiskInfoHeader()
        self.tracks = [bytearray(TRACK_SIZE) for _ in range(TRACKS_PER_SIDE * SIDES_PER_DISK)]
        self.allocation = SectorAllocation()
        self.blocks = BlockAllocator(self.allocation, self)
        self.directory = Directory()
        self._modified = False

    @classmethod
    def create(cls, name: str = '<memory>') -> 'DiskImage':
        """Create a blank, formatted image ready to accept files."""
        disk = cls(name)
        disk.format()
        return disk

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def modified(self) -> bool:
        """True if anything changed since the image was loaded or saved."""
        return self._modified or self.directory.modified

    @property
    def state(self) -> DiskState:
        if self.directory.live_entries():
            return DiskState.POPULATED
        if self.directory.is_initialized:
            return DiskState.INITIALIZED
        return DiskState.EMPTY

    def _mark_clean(self) -> None:
        self._modified = False
        self.directory.modified = False

    # -------------------------------------------------------------------------
    # Formatting
    # -------------------------------------------------------------------------

    def format(self) -> None:
        """Fill the disk with filler bytes, write a boot sector and an empty directory."""
        for track in self.tracks:
            track[:] = bytes([FILLER_BYTE]) * TRACK_SIZE
        self.allocation.reset()
        self.blocks.reserve_system_blocks()
        self.write_boot_sector()
        self.initialize_directory()
        self.log.debug("Formatted")

    def write_boot_sector(self) -> None:
        """Write a +3 disk specification whose sector checksum is 3."""
        boot = bytearray(SECTOR_SIZE)
        boot[0:10] = bytes([
            0,                    # +3 format
            SIDES_PER_DISK - 1,   # single sided
            TRACKS_PER_SIDE,
            SECTORS_PER_TRACK,
            SECTOR_SIZE_CODE,
            0,                    # reserved tracks
            3,                    # log2(block size) - 7
            DIRECTORY_BLOCKS,
            0x2A,                 # read/write gap
            GAP3_LENGTH,          # format gap
        ])
        boot[BOOT_CHECKSUM_FIDDLE] = (BOOT_CHECKSUM - sum(boot)) % 256
        self.write_sector(BOOT_SECTOR, bytes(boot))

    @staticmethod
    def boot_checksum(boot: bytes) -> int:
        return sum(boot) % 256

    def initialize_directory(self) -> Directory:
        """Reset the directory to all-deleted slots and write it to disk."""
        self.directory.initialize()
        self.flush_directory()
        return self.directory

    def flush_directory(self) -> None:
        """Copy the in-memory directory into the directory sectors."""
        data = self.directory.to_bytes().ljust(DIR_SECTORS * SECTOR_SIZE, b'\x00')
        for i in range(DIR_SECTORS):
            self._write_raw(DIR_START_SECTOR + i, data[i * SECTOR_SIZE:(i + 1) * SECTOR_SIZE])
        self._modified = True

    def read_directory_region(self) -> bytes:
        """Raw bytes of the directory sectors."""
        return b''.join(self.read_sector(DIR_START_SECTOR + i) for i in range(DIR_SECTORS))

    # -------------------------------------------------------------------------
    # Sector I/O
    # -------------------------------------------------------------------------

    def _locate(self, linear: int) -> tuple[bytearray, int]:
        track, sector, side = linear_to_physical(linear)
        return self.tracks[track_index(track, side)], sector * SECTOR_SIZE

    def raw_sector(self, linear: int) -> bytes:
        """Sector bytes regardless of allocation (for checking and saving)."""
        buffer, offset = self._locate(linear)
        return bytes(buffer[offset:offset + SECTOR_SIZE])

    def _write_raw(self, linear: int, data: bytes) -> None:
        buffer, offset = self._locate(linear)
        buffer[offset:offset + SECTOR_SIZE] = data

    def read_sector(self, linear: int) -> bytes:
        """Read an allocated sector by linear index."""
        buffer, offset = self._locate(linear)
        if not self.allocation.is_allocated(linear):
            raise DiskError(f"Sector {linear} is not allocated")
        return bytes(buffer[offset:offset + SECTOR_SIZE])

    def write_sector(self, linear: int, data: bytes) -> None:
        """Write a sector by linear index, allocating it if needed."""
        if len(data) != SECTOR_SIZE:
            raise DiskError(f"Sector data must be {SECTOR_SIZE} bytes, got {len(data)}")
        buffer, offset = self._locate(linear)
        if not self.allocation.is_allocated(linear):
            self.allocation.allocate(linear)
        buffer[offset:offset + SECTOR_SIZE] = data
        self._modified = True

    def get_sector_data(self, track: int, sector: int, side: int = 0) -> bytes:
        """Read an allocated sector by physical coordinates."""
        return self.read_sector(physical_to_linear(track, sector, side))

    def set_sector_data(self, track: int, sector: int, side: int, data: bytes) -> None:
        """Write a sector by physical coordinates, allocating it if needed."""
        self.write_sector(physical_to_linear(track, sector, side), data)

    def get_track_data(self, track: int, side: int = 0) -> bytes:
        """Raw bytes of a whole track."""
        return bytes(self.tracks[track_index(track, side)])

    def set_track_data(self, track: int, side: int, data: bytes) -> None:
        """Replace a whole track; every sector in it becomes allocated."""
        if len(data) != TRACK_SIZE:
            raise DiskError(f"Track data must be {TRACK_SIZE} bytes, got {len(data)}")
        index = track_index(track, side)
        first = physical_to_linear(track, 0, side)
        for linear in range(first, first + SECTORS_PER_TRACK):
            if not self.allocation.is_allocated(linear):
                self.allocation.allocate(linear)
        self.tracks[index][:] = data
        self._modified = True

    def read_block(self, block: int) -> bytes:
        first = block_to_sector(block)
        return self.read_sector(first) + self.read_sector(first + 1)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    @classmethod
    def load(cls, stream: BinaryIO, name: str | None = None,
             recovery: AllocationRecovery = AllocationRecovery.DIRECTORY) -> 'DiskImage':
        """Read an image from a binary stream."""
        if name is None:
            name = getattr(stream, 'name', '<stream>')
        return cls.from_bytes(stream.read(), str(name), recovery)

    @classmethod
    def load_from_file(cls, path: str | Path,
                       recovery: AllocationRecovery = AllocationRecovery.DIRECTORY) -> 'DiskImage':
        """Read an image from a host file."""
        try:
            with open(path, 'rb') as f:
                return cls.load(f, str(path), recovery)
        except OSError as e:
            raise DiskError(f"Cannot read disk image {path}: {e}") from e

    @classmethod
    def from_bytes(cls, data: bytes, name: str = '<memory>',
                   recovery: AllocationRecovery = AllocationRecovery.DIRECTORY) -> 'DiskImage':
        """
        Parse a serialized image.

        Raises:
            InvalidImageError: On bad signatures, geometry or truncated data
        """
        disk = cls(name)
        header = DiskInfoHeader.from_bytes(data)
        problems = header.problems()
        if problems:
            raise InvalidImageError(problems[0])
        disk.header = header

        expected = DISK_HEADER_SIZE + len(disk.tracks) * (TRACK_INFO_SIZE + TRACK_SIZE)
        if len(data) < expected:
            raise InvalidImageError(f"Image truncated: {len(data)} bytes, expected {expected}")

        offset = DISK_HEADER_SIZE
        for side in range(SIDES_PER_DISK):
            for track in range(TRACKS_PER_SIDE):
                info = TrackInfo.from_bytes(data[offset:offset + TRACK_INFO_SIZE])
                info.check(track, side)
                offset += TRACK_INFO_SIZE
                raw = data[offset:offset + TRACK_SIZE]
                buffer = disk.tracks[track_index(track, side)]
                # Sector data follows the order of the sector info list
                for position, sector_info in enumerate(info.sectors):
                    dst = (sector_info.sector_id - FIRST_SECTOR_ID) * SECTOR_SIZE
                    src = position * SECTOR_SIZE
                    buffer[dst:dst + SECTOR_SIZE] = raw[src:src + SECTOR_SIZE]
                offset += TRACK_SIZE

        disk.directory = Directory.from_bytes(
            b''.join(disk.raw_sector(DIR_START_SECTOR + i) for i in range(DIR_SECTORS)))
        disk.rebuild_allocation(recovery)
        disk._mark_clean()
        disk.log.debug("Loaded (%d live directory entries)", len(disk.directory.live_entries()))
        return disk

    def rebuild_allocation(self, recovery: AllocationRecovery = AllocationRecovery.DIRECTORY) -> None:
        """Recompute the allocation bitmap from the directory or the track contents."""
        self.allocation.reset()
        self.blocks.reserve_system_blocks()

        if recovery is AllocationRecovery.SCAN_TRACKS:
            for side in range(SIDES_PER_DISK):
                for track in range(TRACKS_PER_SIDE):
                    data = self.tracks[track_index(track, side)]
                    if data.strip(b'\x00') and data.strip(bytes([FILLER_BYTE])):
                        first = physical_to_linear(track, 0, side)
                        for linear in range(first, first + SECTORS_PER_TRACK):
                            if not self.allocation.is_allocated(linear):
                                self.allocation.allocate(linear)
            return

        for _, entry in self.directory.live_entries():
            for block in entry.blocks:
                if not RESERVED_BLOCKS <= block < TOTAL_BLOCKS:
                    self.log.warning("%s references invalid block %d", entry.full_name, block)
                elif not self.blocks.is_block_free(block):
                    self.log.warning("%s references block %d already in use",
                                     entry.full_name, block)
                else:
                    self.allocation.allocate(block_to_sector(block), BLOCK_SIZE // SECTOR_SIZE)

    def format_problems(self) -> list[str]:
        """Every container-level format problem (header and track buffers)."""
        problems = self.header.problems()
        expected_tracks = TRACKS_PER_SIDE * SIDES_PER_DISK
        if len(self.tracks) != expected_tracks:
            problems.append(f"Invalid track buffer count: {len(self.tracks)} (expected {expected_tracks})")
        for i, track in enumerate(self.tracks):
            if len(track) != self.header.track_size:
                problems.append(
                    f"Track {i} buffer is {len(track)} bytes (header says {self.header.track_size})")
        if len(self.allocation) != expected_tracks * SECTORS_PER_TRACK:
            problems.append(f"Allocation bitmap covers {len(self.allocation)} sectors")
        return problems

    def validate_format(self) -> None:
        """Raise InvalidImageError for the first format problem found."""
        problems = self.format_problems()
        if problems:
            raise InvalidImageError(problems[0])

    def save(self, stream: BinaryIO) -> None:
        """Write the image to a binary stream."""
        stream.write(self.to_bytes())

    def to_bytes(self) -> bytes:
        """
        Serialize the image.

        Tracks without any allocated sector are written (and kept in
        memory) as freshly formatted filler.
        """
        self.validate_format()
        self.flush_directory()

        out = bytearray(self.header.to_bytes())
        for side in range(SIDES_PER_DISK):
            for track in range(TRACKS_PER_SIDE):
                buffer = self.tracks[track_index(track, side)]
                if not self.allocation.is_track_allocated(track, side):
                    buffer[:] = bytes([FILLER_BYTE]) * TRACK_SIZE
                out += TrackInfo.for_track(track, side).to_bytes()
                out += buffer

        self._mark_clean()
        return bytes(out)

    def save_to_file(self, path: str | Path) -> None:
        """Write the image to a host file; a partial file is removed on failure."""
        data = self.to_bytes()
        path = Path(path)
        try:
            path.write_bytes(data)
        except OSError as e:
            remove_partial(path)
            raise DiskError(f"Cannot write disk image {path}: {e}") from e
        self.log.info("Saved %d bytes to %s", len(data), path)

    # -------------------------------------------------------------------------
    # File operations
    # -------------------------------------------------------------------------

    def list_files(self) -> list[Plus3FileInfo]:
        return self.directory.list_files()

    def list_deleted(self) -> list[Plus3FileInfo]:
        """Deleted files that can still be listed by name."""
        return self.directory.list_deleted()

    def find_file(self, name: str) -> Plus3FileInfo:
        entries = [e for _, e in self.directory.file_entries(name)]
        if not entries:
            raise FileNotFoundError(f"File not found: {name}")
        for info in self.list_files():
            if info.extents[0] is entries[0]:
                return info
        raise FileNotFoundError(f"File not found: {name}")

    def open_file(self, name: str, create: bool = False, read_only: bool = False) -> Plus3File:
        """Open a file on this image as a seekable byte stream."""
        return Plus3File(self, name, create=create, read_only=read_only)

    def delete_file(self, name: str, no_recycle: bool = False, force: bool = False) -> None:
        """
        Delete a file and free its blocks.

        Raises:
            FileNotFoundError: If the file does not exist
            ReadOnlyError: If the file is read-only and force is not set
        """
        entries = self.directory.file_entries(name)
        if not entries:
            raise FileNotFoundError(f"File not found: {name}")
        if entries[0][1].is_read_only and not force:
            raise ReadOnlyError(f"File is read-only: {entries[0][1].full_name}")

        removed = self.directory.delete_file(name, no_recycle=no_recycle)
        blocks = [b for entry in removed for b in entry.blocks
                  if RESERVED_BLOCKS <= b < TOTAL_BLOCKS]
        self.blocks.free(blocks)
        self._modified = True
        self.log.info("Deleted %s (%d blocks freed)", removed[0].full_name, len(blocks))

    def rename_file(self, old_name: str, new_name: str) -> None:
        self.directory.rename_file(old_name, new_name)

    def get_attributes(self, name: str) -> FileAttributes:
        entry, _ = self.directory.find_file(name)
        return entry.attributes

    def set_attributes(self, name: str, attributes: FileAttributes) -> None:
        """Apply attributes to every extent of a file."""
        entries = self.directory.file_entries(name)
        if not entries:
            raise FileNotFoundError(f"File not found: {name}")
        for _, entry in entries:
            attributes.apply_to(entry)
        self.directory.modified = True

    def defragment(self, name: str) -> list[int]:
        """Move a file into one contiguous run of blocks."""
        entries = [e for _, e in self.directory.file_entries(name)]
        if not entries:
            raise FileNotFoundError(f"File not found: {name}")
        old_blocks = [b for entry in entries for b in entry.blocks]
        new_blocks = self.blocks.defragment_file(old_blocks)

        position = 0
        for entry in entries:
            count = len(entry.blocks)
            entry.blocks = new_blocks[position:position + count]
            position += count
        self.directory.modified = True
        return new_blocks

    def usage(self) -> DiskUsage:
        """File count and used/free/total data space in bytes."""
        total = DATA_CAPACITY
        free = self.blocks.free_block_count() * BLOCK_SIZE
        return DiskUsage(
            file_count=len(self.list_files()),
            used_bytes=total - free,
            free_bytes=free,
            total_bytes=total,
        )

    def __repr__(self) -> str:
        return f"DiskImage({self.name!r}, state={self.state.value})"

