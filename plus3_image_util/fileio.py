"""
Seekable byte-stream access to files stored on a +3 disk image.
"""

import os
from typing import TYPE_CHECKING

from .constants import (
    BLOCK_SIZE,
    BLOCKS_PER_EXTENT,
    HEADER_SIZE,
    MAX_BLOCKS_PER_FILE,
    RECORD_SIZE,
    RECORDS_PER_EXTENT,
    SECTOR_SIZE,
)
from .exceptions import (
    DirectoryFullError,
    DiskError,
    FileNotFoundError,
    FileTooLargeError,
    OutOfRangeError,
    ReadOnlyError,
)
from .geometry import block_to_sector
from .header import Plus3DosHeader
from .logging_config import get_logger
from .models import DirectoryEntry

if TYPE_CHECKING:
    from .disk import DiskImage

logger = get_logger('file')


class Plus3File:
    """
    An open file on a DiskImage.

    Reads and writes go straight to the image's sectors. Blocks are
    allocated on demand when a write extends the file. Sizes and the
    PLUS3DOS header are written back to the in-memory directory on
    flush() or close(); the image itself is only persisted by
    DiskImage.save().

    Offsets are absolute within the file, header included. A headered
    file opens positioned just after its header.
    """

    def __init__(self, disk: 'DiskImage', name: str, create: bool = False,
                 read_only: bool = False):
        self.disk = disk
        found = disk.directory.file_entries(name)
        if not found:
            if not create:
                raise FileNotFoundError(f"File not found: {name}")
            entry, _ = disk.directory.add_file(name)
            found = [(None, entry)]
            logger.debug("Created %s", entry.full_name)

        self._entries: list[DirectoryEntry] = [entry for _, entry in found]
        self.name = self._entries[0].full_name
        self.read_only = read_only or self._entries[0].is_read_only
        self.blocks = [b for entry in self._entries for b in entry.blocks]
        self.size = sum(entry.size for entry in self._entries)
        self.position = 0
        self.header: Plus3DosHeader | None = None
        self.closed = False

        self._detect_header()

    def _detect_header(self) -> None:
        if self.size < HEADER_SIZE:
            return
        data = self.read_at(HEADER_SIZE, 0)
        if not Plus3DosHeader.is_plus3dos(data):
            return
        header = Plus3DosHeader(data)
        problems = header.problems()
        if problems:
            logger.debug("%s: ignoring invalid header (%s)", self.name, problems[0])
            return
        self.header = header
        self.position = HEADER_SIZE
        if HEADER_SIZE <= header.file_length <= self.size:
            self.size = header.file_length

    @property
    def headered(self) -> bool:
        return self.header is not None

    @property
    def data_size(self) -> int:
        """Size of the file contents after any header."""
        return self.size - HEADER_SIZE if self.headered else self.size

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _check_open(self) -> None:
        if self.closed:
            raise DiskError(f"I/O operation on closed file {self.name}")

    def _check_writable(self) -> None:
        self._check_open()
        if self.read_only:
            raise ReadOnlyError(f"File is read-only: {self.name}")

    # -------------------------------------------------------------------------
    # Block mapping
    # -------------------------------------------------------------------------

    def _sector_for(self, position: int) -> tuple[int, int]:
        """Map a file position to (linear sector, offset within sector)."""
        block_index, within = divmod(position, BLOCK_SIZE)
        if block_index >= len(self.blocks):
            raise DiskError(f"{self.name}: position {position} beyond allocated blocks")
        sector_in_block, offset = divmod(within, SECTOR_SIZE)
        return block_to_sector(self.blocks[block_index]) + sector_in_block, offset

    def _ensure_capacity(self, end: int) -> None:
        """Allocate blocks (and extents) so that bytes up to end can be written."""
        needed = (end + BLOCK_SIZE - 1) // BLOCK_SIZE
        extra = needed - len(self.blocks)
        if extra <= 0:
            return
        if needed > MAX_BLOCKS_PER_FILE:
            raise FileTooLargeError(
                f"{self.name}: {end} bytes needs {needed} blocks, maximum is {MAX_BLOCKS_PER_FILE}"
            )

        new_blocks = self.disk.blocks.allocate(extra * BLOCK_SIZE)
        try:
            self._reserve_extents(len(self.blocks) + len(new_blocks))
        except DirectoryFullError:
            self.disk.blocks.free(new_blocks)
            raise
        self.blocks.extend(new_blocks)
        self._sync_blocks()

    def _reserve_extents(self, block_count: int) -> None:
        wanted = max(1, (block_count + BLOCKS_PER_EXTENT - 1) // BLOCKS_PER_EXTENT)
        added = []
        try:
            while len(self._entries) < wanted:
                entry, _ = self.disk.directory.add_extent(self._entries[0], len(self._entries))
                self._entries.append(entry)
                added.append(entry)
        except DirectoryFullError:
            for entry in added:
                self._entries.remove(entry)
                self.disk.directory.remove_entry(entry)
            raise

    def _sync_blocks(self) -> None:
        for i, entry in enumerate(self._entries):
            entry.blocks = self.blocks[i * BLOCKS_PER_EXTENT:(i + 1) * BLOCKS_PER_EXTENT]
        self.disk.directory.modified = True

    def _sync_entries(self) -> None:
        """Write block lists and record counts back into the directory entries."""
        self._sync_blocks()
        records = (self.size + RECORD_SIZE - 1) // RECORD_SIZE
        last_extent = max(0, records - 1) // RECORDS_PER_EXTENT
        for i, entry in enumerate(self._entries):
            remaining = records - i * RECORDS_PER_EXTENT
            entry.record_count = max(0, min(RECORDS_PER_EXTENT, remaining))
            entry.last_record_bytes = self.size % RECORD_SIZE if i == last_extent else 0

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def read_at(self, size: int, offset: int) -> bytes:
        """
        Read up to size bytes starting at offset (size < 0 reads to the end).

        Returns fewer bytes, or none, at end of file.
        """
        self._check_open()
        if offset < 0:
            raise OutOfRangeError(f"Negative file offset: {offset}")
        if offset >= self.size:
            return b''
        end = self.size if size < 0 else min(offset + size, self.size)

        data = bytearray()
        pos = offset
        while pos < end:
            linear, within = self._sector_for(pos)
            chunk = min(SECTOR_SIZE - within, end - pos)
            data += self.disk.read_sector(linear)[within:within + chunk]
            pos += chunk
        return bytes(data)

    def read(self, size: int = -1) -> bytes:
        """Read from the current position and advance it."""
        data = self.read_at(size, self.position)
        self.position += len(data)
        return data

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def write_at(self, data: bytes, offset: int) -> int:
        """
        Write data at offset, extending the file as needed.

        A gap between the current end of file and offset reads back as
        zero bytes.

        Returns:
            Number of bytes written
        """
        self._check_writable()
        if offset < 0:
            raise OutOfRangeError(f"Negative file offset: {offset}")
        if not data:
            return 0
        written = len(data)
        if offset > self.size:
            data = bytes(offset - self.size) + bytes(data)
            offset = self.size
        end = offset + len(data)
        self._ensure_capacity(end)

        pos = offset
        view = memoryview(bytes(data))
        while pos < end:
            linear, within = self._sector_for(pos)
            chunk = min(SECTOR_SIZE - within, end - pos)
            if within == 0 and chunk == SECTOR_SIZE:
                sector = bytes(view[pos - offset:pos - offset + chunk])
            else:
                sector = bytearray(self.disk.read_sector(linear))
                sector[within:within + chunk] = view[pos - offset:pos - offset + chunk]
                sector = bytes(sector)
            self.disk.write_sector(linear, sector)
            pos += chunk

        self.size = max(self.size, end)
        return written

    def write(self, data: bytes) -> int:
        """Write at the current position and advance it."""
        written = self.write_at(data, self.position)
        self.position += written
        return written

    def set_header(self, header: Plus3DosHeader) -> None:
        """Write a PLUS3DOS header at offset 0 and treat the file as headered."""
        self._check_writable()
        self.header = header
        self.write_at(header.to_bytes(), 0)
        if self.position < HEADER_SIZE:
            self.position = HEADER_SIZE

    # -------------------------------------------------------------------------
    # Positioning
    # -------------------------------------------------------------------------

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        """Move the position; seeking past the end is allowed."""
        self._check_open()
        match whence:
            case os.SEEK_SET:
                new_position = offset
            case os.SEEK_CUR:
                new_position = self.position + offset
            case os.SEEK_END:
                new_position = self.size + offset
            case _:
                raise OutOfRangeError(f"Invalid whence: {whence}")
        if new_position < 0:
            raise OutOfRangeError(f"Negative seek position: {new_position}")
        self.position = new_position
        return new_position

    def tell(self) -> int:
        return self.position

    # -------------------------------------------------------------------------
    # Closing
    # -------------------------------------------------------------------------

    def flush(self) -> None:
        """Update the header and directory entries in memory."""
        self._check_open()
        if self.read_only:
            return
        if self.header is not None:
            self.header.file_length = self.size
            self.header.update_checksum()
            self.write_at(self.header.to_bytes(), 0)
        self._sync_entries()

    def close(self) -> None:
        if self.closed:
            return
        self.flush()
        self.closed = True
        logger.debug("Closed %s (%d bytes, %d blocks)", self.name, self.size, len(self.blocks))

    def __repr__(self) -> str:
        return f"Plus3File({self.name!r}, size={self.size}, position={self.position})"
