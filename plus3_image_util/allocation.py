"""
Free-space management for +3 disk images.

SectorAllocation is the per-sector bitmap; BlockAllocator hands out 1K
allocation blocks built from it. Both are owned by a single DiskImage.
"""

from typing import TYPE_CHECKING

from .constants import (
    BLOCK_SIZE,
    MAX_BLOCKS_PER_FILE,
    RESERVED_BLOCKS,
    RESERVED_SECTORS,
    SECTORS_PER_BLOCK,
    SECTORS_PER_TRACK,
    TOTAL_BLOCKS,
    TOTAL_SECTORS,
)
from .exceptions import (
    AllocationError,
    DiskError,
    DiskFullError,
    FileTooLargeError,
    OutOfRangeError,
)
from .geometry import (
    block_to_sector,
    check_linear,
    check_range,
    linear_to_physical,
    track_bounds,
)
from .logging_config import get_logger

if TYPE_CHECKING:
    from .disk import DiskImage

logger = get_logger('alloc')


class SectorAllocation:
    """Allocation bitmap with one flag per linear sector."""

    def __init__(self, total_sectors: int = TOTAL_SECTORS):
        self.total_sectors = total_sectors
        self._bitmap = [False] * total_sectors

    def __len__(self) -> int:
        return self.total_sectors

    def reset(self) -> None:
        """Mark every sector free."""
        self._bitmap = [False] * self.total_sectors

    def is_allocated(self, linear: int) -> bool:
        """Check whether a sector holds live data."""
        check_linear(linear)
        return self._bitmap[linear]

    def allocate(self, start: int, count: int = 1) -> None:
        """
        Allocate a run of sectors.

        The whole run is checked first; if any sector is already allocated
        nothing is changed.
        """
        check_range(start, count)
        for linear in range(start, start + count):
            if self._bitmap[linear]:
                raise AllocationError(f"Sector {linear} is already allocated")
        for linear in range(start, start + count):
            self._bitmap[linear] = True

    def free(self, start: int, count: int = 1) -> None:
        """Free a run of sectors. Freeing a free sector is a no-op."""
        check_range(start, count)
        for linear in range(start, start + count):
            self._bitmap[linear] = False

    def find_free(self, count: int) -> int:
        """Return the first sector starting a run of count free sectors."""
        if count <= 0:
            raise OutOfRangeError(f"Invalid sector count: {count}")
        run = 0
        for linear, used in enumerate(self._bitmap):
            run = 0 if used else run + 1
            if run == count:
                return linear - count + 1
        raise DiskFullError(f"No run of {count} free sectors")

    def free_space_count(self) -> int:
        """Number of free sectors."""
        return self._bitmap.count(False)

    def allocated_count(self) -> int:
        return self._bitmap.count(True)

    # -------------------------------------------------------------------------
    # Track helpers
    # -------------------------------------------------------------------------

    def track_allocation(self, track: int, side: int = 0) -> list[bool]:
        """Allocation flags for each sector of a track."""
        first, last = track_bounds(track, side)
        return self._bitmap[first:last + 1]

    def is_track_allocated(self, track: int, side: int = 0) -> bool:
        """True if any sector of the track is allocated."""
        return any(self.track_allocation(track, side))

    def allocate_track(self, track: int, side: int = 0) -> None:
        first, _ = track_bounds(track, side)
        self.allocate(first, SECTORS_PER_TRACK)

    def free_track(self, track: int, side: int = 0) -> None:
        first, _ = track_bounds(track, side)
        self.free(first, SECTORS_PER_TRACK)


class BlockAllocator:
    """
    Allocates 1K blocks for files on top of a SectorAllocation.

    Blocks 0 (boot) and 1-2 (directory) are reserved for the system and
    never handed out. A block is free when none of its sectors is
    allocated.
    """

    def __init__(self, allocation: SectorAllocation, disk: 'DiskImage | None' = None):
        self.allocation = allocation
        self.disk = disk
        self.reserve_system_blocks()

    def reserve_system_blocks(self) -> None:
        """Mark the boot and directory sectors allocated."""
        for linear in range(RESERVED_SECTORS):
            if not self.allocation.is_allocated(linear):
                self.allocation.allocate(linear)

    @staticmethod
    def block_to_sector(block: int) -> int:
        """First linear sector of a block."""
        return block_to_sector(block)

    @staticmethod
    def blocks_needed(byte_size: int) -> int:
        """Blocks required to hold byte_size bytes."""
        return (byte_size + BLOCK_SIZE - 1) // BLOCK_SIZE

    def _check_block(self, block: int) -> None:
        if not RESERVED_BLOCKS <= block < TOTAL_BLOCKS:
            raise OutOfRangeError(
                f"Invalid block number {block} (data blocks are "
                f"{RESERVED_BLOCKS}-{TOTAL_BLOCKS - 1})"
            )

    def is_block_free(self, block: int) -> bool:
        """Check whether a data block is available."""
        if block < RESERVED_BLOCKS:
            return False
        first = block_to_sector(block)
        return not any(self.allocation.is_allocated(first + i)
                       for i in range(SECTORS_PER_BLOCK))

    def free_block_count(self) -> int:
        """Number of data blocks available to files."""
        return sum(1 for b in range(RESERVED_BLOCKS, TOTAL_BLOCKS) if self.is_block_free(b))

    def find_contiguous_blocks(self, count: int) -> int | None:
        """Return the first block starting a run of count free blocks, or None."""
        if count <= 0:
            return None
        run = 0
        for block in range(RESERVED_BLOCKS, TOTAL_BLOCKS):
            run = run + 1 if self.is_block_free(block) else 0
            if run == count:
                return block - count + 1
        return None

    # -------------------------------------------------------------------------
    # Allocation
    # -------------------------------------------------------------------------

    def _claim(self, blocks: list[int]) -> None:
        """Allocate the sectors of each block, rolling back on failure."""
        claimed = []
        try:
            for block in blocks:
                self.allocation.allocate(block_to_sector(block), SECTORS_PER_BLOCK)
                claimed.append(block)
        except DiskError:
            for block in claimed:
                self.allocation.free(block_to_sector(block), SECTORS_PER_BLOCK)
            raise

    def allocate(self, byte_size: int) -> list[int]:
        """
        Allocate enough blocks to hold byte_size bytes.

        A single contiguous run is preferred; otherwise free blocks are
        taken in ascending order.

        Returns:
            List of allocated block numbers (empty for byte_size 0)

        Raises:
            FileTooLargeError: If more than MAX_BLOCKS_PER_FILE blocks are needed
            DiskFullError: If not enough free blocks remain
        """
        if byte_size < 0:
            raise OutOfRangeError(f"Invalid allocation size: {byte_size}")

        count = self.blocks_needed(byte_size)
        if count == 0:
            return []
        if count > MAX_BLOCKS_PER_FILE:
            raise FileTooLargeError(
                f"{byte_size} bytes needs {count} blocks, maximum is {MAX_BLOCKS_PER_FILE}"
            )

        start = self.find_contiguous_blocks(count)
        if start is not None:
            blocks = list(range(start, start + count))
        else:
            blocks = [b for b in range(RESERVED_BLOCKS, TOTAL_BLOCKS)
                      if self.is_block_free(b)][:count]
            if len(blocks) < count:
                raise DiskFullError(f"Need {count} blocks, only {len(blocks)} available")
            logger.debug("No contiguous run of %d blocks, allocating fragmented", count)

        self._claim(blocks)
        logger.debug("Allocated blocks %s for %d bytes", blocks, byte_size)
        return blocks

    def free(self, blocks: list[int]) -> None:
        """Free a file's blocks. All numbers are checked before anything is freed."""
        for block in blocks:
            self._check_block(block)
        for block in blocks:
            self.allocation.free(block_to_sector(block), SECTORS_PER_BLOCK)
        if blocks:
            logger.debug("Freed blocks %s", blocks)

    def defragment_file(self, old_blocks: list[int]) -> list[int]:
        """
        Move a file's blocks into one contiguous run.

        Content is copied sector by sector, then the old blocks are freed.
        If no run is available the old blocks are left as they were.

        Returns:
            The new block list
        """
        if self.disk is None:
            raise DiskError("Defragmenting needs a disk image to copy sectors")
        for block in old_blocks:
            self._check_block(block)
        if not old_blocks:
            return []

        count = len(old_blocks)
        start = self.find_contiguous_blocks(count)
        if start is None:
            raise DiskFullError(f"No contiguous run of {count} free blocks")

        new_blocks = list(range(start, start + count))
        self._claim(new_blocks)

        try:
            for old, new in zip(old_blocks, new_blocks):
                src = block_to_sector(old)
                dst = block_to_sector(new)
                for i in range(SECTORS_PER_BLOCK):
                    track, sector, side = linear_to_physical(src + i)
                    data = self.disk.get_sector_data(track, sector, side)
                    track, sector, side = linear_to_physical(dst + i)
                    self.disk.set_sector_data(track, sector, side, data)
        except DiskError:
            self.free(new_blocks)
            raise

        self.free(old_blocks)
        logger.debug("Defragmented blocks %s -> %s", old_blocks, new_blocks)
        return new_blocks
