"""
Sector addressing for the fixed +3 disk geometry.

Pure functions translating between (track, sector, side) coordinates,
linear sector indices, allocation blocks and byte offsets. Sector numbers
are zero-based here; the on-disk sector IDs are ``sector + 1``.
"""

from .constants import (
    DISK_HEADER_SIZE,
    SECTOR_SIZE,
    SECTORS_PER_BLOCK,
    SECTORS_PER_TRACK,
    SIDES_PER_DISK,
    TOTAL_BLOCKS,
    TOTAL_SECTORS,
    TRACK_INFO_SIZE,
    TRACK_SIZE,
    TRACKS_PER_SIDE,
)
from .exceptions import OutOfRangeError


def _check_coordinates(track: int, sector: int, side: int) -> None:
    if not 0 <= track < TRACKS_PER_SIDE:
        raise OutOfRangeError(f"Track {track} out of range (0-{TRACKS_PER_SIDE - 1})")
    if not 0 <= sector < SECTORS_PER_TRACK:
        raise OutOfRangeError(f"Sector {sector} out of range (0-{SECTORS_PER_TRACK - 1})")
    if not 0 <= side < SIDES_PER_DISK:
        raise OutOfRangeError(f"Side {side} out of range (0-{SIDES_PER_DISK - 1})")


def check_linear(linear: int) -> None:
    """Raise OutOfRangeError unless linear is a valid sector index."""
    if not 0 <= linear < TOTAL_SECTORS:
        raise OutOfRangeError(f"Sector index {linear} out of range (0-{TOTAL_SECTORS - 1})")


def check_range(start: int, count: int) -> None:
    """Raise OutOfRangeError unless [start, start+count) lies on the disk."""
    if count < 0:
        raise OutOfRangeError(f"Negative sector count: {count}")
    if start < 0 or start + count > TOTAL_SECTORS:
        raise OutOfRangeError(
            f"Sector range {start}+{count} out of range (0-{TOTAL_SECTORS - 1})"
        )


def physical_to_linear(track: int, sector: int, side: int = 0) -> int:
    """Convert (track, sector, side) to a linear sector index."""
    _check_coordinates(track, sector, side)
    return (side * TRACKS_PER_SIDE * SECTORS_PER_TRACK
            + track * SECTORS_PER_TRACK
            + sector)


def linear_to_physical(linear: int) -> tuple[int, int, int]:
    """Convert a linear sector index to (track, sector, side)."""
    check_linear(linear)
    side, rest = divmod(linear, TRACKS_PER_SIDE * SECTORS_PER_TRACK)
    track, sector = divmod(rest, SECTORS_PER_TRACK)
    return track, sector, side


def track_bounds(track: int, side: int = 0) -> tuple[int, int]:
    """Return the first and last linear sector of a track (inclusive)."""
    first = physical_to_linear(track, 0, side)
    return first, first + SECTORS_PER_TRACK - 1


def track_index(track: int, side: int = 0) -> int:
    """Index of a track buffer in the image's track list."""
    _check_coordinates(track, 0, side)
    return side * TRACKS_PER_SIDE + track


def byte_offset(track: int, sector: int, side: int = 0) -> int:
    """Offset of a sector within the raw data area (no DSK headers)."""
    return physical_to_linear(track, sector, side) * SECTOR_SIZE


def image_offset(track: int, sector: int, side: int = 0) -> int:
    """Offset of a sector's data within a serialized DSK file."""
    index = track_index(track, side)
    _check_coordinates(track, sector, side)
    return (DISK_HEADER_SIZE
            + index * (TRACK_INFO_SIZE + TRACK_SIZE)
            + TRACK_INFO_SIZE
            + sector * SECTOR_SIZE)


def block_to_sector(block: int) -> int:
    """First linear sector of an allocation block."""
    if not 0 <= block < TOTAL_BLOCKS:
        raise OutOfRangeError(f"Block {block} out of range (0-{TOTAL_BLOCKS - 1})")
    return block * SECTORS_PER_BLOCK


def sector_to_block(linear: int) -> int:
    """Allocation block containing a linear sector."""
    check_linear(linear)
    return linear // SECTORS_PER_BLOCK
