"""
Disk information and statistics for ZX Spectrum +3 disk images.
"""

from typing import Any

from .constants import (
    BLOCK_SIZE,
    DIR_START_SECTOR,
    RESERVED_BLOCKS,
    SECTOR_SIZE,
    SECTORS_PER_TRACK,
    SIDES_PER_DISK,
    TOTAL_BLOCKS,
    TRACKS_PER_SIDE,
)
from .disk import DiskImage


def get_disk_info(disk: DiskImage) -> dict[str, Any]:
    """
    Get comprehensive information about a disk image.

    Returns:
        Dictionary containing disk information
    """
    usage = disk.usage()
    directory = disk.directory
    return {
        'type': 'ZX Spectrum +3',
        'filesystem': '+3DOS',
        'name': disk.name,
        'creator': disk.header.creator.decode('ascii', 'replace').strip('\x00 '),
        'state': disk.state.value,
        'tracks': TRACKS_PER_SIDE,
        'sides': SIDES_PER_DISK,
        'sectors_per_track': SECTORS_PER_TRACK,
        'sector_size': SECTOR_SIZE,
        'block_size': BLOCK_SIZE,
        'total_blocks': TOTAL_BLOCKS,
        'reserved_blocks': RESERVED_BLOCKS,
        'free_blocks': disk.blocks.free_block_count(),
        'directory_start_sector': DIR_START_SECTOR,
        'directory_entries': len(directory),
        'directory_free': directory.free_slot_count(),
        'total_bytes': usage.total_bytes,
        'free_bytes': usage.free_bytes,
        'used_bytes': usage.used_bytes,
        'total_formatted': _format_size(usage.total_bytes),
        'free_formatted': _format_size(usage.free_bytes),
        'used_formatted': _format_size(usage.used_bytes),
        'percent_used': usage.percent_used,
        'file_count': usage.file_count,
    }


def _format_size(size_bytes: int) -> str:
    """Format a size in bytes as a human-readable string."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    return f"{size_bytes / 1024:.1f} KB"


def format_disk_info(info: dict[str, Any], verbose: bool = False) -> str:
    """
    Format disk information as a human-readable string.

    Args:
        info: Dictionary from get_disk_info()
        verbose: Whether to include geometry and layout details
    """
    lines = [
        f"Disk Type: {info['type']}",
        f"Filesystem: {info['filesystem']}",
        f"State: {info['state']}",
        f"Capacity: {info['total_formatted']}",
        f"Used: {info['used_formatted']} ({info['percent_used']:.1f}%)",
        f"Free: {info['free_formatted']}",
        f"Files: {info['file_count']}",
        f"Directory: {info['directory_entries'] - info['directory_free']} of "
        f"{info['directory_entries']} entries used",
    ]

    if verbose:
        lines.append("")
        lines.append("Technical Details:")
        lines.append(f"  Creator: {info['creator']}")
        lines.append(f"  Geometry: {info['tracks']} tracks x {info['sides']} side(s) x "
                     f"{info['sectors_per_track']} sectors x {info['sector_size']} bytes")
        lines.append(f"  Block size: {info['block_size']} bytes")
        lines.append(f"  Blocks: {info['total_blocks']} total, {info['reserved_blocks']} reserved, "
                     f"{info['free_blocks']} free")
        lines.append(f"  Directory start sector: {info['directory_start_sector']}")

    return '\n'.join(lines)
