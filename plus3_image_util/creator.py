"""
Blank disk image creation for the ZX Spectrum +3.
"""

from pathlib import Path

from .constants import SECTOR_SIZE, TOTAL_SIZE, TRACKS_PER_SIDE, SECTORS_PER_TRACK
from .disk import DiskImage
from .exceptions import DiskError
from .logging_config import get_logger
from .utils import remove_partial

logger = get_logger('create')

FORMAT_DESCRIPTION = (
    f"+3 180K: {TRACKS_PER_SIDE} tracks, {SECTORS_PER_TRACK} sectors of "
    f"{SECTOR_SIZE} bytes, single sided ({TOTAL_SIZE // 1024} KB)"
)


def create_blank_image(path: str | Path, force: bool = False) -> DiskImage:
    """
    Create a blank, formatted +3 disk image file.

    Args:
        path: Path for the new disk image file
        force: Overwrite an existing file

    Returns:
        The new DiskImage, already saved

    Raises:
        DiskError: If the file exists (without force) or cannot be written
    """
    path = Path(path)
    if path.exists() and not force:
        raise DiskError(f"File already exists: {path} (use --force to overwrite)")

    disk = DiskImage.create(str(path))
    data = disk.to_bytes()
    try:
        with open(path, 'wb') as f:
            f.write(data)
    except OSError as e:
        remove_partial(path)
        raise DiskError(f"Failed to create disk image: {e}") from e

    logger.info("Created %s (%s)", path, FORMAT_DESCRIPTION)
    return disk
